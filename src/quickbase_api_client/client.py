"""Public client entrypoint."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import TracebackType
from typing import BinaryIO

from .client_shared import ensure_login, resolve_main_url, validate_client_config
from .config import QuickBaseClientConfig
from .core.errors import QuickBaseClientClosedError
from .core.models import Credential
from .core.transport import SyncTransport
from .records.models import (
    AppDTMInfo,
    CsvImportResult,
    LabelRecord,
    Record,
    StructuredRecord,
    User,
)
from .records.params import (
    DEFAULT_UPLOAD_CHUNK_SIZE,
    build_app_dtm_params,
    build_authenticate_params,
)
from .records.parser import parse_app_dtm_info, parse_credential
from .records.queries import RecordQuery
from .records.service import RecordService
from .records.stream import RecordStream
from .records.validators import ensure_dbid


class _GuardedRecordStream:
    """Stream wrapper that refuses to yield once the client is closed."""

    def __init__(self, owner: "QuickBaseClient", delegate: RecordStream) -> None:
        self._owner = owner
        self._delegate = delegate

    @property
    def records_emitted(self) -> int:
        return self._delegate.records_emitted

    def cancel(self) -> None:
        self._delegate.cancel()

    def close(self) -> None:
        self._delegate.close()

    def wait(self, timeout: float | None = None) -> bool:
        return self._delegate.wait(timeout)

    def __iter__(self) -> Iterator[Record]:
        return self

    def __next__(self) -> Record:
        self._owner._ensure_open()
        return next(self._delegate)

    def __enter__(self) -> "_GuardedRecordStream":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        self.close()
        return False


class _GuardedRecordService:
    """Guard wrapper to block usage after client close."""

    def __init__(self, owner: "QuickBaseClient", delegate: RecordService) -> None:
        self._owner = owner
        self._delegate = delegate

    def do_query(self, credential: Credential, query: RecordQuery) -> list[LabelRecord]:
        self._owner._ensure_open()
        return self._delegate.do_query(credential, query)

    def do_structured_query(
        self,
        credential: Credential,
        query: RecordQuery,
    ) -> list[StructuredRecord]:
        self._owner._ensure_open()
        return self._delegate.do_structured_query(credential, query)

    def query_stream(self, credential: Credential, query: RecordQuery) -> _GuardedRecordStream:
        self._owner._ensure_open()
        stream = self._delegate.query_stream(credential, query)
        self._owner._track(stream)
        return _GuardedRecordStream(self._owner, stream)

    def do_query_count(
        self,
        credential: Credential,
        table_id: str,
        query: str | None = None,
    ) -> int:
        self._owner._ensure_open()
        return self._delegate.do_query_count(credential, table_id, query)

    def add_record(self, credential: Credential, table_id: str, fields: Mapping[str, str]) -> int:
        self._owner._ensure_open()
        return self._delegate.add_record(credential, table_id, fields)

    def edit_record(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        fields: Mapping[str, str],
    ) -> None:
        self._owner._ensure_open()
        self._delegate.edit_record(credential, table_id, rid, fields)

    def delete_record(self, credential: Credential, table_id: str, rid: int) -> None:
        self._owner._ensure_open()
        self._delegate.delete_record(credential, table_id, rid)

    def change_record_owner(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        owner: str,
    ) -> None:
        self._owner._ensure_open()
        self._delegate.change_record_owner(credential, table_id, rid, owner)

    def user_roles(self, credential: Credential, app_id: str) -> list[User]:
        self._owner._ensure_open()
        return self._delegate.user_roles(credential, app_id)

    def upload_file(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        fid: int,
        filename: str,
        source: BinaryIO | bytes,
        *,
        chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE,
    ) -> None:
        self._owner._ensure_open()
        self._delegate.upload_file(
            credential, table_id, rid, fid, filename, source, chunk_size=chunk_size
        )

    def download_file(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        fid: int,
        dest: BinaryIO,
        *,
        version: int = 0,
    ) -> int:
        self._owner._ensure_open()
        return self._delegate.download_file(credential, table_id, rid, fid, dest, version=version)

    def iter_results_csv(
        self,
        credential: Credential,
        table_id: str,
        columns: Iterable[int],
        query: str | None = None,
    ) -> Iterator[bytes]:
        self._owner._ensure_open()
        iterator = self._delegate.iter_results_csv(credential, table_id, columns, query)
        try:
            for chunk in iterator:
                self._owner._ensure_open()
                yield chunk
        finally:
            iterator.close()

    def import_from_csv(
        self,
        credential: Credential,
        table_id: str,
        columns: Iterable[int],
        records_csv: str,
        *,
        skip_first: bool = False,
    ) -> CsvImportResult:
        self._owner._ensure_open()
        return self._delegate.import_from_csv(
            credential, table_id, columns, records_csv, skip_first=skip_first
        )


class QuickBaseClient:
    """Public QuickBase API client."""

    def __init__(
        self,
        *,
        config: QuickBaseClientConfig | None = None,
        transport: SyncTransport | None = None,
        record_service: RecordService | None = None,
    ) -> None:
        self._config = config or QuickBaseClientConfig()
        validate_client_config(self._config)

        self._transport = transport or SyncTransport(self._config)
        self._closed = False
        self._streams: list[RecordStream] = []
        self.records = _GuardedRecordService(self, record_service or RecordService(self._transport))

    def authenticate(
        self,
        username: str,
        password: str,
        *,
        app_token: str | None = None,
        base_url: str | None = None,
    ) -> Credential:
        """Sign in and return the ticket used by every record operation."""

        self._ensure_open()
        ensure_login(username, password)
        resolved_base_url = base_url or self._config.base_url
        tree = self._transport.call(
            resolve_main_url(self._config, resolved_base_url),
            "API_Authenticate",
            build_authenticate_params(username, password),
        )
        credential = parse_credential(tree, base_url=resolved_base_url)
        return credential.with_app_token(app_token) if app_token else credential

    def get_app_dtm_info(self, app_id: str, *, base_url: str | None = None) -> AppDTMInfo:
        """Fetch schema/data modification times of an app and its tables."""

        self._ensure_open()
        tree = self._transport.call(
            resolve_main_url(self._config, base_url),
            "API_GetAppDTMInfo",
            build_app_dtm_params(ensure_dbid(app_id, name="app_id")),
        )
        return parse_app_dtm_info(tree)

    def _track(self, stream: RecordStream) -> None:
        self._streams = [item for item in self._streams if not item.wait(0)]
        self._streams.append(stream)

    def _ensure_open(self) -> None:
        if self._closed:
            raise QuickBaseClientClosedError("QuickBaseClient is already closed")

    def close(self) -> None:
        if self._closed:
            return
        for stream in self._streams:
            stream.close()
        self._streams = []
        self._transport.close()
        self._closed = True

    def __enter__(self) -> "QuickBaseClient":
        self._ensure_open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        self.close()
        return False


__all__ = [
    "QuickBaseClient",
]
