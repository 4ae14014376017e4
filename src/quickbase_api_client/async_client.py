"""Public async client entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Mapping
from types import TracebackType
from typing import BinaryIO

from .client_shared import ensure_login, resolve_main_url, validate_client_config
from .config import QuickBaseClientConfig
from .core.async_transport import AsyncTransport
from .core.errors import QuickBaseClientClosedError
from .core.models import Credential
from .records.async_service import AsyncRecordService
from .records.async_stream import AsyncRecordStream
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
from .records.validators import ensure_dbid


class _GuardedAsyncRecordStream:
    """Async stream wrapper that refuses to yield once the client is closed."""

    def __init__(self, owner: "AsyncQuickBaseClient", delegate: AsyncRecordStream) -> None:
        self._owner = owner
        self._delegate = delegate

    @property
    def records_emitted(self) -> int:
        return self._delegate.records_emitted

    def cancel(self) -> None:
        self._delegate.cancel()

    async def aclose(self) -> None:
        await self._delegate.aclose()

    def __aiter__(self) -> AsyncIterator[Record]:
        return self

    async def __anext__(self) -> Record:
        self._owner._ensure_open()
        return await self._delegate.__anext__()

    async def __aenter__(self) -> "_GuardedAsyncRecordStream":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        await self.aclose()
        return False


class _GuardedAsyncRecordService:
    """Guard wrapper to block usage after async client close."""

    def __init__(self, owner: "AsyncQuickBaseClient", delegate: AsyncRecordService) -> None:
        self._owner = owner
        self._delegate = delegate

    async def do_query(self, credential: Credential, query: RecordQuery) -> list[LabelRecord]:
        self._owner._ensure_open()
        return await self._delegate.do_query(credential, query)

    async def do_structured_query(
        self,
        credential: Credential,
        query: RecordQuery,
    ) -> list[StructuredRecord]:
        self._owner._ensure_open()
        return await self._delegate.do_structured_query(credential, query)

    async def query_stream(
        self,
        credential: Credential,
        query: RecordQuery,
    ) -> _GuardedAsyncRecordStream:
        self._owner._ensure_open()
        stream = await self._delegate.query_stream(credential, query)
        self._owner._track(stream)
        return _GuardedAsyncRecordStream(self._owner, stream)

    async def do_query_count(
        self,
        credential: Credential,
        table_id: str,
        query: str | None = None,
    ) -> int:
        self._owner._ensure_open()
        return await self._delegate.do_query_count(credential, table_id, query)

    async def add_record(
        self,
        credential: Credential,
        table_id: str,
        fields: Mapping[str, str],
    ) -> int:
        self._owner._ensure_open()
        return await self._delegate.add_record(credential, table_id, fields)

    async def edit_record(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        fields: Mapping[str, str],
    ) -> None:
        self._owner._ensure_open()
        await self._delegate.edit_record(credential, table_id, rid, fields)

    async def delete_record(self, credential: Credential, table_id: str, rid: int) -> None:
        self._owner._ensure_open()
        await self._delegate.delete_record(credential, table_id, rid)

    async def change_record_owner(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        owner: str,
    ) -> None:
        self._owner._ensure_open()
        await self._delegate.change_record_owner(credential, table_id, rid, owner)

    async def user_roles(self, credential: Credential, app_id: str) -> list[User]:
        self._owner._ensure_open()
        return await self._delegate.user_roles(credential, app_id)

    async def upload_file(
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
        await self._delegate.upload_file(
            credential, table_id, rid, fid, filename, source, chunk_size=chunk_size
        )

    async def download_file(
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
        return await self._delegate.download_file(
            credential, table_id, rid, fid, dest, version=version
        )

    def iter_results_csv(
        self,
        credential: Credential,
        table_id: str,
        columns: Iterable[int],
        query: str | None = None,
    ) -> AsyncIterator[bytes]:
        self._owner._ensure_open()
        return self._iter_results_csv_guarded(
            self._delegate.iter_results_csv(credential, table_id, columns, query)
        )

    async def _iter_results_csv_guarded(
        self,
        iterator: AsyncIterator[bytes],
    ) -> AsyncIterator[bytes]:
        try:
            while True:
                self._owner._ensure_open()
                try:
                    chunk = await anext(iterator)
                except StopAsyncIteration:
                    return
                yield chunk
        finally:
            await iterator.aclose()  # type: ignore[attr-defined]

    async def import_from_csv(
        self,
        credential: Credential,
        table_id: str,
        columns: Iterable[int],
        records_csv: str,
        *,
        skip_first: bool = False,
    ) -> CsvImportResult:
        self._owner._ensure_open()
        return await self._delegate.import_from_csv(
            credential, table_id, columns, records_csv, skip_first=skip_first
        )


class AsyncQuickBaseClient:
    """Public async QuickBase API client."""

    def __init__(
        self,
        *,
        config: QuickBaseClientConfig | None = None,
        transport: AsyncTransport | None = None,
        record_service: AsyncRecordService | None = None,
    ) -> None:
        self._config = config or QuickBaseClientConfig()
        validate_client_config(self._config)

        self._transport = transport or AsyncTransport(self._config)
        self._closed = False
        self._streams: list[AsyncRecordStream] = []
        self.records = _GuardedAsyncRecordService(
            self,
            record_service or AsyncRecordService(self._transport),
        )

    async def authenticate(
        self,
        username: str,
        password: str,
        *,
        app_token: str | None = None,
        base_url: str | None = None,
    ) -> Credential:
        self._ensure_open()
        ensure_login(username, password)
        resolved_base_url = base_url or self._config.base_url
        tree = await self._transport.call(
            resolve_main_url(self._config, resolved_base_url),
            "API_Authenticate",
            build_authenticate_params(username, password),
        )
        credential = parse_credential(tree, base_url=resolved_base_url)
        return credential.with_app_token(app_token) if app_token else credential

    async def get_app_dtm_info(self, app_id: str, *, base_url: str | None = None) -> AppDTMInfo:
        self._ensure_open()
        tree = await self._transport.call(
            resolve_main_url(self._config, base_url),
            "API_GetAppDTMInfo",
            build_app_dtm_params(ensure_dbid(app_id, name="app_id")),
        )
        return parse_app_dtm_info(tree)

    def _track(self, stream: AsyncRecordStream) -> None:
        self._streams = [item for item in self._streams if not item.released]
        self._streams.append(stream)

    def _ensure_open(self) -> None:
        if self._closed:
            raise QuickBaseClientClosedError("AsyncQuickBaseClient is already closed")

    async def close(self) -> None:
        if self._closed:
            return
        for stream in self._streams:
            await stream.aclose()
        self._streams = []
        await self._transport.close()
        self._closed = True

    async def __aenter__(self) -> "AsyncQuickBaseClient":
        self._ensure_open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        await self.close()
        return False


__all__ = [
    "AsyncQuickBaseClient",
]
