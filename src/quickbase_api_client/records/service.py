"""Record and table operations on top of the synchronous transport."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import BinaryIO

import httpx

from ..core.errors import QuickBaseProtocolError
from ..core.models import Credential
from ..core.transport import SyncTransport
from ..core.transport_shared import (
    build_db_url,
    build_upload_url,
    evaluate_document,
    is_xml_response,
    wrap_network_error,
)
from .models import CsvImportResult, LabelRecord, StructuredRecord, User
from .params import (
    DEFAULT_UPLOAD_CHUNK_SIZE,
    build_change_owner_params,
    build_credential_params,
    build_delete_params,
    build_download_params,
    build_edit_params,
    build_field_params,
    build_import_csv_params,
    build_query_count_params,
    build_query_params,
    build_results_table_params,
    iter_upload_chunks,
)
from .parser import (
    parse_count,
    parse_import_result,
    parse_label_records,
    parse_rid,
    parse_structured_records,
    parse_users,
)
from .queries import RecordQuery
from .stream import RecordStream, open_record_stream
from .validators import ensure_columns, ensure_dbid, ensure_positive_id

logger = logging.getLogger("quickbase_api_client")


class RecordService:
    """Record operations; each call is one request and keeps no state."""

    def __init__(self, transport: SyncTransport) -> None:
        self._transport = transport

    def _url(self, credential: Credential, table_id: str) -> str:
        return build_db_url(credential.base_url, ensure_dbid(table_id))

    def do_query(self, credential: Credential, query: RecordQuery) -> list[LabelRecord]:
        """Run ``API_DoQuery`` and key each record by field label.

        Fields whose labels sanitize to the same tag overwrite each other;
        use :meth:`do_structured_query` when that matters.
        """

        tree = self._transport.call(
            self._url(credential, query.table_id),
            "API_DoQuery",
            build_query_params(credential, query.with_structured(False)),
        )
        return parse_label_records(tree)

    def do_structured_query(
        self,
        credential: Credential,
        query: RecordQuery,
    ) -> list[StructuredRecord]:
        tree = self._transport.call(
            self._url(credential, query.table_id),
            "API_DoQuery",
            build_query_params(credential, query.with_structured(True)),
        )
        return parse_structured_records(tree)

    def query_stream(self, credential: Credential, query: RecordQuery) -> RecordStream:
        return open_record_stream(
            self._transport,
            self._url(credential, query.table_id),
            build_query_params(credential, query),
            structured=query.structured,
        )

    def do_query_count(
        self,
        credential: Credential,
        table_id: str,
        query: str | None = None,
    ) -> int:
        tree = self._transport.call(
            self._url(credential, table_id),
            "API_DoQueryCount",
            build_query_count_params(credential, query),
        )
        return parse_count(tree)

    def add_record(
        self,
        credential: Credential,
        table_id: str,
        fields: Mapping[str, str],
    ) -> int:
        tree = self._transport.call(
            self._url(credential, table_id),
            "API_AddRecord",
            build_field_params(credential, fields),
        )
        return parse_rid(tree)

    def edit_record(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        fields: Mapping[str, str],
    ) -> None:
        self._transport.call(
            self._url(credential, table_id),
            "API_EditRecord",
            build_edit_params(credential, rid, fields),
        )

    def delete_record(self, credential: Credential, table_id: str, rid: int) -> None:
        self._transport.call(
            self._url(credential, table_id),
            "API_DeleteRecord",
            build_delete_params(credential, rid),
        )

    def change_record_owner(
        self,
        credential: Credential,
        table_id: str,
        rid: int,
        owner: str,
    ) -> None:
        self._transport.call(
            self._url(credential, table_id),
            "API_ChangeRecordOwner",
            build_change_owner_params(credential, rid, owner),
        )

    def user_roles(self, credential: Credential, app_id: str) -> list[User]:
        tree = self._transport.call(
            build_db_url(credential.base_url, ensure_dbid(app_id, name="app_id")),
            "API_UserRoles",
            build_credential_params(credential),
        )
        return parse_users(tree)

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
        """Attach a file to one field of a record, streaming it base64-encoded."""

        url = self._url(credential, table_id)
        ensure_positive_id(rid, name="rid")
        ensure_positive_id(fid, name="fid")
        self._transport.post(
            url,
            "API_EditRecord",
            content=iter_upload_chunks(
                credential, rid, fid, filename, source, chunk_size=chunk_size
            ),
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
        """Write a file attachment into ``dest`` and return the byte count."""

        url = build_upload_url(
            credential.base_url,
            ensure_dbid(table_id),
            ensure_positive_id(rid, name="rid"),
            ensure_positive_id(fid, name="fid"),
            version,
        )
        response = self._transport.open_get_stream(url, build_download_params(credential))
        written = 0
        try:
            for chunk in response.iter_bytes():
                dest.write(chunk)
                written += len(chunk)
        except httpx.HTTPError as exc:
            raise wrap_network_error(exc, action="download") from exc
        finally:
            response.close()
        logger.info(
            "download complete table=%s rid=%s fid=%s bytes=%s",
            table_id,
            rid,
            fid,
            written,
        )
        return written

    def iter_results_csv(
        self,
        credential: Credential,
        table_id: str,
        columns: Iterable[int],
        query: str | None = None,
    ) -> Iterator[bytes]:
        """Yield the CSV body of ``API_GenResultsTable`` chunk by chunk.

        The request is sent when iteration starts.
        """

        url = self._url(credential, table_id)
        params = build_results_table_params(credential, ensure_columns(columns), query)
        return self._iter_results_csv(url, params)

    def _iter_results_csv(self, url: str, params: Mapping[str, str]) -> Iterator[bytes]:
        action = "API_GenResultsTable"
        response = self._transport.open_stream(url, action, params)
        try:
            if is_xml_response(response):
                body = response.read()
                evaluate_document(body, action=action, http_status=response.status_code)
                raise QuickBaseProtocolError(f"{action} returned XML instead of CSV")
            try:
                yield from response.iter_bytes()
            except httpx.HTTPError as exc:
                raise wrap_network_error(exc, action=action) from exc
        finally:
            response.close()

    def import_from_csv(
        self,
        credential: Credential,
        table_id: str,
        columns: Iterable[int],
        records_csv: str,
        *,
        skip_first: bool = False,
    ) -> CsvImportResult:
        tree = self._transport.call(
            self._url(credential, table_id),
            "API_ImportFromCSV",
            build_import_csv_params(credential, columns, records_csv, skip_first=skip_first),
        )
        return parse_import_result(tree)


__all__ = [
    "RecordService",
]
