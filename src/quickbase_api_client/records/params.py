"""Request parameter builders for QuickBase actions."""

from __future__ import annotations

import asyncio
import base64
from collections.abc import AsyncIterator, Iterable, Iterator, Mapping
from typing import BinaryIO
from xml.sax.saxutils import quoteattr

from ..core.models import Credential
from ..core.wire import ENVELOPE_TAG, XML_DECLARATION, encode_element
from .queries import RecordQuery
from .validators import ensure_columns, ensure_field_labels, ensure_positive_id

FIELD_NAME_PREFIX = "_fnm_"
DEFAULT_UPLOAD_CHUNK_SIZE = 3 * 16 * 1024


def build_credential_params(credential: Credential) -> dict[str, str]:
    params: dict[str, str] = {"ticket": credential.ticket}
    if credential.app_token:
        params["apptoken"] = credential.app_token
    return params


def build_authenticate_params(username: str, password: str) -> dict[str, str]:
    return {"username": username, "password": password}


def build_app_dtm_params(app_id: str) -> dict[str, str]:
    return {"dbid": app_id}


def build_query_params(credential: Credential, query: RecordQuery) -> dict[str, str]:
    params = build_credential_params(credential)
    if query.structured:
        params["fmt"] = "structured"
    if query.query:
        params["query"] = query.query
    if query.clist:
        params["clist"] = query.clist
    if query.slist:
        params["slist"] = query.slist
    if query.options:
        params["options"] = query.options
    return params


def build_query_count_params(credential: Credential, query: str | None) -> dict[str, str]:
    params = build_credential_params(credential)
    if query:
        params["query"] = query
    return params


def build_field_params(credential: Credential, fields: Mapping[str, str]) -> dict[str, str]:
    params = build_credential_params(credential)
    for label, value in ensure_field_labels(fields).items():
        params[FIELD_NAME_PREFIX + label] = value
    return params


def build_edit_params(
    credential: Credential,
    rid: int,
    fields: Mapping[str, str],
) -> dict[str, str]:
    params = build_field_params(credential, fields)
    params["rid"] = str(ensure_positive_id(rid, name="rid"))
    return params


def build_delete_params(credential: Credential, rid: int) -> dict[str, str]:
    params = build_credential_params(credential)
    params["rid"] = str(ensure_positive_id(rid, name="rid"))
    return params


def build_change_owner_params(credential: Credential, rid: int, owner: str) -> dict[str, str]:
    params = build_delete_params(credential, rid)
    params["newowner"] = owner
    return params


def join_columns(columns: Iterable[int]) -> str:
    return ".".join(str(column) for column in ensure_columns(columns))


def build_results_table_params(
    credential: Credential,
    columns: Iterable[int],
    query: str | None,
) -> dict[str, str]:
    params = build_credential_params(credential)
    params["clist"] = join_columns(columns)
    params["options"] = "csv"
    params["slist"] = "3"
    if query:
        params["query"] = query
    return params


def build_import_csv_params(
    credential: Credential,
    columns: Iterable[int],
    records_csv: str,
    *,
    skip_first: bool,
) -> dict[str, str]:
    params = build_credential_params(credential)
    params["clist"] = join_columns(columns)
    if skip_first:
        params["skipfirst"] = "1"
    params["records_csv"] = records_csv
    return params


def build_download_params(credential: Credential) -> dict[str, str]:
    return build_credential_params(credential)


def _upload_prefix(credential: Credential, rid: int, fid: int, filename: str) -> bytes:
    head = [XML_DECLARATION, f"<{ENVELOPE_TAG}>".encode("ascii")]
    for name, value in build_delete_params(credential, rid).items():
        head.append(encode_element(name, value))
    fid = ensure_positive_id(fid, name="fid")
    head.append(f"<field fid={quoteattr(str(fid))} filename={quoteattr(filename)}>".encode("utf-8"))
    return b"".join(head)


def _upload_suffix() -> bytes:
    return f"</field></{ENVELOPE_TAG}>".encode("ascii")


def _encode_block(pending: bytes) -> tuple[bytes, bytes]:
    usable = len(pending) - len(pending) % 3
    return base64.b64encode(pending[:usable]), pending[usable:]


def iter_upload_chunks(
    credential: Credential,
    rid: int,
    fid: int,
    filename: str,
    source: BinaryIO | bytes,
    *,
    chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE,
) -> Iterator[bytes]:
    """Yield an ``API_EditRecord`` body with the file base64-encoded in chunks."""

    yield _upload_prefix(credential, rid, fid, filename)
    if isinstance(source, (bytes, bytearray, memoryview)):
        yield base64.b64encode(bytes(source))
    else:
        pending = b""
        while True:
            block = source.read(chunk_size)
            if not block:
                break
            encoded, pending = _encode_block(pending + block)
            if encoded:
                yield encoded
        if pending:
            yield base64.b64encode(pending)
    yield _upload_suffix()


async def aiter_upload_chunks(
    credential: Credential,
    rid: int,
    fid: int,
    filename: str,
    source: BinaryIO | bytes,
    *,
    chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    yield _upload_prefix(credential, rid, fid, filename)
    if isinstance(source, (bytes, bytearray, memoryview)):
        yield base64.b64encode(bytes(source))
    else:
        pending = b""
        while True:
            block = await asyncio.to_thread(source.read, chunk_size)
            if not block:
                break
            encoded, pending = _encode_block(pending + block)
            if encoded:
                yield encoded
        if pending:
            yield base64.b64encode(pending)
    yield _upload_suffix()


__all__ = [
    "FIELD_NAME_PREFIX",
    "DEFAULT_UPLOAD_CHUNK_SIZE",
    "build_credential_params",
    "build_authenticate_params",
    "build_app_dtm_params",
    "build_query_params",
    "build_query_count_params",
    "build_field_params",
    "build_edit_params",
    "build_delete_params",
    "build_change_owner_params",
    "join_columns",
    "build_results_table_params",
    "build_import_csv_params",
    "build_download_params",
    "iter_upload_chunks",
    "aiter_upload_chunks",
]
