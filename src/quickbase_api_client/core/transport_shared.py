"""Shared helpers for sync/async transport implementations."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Mapping

import httpx

from ..config import QuickBaseClientConfig
from .errors import QuickBaseParseError, QuickBaseTransportError, classify_status
from .wire import decode_document, status_of

ACTION_HEADER = "QUICKBASE-ACTION"
XML_CONTENT_TYPE = "application/xml"


def build_default_headers(config: QuickBaseClientConfig) -> Mapping[str, str]:
    return {
        "Accept-Encoding": "gzip",
        "User-Agent": config.user_agent,
    }


def build_default_timeout(config: QuickBaseClientConfig) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.transport.timeout_connect_seconds,
        read=config.transport.timeout_read_seconds,
        write=config.transport.timeout_write_seconds,
        pool=config.transport.timeout_pool_seconds,
    )


def build_action_headers(action: str) -> dict[str, str]:
    return {
        ACTION_HEADER: action,
        "Content-Type": XML_CONTENT_TYPE,
    }


def build_db_url(base_url: str, dbid: str) -> str:
    return f"{base_url.rstrip('/')}/db/{dbid}"


def build_upload_url(base_url: str, dbid: str, rid: int, fid: int, version: int) -> str:
    return f"{base_url.rstrip('/')}/up/{dbid}/a/r{rid}/e{fid}/v{version}"


def is_xml_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("Content-Type", "")
    return "xml" in content_type.lower()


def wrap_network_error(exc: Exception, *, action: str) -> QuickBaseTransportError:
    return QuickBaseTransportError(
        f"network/transport error during {action}: {exc.__class__.__name__}",
        cause="network",
    )


def ensure_http_success(response: httpx.Response, *, action: str) -> None:
    if response.status_code >= 400:
        raise QuickBaseTransportError(
            f"HTTP {response.status_code} during {action}",
            http_status=response.status_code,
            cause="http_status",
        )


def evaluate_document(
    body: bytes,
    *,
    action: str,
    http_status: int | None,
) -> ET.Element:
    """Decode a buffered response and map a non-zero status to an error."""

    try:
        tree = decode_document(body)
    except QuickBaseParseError as exc:
        if http_status is not None and http_status >= 400:
            raise QuickBaseTransportError(
                f"HTTP {http_status} during {action}",
                http_status=http_status,
                cause="http_status",
            ) from exc
        exc.http_status = http_status
        raise
    status = status_of(tree)
    mapped_error = classify_status(
        status.code,
        status.text,
        action=action,
        http_status=http_status,
    )
    if mapped_error is not None:
        raise mapped_error
    return tree



__all__ = [
    "ACTION_HEADER",
    "XML_CONTENT_TYPE",
    "build_default_headers",
    "build_default_timeout",
    "build_action_headers",
    "build_db_url",
    "build_upload_url",
    "is_xml_response",
    "wrap_network_error",
    "ensure_http_success",
    "evaluate_document",
]
