"""Wire codec for the ``<qdbapi>`` XML envelope."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections.abc import AsyncIterator, Iterator, Mapping
from xml.sax.saxutils import escape

from .errors import QuickBaseParseError, QuickBaseProtocolError, QuickBaseValidationError
from .models import ApiStatus

ENVELOPE_TAG = "qdbapi"
XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8"?>'

_XML_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")
# XML parsers fold a literal CR into LF, so send it as a character reference.
_TEXT_ENTITIES = {"\r": "&#13;"}


def _validate_name(name: str) -> str:
    if not isinstance(name, str) or not _XML_NAME.match(name) or name.lower().startswith("xml"):
        raise QuickBaseValidationError(f"invalid parameter name: {name!r}")
    return name


def encode_element(name: str, value: str) -> bytes:
    tag = _validate_name(name)
    text = str(value)
    if _XML_ILLEGAL.search(text):
        raise QuickBaseValidationError(f"value for {name!r} contains characters not allowed in XML")
    return f"<{tag}>{escape(text, _TEXT_ENTITIES)}</{tag}>".encode("utf-8")


def iter_envelope_chunks(params: Mapping[str, str]) -> Iterator[bytes]:
    """Yield the request envelope one parameter element at a time."""

    yield XML_DECLARATION
    yield f"<{ENVELOPE_TAG}>".encode("ascii")
    for name, value in params.items():
        yield encode_element(name, value)
    yield f"</{ENVELOPE_TAG}>".encode("ascii")


async def aiter_envelope_chunks(params: Mapping[str, str]) -> AsyncIterator[bytes]:
    for chunk in iter_envelope_chunks(params):
        yield chunk


def encode_params(params: Mapping[str, str]) -> bytes:
    return b"".join(iter_envelope_chunks(params))


def decode_document(body: bytes) -> ET.Element:
    """Parse a complete response body into an element tree."""

    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise QuickBaseParseError(f"response body is not well-formed XML: {exc}") from exc
    if root.tag != ENVELOPE_TAG:
        raise QuickBaseProtocolError(f"{ENVELOPE_TAG} expected; {root.tag} found")
    return root


def node_text(tree: ET.Element, name: str) -> str | None:
    node = tree.find(name)
    if node is None:
        return None
    return "".join(node.itertext())


def status_of(tree: ET.Element) -> ApiStatus:
    """Return the top-level ``errcode``/``errtext`` pair."""

    raw_code = node_text(tree, "errcode")
    if raw_code is None:
        raise QuickBaseProtocolError("errcode is missing from response")
    try:
        code = int(raw_code.strip())
    except ValueError as exc:
        raise QuickBaseProtocolError(f"errcode is not numeric: {raw_code!r}") from exc
    return ApiStatus(code=code, text=node_text(tree, "errtext") or "")


def decode_params(body: bytes) -> dict[str, str]:
    """Read a request envelope back into its parameter map."""

    root = decode_document(body)
    return {child.tag: child.text or "" for child in root}


__all__ = [
    "ENVELOPE_TAG",
    "XML_DECLARATION",
    "encode_element",
    "iter_envelope_chunks",
    "aiter_envelope_chunks",
    "encode_params",
    "decode_document",
    "decode_params",
    "node_text",
    "status_of",
]
