"""Parsers from decoded QuickBase responses into typed results."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

from ..core.errors import QuickBaseProtocolError
from ..core.models import Credential
from ..core.wire import node_text
from .models import (
    AppDTMInfo,
    CsvImportResult,
    LabelRecord,
    SchemaModification,
    StructuredRecord,
    User,
)

LINE_BREAK_TAG = "BR"
RECORD_TAG = "record"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def is_line_break(tag: str) -> bool:
    return tag.upper() == LINE_BREAK_TAG


def _required_text(tree: ET.Element, name: str) -> str:
    value = node_text(tree, name)
    if value is None:
        raise QuickBaseProtocolError(f"{name} is missing from response")
    return value.strip()


def _to_int(value: str, *, name: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise QuickBaseProtocolError(f"{name} is not an integer: {value!r}") from exc


def millis_to_datetime(value: str, *, name: str) -> datetime:
    return _EPOCH + timedelta(milliseconds=_to_int(value, name=name))


def field_value(field: ET.Element) -> str:
    """Concatenate a field's text, rendering each ``BR`` element as ``\\r``."""

    parts = [field.text or ""]
    for child in field:
        if not is_line_break(child.tag):
            raise QuickBaseProtocolError(
                f"cannot handle tag {child.tag} within value for field {field.tag}"
            )
        parts.append("\r")
        parts.append(child.tail or "")
    return "".join(parts)


def parse_credential(tree: ET.Element, *, base_url: str) -> Credential:
    return Credential(
        ticket=_required_text(tree, "ticket"),
        user_id=(node_text(tree, "userid") or "").strip(),
        base_url=base_url,
    )


def parse_label_records(tree: ET.Element) -> list[LabelRecord]:
    """Key each record by field label.

    Two fields whose labels sanitize to the same tag collide; the later one
    wins.
    """

    records: list[LabelRecord] = []
    for record in tree.findall(RECORD_TAG):
        records.append({field.tag: field_value(field) for field in record})
    return records


def parse_structured_records(tree: ET.Element) -> list[StructuredRecord]:
    records: list[StructuredRecord] = []
    for record in tree.iter(RECORD_TAG):
        values: StructuredRecord = {}
        for field in record:
            raw_id = field.get("id")
            if raw_id is None:
                continue
            values[_to_int(raw_id, name="field id")] = field_value(field)
        records.append(values)
    return records


def parse_count(tree: ET.Element) -> int:
    return _to_int(_required_text(tree, "numMatches"), name="numMatches")


def parse_rid(tree: ET.Element) -> int:
    return _to_int(_required_text(tree, "rid"), name="rid")


def parse_users(tree: ET.Element) -> list[User]:
    users: list[User] = []
    for node in tree.iter("user"):
        users.append(User(id=node.get("id", ""), name=node_text(node, "name") or ""))
    return users


def _parse_modification(node: ET.Element, *, kind: str) -> SchemaModification:
    dbid = node.get("id")
    if not dbid:
        raise QuickBaseProtocolError(f"missing dbid in {kind}")
    return SchemaModification(
        dbid=dbid,
        schema_modified=millis_to_datetime(
            _required_text(node, "lastModifiedTime"), name="lastModifiedTime"
        ),
        record_modified=millis_to_datetime(
            _required_text(node, "lastRecModTime"), name="lastRecModTime"
        ),
    )


def parse_app_dtm_info(tree: ET.Element) -> AppDTMInfo:
    app = tree.find("app")
    if app is None:
        raise QuickBaseProtocolError("no app returned")
    tables = tree.find("tables")
    if tables is None:
        raise QuickBaseProtocolError("no tables returned")
    return AppDTMInfo(
        request_time=millis_to_datetime(_required_text(tree, "RequestTime"), name="RequestTime"),
        next_allowed_time=millis_to_datetime(
            _required_text(tree, "RequestNextAllowedTime"), name="RequestNextAllowedTime"
        ),
        app=_parse_modification(app, kind="app"),
        tables=[_parse_modification(table, kind="table") for table in tables.findall("table")],
    )


def _optional_int(tree: ET.Element, name: str) -> int:
    value = node_text(tree, name)
    if value is None or value.strip() == "":
        return 0
    return _to_int(value, name=name)


def parse_import_result(tree: ET.Element) -> CsvImportResult:
    rids: list[int] = []
    rids_node = tree.find("rids")
    if rids_node is not None:
        rids = [_to_int(node.text or "", name="rid") for node in rids_node.findall("rid")]
    return CsvImportResult(
        num_input=_optional_int(tree, "num_recs_input"),
        num_added=_optional_int(tree, "num_recs_added"),
        num_updated=_optional_int(tree, "num_recs_updated"),
        rids=rids,
    )


__all__ = [
    "LINE_BREAK_TAG",
    "RECORD_TAG",
    "is_line_break",
    "millis_to_datetime",
    "field_value",
    "parse_credential",
    "parse_label_records",
    "parse_structured_records",
    "parse_count",
    "parse_rid",
    "parse_users",
    "parse_app_dtm_info",
    "parse_import_result",
]
