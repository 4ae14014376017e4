"""Argument validation for record operations."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from ..core.errors import QuickBaseValidationError

_DBID = re.compile(r"^[A-Za-z0-9_]+$")


def ensure_dbid(value: str | None, *, name: str = "table_id") -> str:
    if not isinstance(value, str):
        raise QuickBaseValidationError(f"{name} is required")
    text = value.strip()
    if text == "":
        raise QuickBaseValidationError(f"{name} is required")
    if not _DBID.match(text):
        raise QuickBaseValidationError(f"{name} contains forbidden characters")
    return text


def ensure_positive_id(value: int, *, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise QuickBaseValidationError(f"{name} must be int")
    if value <= 0:
        raise QuickBaseValidationError(f"{name} must be > 0")
    return value


def ensure_columns(columns: Iterable[int]) -> tuple[int, ...]:
    normalized = tuple(columns)
    if not normalized:
        raise QuickBaseValidationError("columns must not be empty")
    for column in normalized:
        ensure_positive_id(column, name="column")
    return normalized


def ensure_field_labels(fields: Mapping[str, str]) -> Mapping[str, str]:
    for label, value in fields.items():
        if not isinstance(label, str) or label.strip() == "":
            raise QuickBaseValidationError("field labels must be non-empty str")
        if not isinstance(value, str):
            raise QuickBaseValidationError(f"value for field {label!r} must be str")
    return fields


__all__ = [
    "ensure_dbid",
    "ensure_positive_id",
    "ensure_columns",
    "ensure_field_labels",
]
