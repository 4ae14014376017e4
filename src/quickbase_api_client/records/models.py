"""Record-domain result models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

LabelRecord = dict[str, str]
StructuredRecord = dict[int, str]
Record = LabelRecord | StructuredRecord


@dataclass(slots=True, frozen=True)
class User:
    id: str
    name: str


@dataclass(slots=True, frozen=True)
class SchemaModification:
    dbid: str
    schema_modified: datetime
    record_modified: datetime


@dataclass(slots=True, frozen=True)
class AppDTMInfo:
    request_time: datetime
    next_allowed_time: datetime
    app: SchemaModification
    tables: tuple[SchemaModification, ...] | list[SchemaModification] = ()

    def __post_init__(self) -> None:
        if isinstance(self.tables, tuple):
            return
        object.__setattr__(self, "tables", tuple(self.tables))


@dataclass(slots=True, frozen=True)
class CsvImportResult:
    num_input: int
    num_added: int
    num_updated: int
    rids: tuple[int, ...] | list[int] = ()

    def __post_init__(self) -> None:
        if isinstance(self.rids, tuple):
            return
        object.__setattr__(self, "rids", tuple(self.rids))


__all__ = [
    "LabelRecord",
    "StructuredRecord",
    "Record",
    "User",
    "SchemaModification",
    "AppDTMInfo",
    "CsvImportResult",
]
