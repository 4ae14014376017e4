"""Record service package."""

from .async_stream import AsyncRecordStream
from .models import (
    AppDTMInfo,
    CsvImportResult,
    LabelRecord,
    Record,
    SchemaModification,
    StructuredRecord,
    User,
)
from .queries import RecordQuery
from .stream import RecordStream

__all__ = [
    "RecordQuery",
    "Record",
    "LabelRecord",
    "StructuredRecord",
    "RecordStream",
    "AsyncRecordStream",
    "User",
    "SchemaModification",
    "AppDTMInfo",
    "CsvImportResult",
]
