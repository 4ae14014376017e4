"""Public package exports for QuickBase API client."""

from .async_client import AsyncQuickBaseClient
from .client import QuickBaseClient
from .config import QuickBaseClientConfig
from .core.errors import (
    QuickBaseApiError,
    QuickBaseClientClosedError,
    QuickBaseError,
    QuickBaseParseError,
    QuickBasePartialStreamError,
    QuickBaseProtocolError,
    QuickBaseTransportError,
    QuickBaseValidationError,
)
from .core.models import Credential
from .records.queries import RecordQuery

__all__ = [
    "QuickBaseClient",
    "AsyncQuickBaseClient",
    "QuickBaseClientConfig",
    "Credential",
    "RecordQuery",
    "QuickBaseError",
    "QuickBaseTransportError",
    "QuickBaseParseError",
    "QuickBaseProtocolError",
    "QuickBaseApiError",
    "QuickBasePartialStreamError",
    "QuickBaseClientClosedError",
    "QuickBaseValidationError",
]
