"""Error types and status mapping."""

from __future__ import annotations

from .error_codes import is_authentication_error


class QuickBaseError(Exception):
    """Base exception for this package."""

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        cause: str | None = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status
        self.cause = cause


class QuickBaseTransportError(QuickBaseError):
    """Network/transport-level failure."""


class QuickBaseParseError(QuickBaseError):
    """Response body is not well-formed XML."""


class QuickBaseProtocolError(QuickBaseError):
    """Response envelope does not have the expected shape."""


class QuickBaseClientClosedError(QuickBaseError):
    """Raised when client is used after close."""


class QuickBaseValidationError(QuickBaseError):
    """Invalid input / configuration rejected before any request."""


class QuickBaseApiError(QuickBaseError):
    """Non-zero ``errcode`` reported by the service."""

    def __init__(
        self,
        code: int,
        text: str,
        *,
        action: str | None = None,
        http_status: int | None = None,
    ) -> None:
        message = text or f"QuickBase error {code}"
        super().__init__(message, http_status=http_status, cause="api")
        self.code = code
        self.text = text
        self.action = action

    @property
    def is_authentication_failure(self) -> bool:
        return is_authentication_error(self.code)


class QuickBasePartialStreamError(QuickBaseError):
    """Raised when a record stream fails after records started flowing.

    ``records_emitted`` counts records decoded before the failure; the
    underlying error is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        records_emitted: int,
        cause: str,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message, http_status=http_status, cause=cause)
        self.records_emitted = records_emitted


def classify_status(
    code: int,
    text: str,
    *,
    action: str | None = None,
    http_status: int | None = None,
) -> QuickBaseApiError | None:
    """Map an errcode/errtext pair to a domain exception."""

    if code == 0:
        return None
    return QuickBaseApiError(code, text, action=action, http_status=http_status)


def describe_cause(exc: BaseException) -> str:
    if isinstance(exc, QuickBaseApiError):
        return "api"
    if isinstance(exc, QuickBaseParseError):
        return "parse"
    if isinstance(exc, QuickBaseProtocolError):
        return "protocol"
    if isinstance(exc, QuickBaseTransportError):
        return "network"
    return exc.__class__.__name__


__all__ = [
    "QuickBaseError",
    "QuickBaseTransportError",
    "QuickBaseParseError",
    "QuickBaseProtocolError",
    "QuickBaseClientClosedError",
    "QuickBaseValidationError",
    "QuickBaseApiError",
    "QuickBasePartialStreamError",
    "classify_status",
    "describe_cause",
]
