"""Named QuickBase ``errcode`` values used by this client."""

from __future__ import annotations

SUCCESS = 0
UNKNOWN_ERROR = 1
INVALID_INPUT = 2
INSUFFICIENT_PERMISSIONS = 3
BAD_TICKET = 4
XML_PARSE_FAILURE = 11
INVALID_CREDENTIALS = 20
UNKNOWN_USER = 21
SIGN_IN_REQUIRED = 22
INVALID_APP_TOKEN = 24
NO_SUCH_RECORD = 30
NO_SUCH_FIELD = 31
NO_SUCH_DATABASE = 32
MISSING_REQUIRED_VALUE = 50
NON_UNIQUE_VALUE = 51
REQUEST_TOO_LARGE = 75

#: Codes meaning the ticket or app token must be renewed before retrying.
AUTHENTICATION_CODES = frozenset(
    {BAD_TICKET, INVALID_CREDENTIALS, SIGN_IN_REQUIRED, INVALID_APP_TOKEN}
)


def is_authentication_error(code: int) -> bool:
    return code in AUTHENTICATION_CODES


__all__ = [
    "SUCCESS",
    "UNKNOWN_ERROR",
    "INVALID_INPUT",
    "INSUFFICIENT_PERMISSIONS",
    "BAD_TICKET",
    "XML_PARSE_FAILURE",
    "INVALID_CREDENTIALS",
    "UNKNOWN_USER",
    "SIGN_IN_REQUIRED",
    "INVALID_APP_TOKEN",
    "NO_SUCH_RECORD",
    "NO_SUCH_FIELD",
    "NO_SUCH_DATABASE",
    "MISSING_REQUIRED_VALUE",
    "NON_UNIQUE_VALUE",
    "REQUEST_TOO_LARGE",
    "AUTHENTICATION_CODES",
    "is_authentication_error",
]
