"""Shared helpers for sync/async client bootstrap."""

from __future__ import annotations

from .config import QuickBaseClientConfig
from .core.errors import QuickBaseValidationError
from .core.transport_shared import build_db_url

MAIN_DBID = "main"


def validate_client_config(config: QuickBaseClientConfig) -> None:
    try:
        config.validate()
    except ValueError as exc:
        raise QuickBaseValidationError(str(exc)) from exc


def resolve_main_url(config: QuickBaseClientConfig, base_url: str | None = None) -> str:
    return build_db_url(base_url or config.base_url, MAIN_DBID)


def ensure_login(username: str, password: str) -> None:
    if not isinstance(username, str) or username.strip() == "":
        raise QuickBaseValidationError("username is required")
    if not isinstance(password, str) or password == "":
        raise QuickBaseValidationError("password is required")


__all__ = [
    "MAIN_DBID",
    "validate_client_config",
    "resolve_main_url",
    "ensure_login",
]
