"""Core session and status models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(slots=True, frozen=True)
class Credential:
    """Authentication ticket returned by ``API_Authenticate``.

    Passed by value into every record operation. Expiry is enforced by the
    service and surfaces as a :class:`~.errors.QuickBaseApiError`.
    """

    ticket: str = field(repr=False)
    user_id: str
    base_url: str
    app_token: str | None = field(default=None, repr=False)

    def with_app_token(self, app_token: str | None) -> "Credential":
        return replace(self, app_token=app_token)


@dataclass(slots=True, frozen=True)
class ApiStatus:
    code: int
    text: str

    @property
    def ok(self) -> bool:
        return self.code == 0


__all__ = [
    "Credential",
    "ApiStatus",
]
