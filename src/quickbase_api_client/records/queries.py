"""Query models."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace


def _join_field_ids(value: str | Sequence[int] | None, *, name: str) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if not isinstance(value, Sequence):
        raise TypeError(f"{name} must be str or Sequence[int]")
    parts: list[str] = []
    for fid in value:
        if isinstance(fid, bool) or not isinstance(fid, int):
            raise TypeError(f"{name} entries must be int")
        parts.append(str(fid))
    return ".".join(parts)


@dataclass(slots=True, frozen=True)
class RecordQuery:
    """Arguments of one ``API_DoQuery`` call.

    ``clist`` and ``slist`` accept either the period-delimited wire form
    (``"3.6"``) or a sequence of field ids. ``structured`` switches the
    response to ``fmt=structured`` and keys records by field id.
    """

    table_id: str
    query: str | None = None
    clist: str | Sequence[int] | None = None
    slist: str | Sequence[int] | None = None
    options: str | None = None
    structured: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "clist", _join_field_ids(self.clist, name="clist"))
        object.__setattr__(self, "slist", _join_field_ids(self.slist, name="slist"))
        if not isinstance(self.structured, bool):
            raise TypeError("structured must be bool")

    def with_structured(self, structured: bool = True) -> "RecordQuery":
        return replace(self, structured=structured)


__all__ = [
    "RecordQuery",
]
