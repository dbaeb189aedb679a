"""Copy-on-write base for domain records.

Records are frozen dataclasses. ``_with(**fields)`` returns ``self`` when every
value is unchanged; otherwise a copy with the changed fields merged into
``changes``, ``dirty`` set and a fresh ``updated_at``. Repositories only write
dirty records and hand back clean copies.
"""
from __future__ import annotations

from dataclasses import fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, TypeVar

E = TypeVar("E", bound="Entity")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class Entity:
    """Mixin for frozen dataclass records carrying ``changes``/``dirty``."""

    changes: Dict[str, Any]
    dirty: bool
    updated_at: Optional[datetime]

    def _with(self: E, **values: Any) -> E:
        changed = {k: v for k, v in values.items() if getattr(self, k) != v}
        if not changed:
            return self
        return replace(
            self,
            changes={**self.changes, **changed},
            dirty=True,
            updated_at=utcnow(),
            **changed,
        )

    def is_dirty(self) -> bool:
        return self.dirty

    def clean(self: E) -> E:
        """Copy with an empty change-set, as returned after persistence."""
        if not self.dirty and not self.changes:
            return self
        return replace(self, changes={}, dirty=False)

    def to_dict(self) -> Dict[str, Any]:
        """Scalar wire form (no change-set)."""
        return {
            f.name: _encode(getattr(self, f.name))
            for f in fields(self)  # type: ignore[arg-type]
            if f.name not in ("changes", "dirty")
        }
