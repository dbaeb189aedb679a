"""Data models for version parsing and comparison."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class Stability(Enum):
    """Composer stability levels, lowest first."""
    DEV = "dev"
    ALPHA = "alpha"
    BETA = "beta"
    RC = "RC"
    STABLE = "stable"

    @property
    def rank(self) -> int:
        return _STABILITY_RANK[self]


_STABILITY_RANK = {
    Stability.DEV: 0,
    Stability.ALPHA: 1,
    Stability.BETA: 2,
    Stability.RC: 3,
    Stability.STABLE: 4,
}


@dataclass(frozen=True)
class ParsedVersion:
    """Normalized numeric version split into comparable parts.

    ``modifier`` is the expanded stability suffix ("alpha", "beta", "RC",
    "patch", "dev" or "" for a plain release); ``modifier_number`` is the
    trailing counter of "beta2"-style suffixes.
    """
    numbers: Tuple[int, int, int, int]
    modifier: str
    modifier_number: int

    def sort_key(self) -> Tuple:
        return (self.numbers, _MODIFIER_RANK.get(self.modifier, 4), self.modifier_number)


# Pre-releases sort below the plain release, patch releases above it.
_MODIFIER_RANK = {
    "dev": 0,
    "alpha": 1,
    "beta": 2,
    "RC": 3,
    "": 4,
    "patch": 5,
}
