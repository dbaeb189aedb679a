"""Composer-style version normalization, stability parsing and comparison.

Normalized versions are the canonical 4-component form that Packagist ships as
``version_normalized`` ("1.2.0" -> "1.2.0.0", "2.0-beta2" -> "2.0.0.0-beta2",
"1.x-dev" -> "1.9999999.9999999.9999999-dev", "dev-main" -> "dev-main").
"""

import re
from typing import Optional, Tuple

from common.errors import ValidationError
from .models import ParsedVersion, Stability

_MODIFIER = r"[._-]?(?:(stable|beta|b|RC|alpha|a|patch|pl|p)((?:[.-]?\d+)*))?([.-]?dev)?"
_CLASSICAL = re.compile(r"^v?(\d{1,5})(\.\d+)?(\.\d+)?(\.\d+)?" + _MODIFIER + r"$", re.IGNORECASE)
_DATE_BASED = re.compile(r"^v?(\d{4}(?:[.:-]?\d{2}){1,6}(?:[.:-]?\d{1,3})?)" + _MODIFIER + r"$", re.IGNORECASE)
_BRANCH_NUMERIC = re.compile(r"^v?(\d+)(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?$")
_STABILITY_SUFFIX = re.compile(_MODIFIER + r"(?:\+.*)?$", re.IGNORECASE)
_NORMALIZED = re.compile(r"^(\d+(?:\.\d+)*)(?:-([A-Za-z]+)[.-]?(\d*))?$")
_BRANCH = re.compile(r"^dev-|-dev$")

WILDCARD = "9999999"


def is_branch(number: str) -> bool:
    """True for development branches ("dev-main", "2.x-dev")."""
    return _BRANCH.search(number) is not None


def _expand_stability(stability: str) -> str:
    stability = stability.lower()
    if stability in ("a", "alpha"):
        return "alpha"
    if stability in ("b", "beta"):
        return "beta"
    if stability in ("p", "pl", "patch"):
        return "patch"
    if stability == "rc":
        return "RC"
    return stability


def _modifier_suffix(stability: Optional[str], counter: Optional[str], dev: Optional[str]) -> str:
    suffix = ""
    if stability and stability.lower() != "stable":
        suffix = "-" + _expand_stability(stability) + (counter.lstrip(".-") if counter else "")
    if dev:
        suffix += "-dev"
    return suffix


def normalize_branch(name: str) -> str:
    """Normalize a branch name (without its "-dev" suffix)."""
    name = name.strip()
    m = _BRANCH_NUMERIC.match(name)
    if m:
        parts = []
        for index in range(1, 5):
            group = m.group(index)
            parts.append(group.lstrip(".").replace("*", "x").replace("X", "x") if group else "x")
        return ".".join(WILDCARD if p == "x" else p for p in parts) + "-dev"
    return "dev-" + name


def normalize(version: str) -> str:
    """Return the Composer normalized form of a version string.

    Raises:
        ValidationError: when version is not a recognizable version or branch.
    """
    original = version
    version = version.strip()
    if " as " in version:
        version = version.split(" as ", 1)[0].strip()
    version = re.sub(r"\+[^\s]*$", "", version)
    if not version:
        raise ValidationError(f'Invalid version string "{original}"')

    if re.match(r"^(?:dev-)?(?:master|trunk|default)$", version, re.IGNORECASE):
        return "dev-" + re.sub(r"^dev-", "", version, flags=re.IGNORECASE)
    if version.lower().startswith("dev-"):
        return "dev-" + version[4:]

    m = _CLASSICAL.match(version)
    if m:
        numbers = [m.group(1)] + [(m.group(i) or ".0").lstrip(".") for i in range(2, 5)]
        normalized = ".".join(str(int(n)) for n in numbers)
        return normalized + _modifier_suffix(m.group(5), m.group(6), m.group(7))

    m = _DATE_BASED.match(version)
    if m:
        normalized = re.sub(r"\D", ".", m.group(1))
        return normalized + _modifier_suffix(m.group(2), m.group(3), m.group(4))

    m = re.match(r"^(.+?)[.-]?dev$", version, re.IGNORECASE)
    if m:
        return normalize_branch(m.group(1))

    raise ValidationError(f'Invalid version string "{original}"')


def parse_stability(version: str) -> Stability:
    """Return the stability of a (raw or normalized) version."""
    version = re.sub(r"#.+$", "", version.strip())
    if version.startswith("dev-") or version.endswith("-dev"):
        return Stability.DEV
    m = _STABILITY_SUFFIX.search(version.lower())
    if m is None:
        return Stability.STABLE
    if m.group(3):
        return Stability.DEV
    modifier = (m.group(1) or "").lower()
    if modifier in ("beta", "b"):
        return Stability.BETA
    if modifier in ("alpha", "a"):
        return Stability.ALPHA
    if modifier == "rc":
        return Stability.RC
    return Stability.STABLE


def parse_normalized(normalized: str) -> ParsedVersion:
    """Split a normalized numeric version into comparable parts.

    Raises:
        ValidationError: for branch names and malformed strings.
    """
    m = _NORMALIZED.match(normalized.strip())
    if m is None:
        raise ValidationError(f'Not a comparable version "{normalized}"')
    digits = [int(n) for n in m.group(1).split(".")][:4]
    digits += [0] * (4 - len(digits))
    modifier = _expand_stability(m.group(2)) if m.group(2) else ""
    counter = int(m.group(3)) if m.group(3) else 0
    numbers: Tuple[int, int, int, int] = (digits[0], digits[1], digits[2], digits[3])
    return ParsedVersion(numbers=numbers, modifier=modifier, modifier_number=counter)


def compare(left: str, right: str) -> int:
    """Compare two normalized versions; returns -1, 0 or 1."""
    a = parse_normalized(left).sort_key()
    b = parse_normalized(right).sort_key()
    return (a > b) - (a < b)


def greater_than(left: str, right: str) -> bool:
    return compare(left, right) > 0
