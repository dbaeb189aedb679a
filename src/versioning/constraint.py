"""Composer constraint evaluation using semantic versioning.

Composer ranges are translated into the npm range grammar understood by
``semantic_version.NpmSpec``. The two grammars mostly agree; the differences
handled here are:

- ``~1.2`` means ``>=1.2.0 <2.0.0`` in Composer (npm would stop at 1.3.0);
- ``,`` is an AND separator and a single ``|`` is an OR separator;
- a bare ``1.2`` is an exact version (``=1.2.0``), not an x-range;
- ``!=`` / ``<>`` exclusions and ``@stability`` flags;
- branch constraints (``dev-main``, ``2.x-dev``) never match a tagged version.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

import semantic_version

from common.errors import ValidationError
from .parser import is_branch, normalize, parse_normalized

SELF_VERSION = "self.version"

_OR_SPLIT = re.compile(r"\s*\|\|?\s*")
_AND_SPLIT = re.compile(r"\s*,\s*|\s+")
_OP_SPACE = re.compile(r"(<=|>=|<>|!=|==|<|>|=|\^|~)\s+")
_HYPHEN = re.compile(r"^(\S+)\s+-\s+(\S+)$")
_TOKEN = re.compile(r"^(<=|>=|<>|!=|==|<|>|=|\^|~)?v?(.+)$", re.IGNORECASE)
_FLAG = re.compile(r"@(?:stable|rc|beta|alpha|dev)\b", re.IGNORECASE)
_VERSION = re.compile(
    r"^(\d+)(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?"
    r"(?:[._-]?(alpha|a|beta|b|rc|patch|pl|p)[.-]?(\d*))?$",
    re.IGNORECASE,
)
_WILDCARDS = ("x", "X", "*")


class _Unsatisfiable(Exception):
    """An AND-group that no tagged version can satisfy."""


@dataclass(frozen=True)
class _Partial:
    major: int
    minor: Optional[int]
    patch: Optional[int]
    prerelease: Optional[str]
    wildcard: bool

    def full(self) -> str:
        text = f"{self.major}.{self.minor or 0}.{self.patch or 0}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text


@dataclass(frozen=True)
class _Group:
    spec: semantic_version.NpmSpec
    excluded: Tuple[semantic_version.Version, ...]

    def matches(self, version: semantic_version.Version) -> bool:
        if version in self.excluded:
            return False
        return bool(self.spec.match(version))


def _prerelease(modifier: Optional[str], counter: Optional[str]) -> Optional[str]:
    if not modifier:
        return None
    modifier = modifier.lower()
    if modifier in ("patch", "pl", "p"):
        return None
    modifier = {"a": "alpha", "b": "beta"}.get(modifier, modifier)
    return f"{modifier}.{counter}" if counter else modifier


def _parse_partial(text: str) -> _Partial:
    m = _VERSION.match(text)
    if m is None:
        raise ValueError(f'Invalid version "{text}" in constraint')
    parts: List[Optional[int]] = []
    wildcard = False
    for index in (2, 3):
        group = m.group(index)
        if group is None or group in _WILDCARDS:
            wildcard = wildcard or group in _WILDCARDS
            parts.append(None)
        else:
            parts.append(int(group))
    if m.group(4) in _WILDCARDS:
        wildcard = True
    # "1.*.3" style constraints keep everything after the first wildcard open
    if parts[0] is None:
        parts[1] = None
    return _Partial(
        major=int(m.group(1)),
        minor=parts[0],
        patch=parts[1],
        prerelease=_prerelease(m.group(5), m.group(6)),
        wildcard=wildcard,
    )


def _x_range(partial: _Partial) -> str:
    if partial.minor is None:
        return f"{partial.major}.x"
    if partial.patch is None:
        return f"{partial.major}.{partial.minor}.x"
    return f"={partial.full()}"


def _tilde(partial: _Partial) -> str:
    lower = partial.full()
    if partial.minor is None or partial.patch is None:
        return f">={lower} <{partial.major + 1}.0.0"
    return f">={lower} <{partial.major}.{partial.minor + 1}.0"


def _translate_token(token: str, excluded: List[semantic_version.Version]) -> Optional[str]:
    """Return the npm comparator for a Composer token (None for exclusions)."""
    if token in ("*", "x", "X"):
        return "*"
    m = _TOKEN.match(token)
    if m is None:
        raise ValueError(f'Invalid constraint token "{token}"')
    op, text = m.group(1), m.group(2)
    if text.lower().startswith("dev-") or is_branch(text):
        raise _Unsatisfiable(token)
    partial = _parse_partial(text)

    if op is None:
        return _x_range(partial) if partial.wildcard else f"={partial.full()}"
    if op == "^":
        return f"^{partial.full() if partial.prerelease else _short(partial)}"
    if op == "~":
        return _tilde(partial)
    if op in ("!=", "<>"):
        excluded.append(semantic_version.Version(partial.full()))
        return None
    if op == "==":
        op = "="
    return f"{op}{partial.full()}"


def _short(partial: _Partial) -> str:
    if partial.minor is None:
        return f"{partial.major}"
    if partial.patch is None:
        return f"{partial.major}.{partial.minor}"
    return partial.full()


def _compile_group(text: str) -> _Group:
    hyphen = _HYPHEN.match(text)
    if hyphen:
        left = _parse_partial(hyphen.group(1).lstrip("vV"))
        right = _parse_partial(hyphen.group(2).lstrip("vV"))
        upper = f"<={right.full()}" if right.patch is not None else f"<{_next_partial(right)}"
        return _Group(spec=semantic_version.NpmSpec(f">={left.full()} {upper}"), excluded=())

    excluded: List[semantic_version.Version] = []
    comparators = []
    for token in _AND_SPLIT.split(_OP_SPACE.sub(r"\1", text)):
        if not token:
            continue
        comparator = _translate_token(token, excluded)
        if comparator is not None:
            comparators.append(comparator)
    spec_text = " ".join(comparators) or "*"
    return _Group(spec=semantic_version.NpmSpec(spec_text), excluded=tuple(excluded))


def _next_partial(partial: _Partial) -> str:
    if partial.minor is None:
        return f"{partial.major + 1}.0.0"
    return f"{partial.major}.{partial.minor + 1}.0"


@lru_cache(maxsize=4096)
def compile_constraint(constraint: str) -> Tuple[_Group, ...]:
    """Parse a Composer constraint into OR-ed groups.

    Raises:
        ValidationError: when the constraint cannot be parsed.
    """
    text = _FLAG.sub("", constraint).strip()
    if not text:
        raise ValidationError(f'Empty constraint "{constraint}"')
    groups = []
    for part in _OR_SPLIT.split(text):
        part = part.strip()
        if not part:
            continue
        try:
            groups.append(_compile_group(part))
        except _Unsatisfiable:
            continue
        except ValueError as exc:
            raise ValidationError(f'Invalid constraint "{constraint}": {exc}') from exc
    return tuple(groups)


def to_semver(version: str) -> semantic_version.Version:
    """Convert a tagged version ("v1.5", "1.5.0.0", "2.0-RC1") to a semver Version.

    Raises:
        ValidationError: for empty strings, branches and malformed versions.
    """
    if not version or not version.strip():
        raise ValidationError("Empty version cannot be evaluated")
    normalized = normalize(version)
    if is_branch(normalized):
        raise ValidationError(f'Branch "{version}" cannot be evaluated against a constraint')
    parsed = parse_normalized(normalized)
    major, minor, patch = parsed.numbers[:3]
    text = f"{major}.{minor}.{patch}"
    pre = _prerelease(parsed.modifier or None, str(parsed.modifier_number) if parsed.modifier_number else None)
    if pre:
        text += f"-{pre}"
    return semantic_version.Version(text)


def satisfies(installed_version: str, constraint: str) -> bool:
    """Does installed_version satisfy the Composer range constraint?

    Raises:
        ValidationError: for ``self.version`` (callers substitute the release
            tag first), empty or branch versions and unparseable constraints.
    """
    if constraint.strip() == SELF_VERSION:
        raise ValidationError('"self.version" must be substituted before evaluation')
    version = to_semver(installed_version)
    return any(group.matches(version) for group in compile_constraint(constraint))
