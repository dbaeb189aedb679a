"""Composer version parsing and constraint evaluation."""

from .constraint import SELF_VERSION, satisfies  # noqa: F401
from .parser import compare, is_branch, normalize, parse_stability  # noqa: F401
