"""Expansion of Composer 2 minified metadata (``"minified": "composer/2.0"``).

Each release record only lists the keys that differ from the record before it;
the marker ``__unset`` removes a key inherited from the previous record.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, List

MINIFIED_FORMAT = "composer/2.0"
UNSET = "__unset"


def expand(versions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return full per-release records from a minified release list."""
    expanded: List[Dict[str, Any]] = []
    current: Dict[str, Any] = {}
    for index, data in enumerate(versions):
        if index == 0:
            current = copy.deepcopy(data)
            expanded.append(copy.deepcopy(current))
            continue
        for key, value in data.items():
            if value == UNSET:
                current.pop(key, None)
            else:
                current[key] = copy.deepcopy(value)
        expanded.append(copy.deepcopy(current))
    return expanded


def minify(versions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Inverse of expand; used to build fixtures and mirror payloads."""
    minified: List[Dict[str, Any]] = []
    previous: Dict[str, Any] = {}
    for index, data in enumerate(versions):
        if index == 0:
            minified.append(copy.deepcopy(data))
            previous = data
            continue
        diff = {k: copy.deepcopy(v) for k, v in data.items() if previous.get(k, UNSET) != v}
        for key in previous:
            if key not in data:
                diff[key] = UNSET
        minified.append(diff)
        previous = data
    return minified
