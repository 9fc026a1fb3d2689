"""
Deep merge of configuration trees.

Sources are applied left to right, so later sources win:

    deep_merge(defaults, loader_1, loader_2)

Mappings merge field by field. Everything else (scalars, None, lists)
replaces the lower-priority value wholesale. The result is always a
freshly allocated tree; no source is ever mutated.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


def deep_merge(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Merge configuration trees into a new dict.

    Args:
        *sources: Trees in ascending priority order. None entries are skipped.

    Returns:
        New merged tree sharing no mutable state with any source
    """
    result: dict[str, Any] = {}
    for source in sources:
        if source is None:
            continue
        if not isinstance(source, Mapping):
            raise TypeError(f"Cannot merge {type(source).__name__} into a configuration tree")
        _merge_into(result, source)
    return result


def _merge_into(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    # target is always a dict allocated by this module
    for key, value in source.items():
        if isinstance(value, Mapping):
            current = target.get(key)
            if not isinstance(current, dict):
                current = {}
                target[key] = current
            _merge_into(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target
