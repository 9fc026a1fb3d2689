"""
Structural comparison of configuration trees.

compute_diff() produces the edit list carried by NewSnapshot events.
Mappings are compared key by key; every other value, lists included,
is compared as a whole (the same policy the merge uses).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any


class DiffOp(str, Enum):
    """Kind of edit between two trees."""

    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


@dataclass(frozen=True, slots=True)
class DiffEntry:
    """One edit: the value at `path` was added, removed or changed."""

    op: DiffOp
    path: tuple[Any, ...]
    old: Any = None
    new: Any = None

    @property
    def dotted_path(self) -> str:
        return ".".join(str(p) for p in self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "op": self.op.value,
            "path": self.dotted_path,
            "old": self.old,
            "new": self.new,
        }


def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality for configuration values.

    Same as == for plain trees, except numbers of different types never
    compare equal (True != 1, 1 != 1.0) so a type flip in a config value
    counts as a change.
    """
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)

    if _is_sequence(a) and _is_sequence(b):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return type(a) is type(b) and a == b

    return a == b


def compute_diff(old: Any, new: Any, path: tuple[Any, ...] = ()) -> list[DiffEntry]:
    """
    Compute the edit list turning `old` into `new`.

    Args:
        old: Previous tree
        new: Next tree
        path: Prefix for reported paths

    Returns:
        Ordered list of DiffEntry (empty when the trees are equal)
    """
    if isinstance(old, Mapping) and isinstance(new, Mapping):
        entries: list[DiffEntry] = []
        for key in old:
            if key not in new:
                entries.append(DiffEntry(DiffOp.REMOVED, (*path, key), old=old[key]))
        for key in new:
            if key not in old:
                entries.append(DiffEntry(DiffOp.ADDED, (*path, key), new=new[key]))
            else:
                entries.extend(compute_diff(old[key], new[key], (*path, key)))
        return entries

    if deep_equal(old, new):
        return []
    return [DiffEntry(DiffOp.CHANGED, path, old=old, new=new)]


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))
