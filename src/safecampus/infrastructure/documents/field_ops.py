"""
Document field operations.

Shared by every DocumentStore implementation so that update
semantics (dotted paths, append-only arrays, server timestamps) and
query filtering behave identically in memory and in SQL.
"""

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Literal, Optional, Sequence

from safecampus.domain.models.timestamps import to_iso


class _ServerTimestamp:
    """Sentinel replaced by the commit time of the write."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class ArrayAppend:
    """Append values to an array field (creating it when missing)."""

    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


FilterOp = Literal["==", "!=", "in"]


@dataclass(frozen=True)
class Filter:
    """
    Field filter for queries.

    Attributes:
        field: Dotted path into the document
        op: Comparison operator
        value: Right-hand side (a collection for ``in``)
    """

    field: str
    op: FilterOp
    value: Any

    def matches(self, document: dict) -> bool:
        actual = get_path(document, self.field)
        match self.op:
            case "==":
                return actual == self.value
            case "!=":
                return actual != self.value
            case "in":
                return actual in self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")


def get_path(document: dict, path: str) -> Any:
    """Read a dotted path, returning None when any segment is missing."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _resolve(value: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return to_iso(now)
    if isinstance(value, dict):
        return {k: _resolve(v, now) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v, now) for v in value]
    return copy.deepcopy(value)


def _set_path(document: dict, path: str, value: Any, now: datetime) -> None:
    parts = path.split(".")
    target = document
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child

    leaf = parts[-1]
    if isinstance(value, ArrayAppend):
        existing = target.get(leaf)
        items = list(existing) if isinstance(existing, list) else []
        items.extend(_resolve(v, now) for v in value.values)
        target[leaf] = items
    else:
        target[leaf] = _resolve(value, now)


def resolve_document(data: dict, now: datetime) -> dict:
    """Materialise a full document body, replacing sentinels."""
    document: dict = {}
    for key, value in data.items():
        _set_path(document, key, value, now)
    return document


def apply_updates(document: dict, updates: dict, now: datetime) -> dict:
    """
    Apply field updates to a copy of ``document``.

    Keys are dotted paths. ArrayAppend and SERVER_TIMESTAMP values are
    resolved against ``now``.
    """
    result = copy.deepcopy(document)
    for path, value in updates.items():
        _set_path(result, path, value, now)
    return result


def deep_merge(base: dict, overlay: dict) -> dict:
    """Merge ``overlay`` into a copy of ``base`` recursively."""
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _sort_key(value: Any) -> tuple:
    # None sorts first, mixed types compare by string form
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


def select_documents(
    documents: Iterable[dict],
    filters: Sequence[Filter] = (),
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> list[dict]:
    """Filter, order and limit documents in process."""
    selected = [doc for doc in documents if all(f.matches(doc) for f in filters)]
    if order_by:
        selected.sort(key=lambda doc: _sort_key(get_path(doc, order_by)), reverse=descending)
    if limit is not None:
        selected = selected[:limit]
    return [copy.deepcopy(doc) for doc in selected]
