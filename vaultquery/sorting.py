"""
Stable sorting for records and groups.

Missing values always go last, in their original order, whichever direction
is requested. A YAML null is a defined value and sorts by its text "null".
"""

from functools import cmp_to_key
from typing import Any, Callable, Iterable, TypeVar

from .fields import resolve
from .types import MISSING, DocumentRecord, GroupSizeKey, SortClause, is_number, to_text

T = TypeVar("T")


def compare_values(a: Any, b: Any) -> int:
    """Compare two defined values: numerically if both are numbers, else as text."""
    if is_number(a) and is_number(b):
        return (a > b) - (a < b)
    left, right = to_text(a), to_text(b)
    return (left > right) - (left < right)


def sort_by(items: Iterable[T], key: Callable[[T], Any], descending: bool = False) -> list[T]:
    """
    Stable sort of items by a computed key.

    Args:
        items: Items to sort (not modified)
        key: Function returning the sort value for an item
        descending: Reverse the order of defined values

    Returns:
        New list: defined values in order, then missing ones
    """
    defined: list[tuple[Any, T]] = []
    missing: list[T] = []
    for item in items:
        value = key(item)
        if value is MISSING:
            missing.append(item)
        else:
            defined.append((value, item))

    def _cmp(x: tuple[Any, T], y: tuple[Any, T]) -> int:
        result = compare_values(x[0], y[0])
        return -result if descending else result

    defined.sort(key=cmp_to_key(_cmp))
    return [item for _, item in defined] + missing


def sort_records(records: list[DocumentRecord], sort: SortClause) -> list[DocumentRecord]:
    """Row-level sort. Sorting by group size without grouping keeps input order."""
    if isinstance(sort.key, GroupSizeKey):
        return list(records)
    field_path = sort.key.field
    return sort_by(records, lambda r: resolve(r, field_path), sort.descending)
