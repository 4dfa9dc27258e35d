"""
WHERE condition evaluation with loose, type-coercing comparisons.

Every branch has a fallback: comparing mismatched types degrades to a
string comparison instead of raising, and unknown operators just don't match.
"""

from typing import Any

from .types import (
    DocumentRecord,
    WhereCondition,
    as_boolean,
    as_number,
    is_absent,
    is_number,
    to_text,
)
from .fields import resolve


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def compare_equal(value: Any, literal: Any) -> bool:
    """Loose equality between a resolved value and a query literal."""
    if _is_sequence(value):
        return any(not is_absent(item) and compare_equal(item, literal) for item in value)

    if isinstance(value, str) and isinstance(literal, str):
        return value.casefold() == literal.casefold()

    if is_number(value) or is_number(literal):
        left, right = as_number(value), as_number(literal)
        if left is None or right is None:
            return False
        return left == right

    if isinstance(value, bool) or isinstance(literal, bool):
        return as_boolean(value) == as_boolean(literal)

    return to_text(value) == to_text(literal)


def compare_order(value: Any, literal: Any) -> int:
    """Three-way comparison: numeric when both parse, else by string form."""
    left, right = as_number(value), as_number(literal)
    if left is not None and right is not None:
        return (left > right) - (left < right)
    left_text, right_text = to_text(value), to_text(literal)
    return (left_text > right_text) - (left_text < right_text)


def compare_contains(value: Any, literal: Any) -> bool:
    """Case-insensitive substring test, element-wise for sequences."""
    needle = to_text(literal).casefold()
    if _is_sequence(value):
        return any(needle in to_text(item).casefold() for item in value)
    return needle in to_text(value).casefold()


def evaluate(value: Any, operator: str, literal: Any) -> bool:
    """
    Evaluate ``value <operator> literal``.

    A missing or null value only satisfies ``!=``. Unknown operators
    evaluate to False.
    """
    if is_absent(value):
        return operator == "!="

    if operator == "=":
        return compare_equal(value, literal)
    if operator == "!=":
        return not compare_equal(value, literal)
    if operator == ">":
        return compare_order(value, literal) > 0
    if operator == "<":
        return compare_order(value, literal) < 0
    if operator == ">=":
        return compare_order(value, literal) >= 0
    if operator == "<=":
        return compare_order(value, literal) <= 0
    if operator == "contains":
        return compare_contains(value, literal)
    return False


def matches(record: DocumentRecord, condition: WhereCondition) -> bool:
    """Check one WHERE condition against a record."""
    return evaluate(resolve(record, condition.field), condition.operator, condition.value)
