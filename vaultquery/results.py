"""
Result assembly: project surviving records into entries or groups, and
compute display cells for TABLE columns.
"""

from typing import Any, Optional, Union

from .fields import resolve
from .grouping import Bucket
from .types import (
    MISSING,
    DocumentRecord,
    Query,
    QueryResult,
    ResultEntry,
    ResultGroup,
    TableColumn,
    as_number,
    is_absent,
)


def to_entry(record: DocumentRecord) -> ResultEntry:
    """Project a record to a result entry carrying its full front matter."""
    return ResultEntry(
        path=record.path,
        name=record.name,
        frontmatter=dict(record.frontmatter),
        record=record,
    )


def to_group(bucket: Bucket) -> ResultGroup:
    return ResultGroup(key=bucket.key, rows=tuple(to_entry(r) for r in bucket.records))


def column_labels(query: Query) -> Optional[list[str]]:
    """Column headers for a projection, or None when the query has none."""
    if query.columns is None:
        return None
    return [c.label for c in query.columns]


def rows_result(query: Query, records: list[DocumentRecord], total_count: int) -> QueryResult:
    return QueryResult(
        success=True,
        entries=[to_entry(r) for r in records],
        columns=column_labels(query),
        total_count=total_count,
        query=query,
    )


def groups_result(query: Query, buckets: list[Bucket], total_count: int) -> QueryResult:
    return QueryResult(
        success=True,
        entries=[],
        groups=[to_group(b) for b in buckets],
        columns=column_labels(query),
        total_count=total_count,
        query=query,
    )


# ---------------------------------------------------------------------------
# Display cells
# ---------------------------------------------------------------------------

def _entry_value(entry: ResultEntry, field_path: str) -> Any:
    record = entry.record
    if record is None:
        record = DocumentRecord(path=entry.path, name=entry.name, frontmatter=entry.frontmatter)
    return resolve(record, field_path)


def _values(value: Any) -> list:
    """Flatten one resolved value into the list of values it contributes."""
    if is_absent(value):
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if not is_absent(v)]
    return [value]


def _sum(values: list) -> Any:
    numbers = [n for n in (as_number(v) for v in values) if n is not None]
    if not numbers:
        return MISSING
    total = sum(numbers)
    return int(total) if float(total).is_integer() else total


def _entry_cell(entry: ResultEntry, column: TableColumn) -> Any:
    value = _entry_value(entry, column.field)
    if column.function is None:
        return value
    if column.function == "length":
        if isinstance(value, (list, tuple, str)):
            return len(value)
        return MISSING
    if column.function == "count":
        return len(_values(value))
    if column.function == "sum":
        return _sum(_values(value))
    return MISSING


def _group_cell(group: ResultGroup, column: TableColumn, group_by: Optional[str]) -> Any:
    if column.function is None:
        if column.field == group_by or column.field == "key":
            return group.key if group.key is not None else MISSING
        return [_entry_value(row, column.field) for row in group.rows]
    if column.function == "length":
        if column.field == "rows":
            return len(group.rows)
        return sum(len(_values(_entry_value(row, column.field))) for row in group.rows)
    if column.function == "count":
        return sum(1 for row in group.rows if not is_absent(_entry_value(row, column.field)))
    if column.function == "sum":
        values: list = []
        for row in group.rows:
            values.extend(_values(_entry_value(row, column.field)))
        return _sum(values)
    return MISSING


def cell_value(
    row: Union[ResultEntry, ResultGroup],
    column: TableColumn,
    group_by: Optional[str] = None,
) -> Any:
    """
    Value shown in a TABLE cell.

    For entries, plain columns resolve the field and aggregate columns apply
    to that row's value. For groups, aggregates run across the group's rows:
    ``length(rows)`` counts rows, ``count`` counts rows with a value, ``sum``
    adds numeric values. A plain column naming the group field shows the key.

    Returns MISSING when there is nothing to show.
    """
    if isinstance(row, ResultGroup):
        return _group_cell(row, column, group_by)
    return _entry_cell(row, column)
