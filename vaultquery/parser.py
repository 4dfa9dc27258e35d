"""
Parser for the TABLE/LIST query language.

    TABLE [WITHOUT ID] col[, col...] | LIST
    [FROM "folder" | FROM #tag]
    [WHERE field op value [AND field op value ...]]...
    [FLATTEN field AS alias]
    [GROUP BY field]
    [SORT field|length(rows) [ASC|DESC]]
    [LIMIT n]

Keywords are case-insensitive and line breaks are treated as spaces.
Clauses are found by pattern rather than position, so their order in the
text doesn't matter; execution order is fixed by the executor.
"""

import re
from typing import Optional, Union

from .errors import QueryParseError
from .types import (
    ASC,
    DESC,
    FieldKey,
    FlattenClause,
    FolderSource,
    GroupSizeKey,
    Query,
    SortClause,
    Source,
    TableColumn,
    TagSource,
    WhereCondition,
)

_CLAUSE_END = r"(?=\s+(?:FROM|WHERE|FLATTEN|GROUP|SORT|LIMIT)\b|$)"

_TABLE_WITHOUT_ID_RE = re.compile(r"^TABLE\s+WITHOUT\s+ID\s+(.+?)" + _CLAUSE_END, re.IGNORECASE)
_TABLE_RE = re.compile(r"^TABLE\s+(.+?)" + _CLAUSE_END, re.IGNORECASE)
_TABLE_WITHOUT_RE = re.compile(r"^TABLE\s+WITHOUT\b", re.IGNORECASE)
_LIST_RE = re.compile(r"^LIST(?:\s+|$)", re.IGNORECASE)
_FROM_FOLDER_RE = re.compile(r"\bFROM\s+\"([^\"]+)\"", re.IGNORECASE)
_FROM_TAG_RE = re.compile(r"\bFROM\s+#([\w/-]+)", re.IGNORECASE)
_WHERE_RE = re.compile(r"\bWHERE\s+(.+?)" + _CLAUSE_END, re.IGNORECASE)
_CONDITION_RE = re.compile(
    r"^([\w.]+)\s*(!=|>=|<=|=|>|<|\bcontains\b)\s*(\".*?\"|'.*?'|[\w./#-]+)$",
    re.IGNORECASE,
)
_AND_RE = re.compile(r"\s+AND\s+(?=(?:[^\"']|\"[^\"]*\"|'[^']*')*$)", re.IGNORECASE)
_FLATTEN_RE = re.compile(r"\bFLATTEN\s+([\w.]+)\s+AS\s+(\w+)", re.IGNORECASE)
_GROUP_BY_RE = re.compile(r"\bGROUP\s+BY\s+([\w.]+)", re.IGNORECASE)
_SORT_RE = re.compile(r"\bSORT\s+([\w.()]+)(?:\s+(ASC|DESC)\b)?", re.IGNORECASE)
_LIMIT_RE = re.compile(r"\bLIMIT\s+(\d+)", re.IGNORECASE)

_FUNCTION_COLUMN_RE = re.compile(
    r"^(length|count|sum)\(([\w.]+)\)(?:\s+AS\s+[\"']?([^\"']+)[\"']?)?$", re.IGNORECASE,
)
_ALIAS_COLUMN_RE = re.compile(r"^([\w.]+)\s+AS\s+[\"']?([^\"']+)[\"']?$", re.IGNORECASE)
_FIELD_RE = re.compile(r"^[\w.]+$")
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

GROUP_SIZE_EXPR = "length(rows)"


def parse_value(raw: str) -> Union[str, int, float, bool]:
    """Parse a WHERE literal: quoted string, boolean, number, or bare word."""
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if _NUMBER_RE.match(raw):
        number = float(raw)
        if number.is_integer() and re.match(r"^[+-]?\d+$", raw):
            return int(raw)
        return number
    return raw


def parse_columns(text: str) -> tuple[TableColumn, ...]:
    """
    Parse a TABLE column list.

    Supports ``field``, ``field AS alias`` and ``fn(field) [AS alias]`` with
    fn one of length/count/sum. Malformed entries are skipped.
    """
    columns: list[TableColumn] = []
    for part in (p.strip() for p in text.split(",")):
        if not part:
            continue
        match = _FUNCTION_COLUMN_RE.match(part)
        if match:
            function, field = match.group(1).lower(), match.group(2)
            alias = match.group(3).strip() if match.group(3) else None
            columns.append(TableColumn(field=field, alias=alias, function=function))
            continue
        match = _ALIAS_COLUMN_RE.match(part)
        if match:
            columns.append(TableColumn(field=match.group(1), alias=match.group(2).strip()))
            continue
        if _FIELD_RE.match(part):
            columns.append(TableColumn(field=part))
    return tuple(columns)


def _parse_source(text: str) -> Optional[Source]:
    match = _FROM_FOLDER_RE.search(text)
    if match:
        return FolderSource(path=match.group(1).strip())
    match = _FROM_TAG_RE.search(text)
    if match:
        return TagSource(name=match.group(1).strip())
    return None


def _parse_conditions(text: str) -> tuple[WhereCondition, ...]:
    conditions: list[WhereCondition] = []
    for clause in _WHERE_RE.finditer(text):
        for part in _AND_RE.split(clause.group(1).strip()):
            match = _CONDITION_RE.match(part.strip())
            if not match:
                raise QueryParseError(f"Invalid WHERE condition: {part.strip()!r}")
            conditions.append(WhereCondition(
                field=match.group(1),
                operator=match.group(2).lower(),
                value=parse_value(match.group(3)),
            ))
    return tuple(conditions)


def _parse_sort(text: str, columns: Optional[tuple[TableColumn, ...]]) -> Optional[SortClause]:
    match = _SORT_RE.search(text)
    if not match:
        return None
    target = match.group(1)
    direction = (match.group(2) or ASC).upper()
    # Sorting on the alias of a length(rows) column means sorting by group size
    size_aliases = {
        c.alias for c in columns or ()
        if c.function == "length" and c.field == "rows" and c.alias
    }
    if target.lower() == GROUP_SIZE_EXPR or target in size_aliases:
        return SortClause(key=GroupSizeKey(), direction=direction)
    return SortClause(key=FieldKey(field=target), direction=direction)


def parse_query(text: str) -> Query:
    """
    Parse query text into a Query.

    Raises:
        QueryParseError: For empty input, an unknown query type, a TABLE
            without columns, or a malformed WHERE condition
    """
    normalized = " ".join(text.split())
    if not normalized:
        raise QueryParseError("Empty query")

    columns: Optional[tuple[TableColumn, ...]] = None
    without_id = False
    without_id_match = _TABLE_WITHOUT_ID_RE.match(normalized)
    table_match = _TABLE_RE.match(normalized)
    if without_id_match:
        query_type = "TABLE"
        without_id = True
        columns = parse_columns(without_id_match.group(1))
    elif table_match and not _TABLE_WITHOUT_RE.match(normalized):
        query_type = "TABLE"
        columns = parse_columns(table_match.group(1))
    elif _LIST_RE.match(normalized):
        query_type = "LIST"
    else:
        raise QueryParseError("Query must start with TABLE or LIST")

    if query_type == "TABLE" and not columns:
        raise QueryParseError("TABLE query requires at least one column")

    flatten = None
    match = _FLATTEN_RE.search(normalized)
    if match:
        flatten = FlattenClause(field=match.group(1), alias=match.group(2))

    match = _GROUP_BY_RE.search(normalized)
    group_by = match.group(1) if match else None

    match = _LIMIT_RE.search(normalized)
    limit = int(match.group(1)) if match else None

    return Query(
        type=query_type,
        without_id=without_id,
        columns=columns,
        source=_parse_source(normalized),
        where=_parse_conditions(normalized),
        flatten=flatten,
        group_by=group_by,
        sort=_parse_sort(normalized, columns),
        limit=limit or None,
    )


def validate_query(text: str) -> bool:
    """Check that query text parses, without executing it."""
    try:
        parse_query(text)
    except QueryParseError:
        return False
    return True


def parse_error_message(text: str) -> Optional[str]:
    """Human-readable parse error for query text, or None if it parses."""
    try:
        parse_query(text)
    except QueryParseError as e:
        return str(e)
    return None
