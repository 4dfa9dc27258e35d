"""
Data types for vault queries.

Records come from the vault index; queries arrive already parsed; results
are assembled by the executor. Everything here is a read-only snapshot:
pipeline stages build new objects instead of mutating these.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Optional, Union


class _Missing:
    """Marker for a field that does not exist on a record.

    Distinct from ``None``, which is an explicit YAML ``null`` in front matter.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

QUERY_TYPES = frozenset({"TABLE", "LIST"})
OPERATORS = frozenset({"=", "!=", ">", "<", ">=", "<=", "contains"})
COLUMN_FUNCTIONS = frozenset({"length", "count", "sum"})
ASC = "ASC"
DESC = "DESC"


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def is_absent(value: Any) -> bool:
    """True for a missing field or an explicit null."""
    return value is MISSING or value is None


def is_number(value: Any) -> bool:
    """True for int/float values. Booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def as_number(value: Any) -> Optional[float]:
    """Coerce a value to a number, or None if it doesn't parse as one.

    Booleans count as 1/0 and numeric strings are parsed after stripping
    whitespace. NaN never counts as a number.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def as_boolean(value: Any) -> bool:
    """Coerce a value to a boolean, reading "true"/"false" strings literally."""
    if isinstance(value, str):
        text = value.strip().casefold()
        if text in ("false", "no", "0", ""):
            return False
        return True
    if isinstance(value, (list, tuple)):
        return True
    return bool(value)


def _string_keys(value: Any) -> Any:
    """Copy nested maps with every key as text so they serialize in a stable order."""
    if isinstance(value, dict):
        return {to_text(k): _string_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_string_keys(v) for v in value]
    return value


def to_text(value: Any) -> str:
    """String representation used for comparison, grouping and display."""
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if is_absent(v) else to_text(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(_string_keys(value), sort_keys=True, default=str, separators=(",", ":"))
    return str(value)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VaultKey:
    """Identifies one indexed vault: a branch of a repository, per user."""
    user_id: str
    owner: str
    repo: str
    branch: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"


@dataclass(frozen=True)
class WikiLink:
    """An outbound link found in a document."""
    target: str
    display: Optional[str] = None
    is_embed: bool = False


@dataclass(frozen=True)
class Link:
    """A link value produced by ``file.link``.

    Compares and sorts by its path, which is also its string form.
    """
    path: str
    name: str

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class DocumentRecord:
    """
    One indexed vault file: its extracted metadata, not its content.

    Identity is the path. Derived records (e.g. from FLATTEN) are built with
    ``dataclasses.replace`` and never share a mutable front-matter dict with
    the snapshot they came from.

    Attributes:
        path: File path relative to the vault root
        name: Display name (usually the file name without ``.md``)
        sha: Content hash, used only for incremental indexing
        tags: Tags in the order they were found; duplicates allowed
        links: Outbound wikilinks
        frontmatter: Parsed YAML front matter
        is_private: Excluded from public fetches
    """
    path: str
    name: str
    sha: str = ""
    tags: tuple[str, ...] = ()
    links: tuple[WikiLink, ...] = ()
    frontmatter: dict[str, Any] = field(default_factory=dict)
    is_private: bool = False


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FolderSource:
    """FROM "folder": records in this folder or any folder below it."""
    path: str


@dataclass(frozen=True)
class TagSource:
    """FROM #tag: records carrying this tag or a sub-tag ``tag/...``."""
    name: str


Source = Union[FolderSource, TagSource]


@dataclass(frozen=True)
class WhereCondition:
    field: str
    operator: str
    value: Union[str, int, float, bool]


@dataclass(frozen=True)
class FlattenClause:
    field: str
    alias: str


@dataclass(frozen=True)
class FieldKey:
    """Sort by the resolved value of a field (or by group key when grouped)."""
    field: str


@dataclass(frozen=True)
class GroupSizeKey:
    """Sort groups by how many rows they hold: ``SORT length(rows)``."""

    def __str__(self) -> str:
        return "length(rows)"


SortKey = Union[FieldKey, GroupSizeKey]


@dataclass(frozen=True)
class SortClause:
    key: SortKey
    direction: str = ASC

    @property
    def descending(self) -> bool:
        return self.direction == DESC


@dataclass(frozen=True)
class TableColumn:
    field: str
    alias: Optional[str] = None
    function: Optional[str] = None

    @property
    def label(self) -> str:
        """Header shown for this column."""
        if self.alias:
            return self.alias
        if self.function:
            return f"{self.function}({self.field})"
        return self.field


@dataclass(frozen=True)
class Query:
    """
    A parsed query. Only ``type`` is required.

    Stages always run in the same order regardless of how the query text
    was written: source, flatten, where, group, sort, limit, columns.
    """
    type: str = "LIST"
    without_id: bool = False
    columns: Optional[tuple[TableColumn, ...]] = None
    source: Optional[Source] = None
    where: tuple[WhereCondition, ...] = ()
    flatten: Optional[FlattenClause] = None
    group_by: Optional[str] = None
    sort: Optional[SortClause] = None
    limit: Optional[int] = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResultEntry:
    path: str
    name: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    # Source record, kept for computing display cells; not serialized.
    record: Optional[DocumentRecord] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict:
        return {"path": self.path, "name": self.name, "frontmatter": self.frontmatter}


@dataclass(frozen=True)
class ResultGroup:
    """Rows sharing a group value. ``key`` is None for the undefined bucket."""
    key: Optional[str]
    rows: tuple[ResultEntry, ...] = ()

    def to_dict(self) -> dict:
        return {"key": self.key, "rows": [r.to_dict() for r in self.rows]}


@dataclass
class QueryResult:
    """
    Outcome of one query execution.

    On success exactly one of ``entries``/``groups`` carries rows; ``entries``
    is always a list so callers can rely on its presence. ``total_count`` is
    taken before LIMIT. On failure there are no rows and ``error`` explains why.
    """
    success: bool
    entries: list[ResultEntry] = field(default_factory=list)
    groups: Optional[list[ResultGroup]] = None
    columns: Optional[list[str]] = None
    total_count: int = 0
    query: Optional[Query] = None
    error: Optional[str] = None
    needs_index: bool = False

    @classmethod
    def failure(cls, error: str, query: Optional[Query] = None, *, needs_index: bool = False) -> "QueryResult":
        return cls(success=False, query=query, error=error, needs_index=needs_index)

    def to_dict(self) -> dict:
        """Serialize to the JSON shape returned to callers."""
        d: dict[str, Any] = {
            "success": self.success,
            "entries": [e.to_dict() for e in self.entries],
            "totalCount": self.total_count,
        }
        if self.groups is not None:
            d["groups"] = [g.to_dict() for g in self.groups]
        if self.columns is not None:
            d["columns"] = list(self.columns)
        if self.error is not None:
            d["error"] = self.error
        if self.needs_index:
            d["needsIndex"] = True
        return d
