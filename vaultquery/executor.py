"""
Query execution over a snapshot of vault records.

The stage order is fixed:

    source filter -> flatten -> where -> group? -> sort -> limit -> project

``run_pipeline`` is the pure in-memory part. ``execute_query`` fetches the
snapshot from a record store first; a failed fetch becomes a failed result
and nothing else runs.
"""

import dataclasses
import logging
from typing import Optional, TypeVar

from .fields import folder_of, resolve
from .grouping import group_records, sort_groups
from .predicates import matches
from .protocol import RecordStoreProtocol
from .results import groups_result, rows_result
from .sorting import sort_records
from .types import (
    MISSING,
    DocumentRecord,
    FlattenClause,
    FolderSource,
    Query,
    QueryResult,
    Source,
    TagSource,
    VaultKey,
    WhereCondition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def _in_folder(record: DocumentRecord, folder: str) -> bool:
    record_folder = folder_of(record.path.lstrip("/")).strip("/")
    return record_folder == folder or record_folder.startswith(folder + "/")


def _has_tag(record: DocumentRecord, name: str) -> bool:
    for tag in record.tags or ():
        tag = tag.removeprefix("#")
        if tag == name or tag.startswith(name + "/"):
            return True
    return False


def filter_by_source(records: list[DocumentRecord], source: Optional[Source]) -> list[DocumentRecord]:
    """
    Apply the FROM scope.

    Folder scope keeps records whose folder is the scope folder or below it;
    an empty folder (``FROM "/"``) keeps everything. Tag scope keeps records
    carrying the tag or any ``tag/...`` sub-tag.
    """
    if source is None:
        return list(records)
    if isinstance(source, FolderSource):
        folder = source.path.strip("/")
        if not folder:
            return list(records)
        return [r for r in records if _in_folder(r, folder)]
    if isinstance(source, TagSource):
        name = source.name.removeprefix("#")
        return [r for r in records if _has_tag(r, name)]
    return list(records)


def _bind(record: DocumentRecord, alias: str, value) -> DocumentRecord:
    frontmatter = dict(record.frontmatter)
    if value is MISSING:
        frontmatter.pop(alias, None)
    else:
        frontmatter[alias] = value
    return dataclasses.replace(record, frontmatter=frontmatter)


def flatten_records(records: list[DocumentRecord], flatten: FlattenClause) -> list[DocumentRecord]:
    """
    Expand a sequence field into one derived record per element.

    Records whose field is not a non-empty sequence still yield exactly one
    record, with the alias bound to the raw value, so flatten never drops rows.
    """
    result: list[DocumentRecord] = []
    for record in records:
        value = resolve(record, flatten.field)
        if isinstance(value, (list, tuple)) and value:
            result.extend(_bind(record, flatten.alias, item) for item in value)
        else:
            result.append(_bind(record, flatten.alias, value))
    return result


def filter_where(records: list[DocumentRecord], condition: WhereCondition) -> list[DocumentRecord]:
    return [r for r in records if matches(r, condition)]


def apply_limit(items: list[T], limit: Optional[int]) -> list[T]:
    if limit is not None and limit > 0:
        return items[:limit]
    return items


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def run_pipeline(query: Query, records: list[DocumentRecord]) -> QueryResult:
    """
    Run a query against an in-memory snapshot.

    Args:
        query: Parsed query
        records: Snapshot of public records (not modified)

    Returns:
        Successful QueryResult with entries, or groups when GROUP BY is set
    """
    rows = filter_by_source(records, query.source)

    if query.flatten is not None:
        rows = flatten_records(rows, query.flatten)

    for condition in query.where:
        rows = filter_where(rows, condition)

    if query.group_by:
        buckets = group_records(rows, query.group_by)
        if query.sort is not None:
            buckets = sort_groups(buckets, query.sort)
        total_count = len(buckets)
        return groups_result(query, apply_limit(buckets, query.limit), total_count)

    if query.sort is not None:
        rows = sort_records(rows, query.sort)
    total_count = len(rows)
    return rows_result(query, apply_limit(rows, query.limit), total_count)


async def execute_query(
    query: Query,
    vault_key: VaultKey,
    store: RecordStoreProtocol,
) -> QueryResult:
    """
    Fetch the vault's public records and run the query against them.

    Any failure of the store fetch is reported as a failed result with the
    error message; no partial results are ever returned.
    """
    logger.debug("Query on %s: %s", vault_key, query)
    try:
        records = await store.fetch_public_records(vault_key)
    except Exception as e:
        logger.warning("Record fetch failed for %s: %s", vault_key, e)
        return QueryResult.failure(str(e) or type(e).__name__, query)

    result = run_pipeline(query, list(records))
    logger.debug("Query on %s matched %d (%s)", vault_key, result.total_count,
                 "groups" if result.groups is not None else "rows")
    return result
