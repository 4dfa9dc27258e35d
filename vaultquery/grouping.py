"""
GROUP BY: bucket records by a resolved field value.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .fields import resolve
from .sorting import sort_by
from .types import MISSING, DocumentRecord, GroupSizeKey, SortClause, to_text

# Bucket identity for records missing the group field. Kept apart from the
# string keys so a literal "undefined" value gets its own bucket. YAML null
# is a value like any other and lands in the "null" bucket.
_ABSENT_BUCKET = object()


@dataclass
class Bucket:
    """Records sharing one group value, before projection.

    Attributes:
        key: Stringified group value, None for records missing the field
        value: First raw value seen for this key, used for key ordering
        records: Member records in input order
    """
    key: Optional[str]
    value: Any = MISSING
    records: list[DocumentRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)


def group_records(records: list[DocumentRecord], field_path: str) -> list[Bucket]:
    """Bucket records by ``field_path``, in order of first appearance."""
    buckets: dict[Any, Bucket] = {}
    for record in records:
        value = resolve(record, field_path)
        if value is MISSING:
            bucket_id = _ABSENT_BUCKET
            key = None
            value = MISSING
        else:
            key = to_text(value)
            bucket_id = key
        bucket = buckets.get(bucket_id)
        if bucket is None:
            bucket = buckets[bucket_id] = Bucket(key=key, value=value)
        bucket.records.append(record)
    return list(buckets.values())


def sort_groups(buckets: list[Bucket], sort: SortClause) -> list[Bucket]:
    """
    Order groups by size or by key.

    A field sort on grouped results orders by the group key whatever the
    field named; the bucket for records missing the field sorts last.
    """
    if isinstance(sort.key, GroupSizeKey):
        return sort_by(buckets, len, sort.descending)
    return sort_by(buckets, lambda b: b.value, sort.descending)
