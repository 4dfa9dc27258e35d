"""
Protocol definitions for the record stores the query engine reads from.

Implemented by:
- DocumentStore (SQLite vault index)
- MemoryRecordStore (a fixed snapshot, e.g. an in-memory index of a directory)
"""

from typing import Protocol, runtime_checkable

from .types import DocumentRecord, VaultKey


@runtime_checkable
class RecordStoreProtocol(Protocol):
    """
    Read side of the vault index, as seen by the query engine.

    ``fetch_public_records`` must leave out private records, must be safe to
    call repeatedly, and must raise on failure rather than return an empty
    list, so that "store unavailable" never looks like "no records".
    """

    async def fetch_public_records(self, vault_key: VaultKey) -> list[DocumentRecord]: ...
