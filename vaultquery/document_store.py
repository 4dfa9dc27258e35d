"""
Vault index store using SQLite.

Holds one record per indexed vault file: tags, wikilinks and front matter
extracted by the indexer, plus the content hash used for incremental
re-indexing. Also tracks the progress of the last indexing run per vault.

The query engine only reads from here, through ``fetch_public_records``.
"""

import asyncio
import json
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from .errors import StoreUnavailableError
from .types import DocumentRecord, VaultKey, WikiLink

INDEX_STATES = ("pending", "indexing", "completed", "failed")


@dataclass
class IndexStatus:
    """Progress of the most recent indexing run for a vault."""
    status: str = "pending"
    total_files: int = 0
    indexed_files: int = 0
    failed_files: int = 0
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> dict:
        from dataclasses import asdict
        return asdict(self)


def _links_to_json(links: Iterable[WikiLink]) -> str:
    return json.dumps(
        [{"target": l.target, "display": l.display, "isEmbed": l.is_embed} for l in links],
        ensure_ascii=False,
    )


def _links_from_json(text: str) -> tuple[WikiLink, ...]:
    return tuple(
        WikiLink(target=d["target"], display=d.get("display"), is_embed=bool(d.get("isEmbed")))
        for d in json.loads(text)
    )


def _row_to_record(row: sqlite3.Row) -> DocumentRecord:
    return DocumentRecord(
        path=row["file_path"],
        name=row["file_name"],
        sha=row["file_sha"],
        tags=tuple(json.loads(row["tags_json"])),
        links=_links_from_json(row["links_json"]),
        frontmatter=json.loads(row["frontmatter_json"]),
        is_private=bool(row["is_private"]),
    )


class DocumentStore:
    """
    SQLite-backed store for vault index records.

    Records are keyed by vault (user, owner, repo, branch) and file path.
    Front matter, tags and links are stored as JSON so arbitrary front-matter
    shapes round-trip without a schema.
    """

    _RECORD_COLUMNS = (
        "file_path, file_name, file_sha, tags_json, links_json, "
        "frontmatter_json, is_private"
    )
    _VAULT_WHERE = "user_id = ? AND owner = ? AND repo = ? AND branch = ?"

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS vault_index (
                user_id TEXT NOT NULL,
                owner TEXT NOT NULL,
                repo TEXT NOT NULL,
                branch TEXT NOT NULL,
                file_path TEXT NOT NULL,
                file_name TEXT NOT NULL,
                file_sha TEXT NOT NULL,
                tags_json TEXT NOT NULL DEFAULT '[]',
                links_json TEXT NOT NULL DEFAULT '[]',
                frontmatter_json TEXT NOT NULL DEFAULT '{}',
                is_private INTEGER NOT NULL DEFAULT 0,
                indexed_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, owner, repo, branch, file_path)
            )
        """)

        # Index for content-hash lookups
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_vault_index_sha
            ON vault_index(file_sha)
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS vault_index_status (
                user_id TEXT NOT NULL,
                owner TEXT NOT NULL,
                repo TEXT NOT NULL,
                branch TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                total_files INTEGER NOT NULL DEFAULT 0,
                indexed_files INTEGER NOT NULL DEFAULT 0,
                failed_files INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                started_at TEXT,
                completed_at TEXT,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, owner, repo, branch)
            )
        """)

        self._conn.commit()

    def _now(self) -> str:
        """Current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    def _key_params(self, vault_key: VaultKey) -> tuple[str, str, str, str]:
        return (vault_key.user_id, vault_key.owner, vault_key.repo, vault_key.branch)

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailableError(f"Vault index is closed: {self._db_path}")
        return self._conn

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def upsert(self, vault_key: VaultKey, record: DocumentRecord) -> None:
        """
        Insert or update a record.

        Preserves indexed_at on update. Updates updated_at always.
        """
        self.upsert_many(vault_key, [record])

    def upsert_many(self, vault_key: VaultKey, records: Iterable[DocumentRecord]) -> int:
        """
        Insert or update several records in one transaction.

        Returns:
            Number of records written
        """
        now = self._now()
        rows = [
            (
                *self._key_params(vault_key),
                record.path,
                record.name,
                record.sha,
                json.dumps(list(record.tags), ensure_ascii=False),
                _links_to_json(record.links),
                json.dumps(record.frontmatter, ensure_ascii=False, default=str),
                int(record.is_private),
                now,
                now,
            )
            for record in records
        ]
        if not rows:
            return 0
        with self._lock:
            conn = self._connection()
            conn.executemany("""
                INSERT INTO vault_index
                (user_id, owner, repo, branch, file_path, file_name, file_sha,
                 tags_json, links_json, frontmatter_json, is_private,
                 indexed_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, owner, repo, branch, file_path) DO UPDATE SET
                    file_name = excluded.file_name,
                    file_sha = excluded.file_sha,
                    tags_json = excluded.tags_json,
                    links_json = excluded.links_json,
                    frontmatter_json = excluded.frontmatter_json,
                    is_private = excluded.is_private,
                    updated_at = excluded.updated_at
            """, rows)
            conn.commit()
        return len(rows)

    def delete(self, vault_key: VaultKey, path: str) -> bool:
        """
        Delete one record.

        Returns:
            True if the record existed and was deleted
        """
        return self.delete_many(vault_key, [path]) > 0

    def delete_many(self, vault_key: VaultKey, paths: Iterable[str]) -> int:
        """Delete records by path. Returns the number deleted."""
        params = [(*self._key_params(vault_key), p) for p in paths]
        if not params:
            return 0
        with self._lock:
            conn = self._connection()
            before = conn.total_changes
            conn.executemany(f"""
                DELETE FROM vault_index
                WHERE {self._VAULT_WHERE} AND file_path = ?
            """, params)
            conn.commit()
            return conn.total_changes - before

    def delete_all(self, vault_key: VaultKey) -> int:
        """Delete every record of a vault. Returns the number deleted."""
        with self._lock:
            conn = self._connection()
            cursor = conn.execute(f"""
                DELETE FROM vault_index WHERE {self._VAULT_WHERE}
            """, self._key_params(vault_key))
            conn.commit()
            return cursor.rowcount

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, vault_key: VaultKey, path: str) -> Optional[DocumentRecord]:
        """
        Get a record by path.

        Returns:
            DocumentRecord if found, None otherwise
        """
        with self._lock:
            cursor = self._connection().execute(f"""
                SELECT {self._RECORD_COLUMNS}
                FROM vault_index
                WHERE {self._VAULT_WHERE} AND file_path = ?
            """, (*self._key_params(vault_key), path))
            row = cursor.fetchone()
        if row is None:
            return None
        return _row_to_record(row)

    def _list(self, vault_key: VaultKey, public_only: bool) -> list[DocumentRecord]:
        private_clause = "AND is_private = 0" if public_only else ""
        with self._lock:
            cursor = self._connection().execute(f"""
                SELECT {self._RECORD_COLUMNS}
                FROM vault_index
                WHERE {self._VAULT_WHERE} {private_clause}
                ORDER BY file_path
            """, self._key_params(vault_key))
            rows = cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    def list_all(self, vault_key: VaultKey) -> list[DocumentRecord]:
        """All records of a vault, private ones included, ordered by path."""
        return self._list(vault_key, public_only=False)

    def list_public(self, vault_key: VaultKey) -> list[DocumentRecord]:
        """All non-private records of a vault, ordered by path."""
        return self._list(vault_key, public_only=True)

    async def fetch_public_records(self, vault_key: VaultKey) -> list[DocumentRecord]:
        """
        Snapshot of a vault's public records for the query engine.

        The SQLite read runs in a worker thread.

        Raises:
            StoreUnavailableError: If the store is closed or the read fails
        """
        try:
            return await asyncio.to_thread(self.list_public, vault_key)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Vault index unavailable: {e}") from e

    def get_shas(self, vault_key: VaultKey) -> dict[str, str]:
        """Map of file path to content hash for every record of a vault."""
        with self._lock:
            cursor = self._connection().execute(f"""
                SELECT file_path, file_sha FROM vault_index
                WHERE {self._VAULT_WHERE}
            """, self._key_params(vault_key))
            return {row["file_path"]: row["file_sha"] for row in cursor}

    def count(self, vault_key: VaultKey) -> int:
        """Count records in a vault."""
        with self._lock:
            cursor = self._connection().execute(f"""
                SELECT COUNT(*) FROM vault_index WHERE {self._VAULT_WHERE}
            """, self._key_params(vault_key))
            return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Index Status
    # -------------------------------------------------------------------------

    def get_status(self, vault_key: VaultKey) -> Optional[IndexStatus]:
        """Status of the last indexing run, or None if the vault was never indexed."""
        with self._lock:
            cursor = self._connection().execute(f"""
                SELECT status, total_files, indexed_files, failed_files,
                       error_message, started_at, completed_at
                FROM vault_index_status
                WHERE {self._VAULT_WHERE}
            """, self._key_params(vault_key))
            row = cursor.fetchone()
        if row is None:
            return None
        return IndexStatus(**{k: row[k] for k in row.keys()})

    def _upsert_status(self, vault_key: VaultKey, **fields: Any) -> IndexStatus:
        status = self.get_status(vault_key) or IndexStatus()
        for name, value in fields.items():
            setattr(status, name, value)
        if status.status not in INDEX_STATES:
            raise ValueError(f"Unknown index status: {status.status!r}")
        with self._lock:
            conn = self._connection()
            conn.execute("""
                INSERT OR REPLACE INTO vault_index_status
                (user_id, owner, repo, branch, status, total_files, indexed_files,
                 failed_files, error_message, started_at, completed_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                *self._key_params(vault_key),
                status.status,
                status.total_files,
                status.indexed_files,
                status.failed_files,
                status.error_message,
                status.started_at,
                status.completed_at,
                self._now(),
            ))
            conn.commit()
        return status

    def start_indexing(self, vault_key: VaultKey, total_files: int) -> IndexStatus:
        return self._upsert_status(
            vault_key,
            status="indexing",
            total_files=total_files,
            indexed_files=0,
            failed_files=0,
            error_message=None,
            started_at=self._now(),
            completed_at=None,
        )

    def update_progress(self, vault_key: VaultKey, indexed_files: int, failed_files: int) -> IndexStatus:
        return self._upsert_status(vault_key, indexed_files=indexed_files, failed_files=failed_files)

    def complete_indexing(self, vault_key: VaultKey, indexed_files: int, failed_files: int) -> IndexStatus:
        return self._upsert_status(
            vault_key,
            status="completed",
            indexed_files=indexed_files,
            failed_files=failed_files,
            completed_at=self._now(),
        )

    def fail_indexing(self, vault_key: VaultKey, error_message: str) -> IndexStatus:
        return self._upsert_status(
            vault_key,
            status="failed",
            error_message=error_message,
            completed_at=self._now(),
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()


class MemoryRecordStore:
    """
    A record store over a fixed list of records.

    Serves the same snapshot for any vault key. Used for querying a directory
    without a persistent index, and in tests.
    """

    def __init__(self, records: Iterable[DocumentRecord]):
        self._records = tuple(records)

    async def fetch_public_records(self, vault_key: VaultKey) -> list[DocumentRecord]:
        return [r for r in self._records if not r.is_private]
