"""
Vault: the front door for indexing a notes directory and querying it.

Example:
    with Vault() as vault:
        vault.index("~/notes")
        result = vault.query('TABLE status, due FROM "projects" SORT due DESC')
"""

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Optional

from .config import StoreConfig, get_default_store_path, load_or_create_config
from .document_store import DocumentStore, IndexStatus, MemoryRecordStore
from .errors import QueryParseError
from .executor import execute_query
from .indexer import IndexReport, index_directory, load_directory_records
from .parser import parse_query
from .protocol import RecordStoreProtocol
from .types import Query, QueryResult, VaultKey

logger = logging.getLogger(__name__)

NOT_INDEXED_MESSAGE = "Vault has not been indexed yet. Run 'vaultquery index <dir>' first."


class Vault:
    """
    An indexed vault and the query engine over it.

    Records live in a SQLite index inside the store directory; the store's
    ``vaultquery.toml`` names which vault (user, owner, repo, branch) it holds.
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        record_store: Optional[RecordStoreProtocol] = None,
    ) -> None:
        """
        Open or create a store.

        Args:
            store_path: Store directory. Defaults to VAULTQUERY_STORE_PATH or ~/.vaultquery.
            config: Pre-loaded StoreConfig (skips config file discovery).
            record_store: Injected record source for queries (skips the
                index-status check; the SQLite index is still opened for
                indexing and status).
        """
        if config is not None:
            self._config = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path else get_default_store_path()
            self._config = load_or_create_config(path)
        self._store_path = self._config.path

        from .logging_config import configure_ops_log
        self._ops_log_handler = configure_ops_log(self._store_path)

        self._document_store: Optional[DocumentStore] = DocumentStore(self._config.db_path)
        self._record_store = record_store

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def vault_key(self) -> VaultKey:
        return self._config.vault.key

    @property
    def document_store(self) -> DocumentStore:
        if self._document_store is None:
            raise RuntimeError("Vault is closed")
        return self._document_store

    # -------------------------------------------------------------------------
    # Indexing
    # -------------------------------------------------------------------------

    def index(self, directory: str | Path, *, rebuild: bool = False) -> IndexReport:
        """
        Index (or refresh the index of) a notes directory.

        Raises:
            NotADirectoryError: If directory doesn't exist
        """
        root = Path(directory).expanduser().resolve()
        logger.info("Indexing %s into %s", root, self.vault_key)
        return index_directory(self.document_store, self.vault_key, root, rebuild=rebuild)

    def status(self) -> Optional[IndexStatus]:
        """Status of the last indexing run, or None if never indexed."""
        return self.document_store.get_status(self.vault_key)

    # -------------------------------------------------------------------------
    # Querying
    # -------------------------------------------------------------------------

    def parse(self, text: str) -> Query:
        """
        Parse query text, applying the configured default limit.

        Raises:
            QueryParseError: If the query text is malformed
        """
        query = parse_query(text)
        if query.limit is None and self._config.default_limit > 0:
            query = dataclasses.replace(query, limit=self._config.default_limit)
        return query

    async def _source_for(self, directory: Optional[str | Path]) -> Optional[RecordStoreProtocol]:
        if directory is not None:
            root = Path(directory).expanduser().resolve()
            if not root.is_dir():
                raise NotADirectoryError(f"Not a directory: {root}")
            records = await asyncio.to_thread(load_directory_records, root)
            return MemoryRecordStore(records)
        if self._record_store is not None:
            return self._record_store
        status = self.status()
        if status is None or not status.ready:
            return None
        return self.document_store

    async def aquery(self, text: str, *, directory: Optional[str | Path] = None) -> QueryResult:
        """
        Parse and run a query.

        Args:
            text: Query text
            directory: Query this notes directory directly, without the index

        Returns:
            QueryResult. Syntax errors and an unindexed vault are reported as
            failed results (the latter with ``needs_index`` set), not raised.

        Raises:
            NotADirectoryError: If directory is given and doesn't exist
        """
        try:
            query = self.parse(text)
        except QueryParseError as e:
            return QueryResult.failure(f"Syntax error: {e}")

        store = await self._source_for(directory)
        if store is None:
            return QueryResult.failure(NOT_INDEXED_MESSAGE, query, needs_index=True)
        return await execute_query(query, self.vault_key, store)

    def query(self, text: str, *, directory: Optional[str | Path] = None) -> QueryResult:
        """Synchronous wrapper around aquery()."""
        return asyncio.run(self.aquery(text, directory=directory))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the index and detach the ops log."""
        if self._document_store is not None:
            self._document_store.close()
            self._document_store = None

        if self._ops_log_handler is not None:
            logging.getLogger("vaultquery").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
