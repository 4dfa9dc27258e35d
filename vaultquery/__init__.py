"""
Vault Query

Structured TABLE/LIST queries over a directory of markdown notes: filter by
folder, tag and front-matter fields, flatten lists, group, sort and limit.

Quick Start:
    from vaultquery import Vault

    vault = Vault()  # uses ~/.vaultquery/
    vault.index("~/notes")
    result = vault.query('LIST FROM #book WHERE rating >= 4 SORT rating DESC')

CLI Usage:
    vaultquery index ~/notes
    vaultquery query 'TABLE status, due FROM "projects" SORT due'
    vaultquery query 'LIST GROUP BY status' --dir ~/notes --json

Default Store:
    ~/.vaultquery/ holds vaultquery.toml and the SQLite index.
    Override with VAULTQUERY_STORE_PATH or an explicit path argument.

Environment Variables:
    VAULTQUERY_STORE_PATH  - Override default store location
    VAULTQUERY_VERBOSE     - Set to 1 for debug logging from the CLI
"""

from .api import Vault
from .errors import QueryParseError, StoreUnavailableError
from .executor import execute_query, run_pipeline
from .parser import parse_query, validate_query
from .types import MISSING, DocumentRecord, Query, QueryResult, VaultKey

__version__ = "0.1.0"
__all__ = [
    "Vault",
    "Query",
    "QueryResult",
    "DocumentRecord",
    "VaultKey",
    "MISSING",
    "parse_query",
    "validate_query",
    "execute_query",
    "run_pipeline",
    "QueryParseError",
    "StoreUnavailableError",
]
