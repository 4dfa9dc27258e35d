"""
MCP stdio server exposing vault queries as tools for AI agents.

Usage:
    vaultquery mcp                  # stdio server (via CLI)

All Vault calls are serialized through a single asyncio.Lock.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from .api import Vault
from .cli import render_result

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "vaultquery",
    instructions=(
        "Structured queries over a markdown notes vault. "
        "Filter notes by folder, tag and front-matter fields; "
        "group, sort and tabulate them."
    ),
)

_vault: Optional[Vault] = None
_lock = asyncio.Lock()


def _get_vault() -> Vault:
    """Lazy-init Vault with default config (respects VAULTQUERY_STORE_PATH env).

    Must be called inside ``async with _lock``.
    """
    global _vault
    if _vault is None:
        store_path = os.environ.get("VAULTQUERY_STORE_PATH")
        _vault = Vault(Path(store_path) if store_path else None)
    return _vault


_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool(
    description=(
        "Run a TABLE or LIST query over the indexed vault. "
        'Example: TABLE status, due FROM "projects" WHERE status != "done" SORT due. '
        "Supports FROM \"folder\" or #tag, WHERE field op value (=, !=, >, <, >=, <=, contains), "
        "FLATTEN field AS alias, GROUP BY field, SORT field [ASC|DESC], LIMIT n."
    ),
    annotations=_READ_ONLY,
)
async def vault_query(
    query: Annotated[str, Field(
        description="Query text, e.g. 'LIST FROM #book WHERE rating >= 4 SORT rating DESC'.",
    )],
    as_json: Annotated[bool, Field(
        description="Return the full result as JSON instead of rendered text.",
    )] = False,
) -> str:
    """Run a vault query."""
    async with _lock:
        vault = _get_vault()
        result = await vault.aquery(query)

    if as_json:
        return json.dumps(result.to_dict(), ensure_ascii=False, default=str)
    return render_result(result)


@mcp.tool(
    description="Show whether the vault has been indexed, and how the last indexing run went.",
    annotations=_READ_ONLY,
)
async def vault_index_status() -> str:
    """Report the vault's index status."""
    async with _lock:
        vault = _get_vault()
        status = vault.status()
        records = vault.document_store.count(vault.vault_key)

    if status is None:
        return f"{vault.vault_key}: not indexed"
    text = f"{vault.vault_key}: {status.status}, {records} records"
    if status.failed_files:
        text += f", {status.failed_files} failed"
    if status.error_message:
        text += f" (error: {status.error_message})"
    return text


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP stdio server."""
    import signal
    # The stdio reader shields readline from cancellation, so the first
    # Ctrl+C would otherwise be swallowed.
    signal.signal(signal.SIGINT, lambda *_: os._exit(130))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
