"""
CLI interface for vault queries.

Usage:
    vaultquery index ~/notes
    vaultquery query 'TABLE status, due FROM "projects" SORT due'
    vaultquery query 'LIST FROM #book GROUP BY author' --json
"""

import json
import os
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import typer
from typing_extensions import Annotated

from .api import Vault
from .config import get_default_store_path
from .document_store import IndexStatus
from .errors import QueryParseError
from .indexer import IndexReport
from .logging_config import configure_quiet_mode, enable_debug_mode
from .parser import parse_query
from .results import cell_value
from .types import (
    FieldKey,
    FolderSource,
    Link,
    Query,
    QueryResult,
    ResultEntry,
    ResultGroup,
    TagSource,
    is_absent,
    to_text,
)

# Configure quiet mode by default (suppress verbose library output)
# Set VAULTQUERY_VERBOSE=1 to enable debug mode via environment
if os.environ.get("VAULTQUERY_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"vaultquery {version('vaultquery')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="vaultquery",
    help="Structured queries over a markdown notes vault.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

EMPTY_CELL = "-"


def format_cell(value: Any) -> str:
    """Plain-text form of a cell value. Absent values show as '-'."""
    if is_absent(value):
        return EMPTY_CELL
    if isinstance(value, Link):
        return value.name
    if isinstance(value, (list, tuple)):
        return ", ".join(format_cell(v) for v in value)
    return to_text(value).replace("\n", " ")


def _render_table(header: list[str], rows: list[list[str]]) -> str:
    widths = [len(h) for h in header]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    lines = ["  ".join(h.ljust(widths[i]) for i, h in enumerate(header)).rstrip()]
    lines.append("  ".join("-" * w for w in widths))
    for row in rows:
        lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())
    return "\n".join(lines)


def _group_label(group: ResultGroup) -> str:
    return EMPTY_CELL if group.key is None else group.key


def _table_rows(query: Query, rows: list[Union[ResultEntry, ResultGroup]]) -> tuple[list[str], list[list[str]]]:
    columns = list(query.columns or ())
    header = [c.label for c in columns]
    body = []
    for row in rows:
        cells = [format_cell(cell_value(row, c, query.group_by)) for c in columns]
        if not query.without_id:
            first = _group_label(row) if isinstance(row, ResultGroup) else row.path
            cells.insert(0, first)
        body.append(cells)
    if not query.without_id:
        header.insert(0, query.group_by if query.group_by else "File")
    return header, body


def render_result(result: QueryResult) -> str:
    """
    Render a query result as plain text.

    LIST results become bullet lists (under a heading per group when grouped).
    TABLE results become aligned columns, one row per entry or per group.
    """
    if not result.success:
        return f"Error: {result.error}"

    query = result.query or Query()
    is_table = query.type == "TABLE" and query.columns
    shown = len(result.groups) if result.groups is not None else len(result.entries)

    if shown == 0:
        return "No results"

    if is_table:
        rows: list = result.groups if result.groups is not None else result.entries
        header, body = _table_rows(query, rows)
        text = _render_table(header, body)
    elif result.groups is not None:
        blocks = []
        for group in result.groups:
            lines = [f"## {_group_label(group)} ({len(group.rows)})"]
            lines.extend(f"- {entry.path}" for entry in group.rows)
            blocks.append("\n".join(lines))
        text = "\n\n".join(blocks)
    else:
        text = "\n".join(f"- {entry.path}" for entry in result.entries)

    if result.total_count > shown:
        text += f"\n\n({shown} of {result.total_count} shown)"
    return text


def describe_query(query: Query) -> str:
    """One line per clause of a parsed query, for ``check``."""
    lines = [query.type + (" WITHOUT ID" if query.without_id else "")]
    if query.columns:
        lines.append("columns: " + ", ".join(c.label for c in query.columns))
    if isinstance(query.source, FolderSource):
        lines.append(f'from: folder "{query.source.path}"')
    elif isinstance(query.source, TagSource):
        lines.append(f"from: tag #{query.source.name}")
    for condition in query.where:
        lines.append(f"where: {condition.field} {condition.operator} {condition.value!r}")
    if query.flatten:
        lines.append(f"flatten: {query.flatten.field} as {query.flatten.alias}")
    if query.group_by:
        lines.append(f"group by: {query.group_by}")
    if query.sort:
        key = query.sort.key
        target = key.field if isinstance(key, FieldKey) else str(key)
        lines.append(f"sort: {target} {query.sort.direction}")
    if query.limit:
        lines.append(f"limit: {query.limit}")
    return "\n".join(lines)


def _format_report(report: IndexReport, directory: Path) -> str:
    return (
        f"Indexed {directory} ({report.mode}): "
        f"{report.new_files} new, {report.modified_files} modified, "
        f"{report.unchanged_files} unchanged, {report.deleted_files} deleted"
        + (f", {report.failed_files} failed" if report.failed_files else "")
    )


def _format_status(status: Optional[IndexStatus]) -> str:
    if status is None:
        return "Not indexed"
    line = f"{status.status}: {status.indexed_files}/{status.total_files} files"
    if status.failed_files:
        line += f", {status.failed_files} failed"
    if status.completed_at:
        line += f" (at {status.completed_at})"
    if status.error_message:
        line += f"\nerror: {status.error_message}"
    return line


# -----------------------------------------------------------------------------
# Global options
# -----------------------------------------------------------------------------

@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="VAULTQUERY_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Structured queries over a markdown notes vault."""


StoreOption = Annotated[
    Optional[Path],
    typer.Option(
        "--store", "-s",
        envvar="VAULTQUERY_STORE_PATH",
        help="Path to the store directory (default: ~/.vaultquery/)"
    )
]


def _get_vault(store: Optional[Path]) -> Vault:
    """Open the vault store, exiting with a clean message on failure."""
    import atexit

    actual_store = store if store is not None else _get_store_override()
    try:
        vault = Vault(actual_store)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(vault.close)
    return vault


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def index(
    directory: Annotated[Path, typer.Argument(
        help="Notes directory to index",
    )],
    rebuild: Annotated[bool, typer.Option(
        "--rebuild",
        help="Drop the existing index and parse every note again",
    )] = False,
    store: StoreOption = None,
):
    """
    Index a notes directory.

    Only new and modified notes are parsed; notes deleted from the
    directory are dropped from the index.
    """
    vault = _get_vault(store)
    try:
        report = vault.index(directory, rebuild=rebuild)
    except NotADirectoryError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if _get_json_output():
        _echo_json(report.to_dict())
    else:
        typer.echo(_format_report(report, directory))


@app.command()
def query(
    text: Annotated[str, typer.Argument(
        help="Query text, or '-' to read it from stdin",
    )],
    directory: Annotated[Optional[Path], typer.Option(
        "--dir", "-d",
        help="Query this notes directory directly instead of the index",
    )] = None,
    store: StoreOption = None,
):
    """
    Run a TABLE or LIST query.

    \b
    Examples:
        vaultquery query 'LIST FROM #project WHERE status = "active"'
        vaultquery query 'TABLE length(rows) AS n GROUP BY status SORT n DESC'
        vaultquery query 'TABLE mood FROM "daily" SORT file.name DESC LIMIT 7'
    """
    if text == "-":
        text = sys.stdin.read()

    vault = _get_vault(store)
    try:
        result = vault.query(text, directory=directory)
    except NotADirectoryError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if _get_json_output():
        _echo_json(result.to_dict())
    elif result.success:
        typer.echo(render_result(result))
    else:
        typer.echo(render_result(result), err=True)

    if not result.success:
        raise typer.Exit(1)


@app.command()
def check(
    text: Annotated[str, typer.Argument(
        help="Query text to validate",
    )],
):
    """Check that a query parses, without running it."""
    try:
        parsed = parse_query(text)
    except QueryParseError as e:
        if _get_json_output():
            _echo_json({"valid": False, "error": str(e)})
        else:
            typer.echo(f"Syntax error: {e}", err=True)
        raise typer.Exit(1)

    if _get_json_output():
        _echo_json({"valid": True})
    else:
        typer.echo(describe_query(parsed))


@app.command()
def status(
    store: StoreOption = None,
):
    """Show the status of the last indexing run."""
    vault = _get_vault(store)
    index_status = vault.status()
    if _get_json_output():
        _echo_json({
            "vault": str(vault.vault_key),
            "records": vault.document_store.count(vault.vault_key),
            "status": index_status.to_dict() if index_status else None,
        })
    else:
        typer.echo(f"vault: {vault.vault_key}")
        typer.echo(_format_status(index_status))


def _config_dict(vault: Vault) -> dict:
    cfg = vault.config
    return {
        "file": str(cfg.config_path),
        "store": str(cfg.path),
        "database": str(cfg.db_path),
        "vault": {
            "user_id": cfg.vault.user_id,
            "owner": cfg.vault.owner,
            "repo": cfg.vault.repo,
            "branch": cfg.vault.branch,
        },
        "default_limit": cfg.default_limit,
    }


@app.command()
def config(
    path: Annotated[Optional[str], typer.Argument(
        help="Config path to get (e.g., 'file', 'store', 'vault', 'vault.repo', 'default_limit')"
    )] = None,
    store: StoreOption = None,
):
    """
    Show configuration. Optionally get a specific value by path.

    \b
    Examples:
        vaultquery config              # Show all config
        vaultquery config file         # Config file location
        vaultquery config vault.repo   # Indexed repository name
    """
    vault = _get_vault(store)
    data: Any = _config_dict(vault)

    if path:
        for part in path.split("."):
            if not isinstance(data, dict) or part not in data:
                typer.echo(f"Unknown config path: {path}", err=True)
                raise typer.Exit(1)
            data = data[part]
        if _get_json_output():
            _echo_json({path: data})
        elif isinstance(data, dict):
            typer.echo(json.dumps(data))
        else:
            typer.echo(data)
        return

    if _get_json_output():
        _echo_json(data)
    else:
        typer.echo(f"file: {data['file']}")
        typer.echo(f"store: {data['store']}")
        typer.echo(f"vault: {vault.vault_key} (user {data['vault']['user_id']})")
        typer.echo(f"default_limit: {data['default_limit'] or 'none'}")


@app.command()
def mcp(
    store: StoreOption = None,
):
    """Start MCP stdio server for AI agent integration."""
    if store is not None:
        os.environ["VAULTQUERY_STORE_PATH"] = str(store)
    elif _get_store_override() is not None:
        os.environ["VAULTQUERY_STORE_PATH"] = str(_get_store_override())
    from .mcp import main as mcp_main
    mcp_main()


# -----------------------------------------------------------------------------

ERROR_LOG_FILENAME = "vaultquery-errors.log"


def _log_exception(exc: Exception, context: str = "") -> Path:
    """
    Append the exception's full traceback to the store's error log.

    Returns:
        Path to the error log file
    """
    log_path = get_default_store_path() / ERROR_LOG_FILENAME
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # error log is best-effort
    return log_path


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = _log_exception(e, context="vaultquery CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
