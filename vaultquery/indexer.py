"""
Index builder: crawl a directory of markdown notes into the vault index.

Each note is parsed for YAML front matter, tags (front matter plus inline
``#tags``), wikilinks and privacy markers, and stored as one DocumentRecord.
Re-indexing is incremental: files whose content hash is unchanged are not
re-parsed, and records for files that disappeared are deleted.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from .document_store import DocumentStore
from .fields import strip_markdown_suffix
from .types import DocumentRecord, VaultKey, WikiLink

logger = logging.getLogger(__name__)

# Progress is written to the status table every this many files
PROGRESS_INTERVAL = 50

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_WIKILINK_RE = re.compile(r"(!?)\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")
_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`[^`]+`")
_INLINE_TAG_RE = re.compile(r"(?:^|\s)#([a-zA-Z][a-zA-Z0-9_\-/]*)")
_PRIVATE_TAG_RE = re.compile(r"(?:^|\s)#private(?:\s|$)", re.MULTILINE)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def is_private_path(path: str) -> bool:
    """True if any path segment marks the note as private (``_private``, ``private``)."""
    return any(
        segment == "_private" or segment == "private" or segment.startswith("_private.")
        for segment in path.lower().split("/")
    )


def parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """
    Split a note into front matter and body.

    Returns:
        (frontmatter, body). Front matter is empty if absent or not a map.

    Raises:
        yaml.YAMLError: If the front matter block is not valid YAML
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    data = yaml.safe_load(match.group(1))
    body = text[match.end():]
    if not isinstance(data, dict):
        return {}, body
    return {str(k): v for k, v in data.items()}, body


def parse_wikilinks(text: str) -> list[WikiLink]:
    """Find ``[[target]]``, ``[[target|display]]`` and ``![[embed]]`` links."""
    links = []
    for match in _WIKILINK_RE.finditer(text):
        display = match.group(3).strip() if match.group(3) else None
        links.append(WikiLink(
            target=match.group(2).strip(),
            display=display,
            is_embed=match.group(1) == "!",
        ))
    return links


def _strip_code(text: str) -> str:
    return _INLINE_CODE_RE.sub("", _CODE_BLOCK_RE.sub("", text))


def parse_inline_tags(body: str) -> list[str]:
    """Inline ``#tags`` outside code, lower-cased, in order of first appearance."""
    tags: list[str] = []
    for match in _INLINE_TAG_RE.finditer(_strip_code(body)):
        tag = match.group(1).lower()
        if tag not in tags:
            tags.append(tag)
    return tags


def frontmatter_tags(frontmatter: dict[str, Any]) -> list[str]:
    """Tags declared in front matter, as a list or a comma-separated string."""
    raw = frontmatter.get("tags")
    if isinstance(raw, str):
        values = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        values = [str(t) for t in raw if t is not None]
    else:
        return []
    return [v.strip().lstrip("#").lower() for v in values if v.strip()]


def merge_tags(*sources: list[str]) -> tuple[str, ...]:
    merged: list[str] = []
    for source in sources:
        for tag in source:
            if tag and tag not in merged:
                merged.append(tag)
    return tuple(merged)


def is_private_content(frontmatter: dict[str, Any], body: str) -> bool:
    """True for ``private: true`` in front matter or a standalone ``#private`` tag."""
    if frontmatter.get("private") is True:
        return True
    return bool(_PRIVATE_TAG_RE.search(_strip_code(body)))


def content_sha(data: bytes) -> str:
    """Git blob hash of file content, so hashes match the repository's."""
    header = f"blob {len(data)}\0".encode()
    return hashlib.sha1(header + data).hexdigest()


def build_record(path: str, data: bytes) -> DocumentRecord:
    """
    Parse one note into a record.

    Args:
        path: Path relative to the vault root, ``/``-separated
        data: Raw file content

    Raises:
        UnicodeDecodeError: If the note isn't UTF-8
        ValueError: If a front-matter scalar can't be converted, such as an
            impossible date
        yaml.YAMLError: If the front matter is malformed
    """
    text = data.decode("utf-8")
    frontmatter, body = parse_frontmatter(text)
    return DocumentRecord(
        path=path,
        name=strip_markdown_suffix(path.rsplit("/", 1)[-1]),
        sha=content_sha(data),
        tags=merge_tags(frontmatter_tags(frontmatter), parse_inline_tags(body)),
        links=tuple(parse_wikilinks(text)),
        frontmatter=frontmatter,
        is_private=is_private_content(frontmatter, body),
    )


# ---------------------------------------------------------------------------
# Directory crawl
# ---------------------------------------------------------------------------

def scan_directory(root: Path) -> Iterator[tuple[str, Path]]:
    """
    Yield (vault path, file) for every public markdown note under root.

    Skips hidden files and folders (names starting with '.'), symlinks, and
    private paths. Sorted by vault path.
    """
    found = []
    for file in root.rglob("*.md"):
        rel = file.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        if file.is_symlink() or not file.is_file():
            continue
        vault_path = rel.as_posix()
        if is_private_path(vault_path):
            continue
        found.append((vault_path, file))
    yield from sorted(found)


def load_directory_records(root: Path) -> list[DocumentRecord]:
    """Parse every note under root without touching a store.

    Notes that can't be read or parsed are logged and skipped.
    """
    records = []
    for vault_path, file in scan_directory(root):
        try:
            records.append(build_record(vault_path, file.read_bytes()))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to index %s: %s", vault_path, e)
    return records


@dataclass
class IndexReport:
    """What an indexing run did."""
    mode: str
    total_files: int = 0
    new_files: int = 0
    modified_files: int = 0
    unchanged_files: int = 0
    deleted_files: int = 0
    indexed_files: int = 0
    failed_files: int = 0

    def to_dict(self) -> dict:
        from dataclasses import asdict
        return asdict(self)


def index_directory(
    store: DocumentStore,
    vault_key: VaultKey,
    root: Path,
    *,
    rebuild: bool = False,
) -> IndexReport:
    """
    Index a directory of notes into the store.

    Compares content hashes with what the store already holds: new and
    modified notes are parsed and upserted, unchanged ones are skipped,
    and records whose files are gone are deleted. With ``rebuild`` the
    vault's records are cleared first and every note is parsed.

    A note that fails to read or parse is counted as failed and logged;
    it doesn't stop the run. The vault's index status ends as ``completed``,
    or ``failed`` if something unexpected interrupts the run.

    Raises:
        NotADirectoryError: If root is not a directory
    """
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    report = IndexReport(mode="rebuild" if rebuild else "refresh")
    if rebuild:
        store.delete_all(vault_key)
        existing: dict[str, str] = {}
    else:
        existing = store.get_shas(vault_key)

    pending: list[tuple[str, Optional[bytes]]] = []
    seen: set[str] = set()
    for vault_path, file in scan_directory(root):
        seen.add(vault_path)
        report.total_files += 1
        try:
            data = file.read_bytes()
        except OSError as e:
            logger.warning("Failed to read %s: %s", vault_path, e)
            pending.append((vault_path, None))
            continue
        known = existing.get(vault_path)
        if known is None:
            report.new_files += 1
        elif known != content_sha(data):
            report.modified_files += 1
        else:
            report.unchanged_files += 1
            continue
        pending.append((vault_path, data))

    deleted = [p for p in existing if p not in seen]
    if deleted:
        report.deleted_files = store.delete_many(vault_key, deleted)

    store.start_indexing(vault_key, len(pending))
    try:
        for position, (vault_path, data) in enumerate(pending, start=1):
            if data is None:
                report.failed_files += 1
            else:
                try:
                    record = build_record(vault_path, data)
                except (ValueError, yaml.YAMLError) as e:
                    logger.warning("Failed to index %s: %s", vault_path, e)
                    report.failed_files += 1
                else:
                    store.upsert(vault_key, record)
                    report.indexed_files += 1
            if position % PROGRESS_INTERVAL == 0:
                store.update_progress(vault_key, report.indexed_files, report.failed_files)
        store.complete_indexing(vault_key, report.indexed_files, report.failed_files)
    except Exception as e:
        store.fail_indexing(vault_key, str(e))
        raise

    logger.info(
        "Indexed %s (%s): %d new, %d modified, %d unchanged, %d deleted, %d failed",
        vault_key, report.mode, report.new_files, report.modified_files,
        report.unchanged_files, report.deleted_files, report.failed_files,
    )
    return report
