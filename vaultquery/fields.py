"""
Field resolution for vault records.

Two tiers: a fixed table of ``file.*`` virtual fields, then a dotted walk
through front matter. Resolution never raises; a miss yields ``MISSING``.
"""

from typing import Any, Callable

from .types import MISSING, DocumentRecord, Link

MARKDOWN_SUFFIX = ".md"


def strip_markdown_suffix(name: str) -> str:
    """Drop one trailing ``.md`` from a file name."""
    if name.endswith(MARKDOWN_SUFFIX):
        return name[: -len(MARKDOWN_SUFFIX)]
    return name


def folder_of(path: str) -> str:
    """Containing folder of a record path; ``/`` at the vault root."""
    head, sep, _ = path.rpartition("/")
    return head if sep and head else "/"


def _file_name(record: DocumentRecord) -> Any:
    return strip_markdown_suffix(record.name)


def _file_path(record: DocumentRecord) -> Any:
    return record.path


def _file_link(record: DocumentRecord) -> Any:
    return Link(path=record.path, name=strip_markdown_suffix(record.name))


def _file_folder(record: DocumentRecord) -> Any:
    return folder_of(record.path)


def _file_tags(record: DocumentRecord) -> Any:
    return list(record.tags or ())


def _file_outlinks(record: DocumentRecord) -> Any:
    return [link.target for link in record.links or ()]


def _file_inlinks(record: DocumentRecord) -> Any:
    # Backlinks need the whole vault; the index doesn't store them.
    return []


VIRTUAL_FIELDS: dict[str, Callable[[DocumentRecord], Any]] = {
    "file.name": _file_name,
    "file.path": _file_path,
    "file.link": _file_link,
    "file.folder": _file_folder,
    "file.tags": _file_tags,
    "file.outlinks": _file_outlinks,
    "file.inlinks": _file_inlinks,
}


def resolve_frontmatter(frontmatter: Any, field_path: str) -> Any:
    """Walk a dotted path through nested front-matter maps.

    Stops with MISSING at the first absent key or non-map value.
    """
    value = frontmatter
    for segment in field_path.split("."):
        if not isinstance(value, dict) or segment not in value:
            return MISSING
        value = value[segment]
    return value


def resolve(record: DocumentRecord, field_path: str) -> Any:
    """
    Resolve a field path against a record.

    Args:
        record: The record to read
        field_path: ``file.*`` virtual field or dotted front-matter path

    Returns:
        The value, or MISSING if the path doesn't exist
    """
    handler = VIRTUAL_FIELDS.get(field_path)
    if handler is not None:
        return handler(record)
    return resolve_frontmatter(record.frontmatter, field_path)
