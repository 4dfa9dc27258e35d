"""
Shared pytest fixtures for vaultquery tests.

Provides record factories, in-memory record stores and a small sample vault
on disk.
"""

from pathlib import Path

import pytest

from vaultquery.types import DocumentRecord, VaultKey, WikiLink


VAULT_KEY = VaultKey(user_id="u1", owner="alice", repo="notes", branch="main")


def make_record(path: str, frontmatter: dict = None, tags=(), links=(), name: str = None,
                is_private: bool = False) -> DocumentRecord:
    """Create a test DocumentRecord. Name defaults to the file name."""
    return DocumentRecord(
        path=path,
        name=name if name is not None else path.rsplit("/", 1)[-1],
        sha="0" * 40,
        tags=tuple(tags),
        links=tuple(WikiLink(target=t) for t in links),
        frontmatter=dict(frontmatter or {}),
        is_private=is_private,
    )


class FakeStore:
    """Record store over a fixed list; counts fetches and hides private records."""

    def __init__(self, records):
        self.records = list(records)
        self.fetch_calls = 0

    async def fetch_public_records(self, vault_key):
        self.fetch_calls += 1
        return [r for r in self.records if not r.is_private]


class FailingStore:
    """Record store whose fetch always fails."""

    def __init__(self, error: Exception = None):
        self.error = error or RuntimeError("database is locked")

    async def fetch_public_records(self, vault_key):
        raise self.error


@pytest.fixture
def vault_key():
    return VAULT_KEY


@pytest.fixture
def project_records():
    """Three project notes with mixed statuses and priorities."""
    return [
        make_record("projects/a.md", {"status": "active", "priority": 2}, tags=["project"]),
        make_record("projects/b.md", {"status": "done", "priority": 1}, tags=["project"]),
        make_record("projects/sub/c.md", {"status": "active"}, tags=["project/sub"]),
        make_record("daily/2024-01-01.md", {"mood": "good"}, tags=["daily"]),
    ]


def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def sample_vault(tmp_path):
    """A notes directory with front matter, inline tags, links and private notes."""
    root = tmp_path / "vault"
    _write(root, "projects/alpha.md", (
        "---\n"
        "status: active\n"
        "priority: 2\n"
        "tags: [project, work]\n"
        "---\n"
        "# Alpha\n"
        "Links to [[Beta]] and [[notes/gamma|Gamma note]]. #urgent\n"
    ))
    _write(root, "projects/beta.md", (
        "---\n"
        "status: done\n"
        "priority: 1\n"
        "tags: project\n"
        "---\n"
        "Beta is finished. ![[diagram.png]]\n"
    ))
    _write(root, "notes/gamma.md", "No front matter here. #idea/small\n")
    _write(root, "notes/secret.md", "---\nprivate: true\n---\nhidden\n")
    _write(root, "_private/diary.md", "Dear diary\n")
    _write(root, ".obsidian/workspace.md", "editor state\n")
    _write(root, "README.txt", "not a note\n")
    return root
