"""
Tests for the SQLite vault index store.
"""

import datetime

import pytest
from conftest import make_record

from vaultquery.document_store import DocumentStore, MemoryRecordStore
from vaultquery.errors import StoreUnavailableError
from vaultquery.protocol import RecordStoreProtocol
from vaultquery.types import VaultKey, WikiLink


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(tmp_path / "index.db")
    yield s
    s.close()


OTHER_KEY = VaultKey(user_id="u2", owner="alice", repo="notes", branch="main")


class TestRecords:

    def test_upsert_and_get(self, store, vault_key):
        record = make_record("a.md", {"x": [1, {"y": "z"}]}, tags=["t"], links=["b"])
        store.upsert(vault_key, record)
        loaded = store.get(vault_key, "a.md")
        assert loaded == record
        assert loaded.links == (WikiLink(target="b"),)

    def test_upsert_replaces(self, store, vault_key):
        store.upsert(vault_key, make_record("a.md", {"v": 1}))
        store.upsert(vault_key, make_record("a.md", {"v": 2}))
        assert store.get(vault_key, "a.md").frontmatter == {"v": 2}
        assert store.count(vault_key) == 1

    def test_dates_stored_as_text(self, store, vault_key):
        """Non-JSON front-matter values (YAML dates) are stored as strings."""
        store.upsert(vault_key, make_record("a.md", {"due": datetime.date(2024, 1, 5)}))
        assert store.get(vault_key, "a.md").frontmatter == {"due": "2024-01-05"}

    def test_vaults_are_isolated(self, store, vault_key):
        store.upsert(vault_key, make_record("a.md"))
        assert store.get(OTHER_KEY, "a.md") is None
        assert store.list_all(OTHER_KEY) == []

    def test_list_public_hides_private(self, store, vault_key):
        store.upsert_many(vault_key, [
            make_record("b.md"),
            make_record("a.md"),
            make_record("secret.md", is_private=True),
        ])
        assert [r.path for r in store.list_public(vault_key)] == ["a.md", "b.md"]
        assert len(store.list_all(vault_key)) == 3

    def test_delete(self, store, vault_key):
        store.upsert_many(vault_key, [make_record("a.md"), make_record("b.md")])
        assert store.delete(vault_key, "a.md")
        assert not store.delete(vault_key, "a.md")
        assert store.delete_many(vault_key, ["b.md", "zzz.md"]) == 1
        assert store.count(vault_key) == 0

    def test_delete_all_scoped_to_vault(self, store, vault_key):
        store.upsert(vault_key, make_record("a.md"))
        store.upsert(OTHER_KEY, make_record("a.md"))
        assert store.delete_all(vault_key) == 1
        assert store.count(OTHER_KEY) == 1

    def test_get_shas(self, store, vault_key):
        store.upsert(vault_key, make_record("a.md"))
        assert store.get_shas(vault_key) == {"a.md": "0" * 40}

    def test_upsert_many_empty(self, store, vault_key):
        assert store.upsert_many(vault_key, []) == 0


class TestFetch:

    @pytest.mark.asyncio
    async def test_fetch_public_records(self, store, vault_key):
        store.upsert_many(vault_key, [make_record("a.md"), make_record("s.md", is_private=True)])
        records = await store.fetch_public_records(vault_key)
        assert [r.path for r in records] == ["a.md"]

    @pytest.mark.asyncio
    async def test_fetch_after_close_raises(self, store, vault_key):
        store.close()
        with pytest.raises(StoreUnavailableError):
            await store.fetch_public_records(vault_key)

    def test_satisfies_protocol(self, store):
        assert isinstance(store, RecordStoreProtocol)
        assert isinstance(MemoryRecordStore([]), RecordStoreProtocol)

    @pytest.mark.asyncio
    async def test_memory_store_hides_private(self, vault_key):
        store = MemoryRecordStore([make_record("a.md"), make_record("s.md", is_private=True)])
        assert [r.path for r in await store.fetch_public_records(vault_key)] == ["a.md"]


class TestStatus:

    def test_never_indexed(self, store, vault_key):
        assert store.get_status(vault_key) is None

    def test_lifecycle(self, store, vault_key):
        status = store.start_indexing(vault_key, total_files=3)
        assert status.status == "indexing"
        assert not status.ready

        store.update_progress(vault_key, indexed_files=1, failed_files=0)
        assert store.get_status(vault_key).indexed_files == 1

        store.complete_indexing(vault_key, indexed_files=2, failed_files=1)
        status = store.get_status(vault_key)
        assert status.ready
        assert (status.total_files, status.indexed_files, status.failed_files) == (3, 2, 1)
        assert status.completed_at is not None

    def test_failure(self, store, vault_key):
        store.start_indexing(vault_key, total_files=1)
        store.fail_indexing(vault_key, "disk full")
        status = store.get_status(vault_key)
        assert status.status == "failed"
        assert status.error_message == "disk full"

    def test_restart_clears_error(self, store, vault_key):
        store.fail_indexing(vault_key, "boom")
        status = store.start_indexing(vault_key, total_files=0)
        assert status.error_message is None

    def test_persists_across_connections(self, tmp_path, vault_key):
        with DocumentStore(tmp_path / "index.db") as first:
            first.upsert(vault_key, make_record("a.md"))
            first.complete_indexing(vault_key, 1, 0)
        with DocumentStore(tmp_path / "index.db") as second:
            assert second.get_status(vault_key).ready
            assert second.count(vault_key) == 1
