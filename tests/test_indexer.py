"""
Tests for note parsing and directory indexing.
"""

import pytest
import yaml

from vaultquery.document_store import DocumentStore
from vaultquery.indexer import (
    build_record,
    content_sha,
    frontmatter_tags,
    index_directory,
    is_private_content,
    is_private_path,
    load_directory_records,
    merge_tags,
    parse_frontmatter,
    parse_inline_tags,
    parse_wikilinks,
)
from vaultquery.types import WikiLink


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(tmp_path / "store" / "index.db")
    yield s
    s.close()


class TestFrontmatter:

    def test_parsed(self):
        fm, body = parse_frontmatter("---\nstatus: active\nn: 3\n---\nBody\n")
        assert fm == {"status": "active", "n": 3}
        assert body == "Body\n"

    def test_absent(self):
        fm, body = parse_frontmatter("Just text\n---\nnot: fm\n---\n")
        assert fm == {}
        assert body.startswith("Just text")

    def test_non_mapping_ignored(self):
        fm, _ = parse_frontmatter("---\n- a\n- b\n---\nx")
        assert fm == {}

    def test_empty_block(self):
        fm, body = parse_frontmatter("---\n\n---\nx")
        assert fm == {}
        assert body == "x"

    def test_malformed_raises(self):
        with pytest.raises(yaml.YAMLError):
            parse_frontmatter("---\nkey: [unclosed\n---\n")


class TestTagsAndLinks:

    def test_inline_tags(self):
        assert parse_inline_tags("Hello #Work and #idea/small.\n#work again") == ["work", "idea/small"]

    def test_inline_tags_ignore_code_and_headings(self):
        text = "# Heading\n`#notatag`\n```\n#alsonot\n```\nreal #tag"
        assert parse_inline_tags(text) == ["tag"]

    def test_tag_must_start_with_letter(self):
        assert parse_inline_tags("issue #123 and #a1") == ["a1"]

    def test_frontmatter_tags_list(self):
        assert frontmatter_tags({"tags": ["Project", "#work", None]}) == ["project", "work"]

    def test_frontmatter_tags_string(self):
        assert frontmatter_tags({"tags": "a, b"}) == ["a", "b"]

    def test_frontmatter_tags_missing(self):
        assert frontmatter_tags({}) == []

    def test_merge_dedups_in_order(self):
        assert merge_tags(["a", "b"], ["b", "c"]) == ("a", "b", "c")

    def test_wikilinks(self):
        links = parse_wikilinks("See [[Beta]], [[notes/gamma|Gamma]] and ![[img.png]].")
        assert links == [
            WikiLink(target="Beta"),
            WikiLink(target="notes/gamma", display="Gamma"),
            WikiLink(target="img.png", is_embed=True),
        ]


class TestPrivacy:

    @pytest.mark.parametrize("path", ["_private/a.md", "x/private/a.md", "_private.md/b.md", "Private/a.md"])
    def test_private_paths(self, path):
        assert is_private_path(path)

    @pytest.mark.parametrize("path", ["privateer/a.md", "notes/my_private_stuff.md", "a.md"])
    def test_public_paths(self, path):
        assert not is_private_path(path)

    def test_private_frontmatter(self):
        assert is_private_content({"private": True}, "")
        assert not is_private_content({"private": "yes"}, "")

    def test_private_tag(self):
        assert is_private_content({}, "some text #private\n")
        assert not is_private_content({}, "#privateer")
        assert not is_private_content({}, "`#private`")


class TestBuildRecord:

    def test_record(self):
        data = b"---\ntags: [a]\n---\nText #b [[C]]\n"
        record = build_record("x/Note.md", data)
        assert record.path == "x/Note.md"
        assert record.name == "Note"
        assert record.tags == ("a", "b")
        assert record.links == (WikiLink(target="C"),)
        assert record.sha == content_sha(data)
        assert not record.is_private

    def test_git_blob_hash(self):
        """Hashes match git's blob ids."""
        assert content_sha(b"") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"

    def test_not_utf8(self):
        with pytest.raises(UnicodeDecodeError):
            build_record("a.md", b"\xff\xfe\x00")

    def test_impossible_date(self):
        with pytest.raises(ValueError):
            build_record("a.md", b"---\ndue: 2024-02-30\n---\n")


class TestIndexDirectory:

    def test_first_run(self, store, vault_key, sample_vault):
        report = index_directory(store, vault_key, sample_vault)
        assert report.new_files == 4
        assert report.indexed_files == 4
        assert report.failed_files == 0
        paths = [r.path for r in store.list_all(vault_key)]
        assert paths == ["notes/gamma.md", "notes/secret.md", "projects/alpha.md", "projects/beta.md"]
        assert store.get_status(vault_key).ready

    def test_private_content_stored_but_hidden(self, store, vault_key, sample_vault):
        index_directory(store, vault_key, sample_vault)
        assert store.get(vault_key, "notes/secret.md").is_private
        assert "notes/secret.md" not in [r.path for r in store.list_public(vault_key)]

    def test_alpha_metadata(self, store, vault_key, sample_vault):
        index_directory(store, vault_key, sample_vault)
        alpha = store.get(vault_key, "projects/alpha.md")
        assert alpha.frontmatter["status"] == "active"
        assert alpha.tags == ("project", "work", "urgent")
        assert [l.target for l in alpha.links] == ["Beta", "notes/gamma"]

    def test_refresh_is_incremental(self, store, vault_key, sample_vault):
        index_directory(store, vault_key, sample_vault)
        (sample_vault / "projects" / "beta.md").write_text("---\nstatus: active\n---\n", encoding="utf-8")
        (sample_vault / "notes" / "gamma.md").unlink()
        (sample_vault / "notes" / "delta.md").write_text("new", encoding="utf-8")

        report = index_directory(store, vault_key, sample_vault)
        assert (report.new_files, report.modified_files, report.unchanged_files, report.deleted_files) == (1, 1, 2, 1)
        assert report.indexed_files == 2
        assert store.get(vault_key, "projects/beta.md").frontmatter == {"status": "active"}
        assert store.get(vault_key, "notes/gamma.md") is None

    def test_rebuild_reparses_everything(self, store, vault_key, sample_vault):
        index_directory(store, vault_key, sample_vault)
        report = index_directory(store, vault_key, sample_vault, rebuild=True)
        assert report.mode == "rebuild"
        assert report.new_files == 4
        assert report.unchanged_files == 0

    def test_bad_note_counted_as_failed(self, store, vault_key, sample_vault):
        (sample_vault / "broken.md").write_text("---\nkey: [oops\n---\n", encoding="utf-8")
        report = index_directory(store, vault_key, sample_vault)
        assert report.failed_files == 1
        assert report.indexed_files == 4
        status = store.get_status(vault_key)
        assert status.ready
        assert status.failed_files == 1

    def test_impossible_date_counted_as_failed(self, store, vault_key, tmp_path):
        """A date YAML can't construct fails that note only, not the run."""
        root = tmp_path / "dated"
        root.mkdir()
        (root / "good.md").write_text("---\ndue: 2024-02-28\n---\n", encoding="utf-8")
        (root / "bad.md").write_text("---\ndue: 2024-02-30\n---\n", encoding="utf-8")
        report = index_directory(store, vault_key, root)
        assert report.failed_files == 1
        assert report.indexed_files == 1
        assert [r.path for r in store.list_all(vault_key)] == ["good.md"]
        assert store.get_status(vault_key).ready

    def test_not_a_directory(self, store, vault_key, tmp_path):
        with pytest.raises(NotADirectoryError):
            index_directory(store, vault_key, tmp_path / "nope")

    def test_load_directory_records(self, sample_vault):
        records = load_directory_records(sample_vault)
        assert len(records) == 4
        assert sum(r.is_private for r in records) == 1

    def test_load_directory_records_skips_impossible_date(self, tmp_path):
        (tmp_path / "good.md").write_text("plain note\n", encoding="utf-8")
        (tmp_path / "bad.md").write_text("---\ndue: 2024-02-30\n---\n", encoding="utf-8")
        assert [r.path for r in load_directory_records(tmp_path)] == ["good.md"]
