"""
Tests for result serialization and TABLE cell values.
"""

from conftest import make_record

from vaultquery.executor import run_pipeline
from vaultquery.results import cell_value, to_entry
from vaultquery.types import MISSING, Query, QueryResult, ResultGroup, TableColumn


class TestToDict:

    def test_success_shape(self):
        result = run_pipeline(Query(), [make_record("a.md", {"x": 1})])
        assert result.to_dict() == {
            "success": True,
            "entries": [{"path": "a.md", "name": "a.md", "frontmatter": {"x": 1}}],
            "totalCount": 1,
        }

    def test_grouped_shape(self):
        result = run_pipeline(Query(group_by="x"), [make_record("a.md", {"x": 1})])
        d = result.to_dict()
        assert d["entries"] == []
        assert d["groups"] == [{"key": "1", "rows": [{"path": "a.md", "name": "a.md", "frontmatter": {"x": 1}}]}]

    def test_failure_shape(self):
        d = QueryResult.failure("boom", needs_index=True).to_dict()
        assert d == {"success": False, "entries": [], "totalCount": 0, "error": "boom", "needsIndex": True}

    def test_entry_frontmatter_is_a_copy(self):
        record = make_record("a.md", {"x": 1})
        entry = to_entry(record)
        entry.frontmatter["x"] = 2
        assert record.frontmatter["x"] == 1


class TestEntryCells:

    def _entry(self, frontmatter):
        return to_entry(make_record("a.md", frontmatter))

    def test_plain_field(self):
        assert cell_value(self._entry({"s": "ok"}), TableColumn("s")) == "ok"

    def test_missing_field(self):
        assert cell_value(self._entry({}), TableColumn("s")) is MISSING

    def test_virtual_field(self):
        assert cell_value(self._entry({}), TableColumn("file.name")) == "a"

    def test_length_of_list(self):
        assert cell_value(self._entry({"t": [1, 2, 3]}), TableColumn("t", function="length")) == 3

    def test_count_skips_nulls(self):
        assert cell_value(self._entry({"t": [1, None]}), TableColumn("t", function="count")) == 1

    def test_count_scalar(self):
        assert cell_value(self._entry({"t": "x"}), TableColumn("t", function="count")) == 1

    def test_sum(self):
        assert cell_value(self._entry({"t": [1, "2", "x"]}), TableColumn("t", function="sum")) == 3

    def test_sum_of_nothing(self):
        assert cell_value(self._entry({}), TableColumn("t", function="sum")) is MISSING


class TestGroupCells:

    def _group(self):
        result = run_pipeline(Query(group_by="s"), [
            make_record("1.md", {"s": "a", "h": 2}),
            make_record("2.md", {"s": "a", "h": 3.5}),
            make_record("3.md", {"s": "a"}),
        ])
        return result.groups[0]

    def test_length_rows(self):
        assert cell_value(self._group(), TableColumn("rows", function="length"), "s") == 3

    def test_count_field(self):
        assert cell_value(self._group(), TableColumn("h", function="count"), "s") == 2

    def test_sum_field(self):
        assert cell_value(self._group(), TableColumn("h", function="sum"), "s") == 5.5

    def test_group_field_shows_key(self):
        assert cell_value(self._group(), TableColumn("s"), "s") == "a"

    def test_key_column(self):
        assert cell_value(self._group(), TableColumn("key"), "s") == "a"

    def test_other_field_lists_row_values(self):
        assert cell_value(self._group(), TableColumn("h"), "s") == [2, 3.5, MISSING]

    def test_absent_key(self):
        group = ResultGroup(key=None)
        assert cell_value(group, TableColumn("s"), "s") is MISSING
