"""
Tests for the MCP stdio server tool functions.

Tests the tool layer against a real Vault in a temporary store.
"""

import json

import pytest

from vaultquery.api import Vault


@pytest.fixture
def vault(tmp_path, sample_vault):
    v = Vault(tmp_path / "store")
    v.index(sample_vault)
    yield v
    v.close()


@pytest.fixture(autouse=True)
def patch_vault(vault):
    """Point the server's lazily created Vault at the test store."""
    import vaultquery.mcp as mcp_mod
    mcp_mod._vault = vault
    yield
    mcp_mod._vault = None


class TestVaultQuery:

    @pytest.mark.asyncio
    async def test_text_result(self):
        from vaultquery.mcp import vault_query
        result = await vault_query(query='LIST FROM "projects" SORT priority')
        assert result == "- projects/beta.md\n- projects/alpha.md"

    @pytest.mark.asyncio
    async def test_json_result(self):
        from vaultquery.mcp import vault_query
        result = json.loads(await vault_query(query="LIST GROUP BY status", as_json=True))
        assert result["success"] is True
        assert [g["key"] for g in result["groups"]] == [None, "active", "done"]

    @pytest.mark.asyncio
    async def test_syntax_error(self):
        from vaultquery.mcp import vault_query
        result = await vault_query(query="DELETE everything")
        assert result.startswith("Error: Syntax error")


class TestIndexStatus:

    @pytest.mark.asyncio
    async def test_indexed(self):
        from vaultquery.mcp import vault_index_status
        result = await vault_index_status()
        assert "completed" in result
        assert "4 records" in result

    @pytest.mark.asyncio
    async def test_not_indexed(self, tmp_path):
        import vaultquery.mcp as mcp_mod
        with Vault(tmp_path / "empty") as empty:
            mcp_mod._vault = empty
            result = await mcp_mod.vault_index_status()
        assert result.endswith("not indexed")
