"""
Configuration management for vaultquery stores.

The configuration is stored as a TOML file in the store directory.
It names the vault the store indexes and default query settings.
"""

import getpass
import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w

from .types import VaultKey


CONFIG_FILENAME = "vaultquery.toml"
CONFIG_VERSION = 1
DEFAULT_STORE_DIR = ".vaultquery"


@dataclass
class VaultConfig:
    """Which vault this store indexes."""
    user_id: str = "local"
    owner: str = "local"
    repo: str = "vault"
    branch: str = "main"

    @property
    def key(self) -> VaultKey:
        return VaultKey(user_id=self.user_id, owner=self.owner, repo=self.repo, branch=self.branch)


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    vault: VaultConfig = field(default_factory=VaultConfig)
    default_limit: int = 0  # 0 = no limit

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """Path to the SQLite vault index."""
        return self.path / "vault-index.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """
    Resolve the store directory.

    Priority:
    1. VAULTQUERY_STORE_PATH environment variable
    2. ~/.vaultquery
    """
    env_path = os.environ.get("VAULTQUERY_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / DEFAULT_STORE_DIR


def _default_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "local"


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with defaults for a local vault."""
    return StoreConfig(
        path=store_path,
        vault=VaultConfig(user_id=_default_user()),
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    vault = data.get("vault", {})
    default_limit = data.get("query", {}).get("default_limit", 0)
    if not isinstance(default_limit, int) or default_limit < 0:
        raise ValueError(f"query.default_limit must be a non-negative integer: {default_limit!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        vault=VaultConfig(
            user_id=str(vault.get("user_id", "local")),
            owner=str(vault.get("owner", "local")),
            repo=str(vault.get("repo", "vault")),
            branch=str(vault.get("branch", "main")),
        ),
        default_limit=default_limit,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "vault": {
            "user_id": config.vault.user_id,
            "owner": config.vault.owner,
            "repo": config.vault.repo,
            "branch": config.vault.branch,
        },
        "query": {
            "default_limit": config.default_limit,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
