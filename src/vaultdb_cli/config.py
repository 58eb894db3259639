"""CLI configuration management.

Handles persistent configuration stored in ~/.vaultdb/config.yaml.
Supports environment variable overrides and tracks where each value came from.
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .shared.logging import get_logger
from .shared.paths import VAULTDB_DIR

logger = get_logger(__name__)

ENV_PREFIX = "VAULTDB_"

# Keys holding secrets are masked by `vaultdb config show`
SECRET_KEYS = {"vault_license", "oracle_password", "vault_db_password", "static_db_password"}

# Unquoted Oracle identifier
ORACLE_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_$#]{0,127}$")

ORACLE_ACCOUNT_KEYS = ("vault_db_user", "static_db_user")

# Passwords are written into SQL inside double quotes
ORACLE_PASSWORD_KEYS = ("oracle_password", "vault_db_password", "static_db_password")


@dataclass
class BootstrapConfig:
    """Bootstrap configuration."""

    # Vault
    vault_addr: str = "http://127.0.0.1:8200"
    vault_image: str = "hashicorp/vault-enterprise:1.15-ent"
    vault_license: str = ""
    vault_port: int = 8200
    key_shares: int = 1
    key_threshold: int = 1
    http_timeout: float = 10.0

    # Oracle
    oracle_image: str = "gvenzl/oracle-xe:21-slim"
    oracle_password: str = ""
    oracle_port: int = 1521
    oracle_service: str = "XEPDB1"
    vault_db_user: str = "vault"
    vault_db_password: str = "vault"
    static_db_user: str = "staticvault"
    static_db_password: str = "staticvault"

    # Artifacts
    plugin_name: str = "vault-plugin-database-oracle"
    plugin_version: str = "0.10.2"
    plugin_url: str = (
        "https://releases.hashicorp.com/vault-plugin-database-oracle/0.10.2/"
        "vault-plugin-database-oracle_0.10.2_linux_amd64.zip"
    )
    instantclient_url: str = (
        "https://download.oracle.com/otn_software/linux/instantclient/"
        "instantclient-basiclite-linuxx64.zip"
    )

    # Secrets engine
    mount_path: str = "database"
    connection_name: str = "oracle"
    dynamic_role: str = "dynamic-role"
    static_role: str = "static-role"
    default_ttl: int = 3600
    max_ttl: int = 86400
    rotation_period: int = 3600
    max_connection_lifetime: str = "60s"

    # Polling; 0 attempts means wait forever
    poll_interval: float = 5.0
    vault_max_attempts: int = 60
    oracle_max_attempts: int = 120

    base_dir: Path = field(default_factory=lambda: VAULTDB_DIR)

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def as_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        """Return public config values as a plain dict."""
        values: dict[str, Any] = {}
        for name in config_keys():
            value = getattr(self, name)
            if isinstance(value, Path):
                value = str(value)
            if mask_secrets and name in SECRET_KEYS and value:
                value = "********"
            values[name] = value
        return values


def config_keys() -> list[str]:
    """Names of all user-settable config keys."""
    return [f.name for f in fields(BootstrapConfig) if not f.name.startswith("_")]


def env_var_for(key: str) -> str:
    """Environment variable overriding a config key (e.g., VAULTDB_VAULT_ADDR)."""
    return f"{ENV_PREFIX}{key.upper()}"


def _coerce(key: str, raw: Any) -> Any:
    """Convert a raw file/env value to the type of the config field.

    Raises:
        ValueError: If the value cannot be converted or is not usable in SQL
    """
    default = getattr(BootstrapConfig(), key)
    if isinstance(default, Path):
        return Path(str(raw)).expanduser()
    if isinstance(default, bool):
        return str(raw).lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    value = str(raw)
    if key in ORACLE_ACCOUNT_KEYS and not ORACLE_IDENTIFIER.match(value):
        raise ValueError(f"{key} must be an unquoted Oracle identifier, got {value!r}")
    if key in ORACLE_PASSWORD_KEYS and '"' in value:
        raise ValueError(f"{key} may not contain double quotes")
    return value


def get_config_path() -> Path:
    """Get the config file path.

    Returns:
        Path to ~/.vaultdb/config.yaml
    """
    return VAULTDB_DIR / "config.yaml"


def load_config(config_path: str | Path | None = None) -> BootstrapConfig:
    """Load bootstrap configuration.

    Precedence (highest to lowest):
    1. Environment variables (VAULTDB_*)
    2. Config file (~/.vaultdb/config.yaml or --config)
    3. Defaults

    Args:
        config_path: Explicit config file path

    Returns:
        BootstrapConfig with values and sources

    Raises:
        ValueError: If a value cannot be converted to the field type
    """
    config = BootstrapConfig()
    sources: dict[str, str] = {key: "default" for key in config_keys()}

    path = Path(config_path) if config_path else get_config_path()
    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.warning("config_file_unreadable", path=str(path), error=str(e))
            file_config = {}

        for key, raw in file_config.items():
            if key not in sources:
                logger.warning("config_key_unknown", path=str(path), key=key)
                continue
            setattr(config, key, _coerce(key, raw))
            sources[key] = "config file"

    for key in config_keys():
        raw = os.environ.get(env_var_for(key))
        if raw:
            setattr(config, key, _coerce(key, raw))
            sources[key] = "environment"

    config._sources = sources
    return config


def save_config(key: str, value: Any, config_path: str | Path | None = None) -> None:
    """Save a config value to the config file.

    Args:
        key: Config key
        value: Value to save
        config_path: Explicit config file path

    Raises:
        KeyError: If key is not a known config key
    """
    if key not in config_keys():
        raise KeyError(key)

    path = Path(config_path) if config_path else get_config_path()

    existing: dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            existing = yaml.safe_load(f) or {}

    coerced = _coerce(key, value)
    existing[key] = str(coerced) if isinstance(coerced, Path) else coerced

    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False)


def unset_config(key: str, config_path: str | Path | None = None) -> bool:
    """Remove a config value from the config file.

    Args:
        key: Config key to remove
        config_path: Explicit config file path

    Returns:
        True if key was removed, False if not found
    """
    path = Path(config_path) if config_path else get_config_path()
    if not path.exists():
        return False

    with open(path) as f:
        existing = yaml.safe_load(f) or {}

    if key not in existing:
        return False

    del existing[key]

    with open(path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False)

    return True
