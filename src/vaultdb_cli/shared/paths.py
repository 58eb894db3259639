"""Path management for vaultdb.

Manages the ~/.vaultdb/ directory structure. Every path is derived from a
base directory so tests and alternate installs can relocate the whole tree.
"""

from pathlib import Path

# Base directory for all vaultdb data
VAULTDB_DIR = Path.home() / ".vaultdb"

# Root credential and unseal key live beside, not inside, the tracked state
ROOT_TOKEN_FILENAME = "root_token"
UNSEAL_KEY_FILENAME = "unseal_key"
STATE_FILENAME = "state.json"
COMPOSE_FILENAME = "docker-compose.yaml"
INIT_RECORD_FILENAME = "init.json"


def vault_dir(base_dir: Path) -> Path:
    """Directory holding everything mounted into the Vault container."""
    return base_dir / "vault"


def vault_config_dir(base_dir: Path) -> Path:
    return vault_dir(base_dir) / "config"


def vault_plugin_dir(base_dir: Path) -> Path:
    return vault_dir(base_dir) / "plugins"


def vault_data_dir(base_dir: Path) -> Path:
    return vault_dir(base_dir) / "data"


def instantclient_dir(base_dir: Path) -> Path:
    return base_dir / "instantclient"


def downloads_dir(base_dir: Path) -> Path:
    return base_dir / "downloads"


def ensure_dirs(base_dir: Path) -> list[Path]:
    """Create directory structure if missing.

    The base directory is created with mode 0o700 (user-only access) since it
    holds the root token and unseal key.

    Args:
        base_dir: vaultdb base directory

    Returns:
        List of directories that now exist
    """
    base_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    directories = [
        vault_config_dir(base_dir),
        vault_plugin_dir(base_dir),
        vault_data_dir(base_dir),
        instantclient_dir(base_dir),
        downloads_dir(base_dir),
    ]
    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)
    return directories
