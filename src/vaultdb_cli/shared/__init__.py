"""Shared modules for vaultdb.

Paths and logging used by every command.
"""

from .logging import configure_logging, get_logger, verbosity_to_level
from .paths import (
    COMPOSE_FILENAME,
    INIT_RECORD_FILENAME,
    ROOT_TOKEN_FILENAME,
    STATE_FILENAME,
    UNSEAL_KEY_FILENAME,
    VAULTDB_DIR,
    ensure_dirs,
)

__all__ = [
    # Paths
    "VAULTDB_DIR",
    "ROOT_TOKEN_FILENAME",
    "UNSEAL_KEY_FILENAME",
    "STATE_FILENAME",
    "COMPOSE_FILENAME",
    "INIT_RECORD_FILENAME",
    "ensure_dirs",
    # Logging
    "configure_logging",
    "get_logger",
    "verbosity_to_level",
]
