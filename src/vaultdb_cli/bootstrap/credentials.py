"""Durable storage for credentials produced by Phase 1.

The root token and unseal key are written to fixed files under the vaultdb
home directory, and the full initialization record is written inside Vault's
bind-mounted data directory so it survives container recreation. Nothing is
encrypted; access control of the underlying directories is the operator's
concern.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from ..errors import BootstrapError
from ..shared.logging import get_logger
from ..shared.paths import (
    INIT_RECORD_FILENAME,
    ROOT_TOKEN_FILENAME,
    UNSEAL_KEY_FILENAME,
    vault_data_dir,
)
from .models import InitializationRecord

logger = get_logger(__name__)

ROOT_TOKEN_KEY = "root_token"
UNSEAL_KEY_KEY = "unseal_key"
INIT_RECORD_KEY = "init_record"


class CredentialStore(Protocol):
    """Key/value persistence for bootstrap credentials."""

    def persist(self, key: str, value: str) -> None: ...

    def load(self, key: str) -> str | None: ...

    def forget(self, key: str) -> bool: ...


class FileCredentialStore:
    """Credential store backed by one file per key."""

    def __init__(self, base_dir: Path, paths: dict[str, Path] | None = None):
        """Initialize file credential store.

        Args:
            base_dir: vaultdb base directory. Keys without an explicit path are
                      stored as base_dir/<key>.
            paths: Optional explicit key -> file mapping.
        """
        self.base_dir = base_dir
        self.paths = {
            ROOT_TOKEN_KEY: base_dir / ROOT_TOKEN_FILENAME,
            UNSEAL_KEY_KEY: base_dir / UNSEAL_KEY_FILENAME,
            INIT_RECORD_KEY: vault_data_dir(base_dir) / INIT_RECORD_FILENAME,
        }
        if paths:
            self.paths.update(paths)

    def path_for(self, key: str) -> Path:
        return self.paths.get(key, self.base_dir / key)

    def persist(self, key: str, value: str) -> None:
        """Write value to the file for key with owner-only permissions."""
        path = self.path_for(key)
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        path.write_text(value)
        path.chmod(0o600)
        logger.debug("credential_persisted", key=key, path=str(path))

    def load(self, key: str) -> str | None:
        """Read the value for key, or None if it was never persisted."""
        path = self.path_for(key)
        if not path.exists():
            return None
        value = path.read_text().strip()
        return value or None

    def forget(self, key: str) -> bool:
        """Delete the file for key.

        Returns:
            True if a file was deleted, False if it didn't exist
        """
        path = self.path_for(key)
        if path.exists():
            path.unlink()
            logger.debug("credential_removed", key=key, path=str(path))
            return True
        return False


def persist_init_record(store: CredentialStore, record: InitializationRecord) -> None:
    """Persist an initialization record and its root token/unseal key files."""
    store.persist(INIT_RECORD_KEY, json.dumps(record.to_dict(), indent=2))
    store.persist(ROOT_TOKEN_KEY, record.root_token)
    store.persist(UNSEAL_KEY_KEY, "\n".join(record.unseal_keys))


def load_init_record(store: CredentialStore) -> InitializationRecord | None:
    """Load the persisted initialization record, or None if never initialized.

    Raises:
        BootstrapError: If the persisted record cannot be parsed
    """
    raw = store.load(INIT_RECORD_KEY)
    if not raw:
        return None
    try:
        return InitializationRecord.from_dict(json.loads(raw))
    except (ValueError, TypeError, AttributeError) as e:
        raise BootstrapError(
            f"Persisted initialization record is unreadable: {e}",
            data={"key": INIT_RECORD_KEY},
        ) from e


def load_root_token(store: CredentialStore) -> str | None:
    """Root token for authenticated Vault calls."""
    return store.load(ROOT_TOKEN_KEY)
