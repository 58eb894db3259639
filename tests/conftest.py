"""Shared test fixtures for vaultdb tests.

This module provides in-memory stand-ins for the external systems the
bootstrap sequencer drives:
- FakeVault: Simulates the Vault API (seal lifecycle, plugin catalog, mounts,
  database secrets engine)
- FakeOracle: Simulates an Oracle instance that accounts can be created in
- MemoryCredentialStore: Credential store backed by a dict
- FakeProvisioner: Records container provisioning without Docker
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from vaultdb_cli.bootstrap import (
    BootstrapSequencer,
    ReadinessPoller,
    StateStore,
    TrackedState,
)
from vaultdb_cli.bootstrap.models import ConnectionConfig, DynamicRoleSpec, StaticRoleSpec
from vaultdb_cli.config import BootstrapConfig
from vaultdb_cli.errors import external_call_failure
from vaultdb_cli.shared.paths import vault_plugin_dir

# =============================================================================
# Fake Vault
# =============================================================================


@dataclass
class FakeVault:
    """In-memory Vault with the methods of VaultClient the sequencer uses."""

    reachable: bool = True
    initialized: bool = False
    sealed: bool = True
    token: str | None = None
    unseal_key: str = "dW5zZWFsLWtleQ=="
    root_token: str = "hvs.root"
    # Keys needed to unseal, and the keys handed out by initialize
    threshold: int = 1
    issued_keys: list[str] = field(default_factory=list)
    progress: int = 0

    init_calls: int = 0
    calls: list[str] = field(default_factory=list)
    plugins: dict[str, dict[str, Any]] = field(default_factory=dict)
    mounts: dict[str, str] = field(default_factory=dict)
    connections: dict[str, dict[str, Any]] = field(default_factory=dict)
    roles: dict[str, dict[str, Any]] = field(default_factory=dict)
    static_roles: dict[str, dict[str, Any]] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if not self.reachable:
            raise external_call_failure(name, "cannot connect to Vault at http://127.0.0.1:8200")

    def _require_token(self, name: str) -> None:
        if self.sealed:
            raise external_call_failure(name, "Vault is sealed", status_code=503)
        if self.token != self.root_token:
            raise external_call_failure(name, "permission denied", status_code=403)

    def is_reachable(self) -> bool:
        self._record("is_reachable")
        return True

    def seal_status(self) -> dict[str, Any]:
        self._record("seal_status")
        return self._status()

    def _status(self) -> dict[str, Any]:
        return {
            "initialized": self.initialized,
            "sealed": self.sealed,
            "progress": self.progress,
            "t": self.threshold,
            "n": len(self.issued_keys) or 1,
        }

    def is_initialized(self) -> bool:
        self._record("is_initialized")
        return self.initialized

    def initialize(self, key_shares: int, key_threshold: int) -> dict[str, Any]:
        self._record("initialize")
        if self.initialized:
            raise external_call_failure("vault init", "Vault is already initialized", 400)
        self.init_calls += 1
        self.initialized = True
        self.sealed = True
        self.threshold = key_threshold
        self.issued_keys = [self.unseal_key] + [f"share-{i}" for i in range(2, key_shares + 1)]
        return {
            "keys": [key.encode().hex() for key in self.issued_keys],
            "keys_base64": list(self.issued_keys),
            "root_token": self.root_token,
        }

    def unseal(self, key: str) -> dict[str, Any]:
        self._record("unseal")
        if self.sealed and (key == self.unseal_key or key in self.issued_keys):
            self.progress += 1
            if self.progress >= self.threshold:
                self.sealed = False
                self.progress = 0
        return self._status()

    def register_plugin(
        self, name: str, sha256: str, command: str, version: str = "", plugin_type: str = ""
    ) -> None:
        self._record("register_plugin")
        self._require_token("register_plugin")
        self.plugins[name] = {"sha256": sha256, "command": command, "version": version}

    def deregister_plugin(self, name: str, version: str = "", plugin_type: str = "") -> None:
        self._record("deregister_plugin")
        self.plugins.pop(name, None)
        self.deleted.append(f"plugin:{name}")

    def enable_secrets_engine(self, path: str, engine_type: str = "database") -> bool:
        self._record("enable_secrets_engine")
        self._require_token("enable_secrets_engine")
        if path in self.mounts:
            return False
        self.mounts[path] = engine_type
        return True

    def disable_secrets_engine(self, path: str) -> None:
        self._record("disable_secrets_engine")
        self.mounts.pop(path, None)
        self.deleted.append(f"mount:{path}")

    def write_connection(self, mount: str, config: ConnectionConfig) -> None:
        self._record("write_connection")
        self._require_token("write_connection")
        self.connections[config.name] = config.to_payload()

    def delete_connection(self, mount: str, name: str) -> None:
        self._record("delete_connection")
        self.connections.pop(name, None)
        self.deleted.append(f"connection:{name}")

    def write_dynamic_role(self, mount: str, spec: DynamicRoleSpec) -> None:
        self._record("write_dynamic_role")
        self._require_token("write_dynamic_role")
        self.roles[spec.name] = spec.to_payload()

    def write_static_role(self, mount: str, spec: StaticRoleSpec) -> None:
        self._record("write_static_role")
        self._require_token("write_static_role")
        self.static_roles[spec.name] = spec.to_payload()

    def delete_dynamic_role(self, mount: str, name: str) -> None:
        self._record("delete_dynamic_role")
        self.roles.pop(name, None)
        self.deleted.append(f"role:{name}")

    def delete_static_role(self, mount: str, name: str) -> None:
        self._record("delete_static_role")
        self.static_roles.pop(name, None)
        self.deleted.append(f"static_role:{name}")

    def restart(self) -> None:
        """Simulate a container restart: storage survives, Vault comes back sealed."""
        self.sealed = True
        self.progress = 0


# =============================================================================
# Fake Oracle
# =============================================================================


@dataclass
class FakeOracle:
    """In-memory Oracle instance with the methods of OracleSession."""

    ready: bool = True
    users: set[str] = field(default_factory=set)
    # When True, create_account "succeeds" without creating anything
    silently_drop_creates: bool = False
    created: list[str] = field(default_factory=list)
    checks: int = 0

    def is_ready(self) -> bool:
        return self.ready

    def user_exists(self, username: str) -> bool:
        self.checks += 1
        return username.upper() in self.users

    def create_account(self, account: Any) -> str:
        if account.username.upper() in self.users:
            raise external_call_failure(
                f"create account {account.username}",
                "ORA-01920: user name conflicts with another user or role name",
            )
        self.created.append(account.username)
        if not self.silently_drop_creates:
            self.users.add(account.username.upper())
        return "User created.\nGrant succeeded."


# =============================================================================
# Credential store and provisioner
# =============================================================================


class MemoryCredentialStore:
    """Credential store backed by a dict."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    def persist(self, key: str, value: str) -> None:
        self.values[key] = value

    def load(self, key: str) -> str | None:
        return self.values.get(key) or None

    def forget(self, key: str) -> bool:
        return self.values.pop(key, None) is not None


class FakeProvisioner:
    """Provisioner that tracks container resources without Docker."""

    def __init__(self) -> None:
        self.apply_calls = 0
        self.destroy_calls: list[bool] = []

    def apply(self, state: TrackedState) -> SimpleNamespace:
        self.apply_calls += 1
        changed = "docker_container.vault" not in state.resources
        for service in ("oracle", "vault"):
            state.set_resource(f"docker_container.{service}", {"image": f"{service}:test"})
        return SimpleNamespace(changed=changed)

    def destroy(self, state: TrackedState, remove_data: bool = False) -> None:
        self.destroy_calls.append(remove_data)
        for address in list(state.resources):
            if address.startswith("docker_"):
                state.remove_resource(address)


# =============================================================================
# Fixtures
# =============================================================================


def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def config(tmp_path: Path) -> BootstrapConfig:
    """Default configuration rooted in a temporary directory."""
    return BootstrapConfig(base_dir=tmp_path, oracle_password="Oracle123", poll_interval=0)


@pytest.fixture
def plugin_binary(config: BootstrapConfig) -> Path:
    """A plugin binary where register_plugin expects it."""
    plugin_dir = vault_plugin_dir(config.base_dir)
    plugin_dir.mkdir(parents=True, exist_ok=True)
    binary = plugin_dir / config.plugin_name
    binary.write_bytes(b"\x7fELF fake oracle plugin")
    return binary


@pytest.fixture
def fake_vault() -> FakeVault:
    return FakeVault()


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def credentials() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def state_store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.json")


@pytest.fixture
def make_sequencer(config, fake_vault, fake_oracle, credentials, state_store, provisioner):
    """Build a sequencer over the fakes; call again to simulate a new process."""

    def _make(max_attempts: int = 3, **overrides: Any) -> BootstrapSequencer:
        kwargs: dict[str, Any] = {
            "config": config,
            "vault": fake_vault,
            "oracle": fake_oracle,
            "credentials": credentials,
            "state_store": state_store,
            "provisioner": provisioner,
            "vault_poller": ReadinessPoller(0, max_attempts=max_attempts, sleep=no_sleep),
            "oracle_poller": ReadinessPoller(0, max_attempts=max_attempts, sleep=no_sleep),
        }
        kwargs.update(overrides)
        return BootstrapSequencer(**kwargs)

    return _make

