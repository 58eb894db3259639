"""Unit tests for tracked bootstrap state."""

from __future__ import annotations

import json

import pytest

from vaultdb_cli.bootstrap import BootstrapStage, StateStore, TrackedState
from vaultdb_cli.errors import BootstrapError


class TestBootstrapStage:
    """Tests for BootstrapStage ordering."""

    def test_order(self):
        stages = list(BootstrapStage)
        assert stages[0] == BootstrapStage.UNPROVISIONED
        assert stages[-1] == BootstrapStage.ROLES_CREATED
        assert BootstrapStage.PLUGIN_REGISTERED.rank > BootstrapStage.DATABASE_ACCOUNTS_CREATED.rank

    def test_reached(self):
        assert BootstrapStage.ROLES_CREATED.reached(BootstrapStage.CONTAINERS_RUNNING)
        assert BootstrapStage.CONTAINERS_RUNNING.reached(BootstrapStage.CONTAINERS_RUNNING)
        assert not BootstrapStage.CONTAINERS_RUNNING.reached(BootstrapStage.ROLES_CREATED)


class TestTrackedState:
    """Tests for TrackedState."""

    def test_advance_forward(self):
        state = TrackedState()
        assert state.advance(BootstrapStage.CONTAINERS_RUNNING) is True
        assert state.stage == BootstrapStage.CONTAINERS_RUNNING

    def test_advance_never_backwards(self):
        """Test re-running an earlier transition keeps the later stage."""
        state = TrackedState(stage=BootstrapStage.ROLES_CREATED)
        assert state.advance(BootstrapStage.SECRETS_SERVER_UNSEALED) is False
        assert state.stage == BootstrapStage.ROLES_CREATED

    def test_vault_resources(self):
        state = TrackedState()
        state.set_resource("docker_container.vault", {})
        state.set_resource("vault_mount.database", {"type": "database"})
        state.set_resource("vault_plugin.oracle", {})

        assert sorted(state.vault_resources()) == ["vault_mount.database", "vault_plugin.oracle"]

    def test_remove_resource(self):
        state = TrackedState(resources={"vault_mount.database": {}})
        assert state.remove_resource("vault_mount.database") is True
        assert state.remove_resource("vault_mount.database") is False


class TestStateStore:
    """Tests for StateStore."""

    def test_load_missing(self, tmp_path):
        state = StateStore(tmp_path / "state.json").load()
        assert state.stage == BootstrapStage.UNPROVISIONED
        assert state.resources == {}

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        store = StateStore(path)
        state = TrackedState(stage=BootstrapStage.BACKEND_CONFIGURED)
        state.set_resource("vault_mount.database", {"type": "database"})

        store.save(state)

        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert data["stage"] == "backend_configured"
        assert store.load() == state
        assert not path.with_suffix(".tmp").exists()

    def test_load_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text('{"stage": "no_such_stage"}')

        with pytest.raises(BootstrapError, match="is unreadable"):
            StateStore(path).load()
