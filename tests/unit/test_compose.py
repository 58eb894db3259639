"""Unit tests for compose generation."""

from __future__ import annotations

import json

import yaml

from vaultdb_cli.bootstrap import ComposeGenerator, VolumeManager, declare_containers
from vaultdb_cli.bootstrap.compose import NETWORK_NAME


class TestDeclareContainers:
    """Tests for declare_containers."""

    def test_oracle_first(self, config):
        oracle, vault = declare_containers(config)

        assert oracle.service == "oracle"
        assert oracle.container_name == "vaultdb-oracle"
        assert oracle.environment == {"ORACLE_PASSWORD": "Oracle123"}
        assert oracle.ports == ["1521:1521"]
        assert vault.depends_on == ["oracle"]

    def test_vault_container(self, config):
        _, vault = declare_containers(config)

        assert vault.image == "hashicorp/vault-enterprise:1.15-ent"
        assert vault.command == ["server"]
        assert vault.cap_add == ["IPC_LOCK"]
        assert vault.ports == ["8200:8200"]
        assert vault.environment["LD_LIBRARY_PATH"] == "/opt/oracle/instantclient"

    def test_vault_volumes_are_absolute(self, config):
        """Test bind mounts are rooted in the base directory."""
        _, vault = declare_containers(config)

        base = str(config.base_dir)
        assert f"{base}/vault/config:/vault/config" in vault.volumes
        assert f"{base}/vault/plugins:/vault/plugins" in vault.volumes
        assert f"{base}/vault/data:/vault/data" in vault.volumes
        assert f"{base}/instantclient:/opt/oracle/instantclient:ro" in vault.volumes

    def test_ports_follow_config(self, config):
        config.vault_port = 18200
        config.oracle_port = 11521

        oracle, vault = declare_containers(config)

        assert oracle.ports == ["11521:1521"]
        assert vault.ports == ["18200:8200"]


class TestComposeGenerator:
    """Tests for ComposeGenerator."""

    def test_generate(self, config, tmp_path):
        compose_file = ComposeGenerator().generate(declare_containers(config), tmp_path / "out")

        data = yaml.safe_load(compose_file.read_text())
        assert list(data["services"]) == ["oracle", "vault"]
        assert data["networks"]["default"]["name"] == NETWORK_NAME
        vault = data["services"]["vault"]
        assert vault["container_name"] == "vaultdb-vault"
        assert vault["cap_add"] == ["IPC_LOCK"]
        assert vault["restart"] == "unless-stopped"
        assert "cap_add" not in data["services"]["oracle"]


class TestVolumeManager:
    """Tests for the Vault server configuration."""

    def test_generate_vault_config(self, tmp_path):
        path = VolumeManager(tmp_path).generate_vault_config()

        assert path == tmp_path / "vault" / "config" / "vault.json"
        data = json.loads(path.read_text())
        assert data["storage"] == {"file": {"path": "/vault/data"}}
        assert data["plugin_directory"] == "/vault/plugins"
        assert data["listener"][0]["tcp"]["tls_disable"] is True

    def test_existing_config_kept(self, tmp_path):
        manager = VolumeManager(tmp_path)
        path = manager.generate_vault_config()
        path.write_text("{}")

        assert manager.generate_vault_config() is None
        assert path.read_text() == "{}"
        assert manager.generate_vault_config(overwrite=True) == path
