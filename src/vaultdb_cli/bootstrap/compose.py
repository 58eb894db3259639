"""Docker Compose generation for the Vault/Oracle stack.

This module declares the desired containers and renders them to a
docker-compose.yaml, plus the Vault server configuration it mounts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..config import BootstrapConfig
from ..shared.paths import (
    COMPOSE_FILENAME,
    instantclient_dir,
    vault_config_dir,
    vault_data_dir,
    vault_plugin_dir,
)

NETWORK_NAME = "vaultdb-network"
ORACLE_SERVICE = "oracle"
VAULT_SERVICE = "vault"
ORACLE_CONTAINER = "vaultdb-oracle"
VAULT_CONTAINER = "vaultdb-vault"

# Paths inside the Vault container
VAULT_CONFIG_MOUNT = "/vault/config"
VAULT_PLUGIN_MOUNT = "/vault/plugins"
VAULT_DATA_MOUNT = "/vault/data"
INSTANTCLIENT_MOUNT = "/opt/oracle/instantclient"


@dataclass
class ContainerSpec:
    """Declared end-state of one container."""

    service: str
    container_name: str
    image: str
    environment: dict[str, str] = field(default_factory=dict)
    volumes: list[str] = field(default_factory=list)
    ports: list[str] = field(default_factory=list)
    cap_add: list[str] = field(default_factory=list)
    command: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)

    def to_compose(self) -> dict[str, Any]:
        """Render as a docker-compose service entry."""
        service: dict[str, Any] = {
            "image": self.image,
            "container_name": self.container_name,
        }
        if self.command:
            service["command"] = list(self.command)
        if self.environment:
            service["environment"] = dict(self.environment)
        if self.ports:
            service["ports"] = list(self.ports)
        if self.volumes:
            service["volumes"] = list(self.volumes)
        if self.cap_add:
            service["cap_add"] = list(self.cap_add)
        if self.depends_on:
            service["depends_on"] = list(self.depends_on)
        service["restart"] = "unless-stopped"
        return service

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "container_name": self.container_name,
            "image": self.image,
            "environment": dict(self.environment),
            "volumes": list(self.volumes),
            "ports": list(self.ports),
            "cap_add": list(self.cap_add),
            "command": list(self.command),
            "depends_on": list(self.depends_on),
        }


def declare_containers(config: BootstrapConfig) -> list[ContainerSpec]:
    """Declare the Oracle and Vault containers for a configuration.

    Oracle comes first; Vault depends on it.
    """
    base = config.base_dir
    oracle = ContainerSpec(
        service=ORACLE_SERVICE,
        container_name=ORACLE_CONTAINER,
        image=config.oracle_image,
        environment={"ORACLE_PASSWORD": config.oracle_password},
        ports=[f"{config.oracle_port}:1521"],
    )
    vault = ContainerSpec(
        service=VAULT_SERVICE,
        container_name=VAULT_CONTAINER,
        image=config.vault_image,
        command=["server"],
        environment={
            "VAULT_LICENSE": config.vault_license,
            "VAULT_ADDR": "http://127.0.0.1:8200",
            "LD_LIBRARY_PATH": INSTANTCLIENT_MOUNT,
        },
        ports=[f"{config.vault_port}:8200"],
        volumes=[
            f"{vault_config_dir(base)}:{VAULT_CONFIG_MOUNT}",
            f"{vault_plugin_dir(base)}:{VAULT_PLUGIN_MOUNT}",
            f"{instantclient_dir(base)}:{INSTANTCLIENT_MOUNT}:ro",
            f"{vault_data_dir(base)}:{VAULT_DATA_MOUNT}",
        ],
        # mlock needs the capability; see the drift exclusion in provisioner
        cap_add=["IPC_LOCK"],
        depends_on=[ORACLE_SERVICE],
    )
    return [oracle, vault]


class ComposeGenerator:
    """Generate docker-compose.yaml file."""

    def generate(self, containers: list[ContainerSpec], output_dir: Path) -> Path:
        """Generate docker-compose.yaml in the output directory.

        Args:
            containers: Declared containers.
            output_dir: Directory to write into.

        Returns:
            Path to the generated docker-compose.yaml file.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        compose_file = output_dir / COMPOSE_FILENAME

        compose_data = self.build_compose_dict(containers)

        with open(compose_file, "w") as f:
            yaml.dump(compose_data, f, default_flow_style=False, sort_keys=False)

        return compose_file

    def build_compose_dict(self, containers: list[ContainerSpec]) -> dict[str, Any]:
        """Build the docker-compose structure."""
        return {
            "services": {c.service: c.to_compose() for c in containers},
            "networks": {
                "default": {"name": NETWORK_NAME},
            },
        }


class VolumeManager:
    """Manage the Vault server configuration file."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def generate_vault_config(self, overwrite: bool = False) -> Path | None:
        """Generate vault.json if it doesn't exist.

        Vault accepts JSON wherever it accepts HCL.

        Args:
            overwrite: If True, overwrite existing config.

        Returns:
            Path to config file, or None if skipped.
        """
        config_dir = vault_config_dir(self.base_dir)
        config_dir.mkdir(parents=True, exist_ok=True)
        config_file = config_dir / "vault.json"

        if config_file.exists() and not overwrite:
            return None

        vault_config = {
            "storage": {"file": {"path": VAULT_DATA_MOUNT}},
            "listener": [
                {"tcp": {"address": "0.0.0.0:8200", "tls_disable": True}},
            ],
            "plugin_directory": VAULT_PLUGIN_MOUNT,
            "api_addr": "http://127.0.0.1:8200",
            "disable_mlock": False,
            "ui": True,
        }

        with open(config_file, "w") as f:
            json.dump(vault_config, f, indent=2)

        return config_file
