"""Tracked state for idempotent, resumable bootstrap runs.

The state file records the last completed bootstrap stage and every resource
the tool has applied, addressed as `<kind>.<name>`. Credentials are never
written here; they live in the credential store so a state reset doesn't lose
them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import BootstrapError

# Resources whose deletion needs a live Vault API call
VAULT_RESOURCE_PREFIX = "vault_"

STATE_VERSION = 1


class BootstrapStage(Enum):
    """Bootstrap stages in the order they are reached."""

    UNPROVISIONED = "unprovisioned"
    CONTAINERS_RUNNING = "containers_running"
    SECRETS_SERVER_INITIALIZED = "secrets_server_initialized"
    SECRETS_SERVER_UNSEALED = "secrets_server_unsealed"
    DATABASE_ACCOUNTS_CREATED = "database_accounts_created"
    PLUGIN_REGISTERED = "plugin_registered"
    BACKEND_CONFIGURED = "backend_configured"
    ROLES_CREATED = "roles_created"

    @property
    def rank(self) -> int:
        return list(BootstrapStage).index(self)

    def reached(self, other: BootstrapStage) -> bool:
        """True if this stage is at or past other."""
        return self.rank >= other.rank


@dataclass
class TrackedState:
    """In-memory view of the state file."""

    stage: BootstrapStage = BootstrapStage.UNPROVISIONED
    resources: dict[str, dict[str, Any]] = field(default_factory=dict)

    def advance(self, stage: BootstrapStage) -> bool:
        """Move forward to stage; never moves backwards.

        Returns:
            True if the recorded stage changed.
        """
        if self.stage.reached(stage):
            return False
        self.stage = stage
        return True

    def set_resource(self, address: str, attributes: dict[str, Any]) -> None:
        self.resources[address] = attributes

    def get_resource(self, address: str) -> dict[str, Any] | None:
        return self.resources.get(address)

    def remove_resource(self, address: str) -> bool:
        return self.resources.pop(address, None) is not None

    def vault_resources(self) -> list[str]:
        """Addresses of resources that live inside Vault."""
        return [a for a in self.resources if a.startswith(VAULT_RESOURCE_PREFIX)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "stage": self.stage.value,
            "resources": self.resources,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackedState:
        return cls(
            stage=BootstrapStage(data.get("stage", BootstrapStage.UNPROVISIONED.value)),
            resources=dict(data.get("resources", {})),
        )


class StateStore:
    """Load and save tracked state as JSON."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> TrackedState:
        if not self.path.exists():
            return TrackedState()
        try:
            with open(self.path) as f:
                return TrackedState.from_dict(json.load(f))
        except (ValueError, AttributeError) as e:
            raise BootstrapError(
                f"State file {self.path} is unreadable: {e}", data={"path": str(self.path)}
            ) from e

    def save(self, state: TrackedState) -> None:
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w") as f:
            json.dump(state.to_dict(), f, indent=2, sort_keys=True)
        tmp.replace(self.path)
