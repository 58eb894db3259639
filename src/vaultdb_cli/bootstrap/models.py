"""Data model for the Vault/Oracle bootstrap.

Each type knows how to render itself into the JSON body Vault expects, so the
Vault client stays a thin transport.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class InitializationRecord:
    """Output of the one-time Vault initialization.

    Immutable once persisted. With the demo default of a single key share,
    `unseal_keys` has one entry and it fully unseals Vault.
    """

    unseal_keys: tuple[str, ...]
    root_token: str
    key_threshold: int = 1

    @property
    def unseal_key(self) -> str:
        return self.unseal_keys[0] if self.unseal_keys else ""

    @classmethod
    def from_init_response(cls, data: dict[str, Any], key_threshold: int) -> InitializationRecord:
        """Build a record from the body of PUT /v1/sys/init."""
        keys = data.get("keys_base64") or data.get("keys") or []
        return cls(
            unseal_keys=tuple(keys),
            root_token=data.get("root_token", ""),
            key_threshold=key_threshold,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InitializationRecord:
        keys = data.get("unseal_keys") or [data.get("unseal_key", "")]
        return cls(
            unseal_keys=tuple(k for k in keys if k),
            root_token=data.get("root_token", ""),
            key_threshold=int(data.get("key_threshold", 1)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "unseal_key": self.unseal_key,
            "unseal_keys": list(self.unseal_keys),
            "root_token": self.root_token,
            "key_threshold": self.key_threshold,
        }


@dataclass
class ConnectionConfig:
    """How the database secrets engine reaches Oracle."""

    name: str
    plugin_name: str
    connection_template: str
    username: str
    password: str
    allowed_roles: list[str] = field(default_factory=list)
    max_lifetime: str = "60s"
    plugin_version: str = ""

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "plugin_name": self.plugin_name,
            "connection_url": self.connection_template,
            "username": self.username,
            "password": self.password,
            "allowed_roles": sorted(self.allowed_roles),
            "max_connection_lifetime": self.max_lifetime,
        }
        if self.plugin_version:
            payload["plugin_version"] = self.plugin_version
        return payload

    def to_state(self) -> dict[str, Any]:
        """Attributes recorded in tracked state; the password is left out."""
        payload = self.to_payload()
        del payload["password"]
        return payload


@dataclass
class DynamicRoleSpec:
    """Role that creates a brand-new Oracle account for every lease."""

    name: str
    backend_ref: str
    ttl_default: int = 3600
    ttl_max: int = 86400
    creation_statements: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "db_name": self.backend_ref,
            "creation_statements": list(self.creation_statements),
            "default_ttl": self.ttl_default,
            "max_ttl": self.ttl_max,
        }


@dataclass
class StaticRoleSpec:
    """Role that rotates the password of one pre-existing Oracle account."""

    name: str
    backend_ref: str
    bound_username: str
    rotation_period: int = 3600

    def to_payload(self) -> dict[str, Any]:
        return {
            "db_name": self.backend_ref,
            "username": self.bound_username,
            "rotation_period": self.rotation_period,
        }


# Vault substitutes {{username}}/{{password}} per lease
ORACLE_DYNAMIC_CREATION_STATEMENTS = [
    'CREATE USER {{username}} IDENTIFIED BY "{{password}}"',
    "GRANT CONNECT TO {{username}}",
    "GRANT CREATE SESSION TO {{username}}",
]


def oracle_connection_template(host: str, port: int, service: str) -> str:
    """Oracle plugin connection URL with Vault's credential placeholders."""
    return f"{{{{username}}}}/{{{{password}}}}@{host}:{port}/{service}"
