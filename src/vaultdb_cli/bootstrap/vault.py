"""HTTP client for the Vault API.

Thin wrapper over the Vault endpoints the bootstrap needs. Errors are mapped
to ExternalCallFailure and never retried here; retrying is the readiness
poller's job and only for reachability.
"""

from __future__ import annotations

from typing import Any

import httpx

from ..errors import ExternalCallFailure, external_call_failure
from .models import ConnectionConfig, DynamicRoleSpec, StaticRoleSpec


class VaultClient:
    """Synchronous HTTP client for the Vault API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            base_url: Vault address (e.g., http://127.0.0.1:8200)
            token: Vault token for authenticated endpoints
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def __enter__(self) -> VaultClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        operation: str | None = None,
        allow_404: bool = False,
    ) -> dict[str, Any] | None:
        """Make HTTP request to Vault.

        Args:
            method: HTTP method
            path: API path below /v1 (e.g., sys/init)
            json: JSON body
            operation: Name used in error messages
            allow_404: Return None instead of raising on 404

        Returns:
            Response JSON as dict ({} for empty bodies), or None on allowed 404

        Raises:
            ExternalCallFailure: On connection or HTTP errors
        """
        operation = operation or f"vault {method} {path}"
        headers = {"X-Vault-Token": self.token} if self.token else {}
        try:
            response = self._client.request(method, f"/v1/{path}", json=json, headers=headers)
        except httpx.ConnectError as e:
            raise external_call_failure(
                operation, f"cannot connect to Vault at {self.base_url}"
            ) from e
        except httpx.TimeoutException as e:
            raise external_call_failure(
                operation, f"request timed out after {self.timeout}s"
            ) from e

        if allow_404 and response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise external_call_failure(
                operation,
                _error_detail(response),
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # -------------------------------------------------------------------------
    # Seal lifecycle
    # -------------------------------------------------------------------------

    def is_reachable(self) -> bool:
        """Readiness probe: the API answers seal-status, sealed or not."""
        self._request("GET", "sys/seal-status", operation="vault status")
        return True

    def seal_status(self) -> dict[str, Any]:
        """Get seal status (initialized, sealed, progress, ...)."""
        return self._request("GET", "sys/seal-status", operation="vault status") or {}

    def is_initialized(self) -> bool:
        data = self._request("GET", "sys/init", operation="vault init status") or {}
        return bool(data.get("initialized"))

    def initialize(self, key_shares: int, key_threshold: int) -> dict[str, Any]:
        """Initialize Vault.

        Returns:
            Init response with keys, keys_base64 and root_token
        """
        return (
            self._request(
                "PUT",
                "sys/init",
                json={"secret_shares": key_shares, "secret_threshold": key_threshold},
                operation="vault init",
            )
            or {}
        )

    def unseal(self, key: str) -> dict[str, Any]:
        """Submit one unseal key share.

        Returns:
            Seal status after the submission
        """
        return self._request("PUT", "sys/unseal", json={"key": key}, operation="vault unseal") or {}

    # -------------------------------------------------------------------------
    # Plugin catalog
    # -------------------------------------------------------------------------

    def register_plugin(
        self,
        name: str,
        sha256: str,
        command: str,
        version: str = "",
        plugin_type: str = "database",
    ) -> None:
        body: dict[str, Any] = {"sha256": sha256, "command": command}
        if version:
            body["version"] = version
        self._request(
            "PUT",
            f"sys/plugins/catalog/{plugin_type}/{name}",
            json=body,
            operation="vault plugin register",
        )

    def deregister_plugin(
        self, name: str, version: str = "", plugin_type: str = "database"
    ) -> None:
        path = f"sys/plugins/catalog/{plugin_type}/{name}"
        if version:
            path = f"{path}?version={version}"
        self._request("DELETE", path, operation="vault plugin deregister", allow_404=True)

    # -------------------------------------------------------------------------
    # Secrets engine mounts
    # -------------------------------------------------------------------------

    def enable_secrets_engine(self, path: str, engine_type: str = "database") -> bool:
        """Mount a secrets engine.

        Returns:
            True if the mount was created, False if the path was already in use
        """
        try:
            self._request(
                "POST",
                f"sys/mounts/{path}",
                json={"type": engine_type},
                operation="vault mount",
            )
        except ExternalCallFailure as e:
            if e.status_code == 400 and "already in use" in e.detail:
                return False
            raise
        return True

    def disable_secrets_engine(self, path: str) -> None:
        self._request("DELETE", f"sys/mounts/{path}", operation="vault unmount")

    # -------------------------------------------------------------------------
    # Database secrets engine
    # -------------------------------------------------------------------------

    def write_connection(self, mount: str, config: ConnectionConfig) -> None:
        self._request(
            "POST",
            f"{mount}/config/{config.name}",
            json=config.to_payload(),
            operation="vault database config",
        )

    def delete_connection(self, mount: str, name: str) -> None:
        self._request("DELETE", f"{mount}/config/{name}", operation="vault database config delete")

    def write_dynamic_role(self, mount: str, spec: DynamicRoleSpec) -> None:
        self._request(
            "POST",
            f"{mount}/roles/{spec.name}",
            json=spec.to_payload(),
            operation="vault dynamic role",
        )

    def write_static_role(self, mount: str, spec: StaticRoleSpec) -> None:
        self._request(
            "POST",
            f"{mount}/static-roles/{spec.name}",
            json=spec.to_payload(),
            operation="vault static role",
        )

    def delete_dynamic_role(self, mount: str, name: str) -> None:
        self._request("DELETE", f"{mount}/roles/{name}", operation="vault dynamic role delete")

    def delete_static_role(self, mount: str, name: str) -> None:
        self._request(
            "DELETE", f"{mount}/static-roles/{name}", operation="vault static role delete"
        )

    def generate_credentials(self, mount: str, role: str) -> dict[str, Any]:
        """Lease a fresh credential from a dynamic role."""
        return self._request("GET", f"{mount}/creds/{role}", operation="vault creds") or {}

    def read_static_credentials(self, mount: str, role: str) -> dict[str, Any]:
        """Read the current password of a static role's account."""
        return (
            self._request("GET", f"{mount}/static-creds/{role}", operation="vault static creds")
            or {}
        )


def _error_detail(response: httpx.Response) -> str:
    """Extract Vault's error list from a response, falling back to raw text."""
    try:
        errors = response.json().get("errors")
    except ValueError:
        errors = None
    if errors:
        return "; ".join(str(e) for e in errors)
    return response.text.strip() or response.reason_phrase
