"""Resource provisioning: declared containers reconciled against Docker.

Each declared container is compared with what `docker inspect` reports and
gets one action: create, start, recreate on drift, or nothing. The capability
list is never treated as drift because Docker reports `IPC_LOCK` back as
`CAP_IPC_LOCK`, which would recreate Vault (and seal it) on every apply.
"""

from __future__ import annotations

import hashlib
import json
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..config import BootstrapConfig
from ..errors import external_call_failure
from ..shared.logging import get_logger
from ..shared.paths import (
    downloads_dir,
    ensure_dirs,
    instantclient_dir,
    vault_data_dir,
    vault_plugin_dir,
)
from .artifacts import Artifact, ArtifactDownloader
from .compose import (
    NETWORK_NAME,
    ComposeGenerator,
    ContainerSpec,
    VolumeManager,
    declare_containers,
)
from .stack import StackManager
from .state import TrackedState

logger = get_logger(__name__)

IGNORED_DRIFT_ATTRIBUTES = frozenset({"cap_add"})

INSTANTCLIENT_MARKER = "libclntsh.so"


class ResourceAction(Enum):
    """Reconciliation outcome for one resource."""

    CREATE = "create"
    START = "start"
    RECREATE = "recreate"
    NOOP = "noop"


@dataclass
class ResourcePlan:
    """Planned action for one container."""

    spec: ContainerSpec
    action: ResourceAction
    drift: list[str] = field(default_factory=list)


@dataclass
class ProvisionResult:
    """Outcome of one provisioning run."""

    plans: list[ResourcePlan] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.downloaded) or any(p.action != ResourceAction.NOOP for p in self.plans)


def spec_digest(spec: ContainerSpec) -> str:
    """Stable digest of a container spec; secrets never reach the state file."""
    payload = json.dumps(spec.to_dict(), sort_keys=True).encode()
    return hashlib.sha256(payload).hexdigest()


def detect_drift(spec: ContainerSpec, inspected: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Compare a declared container with docker inspect output.

    Returns:
        Tuple of (drifted, ignored) attribute names.
    """
    container_config = inspected.get("Config") or {}
    host_config = inspected.get("HostConfig") or {}
    differences = []

    if container_config.get("Image") != spec.image:
        differences.append("image")

    actual_env = set(container_config.get("Env") or [])
    declared_env = {f"{k}={v}" for k, v in spec.environment.items()}
    if not declared_env <= actual_env:
        differences.append("environment")

    if _actual_binds(inspected) != {_normalize_bind(v) for v in spec.volumes}:
        differences.append("volumes")

    actual_ports = set()
    for container_port, bindings in (host_config.get("PortBindings") or {}).items():
        for binding in bindings or []:
            actual_ports.add(f"{binding.get('HostPort')}:{container_port.split('/')[0]}")
    if actual_ports != set(spec.ports):
        differences.append("ports")

    if spec.command and list(container_config.get("Cmd") or []) != spec.command:
        differences.append("command")

    if set(host_config.get("CapAdd") or []) != set(spec.cap_add):
        differences.append("cap_add")

    drifted = [d for d in differences if d not in IGNORED_DRIFT_ATTRIBUTES]
    ignored = [d for d in differences if d in IGNORED_DRIFT_ATTRIBUTES]
    return drifted, ignored


def _normalize_bind(volume: str) -> str:
    """Drop the implicit :rw suffix so declared and inspected binds compare."""
    return volume[: -len(":rw")] if volume.endswith(":rw") else volume


def _actual_binds(inspected: dict[str, Any]) -> set[str]:
    """Bind mounts of an inspected container as host:container[:ro] strings."""
    mounts = inspected.get("Mounts")
    if mounts is None:
        binds = (inspected.get("HostConfig") or {}).get("Binds") or []
        return {_normalize_bind(b) for b in binds}

    actual = set()
    for mount in mounts:
        if mount.get("Type") != "bind":
            continue
        bind = f"{mount.get('Source')}:{mount.get('Destination')}"
        if not mount.get("RW", True):
            bind = f"{bind}:ro"
        actual.add(bind)
    return actual


class ResourceProvisioner:
    """Reconcile the declared network, containers and artifacts."""

    def __init__(
        self,
        config: BootstrapConfig,
        stack_manager: StackManager | None = None,
        downloader: ArtifactDownloader | None = None,
        generator: ComposeGenerator | None = None,
    ):
        self.config = config
        self.base_dir = config.base_dir
        self.stack_manager = stack_manager or StackManager(self.base_dir)
        self.downloader = downloader or ArtifactDownloader(downloads_dir(self.base_dir))
        self.generator = generator or ComposeGenerator()
        self.volume_manager = VolumeManager(self.base_dir)

    def artifacts(self) -> list[Artifact]:
        """Artifacts the Vault container depends on."""
        return [
            Artifact(
                name="instantclient",
                url=self.config.instantclient_url,
                target_dir=instantclient_dir(self.base_dir),
                marker=INSTANTCLIENT_MARKER,
                strip_top_level=True,
            ),
            Artifact(
                name=self.config.plugin_name,
                url=self.config.plugin_url,
                target_dir=vault_plugin_dir(self.base_dir),
                marker=self.config.plugin_name,
            ),
        ]

    @property
    def plugin_binary(self) -> Path:
        return vault_plugin_dir(self.base_dir) / self.config.plugin_name

    def plan(self, spec: ContainerSpec) -> ResourcePlan:
        """Decide what to do for one declared container."""
        inspected = self.stack_manager.inspect(spec.container_name)
        if inspected is None:
            return ResourcePlan(spec, ResourceAction.CREATE)

        drifted, ignored = detect_drift(spec, inspected)
        if ignored:
            logger.debug("drift_ignored", container=spec.container_name, attributes=ignored)
        if drifted:
            return ResourcePlan(spec, ResourceAction.RECREATE, drifted)

        running = (inspected.get("State") or {}).get("Running", False)
        if not running:
            return ResourcePlan(spec, ResourceAction.START)
        return ResourcePlan(spec, ResourceAction.NOOP)

    def apply(self, state: TrackedState) -> ProvisionResult:
        """Bring artifacts and containers to the declared state.

        Args:
            state: Tracked state, updated in place with applied resources.

        Returns:
            ProvisionResult describing what changed.

        Raises:
            ExternalCallFailure: If a download or docker compose call fails.
        """
        result = ProvisionResult()
        ensure_dirs(self.base_dir)

        for artifact in self.artifacts():
            downloaded, path = self.downloader.ensure(artifact)
            if downloaded:
                result.downloaded.append(artifact.name)
            state.set_resource(
                f"download.{artifact.name}", {"url": artifact.url, "path": str(path)}
            )

        # Vault execs the plugin directly
        if self.plugin_binary.exists():
            self.plugin_binary.chmod(0o755)

        self.volume_manager.generate_vault_config()
        containers = declare_containers(self.config)
        self.generator.generate(containers, self.base_dir)
        state.set_resource(f"docker_network.{NETWORK_NAME}", {"name": NETWORK_NAME})

        for spec in containers:
            plan = self.plan(spec)
            result.plans.append(plan)
            logger.info(
                "container_reconcile",
                container=spec.container_name,
                action=plan.action.value,
                drift=plan.drift,
            )
            if plan.action != ResourceAction.NOOP:
                success, msg = self.stack_manager.up(
                    [spec.service],
                    force_recreate=plan.action == ResourceAction.RECREATE,
                )
                if not success:
                    raise external_call_failure(f"docker compose up {spec.service}", msg)
            state.set_resource(
                f"docker_container.{spec.service}",
                {
                    "container_name": spec.container_name,
                    "image": spec.image,
                    "digest": spec_digest(spec),
                },
            )

        return result

    def destroy(self, state: TrackedState, remove_data: bool = False) -> None:
        """Remove containers and network, optionally with all local data.

        Raises:
            ExternalCallFailure: If docker compose down fails.
        """
        if self.stack_manager.compose_file.exists():
            success, msg = self.stack_manager.down()
            if not success:
                raise external_call_failure("docker compose down", msg)

        for address in list(state.resources):
            if address.startswith(("docker_", "download.")):
                state.remove_resource(address)

        if remove_data:
            for directory in (
                vault_data_dir(self.base_dir),
                vault_plugin_dir(self.base_dir),
                instantclient_dir(self.base_dir),
                downloads_dir(self.base_dir),
            ):
                if directory.exists():
                    shutil.rmtree(directory)
            logger.info("local_data_removed", base_dir=str(self.base_dir))
