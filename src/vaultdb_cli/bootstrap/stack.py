"""Stack management for the Vault/Oracle containers.

This module wraps docker compose and docker inspect for stack lifecycle:
start, stop, status, inspect and logs.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..shared.paths import COMPOSE_FILENAME, VAULTDB_DIR


class StackState(Enum):
    """State of the docker-compose stack."""

    NOT_FOUND = "not_found"  # No compose file
    STOPPED = "stopped"  # Compose file exists, services down
    PARTIAL = "partial"  # Some services running
    RUNNING = "running"  # All services running


@dataclass
class StackStatus:
    """Status of the docker-compose stack."""

    state: StackState
    running_services: list[str] = field(default_factory=list)
    stopped_services: list[str] = field(default_factory=list)
    message: str = ""


class StackManager:
    """Manage docker-compose stack."""

    def __init__(self, compose_dir: Path | None = None):
        """Initialize stack manager.

        Args:
            compose_dir: Directory containing docker-compose.yaml.
                        Defaults to ~/.vaultdb/
        """
        self.compose_dir = compose_dir or VAULTDB_DIR
        self.compose_file = self.compose_dir / COMPOSE_FILENAME

    def _compose(self, *args: str) -> list[str]:
        return ["docker", "compose", "-f", str(self.compose_file), *args]

    def status(self) -> StackStatus:
        """Get current stack status.

        Returns:
            StackStatus with current state and service information.
        """
        if not self.compose_file.exists():
            return StackStatus(StackState.NOT_FOUND, message="No docker-compose.yaml found")

        try:
            result = subprocess.run(
                self._compose("ps", "--all", "--format", "json"),
                capture_output=True,
                text=True,
                cwd=self.compose_dir,
            )
        except FileNotFoundError:
            return StackStatus(
                StackState.NOT_FOUND,
                message="Docker not found. Is Docker installed?",
            )

        if result.returncode != 0:
            return StackStatus(
                StackState.STOPPED,
                message=result.stderr.strip() or "Stack not running",
            )

        services = _parse_ps_output(result.stdout)
        if not services:
            return StackStatus(StackState.STOPPED, message="No services found")

        running = [
            s.get("Service", s.get("Name", "unknown"))
            for s in services
            if s.get("State") == "running"
        ]
        stopped = [
            s.get("Service", s.get("Name", "unknown"))
            for s in services
            if s.get("State") != "running"
        ]

        if len(running) == 0:
            state = StackState.STOPPED
        elif len(stopped) == 0:
            state = StackState.RUNNING
        else:
            state = StackState.PARTIAL

        return StackStatus(state, running, stopped)

    def up(
        self,
        services: list[str] | None = None,
        force_recreate: bool = False,
    ) -> tuple[bool, str]:
        """Create or start services in detached mode.

        Args:
            services: Services to bring up; all when None.
            force_recreate: Recreate containers even if unchanged.

        Returns:
            Tuple of (success, message).
        """
        if not self.compose_file.exists():
            return False, "No docker-compose.yaml found"

        args = self._compose("up", "-d")
        if force_recreate:
            args.extend(["--force-recreate", "--no-deps"])
        if services:
            args.extend(services)

        try:
            result = subprocess.run(
                args,
                cwd=self.compose_dir,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            return False, "Docker not found. Is Docker installed?"

        if result.returncode != 0:
            return False, f"Failed to start stack: {result.stderr.strip()}"

        return True, "Stack started successfully"

    def down(self, remove_volumes: bool = False) -> tuple[bool, str]:
        """Stop and remove containers and the network.

        Args:
            remove_volumes: Whether to remove named volumes.

        Returns:
            Tuple of (success, message).
        """
        if not self.compose_file.exists():
            return False, "No docker-compose.yaml found"

        args = self._compose("down")
        if remove_volumes:
            args.append("-v")

        try:
            result = subprocess.run(
                args,
                cwd=self.compose_dir,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            return False, "Docker not found. Is Docker installed?"

        if result.returncode != 0:
            return False, f"Failed to stop stack: {result.stderr.strip()}"

        return True, "Stack stopped successfully"

    def inspect(self, container_name: str) -> dict[str, Any] | None:
        """Inspect a container.

        Returns:
            docker inspect document, or None if the container doesn't exist.
        """
        try:
            result = subprocess.run(
                ["docker", "inspect", "--type", "container", container_name],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            return None

        if result.returncode != 0:
            return None

        try:
            documents = json.loads(result.stdout)
        except json.JSONDecodeError:
            return None
        return documents[0] if documents else None

    def logs(
        self,
        service: str | None = None,
        follow: bool = False,
        tail: int | None = None,
    ) -> subprocess.Popen | None:
        """Show logs.

        Args:
            service: Specific service to show logs for.
            follow: Whether to follow log output.
            tail: Number of lines to show from end.

        Returns:
            Popen process if follow=True, None otherwise.
        """
        if not self.compose_file.exists():
            return None

        args = self._compose("logs")
        if follow:
            args.append("-f")
        if tail is not None:
            args.extend(["--tail", str(tail)])
        if service:
            args.append(service)

        if follow:
            # Return process for caller to manage
            return subprocess.Popen(args, cwd=self.compose_dir)

        subprocess.run(args, cwd=self.compose_dir)
        return None


def _parse_ps_output(output: str) -> list[dict[str, Any]]:
    """Parse `docker compose ps --format json`.

    Older Compose releases print one JSON array, newer ones one object per line.
    """
    output = output.strip()
    if not output:
        return []
    if output.startswith("["):
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            return []

    services = []
    for line in output.splitlines():
        if line.strip():
            try:
                services.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return services
