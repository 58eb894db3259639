"""CLI output formatting helpers."""

from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from .bootstrap import BootstrapStage, StackStatus, StepResult, TrackedState

console = Console()


def print_config_yaml(data: dict[str, Any], sources: dict[str, str] | None = None) -> None:
    """Print config as YAML, optionally annotated with each value's source.

    Args:
        data: Configuration data
        sources: Optional key -> source mapping
    """
    if not sources:
        click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))
        return

    for key, value in data.items():
        click.echo(f"  {key}: {value}  # {sources.get(key, 'default')}")


def print_step(step: StepResult) -> None:
    """Print one completed transition."""
    marker = "✓" if step.changed else "·"
    detail = f" ({step.detail})" if step.detail else ""
    click.echo(f"  {marker} {step.stage.value}{detail}")


def print_stage_progress(stage: BootstrapStage) -> None:
    """Print every stage, marking the ones reached."""
    for candidate in BootstrapStage:
        marker = "✓" if stage.reached(candidate) else " "
        click.echo(f"  [{marker}] {candidate.value}")


def print_resources(state: TrackedState) -> None:
    """Print tracked resources as a table.

    Args:
        state: Tracked state
    """
    if not state.resources:
        click.echo("No resources tracked.")
        return

    table = Table(title=f"Tracked resources (stage: {state.stage.value})")
    table.add_column("Address", style="cyan")
    table.add_column("Attributes")
    for address in sorted(state.resources):
        attributes = state.resources[address]
        summary = ", ".join(f"{k}={v}" for k, v in sorted(attributes.items()) if k != "digest")
        table.add_row(address, summary)
    console.print(table)


def print_status(
    stage: BootstrapStage,
    stack_status: StackStatus,
    seal_status: dict[str, Any] | None,
    seal_error: str | None = None,
) -> None:
    """Print the combined bootstrap status.

    Args:
        stage: Last completed bootstrap stage
        stack_status: Container status
        seal_status: Vault seal status, or None if unreachable
        seal_error: Why Vault could not be queried
    """
    click.echo("Bootstrap stage:")
    print_stage_progress(stage)

    click.echo(f"\nStack state: {stack_status.state.value}")
    if stack_status.message:
        click.echo(f"  {stack_status.message}")
    for svc in stack_status.running_services:
        click.echo(f"  ✓ {svc}")
    for svc in stack_status.stopped_services:
        click.echo(f"  ✗ {svc}")

    click.echo("\nVault:")
    if seal_status is None:
        click.echo(f"  ✗ unreachable: {seal_error or 'unknown error'}")
        return
    click.echo(f"  initialized: {seal_status.get('initialized')}")
    click.echo(f"  sealed: {seal_status.get('sealed')}")
    if seal_status.get("version"):
        click.echo(f"  version: {seal_status['version']}")
