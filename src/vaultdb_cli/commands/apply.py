"""Apply and destroy commands.

`vaultdb apply` runs Phase 1 (containers, Vault init/unseal, Oracle accounts)
and/or Phase 2 (plugin, database engine, roles). `vaultdb destroy` reverses
both.
"""

from __future__ import annotations

import sys
from typing import NoReturn

import click

from ..application import BootstrapApplication
from ..bootstrap import StackState
from ..errors import BootstrapError, ExternalCallFailure, VerificationFailure
from ..formatters import print_resources, print_status, print_step


def _fail(error: BootstrapError) -> NoReturn:
    click.echo(f"✗ {error.message}", err=True)
    if isinstance(error, VerificationFailure) and error.diagnostics:
        click.echo("\nDiagnostics:", err=True)
        click.echo(error.diagnostics, err=True)
    sys.exit(1)


def _open_app(config, **kwargs) -> BootstrapApplication:
    try:
        return BootstrapApplication(config, **kwargs)
    except BootstrapError as e:
        _fail(e)


def _on_attempt(attempt: int, max_attempts: int | None, error: str | None) -> None:
    bound = max_attempts if max_attempts is not None else "∞"
    click.echo(f"  Waiting ({attempt}/{bound}): {error or 'checking...'}", err=True)


@click.command()
@click.option(
    "--phase",
    type=click.Choice(["1", "2", "all"]),
    default="all",
    help="Phase to run: 1 (containers, init, accounts), 2 (plugin, backend, roles)",
)
@click.pass_context
def apply(ctx: click.Context, phase: str) -> None:
    """Provision the stack and bootstrap Vault's Oracle secrets engine.

    Examples:

        # Everything
        vaultdb apply

        # Phase 1 now, Phase 2 later
        vaultdb apply --phase 1
        vaultdb apply --phase 2
    """
    config = ctx.obj["config"]
    if phase in ("1", "all") and not config.oracle_password:
        click.echo(
            "✗ oracle_password is not set. Use: vaultdb config set oracle_password <value> "
            "or export VAULTDB_ORACLE_PASSWORD",
            err=True,
        )
        sys.exit(1)

    with _open_app(config, on_step=print_step, on_attempt=_on_attempt) as app:
        try:
            if phase in ("1", "all"):
                click.echo("\n📋 Phase 1: containers, Vault init/unseal, Oracle accounts\n")
                app.sequencer.run_phase1()
            if phase in ("2", "all"):
                click.echo("\n📋 Phase 2: plugin, database backend, roles\n")
                app.sequencer.run_phase2()
        except BootstrapError as e:
            _fail(e)

        click.echo(f"\n✓ Bootstrap stage: {app.sequencer.stage.value}")
        click.echo(f"  Root token: {app.credentials.path_for('root_token')}")
        click.echo(f"  Unseal key: {app.credentials.path_for('unseal_key')}")


@click.command()
@click.option(
    "--forget-vault-resources",
    is_flag=True,
    help="Drop Vault-side resources from state instead of deleting them via the API",
)
@click.option(
    "--remove-data",
    is_flag=True,
    help="Also delete Vault storage, downloads and persisted credentials (data loss!)",
)
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def destroy(ctx: click.Context, forget_vault_resources: bool, remove_data: bool, yes: bool) -> None:
    """Remove roles, backend, plugin, containers and network."""
    config = ctx.obj["config"]
    if remove_data and not yes:
        if not click.confirm("This will delete Vault storage and its unseal key. Continue?"):
            return

    with _open_app(config) as app:
        try:
            handled = app.sequencer.teardown(
                forget_vault_resources=forget_vault_resources,
                remove_data=remove_data,
            )
        except BootstrapError as e:
            _fail(e)

    verb = "Forgot" if forget_vault_resources else "Deleted"
    for address in handled:
        click.echo(f"  ✓ {verb} {address}")
    click.echo("✓ vaultdb stack destroyed.")


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show bootstrap stage, containers and Vault seal status."""
    config = ctx.obj["config"]
    with _open_app(config) as app:
        stack_status = app.stack_manager.status()
        seal_status = None
        seal_error = None
        if stack_status.state == StackState.NOT_FOUND:
            seal_error = "stack not provisioned"
        else:
            try:
                seal_status = app.vault.seal_status()
            except ExternalCallFailure as e:
                seal_error = e.detail
        print_status(app.sequencer.stage, stack_status, seal_status, seal_error)
        click.echo()
        print_resources(app.sequencer.state)


@click.command()
@click.option("--follow", "-f", is_flag=True, help="Follow log output")
@click.option("--service", "-s", default=None, help="Show logs for specific service")
@click.option("--tail", default=100, type=int, help="Number of lines")
@click.pass_context
def logs(ctx: click.Context, follow: bool, service: str | None, tail: int) -> None:
    """Show container logs."""
    config = ctx.obj["config"]
    with _open_app(config) as app:
        process = app.stack_manager.logs(service=service, follow=follow, tail=tail)
        if process is not None:
            try:
                process.wait()
            except KeyboardInterrupt:
                process.terminate()
