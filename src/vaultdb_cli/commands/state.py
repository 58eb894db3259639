"""Tracked state inspection and surgery.

`vaultdb state rm` is how Vault-side resources are dropped from state when
Vault is gone and can't be asked to delete them.
"""

from __future__ import annotations

import json
import sys

import click

from ..bootstrap import StateStore, TrackedState
from ..errors import BootstrapError
from ..formatters import print_resources
from ..shared.paths import STATE_FILENAME


def _store(ctx: click.Context) -> StateStore:
    return StateStore(ctx.obj["config"].base_dir / STATE_FILENAME)


def _load(store: StateStore) -> TrackedState:
    try:
        return store.load()
    except BootstrapError as e:
        click.echo(f"✗ {e.message}", err=True)
        sys.exit(1)


@click.group()
def state() -> None:
    """Inspect and edit tracked state."""
    pass


@state.command("list")
@click.pass_context
def state_list(ctx: click.Context) -> None:
    """List tracked resources."""
    tracked = _load(_store(ctx))
    if ctx.obj["json_output"]:
        click.echo(json.dumps(tracked.to_dict(), indent=2))
    else:
        print_resources(tracked)


@state.command("rm")
@click.argument("addresses", nargs=-1)
@click.option("--vault-resources", is_flag=True, help="Drop every Vault-side resource")
@click.pass_context
def state_rm(ctx: click.Context, addresses: tuple[str, ...], vault_resources: bool) -> None:
    """Drop resources from tracked state without deleting them."""
    store = _store(ctx)
    tracked = _load(store)

    targets = list(addresses)
    if vault_resources:
        targets.extend(a for a in tracked.vault_resources() if a not in targets)
    if not targets:
        click.echo("✗ Nothing to remove. Pass addresses or --vault-resources.", err=True)
        sys.exit(1)

    missing = [a for a in targets if tracked.get_resource(a) is None]
    if missing:
        click.echo(f"✗ Not in state: {', '.join(missing)}", err=True)
        sys.exit(1)

    for address in targets:
        tracked.remove_resource(address)
        click.echo(f"  ✓ Removed {address}")
    store.save(tracked)
