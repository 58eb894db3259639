"""Credential verification commands.

Read the persisted root token and ask Vault for Oracle credentials, which
exercises the whole chain: plugin, connection, role and Oracle grants.
"""

from __future__ import annotations

import json
import sys

import click

from ..bootstrap import FileCredentialStore, VaultClient
from ..bootstrap.credentials import load_root_token
from ..errors import ExternalCallFailure


def _client(ctx: click.Context) -> VaultClient:
    config = ctx.obj["config"]
    token = load_root_token(FileCredentialStore(config.base_dir))
    if not token:
        click.echo("✗ No root token persisted. Run: vaultdb apply --phase 1", err=True)
        sys.exit(1)
    return VaultClient(config.vault_addr, token=token, timeout=config.http_timeout)


def _print_creds(ctx: click.Context, response: dict) -> None:
    data = response.get("data", {})
    if ctx.obj["json_output"]:
        click.echo(json.dumps(response, indent=2))
        return
    click.echo(f"username: {data.get('username')}")
    click.echo(f"password: {data.get('password')}")
    if response.get("lease_id"):
        click.echo(f"lease_id: {response['lease_id']}")
        click.echo(f"lease_duration: {response.get('lease_duration')}s")
    if "ttl" in data:
        click.echo(f"rotation ttl: {data['ttl']}s")


@click.group()
def creds() -> None:
    """Fetch Oracle credentials from Vault."""
    pass


@creds.command()
@click.pass_context
def dynamic(ctx: click.Context) -> None:
    """Lease a brand-new Oracle user from the dynamic role."""
    config = ctx.obj["config"]
    with _client(ctx) as client:
        try:
            response = client.generate_credentials(config.mount_path, config.dynamic_role)
        except ExternalCallFailure as e:
            click.echo(f"✗ {e.message}", err=True)
            sys.exit(1)
    _print_creds(ctx, response)


@creds.command()
@click.pass_context
def static(ctx: click.Context) -> None:
    """Read the current password of the static role's account."""
    config = ctx.obj["config"]
    with _client(ctx) as client:
        try:
            response = client.read_static_credentials(config.mount_path, config.static_role)
        except ExternalCallFailure as e:
            click.echo(f"✗ {e.message}", err=True)
            sys.exit(1)
    _print_creds(ctx, response)
