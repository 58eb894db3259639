"""CLI main entry point."""

import json
import sys

import click

from .commands import apply, creds, destroy, logs, state, status
from .config import config_keys, env_var_for, load_config, save_config, unset_config
from .formatters import print_config_yaml
from .shared.logging import configure_logging, verbosity_to_level


@click.group()
@click.option("-c", "--config", "config_path", type=click.Path(), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Write logs to a file")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    verbose: int,
    json_output: bool,
    log_json: bool,
    log_file: str | None,
) -> None:
    """Bootstrap Vault with an Oracle dynamic-secrets backend."""
    configure_logging(
        level=verbosity_to_level(verbose), log_file=log_file, json_output=log_json
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    ctx.obj["json_output"] = json_output
    try:
        ctx.obj["config"] = load_config(config_path)
    except ValueError as e:
        click.echo(f"Error: invalid configuration value: {e}", err=True)
        sys.exit(1)


@cli.group()
def config() -> None:
    """Configuration commands."""
    pass


@config.command("show")
@click.option("--reveal", is_flag=True, help="Show secret values instead of masking them")
@click.pass_context
def config_show(ctx: click.Context, reveal: bool) -> None:
    """Show current configuration and where each value came from."""
    loaded = ctx.obj["config"]
    data = loaded.as_dict(mask_secrets=not reveal)

    if ctx.obj["json_output"]:
        click.echo(json.dumps(data, indent=2, default=str))
        return

    click.echo("vaultdb configuration\n")
    print_config_yaml(data, {key: loaded.get_source(key) for key in data})


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Persist a configuration value.

    Examples:

        vaultdb config set oracle_password s3cret
        vaultdb config set key_shares 5
    """
    try:
        save_config(key, value, ctx.obj["config_path"])
    except KeyError:
        click.echo(f"Error: Unknown key '{key}'", err=True)
        click.echo(f"\nValid keys:\n  {', '.join(config_keys())}")
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error: invalid value for '{key}': {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Set {key}")
    if env_var_for(key) in _overridden_env(ctx):
        click.echo(f"  Note: {env_var_for(key)} is set and takes precedence")


@config.command("unset")
@click.argument("key")
@click.pass_context
def config_unset(ctx: click.Context, key: str) -> None:
    """Remove a configuration value, restoring its default."""
    if unset_config(key, ctx.obj["config_path"]):
        click.echo(f"✓ Unset {key}")
    else:
        click.echo(f"{key} was not set in the config file")


def _overridden_env(ctx: click.Context) -> set[str]:
    loaded = ctx.obj["config"]
    return {env_var_for(key) for key in config_keys() if loaded.get_source(key) == "environment"}


cli.add_command(apply)
cli.add_command(destroy)
cli.add_command(status)
cli.add_command(logs)
cli.add_command(state)
cli.add_command(creds)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
