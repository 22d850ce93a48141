"""
config.py
=========
Inspect and edit the macpracs config file.

Usage:
    macpracs config show
    macpracs config set aws.defaultRegion eu-west-1
    macpracs config reset
"""

import typer

from core.config import ConfigError, config_path, reset_settings, update_setting
from core.runtime import app_state, fail

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Print the effective configuration as JSON."""
    state = app_state(ctx)
    state.logger.output(state.settings.to_dict())


@app.command("path")
def path(ctx: typer.Context) -> None:
    """Print the config file location."""
    state = app_state(ctx)
    state.logger.output(str(config_path(state.config_file)))


@app.command("set")
def set_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dotted key, e.g. aws.defaultRegion"),
    value: str = typer.Argument(..., help="New value (empty string restores the default)"),
) -> None:
    """Set a single config value."""
    state = app_state(ctx)
    try:
        state.settings = update_setting(key, value, state.config_file)
    except ConfigError as e:
        fail(state, "update config", e)
    state.logger.log(f"[green]✓[/green] {key} updated")


@app.command("reset")
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete the config file and fall back to defaults."""
    state = app_state(ctx)
    if not yes and state.can_prompt and not typer.confirm("Reset configuration to defaults?"):
        raise typer.Exit(1)
    if reset_settings(state.config_file):
        state.logger.log("[green]✓[/green] Configuration reset")
    else:
        state.logger.log("[dim]No config file to reset[/dim]")
