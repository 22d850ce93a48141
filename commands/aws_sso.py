"""
aws_sso.py
==========
AWS SSO session management.

Usage:
    macpracs aws sso login --profile dev
    macpracs aws sso profiles
"""

import typer

from core.aws import get_aws_profiles
from core.exec import execute
from core.prompts import choose
from core.runtime import app_state, finish

app = typer.Typer(no_args_is_help=True)


@app.command("login")
def login(
    ctx: typer.Context,
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
) -> None:
    """Log in to AWS SSO (opens the browser) for a profile."""
    state = app_state(ctx)
    profile = profile or state.settings.aws.default_profile
    if not profile and state.can_prompt:
        choices = [(p.name, p.name) for p in get_aws_profiles()]
        profile = choose(state.logger, "Select AWS profile:", choices, default="default")

    args = ["sso", "login"]
    if profile:
        args += ["--profile", profile]
    state.logger.info(f"Logging in with profile: {profile or 'default'}")
    finish(state, execute("aws", args), "SSO login")


@app.command("profiles")
def profiles(ctx: typer.Context) -> None:
    """List AWS CLI profiles from ~/.aws/config."""
    state = app_state(ctx)
    for p in get_aws_profiles():
        state.logger.output(f"{p.name} (default)" if p.is_default else p.name)
