#!/usr/bin/env python3
"""
macpracs
========
Personal engineering-practices CLI. Wraps the AWS CLI and the GitHub CLI
(plus a RabbitMQ test-event publisher) behind a command tree that stays
UNIX-friendly: silent on success unless --verbose, verbose on failure
unless --quiet, with proper exit codes.

Usage:
    python main.py aws codebuild logs --build-id my-project:1234 --grep ERROR
    python main.py aws codebuild watch my-project
    python main.py aws pipeline watch my-pipeline
    python main.py aws sso login --profile dev
    python main.py mq publish -c acme -e staging -t order.created
    python main.py github actions watch --branch main
    python main.py config set aws.defaultRegion eu-west-1
"""

from pathlib import Path

import typer

from commands.aws_codebuild import app as codebuild_app
from commands.aws_ecs import app as ecs_app
from commands.aws_pipeline import app as pipeline_app
from commands.aws_sso import app as sso_app
from commands.config import app as config_app
from commands.github import app as github_app
from commands.mq import app as mq_app
from core.config import ConfigError, Settings, load_settings
from core.logger import create_logger
from core.runtime import AppState, TerminalCaps

__version__ = "0.4.0"

app = typer.Typer(
    name="macpracs",
    help="Personal engineering practices CLI tool.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

aws_app = typer.Typer(no_args_is_help=True)
aws_app.add_typer(codebuild_app, name="codebuild", help="CodeBuild operations (logs, watch, stream, list, builds, retry).")
aws_app.add_typer(pipeline_app,  name="pipeline",  help="CodePipeline operations (watch, list, retry, describe).")
aws_app.add_typer(ecs_app,       name="ecs",       help="ECS operations (tasks, logs, list-clusters, list-services).")
aws_app.add_typer(sso_app,       name="sso",       help="AWS SSO session management.")

app.add_typer(aws_app,    name="aws",    help="AWS operations through the AWS CLI.")
app.add_typer(github_app, name="github", help="GitHub operations through the GitHub CLI.")
app.add_typer(mq_app,     name="mq",     help="RabbitMQ test event publishing.")
app.add_typer(config_app, name="config", help="Show and edit macpracs configuration.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"macpracs {__version__}")
        raise typer.Exit()


@app.callback()
def root(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", help="Suppress all output except data"),
    config: Path | None = typer.Option(
        None, "--config", envvar="MACPRACS_CONFIG", help="Use alternate config file"
    ),
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    logger = create_logger(verbose, quiet)
    try:
        settings = load_settings(config)
    except ConfigError as e:
        logger.detail(f"Warning: failed to load config, using defaults: {e}", style="yellow")
        settings = Settings()
    ctx.obj = AppState(settings=settings, logger=logger, terminal=TerminalCaps.detect(), config_file=config)


if __name__ == "__main__":
    app()
