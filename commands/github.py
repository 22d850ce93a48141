"""
github.py
=========
GitHub operations through the GitHub CLI. Mounts the ``actions``
sub-commands next to account authentication and pull request activity.

Usage:
    macpracs github auth --hostname github.example.com
    macpracs github pr-activity 42 --repo owner/repo
"""

from dataclasses import asdict

import typer

from commands.github_actions import app as actions_app
from commands.github_actions import resolve_target
from core.exec import execute
from core.github import GitHubError, auth_login_args, get_pr_activity, render_pr_markdown
from core.options import OptionsError
from core.runtime import app_state, fail, finish

app = typer.Typer(no_args_is_help=True)
app.add_typer(actions_app, name="actions", help="GitHub Actions operations (watch, list, rerun, cancel).")


@app.command("auth")
def auth(
    ctx: typer.Context,
    with_token: bool = typer.Option(
        False, "--with-token", "-t", help="Read a token from stdin instead of using the browser"
    ),
    hostname: str | None = typer.Option(
        None, "--hostname", "-H", help="GitHub hostname for enterprise (defaults to github.com)"
    ),
) -> None:
    """Authenticate a GitHub account with gh (browser flow by default)."""
    state = app_state(ctx)
    state.logger.log("\n🔑 Authenticating with GitHub...\n")
    finish(state, execute("gh", auth_login_args(with_token, hostname)), "GitHub authentication")


@app.command("pr-activity")
def pr_activity(
    ctx: typer.Context,
    number: int = typer.Argument(..., help="Pull request number"),
    repo: str | None = typer.Option(None, "--repo", "-r", help="Repository (owner/repo)"),
    hostname: str | None = typer.Option(None, "--hostname", help="GitHub hostname (for GHE)"),
    as_json: bool = typer.Option(False, "--json", help="Print raw activity as JSON"),
) -> None:
    """Print a pull request and its discussion as markdown."""
    state = app_state(ctx)
    state.logger.info(f"Fetching PR #{number} activity...")
    try:
        target = resolve_target(state, repo, hostname)
        activity = get_pr_activity(target, number)
    except (GitHubError, OptionsError) as e:
        fail(state, "fetch PR activity", e)

    if as_json:
        state.logger.output(asdict(activity))
    else:
        state.logger.output(render_pr_markdown(activity).rstrip("\n"))
