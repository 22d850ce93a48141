"""
github_actions.py
=================
GitHub Actions operations through the GitHub CLI: watch a run live, list
runs, rerun failed jobs and cancel a run.

Usage:
    macpracs github actions watch --branch main
    macpracs github actions list --repo owner/repo --status failure --output json
    macpracs github actions rerun 123456789 --repo owner/repo
"""

from dataclasses import asdict

import typer
from rich import box
from rich.markup import escape
from rich.table import Table

from core.exec import execute
from core.github import (
    GitHubError,
    WorkflowRun,
    cancel_workflow_run,
    get_current_repo,
    gh_env,
    list_workflow_runs,
    repo_args,
    rerun_failed_jobs,
)
from core.options import GitHubTarget, OptionsError, OutputFormat, WorkflowRunFilter
from core.runtime import AppState, app_state, fail, finish

app = typer.Typer(no_args_is_help=True)

CONCLUSION_COLOURS = {
    "success": "green",
    "failure": "red",
    "cancelled": "yellow",
    "skipped": "dim",
    "timed_out": "red",
}


def resolve_target(state: AppState, repo: str | None, hostname: str | None) -> GitHubTarget:
    """Use --repo when given, otherwise the repository of the current directory."""
    target = GitHubTarget.resolve(repo, hostname, state.settings)
    if target.repo:
        return target
    current = get_current_repo(target)
    if not current:
        raise OptionsError("Not in a git repository. Please specify --repo owner/repo")
    return GitHubTarget(repo=current, hostname=target.hostname)


def print_runs_table(state: AppState, repo: str, runs: list[WorkflowRun]) -> None:
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold blue", title=repo)
    table.add_column("Run ID", width=12)
    table.add_column("Status", width=22)
    table.add_column("Workflow", width=24)
    table.add_column("Title", width=40)
    table.add_column("Branch", width=20)
    table.add_column("Created", width=20)
    for run in runs:
        result = run.conclusion or run.status
        colour = CONCLUSION_COLOURS.get(run.conclusion, "blue")
        table.add_row(
            str(run.id),
            f"[{colour}]{escape(result)}[/{colour}]",
            escape(run.workflow_name),
            escape(run.display_title),
            escape(run.branch),
            escape(run.created_at),
        )
    state.logger.out.print(table)


# ── CLI commands ──────────────────────────────────────────────────────────────


@app.command("watch")
def watch(
    ctx: typer.Context,
    run_id: int | None = typer.Option(None, "--run-id", help="Workflow run ID to watch"),
    branch: str | None = typer.Option(None, "--branch", "-b", help="Branch to filter runs"),
    workflow: str | None = typer.Option(None, "--workflow", "-w", help="Workflow name or ID"),
    repo: str | None = typer.Option(None, "--repo", "-r", help="Repository (owner/repo)"),
    hostname: str | None = typer.Option(None, "--hostname", help="GitHub hostname (for GHE)"),
) -> None:
    """Watch a GitHub Actions workflow run in real time (latest run by default)."""
    state = app_state(ctx)
    try:
        target = resolve_target(state, repo, hostname)
        if run_id is None:
            runs = list_workflow_runs(target, WorkflowRunFilter(branch, workflow, limit=1))
            if not runs:
                raise GitHubError("No workflow runs found")
            run_id = runs[0].id
            state.logger.info(f"Watching run #{run_id}: {runs[0].display_title}")
    except (GitHubError, OptionsError) as e:
        fail(state, "execute actions watch", e)

    result = execute(
        "gh",
        ["run", "watch", str(run_id), "--exit-status", *repo_args(target)],
        env=gh_env(target.hostname),
    )
    finish(state, result, "actions watch")


@app.command("list")
def list_runs(
    ctx: typer.Context,
    branch: str | None = typer.Option(None, "--branch", "-b", help="Filter by branch"),
    workflow: str | None = typer.Option(None, "--workflow", "-w", help="Workflow name or ID"),
    status: str | None = typer.Option(
        None, "--status", "-s", help="Filter by status (queued, in_progress, completed, failure, ...)"
    ),
    limit: int = typer.Option(20, "--limit", "-l", help="Limit number of results"),
    repo: str | None = typer.Option(None, "--repo", "-r", help="Repository (owner/repo)"),
    hostname: str | None = typer.Option(None, "--hostname", help="GitHub hostname (for GHE)"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="table | json"),
) -> None:
    """List workflow runs for a repository."""
    state = app_state(ctx)
    try:
        run_filter = WorkflowRunFilter(branch, workflow, status, limit)
        target = resolve_target(state, repo, hostname)
        runs = list_workflow_runs(target, run_filter)
    except (GitHubError, OptionsError) as e:
        fail(state, "list workflow runs", e)

    if output == OutputFormat.JSON:
        state.logger.output([asdict(r) for r in runs])
    elif not runs:
        state.logger.log("[yellow]No workflow runs found[/yellow]")
    else:
        print_runs_table(state, target.repo or "", runs)


@app.command("rerun")
def rerun(
    ctx: typer.Context,
    run_id: int = typer.Argument(..., help="Workflow run ID"),
    repo: str | None = typer.Option(None, "--repo", "-r", help="Repository (owner/repo)"),
    hostname: str | None = typer.Option(None, "--hostname", help="GitHub hostname (for GHE)"),
) -> None:
    """Rerun the failed jobs of a workflow run."""
    state = app_state(ctx)
    try:
        target = resolve_target(state, repo, hostname)
        rerun_failed_jobs(target, run_id)
    except (GitHubError, OptionsError) as e:
        fail(state, "rerun workflow", e)

    state.logger.log(f"[green]✓[/green] Rerun initiated for workflow run {run_id}")
    state.logger.log(
        f"\n[dim]💡 Tip: Watch the rerun with: macpracs github actions watch "
        f"--repo {escape(target.repo or '')} --run-id {run_id}[/dim]\n"
    )


@app.command("cancel")
def cancel(
    ctx: typer.Context,
    run_id: int = typer.Argument(..., help="Workflow run ID"),
    repo: str | None = typer.Option(None, "--repo", "-r", help="Repository (owner/repo)"),
    hostname: str | None = typer.Option(None, "--hostname", help="GitHub hostname (for GHE)"),
) -> None:
    """Cancel an in-progress workflow run."""
    state = app_state(ctx)
    try:
        target = resolve_target(state, repo, hostname)
        cancel_workflow_run(target, run_id)
    except (GitHubError, OptionsError) as e:
        fail(state, "cancel workflow run", e)

    state.logger.log(f"[green]✓[/green] Workflow run {run_id} cancelled")
