"""
aws_codebuild.py
================
CodeBuild operations: view finished build logs (optionally piped through
grep and into the clipboard), watch or stream the latest build, list
projects and builds, and retry a build.

Usage:
    macpracs aws codebuild logs --build-id my-project:1234 --grep ERROR --copy
    macpracs aws codebuild watch my-project --interval 5
    macpracs aws codebuild stream my-project --profile dev
    macpracs aws codebuild builds my-project --status all --output json
"""

import shlex
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import timezone

import typer
from rich import box
from rich.markup import escape
from rich.table import Table

from core.aws import (
    TERMINAL_BUILD_STATUSES,
    AwsError,
    BuildInfo,
    LogLocation,
    aws_cli_args,
    build_log_location,
    ensure_aws_credentials,
    get_aws_profiles,
    get_build,
    latest_build,
    list_build_projects,
    list_completed_builds,
)
from core.exec import CommandError, PipelineStage, clipboard_command, execute, run_pipeline
from core.options import (
    AwsTarget,
    BuildStatusFilter,
    CodeBuildLogsOptions,
    OptionsError,
    OutputFormat,
)
from core.prompts import ask_pattern, choose
from core.runtime import AppState, app_state, fail, finish

app = typer.Typer(no_args_is_help=True)

STATUS_COLOURS = {
    "SUCCEEDED": "green",
    "FAILED": "red",
    "FAULT": "red",
    "TIMED_OUT": "red",
    "STOPPED": "yellow",
    "IN_PROGRESS": "blue",
}


# ── Data models ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LogsConfig:
    build_id: str
    target: AwsTarget
    grep: str | None = None
    copy: bool = False


# ── Logs pipeline ─────────────────────────────────────────────────────────────


def logs_tail_stage(location: LogLocation, target: AwsTarget, follow: bool = False) -> PipelineStage:
    args = ["logs", "tail", location.group, "--log-stream-names", location.stream, "--format", "short"]
    if follow:
        args.append("--follow")
    elif location.start_time is not None:
        since = location.start_time.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        args += ["--since", since]
    else:
        args += ["--since", "1w"]
    return PipelineStage("aws", tuple(args + aws_cli_args(target)))


def build_logs_pipeline(
    config: LogsConfig,
    location: LogLocation,
    clipboard: PipelineStage | None = None,
) -> list[PipelineStage]:
    """``aws logs tail ... [| grep PATTERN] [| clipboard]``"""
    stages = [logs_tail_stage(location, config.target)]
    if config.grep:
        stages.append(PipelineStage("grep", ("-e", config.grep)))
    if config.copy:
        if clipboard is None:
            raise OptionsError("No clipboard utility found (pbcopy, wl-copy, xclip, xsel)")
        stages.append(clipboard)
    return stages


def rerun_tip(config: LogsConfig) -> str:
    parts = ["macpracs", "aws", "codebuild", "logs", "--build-id", config.build_id]
    if config.target.profile:
        parts += ["--profile", config.target.profile]
    parts += ["--region", config.target.region]
    if config.grep:
        parts += ["--grep", config.grep]
    if config.copy:
        parts.append("--copy")
    return shlex.join(parts)


def _pick_profile(state: AppState, target: AwsTarget) -> AwsTarget:
    if target.profile or not state.can_prompt:
        return target
    profiles = get_aws_profiles()
    choices = [(f"{p.name} (default)" if p.is_default else p.name, p.name) for p in profiles]
    profile = choose(state.logger, "Select AWS profile:", choices, default="default")
    return AwsTarget(profile=profile, region=target.region)


def _pick_build(state: AppState, options: CodeBuildLogsOptions, target: AwsTarget) -> str:
    project = options.project
    if not project:
        if not state.can_prompt:
            raise OptionsError("--build-id or --project is required when not running interactively")
        projects = list_build_projects(target)
        if not projects:
            raise AwsError(f"No CodeBuild projects found in {target.region}")
        project = choose(state.logger, "Select CodeBuild project:", [(p, p) for p in projects])

    status = options.status
    if state.can_prompt and not options.project:
        status = choose(
            state.logger,
            "Filter builds by status:",
            [
                ("Failed builds only", BuildStatusFilter.FAILED),
                ("All completed builds", BuildStatusFilter.ALL),
                ("Succeeded builds only", BuildStatusFilter.SUCCEEDED),
                ("Stopped builds only", BuildStatusFilter.STOPPED),
            ],
            default=status,
        )

    builds = list_completed_builds(project, target, status.api_value)
    if not builds:
        label = f"{status.value.lower()} " if status.api_value else ""
        raise AwsError(f"No {label}builds found for project {project}")
    if not state.can_prompt:
        return builds[0].id
    return choose(
        state.logger,
        "Select build to view logs:",
        [(f"[{b.status}] {b.short_id} - {b.source_version} - {b.start_time}", b.id) for b in builds],
    )


def gather_logs_config(
    state: AppState,
    options: CodeBuildLogsOptions,
    target: AwsTarget,
) -> LogsConfig:
    """Fill in whatever the flags left out, prompting only on an interactive stdin."""
    if not options.build_id:
        state.logger.log("\n[blue]🔍 CodeBuild Logs Viewer[/blue]\n")
    target = _pick_profile(state, target)
    if not ensure_aws_credentials(target, state.logger):
        raise AwsError("Unable to proceed without valid credentials")

    build_id = options.build_id or _pick_build(state, options, target)

    grep = options.grep
    copy = options.copy
    if state.can_prompt:
        if grep is None and typer.confirm("Filter logs with grep?", default=False):
            grep = ask_pattern()
        if not copy:
            copy = typer.confirm("Copy output to clipboard?", default=False)
    return LogsConfig(build_id=build_id, target=target, grep=grep, copy=copy)


# ── Watch ─────────────────────────────────────────────────────────────────────


def watch_build(
    state: AppState,
    project: str,
    target: AwsTarget,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Poll the project's latest build until it finishes; return its final status."""
    build = latest_build(project, target)
    if build is None:
        raise AwsError(f"No builds found for project {project}")
    build_id = build["id"]
    state.logger.log(f"[bold]Watching[/bold] [cyan]{escape(build_id)}[/cyan]")

    last_seen: tuple[str | None, str | None] | None = None
    while True:
        status = build.get("buildStatus", "UNKNOWN")
        phase = build.get("currentPhase")
        if (status, phase) != last_seen:
            colour = STATUS_COLOURS.get(status, "white")
            state.logger.log(
                f"  [{colour}]{escape(status)}[/{colour}]  phase: {escape(phase or '-')}"
            )
            last_seen = (status, phase)
        if status in TERMINAL_BUILD_STATUSES:
            return status
        sleep(interval)
        build = get_build(build_id, target)


# ── Output formatters ─────────────────────────────────────────────────────────


def print_builds_table(state: AppState, project: str, rows: list[BuildInfo]) -> None:
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold blue", title=project)
    table.add_column("Status", width=11)
    table.add_column("Build", width=40)
    table.add_column("Source", width=24)
    table.add_column("Started", width=26)
    table.add_column("Initiator", width=20)
    for b in rows:
        colour = STATUS_COLOURS.get(b.status, "white")
        table.add_row(
            f"[{colour}]{b.status}[/{colour}]",
            escape(b.short_id),
            escape(b.source_version),
            escape(b.start_time),
            escape(b.initiated_by),
        )
    state.logger.out.print(table)


# ── CLI commands ──────────────────────────────────────────────────────────────


@app.command("logs")
def logs(
    ctx: typer.Context,
    build_id: str | None = typer.Option(None, "--build-id", help="Build ID to view logs for"),
    project: str | None = typer.Option(None, "--project", help="CodeBuild project name"),
    status: BuildStatusFilter = typer.Option(
        BuildStatusFilter.FAILED,
        "--status",
        case_sensitive=False,
        help="Filter builds by status (FAILED, SUCCEEDED, STOPPED, all)",
    ),
    grep: str | None = typer.Option(None, "--grep", help="Filter logs with grep pattern"),
    copy: bool = typer.Option(False, "--copy", help="Copy output to clipboard"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """
    View completed build logs with optional grep filtering and clipboard copy.

    Examples:\n
        macpracs aws codebuild logs --build-id my-project:1234\n
        macpracs aws codebuild logs --project my-project --status all --grep ERROR --copy
    """
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    try:
        options = CodeBuildLogsOptions(build_id, project, status, grep, copy)
        config = gather_logs_config(state, options, target)
        location = build_log_location(get_build(config.build_id, config.target))
        stages = build_logs_pipeline(
            config, location, clipboard_command() if config.copy else None
        )

        state.logger.info("Fetching build logs...")
        state.logger.info(" | ".join(stage.render() for stage in stages))
        run_pipeline(
            stages,
            interactive=state.terminal.stderr,
            on_stderr=state.logger.stderr_echo,
        )
    except (AwsError, OptionsError, CommandError) as e:
        fail(state, "view build logs", e, target.profile)

    if config.copy:
        state.logger.log("\n[green]✓[/green] Logs copied to clipboard!")
    if state.terminal.stdout and not state.logger.quiet:
        state.logger.out.print(f"\n[dim]💡 Tip: {escape(rerun_tip(config))}[/dim]\n", soft_wrap=True)


@app.command("watch")
def watch(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="CodeBuild project name"),
    interval: int | None = typer.Option(
        None, "--interval", "-i", min=1, help="Seconds between status checks"
    ),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """Watch the latest build of a CodeBuild project until it finishes."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info(f"Watching build: {name}")
    try:
        final = watch_build(state, name, target, interval or state.settings.refresh_interval)
    except AwsError as e:
        fail(state, "watch build", e, target.profile)

    if final != "SUCCEEDED":
        state.logger.error(f"Build finished with status {final}")
        raise typer.Exit(1)
    state.logger.success("Build watch completed")


@app.command("stream")
def stream(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="CodeBuild project name"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """Stream the latest build's logs in real time (tail -f style)."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info(f"Streaming logs for: {name}")
    try:
        build = latest_build(name, target)
        if build is None:
            raise AwsError(f"No builds found for project {name}")
        location = build_log_location(build)
    except AwsError as e:
        fail(state, "stream logs", e, target.profile)

    stage = logs_tail_stage(location, target, follow=True)
    finish(state, execute(stage.command, stage.arguments), "log streaming")


@app.command("list")
def list_projects(
    ctx: typer.Context,
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="table | json"),
) -> None:
    """List all CodeBuild projects in the region."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info("Listing build projects...")
    try:
        projects = list_build_projects(target)
    except AwsError as e:
        fail(state, "list build projects", e, target.profile)

    if output == OutputFormat.JSON:
        state.logger.output({"region": target.region, "projects": projects})
        return
    if not projects:
        state.logger.log(f"[yellow]No CodeBuild projects found in {target.region}[/yellow]")
        return
    for project in projects:
        state.logger.output(project)


@app.command("builds")
def builds(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="CodeBuild project name"),
    status: BuildStatusFilter = typer.Option(
        BuildStatusFilter.ALL, "--status", case_sensitive=False, help="FAILED, SUCCEEDED, STOPPED, all"
    ),
    limit: int = typer.Option(20, "--limit", "-l", min=1, max=100, help="Builds to inspect"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="table | json"),
) -> None:
    """List recently completed builds of a project."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    try:
        completed = list_completed_builds(project, target, status.api_value, limit)
    except AwsError as e:
        fail(state, "list builds", e, target.profile)

    if output == OutputFormat.JSON:
        state.logger.output([asdict(b) for b in completed])
    elif not completed:
        state.logger.log(f"[yellow]No completed builds found for {escape(project)}[/yellow]")
    else:
        print_builds_table(state, project, completed)


@app.command("retry")
def retry(
    ctx: typer.Context,
    project_name: str = typer.Argument(..., help="CodeBuild project name"),
    build_id: str = typer.Argument(..., help="Build ID (with or without the project: prefix)"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """Retry a failed CodeBuild build."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    qualified = build_id if ":" in build_id else f"{project_name}:{build_id}"
    state.logger.info(f"Retrying build: {qualified}")
    result = execute("aws", ["codebuild", "retry-build", "--id", qualified, *aws_cli_args(target)])
    finish(state, result, "build retry")
