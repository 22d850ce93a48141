"""
aws_pipeline.py
===============
CodePipeline operations: watch the latest execution stage by stage, list
pipelines, start a new execution and describe an execution as JSON.

Usage:
    macpracs aws pipeline watch my-pipeline --interval 10
    macpracs aws pipeline list --output json
    macpracs aws pipeline describe --pipeline my-pipeline --execution-id latest --detail detailed
"""

import time
from collections.abc import Callable
from typing import Any

import typer
from rich.markup import escape

from core.aws import (
    TERMINAL_PIPELINE_STATUSES,
    AwsError,
    aws_cli_args,
    ensure_aws_credentials,
    get_pipeline_execution,
    latest_pipeline_execution,
    list_pipeline_executions,
    list_pipelines,
)
from core.exec import execute
from core.options import AwsTarget, DetailLevel, OptionsError, OutputFormat
from core.prompts import choose
from core.runtime import AppState, app_state, fail, finish

app = typer.Typer(no_args_is_help=True)

STATUS_COLOURS = {
    "Succeeded": "green",
    "Failed": "red",
    "Stopped": "yellow",
    "Stopping": "yellow",
    "Superseded": "dim",
    "Cancelled": "dim",
    "InProgress": "blue",
}


def stage_status(stage: dict[str, Any], execution_id: str | None = None) -> str:
    """Status of a stage, or Pending when its latest run belongs to another execution."""
    latest = stage.get("latestExecution") or {}
    if execution_id and latest.get("pipelineExecutionId") != execution_id:
        return "Pending"
    return latest.get("status", "Pending")


def format_execution(execution: dict[str, Any], detail: DetailLevel) -> dict[str, Any]:
    if detail == DetailLevel.FULL:
        return execution
    summary = {
        "pipelineExecutionId": execution.get("pipelineExecutionId"),
        "pipelineName": execution.get("pipelineName"),
        "status": execution.get("status"),
        "artifactRevisions": execution.get("artifactRevisions", []),
        "trigger": execution.get("trigger"),
    }
    if detail == DetailLevel.SUMMARY:
        return summary
    return {
        **summary,
        "pipelineVersion": execution.get("pipelineVersion"),
        "statusSummary": execution.get("statusSummary"),
        "stages": [
            {"stageName": stage.get("stageName"), "status": stage_status(stage)}
            for stage in execution.get("stageStates", [])
        ],
    }


def watch_pipeline(
    state: AppState,
    pipeline: str,
    target: AwsTarget,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Poll the latest execution until it finishes, printing each stage transition."""
    execution_id = latest_pipeline_execution(pipeline, target)
    state.logger.log(
        f"[bold]Watching[/bold] [cyan]{escape(pipeline)}[/cyan] execution {escape(execution_id)}"
    )

    seen: dict[str, str] = {}
    while True:
        execution = get_pipeline_execution(pipeline, execution_id, target)
        for stage in execution.get("stageStates", []):
            name = stage.get("stageName", "?")
            status = stage_status(stage, execution_id)
            if seen.get(name) != status:
                colour = STATUS_COLOURS.get(status, "white")
                state.logger.log(f"  {escape(name):<20} [{colour}]{escape(status)}[/{colour}]")
                seen[name] = status
        status = execution.get("status", "UNKNOWN")
        if status in TERMINAL_PIPELINE_STATUSES:
            return status
        sleep(interval)


def resolve_execution(
    state: AppState,
    pipeline: str | None,
    execution_id: str | None,
    target: AwsTarget,
) -> tuple[str, str]:
    """Turn --pipeline/--execution-id (either may be missing) into a concrete pair."""
    if execution_id == "unknown":
        execution_id = None
    if not pipeline:
        if not state.can_prompt:
            raise OptionsError("--pipeline is required when not running interactively")
        if not ensure_aws_credentials(target, state.logger):
            raise AwsError("Unable to proceed without valid credentials")
        pipelines = list_pipelines(target)
        if not pipelines:
            raise AwsError(f"No pipelines found in {target.region}")
        pipeline = choose(state.logger, "Select pipeline:", [(p, p) for p in pipelines])

    if execution_id is None and state.can_prompt:
        executions = list_pipeline_executions(pipeline, target)
        if not executions:
            raise AwsError(f"No executions found for pipeline {pipeline}")
        choices = [
            (
                f"[{e.status}] {e.short_id} - {', '.join(e.revisions) or 'N/A'} - {e.start_time}",
                e.execution_id,
            )
            for e in executions
        ]
        return pipeline, choose(state.logger, "Select execution to describe:", choices)
    if execution_id in (None, "latest"):
        return pipeline, latest_pipeline_execution(pipeline, target)
    return pipeline, execution_id


# ── CLI commands ──────────────────────────────────────────────────────────────


@app.command("watch")
def watch(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Pipeline name"),
    interval: int | None = typer.Option(
        None, "--interval", "-i", min=1, help="Seconds between status checks"
    ),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """Watch the latest CodePipeline execution until it finishes."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info(f"Watching pipeline: {name}")
    try:
        final = watch_pipeline(state, name, target, interval or state.settings.refresh_interval)
    except AwsError as e:
        fail(state, "watch pipeline", e, target.profile)

    if final != "Succeeded":
        state.logger.error(f"Pipeline finished with status {final}")
        raise typer.Exit(1)
    state.logger.success("Pipeline watch completed")


@app.command("list")
def list_all(
    ctx: typer.Context,
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="table | json"),
) -> None:
    """List all CodePipelines in the region."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info("Listing pipelines...")
    try:
        pipelines = list_pipelines(target)
    except AwsError as e:
        fail(state, "list pipelines", e, target.profile)

    if output == OutputFormat.JSON:
        state.logger.output({"region": target.region, "pipelines": pipelines})
        return
    if not pipelines:
        state.logger.log(f"[yellow]No pipelines found in {target.region}[/yellow]")
        return
    for pipeline in pipelines:
        state.logger.output(pipeline)


@app.command("retry")
def retry(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Pipeline name"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """Start a new execution of a pipeline."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info(f"Retrying pipeline: {name}")
    result = execute(
        "aws", ["codepipeline", "start-pipeline-execution", "--name", name, *aws_cli_args(target)]
    )
    finish(state, result, "pipeline retry")


@app.command("describe")
def describe(
    ctx: typer.Context,
    execution_id: str | None = typer.Option(
        None, "--execution-id", help='Execution ID, or "latest" for the most recent one'
    ),
    pipeline: str | None = typer.Option(None, "--pipeline", help="Pipeline name"),
    detail: DetailLevel = typer.Option(
        DetailLevel.SUMMARY, "--detail", case_sensitive=False, help="summary | detailed | full"
    ),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """
    Print a pipeline execution (commits, trigger, stages) as JSON.

    Examples:\n
        macpracs aws pipeline describe --pipeline web --execution-id latest\n
        macpracs aws pipeline describe --pipeline web --execution-id 3f2a... --detail full
    """
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    try:
        name, resolved_id = resolve_execution(state, pipeline, execution_id, target)
        execution = get_pipeline_execution(name, resolved_id, target)
    except (AwsError, OptionsError) as e:
        fail(state, "describe pipeline execution", e, target.profile)

    state.logger.output(format_execution(execution, detail))
