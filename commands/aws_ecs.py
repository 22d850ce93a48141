"""
aws_ecs.py
==========
ECS operations: list clusters and services, watch a service's tasks with
timestamps, and tail the service's CloudWatch logs.

Usage:
    macpracs aws ecs list-clusters
    macpracs aws ecs list-services my-cluster --output json
    macpracs aws ecs tasks my-cluster my-service --interval 5
    macpracs aws ecs logs my-cluster my-service --profile dev
"""

import time
from collections.abc import Callable
from datetime import datetime

import typer
from rich.markup import escape

from core.aws import (
    AwsError,
    TaskInfo,
    aws_cli_args,
    list_ecs_clusters,
    list_ecs_services,
    list_service_tasks,
    service_log_groups,
)
from core.exec import execute
from core.options import AwsTarget, OutputFormat
from core.runtime import AppState, app_state, fail, finish

app = typer.Typer(no_args_is_help=True)

TASK_COLOURS = {
    "RUNNING": "green",
    "PENDING": "yellow",
    "PROVISIONING": "yellow",
    "ACTIVATING": "yellow",
    "DEACTIVATING": "yellow",
    "STOPPING": "red",
    "STOPPED": "red",
}


def watch_tasks(
    state: AppState,
    cluster: str,
    service: str,
    target: AwsTarget,
    interval: float,
    polls: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = datetime.now,
) -> list[TaskInfo]:
    """
    Print the service's tasks whenever they change. Runs until interrupted,
    or for ``polls`` checks when given; returns the last snapshot.
    """
    last: list[TaskInfo] | None = None
    count = 0
    while True:
        tasks = list_service_tasks(cluster, service, target)
        if tasks != last:
            state.logger.log(f"[dim]{clock():%H:%M:%S}[/dim]  {len(tasks)} task(s)")
            for task in tasks:
                colour = TASK_COLOURS.get(task.last_status, "white")
                state.logger.log(
                    f"  {escape(task.id)}  [{colour}]{escape(task.last_status)}[/{colour}]"
                    f" -> {escape(task.desired_status)}  health: {escape(task.health)}"
                    f"  {escape(task.task_definition)}"
                )
            last = tasks
        count += 1
        if polls is not None and count >= polls:
            return tasks
        sleep(interval)


def _print_names(state: AppState, names: list[str], output: OutputFormat, key: str, empty: str) -> None:
    if output == OutputFormat.JSON:
        state.logger.output({key: names})
    elif not names:
        state.logger.log(f"[yellow]{escape(empty)}[/yellow]")
    else:
        for name in names:
            state.logger.output(name)


# ── CLI commands ──────────────────────────────────────────────────────────────


@app.command("list-clusters")
def list_clusters(
    ctx: typer.Context,
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="table | json"),
) -> None:
    """List all ECS clusters in the region."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info("Listing ECS clusters...")
    try:
        clusters = list_ecs_clusters(target)
    except AwsError as e:
        fail(state, "list ECS clusters", e, target.profile)
    _print_names(state, clusters, output, "clusters", f"No ECS clusters found in {target.region}")


@app.command("list-services")
def list_services(
    ctx: typer.Context,
    cluster: str = typer.Argument(..., help="ECS cluster name"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="table | json"),
) -> None:
    """List all services in an ECS cluster."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info(f"Listing services in cluster: {cluster}")
    try:
        services = list_ecs_services(cluster, target)
    except AwsError as e:
        fail(state, "list ECS services", e, target.profile)
    _print_names(state, services, output, "services", f"No services found in {cluster}")


@app.command("tasks")
def tasks(
    ctx: typer.Context,
    cluster: str = typer.Argument(..., help="ECS cluster name"),
    service: str = typer.Argument(..., help="ECS service name"),
    interval: int | None = typer.Option(
        None, "--interval", "-i", min=1, help="Seconds between status checks"
    ),
    once: bool = typer.Option(False, "--once", help="Print the current tasks and exit"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """Watch ECS task status with timestamps (Ctrl+C to stop)."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    state.logger.info(f"Watching ECS tasks: {cluster}/{service}")
    try:
        watch_tasks(
            state,
            cluster,
            service,
            target,
            interval or state.settings.refresh_interval,
            polls=1 if once else None,
        )
    except AwsError as e:
        fail(state, "watch ECS tasks", e, target.profile)
    except KeyboardInterrupt:
        raise typer.Exit(130)
    state.logger.success("ECS tasks watch completed")


@app.command("logs")
def logs(
    ctx: typer.Context,
    cluster: str = typer.Argument(..., help="ECS cluster name"),
    service: str = typer.Argument(..., help="ECS service name"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", "-r", help="AWS region"),
) -> None:
    """Tail the CloudWatch logs of an ECS service."""
    state = app_state(ctx)
    target = AwsTarget.resolve(profile, region, state.settings)
    try:
        groups = service_log_groups(cluster, service, target)
        if not groups:
            raise AwsError(f"Service {cluster}/{service} has no awslogs log group configured")
    except AwsError as e:
        fail(state, "tail ECS logs", e, target.profile)

    if len(groups) > 1:
        state.logger.warn(f"Several log groups found, tailing {groups[0]} (also: {', '.join(groups[1:])})")
    state.logger.info(f"Tailing logs: {groups[0]}")
    args = ["logs", "tail", groups[0], "--follow", "--format", "short", *aws_cli_args(target)]
    finish(state, execute("aws", args), "ECS logs tail")
