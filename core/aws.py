"""
aws.py
======
Read-only AWS lookups through boto3 (profiles, credentials, CodeBuild
builds, CodePipeline executions, ECS services and tasks) plus the argument
helpers used when a command hands off to the AWS CLI itself.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    SSOError,
    TokenRetrievalError,
)

from core.exec import execute
from core.logger import Logger
from core.options import AwsTarget

EXPIRED_TOKEN_CODES = {"ExpiredToken", "ExpiredTokenException", "UnrecognizedClientException"}
TERMINAL_BUILD_STATUSES = {"SUCCEEDED", "FAILED", "FAULT", "STOPPED", "TIMED_OUT"}
TERMINAL_PIPELINE_STATUSES = {"Succeeded", "Failed", "Stopped", "Superseded", "Cancelled"}


class AwsError(Exception):
    pass


# ── Data models ───────────────────────────────────────────────────────────────


@dataclass
class AWSProfile:
    name: str
    is_default: bool = False


@dataclass
class BuildInfo:
    id: str
    status: str
    source_version: str
    start_time: str
    initiated_by: str = ""

    @property
    def short_id(self) -> str:
        return self.id.split(":")[-1]


@dataclass
class LogLocation:
    group: str
    stream: str
    start_time: datetime | None = None


@dataclass
class PipelineExecutionSummary:
    execution_id: str
    status: str
    start_time: str
    revisions: list[str] = field(default_factory=list)

    @property
    def short_id(self) -> str:
        return self.execution_id[:8]


@dataclass
class TaskInfo:
    id: str
    last_status: str
    desired_status: str
    health: str
    task_definition: str
    started_at: str


# ── Sessions & credentials ────────────────────────────────────────────────────


def get_aws_profiles() -> list[AWSProfile]:
    """Profiles known to ~/.aws/config and ~/.aws/credentials."""
    names = sorted(set(boto3.session.Session().available_profiles))
    if not names:
        return [AWSProfile("default", is_default=True)]
    return [AWSProfile(name, is_default=name == "default") for name in names]


def aws_session(target: AwsTarget) -> boto3.session.Session:
    return boto3.session.Session(profile_name=target.profile, region_name=target.region)


def aws_cli_args(target: AwsTarget) -> list[str]:
    args = ["--region", target.region]
    if target.profile:
        args += ["--profile", target.profile]
    return args


def _caller_identity(target: AwsTarget) -> dict[str, Any]:
    return aws_session(target).client("sts").get_caller_identity()


def _is_expired_session(exc: Exception) -> bool:
    if isinstance(exc, (SSOError, TokenRetrievalError)):
        return True
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code") in EXPIRED_TOKEN_CODES
    return "token has expired" in str(exc).lower()


def ensure_aws_credentials(target: AwsTarget, logger: Logger) -> bool:
    """
    Verify credentials with sts:GetCallerIdentity. When the SSO session has
    expired, run ``aws sso login`` interactively and verify once more.
    Returns False if that login fails; any other error raises AwsError.
    """
    try:
        _caller_identity(target)
        return True
    except (BotoCoreError, ClientError) as e:
        if not _is_expired_session(e):
            if isinstance(e, NoCredentialsError):
                raise AwsError("No AWS credentials found. Configure a profile or run aws configure.") from e
            raise AwsError(f"Failed to verify AWS credentials: {e}") from e

    logger.detail("\n⚠️  AWS SSO session has expired", style="yellow")
    logger.detail("Opening browser to refresh session...\n", style="blue")
    login_args = ["sso", "login"]
    if target.profile:
        login_args += ["--profile", target.profile]
    if not execute("aws", login_args).ok:
        logger.error("Login failed")
        return False

    try:
        _caller_identity(target)
    except (BotoCoreError, ClientError) as e:
        logger.error("Credentials still invalid after login", e)
        return False
    logger.success("Session refreshed")
    return True


# ── CodeBuild ─────────────────────────────────────────────────────────────────


def list_build_projects(target: AwsTarget) -> list[str]:
    try:
        codebuild = aws_session(target).client("codebuild")
        projects: list[str] = []
        for page in codebuild.get_paginator("list_projects").paginate():
            projects.extend(page.get("projects", []))
        return sorted(projects)
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list build projects: {e}") from e


def list_completed_builds(
    project: str,
    target: AwsTarget,
    status: str | None = None,
    limit: int = 20,
) -> list[BuildInfo]:
    """Most recent finished builds of ``project``, optionally only those with ``status``."""
    try:
        codebuild = aws_session(target).client("codebuild")
        ids = codebuild.list_builds_for_project(projectName=project, sortOrder="DESCENDING").get(
            "ids", []
        )[:limit]
        if not ids:
            return []
        builds = codebuild.batch_get_builds(ids=ids).get("builds", [])
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list completed builds: {e}") from e

    completed = []
    for build in builds:
        build_status = build.get("buildStatus", "UNKNOWN")
        if build_status == "IN_PROGRESS":
            continue
        if status and build_status != status:
            continue
        start = build.get("startTime")
        completed.append(
            BuildInfo(
                id=build["id"],
                status=build_status,
                source_version=build.get("sourceVersion") or "N/A",
                start_time=_timestamp(start),
                initiated_by=build.get("initiator", ""),
            )
        )
    return completed


def get_build(build_id: str, target: AwsTarget) -> dict[str, Any]:
    try:
        codebuild = aws_session(target).client("codebuild")
        response = codebuild.batch_get_builds(ids=[build_id])
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to get build {build_id}: {e}") from e
    builds = response.get("builds", [])
    if not builds:
        raise AwsError(f"Build not found: {build_id}")
    return builds[0]


def latest_build(project: str, target: AwsTarget) -> dict[str, Any] | None:
    try:
        codebuild = aws_session(target).client("codebuild")
        ids = codebuild.list_builds_for_project(projectName=project, sortOrder="DESCENDING").get(
            "ids", []
        )
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list builds for {project}: {e}") from e
    if not ids:
        return None
    return get_build(ids[0], target)


def build_log_location(build: dict[str, Any]) -> LogLocation:
    logs = build.get("logs") or {}
    group, stream = logs.get("groupName"), logs.get("streamName")
    if not group or not stream:
        raise AwsError(f"Build {build.get('id', '?')} has no CloudWatch log stream")
    start = build.get("startTime")
    return LogLocation(group, stream, start if isinstance(start, datetime) else None)


# ── CodePipeline ──────────────────────────────────────────────────────────────


def _timestamp(value: Any) -> str:
    return value.isoformat() if isinstance(value, datetime) else str(value or "N/A")


def list_pipelines(target: AwsTarget) -> list[str]:
    try:
        codepipeline = aws_session(target).client("codepipeline")
        names: list[str] = []
        for page in codepipeline.get_paginator("list_pipelines").paginate():
            names.extend(p["name"] for p in page.get("pipelines", []))
        return sorted(names)
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list pipelines: {e}") from e


def list_pipeline_executions(
    pipeline: str,
    target: AwsTarget,
    limit: int = 20,
) -> list[PipelineExecutionSummary]:
    """Most recent executions first, as CodePipeline returns them."""
    try:
        codepipeline = aws_session(target).client("codepipeline")
        response = codepipeline.list_pipeline_executions(pipelineName=pipeline, maxResults=limit)
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list pipeline executions: {e}") from e

    return [
        PipelineExecutionSummary(
            execution_id=summary["pipelineExecutionId"],
            status=summary.get("status", "UNKNOWN"),
            start_time=_timestamp(summary.get("startTime")),
            revisions=[r.get("revisionId", "")[:7] for r in summary.get("sourceRevisions", [])],
        )
        for summary in response.get("pipelineExecutionSummaries", [])
    ]


def latest_pipeline_execution(pipeline: str, target: AwsTarget) -> str:
    executions = list_pipeline_executions(pipeline, target, limit=1)
    if not executions:
        raise AwsError(f"No executions found for pipeline {pipeline}")
    return executions[0].execution_id


def get_pipeline_execution(pipeline: str, execution_id: str, target: AwsTarget) -> dict[str, Any]:
    """
    The execution record plus the pipeline's current ``stageStates``, which
    carry the per-stage and per-action detail the execution itself lacks.
    """
    try:
        codepipeline = aws_session(target).client("codepipeline")
        execution = codepipeline.get_pipeline_execution(
            pipelineName=pipeline, pipelineExecutionId=execution_id
        ).get("pipelineExecution")
        if not execution:
            raise AwsError(f"No execution found with ID: {execution_id}")
        stages = codepipeline.get_pipeline_state(name=pipeline).get("stageStates", [])
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to get pipeline execution: {e}") from e
    return {**execution, "pipelineName": execution.get("pipelineName", pipeline), "stageStates": stages}


# ── ECS ───────────────────────────────────────────────────────────────────────


def _arn_name(arn: str) -> str:
    return arn.rsplit("/", 1)[-1]


def list_ecs_clusters(target: AwsTarget) -> list[str]:
    try:
        ecs = aws_session(target).client("ecs")
        arns: list[str] = []
        for page in ecs.get_paginator("list_clusters").paginate():
            arns.extend(page.get("clusterArns", []))
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list ECS clusters: {e}") from e
    return sorted(_arn_name(arn) for arn in arns)


def list_ecs_services(cluster: str, target: AwsTarget) -> list[str]:
    try:
        ecs = aws_session(target).client("ecs")
        arns: list[str] = []
        for page in ecs.get_paginator("list_services").paginate(cluster=cluster):
            arns.extend(page.get("serviceArns", []))
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list services in {cluster}: {e}") from e
    return sorted(_arn_name(arn) for arn in arns)


def list_service_tasks(cluster: str, service: str, target: AwsTarget) -> list[TaskInfo]:
    try:
        ecs = aws_session(target).client("ecs")
        arns = ecs.list_tasks(cluster=cluster, serviceName=service).get("taskArns", [])
        if not arns:
            return []
        tasks = ecs.describe_tasks(cluster=cluster, tasks=arns).get("tasks", [])
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to list tasks for {cluster}/{service}: {e}") from e

    return sorted(
        (
            TaskInfo(
                id=_arn_name(task["taskArn"]),
                last_status=task.get("lastStatus", "UNKNOWN"),
                desired_status=task.get("desiredStatus", "UNKNOWN"),
                health=task.get("healthStatus", "UNKNOWN"),
                task_definition=_arn_name(task.get("taskDefinitionArn", "")),
                started_at=_timestamp(task.get("startedAt")),
            )
            for task in tasks
        ),
        key=lambda t: t.id,
    )


def service_log_groups(cluster: str, service: str, target: AwsTarget) -> list[str]:
    """CloudWatch log groups of the service's containers that use the awslogs driver."""
    try:
        ecs = aws_session(target).client("ecs")
        services = ecs.describe_services(cluster=cluster, services=[service]).get("services", [])
        if not services:
            raise AwsError(f"Service not found: {cluster}/{service}")
        definition = ecs.describe_task_definition(taskDefinition=services[0]["taskDefinition"])
    except (BotoCoreError, ClientError) as e:
        raise AwsError(f"Failed to describe service {cluster}/{service}: {e}") from e

    groups: list[str] = []
    for container in definition["taskDefinition"].get("containerDefinitions", []):
        log_config = container.get("logConfiguration") or {}
        group = (log_config.get("options") or {}).get("awslogs-group")
        if log_config.get("logDriver") == "awslogs" and group and group not in groups:
            groups.append(group)
    return groups
