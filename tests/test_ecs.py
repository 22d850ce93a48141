"""
test_ecs.py
===========
ECS lookups in core/aws.py against moto, and the task watch loop in
commands/aws_ecs.py.
"""

import io
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import boto3
import pytest
from moto import mock_aws
from rich.console import Console

from commands.aws_ecs import watch_tasks
from core.aws import (
    AwsError,
    TaskInfo,
    list_ecs_clusters,
    list_ecs_services,
    list_service_tasks,
    service_log_groups,
)
from core.logger import Logger
from core.options import AwsTarget
from core.runtime import AppState, TerminalCaps

REGION = "us-east-1"
TARGET = AwsTarget(profile=None, region=REGION)


@pytest.fixture
def state():
    logger = Logger(out=Console(file=io.StringIO(), width=200), err=Console(file=io.StringIO()))
    return AppState(logger=logger, terminal=TerminalCaps())


def create_service(log_driver: str = "awslogs") -> None:
    ecs = boto3.client("ecs", region_name=REGION)
    ecs.create_cluster(clusterName="main")
    ecs.register_task_definition(
        family="web",
        containerDefinitions=[
            {
                "name": "web",
                "image": "nginx",
                "memory": 128,
                "logConfiguration": {
                    "logDriver": log_driver,
                    "options": {"awslogs-group": "/ecs/web", "awslogs-region": REGION},
                },
            },
            {"name": "sidecar", "image": "envoy", "memory": 64},
        ],
    )
    ecs.create_service(cluster="main", serviceName="web", taskDefinition="web", desiredCount=0)


def task(task_id: str, status: str) -> TaskInfo:
    return TaskInfo(task_id, status, "RUNNING", "HEALTHY", "web:3", "2024-05-01T12:00:00+00:00")


# ── core.aws ──────────────────────────────────────────────────────────────────


@mock_aws
def test_list_clusters_empty():
    assert list_ecs_clusters(TARGET) == []


@mock_aws
def test_list_clusters_and_services_by_name():
    create_service()
    assert list_ecs_clusters(TARGET) == ["main"]
    assert list_ecs_services("main", TARGET) == ["web"]


@mock_aws
def test_log_groups_come_from_awslogs_containers():
    create_service()
    assert service_log_groups("main", "web", TARGET) == ["/ecs/web"]


@mock_aws
def test_service_without_awslogs_has_no_groups():
    create_service(log_driver="json-file")
    assert service_log_groups("main", "web", TARGET) == []


@mock_aws
def test_unknown_service_is_reported():
    boto3.client("ecs", region_name=REGION).create_cluster(clusterName="main")
    with pytest.raises(AwsError, match="main/api"):
        service_log_groups("main", "api", TARGET)


@patch("core.aws.aws_session")
def test_list_service_tasks_describes_each_task(mock_session):
    client = MagicMock()
    client.list_tasks.return_value = {
        "taskArns": ["arn:aws:ecs:us-east-1:1:task/main/bbb", "arn:aws:ecs:us-east-1:1:task/main/aaa"]
    }
    client.describe_tasks.return_value = {
        "tasks": [
            {
                "taskArn": "arn:aws:ecs:us-east-1:1:task/main/bbb",
                "lastStatus": "PENDING",
                "desiredStatus": "RUNNING",
                "taskDefinitionArn": "arn:aws:ecs:us-east-1:1:task-definition/web:3",
            },
            {
                "taskArn": "arn:aws:ecs:us-east-1:1:task/main/aaa",
                "lastStatus": "RUNNING",
                "desiredStatus": "RUNNING",
                "healthStatus": "HEALTHY",
                "taskDefinitionArn": "arn:aws:ecs:us-east-1:1:task-definition/web:3",
                "startedAt": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            },
        ]
    }
    session = MagicMock()
    session.client.return_value = client
    mock_session.return_value = session

    tasks = list_service_tasks("main", "web", TARGET)
    assert [t.id for t in tasks] == ["aaa", "bbb"]
    assert tasks[0] == task("aaa", "RUNNING")
    assert tasks[1].health == "UNKNOWN"
    assert tasks[1].started_at == "N/A"
    client.list_tasks.assert_called_once_with(cluster="main", serviceName="web")


@patch("core.aws.aws_session")
def test_list_service_tasks_without_tasks(mock_session):
    client = MagicMock()
    client.list_tasks.return_value = {"taskArns": []}
    session = MagicMock()
    session.client.return_value = client
    mock_session.return_value = session
    assert list_service_tasks("main", "web", TARGET) == []
    client.describe_tasks.assert_not_called()


# ── watch loop ────────────────────────────────────────────────────────────────


@patch("commands.aws_ecs.list_service_tasks")
def test_watch_prints_only_when_tasks_change(mock_tasks, state):
    mock_tasks.side_effect = [
        [task("aaa", "PENDING")],
        [task("aaa", "PENDING")],
        [task("aaa", "RUNNING")],
    ]
    sleeps: list[float] = []
    clock = iter([datetime(2024, 5, 1, 12, 0, 0), datetime(2024, 5, 1, 12, 0, 10)])

    last = watch_tasks(
        state, "main", "web", TARGET, 5, polls=3, sleep=sleeps.append, clock=lambda: next(clock)
    )

    assert last == [task("aaa", "RUNNING")]
    assert sleeps == [5, 5]
    output = state.logger.out.file.getvalue()
    assert "12:00:00" in output
    assert "12:00:10" in output
    assert output.count("PENDING") == 1
    # desired status is RUNNING in every line
    assert output.count("RUNNING") == 3


@patch("commands.aws_ecs.list_service_tasks", return_value=[])
def test_single_poll_does_not_sleep(mock_tasks, state):
    sleeps: list[float] = []
    assert watch_tasks(state, "main", "web", TARGET, 5, polls=1, sleep=sleeps.append) == []
    assert sleeps == []
    assert "0 task(s)" in state.logger.out.file.getvalue()
