"""
test_codebuild.py
=================
Unit tests for the pure helpers in commands/aws_codebuild.py: log pipeline
construction, rerun tips, the watch loop and non-interactive gap filling.
"""

import io
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from rich.console import Console

from commands.aws_codebuild import (
    LogsConfig,
    build_logs_pipeline,
    gather_logs_config,
    logs_tail_stage,
    rerun_tip,
    watch_build,
)
from core.aws import AwsError, BuildInfo, LogLocation
from core.exec import PipelineStage, run_pipeline
from core.logger import Logger
from core.options import AwsTarget, BuildStatusFilter, CodeBuildLogsOptions, OptionsError
from core.runtime import AppState, TerminalCaps

TARGET = AwsTarget(profile="dev", region="us-east-1")
LOCATION = LogLocation(
    group="/aws/codebuild/web",
    stream="abc123",
    start_time=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
)
CLIPBOARD = PipelineStage("pbcopy")


@pytest.fixture
def state():
    logger = Logger(out=Console(file=io.StringIO(), width=200), err=Console(file=io.StringIO()))
    return AppState(logger=logger, terminal=TerminalCaps())


# ── Pipeline construction ─────────────────────────────────────────────────────


def test_tail_stage_reads_from_build_start():
    stage = logs_tail_stage(LOCATION, TARGET)
    assert stage.command == "aws"
    assert stage.arguments[:3] == ("logs", "tail", "/aws/codebuild/web")
    assert "--follow" not in stage.arguments
    args = list(stage.arguments)
    assert args[args.index("--since") + 1] == "2024-05-01T12:00:00Z"
    assert args[args.index("--log-stream-names") + 1] == "abc123"
    assert args[-4:] == ["--region", "us-east-1", "--profile", "dev"]


def test_tail_stage_converts_start_time_to_utc():
    local = LogLocation("g", "s", datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2))))
    args = list(logs_tail_stage(local, TARGET).arguments)
    assert args[args.index("--since") + 1] == "2024-05-01T12:00:00Z"


def test_tail_stage_follow_mode():
    stage = logs_tail_stage(LOCATION, AwsTarget(None, "eu-west-1"), follow=True)
    assert "--follow" in stage.arguments
    assert "--since" not in stage.arguments
    assert "--profile" not in stage.arguments


def test_tail_stage_without_start_time():
    args = list(logs_tail_stage(LogLocation("g", "s"), TARGET).arguments)
    assert args[args.index("--since") + 1] == "1w"


def test_plain_logs_pipeline_has_one_stage():
    stages = build_logs_pipeline(LogsConfig("web:1", TARGET), LOCATION)
    assert [s.name for s in stages] == ["aws"]


def test_grep_and_copy_append_stages_in_order():
    config = LogsConfig("web:1", TARGET, grep="ERROR", copy=True)
    stages = build_logs_pipeline(config, LOCATION, CLIPBOARD)
    assert [s.name for s in stages] == ["aws", "grep", "pbcopy"]
    assert stages[1].arguments == ("-e", "ERROR")


def test_grep_pattern_is_a_single_argument():
    config = LogsConfig("web:1", TARGET, grep="Error: build failed; rm -rf /")
    stages = build_logs_pipeline(config, LOCATION)
    assert stages[1].arguments == ("-e", "Error: build failed; rm -rf /")


def test_grep_pattern_starting_with_dash_is_not_an_option():
    stages = build_logs_pipeline(LogsConfig("web:1", TARGET, grep="-v DEBUG"), LOCATION)
    assert stages[1].arguments == ("-e", "-v DEBUG")


def test_grep_dash_pattern_filters_real_output():
    upstream = PipelineStage(sys.executable, ("-c", "print('ok\\n--fail here\\nok')"))
    out = io.BytesIO()
    run_pipeline([upstream, PipelineStage("grep", ("-e", "--fail"))], stdout=out)
    assert out.getvalue() == b"--fail here\n"


def test_copy_without_clipboard_is_an_options_error():
    with pytest.raises(OptionsError, match="clipboard"):
        build_logs_pipeline(LogsConfig("web:1", TARGET, copy=True), LOCATION, None)


# ── Rerun tip ─────────────────────────────────────────────────────────────────


def test_rerun_tip_reproduces_choices():
    tip = rerun_tip(LogsConfig("web:1", TARGET, grep="build failed", copy=True))
    assert tip == (
        "macpracs aws codebuild logs --build-id web:1 --profile dev "
        "--region us-east-1 --grep 'build failed' --copy"
    )


def test_rerun_tip_minimal():
    tip = rerun_tip(LogsConfig("web:1", AwsTarget(None, "us-east-1")))
    assert tip == "macpracs aws codebuild logs --build-id web:1 --region us-east-1"


# ── Watch loop ────────────────────────────────────────────────────────────────


@patch("commands.aws_codebuild.get_build")
@patch("commands.aws_codebuild.latest_build")
def test_watch_polls_until_terminal_status(mock_latest, mock_get, state):
    mock_latest.return_value = {"id": "web:5", "buildStatus": "IN_PROGRESS", "currentPhase": "BUILD"}
    mock_get.side_effect = [
        {"id": "web:5", "buildStatus": "IN_PROGRESS", "currentPhase": "BUILD"},
        {"id": "web:5", "buildStatus": "FAILED", "currentPhase": "COMPLETED"},
    ]
    sleeps: list[float] = []

    assert watch_build(state, "web", TARGET, 3, sleep=sleeps.append) == "FAILED"
    assert sleeps == [3, 3]
    assert mock_get.call_count == 2
    output = state.logger.out.file.getvalue()
    assert output.count("IN_PROGRESS") == 1
    assert "FAILED" in output


@patch("commands.aws_codebuild.latest_build")
def test_watch_finished_build_returns_immediately(mock_latest, state):
    mock_latest.return_value = {"id": "web:5", "buildStatus": "SUCCEEDED"}
    sleeps: list[float] = []
    assert watch_build(state, "web", TARGET, 3, sleep=sleeps.append) == "SUCCEEDED"
    assert sleeps == []


@patch("commands.aws_codebuild.latest_build", return_value=None)
def test_watch_without_builds(mock_latest, state):
    with pytest.raises(AwsError, match="No builds found"):
        watch_build(state, "web", TARGET, 3)


# ── Non-interactive gap filling ───────────────────────────────────────────────


@patch("commands.aws_codebuild.ensure_aws_credentials", return_value=True)
def test_build_id_flag_skips_all_lookups(mock_creds, state):
    options = CodeBuildLogsOptions(build_id="web:1", grep="ERROR")
    config = gather_logs_config(state, options, TARGET)
    assert config == LogsConfig("web:1", TARGET, grep="ERROR", copy=False)


@patch("commands.aws_codebuild.list_completed_builds")
@patch("commands.aws_codebuild.ensure_aws_credentials", return_value=True)
def test_project_flag_picks_most_recent_build(mock_creds, mock_builds, state):
    mock_builds.return_value = [
        BuildInfo("web:9", "FAILED", "main", "2024-05-02", "alice"),
        BuildInfo("web:8", "FAILED", "main", "2024-05-01", "bob"),
    ]
    options = CodeBuildLogsOptions(project="web", status=BuildStatusFilter.FAILED)
    assert gather_logs_config(state, options, TARGET).build_id == "web:9"
    mock_builds.assert_called_once_with("web", TARGET, "FAILED")


@patch("commands.aws_codebuild.list_completed_builds", return_value=[])
@patch("commands.aws_codebuild.ensure_aws_credentials", return_value=True)
def test_project_without_matching_builds(mock_creds, mock_builds, state):
    with pytest.raises(AwsError, match="No failed builds found for project web"):
        gather_logs_config(state, CodeBuildLogsOptions(project="web"), TARGET)


@patch("commands.aws_codebuild.ensure_aws_credentials", return_value=True)
def test_missing_build_and_project_cannot_prompt(mock_creds, state):
    with pytest.raises(OptionsError, match="--build-id or --project"):
        gather_logs_config(state, CodeBuildLogsOptions(), TARGET)


@patch("commands.aws_codebuild.ensure_aws_credentials", return_value=False)
def test_invalid_credentials_abort(mock_creds, state):
    with pytest.raises(AwsError, match="valid credentials"):
        gather_logs_config(state, CodeBuildLogsOptions(build_id="web:1"), TARGET)
