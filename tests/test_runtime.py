"""
test_runtime.py
===============
Remediation hints and exit-code handling in core/runtime.py.
"""

import io

import pytest
import typer
from rich.console import Console

from core.exec import CommandFailedError, ExecResult, PipelineStage, SpawnError
from core.logger import Logger
from core.runtime import AppState, TerminalCaps, fail, finish, remediation_hint

AWS = PipelineStage("aws", ("logs", "tail"))
GREP = PipelineStage("grep", ("ERROR",))


def failed(stderr: str, stage: PipelineStage = AWS) -> CommandFailedError:
    return CommandFailedError(1, stage, [(stage, stderr)], [stage])


@pytest.fixture
def state():
    logger = Logger(out=Console(file=io.StringIO(), width=200), err=Console(file=io.StringIO(), width=200))
    return AppState(logger=logger, terminal=TerminalCaps())


@pytest.mark.parametrize(
    "stderr",
    [
        "Error when retrieving token from sso: Token has expired and refresh failed",
        "The SSO session associated with this profile has expired or is otherwise invalid.",
        "An error occurred (ExpiredToken) when calling the GetLogEvents operation",
    ],
)
def test_expired_session_gets_login_hint(stderr):
    hint = remediation_hint(failed(stderr), "dev")
    assert hint == "Your AWS session has expired. Run: macpracs aws sso login --profile dev"


@pytest.mark.parametrize(
    "stderr",
    [
        "grep: /tmp/processor.log: No such file or directory",
        "lasso stage failed",
        "An error occurred (AccessDeniedException) when calling the FilterLogEvents operation",
    ],
)
def test_unrelated_failures_get_no_login_hint(stderr):
    assert remediation_hint(failed(stderr, GREP)) is None


def test_github_auth_hint():
    hint = remediation_hint(failed("To get started with GitHub CLI, please run:  gh auth login"))
    assert hint == "Not authenticated with GitHub. Run: gh auth login"


def test_missing_executable_hint():
    assert "AWS CLI" in remediation_hint(SpawnError(AWS, "executable not found"))
    assert remediation_hint(SpawnError(PipelineStage("jq"), "executable not found")) is None


def test_fail_uses_command_exit_code(state):
    with pytest.raises(typer.Exit) as exc:
        fail(state, "view build logs", CommandFailedError(3, AWS, [], [AWS]))
    assert exc.value.exit_code == 3
    assert "Failed to view build logs" in state.logger.err.file.getvalue()


def test_fail_other_errors_exit_1(state):
    with pytest.raises(typer.Exit) as exc:
        fail(state, "list things", ValueError("nope"))
    assert exc.value.exit_code == 1


def test_finish_propagates_exit_code(state):
    with pytest.raises(typer.Exit) as exc:
        finish(state, ExecResult(AWS, 130), "log streaming")
    assert exc.value.exit_code == 130
    assert "Log streaming failed with exit code 130" in state.logger.err.file.getvalue()


def test_finish_success_returns(state):
    assert finish(state, ExecResult(AWS, 0), "SSO login") is None
