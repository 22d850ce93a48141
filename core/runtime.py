"""
runtime.py
==========
Per-invocation state shared by every command (settings, logger, terminal
capabilities) and the top-level error handling that turns exceptions and
child exit codes into the tool's own exit status.
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import NoReturn

import typer

from core.config import Settings
from core.exec import CommandError, CommandFailedError, ExecResult, SpawnError
from core.logger import Logger

INSTALL_HINTS = {
    "aws": "Install the AWS CLI: https://aws.amazon.com/cli/",
    "gh": "Install the GitHub CLI: brew install gh (https://cli.github.com)",
    "grep": "grep must be on PATH to filter logs",
}

# Lower-cased stderr fragments the AWS CLI prints when the SSO session is gone
EXPIRED_SESSION_MARKERS = (
    "token has expired",
    "sso session",
    "error when retrieving token from sso",
    "expiredtoken",
)


@dataclass(frozen=True)
class TerminalCaps:
    """Which standard streams are attached to an interactive terminal."""

    stdin: bool = False
    stdout: bool = False
    stderr: bool = False

    @classmethod
    def detect(cls) -> "TerminalCaps":
        return cls(
            stdin=_isatty(sys.stdin),
            stdout=_isatty(sys.stdout),
            stderr=_isatty(sys.stderr),
        )


def _isatty(stream: object) -> bool:
    try:
        return bool(stream.isatty())  # type: ignore[attr-defined]
    except (AttributeError, ValueError):
        return False


@dataclass
class AppState:
    settings: Settings = field(default_factory=Settings)
    logger: Logger = field(default_factory=Logger)
    terminal: TerminalCaps = field(default_factory=TerminalCaps)
    config_file: Path | None = None

    @property
    def can_prompt(self) -> bool:
        return self.terminal.stdin


def app_state(ctx: typer.Context | None) -> AppState:
    """Return the state built by the root callback, or a default one."""
    obj = ctx.find_object(AppState) if ctx is not None else None
    return obj if obj is not None else AppState(terminal=TerminalCaps.detect())


def remediation_hint(exc: BaseException, profile: str | None = None) -> str | None:
    if isinstance(exc, SpawnError):
        return INSTALL_HINTS.get(exc.stage.name)
    if isinstance(exc, CommandFailedError):
        text = " ".join(stderr for _, stderr in exc.stderr_by_stage).lower()
        if any(marker in text for marker in EXPIRED_SESSION_MARKERS):
            flag = f" --profile {profile}" if profile else ""
            return f"Your AWS session has expired. Run: macpracs aws sso login{flag}"
        if "gh auth login" in text or "not logged into" in text:
            return "Not authenticated with GitHub. Run: gh auth login"
    return None


def fail(
    state: AppState,
    action: str,
    exc: BaseException,
    profile: str | None = None,
) -> NoReturn:
    """Report a failed command and exit with the matching status."""
    logger = state.logger
    logger.error(f"Failed to {action}", exc)
    logger.detail(f"\nError details: {exc}")
    hint = remediation_hint(exc, profile)
    if hint:
        logger.detail(hint, style="yellow")
    code = exc.exit_code if isinstance(exc, CommandError) else 1
    raise typer.Exit(code)


def finish(state: AppState, result: ExecResult, action: str) -> None:
    """Propagate an inherited-stdio command's exit status as our own."""
    label = action[:1].upper() + action[1:]
    if result.spawn_error is not None:
        fail(state, f"start {result.stage.name}", SpawnError(result.stage, result.spawn_error))
    if result.exit_code != 0:
        state.logger.error(f"{label} failed with exit code {result.exit_code}")
        raise typer.Exit(result.exit_code)
    state.logger.success(f"{label} completed")
