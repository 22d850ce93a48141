"""
exec.py
=======
Runs external programs for every macpracs command.

Two invocation modes are supported:

* ``execute`` starts a single process, either with the parent's stdio
  inherited (watch/tail style commands) or with stdout/stderr captured.
* ``run_pipeline`` chains several processes stdout -> stdin exactly like a
  shell ``a | b | c``. Every stage is started without waiting on the others;
  only the terminal stage's exit code decides the outcome.

Usage:
    run_pipeline(
        [PipelineStage("aws", ("logs", "tail", group)), PipelineStage("grep", ("ERROR",))],
        interactive=True,
    )
"""

import io
import os
import shlex
import shutil
import subprocess
import sys
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import IO, Any

# Terminal commands whose job is a side effect, not visible output.
CLIPBOARD_SINKS = frozenset({"pbcopy", "wl-copy", "xclip", "xsel", "clip", "clip.exe"})


# ── Data models ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PipelineStage:
    command: str
    arguments: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", tuple(str(a) for a in self.arguments))

    @property
    def name(self) -> str:
        return os.path.basename(self.command)

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.arguments]

    def render(self) -> str:
        return shlex.join(self.argv)


@dataclass
class ExecResult:
    stage: PipelineStage
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    spawn_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.spawn_error is None

    def check(self) -> "ExecResult":
        """Raise the matching CommandError unless the process ran and exited 0."""
        if self.spawn_error is not None:
            raise SpawnError(self.stage, self.spawn_error)
        if self.exit_code != 0:
            raise CommandFailedError(
                self.exit_code, self.stage, [(self.stage, self.stderr)], [self.stage]
            )
        return self


@dataclass
class _StageState:
    stage: PipelineStage
    process: subprocess.Popen
    stderr_chunks: list[str] = field(default_factory=list)

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_chunks)


# ── Errors ────────────────────────────────────────────────────────────────────


class CommandError(Exception):
    """Base class for failures of an external command."""

    exit_code: int = 1


class SpawnError(CommandError):
    """The executable could not be started at all."""

    def __init__(self, stage: PipelineStage, reason: str) -> None:
        self.stage = stage
        self.reason = reason
        self.exit_code = 1
        super().__init__(f"Failed to execute command: {stage.render()}\nReason: {reason}")


class CommandFailedError(CommandError):
    """The command ran and its (terminal) process exited non-zero."""

    def __init__(
        self,
        exit_code: int,
        failing_stage: PipelineStage,
        stderr_by_stage: Sequence[tuple[PipelineStage, str]],
        stages: Sequence[PipelineStage],
    ) -> None:
        self.exit_code = exit_code
        self.failing_stage = failing_stage
        self.stderr_by_stage = [(s, text) for s, text in stderr_by_stage if text.strip()]
        self.pipeline_description = render_pipeline(stages) if len(stages) > 1 else None
        super().__init__(self._format())

    @property
    def aggregated_stderr(self) -> str:
        return "\n".join(f"[{stage.name}]: {text.strip()}" for stage, text in self.stderr_by_stage)

    def _format(self) -> str:
        message = f"Command failed with exit code {self.exit_code}: {self.failing_stage.render()}"
        if self.stderr_by_stage:
            message += f"\n\nError output:\n{self.aggregated_stderr}"
        if self.pipeline_description:
            message += f"\n\nPipeline: {self.pipeline_description}"
        return message


# ── Helpers ───────────────────────────────────────────────────────────────────


def normalize_exit_code(code: int | None) -> int:
    """Map a Popen return code onto a shell-style exit status."""
    if code is None:
        return 1
    if code < 0:
        return 128 - code
    return code


def render_pipeline(stages: Iterable[PipelineStage]) -> str:
    return " | ".join(stage.name for stage in stages)


def clipboard_command() -> PipelineStage | None:
    """Return the clipboard sink for this platform, if one is installed."""
    if sys.platform == "darwin":
        return PipelineStage("pbcopy")
    candidates = [
        PipelineStage("wl-copy"),
        PipelineStage("xclip", ("-selection", "clipboard")),
        PipelineStage("xsel", ("--clipboard", "--input")),
        PipelineStage("clip.exe"),
    ]
    for candidate in candidates:
        if shutil.which(candidate.command):
            return candidate
    return None


def _spawn_reason(exc: OSError) -> str:
    if isinstance(exc, FileNotFoundError):
        return "executable not found"
    if isinstance(exc, PermissionError):
        return "permission denied"
    return exc.strerror or str(exc)


def _fileno(stream: Any) -> int | None:
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _write(target: IO[Any], data: bytes) -> None:
    if isinstance(target, io.TextIOBase):
        target.write(data.decode(errors="replace"))
    else:
        target.write(data)
    target.flush()


def _drain_stderr(state: _StageState, echo: Callable[[str], None] | None) -> None:
    stream = state.process.stderr
    for raw in iter(stream.readline, b""):
        text = raw.decode(errors="replace")
        state.stderr_chunks.append(text)
        if echo is not None:
            echo(text)
    stream.close()


def _pump_stdout(stream: IO[bytes], target: IO[Any]) -> None:
    for raw in iter(stream.readline, b""):
        _write(target, raw)
    stream.close()


def _echo_to_stderr(text: str) -> None:
    sys.stderr.write(text)
    sys.stderr.flush()


def _abort(states: list[_StageState]) -> None:
    for state in states:
        if state.process.poll() is None:
            state.process.kill()
    for state in states:
        for stream in (state.process.stdout, state.process.stderr):
            if stream is not None:
                stream.close()
        state.process.wait()


# ── Pipeline coordinator ──────────────────────────────────────────────────────


def run_pipeline(
    stages: Sequence[PipelineStage],
    *,
    interactive: bool = False,
    on_stderr: Callable[[str], None] | None = None,
    stdout: IO[Any] | None = None,
    sinks: frozenset[str] = CLIPBOARD_SINKS,
) -> None:
    """
    Run ``stages`` as one shell-style pipeline and wait for the terminal stage.

    Stage i's stdout becomes stage i+1's stdin at spawn time. The terminal
    stage writes to ``stdout`` (the parent's stdout when None) unless it is a
    sink command, whose output is discarded. Each stage's stderr is collected;
    when ``interactive`` it is also echoed live through ``on_stderr``.

    Raises SpawnError as soon as any stage fails to start, and
    CommandFailedError when the terminal stage exits non-zero.
    """
    stages = list(stages)
    if not stages:
        raise ValueError("A pipeline needs at least one stage")

    pump_target: IO[Any] | None = None
    if stages[-1].name in sinks:
        terminal_stdout: Any = subprocess.DEVNULL
    elif stdout is None:
        terminal_stdout = None
    elif (fd := _fileno(stdout)) is not None:
        stdout.flush()
        terminal_stdout = fd
    else:
        terminal_stdout = subprocess.PIPE
        pump_target = stdout

    states: list[_StageState] = []
    for index, stage in enumerate(stages):
        is_terminal = index == len(stages) - 1
        upstream = states[-1].process.stdout if states else None
        try:
            process = subprocess.Popen(
                stage.argv,
                stdin=upstream,
                stdout=terminal_stdout if is_terminal else subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            _abort(states)
            raise SpawnError(stage, _spawn_reason(exc)) from exc
        if upstream is not None:
            # The child holds its own copy; closing ours lets the upstream
            # stage see SIGPIPE if the downstream one exits early.
            upstream.close()
        states.append(_StageState(stage, process))

    echo = (on_stderr or _echo_to_stderr) if interactive else None
    terminal = states[-1]

    workers = len(states) + (1 if pump_target is not None else 0)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        drains = [executor.submit(_drain_stderr, state, echo) for state in states]
        if pump_target is not None:
            drains.append(executor.submit(_pump_stdout, terminal.process.stdout, pump_target))

        exit_code = normalize_exit_code(terminal.process.wait())
        for state in states[:-1]:
            state.process.wait()
        for future in drains:
            future.result()

    if exit_code != 0:
        raise CommandFailedError(
            exit_code,
            terminal.stage,
            [(state.stage, state.stderr) for state in states],
            stages,
        )


# ── Invocation contract ───────────────────────────────────────────────────────


def execute(
    command: str,
    arguments: Sequence[str] = (),
    *,
    capture: bool = False,
    env: Mapping[str, str] | None = None,
) -> ExecResult:
    """
    Run one external command and report how it went.

    With ``capture=False`` the child inherits stdin/stdout/stderr, which is
    what streaming commands (watch, tail, sso login) need. With
    ``capture=True`` stdout and stderr are returned as text. A spawn failure
    never raises here; it comes back as exit code 1 with ``spawn_error`` set.
    """
    stage = PipelineStage(command, tuple(arguments))
    child_env = {**os.environ, **env} if env else None
    try:
        if capture:
            completed = subprocess.run(
                stage.argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                env=child_env,
            )
            return ExecResult(
                stage,
                normalize_exit_code(completed.returncode),
                completed.stdout,
                completed.stderr,
            )
        process = subprocess.Popen(stage.argv, env=child_env)
        return ExecResult(stage, normalize_exit_code(process.wait()))
    except OSError as exc:
        reason = _spawn_reason(exc)
        return ExecResult(stage, 1, stderr=reason, spawn_error=reason)
