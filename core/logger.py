"""
logger.py
=========
UNIX-style console output: silent on success, verbose on failure.

Progress and success messages only appear with --verbose, errors always
appear unless --quiet, and ``output`` writes machine-readable data to stdout
regardless of either flag so commands stay pipeable.
"""

import json
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

console = Console()
err_console = Console(stderr=True)


class Logger:
    def __init__(
        self,
        verbose: bool = False,
        quiet: bool = False,
        out: Console | None = None,
        err: Console | None = None,
    ) -> None:
        self.quiet = quiet
        self.verbose = verbose and not quiet
        self.out = out or console
        self.err = err or err_console

    def success(self, message: str) -> None:
        if self.verbose:
            self.out.print(f"[green]✓[/green] {escape(message)}", soft_wrap=True)

    def info(self, message: str) -> None:
        if self.verbose:
            self.out.print(f"[blue]ℹ[/blue] {escape(message)}", soft_wrap=True)

    def warn(self, message: str) -> None:
        if self.verbose:
            self.err.print(f"[yellow]⚠[/yellow] {escape(message)}", soft_wrap=True)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        if self.quiet:
            return
        self.err.print(f"[red]✗[/red] {escape(message)}", soft_wrap=True)
        if exc is not None and self.verbose:
            self.err.print(f"[red]{escape(repr(exc))}[/red]", soft_wrap=True)

    def detail(self, message: str, style: str = "red") -> None:
        """Error details and remediation hints: shown unless --quiet."""
        if not self.quiet:
            self.err.print(f"[{style}]{escape(message)}[/{style}]", soft_wrap=True)

    def log(self, message: str) -> None:
        if not self.quiet:
            self.out.print(message, soft_wrap=True)

    def output(self, data: str | dict[str, Any] | list[Any]) -> None:
        if isinstance(data, str):
            typer.echo(data)
        else:
            typer.echo(json.dumps(data, indent=2, default=str))

    def stderr_echo(self, text: str) -> None:
        self.err.print(escape(text), style="dim", end="", soft_wrap=True, highlight=False)


def create_logger(verbose: bool = False, quiet: bool = False) -> Logger:
    return Logger(verbose, quiet)
