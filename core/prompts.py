"""
prompts.py
==========
Small interactive helpers on top of typer's prompt/confirm. Callers check
``AppState.can_prompt`` first; nothing here looks at the terminal itself.
"""

from collections.abc import Sequence
from typing import TypeVar

import typer
from rich.markup import escape

from core.logger import Logger

T = TypeVar("T")


def choose(
    logger: Logger,
    message: str,
    choices: Sequence[tuple[str, T]],
    default: T | None = None,
) -> T:
    """Show a numbered list of ``(label, value)`` pairs and return the picked value."""
    if not choices:
        raise ValueError(f"Nothing to choose from for: {message}")
    if len(choices) == 1:
        return choices[0][1]

    default_index = next((i for i, (_, value) in enumerate(choices, 1) if value == default), 1)
    logger.out.print(f"\n[bold]{escape(message)}[/bold]")
    for index, (label, _) in enumerate(choices, 1):
        logger.out.print(f"  [cyan]{index:>3}[/cyan]  {escape(label)}", soft_wrap=True)

    while True:
        picked = typer.prompt("Choice", default=default_index, type=int)
        if 1 <= picked <= len(choices):
            return choices[picked - 1][1]
        logger.out.print(f"[red]Enter a number between 1 and {len(choices)}[/red]")


def ask_pattern(message: str = "Enter grep pattern") -> str:
    while True:
        pattern = typer.prompt(message, default="", show_default=False)
        if pattern.strip():
            return pattern
        typer.echo("Pattern is required", err=True)
