"""Shared CLI helpers: input loading and Rich output."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Optional

from rich.console import Console
from rich.markup import escape

console = Console()


def load_json(path: str | Path, what: str = "file") -> Any:
    """Read a JSON file, turning parse errors into a click error."""
    import click

    try:
        return json.loads(Path(path).read_text())
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON in {what} {path}: {e}")


def load_mapping(path: Optional[str]):
    """ControlMapping from a ``{"form.control": {"table": .., "column": ..}}`` file."""
    from qb_sql.mapping import ControlMapping

    if not path:
        return None
    return ControlMapping.from_dict(load_json(path, "mapping"))


def print_header(text: str) -> None:
    """Print a styled header."""
    console.print(f"\n[bold cyan]{escape(text)}[/bold cyan]")


def print_error(text: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {escape(text)}")


def print_success(text: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]{escape(text)}[/bold green]")


def print_warnings(warnings: Iterable[str]) -> None:
    for warning in warnings:
        console.print(f"  [yellow]![/yellow] {escape(warning)}")
