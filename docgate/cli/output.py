"""
docgate CLI - Rich Output Helpers

Consistent terminal output for the operator commands: tables, status
checks, JSON dumps, message lines and severity-colored finding lists.

Functions:
    print_table     - Print a formatted table
    print_status    - Print status checks with pass/fail indicators
    print_json      - Print formatted JSON
    print_error     - Print error message (stderr)
    print_success   - Print success message
    print_warning   - Print warning message
    print_key_value - Print aligned key/value pairs
    print_tree      - Print a nested dict as a tree
    severity_markup - Wrap a severity label in its color
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional, Sequence

from rich.console import Console
from rich.json import JSON
from rich.table import Table
from rich.tree import Tree

console = Console()
err_console = Console(stderr=True)

STATUS_PASS = "[green]PASS[/green]"
STATUS_FAIL = "[red]FAIL[/red]"

SEVERITY_STYLES = {
    "LOW": "dim",
    "MEDIUM": "yellow",
    "HIGH": "bold red",
    "CRITICAL": "bold white on red",
}

STATUS_STYLES = {
    "pending": "yellow",
    "approved": "green",
    "rejected": "red",
}


def print_table(
    title: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[str]],
    styles: Optional[Sequence[Optional[str]]] = None,
    show_lines: bool = False,
) -> None:
    """
    Print a rich table.

    Args:
        title: Table title
        columns: Column headers
        rows: Table rows; short rows are padded
        styles: Optional per-column styles
        show_lines: Whether to draw row separators
    """
    table = Table(title=title, show_lines=show_lines)
    for i, col in enumerate(columns):
        style = styles[i] if styles and i < len(styles) else None
        table.add_column(col, style=style)

    for row in rows:
        padded = list(row) + [""] * (len(columns) - len(row))
        table.add_row(*padded[:len(columns)])

    console.print(table)


def print_status(checks: Sequence[tuple[str, bool, str]], title: Optional[str] = None) -> None:
    """
    Print (name, passed, message) checks, one per line.
    """
    if title:
        console.print(f"[bold]{title}[/bold]")
        console.print()

    for name, passed, message in checks:
        icon = STATUS_PASS if passed else STATUS_FAIL
        color = "green" if passed else "red"
        console.print(f"  {icon} [cyan]{name}[/cyan]: [{color}]{message}[/{color}]")


def print_json(data: Any, indent: int = 2, highlight: bool = True) -> None:
    text = json.dumps(data, indent=indent, default=str)
    if highlight:
        console.print(JSON(text))
    else:
        console.print(text, markup=False, highlight=False)


def print_error(message: str, details: Optional[str] = None, hint: Optional[str] = None) -> None:
    """
    Print an error to stderr.

    Args:
        message: Error message
        details: Optional detailed error information
        hint: Optional hint for resolving the error
    """
    err_console.print(f"[bold red]Error:[/bold red] {message}")
    if details:
        err_console.print(f"[dim]{details}[/dim]")
    if hint:
        err_console.print(f"[yellow]Hint:[/yellow] {hint}")


def print_success(message: str, details: Optional[str] = None) -> None:
    console.print(f"[bold green]Success:[/bold green] {message}")
    if details:
        console.print(f"[dim]{details}[/dim]")


def print_warning(message: str, details: Optional[str] = None) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")
    if details:
        console.print(f"[dim]{details}[/dim]")


def print_key_value(items: Sequence[tuple[str, Any]], title: Optional[str] = None) -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
        console.print()

    width = max((len(str(k)) for k, _ in items), default=0)
    for key, value in items:
        console.print(f"  [cyan]{str(key).ljust(width)}[/cyan]: {value}")


def print_tree(data: dict, title: str = "Tree") -> None:
    """
    Print a nested dictionary as a tree.

    Lists of scalars are shown inline; lists of dicts become indexed nodes.
    """
    tree = Tree(f"[bold]{title}[/bold]", guide_style="dim")

    def add_nodes(node: Tree, value: Any) -> None:
        for key, item in value.items():
            if isinstance(item, dict):
                add_nodes(node.add(f"[cyan]{key}[/cyan]"), item)
            elif isinstance(item, list) and any(isinstance(x, dict) for x in item):
                child = node.add(f"[cyan]{key}[/cyan]")
                for i, entry in enumerate(item):
                    if isinstance(entry, dict):
                        add_nodes(child.add(f"[dim]{i}[/dim]"), entry)
                    else:
                        child.add(str(entry))
            else:
                node.add(f"[cyan]{key}[/cyan]: {item}")

    add_nodes(tree, data)
    console.print(tree)


def severity_markup(severity: str) -> str:
    style = SEVERITY_STYLES.get(severity.upper(), "")
    return f"[{style}]{severity}[/{style}]" if style else severity


def status_markup(status: str) -> str:
    style = STATUS_STYLES.get(status.lower(), "")
    return f"[{style}]{status}[/{style}]" if style else status


def format_timestamp(dt: Optional[datetime]) -> str:
    if dt is None:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def truncate_string(s: str, max_length: int, suffix: str = "...") -> str:
    if len(s) <= max_length:
        return s
    return s[:max_length - len(suffix)] + suffix
