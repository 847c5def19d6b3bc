"""
ToledoIA CLI - Rich Output Helpers

Consistent command-line output for the widget commands using Rich.

Functions:
    print_table   - Print a key/value or multi-column table
    print_json    - Print formatted JSON
    print_error   - Print error message
    print_success - Print success message
    print_warning - Print warning message
    print_info    - Print info message
    print_notice  - Print a widget notice
    print_message - Print a chat message
"""

from __future__ import annotations

import json
from typing import Optional

from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.table import Table

from toledoia.widget.models import ChatMessage, MessageType
from toledoia.widget.notifications import Notice, NoticeVariant
from toledoia.widget.previews import normalize_file_url

# Create console instances
console = Console()
err_console = Console(stderr=True)


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[str]],
    styles: Optional[list[str]] = None,
    show_header: bool = True,
) -> None:
    """
    Print a rich table.

    Args:
        title: Table title
        columns: Column headers
        rows: Table rows (list of lists)
        styles: Optional column styles
        show_header: Whether to show column headers
    """
    table = Table(title=title, show_header=show_header)

    for i, col in enumerate(columns):
        style = styles[i] if styles and i < len(styles) else None
        table.add_column(col, style=style)

    for row in rows:
        padded_row = list(row) + [""] * (len(columns) - len(row))
        table.add_row(*padded_row[:len(columns)])

    console.print(table)


def print_json(data: dict | list, indent: int = 2, highlight: bool = True) -> None:
    """
    Print formatted JSON.

    Args:
        data: Data to print as JSON
        indent: Indentation level
        highlight: Whether to syntax highlight
    """
    json_str = json.dumps(data, indent=indent, default=str)
    if highlight:
        console.print(JSON(json_str))
    else:
        console.print(json_str)


def print_error(message: str, details: Optional[str] = None, hint: Optional[str] = None) -> None:
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


def print_info(message: str, details: Optional[str] = None) -> None:
    console.print(f"[bold blue]Info:[/bold blue] {message}")

    if details:
        console.print(f"[dim]{details}[/dim]")


def print_notice(notice: Notice) -> None:
    """Print a widget notice in the style matching its variant."""
    if notice.variant == NoticeVariant.DESTRUCTIVE:
        print_error(notice.title, notice.description)
    elif notice.variant == NoticeVariant.RESTARTING:
        print_warning(notice.title, notice.description)
    else:
        print_info(notice.title, notice.description)


def print_message(message: ChatMessage, base_url: str = "") -> None:
    """Print one chat message, marking previews that are not yet confirmed."""
    author = "[cyan]você[/cyan]" if message.is_user else "[magenta]ToledoIA[/magenta]"
    marker = " [dim](enviando...)[/dim]" if message.is_pending else ""

    if message.message_type == MessageType.TEXT:
        body = message.content or ""
    else:
        url = normalize_file_url(message.file_url, base_url) or message.content or ""
        body = f"({message.message_type.value}) {url}"

    console.print(f"{author}{marker}: {escape(body)}", highlight=False)
