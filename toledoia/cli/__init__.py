"""
ToledoIA - Command Line Interface

Command-line access to the ToledoIA embeddable chat widget. Built with Typer
for the command surface and Rich for output.

Usage:
    $ toledoia --help
    $ toledoia widget <api-key>
    $ toledoia embed <api-key> --mode inline --target "#toledoia-container"
    $ toledoia visitor --reset
    $ toledoia chat <api-key> --language en

For detailed help on any command:
    $ toledoia <command> --help
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from toledoia import __version__
from toledoia.config.settings import settings
from toledoia.widget import (
    EmbedCodeGenerator,
    LocalStorage,
    UploadFile,
    WidgetAPIClient,
    WidgetChatController,
    WidgetError,
    get_or_create_visitor_id,
    reset_visitor_id,
)

console = Console()

app = typer.Typer(
    name="toledoia",
    help="ToledoIA - embeddable chat widget client",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

CHAT_HELP = (
    "Type a message and press Enter to send it.\n"
    "[cyan]/upload PATH[/cyan] sends a file, [cyan]/end[/cyan] ends the session, "
    "[cyan]/quit[/cyan] leaves."
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ToledoIA widget client version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Set verbose mode; otherwise log at the configured LOG_LEVEL."""
    level = logging.DEBUG if value else settings.LOG_LEVEL.upper()
    logging.basicConfig(level=level)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable verbose output.",
    ),
) -> None:
    """
    ToledoIA - embeddable chat widget client

    Inspect widgets, generate embed code and chat with a widget from the
    terminal. Use --help on any command for details.
    """
    pass


@app.command()
def widget(
    api_key: str = typer.Argument(..., help="Widget API key."),
    api_url: Optional[str] = typer.Option(
        None,
        "--api-url",
        help="ToledoIA backend URL.",
        envvar="TOLEDOIA_API_URL",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Show the widget an API key resolves to.
    """
    from toledoia.cli.output import print_error, print_json, print_table

    async def fetch():
        async with WidgetAPIClient(api_url) as api:
            return await api.get_widget(api_key)

    try:
        info = asyncio.run(fetch())
    except WidgetError as e:
        print_error(str(e), hint="Check the API key and that the widget is active.")
        raise typer.Exit(1)

    if format == "json":
        print_json(info.model_dump(mode="json"))
        return

    print_table(
        title=info.name,
        columns=["Field", "Value"],
        rows=[
            ["id", info.id],
            ["greeting", info.greeting],
            ["theme_color", info.theme_color],
            ["avatar_url", info.avatar_url or "-"],
            ["active", "yes" if info.is_active else "no"],
            ["allowed_domains", ", ".join(info.allowed_domains) or "*"],
        ],
        styles=["cyan", None],
    )


@app.command()
def embed(
    api_key: str = typer.Argument(..., help="Widget API key."),
    mode: str = typer.Option(
        "floating",
        "--mode",
        "-m",
        help="Embed mode: floating, inline, iframe.",
    ),
    position: str = typer.Option(
        "bottom-right",
        "--position",
        "-p",
        help="Floating button position.",
    ),
    initial_open: bool = typer.Option(
        False,
        "--initial-open",
        help="Open the chat window on page load.",
    ),
    target: Optional[str] = typer.Option(
        None,
        "--target",
        "-t",
        help="CSS selector of the container (inline mode).",
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="Origin serving widget.js. Defaults to the backend URL.",
        envvar="TOLEDOIA_API_URL",
    ),
) -> None:
    """
    Print the HTML snippet that embeds a widget in a page.
    """
    from toledoia.cli.output import print_error

    generator = EmbedCodeGenerator(base_url or settings.TOLEDOIA_API_URL)
    try:
        if mode == "iframe":
            code = generator.generate_iframe_embed_code(api_key)
        elif mode == "inline":
            code = generator.generate_inline_embed_code(api_key, target or "")
        else:
            if mode != "floating":
                raise ValueError(
                    f"Invalid mode '{mode}'. Must be one of: floating, inline, iframe"
                )
            code = generator.generate_embed_code(api_key, position, initial_open)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print(code)


@app.command()
def visitor(
    store: Optional[Path] = typer.Option(
        None,
        "--store",
        "-s",
        help="Visitor storage file.",
        envvar="VISITOR_STORE_PATH",
    ),
    reset: bool = typer.Option(
        False,
        "--reset",
        help="Forget the stored id and generate a new one.",
    ),
) -> None:
    """
    Show the visitor id used to correlate chat sessions.
    """
    from toledoia.cli.output import print_error, print_info

    storage = LocalStorage(store)
    if reset:
        try:
            reset_visitor_id(storage)
        except (OSError, ValueError) as e:
            print_error(f"Could not reset visitor id: {e}")
            raise typer.Exit(1)

    visitor_id = get_or_create_visitor_id(storage)
    console.print(visitor_id)
    print_info("Stored in", str(storage.path))


@app.command()
def chat(
    api_key: str = typer.Argument(..., help="Widget API key."),
    language: str = typer.Option(
        settings.DEFAULT_LANGUAGE,
        "--language",
        "-l",
        help="Session language: pt, en.",
    ),
    api_url: Optional[str] = typer.Option(
        None,
        "--api-url",
        help="ToledoIA backend URL.",
        envvar="TOLEDOIA_API_URL",
    ),
    store: Optional[Path] = typer.Option(
        None,
        "--store",
        "-s",
        help="Visitor storage file.",
        envvar="VISITOR_STORE_PATH",
    ),
) -> None:
    """
    Chat with a widget from the terminal.
    """
    from toledoia.cli.output import print_error

    if language not in ("pt", "en"):
        print_error(f"Invalid language '{language}'. Must be one of: pt, en")
        raise typer.Exit(1)

    try:
        asyncio.run(_chat_loop(api_key, language, api_url, store))
    except WidgetError as e:
        print_error(str(e))
        raise typer.Exit(1)


async def _chat_loop(
    api_key: str,
    language: str,
    api_url: Optional[str],
    store: Optional[Path],
) -> None:
    from toledoia.cli.output import print_message, print_notice, print_warning

    async with WidgetAPIClient(api_url) as api:
        async with WidgetChatController(
            api,
            storage=LocalStorage(store),
            language=language,
            referrer_url="cli://toledoia",
        ) as controller:
            controller.notifications.subscribe(print_notice)
            info = await controller.initialize(api_key)

            console.print(Panel.fit(info.greeting or info.name, title=info.name))
            console.print(CHAT_HELP)

            started = await controller.ensure_session()
            if not started.ok:
                raise typer.Exit(1)
            controller.start_polling()

            while True:
                try:
                    line = await asyncio.to_thread(console.input, "[cyan]> [/cyan]")
                except (EOFError, KeyboardInterrupt):
                    break

                line = line.strip()
                if not line:
                    continue
                if line == "/quit":
                    break
                if line == "/end":
                    await controller.end_session()
                    break

                if line.startswith("/upload "):
                    path = Path(line[len("/upload "):].strip())
                    if not path.is_file():
                        print_warning(f"File not found: {path}")
                        continue
                    result = await controller.upload_file(UploadFile.from_path(path))
                else:
                    result = await controller.send_text(line)

                if result.ok and result.exchange is not None:
                    for message in result.exchange.messages:
                        if not message.is_user:
                            print_message(message, api.base_url)


if __name__ == "__main__":
    app()
