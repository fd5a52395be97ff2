"""
CLI interface for AI Client.

Provides single-shot queries, interactive chat, usage statistics and
session management from the command line.
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ai_client import __version__
from ai_client.config.loader import ClientConfig, load_config
from ai_client.core.accounting import UsageAccountant, format_cost
from ai_client.core.conversation import ConversationWindow, Message, Role
from ai_client.core.errors import AIClientError, ConfigurationError, ErrorKind
from ai_client.sdk.anthropic_client import ChatResult, StatsNotSavedError, TrackedAnthropic
from ai_client.storage.repository import StateRepository, get_repository

app = typer.Typer(help="CLI tool for interacting with the Anthropic API")
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_ERROR = 1

CHAT_COMMANDS = "Commands: /help /reset /stats /history /exit"

ERROR_HINTS = {
    ErrorKind.AUTH_FAILURE: "Check your ANTHROPIC_API_KEY in your environment or ~/.ai-client/config.yaml",
    ErrorKind.RATE_LIMITED: "Please wait a moment and try again",
    ErrorKind.CONNECTIVITY_FAILURE: "Check your internet connection and try again",
    ErrorKind.SERVICE_FAILURE: "Anthropic service issue, try again in a moment",
    ErrorKind.INVALID_REQUEST: "The request was rejected; check the model name and settings",
    ErrorKind.UNKNOWN_FAILURE: "An unexpected error occurred",
}


def _configure_logging(debug: bool) -> None:
    """Route log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True
    )


def _report_error(error: Exception, debug: bool = False) -> None:
    """Render an error with a hint for its kind."""
    if isinstance(error, AIClientError):
        err_console.print(f"[red]✗ Error:[/] {escape(error.message)}")
        err_console.print(f"[dim]{ERROR_HINTS[error.kind]}[/]")
    elif isinstance(error, ConfigurationError):
        err_console.print(f"[red]Configuration error:[/] {escape(str(error))}")
    else:
        err_console.print(f"[red]Error:[/] {escape(str(error))}")
    if debug:
        logger.debug("Full error: %r", error, exc_info=error)


def _log_retry(attempt: int, delay_ms: float) -> None:
    logger.debug("Retry attempt %d after %dms", attempt, round(delay_ms))


def _format_age(timestamp: datetime) -> str:
    """Human-readable time since ``timestamp``, e.g. "5 minutes"."""
    seconds = max(0, int((datetime.now(timezone.utc) - timestamp).total_seconds()))

    def plural(value: int, unit: str) -> str:
        return f"{value} {unit}{'' if value == 1 else 's'}"

    if seconds < 60:
        return plural(seconds, "second")
    minutes = seconds // 60
    if minutes < 60:
        return plural(minutes, "minute")
    hours = minutes // 60
    if hours < 24:
        return plural(hours, "hour")
    days = hours // 24
    if days < 30:
        return plural(days, "day")
    return plural(days // 30, "month")


def _run_chat(client: TrackedAnthropic, messages) -> ChatResult:
    """Run one request with a spinner on the console."""
    with console.status("Thinking..."):
        return asyncio.run(client.chat(messages, on_retry=_log_retry))


def _print_reply(client: TrackedAnthropic, result: ChatResult) -> None:
    console.print(result.content, markup=False, highlight=False)
    console.print()
    console.print(client.accountant.format_usage(result.usage), markup=False, style="dim")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"ai-client {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit"
    )
):
    """AI Client CLI."""


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt to send"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override default model"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging")
):
    """Send a single query and exit."""
    _configure_logging(debug)
    try:
        config = load_config(config_path).with_model(model)
        logger.debug("Using model: %s", config.default_model)
        logger.debug("Max tokens: %s", config.max_tokens)
        logger.debug("Temperature: %s", config.temperature)

        client = TrackedAnthropic(config, repository=get_repository())
        message = Message(role=Role.USER, content=prompt)

        try:
            result = _run_chat(client, [message])
        except StatsNotSavedError as e:
            _print_reply(client, e.result)
            raise

        _print_reply(client, result)
        sys.exit(EXIT_CODE_OK)
    except (AIClientError, ConfigurationError, OSError, ValueError) as e:
        _report_error(e, debug)
        sys.exit(EXIT_CODE_ERROR)


class ChatSession:
    """Interactive chat loop state: conversation, client and persistence.

    The client's accountant holds the persisted lifetime totals; this
    session keeps its own accountant so /reset only clears the session.
    """

    def __init__(
        self,
        config: ClientConfig,
        client: TrackedAnthropic,
        repository: StateRepository,
        window: ConversationWindow,
        debug: bool = False
    ):
        self.config = config
        self.client = client
        self.repository = repository
        self.window = window
        self.debug = debug
        self.session_usage = UsageAccountant()

    def handle_command(self, command: str) -> bool:
        """Run a slash command. Returns False when the loop should stop."""
        if command == "/exit":
            return False
        if command == "/reset":
            self.window.reset()
            self.session_usage.reset()
            console.print("[cyan]ℹ[/] Conversation cleared")
        elif command == "/stats":
            console.print(self.session_usage.format_stats(), markup=False)
        elif command == "/history":
            shown = len(self.window.context_view())
            total = len(self.window)
            console.print(f"[cyan]ℹ[/] Showing {shown} of {total} messages in context window")
        elif command == "/help":
            console.print(
                "[cyan]ℹ[/] Commands: /reset (clear history) /stats (show stats) "
                "/history (show context) /exit (quit)"
            )
        else:
            console.print(f"[red]Unknown command: {escape(command)}. Type /help for available commands.[/]")
        return True

    def send(self, text: str) -> None:
        """Send a user turn and print the reply."""
        self.window.append(Role.USER, text)
        save_errors = []
        try:
            result = _run_chat(self.client, self.window.context_view())
        except StatsNotSavedError as e:
            result = e.result
            save_errors.append(e)
        except (AIClientError, ConfigurationError, ValueError) as e:
            _report_error(e, self.debug)
            return

        self.window.append(Role.ASSISTANT, result.content)
        self.session_usage.add_usage(result.usage)
        try:
            self.repository.save_conversation(self.window.conversation)
        except OSError as e:
            save_errors.append(e)

        console.print("[bold blue]assistant>[/] ", end="")
        console.print(result.content, markup=False, highlight=False)
        stats = self.session_usage.stats
        console.print(
            f"Model: {self.config.default_model} | Session: {format_cost(stats.total_cost)} "
            f"({stats.request_count} requests) | Last: {result.usage.input_tokens} in / "
            f"{result.usage.output_tokens} out tokens",
            markup=False,
            style="dim"
        )
        for error in save_errors:
            _report_error(error, self.debug)

    def run(self) -> None:
        console.print("[bold cyan]AI Client - Interactive Chat[/]")
        console.print(f"[dim]Model: {self.config.default_model} | Session: {self.window.id}[/]")
        for message in self.window.conversation.messages:
            label = "you" if message.role is Role.USER else message.role.value
            console.print(f"[bold]{label}>[/] ", end="")
            console.print(message.content, markup=False, highlight=False)
        console.print(f"[dim]{CHAT_COMMANDS} | Press Enter to send[/]")

        while True:
            try:
                text = console.input("[bold green]you> [/]").strip()
            except (EOFError, KeyboardInterrupt):
                console.print()
                break
            if not text:
                continue
            if text.startswith("/"):
                if not self.handle_command(text):
                    break
                continue
            self.send(text)


@app.command()
def chat(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override default model"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
    resume: Optional[str] = typer.Option(None, "--resume", "-r", help="Resume a previous conversation session"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging")
):
    """Start an interactive chat session."""
    _configure_logging(debug)
    try:
        config = load_config(config_path).with_model(model)
        repository = get_repository()

        conversation = None
        if resume:
            logger.debug("Resuming session: %s", resume)
            conversation = repository.load_conversation(resume)
            if conversation is None:
                err_console.print(f"[yellow]Session {resume} not found, starting a new conversation[/]")

        session = ChatSession(
            config=config,
            client=TrackedAnthropic(config, repository=repository),
            repository=repository,
            window=ConversationWindow(config.history, conversation),
            debug=debug
        )
        session.run()
        sys.exit(EXIT_CODE_OK)
    except (ConfigurationError, OSError, ValueError) as e:
        _report_error(e, debug)
        sys.exit(EXIT_CODE_ERROR)


@app.command()
def stats():
    """Display global usage statistics."""
    saved = get_repository().load_stats()

    if saved is None or saved.request_count == 0:
        console.print("No usage statistics found.")
        console.print('Run some queries with "ai-client ask" or "ai-client chat" to generate statistics.')
        sys.exit(EXIT_CODE_OK)

    table = Table(title="Global Usage Statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Input tokens", f"{saved.total_input_tokens:,}")
    table.add_row("Output tokens", f"{saved.total_output_tokens:,}")
    table.add_row("Total tokens", f"{saved.total_tokens:,}")
    table.add_row("Total cost", format_cost(saved.total_cost))
    table.add_row("Total requests", f"{saved.request_count:,}")
    table.add_row("Avg cost/request", format_cost(saved.average_cost))
    console.print(table)
    sys.exit(EXIT_CODE_OK)


@app.command()
def sessions(
    cleanup: bool = typer.Option(False, "--cleanup", help="Delete old sessions"),
    older_than: int = typer.Option(30, "--older-than", min=0, help="With --cleanup, delete sessions idle for more than this many days")
):
    """List saved conversation sessions."""
    repository = get_repository()

    if cleanup:
        try:
            deleted = repository.prune_sessions(older_than)
        except (OSError, ValueError) as e:
            _report_error(e)
            sys.exit(EXIT_CODE_ERROR)
        console.print(f"Deleted {len(deleted)} session(s) older than {older_than} days.")
        sys.exit(EXIT_CODE_OK)

    saved = repository.list_sessions()
    if not saved:
        console.print("No saved sessions found.")
        console.print("Start a chat to create a session: ai-client chat")
        sys.exit(EXIT_CODE_OK)

    table = Table(title="Available Sessions")
    table.add_column("Session ID", no_wrap=True)
    table.add_column("Messages", justify="right")
    table.add_column("Last activity")
    table.add_column("Created")
    for session in saved:
        table.add_row(
            session.id,
            str(session.message_count),
            f"{_format_age(session.updated_at)} ago",
            session.created_at.astimezone().strftime("%Y-%m-%d %H:%M")
        )
    console.print(table)
    console.print("\nTo resume a session: ai-client chat --resume <session-id>")
    sys.exit(EXIT_CODE_OK)


if __name__ == "__main__":
    app()
