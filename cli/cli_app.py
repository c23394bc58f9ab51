"""Interactive chat REPL"""

import asyncio
import dataclasses
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from auth import TokenLifecycleManager
from chat.models import KNOWN_MODELS, ChatSettings, MessageStatus, OutputFormat, SendMessageResult
from chat.orchestrator import ChatOrchestrator
from cli.status_display import get_auth_status, show_auth_status, show_context_stats, show_settings
from errors import ApiError, AuthError, ChatClientError, NetworkError
from utils.storage import SettingsStorage


HELP_TEXT = """[bold]Commands:[/bold]
  [cyan]/help[/cyan]              Show this help
  [cyan]/stats[/cyan]             Context window statistics
  [cyan]/status[/cyan]            Authentication status
  [cyan]/login[/cyan]             Request a new access token
  [cyan]/logout[/cyan]            Forget the stored token
  [cyan]/retry[/cyan]             Resend the last failed message
  [cyan]/clear[/cyan]             Start a new conversation
  [cyan]/format none|json[/cyan]  Set the reply format
  [cyan]/model <name>[/cyan]      Switch model
  [cyan]/set <param> <value>[/cyan]  Change a setting (temperature, max_tokens, compression,
                     compression_threshold, recent_messages_count, stream)
  [cyan]/system <prompt>[/cyan]   Set the system prompt ([cyan]/system clear[/cyan] removes it)
  [cyan]/config[/cyan]            Show current settings
  [cyan]/exit[/cyan]              Quit"""

SET_USAGE = "Usage: /set <parameter> <value>"
ON_VALUES = ("on", "true", "yes", "1")
OFF_VALUES = ("off", "false", "no", "0")


def _parse_float(value: str, low: float, high: float, name: str) -> float:
    try:
        number = float(value)
    except ValueError:
        number = None
    if number is None or not low <= number <= high:
        raise ValueError(f"{name} must be a number between {low:g} and {high:g}")
    return number


def _parse_int(value: str, minimum: int, name: str) -> int:
    try:
        number = int(value)
    except ValueError:
        number = None
    if number is None or number < minimum:
        qualifier = "a positive integer" if minimum == 1 else f"an integer of at least {minimum}"
        raise ValueError(f"{name} must be {qualifier}")
    return number


def _parse_switch(value: str, name: str) -> bool:
    value = value.lower()
    if value in ON_VALUES:
        return True
    if value in OFF_VALUES:
        return False
    raise ValueError(f"{name} must be on or off")


# /set parameter -> (ChatSettings field, value parser)
SETTABLE_PARAMETERS = {
    "temperature": ("temperature", lambda v: _parse_float(v, 0.0, 2.0, "Temperature")),
    "max_tokens": ("max_tokens", lambda v: _parse_int(v, 1, "max_tokens")),
    "compression": ("context_compression_enabled", lambda v: _parse_switch(v, "compression")),
    "compression_threshold": ("compression_threshold", lambda v: _parse_int(v, 1, "compression_threshold")),
    "recent_messages_count": ("recent_messages_count", lambda v: _parse_int(v, 0, "recent_messages_count")),
    "stream": ("stream", lambda v: _parse_switch(v, "stream")),
}


class ChatCLI:
    """Rich console front end for a ChatOrchestrator"""

    def __init__(
        self,
        orchestrator: ChatOrchestrator,
        token_manager: TokenLifecycleManager,
        settings_store: SettingsStorage,
        console: Optional[Console] = None,
        debug: bool = False,
    ):
        self.orchestrator = orchestrator
        self.token_manager = token_manager
        self.settings_store = settings_store
        self.console = console or Console()
        self.debug = debug

        # Create event loop
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

    def display_header(self):
        """Display application header"""
        chat_settings = self.settings_store.load()
        model = KNOWN_MODELS.get(chat_settings.model, chat_settings.model)
        mode = "streaming" if chat_settings.stream else "single-shot"
        self.console.print(Panel.fit(
            f"[bold cyan]Stream Chat[/bold cyan]\n"
            f"[dim]{model} - {mode} - format: {chat_settings.output_format.value}[/dim]",
            border_style="cyan"
        ))
        status, detail = get_auth_status(self.token_manager)
        color = "green" if status == "VALID" else "yellow"
        self.console.print(f"Auth: [{color}]{status}[/{color}] [dim]{detail}[/dim]")
        self.console.print("[dim]Type /help for commands[/dim]\n")

    def display_history(self):
        """Print messages restored from the previous session"""
        summaries = self.orchestrator.summaries
        if summaries:
            folded = sum(summary.original_message_count for summary in summaries)
            self.console.print(f"[dim]({folded} earlier message(s) summarized)[/dim]")
        for message in self.orchestrator.messages:
            self.print_message(message.role.value, message.content)
        if self.orchestrator.messages:
            self.console.print()

    def print_message(self, role: str, content: str):
        if role == "user":
            self.console.print(f"[bold green]You:[/bold green] {escape(content)}")
        else:
            self.console.print(f"[bold cyan]Assistant:[/bold cyan] {escape(content)}")

    # Commands

    def login(self) -> bool:
        """Run the credential exchange"""
        self.console.print("Requesting access token...")
        try:
            self.loop.run_until_complete(self.token_manager.authenticate())
        except AuthError as e:
            self.console.print(f"[red]✗ Authentication failed: {escape(e.message)}[/red]")
            return False
        self.console.print("[green]✓ Authenticated[/green]")
        return True

    def logout(self):
        self.token_manager.logout()
        self.console.print("[green]✓ Logged out[/green]")

    def set_format(self, argument: str):
        try:
            output_format = OutputFormat(argument.strip().lower())
        except ValueError:
            self.console.print("[red]Usage: /format none|json[/red]")
            return
        self.update_settings(output_format=output_format)
        self.console.print(f"[green]✓ Reply format set to {output_format.value}[/green]")

    def update_settings(self, **changes) -> ChatSettings:
        """Apply field changes to the stored settings and save them"""
        chat_settings = dataclasses.replace(self.settings_store.load(), **changes)
        self.settings_store.save(chat_settings)
        return chat_settings

    def set_model(self, argument: str):
        name = argument.strip()
        if not name:
            self.console.print("[red]Usage: /model <name>[/red]")
            self.console.print(f"[dim]Known models: {', '.join(KNOWN_MODELS)}[/dim]")
            return
        # Case-insensitive match against the wire names
        matches = [model for model in KNOWN_MODELS if model.lower() == name.lower()]
        if not matches:
            self.console.print(f"[red]Unknown model: {escape(name)}[/red]")
            self.console.print(f"[dim]Known models: {', '.join(KNOWN_MODELS)}[/dim]")
            return
        self.update_settings(model=matches[0])
        self.console.print(f"[green]✓ Model set to {KNOWN_MODELS[matches[0]]}[/green]")

    def set_parameter(self, argument: str):
        parameter, _, value = argument.strip().partition(" ")
        value = value.strip()
        if not parameter:
            self.console.print(f"[red]{SET_USAGE}[/red]")
            self.console.print(f"[dim]Parameters: {', '.join(SETTABLE_PARAMETERS)}[/dim]")
            return
        if not value:
            self.console.print(f"[red]{SET_USAGE}[/red]")
            return

        parameter = parameter.lower()
        if parameter not in SETTABLE_PARAMETERS:
            self.console.print(f"[red]Unknown parameter: {escape(parameter)}[/red]")
            self.console.print(f"[dim]Valid parameters: {', '.join(SETTABLE_PARAMETERS)}[/dim]")
            return

        field_name, parse = SETTABLE_PARAMETERS[parameter]
        try:
            parsed = parse(value)
        except ValueError as e:
            self.console.print(f"[red]{escape(str(e))}[/red]")
            return
        self.update_settings(**{field_name: parsed})
        shown = ("on" if parsed else "off") if isinstance(parsed, bool) else parsed
        self.console.print(f"[green]✓ {parameter} set to {shown}[/green]")

    def set_system_prompt(self, argument: str):
        prompt = argument.strip()
        if not prompt:
            self.console.print("[red]Usage: /system <prompt>[/red]")
            return
        if prompt.lower() == "clear":
            self.update_settings(system_prompt="")
            self.console.print("[green]✓ System prompt removed[/green]")
            return
        chat_settings = self.update_settings(system_prompt=prompt)
        if chat_settings.output_format == OutputFormat.JSON:
            self.console.print("[yellow]JSON reply format is on and replaces this prompt until /format none[/yellow]")
        self.console.print("[green]✓ System prompt updated[/green]")

    def clear(self):
        if Confirm.ask("Delete the current conversation?", console=self.console):
            self.orchestrator.clear()
            self.console.print("[green]✓ Conversation cleared[/green]")

    def handle_command(self, line: str) -> bool:
        """Run a slash command

        Returns:
            False when the REPL should exit
        """
        command, _, argument = line.partition(" ")
        command = command.lower()

        if command in ("/exit", "/quit"):
            return False
        elif command == "/help":
            self.console.print(HELP_TEXT)
        elif command == "/stats":
            show_context_stats(self.orchestrator.get_stats(), self.console)
        elif command == "/status":
            show_auth_status(self.token_manager, self.console)
        elif command == "/login":
            self.login()
        elif command == "/logout":
            self.logout()
        elif command == "/retry":
            if self.orchestrator.last_failed_message is None:
                self.console.print("[yellow]Nothing to retry[/yellow]")
            else:
                self.send(retry=True)
        elif command == "/clear":
            self.clear()
        elif command == "/format":
            self.set_format(argument)
        elif command == "/model":
            self.set_model(argument)
        elif command == "/set":
            self.set_parameter(argument)
        elif command == "/system":
            self.set_system_prompt(argument)
        elif command == "/config":
            show_settings(self.settings_store.load(), self.console)
        else:
            self.console.print(f"[red]Unknown command: {command}[/red] (try /help)")
        return True

    # Chat

    def send(self, content: Optional[str] = None, retry: bool = False):
        """Send one message and print the reply"""
        chat_settings = self.settings_store.load()
        streamed = []

        def on_content(text: str):
            if not streamed:
                self.console.print("[bold cyan]Assistant:[/bold cyan] ", end="")
            streamed.append(text)
            self.console.print(text, end="", markup=False, highlight=False)

        callback = on_content if chat_settings.stream else None

        try:
            if retry:
                coroutine = self.orchestrator.retry_last(on_content=callback)
            else:
                coroutine = self.orchestrator.send_message(content, on_content=callback)
            if chat_settings.stream:
                result = self.loop.run_until_complete(coroutine)
            else:
                with self.console.status("Thinking..."):
                    result = self.loop.run_until_complete(coroutine)
        except ChatClientError as e:
            if streamed:
                self.console.print()
            self.print_error(e)
            return

        if streamed:
            self.console.print()
        else:
            self.print_message("assistant", result.message.content)
        self.print_footer(result)

    def print_footer(self, result: SendMessageResult):
        usage = result.message.token_usage
        parts = []
        if result.compressed_count:
            parts.append(f"{result.compressed_count} older message(s) summarized")
        if usage is not None:
            if usage.has_actual_data:
                parts.append(f"tokens: {usage.actual_total}")
            else:
                parts.append(f"tokens: ~{usage.estimated_total}")
        if parts:
            self.console.print(f"[dim]{' | '.join(parts)}[/dim]")
        self.console.print()

    def print_error(self, error: ChatClientError):
        if isinstance(error, AuthError):
            self.console.print(f"[red]✗ Authentication error:[/red] {escape(error.message)}")
            self.console.print("[dim]Use /login to authenticate[/dim]")
        elif isinstance(error, ApiError):
            self.console.print(f"[red]✗ API error:[/red] {escape(error.message)}")
        elif isinstance(error, NetworkError):
            self.console.print(f"[red]✗ Network error:[/red] {escape(error.message)}")
        else:
            self.console.print(f"[red]✗ Error:[/red] {escape(error.message)}")

        if self.debug and error.__cause__ is not None:
            self.console.print(f"[dim]Caused by: {escape(repr(error.__cause__))}[/dim]")

        failed = self.orchestrator.last_failed_message
        if failed is not None and failed.status == MessageStatus.ERROR:
            self.console.print("[dim]Message not sent. Use /retry to resend it.[/dim]")

    def run(self):
        """Main REPL loop"""
        self.display_header()
        self.display_history()

        try:
            while True:
                line = Prompt.ask("[bold green]You[/bold green]", console=self.console).strip()
                if not line:
                    continue
                if line.startswith("/"):
                    if not self.handle_command(line):
                        break
                    continue
                self.send(line)
        finally:
            self.loop.close()

        self.console.print("\n[cyan]Goodbye![/cyan]\n")
