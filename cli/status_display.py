"""Status display functionality for CLI"""

from rich.markup import escape
from rich.table import Table

import settings
from auth import Authorized, Error, Loading, TokenLifecycleManager
from chat.models import KNOWN_MODELS, ChatSettings
from config import get_config_loader
from context.models import ContextStats


def get_auth_status(token_manager: TokenLifecycleManager) -> tuple[str, str]:
    """
    Get authentication status and expiry info

    Args:
        token_manager: TokenLifecycleManager instance

    Returns:
        Tuple of (status, detail_message)
    """
    state = token_manager.state

    if isinstance(state, Loading):
        return "LOADING", "Requesting token..."

    if isinstance(state, Error):
        return "ERROR", state.message

    if not isinstance(state, Authorized):
        return "NO AUTH", "No token available"

    remaining = token_manager.time_until_expiry()
    if remaining <= 0:
        return "EXPIRED", "Token expired"

    hours = int(remaining // 3600)
    minutes = int((remaining % 3600) // 60)

    if hours > 0:
        time_str = f"{hours}h {minutes}m"
    else:
        time_str = f"{minutes}m"

    if token_manager.needs_refresh():
        return "VALID", f"Expires in {time_str} (refresh due)"
    return "VALID", f"Expires in {time_str}"


def show_auth_status(token_manager: TokenLifecycleManager, console):
    """
    Display detailed token status

    Args:
        token_manager: TokenLifecycleManager instance
        console: Rich console for output
    """
    status, detail = get_auth_status(token_manager)
    color = "green" if status == "VALID" else "red" if status in ("ERROR", "EXPIRED") else "yellow"

    table = Table(title="Token Status Details")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Status", f"[{color}]{status}[/{color}]")
    table.add_row("Detail", detail)
    table.add_row("Token File", str(token_manager.storage.token_file))
    table.add_row("Auth Host", settings.AUTH_HOST)
    if settings.AUTHORIZATION_KEY:
        source = get_config_loader().source("AUTHORIZATION_KEY")
        table.add_row("Authorization Key", f"configured ({source})")
    else:
        table.add_row("Authorization Key", "[red]not configured[/red] (set AUTHORIZATION_KEY)")

    console.print(table)


def show_settings(chat_settings: ChatSettings, console):
    """Display the current chat settings"""
    table = Table(title="Chat Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    system_prompt = chat_settings.system_prompt.strip()

    table.add_row("Model", KNOWN_MODELS.get(chat_settings.model, chat_settings.model))
    table.add_row("Temperature", str(chat_settings.temperature))
    table.add_row("Max tokens", str(chat_settings.max_tokens))
    table.add_row("System prompt", escape(system_prompt) if system_prompt else "[dim](none)[/dim]")
    table.add_row("Reply format", chat_settings.output_format.value)
    table.add_row("Streaming", "on" if chat_settings.stream else "off")
    table.add_row("Compression", "on" if chat_settings.context_compression_enabled else "off")
    table.add_row("Compression threshold", str(chat_settings.compression_threshold))
    table.add_row("Recent messages kept", str(chat_settings.recent_messages_count))

    console.print(table)


def show_context_stats(stats: ContextStats, console):
    """Display context window statistics"""
    table = Table(title="Context")
    table.add_column("Property", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Recent messages", str(stats.recent_count))
    table.add_row("Summary blocks", str(stats.summary_block_count))
    table.add_row("Messages in conversation", str(stats.total_original_messages))
    table.add_row("Context tokens (est.)", str(stats.current_context_tokens))
    table.add_row("Tokens saved (est.)", str(stats.estimated_tokens_saved))

    console.print(table)
