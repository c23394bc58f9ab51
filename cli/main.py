"""CLI entry point and argument parsing"""

import argparse
import dataclasses
import sys

import httpx
from rich.console import Console

import settings
from auth import AuthApiClient, TokenLifecycleManager
from chat.orchestrator import ChatOrchestrator
from cli.cli_app import ChatCLI
from cli.status_display import show_auth_status
from context.compression import ContextWindowManager
from transport import ChatTransport
from utils.logging_utils import setup_logging
from utils.storage import ConversationStorage, SettingsStorage, TokenStorage


console = Console()


def build_cli(debug: bool = False) -> ChatCLI:
    """Wire the chat core from settings"""
    token_manager = TokenLifecycleManager(
        AuthApiClient(
            settings.AUTH_HOST,
            settings.AUTHORIZATION_KEY,
            scope=settings.AUTH_SCOPE,
            timeout=httpx.Timeout(settings.REQUEST_TIMEOUT, connect=settings.CONNECT_TIMEOUT),
            verify=settings.VERIFY_SSL,
        ),
        TokenStorage(),
        refresh_margin=settings.TOKEN_REFRESH_MARGIN,
    )
    transport = ChatTransport(
        settings.API_HOST,
        verify=settings.VERIFY_SSL,
        trace_enabled=settings.STREAM_TRACE_ENABLED,
    )
    settings_store = SettingsStorage()
    orchestrator = ChatOrchestrator(
        token_manager,
        transport,
        settings_store,
        context_manager=ContextWindowManager(transport, token_manager),
        conversation_store=ConversationStorage(),
    )
    return ChatCLI(orchestrator, token_manager, settings_store, console=console, debug=debug)


def main():
    """Entry point for the CLI"""
    parser = argparse.ArgumentParser(description="Streaming chat client")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--stream",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Stream replies as they are generated (saved to settings)"
    )
    parser.add_argument("--login", action="store_true", help="Request a new access token and exit")
    parser.add_argument("--logout", action="store_true", help="Forget the stored token and exit")
    parser.add_argument("--status", action="store_true", help="Show authentication status and exit")

    args = parser.parse_args()

    setup_logging(debug=args.debug, level=settings.LOG_LEVEL)

    try:
        cli = build_cli(debug=args.debug)

        if args.stream is not None:
            chat_settings = dataclasses.replace(cli.settings_store.load(), stream=args.stream)
            cli.settings_store.save(chat_settings)

        if args.logout:
            cli.logout()
            sys.exit(0)

        if args.login:
            sys.exit(0 if cli.login() else 1)

        if args.status:
            show_auth_status(cli.token_manager, console)
            sys.exit(0)

        cli.run()

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        console.print("Goodbye!")
    except Exception as e:
        console.print(f"\n[red]Fatal error:[/red] {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
