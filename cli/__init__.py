"""CLI package for the streaming chat client

This package provides an interactive rich console front end for the chat
core and one-shot auth commands.
"""

from cli.cli_app import ChatCLI
from cli.main import main

__all__ = [
    "ChatCLI",
    "main",
]
