#!/usr/bin/env python3
"""main.py

Entry point for Sena - a friendly, accessible AI assistant.
Provides an interactive CLI interface using the Rich library.
"""

from __future__ import annotations

# Standard Library
import logging
import sys
from typing import NoReturn

# Third-Party Libraries
from dotenv import load_dotenv
from rich.panel import Panel
from rich.theme import Theme
from rich.prompt import Prompt
from rich.console import Console
from rich.markdown import Markdown

# Local Modules
from sena.chat import OrchestrationLoop
from sena.config import SenaSettings
from sena.errors import PersistenceFailure
from sena.models import Mode, Role

# Load environment variables from .env file
load_dotenv()

# Initialize Rich console with custom theme
custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "user": "bold blue",
        "assistant": "green",
    }
)
console = Console(theme=custom_theme)


def display_banner() -> None:
    """Display the Sena welcome banner."""
    welcome = (
        "# Welcome to Sena\n\n"
        "Your friendly AI assistant, designed to be simple and accessible. "
        "I'm here to help with your questions, explain technology and chat."
    )
    console.print(Panel(Markdown(welcome), border_style="cyan"))
    console.print()


def display_help() -> None:
    """Display available commands and usage information."""
    modes = ", ".join(f"`{m.value}`" for m in Mode)
    help_text = f"""
**Available Commands:**

- `/help` - Show this help message
- `/mode` - Show the current conversation mode
- `/mode <name>` - Switch mode ({modes})
- `/history` - Show conversation statistics
- `/quit` or `/exit` - Exit Sena
- Any other text - Chat with Sena

**Tips:**

- Ask Sena to draw something and it will create an image link for you
- Your conversation is saved and restored the next time you start
    """
    console.print(Panel(Markdown(help_text), title="Help", border_style="cyan"))


def display_stats(loop: OrchestrationLoop) -> None:
    """Display conversation statistics.

    Args:
        loop: The OrchestrationLoop instance.
    """
    messages = loop.messages
    counts = {role: sum(1 for m in messages if m.role is role) for role in Role}

    stats_text = f"""
**Conversation Statistics:**

- Messages stored: {len(messages)}
- Your messages: {counts[Role.USER]}
- Sena replies: {counts[Role.ASSISTANT]}
- Tool results: {counts[Role.TOOL]}
- Mode: `{loop.mode.value}`
- Model: `{loop.client.model}`
- Remote mirror: `{"on" if loop.store.mirrored else "off"}`
    """
    console.print(Panel(Markdown(stats_text), title="Statistics", border_style="cyan"))


def change_mode(loop: OrchestrationLoop, argument: str) -> None:
    """Show or switch the conversation mode."""
    if not argument:
        console.print(f"Current mode: [bold]{loop.mode.value}[/bold]\n", style="info")
        return
    try:
        mode = Mode.parse(argument)
    except ValueError:
        names = ", ".join(m.value for m in Mode)
        console.print(f"Unknown mode '{argument}'. Choose one of: {names}\n", style="warning")
        return
    loop.set_mode(mode)
    console.print(f"Mode set to {mode.value}.\n", style="success")


def display_reply(loop: OrchestrationLoop, start: int) -> None:
    """Print the assistant messages added since index ``start``."""
    for message in loop.messages[start:]:
        if message.role is not Role.ASSISTANT or not message.content:
            continue
        console.print(
            Panel(
                Markdown(message.content),
                title="[bold green]Sena[/bold green]",
                border_style="green",
            )
        )
    console.print()


def main() -> NoReturn:
    """Main entry point for the Sena CLI."""
    settings = SenaSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    display_banner()

    if not settings.mistral_api_key:
        console.print("MISTRAL_API_KEY is not set; requests will be rejected.\n", style="warning")

    try:
        loop = OrchestrationLoop.from_settings(settings)
    except PersistenceFailure as exc:
        console.print(f"Failed to load the conversation: {exc}", style="error")
        sys.exit(1)

    console.print(f"Model: {settings.completion_model}", style="info")
    console.print(f"Mode: {loop.mode.value}", style="info")
    console.print(f"Saved messages: {len(loop.messages)}\n", style="info")
    console.print("Type [bold]/help[/bold] for commands, or start chatting!\n", style="info")

    # Main chat loop
    while True:
        try:
            user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()

            if not user_input:
                continue

            command, _, argument = user_input.partition(" ")
            command = command.lower()

            if command in ["/quit", "/exit"]:
                loop.close()
                console.print("\nGoodbye!\n", style="success")
                sys.exit(0)

            elif command == "/help":
                display_help()
                continue

            elif command == "/mode":
                change_mode(loop, argument.strip())
                continue

            elif command == "/history":
                display_stats(loop)
                continue

            console.print()
            start = len(loop.messages)
            with console.status("[bold green]Thinking...", spinner="dots"):
                loop.start_pass(user_input)
            display_reply(loop, start)

        except KeyboardInterrupt:
            loop.close()
            console.print("\n\nInterrupted. Goodbye!\n", style="warning")
            sys.exit(0)

        except PersistenceFailure as exc:
            console.print(f"\nCould not save the conversation: {exc}\n", style="error")
            console.print("You can continue chatting or type /quit to exit.\n", style="info")


if __name__ == "__main__":
    main()
