"""CLI commands for chatdesk.

Lets a message be pushed through the assistant workflow from a terminal,
which is how the chat gateway's behaviour is reproduced and debugged.

Commands:
    chatdesk ask MESSAGE    - Run one message through the workflow
    chatdesk commands       - Show the slash-command table
    chatdesk decode TOKEN   - Inspect a confirmation token
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .config import AppConfig
from .core.backends.store import JsonLinkedReferenceStore
from .core.confirmation import ConfirmationCodec
from .core.intent.commands import COMMAND_SPECS, HELP_COMMANDS
from .core.intent.taxonomy import ConversationContext, Intent
from .core.formatter import WorkflowOutput
from .core.workflow import AssistantWorkflow, create_workflow

console = Console()


async def _run_once(workflow: AssistantWorkflow, message: str, ctx: ConversationContext) -> WorkflowOutput:
    try:
        return await workflow.run(message, ctx)
    finally:
        await workflow.aclose()


def ask(args: argparse.Namespace) -> int:
    """Run one message through the workflow and print the output envelope.

    The linked reference for the thread, if any, is loaded from the
    configured store the same way the chat gateway does it.

    Args:
        args: Parsed arguments (message, chat_id, thread_id, user_id, json)

    Returns:
        Exit code (0 for success)
    """
    config = AppConfig.load(Path(args.project_path).resolve())

    linked = None
    if args.chat_id and args.thread_id:
        linked = JsonLinkedReferenceStore(config.links_file).load(args.chat_id, args.thread_id)

    ctx = ConversationContext(
        chat_id=args.chat_id or "",
        thread_root_id=args.thread_id or "",
        user_id=args.user_id or "",
        linked_reference=linked,
    )

    workflow = create_workflow(config)
    output = asyncio.run(_run_once(workflow, args.message, ctx))

    if args.json:
        console.print_json(json.dumps(output.to_dict(), ensure_ascii=False))
        return 0

    if output.skip:
        console.print(f"[dim]Skipped ({output.intent.value}): left for the conversational agent.[/dim]")
        return 0

    console.print(f"[cyan]{output.intent.value}[/cyan]")
    console.print(output.response)

    if output.needs_confirmation:
        codec = ConfirmationCodec()
        console.print()
        console.print("[bold]Confirm with:[/bold]")
        console.print(f"  {codec.confirm_prefix}:{output.confirmation_data}", soft_wrap=True)
        console.print("[bold]Cancel with:[/bold]")
        console.print(f"  {codec.encode_cancel()}")

    return 0


def show_commands(args: argparse.Namespace) -> int:
    """Print the slash-command table.

    Returns:
        Exit code (0 for success)
    """
    table = Table(title="Commands")
    table.add_column("Aliases", style="cyan")
    table.add_column("Intent", style="dim")
    table.add_column("Description")
    table.add_column("Example", style="dim")

    for spec in COMMAND_SPECS:
        table.add_row(" ".join(spec.aliases), spec.intent.value, spec.description, spec.usage)
    table.add_row(" ".join(HELP_COMMANDS), Intent.HELP.value, "Show usage help", "/help")

    console.print(table)
    return 0


def decode_token(args: argparse.Namespace) -> int:
    """Pretty-print a confirmation token.

    Returns:
        Exit code (0 for a valid token, 1 otherwise)
    """
    token = ConfirmationCodec().decode(args.token)

    if token is None:
        console.print("[yellow]Not a confirmation token.[/yellow]")
        return 1

    console.print(f"[bold]Kind:[/bold] {token.kind.value}")
    console.print(f"[bold]Routes to:[/bold] {token.intent.value}")

    if token.is_corrupt:
        console.print(f"[red]Corrupt:[/red] {token.error}")
        return 1

    if token.pending is not None:
        console.print(f"[bold]Action:[/bold] {token.pending.action_kind}")
        console.print(f"[bold]Version:[/bold] {token.pending.version}")
        console.print_json(json.dumps(token.pending.payload, ensure_ascii=False))

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="chatdesk",
        description="chatdesk: group-chat assistant for issues, history and documents",
    )
    parser.add_argument(
        "--project",
        "-p",
        dest="project_path",
        default=".",
        help="Path to project directory holding .chatdesk/ (default: current directory)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log classification and handler activity",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # =========================================================================
    # ask command
    # =========================================================================
    ask_parser = subparsers.add_parser("ask", help="Run one message through the workflow")
    ask_parser.add_argument("message", help="Message text, exactly as sent in chat")
    ask_parser.add_argument("--chat-id", help="Chat the message was sent in")
    ask_parser.add_argument("--thread-id", help="Root message id of the thread")
    ask_parser.add_argument("--user-id", help="Sender's chat user id")
    ask_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the raw output envelope",
    )
    ask_parser.set_defaults(func=ask)

    # =========================================================================
    # commands command
    # =========================================================================
    commands_parser = subparsers.add_parser("commands", help="Show the slash-command table")
    commands_parser.set_defaults(func=show_commands)

    # =========================================================================
    # decode command
    # =========================================================================
    decode_parser = subparsers.add_parser("decode", help="Inspect a confirmation token")
    decode_parser.add_argument("token", help="Token text, prefix included")
    decode_parser.set_defaults(func=decode_token)

    return parser


def run_cli(args: list[str] | None = None) -> int:
    """Run the CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    logging.basicConfig(
        level=logging.INFO if parsed.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not hasattr(parsed, "func"):
        parser.print_help()
        return 0

    try:
        return parsed.func(parsed)
    except KeyboardInterrupt:
        console.print("\n[dim]Cancelled.[/dim]")
        return 130
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


def main() -> None:
    """Console script entry point."""
    sys.exit(run_cli())


__all__ = [
    "create_parser",
    "run_cli",
    "main",
    "ask",
    "show_commands",
    "decode_token",
]
