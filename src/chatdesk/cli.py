# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""chatdesk command line interface.

Usage:
    chatdesk parse TEXT [--json]
    chatdesk lookup VALUE [--role requester|assignee]
    chatdesk console --sender-number N [--chat-id C] [--sender-label L] [--no-polls]

Settings come from the environment or ``.env`` (GLPI_* and CHATDESK_*
variables, see chatdesk.config).
"""

from __future__ import annotations

import asyncio
import dataclasses
import json as json_module
import logging

import click
import httpx
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chatdesk import __version__
from chatdesk.app import build_engine
from chatdesk.config import ConfigGlpi, ConfigTicketFlow
from chatdesk.console import ConsoleChannel
from chatdesk.enums import EnumResolutionStatus, EnumRole
from chatdesk.errors import ChatdeskError
from chatdesk.glpi.client import GlpiClient
from chatdesk.identity.resolver import IdentityResolver, ResolutionResult
from chatdesk.models import DRAFT_FIELDS
from chatdesk.parser import TicketParser

# =============================================================================
# Console Setup
# =============================================================================

console = Console()
error_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# =============================================================================
# CLI Group
# =============================================================================


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit.")
@click.option(
    "--log-level",
    default=None,
    help="Log level (defaults to CHATDESK_LOG_LEVEL).",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, log_level: str | None) -> None:
    """Chat-driven ticket intake for GLPI.

    Examples:

        # Check how a message is parsed
        chatdesk parse "Juan Perez - Mesa Ayuda => no tengo internet"

        # Resolve a requester against GLPI
        chatdesk lookup 73872028

        # Talk to the ticket flow from the terminal
        chatdesk console --sender-number 51987654321
    """
    if version:
        click.echo(f"chatdesk {__version__}")
        ctx.exit(0)

    configure_logging(log_level or ConfigTicketFlow().log_level)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# =============================================================================
# Parse Command
# =============================================================================


@cli.command("parse")
@click.argument("text")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cmd_parse(ctx: click.Context, text: str, as_json: bool) -> None:
    """Parse TEXT as a ticket message and show the draft.

    Use a literal \\n in TEXT for multi-line templates.
    """
    parser = TicketParser(default_category=ConfigGlpi().default_category_name or None)
    draft = parser.parse(text.replace("\\n", "\n"))
    if draft is None:
        error_console.print("[red]Formato no reconocido.[/red]")
        ctx.exit(1)

    if as_json:
        output = dataclasses.asdict(draft)
        output["is_complete"] = draft.is_complete
        click.echo(json_module.dumps(output, indent=2, ensure_ascii=False))
        return

    table = Table(title="Ticket Draft")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for name in DRAFT_FIELDS:
        value = getattr(draft, name)
        table.add_row(name, escape(value) if value else "[dim]-[/dim]")
    complete = "[green]yes[/green]" if draft.is_complete else "[yellow]no[/yellow]"
    table.add_row("complete", complete)
    console.print(table)


# =============================================================================
# Lookup Command
# =============================================================================


def _print_resolution(result: ResolutionResult) -> None:
    status_style = {
        EnumResolutionStatus.RESOLVED: "green",
        EnumResolutionStatus.AMBIGUOUS: "yellow",
    }.get(result.status, "red")
    console.print(f"Status: [{status_style}]{result.status}[/{status_style}]")
    if result.message:
        console.print(escape(result.message))

    candidates = (
        [result.candidate] if result.candidate is not None else list(result.candidates)
    )
    if not candidates:
        return
    table = Table(title=f"Candidates ({len(candidates)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Login")
    table.add_column("DNI")
    table.add_column("Email")
    for candidate in candidates:
        table.add_row(
            candidate.id,
            escape(candidate.full_name),
            escape(candidate.login),
            candidate.national_id or "",
            candidate.email or "",
        )
    console.print(table)


async def _lookup(config: ConfigGlpi, role: EnumRole, value: str) -> ResolutionResult:
    async with GlpiClient(config) as client:
        resolver = IdentityResolver(client, config)
        return await resolver.resolve(role, value)


@cli.command("lookup")
@click.argument("value")
@click.option(
    "--role",
    type=click.Choice([role.value for role in EnumRole]),
    default=EnumRole.REQUESTER.value,
    show_default=True,
    help="Role whose lookup rules apply.",
)
def cmd_lookup(value: str, role: str) -> None:
    """Resolve VALUE (national ID or name) to GLPI users."""
    config = ConfigGlpi()
    if not config.enabled:
        raise click.ClickException(
            "GLPI no esta configurado. Define GLPI_BASE_URL y credenciales."
        )
    try:
        result = asyncio.run(_lookup(config, EnumRole(role), value))
    except (ChatdeskError, httpx.HTTPError) as e:
        raise click.ClickException(str(e)) from e
    _print_resolution(result)


# =============================================================================
# Console Command
# =============================================================================


async def _run_console(
    glpi_config: ConfigGlpi,
    flow_config: ConfigTicketFlow,
    sender_number: str,
    chat_id: str,
    sender_label: str,
    polls_enabled: bool,
) -> None:
    async with GlpiClient(glpi_config) as client:
        engine = build_engine(client, glpi_config, flow_config)
        channel = ConsoleChannel(
            engine,
            sender_number=sender_number,
            chat_id=chat_id,
            sender_label=sender_label,
            polls_enabled=polls_enabled,
            console=console,
        )
        await channel.run()


@cli.command("console")
@click.option("--sender-number", required=True, help="Phone number to speak as.")
@click.option("--chat-id", default="console", show_default=True, help="Chat id.")
@click.option("--sender-label", default="", help="Sender display name.")
@click.option(
    "--no-polls",
    is_flag=True,
    help="Refuse polls to exercise the numbered text fallback.",
)
def cmd_console(
    sender_number: str, chat_id: str, sender_label: str, no_polls: bool
) -> None:
    """Run an interactive ticket conversation in the terminal."""
    glpi_config = ConfigGlpi()
    flow_config = ConfigTicketFlow()
    if not glpi_config.enabled:
        error_console.print(
            "[yellow]GLPI no esta configurado; los tickets no se crearan.[/yellow]"
        )
    asyncio.run(
        _run_console(
            glpi_config,
            flow_config,
            sender_number,
            chat_id,
            sender_label,
            polls_enabled=not no_polls,
        )
    )


def main() -> None:
    cli()


__all__ = ["cli", "main"]
