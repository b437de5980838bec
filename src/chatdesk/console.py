# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Interactive terminal messaging channel.

Drives a real TicketFlowEngine from stdin so the ticket conversation can
be exercised without a chat transport. Every line is sent as a chat
message from the configured sender (a literal ``\\n`` becomes a line
break, for multi-line templates), except for these commands:

    /file PATH [caption]   attach a local file (caption is the body)
    /vote N                vote option N (1-based) on the last poll
    /quit                  leave the console
"""

from __future__ import annotations

import asyncio
import itertools
import mimetypes
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from chatdesk.flow.engine import TicketFlowEngine
from chatdesk.models import InboundMessage, MediaPayload, PollVote


class ConsoleContext:
    """Reply context for one console event."""

    def __init__(self, channel: ConsoleChannel, media: MediaPayload | None = None):
        self._channel = channel
        self._media = media

    async def reply(self, text: str) -> None:
        self._channel.console.print(f"[bold green]bot[/bold green] {escape(text)}")

    async def react(self, emoji: str) -> None:
        self._channel.console.print(f"[dim]reaccion {emoji}[/dim]")

    async def send_poll(
        self, title: str, options: list[str], allow_multiple: bool = False
    ) -> str | None:
        return self._channel.open_poll(title, options)

    async def get_media(self) -> MediaPayload | None:
        return self._media


class ConsoleChannel:
    """Line-oriented channel bound to a single sender.

    Args:
        engine: Engine receiving the events.
        sender_number: Phone number the console user speaks as.
        chat_id: Conversation id used for the session key.
        sender_label: Display name reported with each message.
        polls_enabled: When False, polls are refused so the numbered text
            fallback is used.
        console: Rich console for output.
    """

    def __init__(
        self,
        engine: TicketFlowEngine,
        sender_number: str,
        chat_id: str = "console",
        sender_label: str = "",
        polls_enabled: bool = True,
        console: Console | None = None,
    ) -> None:
        self._engine = engine
        self._sender_number = sender_number
        self._chat_id = chat_id
        self._sender_label = sender_label
        self._polls_enabled = polls_enabled
        self.console = console or Console()
        self._poll_ids = itertools.count(1)
        self._last_poll: tuple[str, list[str]] | None = None

    def open_poll(self, title: str, options: list[str]) -> str | None:
        if not self._polls_enabled:
            return None
        poll_id = f"poll-{next(self._poll_ids)}"
        self._last_poll = (poll_id, list(options))
        self.console.print(f"[bold cyan]encuesta[/bold cyan] {escape(title)}")
        for index, option in enumerate(options, start=1):
            self.console.print(f"  {index}. {escape(option)}")
        self.console.print("[dim]Vota con /vote N[/dim]")
        return poll_id

    async def send_text(self, body: str) -> None:
        message = InboundMessage(
            body=body,
            chat_id=self._chat_id,
            sender_number=self._sender_number,
            sender_label=self._sender_label,
        )
        await self._engine.handle_message(message, ConsoleContext(self))

    async def send_file(self, path: Path, caption: str = "") -> None:
        try:
            data = path.read_bytes()
        except OSError as e:
            self.console.print(f"[red]No se pudo leer {escape(str(path))}: {e}[/red]")
            return
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        media = MediaPayload(data=data, mime_type=mime_type, filename=path.name)
        message = InboundMessage(
            body=caption,
            chat_id=self._chat_id,
            sender_number=self._sender_number,
            sender_label=self._sender_label,
            has_media=True,
            media_type=mime_type,
        )
        await self._engine.handle_message(message, ConsoleContext(self, media))

    async def vote(self, option: int) -> None:
        if self._last_poll is None:
            self.console.print("[yellow]No hay encuesta abierta.[/yellow]")
            return
        poll_id, options = self._last_poll
        index = option - 1
        labels = [options[index]] if 0 <= index < len(options) else []
        vote = PollVote(
            chat_id=self._chat_id,
            sender_number=self._sender_number,
            sender_label=self._sender_label,
            poll_id=poll_id,
            selected_indexes=[index],
            selected_labels=labels,
        )
        await self._engine.handle_poll_vote(vote, ConsoleContext(self))

    async def handle_line(self, line: str) -> bool:
        """Dispatch one input line; False means the user asked to quit."""
        stripped = line.strip()
        if stripped == "/quit":
            return False
        if stripped.startswith("/file "):
            raw_path, _, caption = stripped[len("/file ") :].strip().partition(" ")
            await self.send_file(Path(raw_path).expanduser(), caption.strip())
        elif stripped.startswith("/vote "):
            value = stripped[len("/vote ") :].strip()
            if value.isdigit():
                await self.vote(int(value))
            else:
                self.console.print("[yellow]Uso: /vote N[/yellow]")
        elif stripped:
            await self.send_text(line.replace("\\n", "\n"))
        return True

    async def run(self) -> None:
        self.console.print(
            "[bold]chatdesk[/bold] consola. Comandos: /file RUTA, /vote N, /quit"
        )
        while True:
            try:
                line = await asyncio.to_thread(self.console.input, "> ")
            except EOFError:
                break
            if not await self.handle_line(line):
                break


__all__ = ["ConsoleChannel", "ConsoleContext"]
