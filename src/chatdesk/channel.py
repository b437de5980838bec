# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Best-effort wrappers around the optional messaging channel operations.

Reactions and polls are cosmetic or have a text fallback, so a channel
failure there is logged and never interrupts the ticket flow.
"""

from __future__ import annotations

import logging

from chatdesk.protocols import ProtocolReplyContext

logger = logging.getLogger(__name__)

# Reaction vocabulary
REACT_STARTED = "\U0001f7e2"  # green circle
REACT_WARNING = "\u26a0\ufe0f"  # warning sign
REACT_FAILED = "\u274c"  # cross mark
REACT_ATTACHMENT = "\U0001f4ce"  # paperclip
REACT_DONE = "\u2705"  # check mark
REACT_TICKET = "\U0001f3ab"  # ticket
REACT_SEARCHING = "\U0001f50e"  # magnifier


async def try_react(context: ProtocolReplyContext, emoji: str) -> None:
    try:
        await context.react(emoji)
    except Exception as e:
        logger.warning("Reaction failed", extra={"emoji": emoji, "error": str(e)})


async def try_send_poll(
    context: ProtocolReplyContext, title: str, options: list[str]
) -> str | None:
    """Send a single-choice poll, returning None when it was not delivered."""
    try:
        return await context.send_poll(title, options, allow_multiple=False)
    except Exception as e:
        logger.warning(
            "Poll delivery failed, using numbered text fallback",
            extra={"options": len(options), "error": str(e)},
        )
        return None


__all__ = [
    "REACT_ATTACHMENT",
    "REACT_DONE",
    "REACT_FAILED",
    "REACT_SEARCHING",
    "REACT_STARTED",
    "REACT_TICKET",
    "REACT_WARNING",
    "try_react",
    "try_send_poll",
]
