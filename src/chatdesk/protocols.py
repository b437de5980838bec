# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Protocol definitions for the collaborators of the ticket flow.

The ticket flow engine never talks to a chat library or to GLPI directly.
It depends on these structural interfaces so that the WhatsApp bridge, the
local console channel and the test fakes are interchangeable.

Collaborators:
    - ProtocolReplyContext: outbound side of a conversation (reply, react,
      poll). Handed to the engine with every inbound event.
    - ProtocolMessageContext: reply context that can also download the
      media attached to the current message.
    - ProtocolTicketingBackend: user search plus ticket and document
      creation. Implemented by chatdesk.glpi.client.GlpiClient.

Best-Effort Operations:
    ``react`` and ``send_poll`` may fail or be unsupported. ``send_poll``
    returning None means "polls are not available", which is a valid
    outcome and not an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chatdesk.enums import EnumSearchType
    from chatdesk.glpi.search import SearchCriterion
    from chatdesk.models import (
        DocumentUpload,
        MediaPayload,
        TicketCreateRequest,
        UserCandidate,
    )

# =============================================================================
# Messaging Channel
# =============================================================================


@runtime_checkable
class ProtocolReplyContext(Protocol):
    """Outbound operations available while handling one inbound event."""

    async def reply(self, text: str) -> None:
        """Send a text reply to the conversation."""
        ...

    async def react(self, emoji: str) -> None:
        """React to the inbound message (best-effort)."""
        ...

    async def send_poll(
        self, title: str, options: list[str], allow_multiple: bool = False
    ) -> str | None:
        """Send a multiple-choice poll.

        Returns:
            The poll identifier, or None when polls are not supported.
        """
        ...


@runtime_checkable
class ProtocolMessageContext(ProtocolReplyContext, Protocol):
    """Reply context for a chat message that may carry media."""

    async def get_media(self) -> MediaPayload | None:
        """Download the media of the inbound message, None on failure."""
        ...


# =============================================================================
# Ticketing Backend
# =============================================================================


@runtime_checkable
class ProtocolTicketingBackend(Protocol):
    """Ticketing backend operations used by resolution and ticket creation.

    Every coroutine is a potentially failing network operation. Field id
    accessors return configured overrides or values auto-detected from the
    backend's search option metadata; detection results are cached.
    """

    def is_enabled(self) -> bool: ...

    async def search_users(
        self,
        criteria: list[SearchCriterion],
        range_: str = "0-50",
        search_type: EnumSearchType | None = None,
        entity_id: str | None = None,
    ) -> list[UserCandidate]: ...

    async def search_text_users(self, value: str) -> list[UserCandidate]: ...

    async def list_users(self, start: int, limit: int) -> list[UserCandidate]: ...

    async def national_id_field_ids(self) -> list[str]: ...

    async def login_field_id(self) -> str: ...

    async def entity_field_id(self) -> str | None: ...

    async def create_ticket(self, request: TicketCreateRequest) -> str: ...

    async def create_document(self, document: DocumentUpload) -> str: ...

    async def link_document_to_ticket(
        self, document_id: str, ticket_id: str
    ) -> None: ...


__all__ = [
    "ProtocolMessageContext",
    "ProtocolReplyContext",
    "ProtocolTicketingBackend",
]
