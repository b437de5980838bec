# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Shared fixtures for chatdesk tests.

Provides:
- Settings isolation (no GLPI_/CHATDESK_ variables, no stray .env)
- A small GLPI user directory
- FakeBackend: in-memory ProtocolTicketingBackend with field-aware search
- FakeContext: records replies, reactions and polls
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from chatdesk.config import ConfigGlpi, ConfigTicketFlow
from chatdesk.directory import CategoryEntry, CategoryIndex, TechnicianDirectory
from chatdesk.enums import EnumSearchType
from chatdesk.errors import GlpiRequestError
from chatdesk.flow.engine import TicketFlowEngine
from chatdesk.glpi.search import SearchCriterion
from chatdesk.identity.resolver import IdentityResolver
from chatdesk.models import (
    DocumentUpload,
    InboundMessage,
    MediaPayload,
    TicketCreateRequest,
    UserCandidate,
)
from chatdesk.text import normalize_text

DNI_FIELD = "76670"
ENTITY_FIELD = "80"
TECHNICIAN_PHONE = "51987654321"
CHAT_ID = "chat-1"

# Search option id -> UserCandidate attribute
_FIELD_ATTRS = {
    "1": "login",
    "9": "firstname",
    "34": "realname",
    ENTITY_FIELD: "entity",
    DNI_FIELD: "national_id",
}


# =============================================================================
# Settings Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep developer environment variables and .env files out of tests."""
    for name in list(os.environ):
        if name.upper().startswith(("GLPI_", "CHATDESK_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def make_glpi_config(**overrides: object) -> ConfigGlpi:
    values: dict[str, object] = {
        "base_url": "https://glpi.test",
        "user": "bot",
        "password": "secret",
    }
    values.update(overrides)
    return ConfigGlpi(_env_file=None, **values)


@pytest.fixture
def glpi_config() -> ConfigGlpi:
    return make_glpi_config()


@pytest.fixture
def flow_config() -> ConfigTicketFlow:
    return ConfigTicketFlow(_env_file=None)


# =============================================================================
# User Directory
# =============================================================================

JUAN = UserCandidate(
    id="11",
    login="jperez",
    firstname="Juan Carlos",
    realname="Perez Lopez",
    national_id="73872028",
    email="jperez@example.org",
    mobile="987654321",
    location="Sede Central",
    entity="26",
)
MARIA = UserCandidate(
    id="12", login="mperez", firstname="Maria", realname="Perez Diaz", entity="26"
)
ANA = UserCandidate(
    id="21", login="atorres", firstname="Ana", realname="Torres", entity="26"
)
LUIS_1 = UserCandidate(
    id="31", login="lgarcia", firstname="Luis", realname="Garcia", entity="26"
)
LUIS_2 = UserCandidate(
    id="32", login="lgarcia2", firstname="Luis", realname="Garcia", entity="30"
)
ROSA = UserCandidate(id="41", login="12345678", firstname="Rosa", realname="Quispe")

ALL_USERS = [JUAN, MARIA, ANA, LUIS_1, LUIS_2, ROSA]


# =============================================================================
# Fakes
# =============================================================================


class FakeBackend:
    """In-memory ticketing backend.

    ``search_users`` evaluates criteria against user attributes the way
    GLPI does (equals / contains on normalized text, all criteria ANDed).
    Set the ``*_error`` attributes to make an operation fail.
    """

    def __init__(self, users: list[UserCandidate] | None = None) -> None:
        self.users = list(ALL_USERS if users is None else users)
        self.enabled = True
        self.national_id_fields = [DNI_FIELD]
        self.entity_field: str | None = ENTITY_FIELD
        self.search_calls: list[
            tuple[list[SearchCriterion], EnumSearchType | None, str | None]
        ] = []
        self.text_searches: list[str] = []
        self.list_calls: list[tuple[int, int]] = []
        self.tickets: list[TicketCreateRequest] = []
        self.documents: list[DocumentUpload] = []
        self.links: list[tuple[str, str]] = []
        self.search_error: Exception | None = None
        self.text_search_error: Exception | None = None
        self.create_ticket_error: Exception | None = None
        self.failing_documents: set[str] = set()
        self._next_ticket_id = 100

    def is_enabled(self) -> bool:
        return self.enabled

    @staticmethod
    def _matches(
        user: UserCandidate, criterion: SearchCriterion, default: EnumSearchType
    ) -> bool:
        attr = _FIELD_ATTRS.get(criterion.field)
        if attr is None:
            return False
        value = normalize_text(getattr(user, attr) or "")
        needle = normalize_text(criterion.value)
        if (criterion.search_type or default) is EnumSearchType.EQUALS:
            return value == needle
        return needle in value

    async def search_users(
        self,
        criteria: list[SearchCriterion],
        range_: str = "0-50",
        search_type: EnumSearchType | None = None,
        entity_id: str | None = None,
    ) -> list[UserCandidate]:
        self.search_calls.append((list(criteria), search_type, entity_id))
        if self.search_error is not None:
            raise self.search_error
        default = search_type or EnumSearchType.CONTAINS
        effective = list(criteria)
        if entity_id and self.entity_field:
            effective.insert(
                0,
                SearchCriterion(
                    field=self.entity_field,
                    value=entity_id,
                    search_type=EnumSearchType.EQUALS,
                ),
            )
        return [
            user
            for user in self.users
            if all(self._matches(user, item, default) for item in effective)
        ]

    async def search_text_users(self, value: str) -> list[UserCandidate]:
        self.text_searches.append(value)
        if self.text_search_error is not None:
            raise self.text_search_error
        needle = normalize_text(value)
        return [
            user
            for user in self.users
            if needle in normalize_text(f"{user.searchable_text()} {user.national_id}")
        ]

    async def list_users(self, start: int, limit: int) -> list[UserCandidate]:
        self.list_calls.append((start, limit))
        return self.users[start : start + limit]

    async def national_id_field_ids(self) -> list[str]:
        return list(self.national_id_fields)

    async def login_field_id(self) -> str:
        return "1"

    async def entity_field_id(self) -> str | None:
        return self.entity_field

    async def create_ticket(self, request: TicketCreateRequest) -> str:
        if self.create_ticket_error is not None:
            raise self.create_ticket_error
        self.tickets.append(request)
        ticket_id = str(self._next_ticket_id)
        self._next_ticket_id += 1
        return ticket_id

    async def create_document(self, document: DocumentUpload) -> str:
        if document.filename in self.failing_documents:
            raise GlpiRequestError("POST", "Document", 500, "upload rejected")
        self.documents.append(document)
        return f"doc-{len(self.documents)}"

    async def link_document_to_ticket(self, document_id: str, ticket_id: str) -> None:
        self.links.append((document_id, ticket_id))


class FakeContext:
    """Reply context recording everything the engine sends back."""

    def __init__(
        self, media: MediaPayload | None = None, poll_id: str | None = "poll-1"
    ) -> None:
        self.media = media
        self.poll_id = poll_id
        self.poll_error: Exception | None = None
        self.react_error: Exception | None = None
        self.replies: list[str] = []
        self.reactions: list[str] = []
        self.polls: list[tuple[str, list[str]]] = []

    async def reply(self, text: str) -> None:
        self.replies.append(text)

    async def react(self, emoji: str) -> None:
        if self.react_error is not None:
            raise self.react_error
        self.reactions.append(emoji)

    async def send_poll(
        self, title: str, options: list[str], allow_multiple: bool = False
    ) -> str | None:
        if self.poll_error is not None:
            raise self.poll_error
        self.polls.append((title, list(options)))
        return self.poll_id

    async def get_media(self) -> MediaPayload | None:
        return self.media


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def text_only_context() -> FakeContext:
    """Context whose channel cannot deliver polls."""
    return FakeContext(poll_id=None)


@pytest.fixture
def resolver(backend: FakeBackend, glpi_config: ConfigGlpi) -> IdentityResolver:
    return IdentityResolver(backend, glpi_config)


@pytest.fixture
def directory() -> TechnicianDirectory:
    return TechnicianDirectory.from_mapping({TECHNICIAN_PHONE: "Ana Torres"})


@pytest.fixture
def categories() -> CategoryIndex:
    return CategoryIndex(
        [
            CategoryEntry(category="Redes", glpi_category_id=7),
            CategoryEntry(category="Mesa de Ayuda", glpi_category_id=12),
        ]
    )


@pytest.fixture
def engine(
    backend: FakeBackend,
    resolver: IdentityResolver,
    directory: TechnicianDirectory,
    categories: CategoryIndex,
    flow_config: ConfigTicketFlow,
    glpi_config: ConfigGlpi,
) -> TicketFlowEngine:
    return TicketFlowEngine(
        backend=backend,
        resolver=resolver,
        directory=directory,
        categories=categories,
        flow_config=flow_config,
        glpi_config=glpi_config,
    )


def make_message(
    body: str = "",
    sender_number: str | None = TECHNICIAN_PHONE,
    sender_label: str = "Ana Torres",
    has_media: bool = False,
) -> InboundMessage:
    return InboundMessage(
        body=body,
        chat_id=CHAT_ID,
        sender_number=sender_number,
        sender_label=sender_label,
        has_media=has_media,
        media_type="image/png" if has_media else None,
    )


def make_media(filename: str, data: bytes = b"\x89PNG") -> MediaPayload:
    return MediaPayload(data=data, mime_type="image/png", filename=filename)
