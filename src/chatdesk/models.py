# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Data model for ticket intake.

Two kinds of models live here:

    - Inbound/outbound records (InboundMessage, PollVote, MediaPayload,
      UserCandidate, TicketCreateRequest, DocumentUpload) are frozen pydantic
      models. They cross the boundary with the messaging channel or the
      ticketing backend and are validated on construction.
    - Working state (TicketDraft, PendingSelection, TicketSession) are plain
      dataclasses mutated by the ticket flow engine for a single session.

Draft Mutation Rules:
    - A later parse only fills fields that are still empty.
    - Requester and assignee are the exception: a different non-empty value
      replaces the old one and invalidates the cached backend id for that
      role (see TicketSession.merge_draft).
    - Fields back-filled from a resolved UserCandidate never overwrite what
      the user typed. They are recorded on the session, replaced by later
      typed values and cleared when the requester changes.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from chatdesk.enums import EnumRole, EnumSessionState
from chatdesk.text import extract_national_id, normalize_text

# =============================================================================
# Channel Events
# =============================================================================


class InboundMessage(BaseModel):
    """A chat message delivered by the messaging channel."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    body: str = ""
    chat_id: str
    sender_id: str | None = None
    sender_number: str | None = None
    sender_label: str = ""
    has_media: bool = False
    media_type: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PollVote(BaseModel):
    """A vote on a poll previously sent through the messaging channel.

    ``selected_indexes`` are 0-based option positions; ``selected_labels``
    carry the option texts when the channel reports them instead.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    chat_id: str
    sender_id: str | None = None
    sender_number: str | None = None
    sender_label: str = ""
    poll_id: str | None = None
    selected_indexes: list[int] = Field(default_factory=list)
    selected_labels: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


def build_session_key(
    chat_id: str, sender_number: str | None, sender_id: str | None
) -> str:
    """Session key: conversation id plus the most stable sender identifier."""
    sender = sender_number or sender_id or "unknown"
    return f"{chat_id}:{sender}"


_BASE64_PREFIX = "base64,"
_WHITESPACE_RE = re.compile(r"\s+")


def _stripped(value: str | None) -> str | None:
    return (value or "").strip() or None


class MediaPayload(BaseModel):
    """A downloaded attachment."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "application/octet-stream"
    filename: str | None = None

    @classmethod
    def from_base64(
        cls, encoded: str, mime_type: str, filename: str | None = None
    ) -> MediaPayload:
        """Build a payload from base64 text as chat libraries deliver it.

        Accepts ``data:<mime>;base64,`` prefixes, embedded whitespace, the
        URL-safe alphabet and missing padding.

        Raises:
            ValueError: If the text is not decodable base64.
        """
        text = encoded.strip()
        prefix_index = text.find(_BASE64_PREFIX)
        if prefix_index != -1:
            text = text[prefix_index + len(_BASE64_PREFIX) :]
        text = _WHITESPACE_RE.sub("", text)
        if "-" in text or "_" in text:
            text = text.replace("-", "+").replace("_", "/")
        remainder = len(text) % 4
        if remainder == 2:
            text += "=="
        elif remainder == 3:
            text += "="
        try:
            data = base64.b64decode(text, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 media payload: {e}") from e
        return cls(data=data, mime_type=mime_type, filename=filename)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


# =============================================================================
# Backend Records
# =============================================================================


class UserCandidate(BaseModel):
    """A GLPI user record returned by a search, not yet confirmed.

    Only ``id``, ``login``, ``firstname`` and ``realname`` identify the
    user. The remaining fields are optional contact data used to enrich a
    sparse draft once the candidate is chosen.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    login: str = ""
    firstname: str = ""
    realname: str = ""
    email: str | None = None
    phone: str | None = None
    mobile: str | None = None
    job_title: str | None = None
    location: str | None = None
    entity: str | None = None
    floor: str | None = None
    national_id: str | None = None

    @property
    def full_name(self) -> str:
        parts = (self.firstname.strip(), self.realname.strip())
        return " ".join(part for part in parts if part)

    @property
    def reversed_name(self) -> str:
        parts = (self.realname.strip(), self.firstname.strip())
        return " ".join(part for part in parts if part)

    @property
    def display_name(self) -> str:
        """Full name, falling back to the login and then the id."""
        return self.full_name or self.login.strip() or self.id

    @property
    def label_with_login(self) -> str:
        base = self.display_name
        login = self.login.strip()
        if login and login != base:
            return f"{base} (login: {login})"
        return base

    def match_keys(self) -> set[str]:
        """Normalized strings a user may type to pick this candidate."""
        keys = (self.full_name, self.reversed_name, self.login.strip())
        return {normalize_text(key) for key in keys if key}

    def searchable_text(self) -> str:
        return normalize_text(f"{self.firstname} {self.realname} {self.login}")


class TicketCreateRequest(BaseModel):
    """Fields written to the backend when a ticket is created."""

    model_config = ConfigDict(frozen=True)

    title: str
    html_content: str
    category_id: int
    requester_id: str
    assignee_id: str | None = None


class DocumentUpload(BaseModel):
    """A document to store in the backend and link to a ticket."""

    model_config = ConfigDict(frozen=True)

    name: str
    filename: str
    mime_type: str
    data: bytes

    @property
    def base64_data(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


# =============================================================================
# Working State
# =============================================================================


@dataclass
class TicketDraft:
    """Accumulated, possibly incomplete ticket fields."""

    requester: str | None = None
    assignee: str | None = None
    problem: str | None = None
    category: str | None = None
    name: str | None = None
    national_id: str | None = None
    phone: str | None = None
    email: str | None = None
    job_title: str | None = None
    department: str | None = None
    floor: str | None = None
    raw_text: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.requester and self.problem)

    @property
    def has_any_field(self) -> bool:
        return any(getattr(self, name) for name in DRAFT_FIELDS)

    @property
    def requester_lookup_value(self) -> str:
        """Value used to resolve the requester.

        An explicit national ID wins over a requester name; the display
        name is the last fallback.
        """
        explicit_id = extract_national_id(self.national_id)
        if explicit_id and not extract_national_id(self.requester):
            return explicit_id
        return (self.requester or self.name or "").strip()

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.requester:
            missing.append("SOLICITANTE")
        if not self.problem:
            missing.append("PROBLEMA")
        return missing

    def fill_from_candidate(self, candidate: UserCandidate) -> list[str]:
        """Back-fill empty contact fields from a resolved requester.

        Returns the names of the fields that were filled.
        """
        values = {
            "name": candidate.display_name,
            "national_id": extract_national_id(candidate.national_id)
            or extract_national_id(candidate.login),
            "email": _stripped(candidate.email),
            "phone": _stripped(candidate.mobile) or _stripped(candidate.phone),
            "job_title": _stripped(candidate.job_title),
            "department": _stripped(candidate.location) or _stripped(candidate.entity),
            "floor": _stripped(candidate.floor),
        }
        filled = []
        for name, value in values.items():
            if value and not getattr(self, name):
                setattr(self, name, value)
                filled.append(name)
        return filled


DRAFT_FIELDS: tuple[str, ...] = tuple(
    f.name for f in fields(TicketDraft) if f.name != "raw_text"
)


@dataclass
class PendingSelection:
    """An open disambiguation for one role.

    Attributes:
        role: Role being disambiguated.
        candidates: Bounded candidate list in the order offered.
        labels: Option labels in the same order as candidates.
        poll_delivered: Whether the channel accepted a poll.
        poll_id: Channel identifier of the poll, if any.
    """

    role: EnumRole
    candidates: list[UserCandidate]
    labels: list[str]
    poll_delivered: bool = False
    poll_id: str | None = None


@dataclass
class TicketSession:
    """Per (conversation, sender) ticket session.

    ``ticket_id`` being set marks the ticket as created. Resolved ids cache
    identity resolution per role for the lifetime of the session.
    ``backfilled_fields`` names the draft fields copied from the resolved
    requester; ``technician_name`` is the directory name of the sender who
    started the session.
    """

    key: str
    draft: TicketDraft | None = None
    ticket_id: str | None = None
    attachments: list[MediaPayload] = field(default_factory=list)
    uploaded_count: int = 0
    resolved_requester_id: str | None = None
    resolved_assignee_id: str | None = None
    backfilled_fields: set[str] = field(default_factory=set)
    technician_name: str | None = None
    awaiting_first_data: bool = True
    pending_selection: PendingSelection | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def state(self) -> EnumSessionState:
        if self.pending_selection is not None:
            return EnumSessionState.PENDING_SELECTION
        if self.ticket_id:
            return EnumSessionState.CREATED
        if self.draft is not None and self.draft.is_complete:
            return EnumSessionState.READY
        if self.awaiting_first_data:
            return EnumSessionState.AWAITING_FIRST_DATA
        return EnumSessionState.COLLECTING

    def resolved_id(self, role: EnumRole) -> str | None:
        if role is EnumRole.REQUESTER:
            return self.resolved_requester_id
        return self.resolved_assignee_id

    def set_resolved_id(self, role: EnumRole, user_id: str | None) -> None:
        if role is EnumRole.REQUESTER:
            self.resolved_requester_id = user_id
        else:
            self.resolved_assignee_id = user_id

    def merge_draft(self, parsed: TicketDraft) -> None:
        """Merge a freshly parsed draft into the session draft.

        Empty fields are filled; set fields are kept unless they were
        back-filled from a resolved user, in which case typed input wins.
        A changed requester or assignee replaces the old value and drops
        its cached id; a changed requester also clears every back-filled
        field.
        """
        if self.draft is None:
            self.draft = TicketDraft()
        draft = self.draft

        if parsed.requester and parsed.requester != draft.requester:
            draft.requester = parsed.requester
            self.resolved_requester_id = None
            for name in self.backfilled_fields:
                setattr(draft, name, None)
            self.backfilled_fields.clear()
        if parsed.assignee and parsed.assignee != draft.assignee:
            draft.assignee = parsed.assignee
            self.resolved_assignee_id = None

        for name in DRAFT_FIELDS:
            if name in ("requester", "assignee"):
                continue
            value = getattr(parsed, name)
            if not value:
                continue
            current = getattr(draft, name)
            if not current or name in self.backfilled_fields:
                if name == "national_id" and current and current != value:
                    self.resolved_requester_id = None
                setattr(draft, name, value)
                self.backfilled_fields.discard(name)

        if parsed.raw_text:
            draft.raw_text = "\n".join(
                text for text in (draft.raw_text, parsed.raw_text) if text
            )
        self.awaiting_first_data = False


__all__ = [
    "DRAFT_FIELDS",
    "DocumentUpload",
    "InboundMessage",
    "MediaPayload",
    "PendingSelection",
    "PollVote",
    "TicketCreateRequest",
    "TicketDraft",
    "TicketSession",
    "UserCandidate",
    "build_session_key",
]
