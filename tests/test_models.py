# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for ticket intake models and draft mutation rules."""

from __future__ import annotations

import pytest
from conftest import JUAN
from pydantic import ValidationError

from chatdesk.enums import EnumRole, EnumSessionState
from chatdesk.models import (
    MediaPayload,
    PendingSelection,
    TicketDraft,
    TicketSession,
    UserCandidate,
    build_session_key,
)

pytestmark = pytest.mark.unit


class TestMediaPayload:
    """Base64 decoding as chat libraries deliver it."""

    def test_data_url_prefix_and_missing_padding(self) -> None:
        media = MediaPayload.from_base64("data:image/png;base64,aGVsbG8", "image/png")

        assert media.data == b"hello"
        assert media.size_bytes == 5

    def test_url_safe_alphabet_and_whitespace(self) -> None:
        media = MediaPayload.from_base64("_-8\n", "application/octet-stream")

        assert media.data == b"\xff\xef"

    def test_invalid_base64_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid base64"):
            MediaPayload.from_base64("***", "image/png")

    def test_payload_is_frozen(self) -> None:
        media = MediaPayload(data=b"x")

        with pytest.raises(ValidationError):
            media.filename = "other.bin"


class TestUserCandidate:
    """Names and match keys."""

    def test_names(self) -> None:
        assert JUAN.full_name == "Juan Carlos Perez Lopez"
        assert JUAN.reversed_name == "Perez Lopez Juan Carlos"
        assert JUAN.label_with_login == "Juan Carlos Perez Lopez (login: jperez)"

    def test_display_name_falls_back_to_login_then_id(self) -> None:
        assert UserCandidate(id="5", login="svc").display_name == "svc"
        assert UserCandidate(id="5").display_name == "5"

    def test_match_keys_are_normalized(self) -> None:
        assert JUAN.match_keys() == {
            "JUAN CARLOS PEREZ LOPEZ",
            "PEREZ LOPEZ JUAN CARLOS",
            "JPEREZ",
        }


class TestTicketDraft:
    """Completeness and requester lookup value."""

    def test_complete_needs_requester_and_problem(self) -> None:
        assert not TicketDraft(requester="Juan Perez").is_complete
        assert TicketDraft(requester="Juan Perez", problem="sin red").is_complete

    def test_explicit_national_id_wins_over_requester_name(self) -> None:
        draft = TicketDraft(requester="Juan Perez", national_id="DNI 73872028")

        assert draft.requester_lookup_value == "73872028"

    def test_requester_national_id_is_kept(self) -> None:
        draft = TicketDraft(requester="73872028", national_id="11112222")

        assert draft.requester_lookup_value == "73872028"

    def test_fill_from_candidate_keeps_typed_values(self) -> None:
        draft = TicketDraft(requester="Juan Perez", problem="x", email="mine@x.org")

        filled = draft.fill_from_candidate(JUAN)

        assert set(filled) == {"name", "national_id", "phone", "department"}
        assert draft.requester == "Juan Perez"
        assert draft.email == "mine@x.org"
        assert draft.name == "Juan Carlos Perez Lopez"
        assert draft.national_id == "73872028"
        assert draft.phone == "987654321"
        assert draft.department == "Sede Central"


class TestTicketSession:
    """Merge rules and derived state."""

    def test_merge_fills_only_empty_fields(self) -> None:
        session = TicketSession(key="k")
        session.merge_draft(TicketDraft(problem="primero", raw_text="a"))
        session.merge_draft(TicketDraft(problem="segundo", phone="999", raw_text="b"))

        assert session.draft is not None
        assert session.draft.problem == "primero"
        assert session.draft.phone == "999"
        assert session.draft.raw_text == "a\nb"
        assert not session.awaiting_first_data

    def test_changed_requester_drops_cached_id(self) -> None:
        session = TicketSession(key="k", draft=TicketDraft(requester="Juan Perez"))
        session.set_resolved_id(EnumRole.REQUESTER, "11")

        session.merge_draft(TicketDraft(requester="Juan Perez"))
        assert session.resolved_id(EnumRole.REQUESTER) == "11"

        session.merge_draft(TicketDraft(requester="Maria Perez"))
        assert session.draft is not None
        assert session.draft.requester == "Maria Perez"
        assert session.resolved_id(EnumRole.REQUESTER) is None

    def test_changed_requester_clears_backfilled_fields(self) -> None:
        session = TicketSession(
            key="k", draft=TicketDraft(requester="Juan Perez", email="mine@x.org")
        )
        session.set_resolved_id(EnumRole.REQUESTER, JUAN.id)
        assert session.draft is not None
        session.backfilled_fields.update(session.draft.fill_from_candidate(JUAN))

        session.merge_draft(TicketDraft(requester="Maria Perez Diaz"))

        assert session.draft.requester_lookup_value == "Maria Perez Diaz"
        assert session.draft.national_id is None
        assert session.draft.name is None
        assert session.draft.department is None
        assert session.draft.email == "mine@x.org"
        assert session.backfilled_fields == set()

    def test_typed_value_replaces_backfilled_one(self) -> None:
        session = TicketSession(key="k", draft=TicketDraft(requester="Juan Perez"))
        session.set_resolved_id(EnumRole.REQUESTER, JUAN.id)
        assert session.draft is not None
        session.backfilled_fields.update(session.draft.fill_from_candidate(JUAN))

        session.merge_draft(TicketDraft(national_id="12345678", phone="911"))

        assert session.draft.national_id == "12345678"
        assert session.draft.phone == "911"
        assert session.resolved_id(EnumRole.REQUESTER) is None
        assert "national_id" not in session.backfilled_fields

    def test_changed_assignee_drops_cached_id(self) -> None:
        session = TicketSession(key="k", draft=TicketDraft(assignee="Ana Torres"))
        session.set_resolved_id(EnumRole.ASSIGNEE, "21")

        session.merge_draft(TicketDraft(assignee="Luis Garcia"))

        assert session.resolved_id(EnumRole.ASSIGNEE) is None

    def test_state_transitions(self) -> None:
        session = TicketSession(key="k")
        assert session.state is EnumSessionState.AWAITING_FIRST_DATA

        session.merge_draft(TicketDraft(requester="73872028"))
        assert session.state is EnumSessionState.COLLECTING

        session.merge_draft(TicketDraft(problem="sin red"))
        assert session.state is EnumSessionState.READY

        session.pending_selection = PendingSelection(
            role=EnumRole.ASSIGNEE, candidates=[JUAN], labels=["Juan"]
        )
        assert session.state is EnumSessionState.PENDING_SELECTION

        session.pending_selection = None
        session.ticket_id = "100"
        assert session.state is EnumSessionState.CREATED


def test_session_key_prefers_sender_number() -> None:
    assert build_session_key("chat", "519", "id-1") == "chat:519"
    assert build_session_key("chat", None, "id-1") == "chat:id-1"
    assert build_session_key("chat", None, None) == "chat:unknown"
