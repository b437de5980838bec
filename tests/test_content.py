# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for ticket title, HTML content and attachment naming."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from chatdesk.flow.content import (
    TITLE_PREFIX,
    build_document_upload,
    build_ticket_content,
    build_ticket_title,
    derive_filename,
)
from chatdesk.models import MediaPayload, TicketDraft

pytestmark = pytest.mark.unit

NEW_YEAR = datetime(2025, 1, 1, tzinfo=UTC)


class TestTitle:
    def test_prefixed_problem(self) -> None:
        assert build_ticket_title("no imprime") == "Solicitud o incidente: no imprime"

    def test_truncated_to_max_length(self) -> None:
        title = build_ticket_title("x" * 500, max_length=60)

        assert len(title) == 60
        assert title.startswith(TITLE_PREFIX)


class TestContent:
    """Fixed labelled HTML block."""

    def test_all_rows_in_order(self) -> None:
        draft = TicketDraft(
            requester="Juan Perez",
            problem="no imprime",
            category="Redes",
            national_id="73872028",
            phone="987654321",
        )

        content = build_ticket_content(draft)

        labels = [
            "Solicitud o incidente",
            "Sistema o bien",
            "Nombre",
            "N° DNI",
            "Celular",
            "Correo",
            "Cargo",
            "Dependencia",
            "Piso",
        ]
        positions = [content.index(f"{label}:</span>") for label in labels]
        assert positions == sorted(positions)
        assert content.count("<p>") == 9
        assert "color: navy;" in content
        assert "73872028" in content

    def test_values_are_escaped(self) -> None:
        draft = TicketDraft(requester="73872028", problem="<script>alert(1)</script>")

        content = build_ticket_content(draft)

        assert "<script>" not in content
        assert "&lt;script&gt;" in content

    def test_national_id_taken_from_requester(self) -> None:
        content = build_ticket_content(
            TicketDraft(requester="73872028", problem="x")
        )

        assert "N° DNI:</span> 73872028</p>" in content
        assert "Nombre:</span> </p>" in content

    def test_name_falls_back_to_requester(self) -> None:
        content = build_ticket_content(
            TicketDraft(requester="Juan Perez", problem="x")
        )

        assert "Nombre:</span> Juan Perez</p>" in content


class TestAttachmentNames:
    """Filenames for uploaded media."""

    def test_original_filename_kept(self) -> None:
        media = MediaPayload(data=b"x", mime_type="image/png", filename="foto.png")

        assert derive_filename(media, NEW_YEAR) == "foto.png"

    @pytest.mark.parametrize(
        ("mime_type", "extension"),
        [
            ("image/jpeg", "jpg"),
            ("audio/ogg; codecs=opus", "ogg"),
            ("application/x-unknown", "bin"),
        ],
    )
    def test_generated_from_mime_type(self, mime_type: str, extension: str) -> None:
        media = MediaPayload(data=b"x", mime_type=mime_type)

        assert derive_filename(media, NEW_YEAR) == f"whatsapp-1735689600000.{extension}"

    def test_document_upload(self) -> None:
        media = MediaPayload(data=b"hello", mime_type="text/plain")

        document = build_document_upload(media, NEW_YEAR)

        assert document.filename == "whatsapp-1735689600000.txt"
        assert document.name == document.filename
        assert document.base64_data == "aGVsbG8="
