# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Ticket title, HTML content and attachment naming."""

from __future__ import annotations

import html
from datetime import UTC, datetime

from chatdesk.models import DocumentUpload, MediaPayload, TicketDraft
from chatdesk.text import extract_national_id

TITLE_PREFIX = "Solicitud o incidente: "
DEFAULT_TITLE_MAX_LENGTH = 250

_LABEL_STYLE = "font-weight: bold; color: navy;"

_MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
    "text/plain": "txt",
    "audio/ogg": "ogg",
    "video/mp4": "mp4",
}


def build_ticket_title(
    problem: str, max_length: int = DEFAULT_TITLE_MAX_LENGTH
) -> str:
    title = f"{TITLE_PREFIX}{problem}".strip()
    return title[:max_length]


def _paragraph(label: str, value: str) -> str:
    return (
        f'<p><span style="{_LABEL_STYLE}">{label}:</span> '
        f"{html.escape(value)}</p>"
    )


def build_ticket_content(draft: TicketDraft) -> str:
    """Fixed HTML block describing the draft; every value is escaped.

    The national ID shown is the draft's or one embedded in the requester.
    The name shown is the draft's or, when the requester is not a national
    ID, the requester itself.
    """
    requester = draft.requester or ""
    national_id = draft.national_id or extract_national_id(requester) or ""
    name = draft.name or (requester if not national_id else "")
    rows = (
        ("Solicitud o incidente", draft.problem or ""),
        ("Sistema o bien", draft.category or ""),
        ("Nombre", name),
        ("N° DNI", national_id),
        ("Celular", draft.phone or ""),
        ("Correo", draft.email or ""),
        ("Cargo", draft.job_title or ""),
        ("Dependencia", draft.department or ""),
        ("Piso", draft.floor or ""),
    )
    return "\n".join(_paragraph(label, value) for label, value in rows)


def derive_filename(media: MediaPayload, now: datetime | None = None) -> str:
    """Media filename, or ``whatsapp-<epoch ms>.<ext>`` from the MIME type."""
    if media.filename:
        return media.filename
    moment = now or datetime.now(UTC)
    stamp = int(moment.timestamp() * 1000)
    mime_type = media.mime_type.split(";", 1)[0].strip().lower()
    extension = _MIME_EXTENSIONS.get(mime_type, "bin")
    return f"whatsapp-{stamp}.{extension}"


def build_document_upload(
    media: MediaPayload, now: datetime | None = None
) -> DocumentUpload:
    filename = derive_filename(media, now)
    return DocumentUpload(
        name=filename,
        filename=filename,
        mime_type=media.mime_type,
        data=media.data,
    )


__all__ = [
    "TITLE_PREFIX",
    "build_document_upload",
    "build_ticket_content",
    "build_ticket_title",
    "derive_filename",
]
