# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Ticket flow engine: the per-conversation ticket session state machine.

Receives normalized channel events (chat messages and poll votes), keeps
one TicketSession per (conversation, sender) key and drives parsing,
identity resolution, ticket creation and attachment upload.

Session States:
    NO_SESSION -> AWAITING_FIRST_DATA -> COLLECTING <-> PENDING_SELECTION
    -> READY -> CREATED -> FINALIZED (session removed)

Event Handling:
    - Authorization: the sender must map to a technician in the directory.
      Unauthorized start commands get a rejection naming the sender's
      phone or label; any other unauthorized event is dropped silently and
      tears down an existing session for the key.
    - Start command: always replaces the session for the key. Trailing
      text is parsed as the first message; attached media is buffered.
    - Text: parsed and merged into the draft. A complete draft without a
      ticket triggers ticket creation.
    - Media: buffered until the ticket exists, then uploaded immediately.
    - Pending selection: draft mutation is suspended. Media is still
      buffered; the reply (or poll vote) picks a candidate; an end command
      is refused until the selection is resolved.
    - End command: creates the ticket if needed, flushes attachments,
      reports the ticket id and removes the session.

Ticket Creation:
    Runs only while ``session.ticket_id`` is unset, inside the per-key
    lock, so a ticket is created at most once per session. Failures leave
    the draft intact and the ticket id unset so a later message or end
    command retries.

Concurrency:
    Every event runs under ``SessionStore.lock(key)``: events of one key
    are processed one at a time in arrival order; different keys run
    concurrently.
"""

from __future__ import annotations

import dataclasses
import logging

import httpx

from chatdesk.channel import (
    REACT_ATTACHMENT,
    REACT_DONE,
    REACT_FAILED,
    REACT_STARTED,
    REACT_TICKET,
    REACT_WARNING,
    try_react,
)
from chatdesk.config import ConfigGlpi, ConfigTicketFlow
from chatdesk.directory import CategoryIndex, TechnicianDirectory
from chatdesk.enums import EnumResolutionStatus, EnumRole
from chatdesk.errors import AttachmentUploadError, ChatdeskError
from chatdesk.flow.commands import CommandSpec, build_command_specs, match_command
from chatdesk.flow.content import (
    build_document_upload,
    build_ticket_content,
    build_ticket_title,
)
from chatdesk.flow.session_store import SessionStore
from chatdesk.identity.disambiguation import (
    apply_candidate,
    match_candidate_input,
    match_poll_vote,
    offer,
)
from chatdesk.identity.resolver import IdentityResolver
from chatdesk.models import (
    InboundMessage,
    MediaPayload,
    PendingSelection,
    PollVote,
    TicketCreateRequest,
    TicketSession,
    UserCandidate,
    build_session_key,
)
from chatdesk.parser import parse_ticket_text
from chatdesk.protocols import (
    ProtocolMessageContext,
    ProtocolReplyContext,
    ProtocolTicketingBackend,
)
from chatdesk.text import normalize_phone, normalize_text

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (ChatdeskError, httpx.HTTPError)

MSG_UNEXPECTED_ERROR = "Ocurrio un error inesperado. Intenta nuevamente."
MSG_NO_TICKET_IN_PROGRESS = "No hay un ticket en progreso."
MSG_UNRECOGNIZED = (
    "No pude reconocer el formato. Usa SOLICITANTE, ASIGNADO y PROBLEMA, "
    "o el formato 'solicitante - tecnico => problema'."
)
MSG_MISSING_DATA = (
    "Faltan datos: {fields}. Necesito al menos SOLICITANTE y PROBLEMA."
)
MSG_MEDIA_DOWNLOAD_FAILED = "No pude descargar el archivo adjunto."
MSG_MEDIA_BUFFERED = (
    "Archivo recibido. Envia primero los datos del ticket para poder adjuntarlo."
)
MSG_INCOMPLETE_ON_END = (
    "No hay datos completos para crear el ticket. Envia SOLICITANTE y PROBLEMA."
)
MSG_GLPI_DISABLED = "GLPI no esta configurado; ticket omitido."


class TicketFlowEngine:
    """Orchestrates ticket sessions for every conversation.

    Args:
        backend: Ticketing backend used to create tickets and documents.
        resolver: Identity resolver for requester and assignee values.
        directory: Technician directory used for authorization and for
            inferring the assignee from the sender.
        categories: Category name to GLPI category id table.
        flow_config: Command vocabulary and flow limits.
        glpi_config: Default category id and name.
        store: Session store (a fresh one when omitted).
    """

    def __init__(
        self,
        backend: ProtocolTicketingBackend,
        resolver: IdentityResolver,
        directory: TechnicianDirectory,
        categories: CategoryIndex | None = None,
        flow_config: ConfigTicketFlow | None = None,
        glpi_config: ConfigGlpi | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self._backend = backend
        self._resolver = resolver
        self._directory = directory
        self._categories = categories or CategoryIndex()
        self._flow_config = flow_config or ConfigTicketFlow()
        self._glpi_config = glpi_config or ConfigGlpi()
        self._store = store or SessionStore()
        self._start_commands = build_command_specs(self._flow_config.start_commands)
        self._end_commands = build_command_specs(self._flow_config.end_commands)

    @property
    def store(self) -> SessionStore:
        return self._store

    # =========================================================================
    # Event Entry Points
    # =========================================================================

    async def handle_message(
        self, message: InboundMessage, context: ProtocolMessageContext
    ) -> None:
        """Process one chat message; never raises."""
        key = build_session_key(
            message.chat_id, message.sender_number, message.sender_id
        )
        async with self._store.lock(key):
            try:
                await self._handle_message(key, message, context)
            except Exception:
                logger.exception(
                    "Unhandled error processing message",
                    extra={"session_key": key},
                )
                await self._reply_unexpected_error(context)

    async def handle_poll_vote(
        self, vote: PollVote, context: ProtocolReplyContext
    ) -> None:
        """Process a poll vote; votes for unknown polls are ignored."""
        key = build_session_key(vote.chat_id, vote.sender_number, vote.sender_id)
        async with self._store.lock(key):
            try:
                await self._handle_poll_vote(key, vote, context)
            except Exception:
                logger.exception(
                    "Unhandled error processing poll vote",
                    extra={"session_key": key},
                )
                await self._reply_unexpected_error(context)

    async def _reply_unexpected_error(self, context: ProtocolReplyContext) -> None:
        try:
            await context.reply(MSG_UNEXPECTED_ERROR)
        except Exception as e:
            logger.warning("Could not deliver error reply", extra={"error": str(e)})

    # =========================================================================
    # Message Routing
    # =========================================================================

    async def _handle_message(
        self, key: str, message: InboundMessage, context: ProtocolMessageContext
    ) -> None:
        normalized = normalize_text(message.body)
        start_command = match_command(normalized, self._start_commands)
        end_command = match_command(normalized, self._end_commands)
        session = self._store.get(key)

        technician_phone = self._directory.resolve_sender_phone(
            message.sender_number, message.sender_label
        )
        if technician_phone is None:
            if session is not None:
                self._store.delete(key)
                logger.info(
                    "Session dropped for unauthorized sender",
                    extra={"session_key": key},
                )
            if start_command is not None:
                await context.reply(self._unauthorized_text(message))
            return
        technician_name = self._directory.name_for_phone(technician_phone)

        if start_command is not None:
            await self._start_session(
                key, message, context, start_command, technician_name
            )
            return

        if session is None:
            if end_command is not None:
                await context.reply(MSG_NO_TICKET_IN_PROGRESS)
            return

        if session.pending_selection is not None:
            await self._handle_pending_message(
                key, message, context, session, end_command, technician_name
            )
            return

        if message.has_media:
            await self._handle_media(context, session)
            if end_command is not None:
                await self._finalize(key, context, session, technician_name)
            return

        if end_command is not None:
            await self._finalize(key, context, session, technician_name)
            return

        await self._handle_text(context, session, message.body, technician_name)

    def _unauthorized_text(self, message: InboundMessage) -> str:
        mention = self._directory.resolve_sender_phone(
            message.sender_number, message.sender_label
        ) or normalize_phone(message.sender_number)
        if mention:
            return f"Lo lamento @{mention} tienes que estar en la lista de tecnicos."
        label = message.sender_label.strip() or "@mencion"
        return f"Lo lamento {label} tienes que estar en la lista de tecnicos."

    def _start_help_text(self) -> str:
        end_names = [spec.command for spec in self._end_commands]
        end_hint = " o ".join(dict.fromkeys(end_names[:1] + end_names[-1:]))
        return (
            "Ticket iniciado. Envia los datos (por ejemplo: SOLICITANTE: 73872028, "
            "ASIGNADO: 12345678, PROBLEMA: ...). Luego envia los archivos y "
            f"termina con {end_hint}."
        )

    async def _start_session(
        self,
        key: str,
        message: InboundMessage,
        context: ProtocolMessageContext,
        command: CommandSpec,
        technician_name: str | None,
    ) -> None:
        session = TicketSession(key=key, technician_name=technician_name)
        self._store.put(session)
        logger.info(
            "Ticket session started",
            extra={"session_key": key, "command": command.command},
        )
        await try_react(context, REACT_STARTED)

        body = command.strip(message.body)
        if body:
            await self._handle_text(context, session, body, technician_name)
        else:
            await context.reply(self._start_help_text())
        if message.has_media:
            await self._handle_media(context, session)

    # =========================================================================
    # Text and Media
    # =========================================================================

    async def _handle_text(
        self,
        context: ProtocolReplyContext,
        session: TicketSession,
        body: str,
        technician_name: str | None,
    ) -> None:
        parsed = parse_ticket_text(body)
        if parsed is None:
            if session.awaiting_first_data:
                await try_react(context, REACT_WARNING)
                await context.reply(MSG_UNRECOGNIZED)
            return

        session.merge_draft(parsed)
        draft = session.draft
        if draft is None or not draft.is_complete:
            missing = draft.missing_fields() if draft else ["SOLICITANTE", "PROBLEMA"]
            await try_react(context, REACT_WARNING)
            await context.reply(MSG_MISSING_DATA.format(fields=", ".join(missing)))
            return

        if session.ticket_id is None:
            await self._create_ticket(context, session, technician_name)

    async def _handle_media(
        self, context: ProtocolMessageContext, session: TicketSession
    ) -> None:
        media = await context.get_media()
        if media is None:
            await try_react(context, REACT_FAILED)
            await context.reply(MSG_MEDIA_DOWNLOAD_FAILED)
            return

        if session.ticket_id is None:
            session.attachments.append(media)
            logger.debug(
                "Attachment buffered",
                extra={
                    "session_key": session.key,
                    "buffered": len(session.attachments),
                },
            )
            await try_react(context, REACT_ATTACHMENT)
            if session.awaiting_first_data:
                await context.reply(MSG_MEDIA_BUFFERED)
            return

        if await self._try_upload(session.ticket_id, media):
            session.uploaded_count += 1
            await try_react(context, REACT_ATTACHMENT)
        else:
            await try_react(context, REACT_FAILED)

    # =========================================================================
    # Pending Selection
    # =========================================================================

    async def _handle_pending_message(
        self,
        key: str,
        message: InboundMessage,
        context: ProtocolMessageContext,
        session: TicketSession,
        end_command: CommandSpec | None,
        technician_name: str | None,
    ) -> None:
        selection = session.pending_selection
        assert selection is not None
        label = selection.role.policy.label

        if message.has_media:
            await self._handle_media(context, session)

        if selection.poll_delivered:
            if end_command is not None:
                await context.reply(
                    "Antes de finalizar, responde la encuesta para seleccionar "
                    f"el {label}."
                )
            return

        body = end_command.strip(message.body) if end_command else message.body
        candidate = None
        if body.strip():
            candidate = match_candidate_input(
                body, selection.candidates, selection.labels
            )
            if candidate is None:
                await try_react(context, REACT_WARNING)
                await context.reply(
                    f"No pude identificar al {label}. Responde con el nombre "
                    "completo exacto o el numero de la lista."
                )
        if candidate is None:
            if end_command is not None:
                await context.reply(
                    f"Antes de finalizar, selecciona el {label} indicado."
                )
            return

        await self._complete_selection(context, session, selection, candidate)
        await try_react(context, REACT_DONE)
        draft_complete = session.draft is not None and session.draft.is_complete
        if draft_complete and session.ticket_id is None:
            created = await self._create_ticket(context, session, technician_name)
            if not created:
                return
        if end_command is not None:
            await self._finalize(key, context, session, technician_name)

    async def _handle_poll_vote(
        self, key: str, vote: PollVote, context: ProtocolReplyContext
    ) -> None:
        session = self._store.get(key)
        if session is None or session.pending_selection is None:
            return
        selection = session.pending_selection
        if not selection.poll_id or vote.poll_id != selection.poll_id:
            logger.debug(
                "Ignoring vote for unknown poll",
                extra={"session_key": key, "poll_id": vote.poll_id},
            )
            return

        candidate = match_poll_vote(selection, vote)
        if candidate is None:
            await context.reply(
                f"No pude identificar al {selection.role.policy.label}. "
                "Responde nuevamente la encuesta."
            )
            return

        await self._complete_selection(context, session, selection, candidate)
        if session.draft is not None and session.draft.is_complete:
            technician_name = self._technician_for(session, vote)
            await self._create_ticket(context, session, technician_name)

    def _technician_for(self, session: TicketSession, vote: PollVote) -> str | None:
        """Sender technician name for a vote, preferring the session's own."""
        if session.technician_name:
            return session.technician_name
        technician_phone = self._directory.resolve_sender_phone(
            vote.sender_number, vote.sender_label
        )
        return self._directory.name_for_phone(technician_phone)

    async def _complete_selection(
        self,
        context: ProtocolReplyContext,
        session: TicketSession,
        selection: PendingSelection,
        candidate: UserCandidate,
    ) -> None:
        apply_candidate(session, selection.role, candidate)
        session.pending_selection = None
        logger.info(
            "Candidate selected",
            extra={
                "session_key": session.key,
                "role": str(selection.role),
                "user_id": candidate.id,
            },
        )
        await context.reply(
            f"{selection.role.policy.title} seleccionado: {candidate.display_name}."
        )

    # =========================================================================
    # Identity Resolution
    # =========================================================================

    async def _resolve_role(
        self,
        context: ProtocolReplyContext,
        session: TicketSession,
        role: EnumRole,
        value: str,
    ) -> str | None:
        """Resolved user id for *role*, or None after replying why not.

        An ambiguous result opens a PendingSelection for the session.
        """
        cached = session.resolved_id(role)
        if cached:
            return cached

        try:
            result = await self._resolver.resolve(role, value, allow_name_lookup=True)
        except _BACKEND_ERRORS as e:
            logger.warning(
                "Identity lookup failed",
                extra={"session_key": session.key, "role": str(role), "error": str(e)},
            )
            await try_react(context, REACT_FAILED)
            await context.reply(f"Error al buscar {role.policy.label}: {e}")
            return None

        if result.status is EnumResolutionStatus.RESOLVED and result.candidate:
            if value.strip():
                apply_candidate(session, role, result.candidate)
            else:
                session.set_resolved_id(role, result.candidate.id)
            return result.candidate.id

        if result.status is EnumResolutionStatus.AMBIGUOUS:
            if session.pending_selection is None:
                session.pending_selection = await offer(
                    context,
                    role,
                    list(result.candidates),
                    self._flow_config.max_selection_candidates,
                )
            return None

        if result.status is EnumResolutionStatus.NOT_FOUND:
            await try_react(context, REACT_FAILED)
        if result.message:
            await context.reply(result.message)
        return None

    # =========================================================================
    # Ticket Creation and Attachments
    # =========================================================================

    def _build_request(
        self, session: TicketSession, requester_id: str, assignee_id: str | None
    ) -> TicketCreateRequest:
        draft = session.draft
        assert draft is not None
        category_name = (
            draft.category or self._glpi_config.default_category_name or None
        )
        content_draft = dataclasses.replace(draft, category=category_name)
        return TicketCreateRequest(
            title=build_ticket_title(
                draft.problem or "", self._flow_config.title_max_length
            ),
            html_content=build_ticket_content(content_draft),
            category_id=self._categories.category_id_for(
                category_name, self._glpi_config.default_category_id
            ),
            requester_id=requester_id,
            assignee_id=assignee_id,
        )

    async def _create_ticket(
        self,
        context: ProtocolReplyContext,
        session: TicketSession,
        technician_name: str | None,
    ) -> bool:
        """Create the session's ticket once; True when a ticket exists."""
        if session.ticket_id:
            return True
        draft = session.draft
        if draft is None or not draft.is_complete:
            return False
        if not self._backend.is_enabled():
            await try_react(context, REACT_FAILED)
            await context.reply(MSG_GLPI_DISABLED)
            return False

        requester_id = await self._resolve_role(
            context, session, EnumRole.REQUESTER, draft.requester_lookup_value
        )
        if requester_id is None:
            return False

        assignee_id = None
        assignee_value = draft.assignee or technician_name
        if assignee_value:
            assignee_id = await self._resolve_role(
                context, session, EnumRole.ASSIGNEE, assignee_value
            )
            if assignee_id is None:
                return False

        request = self._build_request(session, requester_id, assignee_id)
        try:
            ticket_id = await self._backend.create_ticket(request)
        except _BACKEND_ERRORS as e:
            logger.warning(
                "Ticket creation failed",
                extra={"session_key": session.key, "error": str(e)},
            )
            await try_react(context, REACT_FAILED)
            await context.reply(f"Error al crear ticket: {e}")
            return False

        session.ticket_id = ticket_id
        logger.info(
            "Ticket created",
            extra={
                "session_key": session.key,
                "ticket_id": ticket_id,
                "category_id": request.category_id,
            },
        )
        await context.reply(f"Ticket creado. ID: {ticket_id}")
        await try_react(context, REACT_TICKET)
        await self._flush_attachments(session)
        return True

    async def _upload_attachment(self, ticket_id: str, media: MediaPayload) -> None:
        document = build_document_upload(media)
        try:
            document_id = await self._backend.create_document(document)
            await self._backend.link_document_to_ticket(document_id, ticket_id)
        except _BACKEND_ERRORS as e:
            raise AttachmentUploadError(document.filename, ticket_id, str(e)) from e
        logger.info(
            "Attachment uploaded",
            extra={
                "ticket_id": ticket_id,
                "document_id": document_id,
                "attachment_name": document.filename,
                "size_bytes": media.size_bytes,
            },
        )

    async def _try_upload(self, ticket_id: str, media: MediaPayload) -> bool:
        try:
            await self._upload_attachment(ticket_id, media)
        except AttachmentUploadError as e:
            logger.warning(
                str(e),
                extra={"ticket_id": ticket_id, "attachment_name": e.filename},
            )
            return False
        return True

    async def _flush_attachments(self, session: TicketSession) -> None:
        """Upload buffered attachments in receipt order."""
        if not session.ticket_id or not session.attachments:
            return
        pending, session.attachments = session.attachments, []
        for media in pending:
            if await self._try_upload(session.ticket_id, media):
                session.uploaded_count += 1

    async def _finalize(
        self,
        key: str,
        context: ProtocolReplyContext,
        session: TicketSession,
        technician_name: str | None,
    ) -> None:
        draft = session.draft
        if draft is None or not draft.is_complete:
            await try_react(context, REACT_WARNING)
            await context.reply(MSG_INCOMPLETE_ON_END)
            self._store.delete(key)
            logger.info("Session discarded without ticket", extra={"session_key": key})
            return

        if session.ticket_id is None:
            created = await self._create_ticket(context, session, technician_name)
            if not created:
                return

        await self._flush_attachments(session)
        summary = f"Ticket finalizado. ID: {session.ticket_id}"
        if session.uploaded_count > 0:
            summary += f" (adjuntos: {session.uploaded_count})"
        await context.reply(summary)
        await try_react(context, REACT_DONE)
        self._store.delete(key)
        logger.info(
            "Ticket session finalized",
            extra={
                "session_key": key,
                "ticket_id": session.ticket_id,
                "attachments": session.uploaded_count,
            },
        )


__all__ = ["TicketFlowEngine"]
