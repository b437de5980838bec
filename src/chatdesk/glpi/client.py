# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Async GLPI REST API client.

Implements ProtocolTicketingBackend on top of ``httpx.AsyncClient``.

Session Handling:
    - The GLPI session token is process-wide and created lazily by the
      first request (``initSession``).
    - Initialization is single-flight: concurrent first callers wait on the
      same asyncio.Lock and reuse the token produced by whoever got there
      first instead of logging in again.
    - A request rejected for an invalid or expired session (HTTP 401 or an
      ERROR_SESSION_TOKEN_INVALID / ERROR_SESSION_EXPIRED body) drops the
      token and is retried exactly once after re-authenticating. A second
      failure raises GlpiRequestError.

Field Detection:
    National-ID, login and entity search option ids are taken from
    configuration when set and otherwise detected once from
    ``listSearchOptions/User``. Detection results are cached for the life
    of the client and shared by every session.

Example:
    >>> config = ConfigGlpi(
    ...     base_url="https://glpi.example.org", user="bot", password="x"
    ... )
    >>> async with GlpiClient(config) as glpi:  # doctest: +SKIP
    ...     users = await glpi.search_text_users("73872028")
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from chatdesk.config import ConfigGlpi
from chatdesk.enums import EnumSearchType
from chatdesk.errors import (
    GlpiNotConfiguredError,
    GlpiRequestError,
    InvalidFieldMappingError,
)
from chatdesk.glpi.search import (
    BASE_DISPLAY_FIELDS,
    SearchCriterion,
    build_search_params,
    detect_entity_field,
    detect_login_field,
    detect_national_id_fields,
    is_invalid_field_error,
    parse_user_candidates,
    scope_criteria,
)
from chatdesk.models import DocumentUpload, TicketCreateRequest, UserCandidate

logger = logging.getLogger(__name__)

_INVALID_SESSION_MARKERS = ("ERROR_SESSION_TOKEN_INVALID", "ERROR_SESSION_EXPIRED")


def _coerce_id(value: str) -> int | str:
    return int(value) if value.isdigit() else value


class GlpiClient:
    """GLPI REST client with lazy, shared session authentication.

    Args:
        config: GLPI connection and search settings.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        config: ConfigGlpi,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._enabled = config.enabled
        self._base_url = config.base_url or ""
        self._http = httpx.AsyncClient(
            timeout=config.request_timeout_seconds,
            transport=transport,
        )
        self._session_token: str | None = None
        self._session_lock = asyncio.Lock()
        self._options_lock = asyncio.Lock()
        self._search_options: dict[str, Any] | None = None
        self._configured_dni_fields = config.dni_field_id_list
        self._detected_dni_fields: list[str] | None = None
        self._detected_login_field: str | None = config.login_field_id.strip() or None
        self._detected_entity_field: str | None = config.entity_field_id.strip() or None
        self._entity_field_detected = bool(self._detected_entity_field)

        if not self._enabled:
            logger.warning(
                "GLPI disabled: GLPI_BASE_URL and credentials are required",
            )

    async def __aenter__(self) -> GlpiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def is_enabled(self) -> bool:
        return self._enabled

    # =========================================================================
    # Session Management
    # =========================================================================

    def _auth_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._config.app_token:
            headers["App-Token"] = self._config.app_token
        return headers

    async def _init_session(self) -> str:
        headers = self._auth_headers()
        auth: tuple[str, str] | None = None
        if self._config.user_token:
            headers["Authorization"] = f"user_token {self._config.user_token}"
        else:
            auth = (self._config.user, self._config.password)
        try:
            response = await self._http.get(
                f"{self._base_url}/initSession",
                params={"get_full_session": "true"},
                headers=headers,
                auth=auth,
            )
        except httpx.HTTPError as e:
            raise GlpiRequestError("GET", "initSession", None, str(e)) from e

        if not response.is_success:
            raise GlpiRequestError(
                "GET", "initSession", response.status_code, response.text
            )
        token = _parse_body(response)
        if not isinstance(token, dict) or not token.get("session_token"):
            raise GlpiRequestError(
                "GET",
                "initSession",
                response.status_code,
                "GLPI initSession no devolvio session_token.",
            )
        logger.info("GLPI session initialized")
        return str(token["session_token"])

    async def _ensure_session(self) -> str:
        if self._session_token:
            return self._session_token
        async with self._session_lock:
            # Another caller may have logged in while we waited
            if self._session_token is None:
                self._session_token = await self._init_session()
            return self._session_token

    def _invalidate_session(self, token: str) -> None:
        if self._session_token == token:
            self._session_token = None

    async def aclose(self) -> None:
        """Kill the GLPI session (best-effort) and close the HTTP client."""
        token = self._session_token
        if token and self._enabled:
            try:
                await self._http.get(
                    f"{self._base_url}/killSession",
                    headers={**self._auth_headers(), "Session-Token": token},
                )
            except httpx.HTTPError as e:
                logger.debug("GLPI killSession failed", extra={"error": str(e)})
        self._session_token = None
        await self._http.aclose()

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | dict[str, str] | None = None,
        json_body: Any = None,
        data: dict[str, str] | None = None,
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> Any:
        """Send an authenticated request, retrying once on session expiry.

        Returns:
            Parsed JSON body, or the raw text when the body is not JSON.

        Raises:
            GlpiNotConfiguredError: If GLPI is disabled.
            GlpiRequestError: On transport errors or non-2xx responses.
        """
        if not self._enabled:
            raise GlpiNotConfiguredError()

        for attempt in range(2):
            token = await self._ensure_session()
            headers = {**self._auth_headers(), "Session-Token": token}
            try:
                response = await self._http.request(
                    method,
                    f"{self._base_url}/{path}",
                    params=params,
                    json=json_body,
                    data=data,
                    files=files,
                    headers=headers,
                )
            except httpx.HTTPError as e:
                raise GlpiRequestError(method, path, None, str(e)) from e

            if response.is_success:
                return _parse_body(response)

            text = response.text
            invalid_session = response.status_code == 401 or any(
                marker in text for marker in _INVALID_SESSION_MARKERS
            )
            if invalid_session and attempt == 0:
                logger.info(
                    "GLPI session expired, re-authenticating",
                    extra={"path": path, "status_code": response.status_code},
                )
                self._invalidate_session(token)
                continue
            raise GlpiRequestError(method, path, response.status_code, text)

        raise AssertionError("unreachable")

    # =========================================================================
    # Search Options
    # =========================================================================

    async def user_search_options(self) -> dict[str, Any]:
        """Cached ``listSearchOptions/User`` metadata."""
        if self._search_options is not None:
            return self._search_options
        async with self._options_lock:
            if self._search_options is None:
                response = await self._request("GET", "listSearchOptions/User")
                self._search_options = response if isinstance(response, dict) else {}
            return self._search_options

    async def national_id_field_ids(self) -> list[str]:
        if self._configured_dni_fields:
            return list(self._configured_dni_fields)
        if self._detected_dni_fields is None:
            options = await self.user_search_options()
            self._detected_dni_fields = detect_national_id_fields(options)
            logger.info(
                "Detected national-ID search fields",
                extra={"field_ids": self._detected_dni_fields},
            )
        return list(self._detected_dni_fields)

    async def login_field_id(self) -> str:
        if self._detected_login_field is None:
            options = await self.user_search_options()
            self._detected_login_field = detect_login_field(options)
        return self._detected_login_field

    async def entity_field_id(self) -> str | None:
        if not self._entity_field_detected:
            options = await self.user_search_options()
            self._detected_entity_field = detect_entity_field(options)
            self._entity_field_detected = True
            if self._detected_entity_field is None and self._config.user_entity_id:
                logger.warning(
                    "No entity search field found; user searches are not scoped",
                )
        return self._detected_entity_field

    # =========================================================================
    # User Search
    # =========================================================================

    async def _display_fields(self) -> tuple[list[str], str | None]:
        national_id_fields = (
            self._configured_dni_fields or self._detected_dni_fields or []
        )
        floor_field = self._config.floor_field_id.strip() or None
        fields = [*BASE_DISPLAY_FIELDS, *national_id_fields]
        if floor_field:
            fields.append(floor_field)
        return fields, floor_field

    async def search_users(
        self,
        criteria: list[SearchCriterion],
        range_: str = "0-50",
        search_type: EnumSearchType | None = None,
        entity_id: str | None = None,
    ) -> list[UserCandidate]:
        """Run a ``search/User`` query.

        Args:
            criteria: Search criteria; entries without a link are ANDed
                when an entity scope is added.
            range_: GLPI result range, e.g. ``"0-50"``.
            search_type: Default operator for criteria without their own.
            entity_id: Entity to scope to; ignored when the backend exposes
                no entity search field.

        Raises:
            InvalidFieldMappingError: If GLPI rejects a criterion field id.
            GlpiRequestError: On any other request failure.
        """
        effective_type = search_type or EnumSearchType.CONTAINS
        effective_criteria = criteria
        if entity_id:
            entity_field = await self.entity_field_id()
            if entity_field:
                effective_criteria = scope_criteria(criteria, entity_field, entity_id)

        display_fields, floor_field = await self._display_fields()
        params = build_search_params(
            effective_criteria, range_, effective_type, display_fields
        )
        try:
            response = await self._request("GET", "search/User", params=params)
        except GlpiRequestError as e:
            if is_invalid_field_error(e.body):
                field_id = criteria[0].field if criteria else ""
                raise InvalidFieldMappingError(field_id) from e
            raise
        national_id_fields = (
            self._configured_dni_fields or self._detected_dni_fields or []
        )
        return parse_user_candidates(response, national_id_fields, floor_field)

    async def search_text_users(self, value: str) -> list[UserCandidate]:
        """Generic free-text user lookup (``User?searchText=``)."""
        response = await self._request(
            "GET", "User", params={"searchText": value, "range": "0-10"}
        )
        return parse_user_candidates(response)

    async def list_users(self, start: int, limit: int) -> list[UserCandidate]:
        """One page of the plain ``User`` listing, for client-side filtering."""
        end = start + max(limit, 1) - 1
        response = await self._request(
            "GET",
            "User",
            params={
                "range": f"{start}-{end}",
                "expand_dropdowns": "true",
                "is_deleted": "0",
            },
        )
        return parse_user_candidates(response)

    # =========================================================================
    # Tickets and Documents
    # =========================================================================

    async def create_ticket(self, request: TicketCreateRequest) -> str:
        """Create a ticket and return its id.

        Raises:
            GlpiNotConfiguredError: If GLPI is disabled.
            GlpiRequestError: If the request fails or returns no id.
        """
        payload: dict[str, Any] = {
            "name": request.title,
            "content": request.html_content,
            "itilcategories_id": request.category_id,
            "_users_id_requester": _coerce_id(request.requester_id),
        }
        if request.assignee_id:
            payload["_users_id_assign"] = _coerce_id(request.assignee_id)

        response = await self._request("POST", "Ticket", json_body={"input": payload})
        ticket_id = None
        if isinstance(response, dict):
            ticket_id = response.get("id") or response.get("message")
        if not ticket_id:
            raise GlpiRequestError(
                "POST", "Ticket", None, "GLPI no devolvio ID de ticket."
            )
        return str(ticket_id)

    async def create_document(self, document: DocumentUpload) -> str:
        """Store a document, preferring multipart and falling back to base64."""
        manifest = {
            "input": {
                "name": document.name,
                "filename": document.filename,
                "mime": document.mime_type,
            }
        }
        try:
            response = await self._request(
                "POST",
                "Document",
                data={"uploadManifest": json.dumps(manifest)},
                files={
                    "filename": (document.filename, document.data, document.mime_type)
                },
            )
        except GlpiRequestError as e:
            logger.warning(
                "Multipart upload failed, retrying as base64",
                extra={"document_name": document.filename, "error": str(e)},
            )
            body = {"input": {**manifest["input"], "base64": document.base64_data}}
            response = await self._request("POST", "Document", json_body=body)

        document_id = response.get("id") if isinstance(response, dict) else None
        if not document_id:
            raise GlpiRequestError(
                "POST", "Document", None, "GLPI no devolvio ID de documento."
            )
        return str(document_id)

    async def link_document_to_ticket(self, document_id: str, ticket_id: str) -> None:
        await self._request(
            "POST",
            "Document_Item",
            json_body={
                "input": {
                    "documents_id": _coerce_id(document_id),
                    "items_id": _coerce_id(ticket_id),
                    "itemtype": "Ticket",
                }
            },
        )


def _parse_body(response: httpx.Response) -> Any:
    text = response.text
    if not text:
        return ""
    try:
        return response.json()
    except ValueError:
        return text


__all__ = ["GlpiClient"]
