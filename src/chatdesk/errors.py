# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Exception types for ticket intake.

This module defines the hierarchy of failures that cross component
boundaries:

- ChatdeskError: Base exception for all ticket intake errors
- GlpiNotConfiguredError: Backend disabled or missing credentials (not retried)
- InvalidFieldMappingError: Backend rejected a configured search field id
- GlpiRequestError: HTTP or network failure talking to the backend
- AttachmentUploadError: A single attachment could not be stored

"Not found" and "ambiguous" lookups are ordinary resolution results, not
exceptions; see chatdesk.identity.resolver.ResolutionResult.
"""

from __future__ import annotations

__all__ = [
    "AttachmentUploadError",
    "ChatdeskError",
    "GlpiNotConfiguredError",
    "GlpiRequestError",
    "InvalidFieldMappingError",
]


class ChatdeskError(Exception):
    """Base exception for ticket intake errors."""

    pass


class GlpiNotConfiguredError(ChatdeskError):
    """Raised when a backend operation is attempted while GLPI is disabled.

    GLPI is enabled only when a base URL and credentials are configured.
    """

    def __init__(self, message: str | None = None) -> None:
        if message is None:
            message = "GLPI no esta configurado."
        super().__init__(message)


class InvalidFieldMappingError(ChatdeskError):
    """Raised when GLPI rejects a configured search option id.

    Attributes:
        field_id: The search option id that was rejected.
    """

    def __init__(self, field_id: str, message: str | None = None) -> None:
        self.field_id = field_id
        if message is None:
            message = (
                f"GLPI_DNI_FIELD_IDS contiene un campo invalido ({field_id}). "
                "Actualiza el ID del campo DNI."
            )
        super().__init__(message)


class GlpiRequestError(ChatdeskError):
    """Raised when a GLPI request fails after the re-authentication retry.

    Attributes:
        method: HTTP method of the failed request.
        path: API path relative to the apirest.php root.
        status_code: HTTP status, or None for transport failures.
        body: Response body text (may be empty).
    """

    def __init__(
        self,
        method: str,
        path: str,
        status_code: int | None,
        body: str = "",
    ) -> None:
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body
        status = status_code if status_code is not None else "sin respuesta"
        super().__init__(
            f"GLPI {method} {path} fallo ({status}): {body or 'sin cuerpo'}"
        )


class AttachmentUploadError(ChatdeskError):
    """Raised when an attachment cannot be stored or linked to a ticket.

    Attributes:
        filename: Name of the attachment that failed.
        ticket_id: Ticket the attachment was meant for.
    """

    def __init__(self, filename: str, ticket_id: str, reason: str) -> None:
        self.filename = filename
        self.ticket_id = ticket_id
        super().__init__(
            f"No se pudo adjuntar {filename} al ticket {ticket_id}: {reason}"
        )
