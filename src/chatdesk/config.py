# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Configuration for GLPI access and the ticket flow.

Settings are loaded from environment variables or a ``.env`` file:

    # GLPI (required to create tickets; GLPI_ prefix)
    GLPI_BASE_URL=https://glpi.example.org        # /apirest.php is appended
    GLPI_USER=bot
    GLPI_PASSWORD=secret
    GLPI_APP_TOKEN=...                            # optional
    GLPI_DNI_FIELD_IDS=76670,76671                # optional, auto-detected
    GLPI_USER_ENTITY_ID=26                        # optional search scope

    # Ticket flow (CHATDESK_ prefix)
    CHATDESK_TECHNICIAN_BY_PHONE='{"51987654321": "Ana Torres"}'
    CHATDESK_TECHNICIAN_BY_PHONE_PATH=numbers-map.json
    CHATDESK_CATEGORIES_PATH=categories.json

GLPI is disabled (not an error) when the base URL or the credentials are
missing; ticket creation then replies that GLPI is not configured.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"^\d+$")


def normalize_glpi_base_url(value: str | None) -> str | None:
    """Strip trailing slashes and make sure the URL ends in /apirest.php."""
    if not value:
        return None
    base = value.strip().rstrip("/")
    if not base:
        return None
    if not base.endswith("/apirest.php"):
        base = f"{base}/apirest.php"
    return base


class ConfigGlpi(BaseSettings):
    """GLPI REST API access and user search tuning.

    Environment variables use the GLPI_ prefix.
    Example: GLPI_BASE_URL=https://glpi.example.org
    """

    model_config = SettingsConfigDict(
        env_prefix="GLPI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Connection and authentication
    base_url: str | None = Field(
        default=None,
        description="GLPI base URL; /apirest.php is appended when missing",
    )
    user: str = Field(default="", description="GLPI login for basic auth")
    password: str = Field(default="", description="GLPI password for basic auth")
    user_token: str = Field(
        default="",
        description="Personal API token, used instead of user/password when set",
    )
    app_token: str = Field(default="", description="Optional GLPI App-Token header")
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Timeout for a single GLPI HTTP request",
    )

    # Identity resolution
    default_requester: str = Field(
        default="",
        description="Name of the requester used when a ticket names none",
    )
    dni_field_ids: str = Field(
        default="",
        description="Comma separated search option ids holding the national ID",
    )
    login_field_id: str = Field(
        default="",
        description="Search option id of the login field (auto-detected if empty)",
    )
    entity_field_id: str = Field(
        default="",
        description="Search option id of the user entity (auto-detected if empty)",
    )
    user_entity_id: str = Field(
        default="",
        description="Entity id used to scope user searches; empty disables scoping",
    )
    floor_field_id: str = Field(
        default="",
        description="Optional search option id whose value fills the floor field",
    )
    search_range: str = Field(
        default="0-50",
        pattern=r"^\d+-\d+$",
        description="Result range requested from search/User",
    )
    scan_page_size: int = Field(
        default=100,
        ge=10,
        le=1000,
        description="Page size for the full user scan fallback",
    )
    max_scan_users: int = Field(
        default=2000,
        ge=0,
        le=100000,
        description="Maximum users read by the full scan fallback (0 disables it)",
    )
    max_scan_results: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum matches kept by the full scan fallback",
    )

    # Tickets
    default_category_id: int = Field(
        default=1,
        ge=0,
        description="ITIL category id used when the draft category is unknown",
    )
    default_category_name: str = Field(
        default="",
        description="Category name written to tickets that carry none",
    )

    @field_validator("base_url", mode="before")
    @classmethod
    def _normalize_base_url(cls, value: str | None) -> str | None:
        return normalize_glpi_base_url(value)

    @property
    def enabled(self) -> bool:
        """True when a base URL and a complete credential set are configured."""
        has_credentials = bool(self.user_token.strip()) or bool(
            self.user.strip() and self.password.strip()
        )
        return bool(self.base_url) and has_credentials

    @property
    def dni_field_id_list(self) -> list[str]:
        """Configured national-ID search option ids; invalid entries dropped."""
        values = [v.strip() for v in self.dni_field_ids.split(",") if v.strip()]
        invalid = [v for v in values if not _DIGITS_RE.match(v)]
        if invalid:
            logger.warning(
                "GLPI_DNI_FIELD_IDS contains invalid values",
                extra={"invalid_ids": invalid},
            )
        return [v for v in values if _DIGITS_RE.match(v)]


class ConfigTicketFlow(BaseSettings):
    """Ticket flow behaviour and lookup table locations.

    Environment variables use the CHATDESK_ prefix.
    Example: CHATDESK_TECHNICIAN_BY_PHONE_PATH=/etc/chatdesk/numbers-map.json
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    technician_by_phone: str = Field(
        default="",
        description="Inline JSON object mapping technician phone to name",
    )
    technician_by_phone_path: Path | None = Field(
        default=None,
        description="JSON or YAML file mapping technician phone to name",
    )
    categories_path: Path = Field(
        default=Path("categories.json"),
        description="JSON list of category entries",
    )
    start_commands: list[str] = Field(
        default=["INICIAR TICKET", "ABRIR TICKET", "OPEN TCK"],
        description="Commands that start a ticket session (prefix match)",
    )
    end_commands: list[str] = Field(
        default=["FINALIZAR TICKET", "CERRAR TICKET", "CLOSE TCK"],
        description="Commands that finalize a ticket session (prefix match)",
    )
    title_max_length: int = Field(
        default=250,
        ge=20,
        le=255,
        description="Maximum length of the generated ticket title",
    )
    max_selection_candidates: int = Field(
        default=10,
        ge=2,
        le=12,
        description="Maximum candidates offered in a disambiguation poll",
    )
    log_level: str = Field(default="INFO", description="Root log level for the CLI")


__all__ = [
    "ConfigGlpi",
    "ConfigTicketFlow",
    "normalize_glpi_base_url",
]
