# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Free-text ticket parser.

Turns the body of a chat message into a partial TicketDraft. Three
strategies are tried in order and the first one that yields a draft wins:

    1. Key-value template, one ``KEY: value`` per line. Keys are matched
       against a synonym table after normalization (accents stripped,
       upper-cased, punctuation and connector words dropped), so
       ``"Solicitud o Incidente:"`` and ``"SOLICITUD INCIDENTE:"`` are the
       same key. Unknown keys are ignored.
    2. Inline arrow template ``left => right``. ``left`` may be
       ``requester - assignee``; with an empty ``left`` the right side is
       read as ``problem - requester [- assignee]``.
    3. Loose dash heuristic (only without ``=>``): exactly two dash
       separated segments, one of which is taken as the requester.

Loose Dash Tiebreak:
    When neither segment is a national ID, looks like a person name or
    carries problem keywords, the shorter segment is taken as the
    requester. This is a compatibility heuristic, not a contract.

Example:
    >>> draft = parse_ticket_text("SOLICITANTE: 73872028\\nPROBLEMA: no enciende")
    >>> (draft.requester, draft.problem, draft.is_complete)
    ('73872028', 'no enciende', True)
"""

from __future__ import annotations

import logging
import re

from chatdesk.models import TicketDraft
from chatdesk.text import (
    extract_national_id,
    is_national_id,
    normalize_key,
    normalize_text,
    strip_accents,
    tokenize,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Key-Value Synonyms
# =============================================================================

# Connector words dropped from template keys before lookup.
_KEY_STOPWORDS = frozenset(
    {"O", "Y", "E", "U", "A", "AL", "DE", "DEL", "EL", "LA", "LOS", "LAS"}
)

_FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "requester": (
        "SOLICITANTE",
        "DNI SOLICITANTE",
        "SOLICITANTE DNI",
        "USUARIO",
        "USUARIO SOLICITANTE",
        "USUARIO AFECTADO",
        "SOLICITADO POR",
        "REPORTADO POR",
        "REPORTA",
        "REQUESTER",
    ),
    "assignee": (
        "ASIGNADO",
        "ASIGNAR",
        "TECNICO",
        "TECNICO ASIGNADO",
        "RESPONSABLE",
        "ATIENDE",
        "ASSIGNEE",
    ),
    "problem": (
        "PROBLEMA",
        "DESCRIPCION",
        "DESCRIPCION PROBLEMA",
        "INCIDENTE",
        "INCIDENCIA",
        "SOLICITUD",
        "SOLICITUD INCIDENTE",
        "DETALLE",
        "MOTIVO",
        "FALLA",
        "REQUERIMIENTO",
        "ASUNTO",
        "PROBLEM",
    ),
    "category": (
        "CATEGORIA",
        "SISTEMA",
        "SISTEMA BIEN",
        "BIEN",
        "SERVICIO",
        "APLICATIVO",
        "EQUIPO",
    ),
    "name": (
        "NOMBRE",
        "NOMBRES",
        "NOMBRE COMPLETO",
        "NOMBRES APELLIDOS",
        "APELLIDOS NOMBRES",
    ),
    "national_id": (
        "DNI",
        "DOCUMENTO",
        "DOCUMENTO IDENTIDAD",
        "N DNI",
        "NRO DNI",
        "NUM DNI",
        "NUMERO DNI",
    ),
    "phone": (
        "CELULAR",
        "CEL",
        "TELEFONO",
        "MOVIL",
        "ANEXO",
        "CONTACTO",
        "NUMERO CONTACTO",
    ),
    "email": (
        "CORREO",
        "CORREO ELECTRONICO",
        "EMAIL",
        "MAIL",
    ),
    "job_title": ("CARGO", "PUESTO"),
    "department": (
        "DEPENDENCIA",
        "AREA",
        "OFICINA",
        "UNIDAD",
        "GERENCIA",
        "SEDE",
    ),
    "floor": ("PISO", "NIVEL"),
}


def template_key(raw_key: str) -> str:
    """Normalize a template key for synonym lookup."""
    tokens = [t for t in normalize_key(raw_key).split() if t not in _KEY_STOPWORDS]
    return " ".join(tokens)


KEY_MAP: dict[str, str] = {
    template_key(synonym): field_name
    for field_name, synonyms in _FIELD_SYNONYMS.items()
    for synonym in synonyms
}

# =============================================================================
# Heuristic Vocabulary
# =============================================================================

PROBLEM_KEYWORDS = frozenset(
    {
        "NO",
        "ERROR",
        "FALLA",
        "FALLO",
        "PROBLEMA",
        "SOLICITO",
        "SOLICITA",
        "NECESITO",
        "AYUDA",
        "INSTALAR",
        "INSTALACION",
        "CONFIGURAR",
        "ENCIENDE",
        "IMPRIME",
        "IMPRESORA",
        "PC",
        "COMPUTADORA",
        "LAPTOP",
        "MONITOR",
        "PANTALLA",
        "MOUSE",
        "TECLADO",
        "INTERNET",
        "RED",
        "WIFI",
        "CORREO",
        "OUTLOOK",
        "OFFICE",
        "EXCEL",
        "WORD",
        "SISTEMA",
        "CLAVE",
        "CONTRASENA",
        "ACCESO",
        "USUARIO",
        "VPN",
        "LENTO",
        "BLOQUEADO",
        "SIAF",
        "SIGA",
    }
)

_DASH_SPLIT_RE = re.compile(r"\s*[-–—]\s*")
_NAME_TOKEN_RE = re.compile(r"^[A-Za-z][A-Za-z'.]*$")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


def split_by_dash(value: str) -> list[str]:
    return [part.strip() for part in _DASH_SPLIT_RE.split(value) if part.strip()]


def has_problem_keywords(segment: str) -> bool:
    if any(ch.isdigit() for ch in segment):
        return True
    return any(token in PROBLEM_KEYWORDS for token in normalize_text(segment).split())


def looks_like_person_name(segment: str) -> bool:
    """2 to 6 alphabetic tokens and no problem keywords."""
    tokens = tokenize(strip_accents(segment))
    if not 2 <= len(tokens) <= 6:
        return False
    if not all(_NAME_TOKEN_RE.match(token) for token in tokens):
        return False
    return not has_problem_keywords(segment)


def _build_draft(
    *,
    raw_text: str,
    requester: str | None = None,
    assignee: str | None = None,
    problem: str | None = None,
    **extra: str | None,
) -> TicketDraft | None:
    draft = TicketDraft(
        requester=requester or None,
        assignee=assignee or None,
        problem=problem or None,
        raw_text=raw_text,
        **{name: value or None for name, value in extra.items()},
    )
    return draft if draft.has_any_field else None


# =============================================================================
# Strategies
# =============================================================================


def parse_key_value_template(body: str) -> TicketDraft | None:
    """Strategy 1: ``KEY: value`` lines matched against the synonym table."""
    lines = [line.strip() for line in _LINE_SPLIT_RE.split(body) if line.strip()]
    if not lines:
        return None

    data: dict[str, str] = {}
    for line in lines:
        raw_key, sep, raw_value = line.partition(":")
        if not sep:
            continue
        value = raw_value.strip()
        if not raw_key.strip() or not value:
            continue
        field_name = KEY_MAP.get(template_key(raw_key))
        if field_name is None:
            logger.debug("Ignoring unrecognized template key", extra={"key": raw_key})
            continue
        data[field_name] = value

    if "national_id" in data:
        national_id = data["national_id"]
        data["national_id"] = extract_national_id(national_id) or national_id
    if not data.get("requester"):
        identifying = data.get("national_id") or data.get("name")
        if identifying:
            data["requester"] = identifying

    return _build_draft(raw_text=body, **data)


def parse_inline_template(body: str) -> TicketDraft | None:
    """Strategy 2: ``requester [- assignee] => problem``."""
    left, arrow, right = body.partition("=>")
    if not arrow:
        return None
    left = left.strip()
    right = right.strip()
    if not left and not right:
        return None

    left_parts = split_by_dash(left)
    right_parts = split_by_dash(right)

    requester = left_parts[0] if left_parts else None
    assignee = left_parts[1] if len(left_parts) > 1 else None
    problem: str | None = right

    if not requester and len(right_parts) >= 2:
        problem = right_parts[0]
        requester = right_parts[1]
        if not assignee and len(right_parts) >= 3:
            assignee = right_parts[2]

    return _build_draft(
        raw_text=body, requester=requester, assignee=assignee, problem=problem
    )


def _pick_requester_segment(first: str, second: str) -> int:
    """Index (0 or 1) of the segment that names the requester."""
    checks = (
        is_national_id,
        looks_like_person_name,
        lambda segment: not has_problem_keywords(segment),
    )
    for check in checks:
        first_hit, second_hit = check(first), check(second)
        if first_hit != second_hit:
            return 0 if first_hit else 1
    return 0 if len(first) < len(second) else 1


def parse_loose_dash_template(body: str) -> TicketDraft | None:
    """Strategy 3: exactly two dash-separated segments."""
    if "=>" in body:
        return None
    parts = split_by_dash(body)
    if len(parts) != 2:
        return None
    requester_index = _pick_requester_segment(parts[0], parts[1])
    requester = parts[requester_index]
    problem = parts[1 - requester_index]
    return _build_draft(raw_text=body, requester=requester, problem=problem)


STRATEGIES = (
    parse_key_value_template,
    parse_inline_template,
    parse_loose_dash_template,
)


def parse_ticket_text(body: str) -> TicketDraft | None:
    """Parse *body* with the first strategy that recognizes it.

    Returns:
        A draft with at least one recognized field, or None.
    """
    for strategy in STRATEGIES:
        draft = strategy(body)
        if draft is not None:
            logger.debug(
                "Parsed ticket text",
                extra={"strategy": strategy.__name__, "complete": draft.is_complete},
            )
            return draft
    return None


class TicketParser:
    """Ticket parser with an optional fallback category.

    Args:
        default_category: Category applied to drafts that carry none.
    """

    def __init__(self, default_category: str | None = None) -> None:
        self._default_category = default_category

    def parse(self, body: str) -> TicketDraft | None:
        draft = parse_ticket_text(body)
        if draft is not None and not draft.category and self._default_category:
            draft.category = self._default_category
        return draft


__all__ = [
    "KEY_MAP",
    "PROBLEM_KEYWORDS",
    "TicketParser",
    "has_problem_keywords",
    "looks_like_person_name",
    "parse_inline_template",
    "parse_key_value_template",
    "parse_loose_dash_template",
    "parse_ticket_text",
    "split_by_dash",
    "template_key",
]
