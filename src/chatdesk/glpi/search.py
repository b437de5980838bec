# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""GLPI user search helpers: criteria, query encoding and row parsing.

GLPI's ``search/User`` endpoint addresses columns by numeric search option
ids. The standard ids used here are stable across GLPI 9.x/10.x; site
specific ones (national ID, floor) come from configuration or from
``listSearchOptions/User`` metadata.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from chatdesk.enums import EnumSearchType
from chatdesk.models import UserCandidate
from chatdesk.text import normalize_text

# Standard GLPI User search option ids
FIELD_LOGIN = "1"
FIELD_ID = "2"
FIELD_LOCATION = "3"
FIELD_EMAIL = "5"
FIELD_PHONE = "6"
FIELD_FIRSTNAME = "9"
FIELD_MOBILE = "11"
FIELD_REALNAME = "34"
FIELD_ENTITY = "80"
FIELD_TITLE = "81"

BASE_DISPLAY_FIELDS: tuple[str, ...] = (
    FIELD_ID,
    FIELD_LOGIN,
    FIELD_FIRSTNAME,
    FIELD_REALNAME,
    FIELD_EMAIL,
    FIELD_PHONE,
    FIELD_MOBILE,
    FIELD_LOCATION,
    FIELD_ENTITY,
    FIELD_TITLE,
)

_DIGITS_RE = re.compile(r"^\d+$")
_INVALID_FIELD_MARKERS = ("ID ERRONEO", "ID ERRONE")


class SearchCriterion(BaseModel):
    """One ``criteria[n]`` entry of a GLPI search query.

    ``search_type`` None means "use the search type of the whole query".
    """

    model_config = ConfigDict(frozen=True)

    field: str
    value: str
    link: str | None = None
    search_type: EnumSearchType | None = None

    def dedupe_key(self, default_type: EnumSearchType) -> str:
        search_type = self.search_type or default_type
        value = normalize_text(self.value)
        return f"{self.field}:{value}:{self.link or ''}:{search_type}"


def criteria_key(
    criteria: Iterable[SearchCriterion], default_type: EnumSearchType
) -> str:
    return "|".join(item.dedupe_key(default_type) for item in criteria)


def build_search_params(
    criteria: list[SearchCriterion],
    range_: str,
    search_type: EnumSearchType,
    display_fields: Iterable[str],
) -> list[tuple[str, str]]:
    """Encode criteria as GLPI's indexed query parameters."""
    params: list[tuple[str, str]] = []
    for index, item in enumerate(criteria):
        if item.link:
            params.append((f"criteria[{index}][link]", item.link))
        params.append((f"criteria[{index}][field]", item.field))
        params.append(
            (f"criteria[{index}][searchtype]", str(item.search_type or search_type))
        )
        params.append((f"criteria[{index}][value]", item.value))
    seen: set[str] = set()
    display_index = 0
    for field_id in display_fields:
        if field_id in seen:
            continue
        seen.add(field_id)
        params.append((f"forcedisplay[{display_index}]", field_id))
        display_index += 1
    params.append(("range", range_))
    return params


def scope_criteria(
    criteria: list[SearchCriterion], entity_field_id: str, entity_id: str
) -> list[SearchCriterion]:
    """Prefix criteria with an entity filter, AND-linking the originals."""
    linked = [
        item if item.link else item.model_copy(update={"link": "AND"})
        for item in criteria
    ]
    entity = SearchCriterion(
        field=entity_field_id,
        value=entity_id.strip(),
        search_type=EnumSearchType.EQUALS,
    )
    return [entity, *linked]


def is_invalid_field_error(message: str) -> bool:
    normalized = normalize_text(message)
    return any(marker in normalized for marker in _INVALID_FIELD_MARKERS)


# =============================================================================
# Row Parsing
# =============================================================================


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        value = next((v for v in value if v not in (None, "")), "")
    text = str(value).strip()
    # GLPI renders multi-valued cells joined by this separator
    if "$#$" in text:
        text = text.split("$#$", 1)[0].strip()
    return text


def _optional(value: Any) -> str | None:
    return _text(value) or None


def parse_user_row(
    record: Mapping[str, Any],
    national_id_fields: Iterable[str] = (),
    floor_field: str | None = None,
) -> UserCandidate | None:
    """Parse a search row or a ``User`` item into a candidate.

    Rows without a numeric id are skipped.
    """
    raw_id = record.get("id", record.get(FIELD_ID, record.get("0")))
    user_id = _text(raw_id)
    if not _DIGITS_RE.match(user_id):
        return None

    national_id = None
    for field_id in national_id_fields:
        national_id = _optional(record.get(field_id))
        if national_id:
            break

    return UserCandidate(
        id=user_id,
        login=_text(
            record.get(FIELD_LOGIN)
            or record.get("name")
            or record.get("login")
            or record.get("username")
        ),
        firstname=_text(record.get(FIELD_FIRSTNAME) or record.get("firstname")),
        realname=_text(record.get(FIELD_REALNAME) or record.get("realname")),
        email=_optional(record.get(FIELD_EMAIL) or record.get("email")),
        phone=_optional(record.get(FIELD_PHONE) or record.get("phone")),
        mobile=_optional(record.get(FIELD_MOBILE) or record.get("mobile")),
        job_title=_optional(record.get(FIELD_TITLE) or record.get("usertitles_id")),
        location=_optional(record.get(FIELD_LOCATION) or record.get("locations_id")),
        entity=_optional(record.get(FIELD_ENTITY) or record.get("entities_id")),
        floor=_optional(record.get(floor_field)) if floor_field else None,
        national_id=national_id,
    )


def parse_user_candidates(
    response: Any,
    national_id_fields: Iterable[str] = (),
    floor_field: str | None = None,
) -> list[UserCandidate]:
    """Parse a ``search/User`` response (``{"data": [...]}``) or a list."""
    if isinstance(response, Mapping):
        rows = response.get("data")
    else:
        rows = response
    if not isinstance(rows, list):
        return []
    fields = list(national_id_fields)
    candidates = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        candidate = parse_user_row(row, fields, floor_field)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def dedupe_candidates(candidates: Iterable[UserCandidate]) -> list[UserCandidate]:
    """Deduplicate by id, keeping the first occurrence's position."""
    by_id: dict[str, UserCandidate] = {}
    for candidate in candidates:
        by_id.setdefault(candidate.id, candidate)
    return list(by_id.values())


# =============================================================================
# Search Option Detection
# =============================================================================


def _numeric_options(
    options: Mapping[str, Any],
) -> Iterable[tuple[str, Mapping[str, Any]]]:
    for key, value in options.items():
        if _DIGITS_RE.match(str(key)) and isinstance(value, Mapping):
            yield str(key), value


def detect_national_id_fields(options: Mapping[str, Any]) -> list[str]:
    """Search options whose name mentions DNI, DOCUMENTO or ADMINISTRATIVO."""
    matches = []
    for key, record in _numeric_options(options):
        table = str(record.get("table") or "").strip().lower()
        if "glpi_documents_items" in table:
            continue
        name = normalize_text(str(record.get("name") or ""))
        if "DNI" in name or "DOCUMENTO" in name or "ADMINISTRATIVO" in name:
            matches.append(key)
    return matches


def detect_login_field(options: Mapping[str, Any]) -> str:
    for key, record in _numeric_options(options):
        name = normalize_text(str(record.get("name") or ""))
        if "LOGIN" in name or "USUARIO" in name:
            return key
    return FIELD_LOGIN


def detect_entity_field(options: Mapping[str, Any]) -> str | None:
    for key, record in _numeric_options(options):
        table = str(record.get("table") or "").strip().lower()
        field = str(record.get("field") or "").strip().lower()
        name = normalize_text(str(record.get("name") or ""))
        if (
            "glpi_entities" in table
            or "entities_id" in field
            or "ENTIDAD" in name
            or "ENTITY" in name
        ):
            return key
    return None


__all__ = [
    "BASE_DISPLAY_FIELDS",
    "FIELD_FIRSTNAME",
    "FIELD_ID",
    "FIELD_LOGIN",
    "FIELD_REALNAME",
    "SearchCriterion",
    "build_search_params",
    "criteria_key",
    "dedupe_candidates",
    "detect_entity_field",
    "detect_login_field",
    "detect_national_id_fields",
    "is_invalid_field_error",
    "parse_user_candidates",
    "parse_user_row",
    "scope_criteria",
]
