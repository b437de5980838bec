# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Read-only lookup tables supplied at startup.

- TechnicianDirectory: technician phone <-> display name. Used to
  authorize senders and to infer the assignee of a ticket from the
  technician who opened it.
- CategoryIndex: category name -> GLPI ITIL category id.

Both are loaded once from configuration. Missing or malformed files yield
empty tables and a warning; they never stop the service.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chatdesk.config import ConfigTicketFlow
from chatdesk.text import normalize_name, normalize_phone, normalize_template_key

logger = logging.getLogger(__name__)

_MIN_PHONE_DIGITS = 8
_DEFAULT_NUMBERS_MAP = Path("numbers-map.json")

# =============================================================================
# Technician Directory
# =============================================================================


def normalize_technician_map(raw: Mapping[Any, Any]) -> dict[str, str]:
    """Normalize a phone/name map whichever way round it was written.

    For each entry the side holding at least 8 digits becomes the phone
    key (digits only). Entries without a phone are kept as given.
    """
    normalized: dict[str, str] = {}
    for key, value in raw.items():
        key_text = str(key if key is not None else "").strip()
        value_text = str(value if value is not None else "").strip()
        if not key_text or not value_text:
            continue
        key_digits = normalize_phone(key_text) or ""
        value_digits = normalize_phone(value_text) or ""
        if len(key_digits) >= _MIN_PHONE_DIGITS:
            normalized[key_digits] = value_text
        elif len(value_digits) >= _MIN_PHONE_DIGITS:
            normalized[value_digits] = key_text
        else:
            normalized[key_text] = value_text
    return normalized


@dataclass(frozen=True)
class TechnicianDirectory:
    """Technician phone (digits) to display name.

    Example:
        >>> raw = {"Ana Torres": "+51 987 654 321"}
        >>> directory = TechnicianDirectory.from_mapping(raw)
        >>> directory.resolve_sender_phone(None, "ana torres (soporte)")
        '51987654321'
    """

    by_phone: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[Any, Any]) -> TechnicianDirectory:
        return cls(by_phone=normalize_technician_map(raw))

    def __len__(self) -> int:
        return len(self.by_phone)

    def name_for_phone(self, phone: str | None) -> str | None:
        if not phone:
            return None
        name = self.by_phone.get(phone)
        return name.strip() if name else None

    def _name_entries(self) -> list[tuple[str, str]]:
        entries = []
        for phone, label in self.by_phone.items():
            name = normalize_name(label)
            if name:
                entries.append((name, phone))
        return entries

    def resolve_sender_phone(
        self, sender_number: str | None, sender_label: str | None
    ) -> str | None:
        """Find the directory phone of a sender.

        Tried in order: the sender number, a phone embedded in the sender
        label, an exact normalized name match, and finally a containment
        match in either direction between label and technician name.
        """
        direct = normalize_phone(sender_number)
        if direct and direct in self.by_phone:
            return direct

        label = sender_label or ""
        label_number = normalize_phone(label)
        if label_number and label_number in self.by_phone:
            return label_number

        normalized_label = normalize_name(label)
        if not normalized_label:
            return None

        entries = self._name_entries()
        for name, phone in entries:
            if name == normalized_label:
                return phone
        for name, phone in entries:
            if name in normalized_label or normalized_label in name:
                return phone
        return None


def _read_mapping_file(path: Path) -> Mapping[Any, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, Mapping):
        raise ValueError(f"{path} does not contain a mapping")
    return data


def load_technician_directory(config: ConfigTicketFlow) -> TechnicianDirectory:
    """Load the technician directory from inline JSON or a mapping file.

    Precedence: CHATDESK_TECHNICIAN_BY_PHONE, then
    CHATDESK_TECHNICIAN_BY_PHONE_PATH, then ``numbers-map.json`` in the
    working directory.
    """
    raw_inline = config.technician_by_phone.strip()
    if raw_inline:
        try:
            data = json.loads(raw_inline)
        except json.JSONDecodeError:
            logger.warning("CHATDESK_TECHNICIAN_BY_PHONE is not valid JSON")
            return TechnicianDirectory()
        if not isinstance(data, Mapping):
            logger.warning("CHATDESK_TECHNICIAN_BY_PHONE is not a JSON object")
            return TechnicianDirectory()
        return TechnicianDirectory.from_mapping(data)

    path = config.technician_by_phone_path
    if path is None and _DEFAULT_NUMBERS_MAP.exists():
        path = _DEFAULT_NUMBERS_MAP
    if path is None:
        logger.warning("No technician directory configured; every sender is rejected")
        return TechnicianDirectory()
    if not path.exists():
        logger.warning("Technician directory file not found", extra={"path": str(path)})
        return TechnicianDirectory()

    try:
        data = _read_mapping_file(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning(
            "Could not read technician directory",
            extra={"path": str(path), "error": str(e)},
        )
        return TechnicianDirectory()

    directory = TechnicianDirectory.from_mapping(data)
    logger.info(
        "Technician directory loaded",
        extra={"path": str(path), "technicians": len(directory)},
    )
    return directory


# =============================================================================
# Categories
# =============================================================================


@dataclass(frozen=True)
class CategoryEntry:
    """One entry of the categories table."""

    category: str
    glpi_category_id: int | None = None


def _parse_category_entry(raw: Any) -> CategoryEntry | None:
    if not isinstance(raw, Mapping) or not isinstance(raw.get("category"), str):
        return None
    category_id = raw.get("glpiCategoryId")
    if isinstance(category_id, str) and category_id.strip().isdigit():
        category_id = int(category_id)
    return CategoryEntry(
        category=raw["category"],
        glpi_category_id=category_id if isinstance(category_id, int) else None,
    )


class CategoryIndex:
    """Category lookup by normalized name."""

    def __init__(self, entries: list[CategoryEntry] | None = None) -> None:
        self._entries = list(entries or [])
        self._by_key = {normalize_template_key(e.category): e for e in self._entries}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, category_name: str | None) -> CategoryEntry | None:
        if not category_name:
            return None
        return self._by_key.get(normalize_template_key(category_name))

    def category_id_for(self, category_name: str | None, default_id: int) -> int:
        entry = self.get(category_name)
        if entry is not None and entry.glpi_category_id is not None:
            return entry.glpi_category_id
        return default_id


def load_categories(path: Path) -> CategoryIndex:
    """Load the categories JSON list; unreadable files give an empty index."""
    if not path.exists():
        return CategoryIndex()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(
            "Could not read categories file",
            extra={"path": str(path), "error": str(e)},
        )
        return CategoryIndex()
    if not isinstance(data, list):
        return CategoryIndex()
    entries = [entry for raw in data if (entry := _parse_category_entry(raw))]
    return CategoryIndex(entries)


__all__ = [
    "CategoryEntry",
    "CategoryIndex",
    "TechnicianDirectory",
    "load_categories",
    "load_technician_directory",
    "normalize_technician_map",
]
