# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Text normalization helpers shared by the parser, resolver and flow.

All comparisons of template keys, names and commands go through these
functions so that accents, case and whitespace never change a match.
"""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]+")
_NON_ALPHA_RE = re.compile(r"[^A-Z ]+")
_NON_DIGIT_RE = re.compile(r"\D+")

NATIONAL_ID_LENGTH = 8


def strip_accents(value: str) -> str:
    """Remove combining diacritics (NFD decomposition)."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_template_key(value: str) -> str:
    return strip_accents(value).strip().upper()


def normalize_text(value: str) -> str:
    """Accent-free, upper-cased text with collapsed whitespace."""
    return _WHITESPACE_RE.sub(" ", strip_accents(value)).strip().upper()


def normalize_key(value: str) -> str:
    """Normalize a template key: punctuation collapsed to single spaces.

    ``"N° DNI"`` becomes ``"N DNI"`` and ``"Solicitud/Incidente"`` becomes
    ``"SOLICITUD INCIDENTE"``.
    """
    return _NON_ALNUM_RE.sub(" ", normalize_text(value)).strip()


def normalize_name(value: str) -> str:
    """Letters-only normalized form used for person-name comparisons."""
    collapsed = _NON_ALPHA_RE.sub(" ", normalize_text(value))
    return _WHITESPACE_RE.sub(" ", collapsed).strip()


def normalize_phone(value: str | None) -> str | None:
    if not value:
        return None
    digits = _NON_DIGIT_RE.sub("", value)
    return digits or None


def digits_only(value: str) -> str:
    return _NON_DIGIT_RE.sub("", value)


def extract_national_id(value: str | None) -> str | None:
    """Return the 8 digits of *value* when it carries exactly 8 digits."""
    if not value:
        return None
    digits = digits_only(value)
    return digits if len(digits) == NATIONAL_ID_LENGTH else None


def is_national_id(value: str | None) -> bool:
    """True when *value* is exactly an 8-digit national ID (spaces allowed)."""
    if not value:
        return False
    compact = _WHITESPACE_RE.sub("", value)
    return compact.isdigit() and len(compact) == NATIONAL_ID_LENGTH


def tokenize(value: str) -> list[str]:
    return [part for part in _WHITESPACE_RE.split(value.strip()) if part]


__all__ = [
    "NATIONAL_ID_LENGTH",
    "digits_only",
    "extract_national_id",
    "is_national_id",
    "normalize_key",
    "normalize_name",
    "normalize_phone",
    "normalize_template_key",
    "normalize_text",
    "strip_accents",
    "tokenize",
]
