# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for text normalization helpers."""

from __future__ import annotations

import pytest

from chatdesk.text import (
    extract_national_id,
    is_national_id,
    normalize_key,
    normalize_name,
    normalize_phone,
    normalize_text,
    strip_accents,
    tokenize,
)

pytestmark = pytest.mark.unit


class TestNormalizeText:
    """Accent, case and whitespace folding."""

    def test_strip_accents_removes_diacritics(self) -> None:
        assert strip_accents("Solicitúd Técnico Ñandú") == "Solicitud Tecnico Nandu"

    def test_normalize_text_collapses_whitespace_and_uppercases(self) -> None:
        assert normalize_text("  Solicitúd   o\nincidente ") == "SOLICITUD O INCIDENTE"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("N° DNI", "N DNI"),
            ("Solicitud/Incidente", "SOLICITUD INCIDENTE"),
            ("  correo-electrónico ", "CORREO ELECTRONICO"),
        ],
    )
    def test_normalize_key_collapses_punctuation(self, raw: str, expected: str) -> None:
        assert normalize_key(raw) == expected

    def test_normalize_name_keeps_letters_only(self) -> None:
        assert normalize_name("Ana Torres (Soporte 2)") == "ANA TORRES SOPORTE"

    def test_tokenize_ignores_surrounding_whitespace(self) -> None:
        assert tokenize("  Juan   Carlos\tPerez ") == ["Juan", "Carlos", "Perez"]


class TestPhonesAndNationalIds:
    """Digit extraction."""

    def test_normalize_phone_keeps_digits(self) -> None:
        assert normalize_phone("+51 987-654-321") == "51987654321"

    @pytest.mark.parametrize("value", [None, "", "sin numero"])
    def test_normalize_phone_without_digits_is_none(self, value: str | None) -> None:
        assert normalize_phone(value) is None

    def test_extract_national_id_from_labelled_value(self) -> None:
        assert extract_national_id("DNI 73872028") == "73872028"

    @pytest.mark.parametrize("value", ["7387202", "738720281", "", None])
    def test_extract_national_id_requires_eight_digits(
        self, value: str | None
    ) -> None:
        assert extract_national_id(value) is None

    def test_is_national_id_allows_inner_spaces(self) -> None:
        assert is_national_id("7387 2028")

    def test_is_national_id_rejects_text(self) -> None:
        assert not is_national_id("DNI 73872028")
        assert not is_national_id("no imprime")
