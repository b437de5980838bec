# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for the technician directory and category table loaders."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from chatdesk.config import ConfigTicketFlow
from chatdesk.directory import (
    CategoryIndex,
    TechnicianDirectory,
    load_categories,
    load_technician_directory,
    normalize_technician_map,
)

pytestmark = pytest.mark.unit


class TestTechnicianDirectory:
    """Phone/name normalization and sender resolution."""

    def test_map_accepts_either_orientation(self) -> None:
        raw = {"Ana Torres": "+51 987 654 321", "51911222333": "Luis Garcia"}

        assert normalize_technician_map(raw) == {
            "51987654321": "Ana Torres",
            "51911222333": "Luis Garcia",
        }

    def test_map_skips_empty_entries(self) -> None:
        assert normalize_technician_map({"": "x", "51911222333": None}) == {}

    @pytest.fixture
    def directory(self) -> TechnicianDirectory:
        return TechnicianDirectory.from_mapping({"51987654321": "Ana Torres"})

    def test_resolves_sender_number(self, directory: TechnicianDirectory) -> None:
        assert directory.resolve_sender_phone("51987654321", "") == "51987654321"

    def test_resolves_number_in_label(self, directory: TechnicianDirectory) -> None:
        assert directory.resolve_sender_phone(None, "+51 987 654 321") == "51987654321"

    def test_resolves_exact_name(self, directory: TechnicianDirectory) -> None:
        assert directory.resolve_sender_phone(None, "ANA TORRÉS") == "51987654321"

    def test_resolves_name_containment(self, directory: TechnicianDirectory) -> None:
        phone = directory.resolve_sender_phone("lid-123", "Ana Torres (Soporte)")

        assert phone == "51987654321"

    def test_unknown_sender(self, directory: TechnicianDirectory) -> None:
        assert directory.resolve_sender_phone("51900000000", "Pedro") is None
        assert directory.resolve_sender_phone(None, "") is None

    def test_name_for_phone(self, directory: TechnicianDirectory) -> None:
        assert directory.name_for_phone("51987654321") == "Ana Torres"
        assert directory.name_for_phone(None) is None
        assert len(directory) == 1


class TestLoadTechnicianDirectory:
    """Configuration sources and their precedence."""

    def test_inline_json_wins(self, tmp_path: Path) -> None:
        path = tmp_path / "numbers.json"
        path.write_text(json.dumps({"51911222333": "Luis"}), encoding="utf-8")
        config = ConfigTicketFlow(
            _env_file=None,
            technician_by_phone='{"51987654321": "Ana Torres"}',
            technician_by_phone_path=path,
        )

        directory = load_technician_directory(config)

        assert directory.by_phone == {"51987654321": "Ana Torres"}

    def test_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "numbers.yaml"
        path.write_text('"Ana Torres": "+51 987 654 321"\n', encoding="utf-8")
        config = ConfigTicketFlow(_env_file=None, technician_by_phone_path=path)

        directory = load_technician_directory(config)

        assert directory.name_for_phone("51987654321") == "Ana Torres"

    def test_default_file_in_working_directory(self, tmp_path: Path) -> None:
        (tmp_path / "numbers-map.json").write_text(
            json.dumps({"51987654321": "Ana Torres"}), encoding="utf-8"
        )

        directory = load_technician_directory(ConfigTicketFlow(_env_file=None))

        assert len(directory) == 1

    def test_invalid_inline_json_gives_empty_directory(self) -> None:
        config = ConfigTicketFlow(_env_file=None, technician_by_phone="{not json")

        assert len(load_technician_directory(config)) == 0

    def test_missing_file_gives_empty_directory(self, tmp_path: Path) -> None:
        config = ConfigTicketFlow(
            _env_file=None, technician_by_phone_path=tmp_path / "missing.json"
        )

        assert len(load_technician_directory(config)) == 0

    def test_non_mapping_file_gives_empty_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "numbers.json"
        path.write_text("[1, 2]", encoding="utf-8")
        config = ConfigTicketFlow(_env_file=None, technician_by_phone_path=path)

        assert len(load_technician_directory(config)) == 0


class TestCategories:
    """Category id lookup."""

    def test_load_and_lookup(self, tmp_path: Path) -> None:
        path = tmp_path / "categories.json"
        path.write_text(
            json.dumps(
                [
                    {"category": "Mesa de Ayuda", "glpiCategoryId": "12"},
                    {"category": "Redes", "glpiCategoryId": 7, "keywords": ["wifi"]},
                    {"name": "sin categoria"},
                ]
            ),
            encoding="utf-8",
        )

        index = load_categories(path)

        assert len(index) == 2
        assert index.category_id_for("mesa de ayúda", 1) == 12
        assert index.category_id_for("REDES", 1) == 7
        assert index.category_id_for("Otros", 1) == 1
        assert index.category_id_for(None, 3) == 3
        entry = index.get("redes")
        assert entry is not None
        assert entry.category == "Redes"

    def test_missing_or_invalid_file_gives_empty_index(self, tmp_path: Path) -> None:
        broken = tmp_path / "broken.json"
        broken.write_text("{", encoding="utf-8")

        assert len(load_categories(tmp_path / "missing.json")) == 0
        assert len(load_categories(broken)) == 0

    def test_entry_without_id_uses_default(self) -> None:
        index = CategoryIndex()

        assert index.category_id_for("Redes", 5) == 5
