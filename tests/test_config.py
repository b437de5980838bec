# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for GLPI and ticket flow settings."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import make_glpi_config
from pydantic import ValidationError

from chatdesk.config import ConfigGlpi, ConfigTicketFlow, normalize_glpi_base_url

pytestmark = pytest.mark.unit


class TestBaseUrl:
    """GLPI base URL normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("https://glpi.test", "https://glpi.test/apirest.php"),
            ("https://glpi.test///", "https://glpi.test/apirest.php"),
            ("https://glpi.test/apirest.php/", "https://glpi.test/apirest.php"),
            ("  ", None),
            (None, None),
        ],
    )
    def test_normalize(self, raw: str | None, expected: str | None) -> None:
        assert normalize_glpi_base_url(raw) == expected

    def test_applied_on_load(self) -> None:
        config = make_glpi_config(base_url="https://glpi.test/")

        assert config.base_url == "https://glpi.test/apirest.php"


class TestConfigGlpi:
    """Enablement and field id parsing."""

    def test_disabled_without_base_url(self) -> None:
        assert not ConfigGlpi(_env_file=None, user="bot", password="x").enabled

    def test_disabled_without_credentials(self) -> None:
        config = ConfigGlpi(_env_file=None, base_url="https://glpi.test", user="bot")

        assert not config.enabled

    def test_enabled_with_user_token(self) -> None:
        config = ConfigGlpi(
            _env_file=None, base_url="https://glpi.test", user_token="tok"
        )

        assert config.enabled

    def test_dni_field_ids_drop_invalid_values(self) -> None:
        config = make_glpi_config(dni_field_ids="76670, abc ,76671,")

        assert config.dni_field_id_list == ["76670", "76671"]

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GLPI_BASE_URL", "https://env.glpi.test")
        monkeypatch.setenv("GLPI_USER_TOKEN", "tok")
        monkeypatch.setenv("GLPI_USER_ENTITY_ID", "26")

        config = ConfigGlpi(_env_file=None)

        assert config.base_url == "https://env.glpi.test/apirest.php"
        assert config.enabled
        assert config.user_entity_id == "26"

    def test_reads_dotenv_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "GLPI_BASE_URL=https://dotenv.glpi.test\nGLPI_USER=bot\nGLPI_PASSWORD=x\n",
            encoding="utf-8",
        )

        config = ConfigGlpi(_env_file=env_file)

        assert config.base_url == "https://dotenv.glpi.test/apirest.php"
        assert config.enabled

    def test_invalid_search_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_glpi_config(search_range="all")


class TestConfigTicketFlow:
    """Flow defaults and overrides."""

    def test_defaults(self) -> None:
        config = ConfigTicketFlow(_env_file=None)

        assert "INICIAR TICKET" in config.start_commands
        assert "FINALIZAR TICKET" in config.end_commands
        assert config.title_max_length == 250
        assert config.max_selection_candidates == 10

    def test_commands_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATDESK_START_COMMANDS", '["NUEVO TICKET"]')

        config = ConfigTicketFlow(_env_file=None)

        assert config.start_commands == ["NUEVO TICKET"]
