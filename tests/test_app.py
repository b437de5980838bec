# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for engine wiring from settings."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import TECHNICIAN_PHONE, FakeBackend, FakeContext, make_message

from chatdesk.app import build_engine
from chatdesk.config import ConfigGlpi, ConfigTicketFlow

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_build_engine_loads_tables(
    tmp_path: Path, backend: FakeBackend, glpi_config: ConfigGlpi
) -> None:
    categories_path = tmp_path / "categories.json"
    categories_path.write_text(
        json.dumps([{"category": "Redes", "glpiCategoryId": 7}]), encoding="utf-8"
    )
    flow_config = ConfigTicketFlow(
        _env_file=None,
        technician_by_phone=json.dumps({TECHNICIAN_PHONE: "Ana Torres"}),
        categories_path=categories_path,
    )
    engine = build_engine(backend, glpi_config, flow_config)
    context = FakeContext()

    await engine.handle_message(
        make_message(
            "INICIAR TICKET\nSOLICITANTE: 73872028\nPROBLEMA: x\nCATEGORIA: Redes"
        ),
        context,
    )

    assert context.replies == ["Ticket creado. ID: 100"]
    assert backend.tickets[0].category_id == 7


@pytest.mark.asyncio
async def test_build_engine_without_directory_rejects_everyone(
    backend: FakeBackend, glpi_config: ConfigGlpi
) -> None:
    engine = build_engine(backend, glpi_config, ConfigTicketFlow(_env_file=None))
    context = FakeContext()

    await engine.handle_message(make_message("INICIAR TICKET"), context)

    assert context.replies == [
        f"Lo lamento @{TECHNICIAN_PHONE} tienes que estar en la lista de tecnicos."
    ]
    assert len(engine.store) == 0
