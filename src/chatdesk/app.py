# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Application wiring: build a ready TicketFlowEngine from settings."""

from __future__ import annotations

import logging

from chatdesk.config import ConfigGlpi, ConfigTicketFlow
from chatdesk.directory import load_categories, load_technician_directory
from chatdesk.flow.engine import TicketFlowEngine
from chatdesk.identity.resolver import IdentityResolver
from chatdesk.protocols import ProtocolTicketingBackend

logger = logging.getLogger(__name__)


def build_engine(
    backend: ProtocolTicketingBackend,
    glpi_config: ConfigGlpi,
    flow_config: ConfigTicketFlow,
) -> TicketFlowEngine:
    """Load lookup tables and assemble the engine around *backend*."""
    directory = load_technician_directory(flow_config)
    categories = load_categories(flow_config.categories_path)
    logger.info(
        "Ticket flow ready",
        extra={
            "technicians": len(directory),
            "categories": len(categories),
            "glpi_enabled": backend.is_enabled(),
        },
    )
    return TicketFlowEngine(
        backend=backend,
        resolver=IdentityResolver(backend, glpi_config),
        directory=directory,
        categories=categories,
        flow_config=flow_config,
        glpi_config=glpi_config,
    )


__all__ = ["build_engine"]
