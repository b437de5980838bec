"""GLPI REST API backend: session-authenticated client and search helpers."""

from chatdesk.glpi.client import GlpiClient
from chatdesk.glpi.search import SearchCriterion

__all__ = ["GlpiClient", "SearchCriterion"]
