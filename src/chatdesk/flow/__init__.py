"""Per-conversation ticket session flow."""

from chatdesk.flow.engine import TicketFlowEngine
from chatdesk.flow.session_store import SessionStore

__all__ = ["SessionStore", "TicketFlowEngine"]
