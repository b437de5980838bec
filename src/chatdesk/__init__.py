"""chatdesk - chat-driven ticket intake for the GLPI service desk.

This package turns free-form chat messages into GLPI tickets: it parses
ticket drafts out of message text, resolves requesters and technicians to
GLPI user records, and runs the per-conversation ticket session flow.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("chatdesk")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
