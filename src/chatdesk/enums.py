# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Enums for the ticket session flow and identity resolution.

EnumRole is the closed set of identities a ticket needs resolved. Role
specific behaviour (labels, minimum name tokens, default fallback) is
attached to each member as a RolePolicy instead of being spread through
the resolver as string comparisons.

Example:
    >>> EnumRole.REQUESTER.policy.min_name_tokens
    2
    >>> EnumRole("assignee").policy.label
    'tecnico'
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True)
class RolePolicy:
    """Resolution policy attached to a role.

    Attributes:
        label: Lower-case Spanish label used in user-facing replies.
        title: Capitalized label used at the start of a reply.
        min_name_tokens: Minimum whitespace tokens a name lookup needs.
        uses_default_requester: Whether an empty value falls back to the
            configured default requester instead of "no value".
    """

    label: str
    title: str
    min_name_tokens: int
    uses_default_requester: bool


_POLICIES: dict[str, RolePolicy] = {
    "requester": RolePolicy(
        label="solicitante",
        title="Solicitante",
        min_name_tokens=2,
        uses_default_requester=True,
    ),
    "assignee": RolePolicy(
        label="tecnico",
        title="Tecnico",
        min_name_tokens=1,
        uses_default_requester=False,
    ),
}


class EnumRole(StrEnum):
    """Role of the identity being resolved for a ticket."""

    REQUESTER = "requester"
    ASSIGNEE = "assignee"

    @property
    def policy(self) -> RolePolicy:
        return _POLICIES[self.value]


class EnumSessionState(StrEnum):
    """Observable state of a ticket session.

    State Transitions:
        NO_SESSION -> AWAITING_FIRST_DATA: start command without data
        AWAITING_FIRST_DATA -> COLLECTING: first recognized message
        COLLECTING <-> PENDING_SELECTION: ambiguous requester/assignee
        COLLECTING -> READY: draft has requester and problem
        READY -> CREATED: backend returned a ticket id
        CREATED -> FINALIZED: end command (session removed)

    FINALIZED is never stored; a finalized session no longer exists.
    """

    NO_SESSION = "no_session"
    AWAITING_FIRST_DATA = "awaiting_first_data"
    COLLECTING = "collecting"
    PENDING_SELECTION = "pending_selection"
    READY = "ready"
    CREATED = "created"
    FINALIZED = "finalized"


class EnumResolutionStatus(StrEnum):
    """Outcome of resolving one role value to a backend user."""

    RESOLVED = "resolved"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"
    NO_VALUE = "no_value"
    REJECTED = "rejected"


class EnumSearchType(StrEnum):
    """GLPI search operators used by user lookups."""

    EQUALS = "equals"
    CONTAINS = "contains"


__all__ = [
    "EnumResolutionStatus",
    "EnumRole",
    "EnumSearchType",
    "EnumSessionState",
    "RolePolicy",
]
