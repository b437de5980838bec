# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Interactive choice between several matching users.

An ambiguous lookup is offered to the user as a single-choice poll. When
the channel cannot deliver polls, a numbered list is sent as text and the
reply is matched by 1-based index or by an exact normalized name, reversed
name, login or offered label.

Option Labels:
    Each option shows the candidate's full name. The login is appended in
    parentheses only when two offered candidates share the same normalized
    name, so the user can tell them apart.
"""

from __future__ import annotations

import logging

from chatdesk.channel import REACT_SEARCHING, try_react, try_send_poll
from chatdesk.enums import EnumRole
from chatdesk.models import (
    PendingSelection,
    PollVote,
    TicketSession,
    UserCandidate,
)
from chatdesk.protocols import ProtocolReplyContext
from chatdesk.text import normalize_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_CANDIDATES = 10


def build_option_labels(candidates: list[UserCandidate]) -> list[str]:
    names = [candidate.display_name for candidate in candidates]
    normalized = [normalize_text(name) for name in names]
    labels = []
    for candidate, name, key in zip(candidates, names, normalized, strict=True):
        if normalized.count(key) > 1:
            labels.append(candidate.label_with_login)
        else:
            labels.append(name)
    return labels


def build_numbered_prompt(
    candidates: list[UserCandidate], total: int
) -> str:
    lines = [
        f"{index}) {candidate.label_with_login}"
        for index, candidate in enumerate(candidates, start=1)
    ]
    prompt = (
        "No pude enviar la encuesta. Responde con el nombre completo o el "
        "numero de la lista:\n" + "\n".join(lines)
    )
    if total > len(candidates):
        prompt += (
            f"\n(Mostrando {len(candidates)} de {total}. Si no esta en la lista, "
            "envia el DNI o un nombre mas especifico.)"
        )
    return prompt


async def offer(
    context: ProtocolReplyContext,
    role: EnumRole,
    candidates: list[UserCandidate],
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
) -> PendingSelection:
    """Present *candidates* for *role* and return the open selection."""
    limited = candidates[:max_candidates]
    labels = build_option_labels(limited)
    await try_react(context, REACT_SEARCHING)

    poll_id = await try_send_poll(
        context, f"Selecciona {role.policy.label} del ticket", labels
    )
    selection = PendingSelection(
        role=role,
        candidates=limited,
        labels=labels,
        poll_delivered=poll_id is not None,
        poll_id=poll_id,
    )
    logger.info(
        "Candidate selection offered",
        extra={
            "role": str(role),
            "candidates": len(limited),
            "total_candidates": len(candidates),
            "poll": selection.poll_delivered,
        },
    )
    if not selection.poll_delivered:
        await context.reply(build_numbered_prompt(limited, len(candidates)))
    return selection


def match_candidate_input(
    text: str,
    candidates: list[UserCandidate],
    labels: list[str] | None = None,
) -> UserCandidate | None:
    """Match a reply against offered candidates.

    Accepts a 1-based list index, or an exact normalized full name,
    ``last first`` name, login or offered option label.
    """
    trimmed = text.strip()
    if not trimmed:
        return None
    if trimmed.isdigit():
        index = int(trimmed)
        if 1 <= index <= len(candidates):
            return candidates[index - 1]

    normalized = normalize_text(trimmed)
    for candidate in candidates:
        if normalized in candidate.match_keys():
            return candidate
    for candidate, label in zip(candidates, labels or [], strict=False):
        if normalize_text(label) == normalized:
            return candidate
    return None


def match_poll_vote(
    selection: PendingSelection, vote: PollVote
) -> UserCandidate | None:
    """Selected option index first, then the selected option's label."""
    if vote.selected_indexes:
        index = vote.selected_indexes[0]
        if 0 <= index < len(selection.candidates):
            return selection.candidates[index]
    if vote.selected_labels:
        return match_candidate_input(
            vote.selected_labels[0], selection.candidates, selection.labels
        )
    return None


def apply_candidate(
    session: TicketSession, role: EnumRole, candidate: UserCandidate
) -> None:
    """Cache the chosen user and back-fill empty requester details."""
    session.set_resolved_id(role, candidate.id)
    if role is EnumRole.REQUESTER and session.draft is not None:
        filled = session.draft.fill_from_candidate(candidate)
        session.backfilled_fields.update(filled)


__all__ = [
    "DEFAULT_MAX_CANDIDATES",
    "apply_candidate",
    "build_numbered_prompt",
    "build_option_labels",
    "match_candidate_input",
    "match_poll_vote",
    "offer",
]
