# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Identity resolution: raw requester/assignee text to a GLPI user.

Resolution Order:
    1. Empty value: the requester falls back to the configured default
       requester (resolved once per process); the assignee yields NO_VALUE.
    2. Exactly 8 digits: national-ID lookup. National-ID fields (equals,
       then contains), the login field (equals, then contains), and the
       generic free-text search. An invalid national-ID field id raises
       InvalidFieldMappingError instead of reporting "not found".
    3. Anything else: name lookup, rejected when the caller disallows names
       or when the value has fewer tokens than the role's policy requires.
       Strategies run in order and the first that yields at least one
       candidate after client-side filtering wins:

           strict partitions (equals) -> partitions (contains)
           -> single-field queries -> login field -> bounded full scan

Organizational Scoping:
    When GLPI_USER_ENTITY_ID is set and the backend exposes an entity
    search field, each query is first scoped to that entity and retried
    unscoped when the scoped query returns nothing.

Not-found and ambiguous lookups are results, not exceptions. Backend
failures (GlpiRequestError, GlpiNotConfiguredError,
InvalidFieldMappingError) propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chatdesk.config import ConfigGlpi
from chatdesk.enums import EnumResolutionStatus, EnumRole, EnumSearchType
from chatdesk.errors import GlpiRequestError
from chatdesk.glpi.search import SearchCriterion, dedupe_candidates
from chatdesk.identity.partitions import (
    SearchAttempt,
    build_partition_attempts,
    build_single_field_attempts,
)
from chatdesk.models import UserCandidate
from chatdesk.protocols import ProtocolTicketingBackend
from chatdesk.text import extract_national_id, normalize_text, tokenize

logger = logging.getLogger(__name__)

_NATIONAL_ID_RANGE = "0-10"


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of resolving one role value.

    Attributes:
        status: RESOLVED, AMBIGUOUS, NOT_FOUND, NO_VALUE or REJECTED.
        candidate: The single match when RESOLVED.
        candidates: All matches when AMBIGUOUS.
        message: User-facing explanation for NOT_FOUND, NO_VALUE and
            REJECTED results.
    """

    status: EnumResolutionStatus
    candidate: UserCandidate | None = None
    candidates: tuple[UserCandidate, ...] = ()
    message: str | None = None

    @classmethod
    def from_candidates(
        cls, candidates: list[UserCandidate], not_found_message: str
    ) -> ResolutionResult:
        if not candidates:
            return cls(EnumResolutionStatus.NOT_FOUND, message=not_found_message)
        if len(candidates) == 1:
            return cls(EnumResolutionStatus.RESOLVED, candidate=candidates[0])
        return cls(EnumResolutionStatus.AMBIGUOUS, candidates=tuple(candidates))


def matches_name_tokens(candidate: UserCandidate, value: str) -> bool:
    """True when every token of *value* occurs in the candidate's name/login."""
    text = candidate.searchable_text()
    return all(token in text for token in normalize_text(value).split())


class IdentityResolver:
    """Resolve requester and assignee values against the ticketing backend.

    Args:
        backend: Ticketing backend used for user searches.
        config: GLPI settings (default requester, entity scope, scan bounds).
    """

    def __init__(
        self, backend: ProtocolTicketingBackend, config: ConfigGlpi
    ) -> None:
        self._backend = backend
        self._config = config
        self._default_requester: UserCandidate | None = None

    # =========================================================================
    # Public API
    # =========================================================================

    async def resolve(
        self, role: EnumRole, value: str | None, allow_name_lookup: bool = True
    ) -> ResolutionResult:
        """Resolve *value* for *role*.

        Raises:
            GlpiNotConfiguredError: If the backend is disabled.
            InvalidFieldMappingError: If a national-ID field id is rejected.
            GlpiRequestError: On backend request failures.
        """
        policy = role.policy
        trimmed = (value or "").strip()
        if not trimmed:
            return await self._resolve_empty(role)

        national_id = extract_national_id(trimmed)
        if national_id:
            candidates = await self.find_by_national_id(national_id)
            return ResolutionResult.from_candidates(
                candidates, f"No se encontro {policy.label} con DNI {national_id}."
            )

        if not allow_name_lookup:
            return ResolutionResult(
                EnumResolutionStatus.REJECTED,
                message=(
                    f"El {policy.label} debe enviarse como DNI para asignacion exacta."
                ),
            )

        if len(tokenize(trimmed)) < policy.min_name_tokens:
            return ResolutionResult(
                EnumResolutionStatus.REJECTED,
                message=f"Para el {policy.label} usa DNI o nombre y apellido.",
            )

        candidates = await self.find_by_name(trimmed)
        if role is EnumRole.REQUESTER:
            not_found = "No se encontro solicitante con ese nombre. Envia DNI."
        else:
            not_found = (
                f"No se encontro {policy.label} con nombre '{trimmed}'. Envia DNI."
            )
        return ResolutionResult.from_candidates(candidates, not_found)

    async def resolve_default_requester(self) -> UserCandidate | None:
        """Resolve the configured default requester; cached after success."""
        name = self._config.default_requester.strip()
        if not name:
            return None
        if self._default_requester is not None:
            return self._default_requester
        matches = await self.find_by_name(name)
        if len(matches) != 1:
            logger.warning(
                "Default requester did not resolve to exactly one user",
                extra={"default_requester": name, "matches": len(matches)},
            )
            return None
        self._default_requester = matches[0]
        return self._default_requester

    async def _resolve_empty(self, role: EnumRole) -> ResolutionResult:
        if not role.policy.uses_default_requester:
            return ResolutionResult(EnumResolutionStatus.NO_VALUE)
        fallback = await self.resolve_default_requester()
        if fallback is None:
            return ResolutionResult(
                EnumResolutionStatus.NO_VALUE, message="Falta SOLICITANTE."
            )
        return ResolutionResult(EnumResolutionStatus.RESOLVED, candidate=fallback)

    # =========================================================================
    # Scoped Search
    # =========================================================================

    async def _scope_entity_id(self) -> str | None:
        entity_id = self._config.user_entity_id.strip()
        if not entity_id:
            return None
        if await self._backend.entity_field_id() is None:
            return None
        return entity_id

    async def _search(
        self,
        criteria: SearchAttempt,
        search_type: EnumSearchType,
        range_: str | None = None,
    ) -> list[UserCandidate]:
        range_ = range_ or self._config.search_range
        entity_id = await self._scope_entity_id()
        if entity_id:
            scoped = await self._backend.search_users(
                criteria, range_, search_type, entity_id=entity_id
            )
            if scoped:
                return dedupe_candidates(scoped)
            logger.debug(
                "Scoped search empty, retrying unscoped",
                extra={"entity_id": entity_id},
            )
        results = await self._backend.search_users(criteria, range_, search_type)
        return dedupe_candidates(results)

    # =========================================================================
    # National-ID Lookup
    # =========================================================================

    async def find_by_national_id(self, national_id: str) -> list[UserCandidate]:
        """Candidates for an 8-digit national ID, most exact strategy first."""
        field_ids = await self._backend.national_id_field_ids()
        for search_type in (EnumSearchType.EQUALS, EnumSearchType.CONTAINS):
            results: list[UserCandidate] = []
            for field_id in field_ids:
                criteria = [SearchCriterion(field=field_id, value=national_id)]
                results.extend(
                    await self._search(criteria, search_type, _NATIONAL_ID_RANGE)
                )
            if results:
                return dedupe_candidates(results)

        login_field = await self._backend.login_field_id()
        for search_type in (EnumSearchType.EQUALS, EnumSearchType.CONTAINS):
            criteria = [SearchCriterion(field=login_field, value=national_id)]
            results = await self._search(criteria, search_type, _NATIONAL_ID_RANGE)
            if results:
                return results

        try:
            return dedupe_candidates(await self._backend.search_text_users(national_id))
        except GlpiRequestError as e:
            logger.debug(
                "Free-text user search failed",
                extra={"error": str(e)},
            )
            return []

    # =========================================================================
    # Name Lookup
    # =========================================================================

    async def _first_matching_attempt(
        self,
        strategy: str,
        attempts: list[SearchAttempt],
        search_type: EnumSearchType,
        value: str,
    ) -> list[UserCandidate]:
        for criteria in attempts:
            results = await self._search(criteria, search_type)
            filtered = [c for c in results if matches_name_tokens(c, value)]
            if filtered:
                logger.debug(
                    "Name lookup matched",
                    extra={"strategy": strategy, "candidates": len(filtered)},
                )
                return filtered
        return []

    async def find_by_name(self, value: str) -> list[UserCandidate]:
        """Candidates for a person name, first successful strategy wins."""
        trimmed = value.strip()
        if not trimmed:
            return []

        attempt_strategies = (
            (
                "strict_partitions",
                build_partition_attempts(trimmed, EnumSearchType.EQUALS),
                EnumSearchType.EQUALS,
            ),
            (
                "partitions",
                build_partition_attempts(trimmed),
                EnumSearchType.CONTAINS,
            ),
            (
                "single_field",
                build_single_field_attempts(trimmed),
                EnumSearchType.CONTAINS,
            ),
        )
        for strategy, attempts, search_type in attempt_strategies:
            candidates = await self._first_matching_attempt(
                strategy, attempts, search_type, trimmed
            )
            if candidates:
                return candidates

        candidates = await self._search_login(trimmed)
        if candidates:
            return candidates
        return await self.scan_users(trimmed)

    async def _search_login(self, value: str) -> list[UserCandidate]:
        login_field = await self._backend.login_field_id()
        criteria = [SearchCriterion(field=login_field, value=value)]
        results = await self._search(criteria, EnumSearchType.CONTAINS)
        return [c for c in results if matches_name_tokens(c, value)]

    async def scan_users(self, value: str) -> list[UserCandidate]:
        """Page through all users filtering client-side.

        Bounded by max_scan_users users read and max_scan_results matches.
        """
        max_users = self._config.max_scan_users
        if max_users <= 0:
            return []
        page_size = self._config.scan_page_size
        matches: list[UserCandidate] = []
        start = 0
        users_read = 0
        while start < max_users:
            limit = min(page_size, max_users - start)
            page = await self._backend.list_users(start, limit)
            users_read += len(page)
            for candidate in page:
                if matches_name_tokens(candidate, value):
                    matches.append(candidate)
                    if len(matches) >= self._config.max_scan_results:
                        return dedupe_candidates(matches)
            if len(page) < limit:
                break
            start += limit
        logger.debug(
            "Full user scan finished",
            extra={"users_read": users_read, "candidates": len(matches)},
        )
        return dedupe_candidates(matches)


__all__ = ["IdentityResolver", "ResolutionResult", "matches_name_tokens"]
