# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Search attempt generation for person-name lookups.

GLPI stores a person as ``firstname`` (search option 9) and ``realname``
(search option 34), but people type names in any order and with any
number of given names and surnames. A name is therefore tried as every
plausible first-name/last-name split:

    1. Contiguous splits: for every split point, ``head`` as first name and
       ``tail`` as last name, then the reverse assignment.
    2. Subset partitions (up to MAX_PARTITION_TOKENS tokens): every
       non-trivial bitmask over the tokens picks the first-name tokens; the
       remaining tokens form the last name. Token order inside each part is
       preserved.

With more than MAX_PARTITION_TOKENS tokens no partition attempts are
generated at all and the resolver goes straight to single-field queries,
bounding the number of backend requests per lookup.

Example:
    >>> [[(c.field, c.value) for c in a] for a in build_partition_attempts("Ana Rosa")]
    [[('9', 'Ana'), ('34', 'Rosa')], [('9', 'Rosa'), ('34', 'Ana')]]
"""

from __future__ import annotations

from chatdesk.enums import EnumSearchType
from chatdesk.glpi.search import (
    FIELD_FIRSTNAME,
    FIELD_REALNAME,
    SearchCriterion,
    criteria_key,
)
from chatdesk.text import tokenize

MAX_PARTITION_TOKENS = 6

SearchAttempt = list[SearchCriterion]


class _AttemptCollector:
    """Ordered attempt list that drops duplicates by normalized criteria."""

    def __init__(self, search_type: EnumSearchType) -> None:
        self._search_type = search_type
        self._seen: set[str] = set()
        self.attempts: list[SearchAttempt] = []

    def add(self, criteria: SearchAttempt) -> None:
        key = criteria_key(criteria, self._search_type)
        if key in self._seen:
            return
        self._seen.add(key)
        self.attempts.append(criteria)


def _name_pair(first: str, last: str) -> SearchAttempt:
    return [
        SearchCriterion(field=FIELD_FIRSTNAME, value=first),
        SearchCriterion(field=FIELD_REALNAME, value=last, link="AND"),
    ]


def iter_subset_partitions(tokens: list[str]) -> list[tuple[list[str], list[str]]]:
    """All (first, last) partitions of *tokens* with both parts non-empty."""
    partitions = []
    total = 1 << len(tokens)
    for mask in range(1, total - 1):
        first = [token for i, token in enumerate(tokens) if mask & (1 << i)]
        last = [token for i, token in enumerate(tokens) if not mask & (1 << i)]
        partitions.append((first, last))
    return partitions


def build_partition_attempts(
    value: str, search_type: EnumSearchType = EnumSearchType.CONTAINS
) -> list[SearchAttempt]:
    """Firstname AND realname attempts for a multi-token name."""
    tokens = tokenize(value)
    collector = _AttemptCollector(search_type)
    if len(tokens) < 2 or len(tokens) > MAX_PARTITION_TOKENS:
        return collector.attempts

    for split in range(1, len(tokens)):
        head = " ".join(tokens[:split])
        tail = " ".join(tokens[split:])
        collector.add(_name_pair(head, tail))
        collector.add(_name_pair(tail, head))

    for first, last in iter_subset_partitions(tokens):
        collector.add(_name_pair(" ".join(first), " ".join(last)))

    return collector.attempts


def build_single_field_attempts(
    value: str, search_type: EnumSearchType = EnumSearchType.CONTAINS
) -> list[SearchAttempt]:
    """Whole value, then each token, against firstname and realname alone."""
    collector = _AttemptCollector(search_type)
    trimmed = value.strip()
    if trimmed:
        collector.add([SearchCriterion(field=FIELD_FIRSTNAME, value=trimmed)])
        collector.add([SearchCriterion(field=FIELD_REALNAME, value=trimmed)])
    for token in tokenize(value):
        collector.add([SearchCriterion(field=FIELD_FIRSTNAME, value=token)])
        collector.add([SearchCriterion(field=FIELD_REALNAME, value=token)])
    return collector.attempts


__all__ = [
    "MAX_PARTITION_TOKENS",
    "SearchAttempt",
    "build_partition_attempts",
    "build_single_field_attempts",
    "iter_subset_partitions",
]
