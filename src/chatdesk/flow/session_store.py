# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""In-memory ticket session store with per-key serialization.

Sessions live only in process memory and are owned by the ticket flow
engine. Every inbound event for a session key is handled inside
``async with store.lock(key)``, so events for the same (conversation,
sender) pair run strictly in arrival order, including their awaited
backend and channel calls, while different keys proceed concurrently.

Lock Lifecycle:
    A key's lock is created on first use and reference counted by the
    tasks holding or waiting for it. When the last one leaves, the lock is
    dropped so idle conversations do not accumulate locks.
    asyncio.Lock wakes waiters in FIFO order, which gives the arrival-order
    guarantee.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from chatdesk.models import TicketSession

logger = logging.getLogger(__name__)


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionStore:
    """Key-indexed ticket sessions plus a per-key lock.

    Example:
        >>> store = SessionStore()
        >>> async with store.lock("chat-1:51987654321"):  # doctest: +SKIP
        ...     session = store.get("chat-1:51987654321")
    """

    def __init__(self) -> None:
        self._sessions: dict[str, TicketSession] = {}
        self._key_locks: dict[str, _KeyLock] = {}
        self._locks_lock = asyncio.Lock()  # Guards _key_locks

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def get(self, key: str) -> TicketSession | None:
        return self._sessions.get(key)

    def put(self, session: TicketSession) -> None:
        """Store *session*, replacing any session under the same key."""
        replaced = session.key in self._sessions
        self._sessions[session.key] = session
        if replaced:
            logger.debug("Session replaced", extra={"session_key": session.key})

    def delete(self, key: str) -> bool:
        return self._sessions.pop(key, None) is not None

    def lock_count(self) -> int:
        """Number of keys that currently have a live lock."""
        return len(self._key_locks)

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        """Serialize work for *key*; waiters run in arrival order."""
        async with self._locks_lock:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = _KeyLock()
                self._key_locks[key] = entry
            entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            async with self._locks_lock:
                entry.users -= 1
                if entry.users == 0 and self._key_locks.get(key) is entry:
                    del self._key_locks[key]


__all__ = ["SessionStore"]
