"""In-memory registry mapping session ids to conversation state."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from pathway_core.errors import SessionAgentMismatchError, ValidationError

logger = logging.getLogger(__name__)

StateFactory = Callable[[str], Any]


@dataclass
class Session:
    """A conversation bound to exactly one agent for its lifetime."""

    id: str
    agent: str
    user_id: str
    state: Any
    created_at: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    last_used: float = 0.0
    # Turns that claimed this session and have not released it yet.
    active_turns: int = field(default=0, compare=False)
    # Serializes turns on this session; different sessions never share it.
    turn_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def in_use(self) -> bool:
        return self.active_turns > 0 or self.turn_lock.locked()


class SessionRegistry:
    """Keyed session store with idle expiry and a capacity bound.

    ``get_or_create`` builds state with the caller's factory inside the
    registry lock, so concurrent first use of one id yields a single state
    object. The factory must be local and fast; nothing in the critical
    section may wait on the network.

    Sessions in use (claimed and not yet released, or holding their turn
    lock) are never expired or evicted, so the registry may briefly exceed
    ``max_sessions`` while every session is busy.
    """

    def __init__(
        self,
        *,
        ttl_seconds: Optional[float] = 3600.0,
        max_sessions: Optional[int] = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive or None.")
        if max_sessions is not None and max_sessions <= 0:
            raise ValueError("max_sessions must be positive or None.")

        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()
        self._lock = threading.Lock()

    def get_or_create(
        self,
        session_id: str,
        agent: str,
        factory: StateFactory,
        *,
        user_id: str = "",
        claim: bool = False,
    ) -> Session:
        """Return the session for ``session_id``, creating it on first use.

        With ``claim=True`` the session is marked in use before the lock is
        released; the caller must hand it back with ``release``.
        """

        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("Session id must be a non-empty string.")
        if not isinstance(agent, str) or not agent.strip():
            raise ValidationError("Agent identity must be a non-empty string.")

        with self._lock:
            now = self._clock()
            self._purge_expired_locked(now)

            session = self._sessions.get(session_id)
            if session is not None:
                if session.agent != agent:
                    raise SessionAgentMismatchError(session_id, session.agent, agent)
                session.last_used = now
                if claim:
                    session.active_turns += 1
                self._sessions.move_to_end(session_id)
                return session

            session = Session(
                id=session_id,
                agent=agent,
                user_id=user_id,
                state=factory(session_id),
                last_used=now,
                active_turns=1 if claim else 0,
            )
            self._sessions[session_id] = session
            self._evict_over_capacity_locked(keep=session_id)

        logger.info("Created session %s for agent %s", session_id, agent)
        return session

    def release(self, session: Session) -> None:
        """Hand back a session claimed through ``get_or_create``."""

        with self._lock:
            if session.active_turns > 0:
                session.active_turns -= 1
            session.last_used = self._clock()

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            self._purge_expired_locked(self._clock())
            return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> List[str]:
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    # ------------------------------------------------------------------ #
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------ #

    def _purge_expired_locked(self, now: float) -> List[str]:
        if self.ttl_seconds is None:
            return []
        expired = [
            key
            for key, session in self._sessions.items()
            if not session.in_use and now - session.last_used > self.ttl_seconds
        ]
        for key in expired:
            del self._sessions[key]
        if expired:
            logger.debug("Expired %s idle sessions", len(expired))
        return expired

    def _evict_over_capacity_locked(self, *, keep: str) -> None:
        if self.max_sessions is None:
            return
        overflow = len(self._sessions) - self.max_sessions
        if overflow <= 0:
            return
        # Oldest first; the new session and sessions with a turn in flight stay.
        idle = [
            key for key, session in self._sessions.items() if key != keep and not session.in_use
        ][:overflow]
        for key in idle:
            del self._sessions[key]
            logger.debug("Evicted least recently used session %s", key)
        if len(idle) < overflow:
            logger.warning(
                "Session registry over capacity (%s/%s); remaining sessions are in use",
                len(self._sessions),
                self.max_sessions,
            )
