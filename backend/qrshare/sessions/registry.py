"""In-memory session registry with absolute expiry deadlines.

Sessions are NEVER written to disk. The registry lives for the process
lifetime only; the ExpirySweeper evicts entries past their deadline.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional

from qrshare.errors import InvalidRequest

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60


@dataclass(frozen=True)
class Session:
    """Snapshot of a pairing session.

    Attributes:
        id: Opaque unique identifier handed out for pairing.
        expires_at: Absolute deadline (seconds since epoch). Never renewed.
        files: Names uploaded through this session, in upload order.
    """
    id:         str
    expires_at: float
    files:      List[str] = field(default_factory=list)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SessionRegistry:
    """Thread-safe owner of all session records, keyed by session id."""

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self.default_ttl_seconds = default_ttl_seconds
        self.max_ttl_seconds = max_ttl_seconds
        self.clock = clock

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, ttl_seconds: Optional[float] = None) -> str:
        """Create an empty session and return its identifier.

        Raises:
            InvalidRequest: If *ttl_seconds* is not positive.
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise InvalidRequest(f"Session TTL must be positive, got {ttl}")
        if self.max_ttl_seconds is not None and ttl > self.max_ttl_seconds:
            logger.info("[SESSION] TTL %ss clamped to %ss", ttl, self.max_ttl_seconds)
            ttl = self.max_ttl_seconds

        session_id = str(uuid.uuid4())
        session = Session(id=session_id, expires_at=self.clock() + ttl)
        with self._lock:
            self._sessions[session_id] = session
        logger.info("[SESSION] Created %s (TTL=%ss)", session_id, ttl)
        return session_id

    def get(self, session_id: str) -> Optional[Session]:
        """Return a snapshot of the session, or None if unknown."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return replace(session, files=list(session.files))

    def record_file(self, session_id: str, name: str) -> bool:
        """Append *name* to the session's file list (once).

        Returns:
            False if the session is unknown, True otherwise.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                found = False
            else:
                found = True
                if name not in session.files:
                    self._sessions[session_id] = replace(
                        session, files=session.files + [name]
                    )
        if not found:
            logger.warning("[SESSION] record_file for unknown session %s (%s)", session_id, name)
        return found

    def pop(self, session_id: str) -> Optional[Session]:
        """Remove the session and return it, or None if it was not present."""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def delete(self, session_id: str) -> List[str]:
        """Remove the session and return the file names it produced.

        Unknown identifiers yield an empty list.
        """
        session = self.pop(session_id)
        if session is None:
            logger.debug("[SESSION] delete: %s not found", session_id)
            return []
        return list(session.files)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_live(self, session_id: str) -> bool:
        """Return True if the session exists and has not reached its deadline."""
        now = self.clock()
        with self._lock:
            session = self._sessions.get(session_id)
        return session is not None and not session.is_expired(now)

    def expired(self, now: Optional[float] = None) -> List[str]:
        """Return the ids of all sessions whose deadline is at or before *now*."""
        if now is None:
            now = self.clock()
        with self._lock:
            return [sid for sid, s in self._sessions.items() if s.is_expired(now)]

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
