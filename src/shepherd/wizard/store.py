"""In-memory store for live wizard sessions."""

from __future__ import annotations

import logging
from datetime import timedelta

from shepherd.core.clock import Clock, SystemClock
from shepherd.wizard.session import WizardSession

logger = logging.getLogger(__name__)


class SessionStore:
    """In-memory dict of live sessions, pruned by idle time.

    Suitable for single-instance deployment; drafts are never persisted.
    """

    def __init__(self, ttl_minutes: int = 120, clock: Clock | None = None) -> None:
        self._sessions: dict[str, WizardSession] = {}
        self._ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock or SystemClock()

    def save(self, session: WizardSession) -> None:
        self.prune()
        self._sessions[session.id] = session

    def get(self, session_id: str) -> WizardSession | None:
        self.prune()
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> WizardSession | None:
        return self._sessions.pop(session_id, None)

    def list_sessions(self, wizard_id: str | None = None) -> list[WizardSession]:
        return [
            s for s in self._sessions.values()
            if wizard_id is None or s.wizard_id == wizard_id
        ]

    def prune(self) -> int:
        """Drop sessions idle for longer than the TTL. Returns how many were dropped."""
        cutoff = self._clock.now() - self._ttl
        expired = [sid for sid, s in self._sessions.items() if s.touched_at < cutoff]
        for sid in expired:
            session = self._sessions.pop(sid)
            session.cancel()
        if expired:
            logger.debug("Pruned %d expired wizard sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
