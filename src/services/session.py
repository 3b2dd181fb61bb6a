from __future__ import annotations

import time
from typing import Callable, Dict, Optional

from services.map_state import MapState


class SessionManager:
    """In-memory registry of per-user map state with idle expiry."""

    def __init__(self, factory: Callable[[str], MapState], ttl_sec: int = 3600) -> None:
        self.factory = factory
        self.ttl_sec = ttl_sec
        self._sessions: Dict[str, MapState] = {}
        self._last_access: Dict[str, float] = {}

    def get(self, uid: str) -> MapState:
        """Return the user's map state, creating it on first access."""
        if not uid:
            raise ValueError("uid is required")
        self._cleanup()
        state = self._sessions.get(uid)
        if state is None:
            state = self.factory(uid)
            self._sessions[uid] = state
        self._last_access[uid] = time.time()
        return state

    def peek(self, uid: str) -> Optional[MapState]:
        return self._sessions.get(uid)

    def reset(self, uid: str) -> None:
        """Forget a user's state and stop its event consumer."""
        if not uid:
            return
        self._last_access.pop(uid, None)
        state = self._sessions.pop(uid, None)
        if state is not None:
            state.stop()

    def _cleanup(self) -> None:
        """Remove expired sessions."""
        now = time.time()
        expired = [
            uid for uid, last in self._last_access.items()
            if now - last > self.ttl_sec
        ]
        for uid in expired:
            self._sessions.pop(uid).stop()
            del self._last_access[uid]
