"""
Lightweight in-memory RedisCache replacement for local development.

Holds the per-browser session records (admin login flow state, delegation
token, session parameters) so the FastAPI app can run without a real Redis
instance. TTLs are honoured on read, and expired records are pruned on every
write.
"""

from __future__ import annotations

import copy
import time
from typing import Any, Callable, Dict, Optional, Tuple


class RedisCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        # session_id -> (expires_at, data)
        self._sessions: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._clock = clock

    # --- Session helpers -------------------------------------------------------

    def set_session(self, session_id: str, data: Dict[str, Any], ttl: int = 1800) -> None:
        now = self._clock()
        self._prune(now)
        self._sessions[session_id] = (now + ttl, copy.deepcopy(data))

    def _prune(self, now: float) -> None:
        expired = [sid for sid, (expires_at, _) in self._sessions.items() if now >= expires_at]
        for sid in expired:
            del self._sessions[sid]

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        expires_at, data = entry
        if self._clock() >= expires_at:
            del self._sessions[session_id]
            return None
        return copy.deepcopy(data)

    def update_session(self, session_id: str, updates: Dict[str, Any]) -> None:
        entry = self._sessions.get(session_id)
        if entry is None or self._clock() >= entry[0]:
            return
        entry[1].update(copy.deepcopy(updates))

    def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    # --- Misc -----------------------------------------------------------------

    def ping(self) -> bool:
        """
        Health check calls this; always return True so the API reports the
        session store as "connected" in local/dev mode.
        """
        return True
