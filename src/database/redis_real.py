"""
Real Redis-backed session store for production when REDIS_URL is set.
Implements the same interface as src.database.redis (in-memory stub).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import redis

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Redis-backed session cache. Use when REDIS_URL is set in production.
    """

    def __init__(self, url: str = "", default_ttl: int = 1800, client: Optional[redis.Redis] = None) -> None:
        self._client = client if client is not None else redis.from_url(url, decode_responses=True)
        self._default_ttl = default_ttl

    @staticmethod
    def _key(session_id: str) -> str:
        return f"session:{session_id}"

    def set_session(self, session_id: str, data: Dict[str, Any], ttl: int = 1800) -> None:
        payload = json.dumps(data, default=str)
        self._client.setex(self._key(session_id), ttl or self._default_ttl, payload)

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        raw = self._client.get(self._key(session_id))
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable session payload for %s", session_id)
            return None

    def update_session(self, session_id: str, updates: Dict[str, Any]) -> None:
        existing = self.get_session(session_id)
        if not existing:
            return
        existing.update(updates)
        ttl = self._client.ttl(self._key(session_id))
        self.set_session(session_id, existing, ttl=ttl if isinstance(ttl, int) and ttl > 0 else self._default_ttl)

    def delete_session(self, session_id: str) -> None:
        self._client.delete(self._key(session_id))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False
