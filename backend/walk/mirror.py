# walk/mirror.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, asdict, replace

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Cache backends raise redis errors (Redis) or socket errors on timeouts
CACHE_ERRORS = (RedisError, OSError)


@dataclass(frozen=True)
class EphemeralSessionView:
    session_id: str
    user_id: int
    stake: int
    started_at: str  # ISO-8601, aware
    hazard_second: int | None
    status: str
    last_heartbeat: float | None = None

    @classmethod
    def from_session(cls, session) -> EphemeralSessionView:
        return cls(
            session_id=str(session.pk),
            user_id=session.user_id,
            stake=session.stake,
            started_at=session.created_at.isoformat(),
            hazard_second=session.hazard_second,
            status=session.status,
        )

    @classmethod
    def from_dict(cls, data: dict) -> EphemeralSessionView:
        return cls(
            session_id=str(data["session_id"]),
            user_id=int(data["user_id"]),
            stake=int(data["stake"]),
            started_at=str(data["started_at"]),
            hazard_second=data.get("hazard_second"),
            status=data["status"],
            last_heartbeat=data.get("last_heartbeat"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


class SessionMirror:
    """
    Low-latency copy of live sessions in a Django cache.

    Never authoritative: the durable store wins every disagreement, and a
    missing entry only means "ask the database".
    """

    SESSION_KEY = "walk:session:{}"
    USER_KEY = "walk:user:{}:sessions"

    def __init__(self, cache, ttl_seconds: int):
        self.cache = cache
        self.ttl = ttl_seconds

    def put(self, view: EphemeralSessionView) -> bool:
        try:
            self.cache.set(self.SESSION_KEY.format(view.session_id), view.to_dict(), timeout=self.ttl)
            ids = self.cache.get(self.USER_KEY.format(view.user_id)) or []
            if view.session_id not in ids:
                ids = [*ids, view.session_id]
            self.cache.set(self.USER_KEY.format(view.user_id), ids, timeout=self.ttl)
            return True
        except CACHE_ERRORS:
            logger.warning("mirror put failed for session %s", view.session_id, exc_info=True)
            return False

    def get(self, session_id) -> EphemeralSessionView | None:
        try:
            data = self.cache.get(self.SESSION_KEY.format(session_id))
        except CACHE_ERRORS:
            logger.warning("mirror read failed for session %s", session_id, exc_info=True)
            return None
        if not data:
            return None
        try:
            return EphemeralSessionView.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("mirror entry for session %s is malformed, dropping", session_id)
            self._delete_key(self.SESSION_KEY.format(session_id))
            return None

    def delete(self, session_id, user_id) -> None:
        session_id = str(session_id)
        self._delete_key(self.SESSION_KEY.format(session_id))
        try:
            key = self.USER_KEY.format(user_id)
            ids = self.cache.get(key) or []
            remaining = [sid for sid in ids if sid != session_id]
            if remaining:
                self.cache.set(key, remaining, timeout=self.ttl)
            else:
                self.cache.delete(key)
        except CACHE_ERRORS:
            logger.warning("mirror index cleanup failed for user %s", user_id, exc_info=True)

    def session_ids_for(self, user_id) -> list[str]:
        """Ids the mirror believes are live for ``user_id``; expired entries are skipped."""
        try:
            ids = self.cache.get(self.USER_KEY.format(user_id)) or []
        except CACHE_ERRORS:
            logger.warning("mirror index read failed for user %s", user_id, exc_info=True)
            return []
        live = []
        for sid in ids:
            view = self.get(sid)
            if view is not None and view.user_id == int(user_id) and view.status == "ACTIVE":
                live.append(sid)
        return live

    def touch(self, session_id) -> EphemeralSessionView | None:
        """Heartbeat: refresh the TTL and stamp the time. Does not extend reaper liveness."""
        view = self.get(session_id)
        if view is None:
            return None
        view = replace(view, last_heartbeat=time.time())
        self.put(view)
        return view

    def _delete_key(self, key: str) -> None:
        try:
            self.cache.delete(key)
        except CACHE_ERRORS:
            logger.warning("mirror delete failed for %s", key, exc_info=True)
