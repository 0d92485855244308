"""
In-memory store for sessions waiting on a human approval.

Sessions expire lazily on read and are also swept by a background task, so
memory stays bounded even when nobody reads them again.
"""
import asyncio
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from .models import Session, SessionState, SessionStats
from .settings import SESSION_SWEEP_INTERVAL_S, SESSION_TTL_S

logger = logging.getLogger(__name__)

EXPIRING_SOON = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    def __init__(
        self,
        ttl_s: float = SESSION_TTL_S,
        sweep_interval_s: float = SESSION_SWEEP_INTERVAL_S,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_s)
        self.sweep_interval_s = sweep_interval_s
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._sweeper: Optional[asyncio.Task] = None
        logger.info(f"Session store ready (ttl={ttl_s}s, sweep every {sweep_interval_s}s)")

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return now >= session.expires_at

    def create(self, session_id: str, data: Dict[str, Any]) -> bool:
        now = self._clock()
        try:
            self._sessions[session_id] = Session(
                **{**data, "id": session_id, "created_at": now, "expires_at": now + self.ttl}
            )
        except Exception as e:
            logger.error(f"Failed to create session {session_id}: {e}")
            return False
        logger.info(f"Session created: {session_id}")
        return True

    def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._is_expired(session, self._clock()):
            logger.info(f"Session expired: {session_id}")
            self.delete(session_id)
            return None
        return session

    def exists(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def update(self, session_id: str, changes: Dict[str, Any]) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        merged = {**session.model_dump(), **changes, "id": session_id, "created_at": self._clock()}
        try:
            self._sessions[session_id] = Session(**merged)
        except Exception as e:
            logger.error(f"Failed to update session {session_id}: {e}")
            return False
        logger.info(f"Session updated: {session_id}")
        return True

    def set_state(self, session_id: str, state: SessionState) -> bool:
        return self.update(session_id, {"state": state})

    def delete(self, session_id: str) -> bool:
        deleted = self._sessions.pop(session_id, None) is not None
        if deleted:
            logger.info(f"Session deleted: {session_id}")
        return deleted

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
        for sid in expired:
            self._sessions.pop(sid, None)
        if expired:
            logger.info(f"Swept {len(expired)} expired sessions")
        return len(expired)

    def stats(self) -> SessionStats:
        now = self._clock()
        total = len(self._sessions)
        active = 0
        expiring_soon = 0
        for session in self._sessions.values():
            if not self._is_expired(session, now):
                active += 1
                if session.expires_at - now < EXPIRING_SOON:
                    expiring_soon += 1
        return SessionStats(total=total, active=active, expiring_soon=expiring_soon, expired=total - active)

    def active_count(self) -> int:
        return self.stats().active

    def active_sessions(self) -> List[Dict[str, Any]]:
        now = self._clock()
        return [
            {**s.model_dump(), "time_remaining_s": (s.expires_at - now).total_seconds()}
            for s in self._sessions.values()
            if not self._is_expired(s, now)
        ]

    def clear(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        logger.info(f"Cleared all sessions: {count}")
        return count

    @staticmethod
    def generate_id(prefix: str = "VIDEO") -> str:
        # 48 random bits on top of the millisecond timestamp
        return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(6)}"

    # --- background sweep ---

    async def _sweep_forever(self):
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            try:
                self.cleanup_expired()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")

    def start_sweeper(self) -> asyncio.Task:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())
            logger.info("Session sweeper started")
        return self._sweeper

    async def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Session sweeper stopped")
