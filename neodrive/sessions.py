# Filename: neodrive/sessions.py
"""In-memory session store.

Sessions map an opaque token (delivered as an HTTP-only cookie) to the
authenticated identity. They live in process memory only: a restart logs
everybody out.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional
import logging
import secrets
import threading

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: str
    email: str
    subscription_tier: str


@dataclass(frozen=True)
class Session:
    session_id: str
    user_id: str
    display_name: str
    email: str
    subscription_tier: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class SessionStore:
    def __init__(self, ttl: timedelta = timedelta(days=7), clock: Callable[[], datetime] = _utcnow):
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, identity: Identity) -> str:
        token = secrets.token_hex(32)
        now = self._clock()
        session = Session(
            session_id=token,
            user_id=identity.user_id,
            display_name=identity.display_name,
            email=identity.email,
            subscription_tier=identity.subscription_tier,
            created_at=now,
            expires_at=now + self.ttl,
        )
        with self._lock:
            self._sessions[token] = session
        logger.info("Created session for user %s", identity.user_id)
        return token

    def get(self, token: Optional[str]) -> Optional[Session]:
        if not token:
            return None
        with self._lock:
            session = self._sessions.get(token)
        if session is None or session.is_expired(self._clock()):
            return None
        return session

    def touch(self, token: str) -> Optional[Session]:
        """Slide the expiration of a live session forward by the TTL."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None or session.is_expired(now):
                return None
            session = replace(session, expires_at=now + self.ttl)
            self._sessions[token] = session
        return session

    def revoke(self, token: Optional[str]) -> bool:
        if not token:
            return False
        with self._lock:
            removed = self._sessions.pop(token, None)
        return removed is not None

    def update_identity(self, user_id: str, **changes) -> int:
        """Apply identity changes (display_name, subscription_tier, email) to every session of a user."""
        updated = 0
        with self._lock:
            for token, session in list(self._sessions.items()):
                if session.user_id == user_id:
                    self._sessions[token] = replace(session, **changes)
                    updated += 1
        return updated

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [token for token, session in self._sessions.items() if session.is_expired(now)]
            for token in expired:
                del self._sessions[token]
        logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
