import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional


@dataclass
class ContactSession:
    """Process-lifetime, per-contact state. Not persisted: resets on restart."""

    contact_key: str
    question_count: int = 0
    ai_reply_count: int = 0
    last_seen: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_seen = now or datetime.now(timezone.utc)


class SessionStore:
    """Keyed map of contact sessions with idle eviction."""

    def __init__(self, idle_ttl_seconds: int = 6 * 3600):
        self.idle_ttl_seconds = idle_ttl_seconds
        self._sessions: Dict[str, ContactSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, contact_key: str) -> bool:
        return contact_key in self._sessions

    def get(self, contact_key: str) -> ContactSession:
        session = self._sessions.get(contact_key)
        if session is None:
            session = ContactSession(contact_key=contact_key)
            self._sessions[contact_key] = session
        session.touch()
        return session

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        stale = [
            key
            for key, session in self._sessions.items()
            if not session.lock.locked() and (now - session.last_seen).total_seconds() > self.idle_ttl_seconds
        ]
        for key in stale:
            del self._sessions[key]
        return len(stale)
