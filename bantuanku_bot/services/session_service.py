"""Per-phone conversation sessions kept in process memory.

Sessions expire after an idle window; expired entries are swept lazily on every
access. Each phone also gets an asyncio.Lock so one donor's messages are handled
strictly one after another while other donors proceed concurrently.
"""

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.flows.state import FlowState

logger = get_logger("session_service")

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_HISTORY_LIMIT = 20


@dataclass
class ChatMessage:
    role: str  # user, assistant
    content: str


@dataclass
class Session:
    phone: str
    profile_name: str = ""
    history: deque = field(default_factory=lambda: deque(maxlen=DEFAULT_HISTORY_LIMIT))
    donor_name: Optional[str] = None
    donor_email: Optional[str] = None
    donatur_id: Optional[str] = None
    flow: Optional[FlowState] = None
    last_activity: float = 0.0

    def remember(self, role: str, content: str) -> None:
        self.history.append(ChatMessage(role=role, content=content))

    def recent_history(self, limit: int = 10) -> list[ChatMessage]:
        return list(self.history)[-limit:]

    def end_flow(self) -> None:
        self.flow = None

    @property
    def is_registered(self) -> bool:
        return bool(self.donatur_id)


class SessionStore:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.history_limit = history_limit
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._guard = threading.Lock()

    def get_or_create(self, phone: str, profile_name: str = "") -> Session:
        now = self._clock()
        with self._guard:
            self._sweep(now)
            session = self._sessions.get(phone)
            if session is None:
                session = Session(
                    phone=phone,
                    profile_name=profile_name,
                    history=deque(maxlen=self.history_limit),
                )
                self._sessions[phone] = session
                logger.debug("Session created", extra={"context": {"phone": phone}})
            elif profile_name:
                session.profile_name = profile_name
            session.last_activity = now
            return session

    def get(self, phone: str) -> Optional[Session]:
        with self._guard:
            self._sweep(self._clock())
            return self._sessions.get(phone)

    def lock(self, phone: str) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(phone)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[phone] = lock
            return lock

    def evict_expired(self) -> int:
        with self._guard:
            return self._sweep(self._clock())

    def active_sessions(self) -> list[Session]:
        """Non-expired sessions, most recently active first."""
        with self._guard:
            self._sweep(self._clock())
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: s.last_activity, reverse=True)

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def _sweep(self, now: float) -> int:
        expired = [phone for phone, s in self._sessions.items() if now - s.last_activity > self.ttl_seconds]
        for phone in expired:
            self._sessions.pop(phone, None)
            lock = self._locks.get(phone)
            if lock is not None and not lock.locked():
                self._locks.pop(phone, None)
        if expired:
            logger.debug("Sessions evicted", extra={"context": {"count": len(expired)}})
        return len(expired)
