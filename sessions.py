"""
Session Store - short-lived in-memory state for chat flows

Two kinds of entries, both self-expiring:
- session id -> source URL (keeps long URLs out of button payloads)
- chat id -> pending-range marker (next free text is a chapter count)

Nothing is persisted; a restart only means the user resends the link.
Expired entries read as absent immediately, and sweep() drops them from
memory (the bot runs it periodically).
"""

import itertools
import logging
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional

from config import PENDING_RANGE_TTL, SESSION_TTL
from models import PendingRange, SessionEntry

logger = logging.getLogger(__name__)


class SessionStore:
    """Owns session and pending-range state for the orchestration core"""

    def __init__(self,
                 session_ttl: float = SESSION_TTL,
                 pending_ttl: float = PENDING_RANGE_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.session_ttl = session_ttl
        self.pending_ttl = pending_ttl
        self._clock = clock
        self._counter = itertools.count(1)
        self._sessions: Dict[str, SessionEntry] = {}
        self._pending: Dict[Any, PendingRange] = {}
        self._lock = Lock()

    # === Sessions ===

    def create_session(self, url: str) -> str:
        """Store a URL and return a fresh, process-unique session id"""
        now = self._clock()
        with self._lock:
            session_id = f"s_{next(self._counter)}"
            self._sessions[session_id] = SessionEntry(
                session_id=session_id,
                source_url=url,
                created_at=now,
                expires_at=now + self.session_ttl)
        logger.debug(f"[Session] Created {session_id} for {url[:80]}")
        return session_id

    def lookup_session(self, session_id: str) -> Optional[str]:
        """Return the stored URL, or None for unknown and expired ids alike"""
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._sessions[session_id]
                return None
            return entry.source_url

    # === Pending ranges ===

    def set_pending_range(self, chat_id: Any, session_id: str,
                          prompt_message_ref: Any = None) -> None:
        now = self._clock()
        with self._lock:
            self._pending[chat_id] = PendingRange(
                chat_id=chat_id,
                session_id=session_id,
                prompt_message_ref=prompt_message_ref,
                created_at=now,
                expires_at=now + self.pending_ttl)
        logger.debug(f"[Session] Waiting for chapter count in chat {chat_id} ({session_id})")

    def get_pending_range(self, chat_id: Any) -> Optional[PendingRange]:
        with self._lock:
            marker = self._pending.get(chat_id)
            if marker is None:
                return None
            if self._clock() >= marker.expires_at:
                del self._pending[chat_id]
                return None
            return marker

    def clear_pending_range(self, chat_id: Any) -> None:
        with self._lock:
            self._pending.pop(chat_id, None)

    # === Maintenance ===

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed"""
        now = self._clock()
        with self._lock:
            expired_sessions = [k for k, v in self._sessions.items() if now >= v.expires_at]
            for key in expired_sessions:
                del self._sessions[key]
            expired_pending = [k for k, v in self._pending.items() if now >= v.expires_at]
            for key in expired_pending:
                del self._pending[key]
        removed = len(expired_sessions) + len(expired_pending)
        if removed:
            logger.info(f"[Session] Swept {len(expired_sessions)} sessions, "
                        f"{len(expired_pending)} pending ranges")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
