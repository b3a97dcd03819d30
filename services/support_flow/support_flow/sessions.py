from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Literal
from uuid import uuid4

from .models import ConversationMode, ConversationSession, Message, Resolution, utcnow

logger = logging.getLogger("support_flow.sessions")

Role = Literal["user", "assistant", "system"]


class SessionStore(ABC):
    """Keyed session storage. Lookups of unknown or expired ids return None."""

    @abstractmethod
    def create(self, mode: ConversationMode, initial_message: str | None = None) -> ConversationSession: ...

    @abstractmethod
    def get(self, session_id: str) -> ConversationSession | None: ...

    @abstractmethod
    def update(self, session_id: str, **fields: Any) -> ConversationSession | None: ...

    @abstractmethod
    def append_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> ConversationSession | None: ...

    @abstractmethod
    def record_answer(self, session_id: str, question_id: str, answer: str) -> ConversationSession | None: ...

    @abstractmethod
    def resolve(self, session_id: str, resolution: Resolution) -> ConversationSession | None: ...

    @abstractmethod
    def delete(self, session_id: str) -> bool: ...

    @abstractmethod
    def sweep(self) -> int: ...

    @abstractmethod
    def count(self) -> int: ...


class InMemorySessionStore(SessionStore):
    def __init__(
        self,
        ttl_seconds: int = 30 * 60,
        max_sessions: int = 1000,
        max_history: int = 100,
        history_window: int = 50,
        now: Callable[[], datetime] = utcnow,
    ):
        if history_window >= max_history:
            raise ValueError("history_window must be smaller than max_history")
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_sessions = max_sessions
        self.max_history = max_history
        self.history_window = history_window
        self._now = now
        # Ordered by last activity, oldest first.
        self._sessions: OrderedDict[str, ConversationSession] = OrderedDict()
        self._lock = threading.Lock()

    def create(self, mode: ConversationMode, initial_message: str | None = None) -> ConversationSession:
        now = self._now()
        session = ConversationSession(session_id=str(uuid4()), mode=mode, created_at=now, updated_at=now)
        if initial_message:
            session.history.append(Message(role="user", content=initial_message, timestamp=now))
        with self._lock:
            while len(self._sessions) >= self.max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("Session store at capacity, evicted session_id=%s", evicted_id)
            self._sessions[session.session_id] = session
            snapshot = self._snapshot(session)
        logger.debug("Created session_id=%s mode=%s", session.session_id, mode.value)
        return snapshot.model_copy(deep=True)

    def get(self, session_id: str) -> ConversationSession | None:
        with self._lock:
            session = self._live(session_id)
            snapshot = self._snapshot(session) if session else None
        return snapshot.model_copy(deep=True) if snapshot else None

    def update(self, session_id: str, **fields: Any) -> ConversationSession | None:
        for name in fields:
            if name not in ConversationSession.model_fields or name == "session_id":
                raise ValueError(f"Unknown or read-only session field: {name}")
        with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            for name, value in fields.items():
                setattr(session, name, value)
            snapshot = self._touch(session)
        return snapshot.model_copy(deep=True)

    def append_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> ConversationSession | None:
        message = Message(role=role, content=content, timestamp=self._now(), metadata=metadata)
        with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            if len(session.history) >= self.max_history:
                session.history = session.history[-self.history_window :]
            session.history.append(message)
            snapshot = self._touch(session)
        return snapshot.model_copy(deep=True)

    def record_answer(self, session_id: str, question_id: str, answer: str) -> ConversationSession | None:
        with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            session.answers[question_id] = answer
            snapshot = self._touch(session)
        return snapshot.model_copy(deep=True)

    def resolve(self, session_id: str, resolution: Resolution) -> ConversationSession | None:
        with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            session.resolved = True
            session.resolution = resolution
            snapshot = self._touch(session)
        return snapshot.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def sweep(self) -> int:
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if self._expired(session)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info("Swept %s expired sessions", len(expired))
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _expired(self, session: ConversationSession) -> bool:
        return self._now() - session.updated_at > self.ttl

    def _live(self, session_id: str) -> ConversationSession | None:
        # Caller holds the lock.
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._expired(session):
            del self._sessions[session_id]
            logger.debug("Session expired session_id=%s", session_id)
            return None
        return session

    def _touch(self, session: ConversationSession) -> ConversationSession:
        # Caller holds the lock.
        session.updated_at = self._now()
        self._sessions.move_to_end(session.session_id)
        return self._snapshot(session)

    @staticmethod
    def _snapshot(session: ConversationSession) -> ConversationSession:
        # Caller holds the lock. Stored messages are never edited in place,
        # so copying the containers is enough to detach from later writes.
        return session.model_copy(
            update={
                "history": list(session.history),
                "answers": dict(session.answers),
                "rejected_categories": list(session.rejected_categories),
            }
        )


class SessionSweeper:
    def __init__(self, store: SessionStore, interval_seconds: float = 300):
        self.store = store
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.store.sweep()
            except Exception as exc:
                logger.warning("Session sweep failed: %s", exc)
