"""Per-session context objects and their registry.

Each session owns exactly one store and one change detector. Long-running
operations (analysis, AI edits, chat) capture a ``SessionToken`` before
awaiting an external collaborator and check it before applying the result,
so a result that resolves after a reset or close is dropped.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from config import settings
from services.analysis_store import AnalysisStore
from services.change_detector import ChangeDetector, Scheduler
from services.errors import StaleSessionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionToken:
    session_id: str
    generation: int


@dataclass
class SessionContext:
    session_id: str
    store: AnalysisStore
    detector: ChangeDetector
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    generation: int = 0
    closed: bool = False
    chat_history: list[dict[str, str]] = field(default_factory=list)

    def token(self) -> SessionToken:
        return SessionToken(self.session_id, self.generation)

    def is_current(self, token: SessionToken) -> bool:
        return (
            not self.closed
            and token.session_id == self.session_id
            and token.generation == self.generation
        )

    def ensure_current(self, token: SessionToken) -> None:
        if not self.is_current(token):
            logger.warning(
                "Dropping stale result for session %s (generation %d, now %d)",
                token.session_id,
                token.generation,
                self.generation,
            )
            raise StaleSessionError(token.session_id)

    def append_chat(self, role: str, content: str, limit: int | None = None) -> None:
        limit = limit or settings.chat_history_limit
        self.chat_history.append({"role": role, "content": content})
        if len(self.chat_history) > limit:
            del self.chat_history[:-limit]

    def reset(self) -> None:
        """Clear all session state; in-flight results become stale."""
        self.generation += 1
        self.chat_history.clear()
        self.store.clear()
        self.detector.reset()
        logger.info("Session %s reset (generation %d)", self.session_id, self.generation)

    def close(self) -> None:
        self.closed = True
        self.generation += 1
        self.detector.dispose()
        logger.info("Session %s closed", self.session_id)


def create_session_context(
    session_id: str | None = None,
    scheduler: Scheduler | None = None,
) -> SessionContext:
    store = AnalysisStore()
    detector = ChangeDetector(
        store,
        scheduler=scheduler,
        highlight_seconds=settings.highlight_duration_seconds,
        debounce_seconds=settings.snapshot_debounce_seconds,
    )
    return SessionContext(
        session_id=session_id or f"session_{uuid.uuid4().hex}",
        store=store,
        detector=detector,
    )


class SessionRegistry:
    def __init__(self, scheduler: Scheduler | None = None) -> None:
        self._sessions: dict[str, SessionContext] = {}
        self._lock = threading.Lock()
        self._scheduler = scheduler

    def create(self) -> SessionContext:
        ctx = create_session_context(scheduler=self._scheduler)
        with self._lock:
            self._sessions[ctx.session_id] = ctx
        logger.info("Session %s created", ctx.session_id)
        return ctx

    def get(self, session_id: str) -> SessionContext | None:
        with self._lock:
            return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        with self._lock:
            ctx = self._sessions.pop(session_id, None)
        if ctx is None:
            return False
        ctx.close()
        return True

    def close_all(self) -> None:
        with self._lock:
            contexts = list(self._sessions.values())
            self._sessions.clear()
        for ctx in contexts:
            ctx.close()

    def __len__(self) -> int:
        return len(self._sessions)
