"""Append-only log of overall and per-section scores over a session."""

from datetime import datetime, timezone
from typing import Callable

from models.analysis import ScoreHistoryEntry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoreHistory:
    """Chronological score log. Insertion order is chronological order."""

    def __init__(self, now: Callable[[], datetime] = _utcnow) -> None:
        self._entries: list[ScoreHistoryEntry] = []
        self._now = now

    def append(
        self,
        overall_score: int,
        section_scores: dict[str, int] | None = None,
        message: str | None = None,
    ) -> ScoreHistoryEntry:
        entry = ScoreHistoryEntry(
            timestamp=self._now(),
            overall_score=overall_score,
            section_scores=dict(section_scores or {}),
            message=message,
        )
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> list[ScoreHistoryEntry]:
        return [e.model_copy(deep=True) for e in self._entries]

    @property
    def initial(self) -> ScoreHistoryEntry | None:
        return self._entries[0] if self._entries else None

    @property
    def latest(self) -> ScoreHistoryEntry | None:
        return self._entries[-1] if self._entries else None

    @property
    def net_change(self) -> int:
        """Latest minus initial overall score."""
        if len(self._entries) < 2:
            return 0
        return self._entries[-1].overall_score - self._entries[0].overall_score

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
