"""In-process event bus for store and highlight notifications."""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    ANALYSIS_REPLACED = "analysis_replaced"
    SECTIONS_CHANGED = "sections_changed"
    HEADER_CHANGED = "header_changed"
    HIGHLIGHTS_CHANGED = "highlights_changed"
    SCORE_HISTORY_APPENDED = "score_history_appended"


@dataclass(frozen=True)
class StoreEvent:
    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[StoreEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: StoreEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed handling %s", event.kind.value)

    def __len__(self) -> int:
        return len(self._listeners)
