"""Change detection and time-boxed highlighting of recently updated sections.

Cycle: IDLE -> COMPARING -> HIGHLIGHTING -> IDLE

Section and header mutations restart a debounce timer. When it fires, the
previous snapshot is compared with the store's current one. Any change puts
the detector into HIGHLIGHTING for a fixed duration; changes settling while a
highlight is active are suppressed (the timer is neither reset nor stacked).
The previous snapshot is only refreshed when no highlight is active, so the
detector never re-triggers on its own bookkeeping.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from services.analysis_store import AnalysisSnapshot, AnalysisStore
from services.events import EventKind, StoreEvent

logger = logging.getLogger(__name__)

HEADER_IDENTIFIER = "cv_header"


class DetectorState(str, enum.Enum):
    IDLE = "idle"
    COMPARING = "comparing"
    HIGHLIGHTING = "highlighting"


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules callbacks on the running event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class CancellableTimer:
    """At most one pending callback; starting again cancels the previous one."""

    def __init__(self, scheduler: Scheduler, name: str) -> None:
        self._scheduler = scheduler
        self._name = name
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()

        def fire() -> None:
            self._handle = None
            callback()

        self._handle = self._scheduler.call_later(delay, fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Cancelled %s timer", self._name)


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------


@dataclass
class ChangeSet:
    content_changed: list[str] = field(default_factory=list)
    renamed: dict[str, str] = field(default_factory=dict)  # new name -> old name
    added: list[str] = field(default_factory=list)
    header_changed: bool = False

    @property
    def identifiers(self) -> set[str]:
        ids = set(self.content_changed) | set(self.renamed) | set(self.added)
        if self.header_changed:
            ids.add(HEADER_IDENTIFIER)
        return ids

    def __bool__(self) -> bool:
        return bool(self.identifiers)


def detect_changes(previous: AnalysisSnapshot, current: AnalysisSnapshot) -> ChangeSet:
    """Classify each current section as content-changed, renamed or added."""
    changes = ChangeSet()
    before = previous.section_map()
    old_by_content: dict[str, str] = {}
    for name, content in previous.sections:
        old_by_content.setdefault(content, name)

    for name, content in current.sections:
        if name in before:
            if before[name].strip() != content.strip():
                changes.content_changed.append(name)
        elif content in old_by_content:
            changes.renamed[name] = old_by_content[content]
        else:
            changes.added.append(name)

    changes.header_changed = previous.header != current.header
    return changes


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class ChangeDetector:
    def __init__(
        self,
        store: AnalysisStore,
        scheduler: Scheduler | None = None,
        highlight_seconds: float = 3.0,
        debounce_seconds: float = 0.3,
    ) -> None:
        self._store = store
        self._scheduler = scheduler or AsyncioScheduler()
        self.highlight_seconds = highlight_seconds
        self.debounce_seconds = debounce_seconds
        self.state = DetectorState.IDLE
        self._previous = store.snapshot()
        self._highlights: frozenset[str] = frozenset()
        self.last_changes: ChangeSet | None = None
        self._debounce = CancellableTimer(self._scheduler, "debounce")
        self._clear = CancellableTimer(self._scheduler, "highlight-clear")
        self._unsubscribe: Callable[[], None] | None = store.subscribe(self._on_store_event)

    # --- Public surface ---

    def get_highlight_set(self) -> set[str]:
        return set(self._highlights)

    def is_highlighted(self, identifier: str) -> bool:
        return identifier in self._highlights

    def clear_highlights(self) -> None:
        """External clear signal: end an active highlight now, whatever the timer says.

        Outside a highlight this is a no-op, so a change still waiting in the
        debounce window keeps the old baseline and is highlighted when it settles.
        """
        if self.state is not DetectorState.HIGHLIGHTING:
            return
        self._clear.cancel()
        self._end_highlight()

    def flush(self) -> None:
        """Run a pending comparison immediately instead of waiting for the debounce."""
        if self._debounce.pending:
            self._debounce.cancel()
            self._compare()

    def reset(self) -> None:
        """Forget highlights and take the current store state as the baseline."""
        self._debounce.cancel()
        self._clear.cancel()
        had_highlights = bool(self._highlights)
        self._highlights = frozenset()
        self.state = DetectorState.IDLE
        self._previous = self._store.snapshot()
        if had_highlights:
            self._publish_highlights()

    def dispose(self) -> None:
        """Cancel all timers and stop listening to the store."""
        self._debounce.cancel()
        self._clear.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._highlights = frozenset()
        self.state = DetectorState.IDLE

    @property
    def disposed(self) -> bool:
        return self._unsubscribe is None

    # --- Internals ---

    def _on_store_event(self, event: StoreEvent) -> None:
        if event.kind is EventKind.ANALYSIS_REPLACED:
            self.reset()
        elif event.kind in (EventKind.SECTIONS_CHANGED, EventKind.HEADER_CHANGED):
            self._schedule_compare()

    def _schedule_compare(self) -> None:
        if self.debounce_seconds <= 0:
            self._debounce.cancel()
            self._compare()
        else:
            self._debounce.start(self.debounce_seconds, self._compare)

    def _compare(self) -> None:
        if self.state is DetectorState.HIGHLIGHTING:
            logger.debug("Change settled during an active highlight; suppressed")
            return

        self.state = DetectorState.COMPARING
        current = self._store.snapshot()
        changes = detect_changes(self._previous, current)
        self.last_changes = changes

        if not changes:
            self._previous = current
            self.state = DetectorState.IDLE
            return

        self.state = DetectorState.HIGHLIGHTING
        self._highlights = frozenset(changes.identifiers)
        logger.info("Highlighting %s", sorted(self._highlights))
        self._publish_highlights()
        self._clear.start(self.highlight_seconds, self._end_highlight)

    def _end_highlight(self) -> None:
        had_highlights = bool(self._highlights)
        self._highlights = frozenset()
        self.state = DetectorState.IDLE
        self._previous = self._store.snapshot()
        if had_highlights:
            self._publish_highlights()

    def _publish_highlights(self) -> None:
        self._store.bus.publish(
            StoreEvent(
                kind=EventKind.HIGHLIGHTS_CHANGED,
                payload={"highlights": sorted(self._highlights)},
            )
        )
