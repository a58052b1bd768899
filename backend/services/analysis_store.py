"""Session-scoped owner of the current CV analysis result.

All mutation goes through ``AnalysisStore``. Operations dispatch on the
result's ``schema_kind``:

- legacy: a flat list of scored sections, identified by exact name
- comprehensive: original CV sections with explicit ``order`` plus a header,
  targeted through the section resolver (exact -> alias -> fuzzy)

Every mutation runs under one re-entrant lock and publishes its events only
after the outermost ``batch()`` exits, so observers see one coherent change
per logical update. Mutations on an empty store are logged no-ops.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from models.analysis import (
    ComprehensiveAnalysis,
    CVHeader,
    CVSection,
    LegacyAnalysis,
    OriginalCVSection,
    OverallSummary,
    PersonalInfo,
    ScoreHistoryEntry,
    Skills,
    StructuredContent,
    parse_analysis_result,
)
from services.contact_parser import parse_contact_block, parse_header_block
from services.errors import MalformedAnalysisError, SectionNotFoundError
from services.events import EventBus, EventKind, Listener, StoreEvent
from services.score_aggregator import recompute_overall
from services.score_history import ScoreHistory
from services.section_resolver import alias_group, normalize_name, resolve_section

logger = logging.getLogger(__name__)

Analysis = LegacyAnalysis | ComprehensiveAnalysis

INITIAL_ANALYSIS_MESSAGE = "Initial CV Analysis"
CONTACT_TARGETS = frozenset({"contact_info", "contact information"})
HEADER_TARGET = "header"
PROFESSIONAL_SUMMARY = "professionalsummary"
PROFESSIONAL_SUMMARY_ORDER = 2

# Top-level fields that patch() must not replace
_PATCH_PROTECTED = frozenset({"schema_kind", "sections", "original_cv_sections"})


@dataclass(frozen=True)
class AnalysisSnapshot:
    """Read-only view of section contents and header at one point in time."""

    sections: tuple[tuple[str, str], ...] = ()
    header: dict[str, Any] | None = None
    version: int = 0

    def section_map(self) -> dict[str, str]:
        return dict(self.sections)


@dataclass
class UpdateOutcome:
    updated: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    header_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.updated or self.created or self.header_changed)


def next_section_order(sections: list[OriginalCVSection], section_name: str) -> int:
    """Order for a new section; shifts existing sections for a Professional Summary.

    A Professional Summary always goes to order 2 (right after the header) and
    every section at order >= 2 moves down by one. Anything else is appended.
    """
    if normalize_name(section_name) == PROFESSIONAL_SUMMARY:
        for section in sections:
            if section.order >= PROFESSIONAL_SUMMARY_ORDER:
                section.order += 1
        return PROFESSIONAL_SUMMARY_ORDER
    return max((s.order for s in sections), default=0) + 1


class AnalysisStore:
    def __init__(
        self,
        bus: EventBus | None = None,
        history: ScoreHistory | None = None,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._lock = threading.RLock()
        self._bus = bus or EventBus()
        self._history = history or ScoreHistory()
        self._clock = clock
        self._result: Analysis | None = None
        self._section_scores: dict[str, int] = {}
        self._batch_depth = 0
        self._pending: list[StoreEvent] = []
        self.editing_section: str | None = None
        self.last_update_timestamp = 0

    # --- Events ---

    @property
    def bus(self) -> EventBus:
        return self._bus

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._bus.subscribe(listener)

    @contextmanager
    def batch(self) -> Iterator["AnalysisStore"]:
        """Group mutations into one atomic update with coalesced events."""
        with self._lock:
            self._batch_depth += 1
            try:
                yield self
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0:
                    events, self._pending = self._pending, []
                else:
                    events = []
        for event in _coalesce(events):
            self._bus.publish(event)

    def _emit(self, kind: EventKind, **payload: Any) -> None:
        self._pending.append(StoreEvent(kind=kind, payload=payload))

    def _stamp(self) -> None:
        self.last_update_timestamp = max(self._clock(), self.last_update_timestamp + 1)

    # --- Reads ---

    def get_current_analysis(self) -> Analysis | None:
        with self._lock:
            return self._result.model_copy(deep=True) if self._result else None

    @property
    def has_analysis(self) -> bool:
        return self._result is not None

    def get_score_history(self) -> list[ScoreHistoryEntry]:
        with self._lock:
            return self._history.entries

    @property
    def history(self) -> ScoreHistory:
        return self._history

    def get_section_scores(self) -> dict[str, int]:
        with self._lock:
            return dict(self._section_scores)

    def snapshot(self) -> AnalysisSnapshot:
        with self._lock:
            result = self._result
            if result is None:
                return AnalysisSnapshot(version=self.last_update_timestamp)
            if isinstance(result, ComprehensiveAnalysis):
                sections = tuple((s.section_name, s.content) for s in result.ordered_sections())
                header = result.cv_header.model_dump()
            else:
                sections = tuple((s.section_name, s.content) for s in result.sections)
                header = None
            return AnalysisSnapshot(
                sections=sections, header=header, version=self.last_update_timestamp
            )

    def structured_content(self) -> StructuredContent | None:
        """Structured content, reconstructed from sections when absent."""
        with self._lock:
            result = self._result
            if result is None:
                return None
            if result.structured_content is not None:
                return result.structured_content.model_copy(deep=True)
            return _reconstruct_structured_content(result)

    # --- Whole-result operations ---

    def ingest(self, result: Analysis | dict[str, Any]) -> Analysis:
        """Replace the whole result and record the initial score."""
        parsed = parse_analysis_result(result).model_copy(deep=True)
        with self.batch():
            self._result = parsed
            self._section_scores = parsed.section_scores()
            self.editing_section = None
            self._stamp()
            entry = self._history.append(
                parsed.current_overall_score(),
                self._section_scores,
                INITIAL_ANALYSIS_MESSAGE,
            )
            logger.info(
                "Ingested %s analysis (overall score %d)",
                parsed.schema_kind,
                entry.overall_score,
            )
            self._emit(EventKind.ANALYSIS_REPLACED, schema_kind=parsed.schema_kind)
            self._emit(EventKind.SCORE_HISTORY_APPENDED, overall_score=entry.overall_score)
        return parsed.model_copy(deep=True)

    def patch(self, updates: dict[str, Any]) -> bool:
        """Shallow-merge top-level fields. Section arrays are never touched."""
        with self.batch():
            result = self._result
            if result is None:
                logger.warning("patch ignored: no analysis loaded")
                return False

            ignored = sorted(k for k in updates if k in _PATCH_PROTECTED)
            if ignored:
                logger.warning("patch ignored protected fields: %s", ", ".join(ignored))
            changes = {k: v for k, v in updates.items() if k not in _PATCH_PROTECTED}
            if not changes:
                return False

            data = result.model_dump()
            data.update(changes)
            if (
                isinstance(result, ComprehensiveAnalysis)
                and "overall_score" in changes
                and "overall_summary" not in changes
                and data.get("overall_summary")
            ):
                data["overall_summary"]["overall_score"] = changes["overall_score"]
            try:
                self._result = type(result).model_validate(data)
            except ValueError as e:
                raise MalformedAnalysisError("Invalid analysis patch", detail=str(e)) from e

            self._stamp()
            if "cv_header" in changes:
                self._emit(EventKind.HEADER_CHANGED)
            return True

    def clear(self) -> None:
        """Drop the result and history (session reset)."""
        with self.batch():
            self._result = None
            self._section_scores = {}
            self._history.clear()
            self.editing_section = None
            self._stamp()
            self._emit(EventKind.ANALYSIS_REPLACED, cleared=True)

    def set_editing_section(self, section_name: str | None) -> None:
        with self._lock:
            self.editing_section = section_name

    # --- Section operations ---

    def replace_section(self, section_name: str, new_section: CVSection | dict[str, Any]) -> CVSection | None:
        """Replace a legacy section by exact name and recompute the overall score.

        Raises SectionNotFoundError when the name does not match exactly; the
        legacy schema has no section-creation path.
        """
        section = (
            new_section if isinstance(new_section, CVSection) else CVSection.model_validate(new_section)
        )
        with self.batch():
            result = self._result
            if result is None:
                logger.warning("replace_section(%r) ignored: no analysis loaded", section_name)
                return None
            if not isinstance(result, LegacyAnalysis):
                logger.warning(
                    "replace_section(%r) ignored: %s schema has no scored sections",
                    section_name,
                    result.schema_kind,
                )
                return None

            index = next(
                (i for i, s in enumerate(result.sections) if s.section_name == section_name),
                None,
            )
            if index is None:
                raise SectionNotFoundError(section_name)

            result.sections[index] = section.model_copy(deep=True)
            result.overall_score = recompute_overall(
                (s.score for s in result.sections), result.overall_score
            )
            self._section_scores = result.section_scores()
            self.editing_section = None
            self._stamp()

            entry = self._history.append(
                result.overall_score, self._section_scores, f"Edited section: {section.section_name}"
            )
            self._emit(
                EventKind.SECTIONS_CHANGED,
                sections=sorted({section_name, section.section_name}),
            )
            self._emit(EventKind.SCORE_HISTORY_APPENDED, overall_score=entry.overall_score)
            return section

    def update_section_content(self, section_name: str, content: str) -> UpdateOutcome:
        """Replace one section's content (see module docstring for targeting)."""
        return self._apply_content_updates({section_name: content}, strict=True)

    def update_sections(self, updates: dict[str, str]) -> UpdateOutcome:
        """Apply several content updates as one atomic mutation."""
        return self._apply_content_updates(updates, strict=False)

    def _apply_content_updates(self, updates: dict[str, str], strict: bool) -> UpdateOutcome:
        outcome = UpdateOutcome()
        with self.batch():
            result = self._result
            if result is None:
                logger.warning(
                    "Content update for %s ignored: no analysis loaded",
                    ", ".join(repr(n) for n in updates),
                )
                return outcome

            # Work on a copy so a strict failure leaves the store untouched
            draft = result.model_copy(deep=True)
            for section_name, content in updates.items():
                if isinstance(draft, ComprehensiveAnalysis):
                    self._update_comprehensive(draft, section_name, content, outcome)
                else:
                    self._update_legacy(draft, section_name, content, outcome, strict)

            if not outcome.changed:
                return outcome

            if isinstance(draft, ComprehensiveAnalysis) and draft.structured_content is not None:
                _sync_structured_content(draft, outcome)
            self._result = draft
            self._stamp()

            touched = outcome.updated + outcome.created
            if touched:
                self._emit(EventKind.SECTIONS_CHANGED, sections=touched)
            if outcome.header_changed:
                self._emit(EventKind.HEADER_CHANGED)
            logger.info(
                "Content update: updated=%s created=%s unresolved=%s header=%s",
                outcome.updated,
                outcome.created,
                outcome.unresolved,
                outcome.header_changed,
            )
        return outcome

    def _update_comprehensive(
        self,
        draft: ComprehensiveAnalysis,
        section_name: str,
        content: str,
        outcome: UpdateOutcome,
    ) -> None:
        target = section_name.strip().lower()
        if target in CONTACT_TARGETS:
            fields = parse_contact_block(content)
            outcome.header_changed |= _merge_header(draft.cv_header, fields)
            return
        if target == HEADER_TARGET:
            fields = parse_header_block(content)
            outcome.header_changed |= _merge_header(draft.cv_header, fields)
            return

        match = resolve_section(section_name, draft.original_cv_sections)
        if match is not None:
            draft.original_cv_sections[match.index].content = content
            outcome.updated.append(match.section_name)
            return

        order = next_section_order(draft.original_cv_sections, section_name)
        draft.original_cv_sections.append(
            OriginalCVSection(section_name=section_name, content=content, order=order)
        )
        outcome.created.append(section_name)
        logger.info("Created section %r at order %d", section_name, order)

    def _update_legacy(
        self,
        draft: LegacyAnalysis,
        section_name: str,
        content: str,
        outcome: UpdateOutcome,
        strict: bool,
    ) -> None:
        for section in draft.sections:
            if section.section_name == section_name:
                section.content = content
                outcome.updated.append(section_name)
                return
        if strict:
            raise SectionNotFoundError(section_name)
        logger.warning("Legacy section %r not found, update dropped", section_name)
        outcome.unresolved.append(section_name)

    def rename_sections(self, rename_map: dict[str, str]) -> list[tuple[str, str]]:
        """Rename sections whose current name is a key of ``rename_map``."""
        renamed: list[tuple[str, str]] = []
        with self.batch():
            result = self._result
            if result is None:
                logger.warning("rename_sections ignored: no analysis loaded")
                return renamed

            sections = (
                result.original_cv_sections
                if isinstance(result, ComprehensiveAnalysis)
                else result.sections
            )
            planned = _plan_renames([s.section_name for s in sections], rename_map)
            for section in sections:
                new_name = planned.get(section.section_name)
                if new_name:
                    renamed.append((section.section_name, new_name))
                    section.section_name = new_name
            if not renamed:
                return renamed

            moved = {
                new: self._section_scores.pop(old)
                for old, new in renamed
                if old in self._section_scores
            }
            self._section_scores.update(moved)
            self._stamp()
            self._emit(EventKind.SECTIONS_CHANGED, sections=[new for _, new in renamed])
            logger.info("Renamed sections: %s", renamed)
        return renamed

    # --- Scores ---

    def apply_score_improvements(
        self,
        new_scores: dict[str, int],
        message: str | None = None,
        overall_score: int | None = None,
    ) -> ScoreHistoryEntry | None:
        """Apply new section scores, recompute the overall score and log it.

        ``overall_score`` is only honoured on the comprehensive schema; legacy
        results always keep overall == rounded mean of section scores.
        """
        with self.batch():
            result = self._result
            if result is None:
                logger.warning("apply_score_improvements ignored: no analysis loaded")
                return None

            clamped = {name: max(0, min(100, int(score))) for name, score in new_scores.items()}
            previous = result.current_overall_score()
            if isinstance(result, LegacyAnalysis):
                for name, score in clamped.items():
                    match = resolve_section(name, result.sections)
                    if match is None:
                        logger.warning("Score for unknown section %r dropped", name)
                        continue
                    result.sections[match.index].score = score
                self._section_scores = result.section_scores()
                overall = recompute_overall((s.score for s in result.sections), previous)
            else:
                for name, score in clamped.items():
                    self._section_scores[name] = score
                    if name in result.detailed_checks:
                        result.detailed_checks[name].score = score
                if overall_score is not None:
                    overall = max(0, min(100, int(overall_score)))
                else:
                    overall = recompute_overall(self._section_scores.values(), previous)

            _set_overall(result, overall)
            self._stamp()
            entry = self._history.append(overall, self._section_scores, message)
            self._emit(EventKind.SCORE_HISTORY_APPENDED, overall_score=overall)
            return entry

    def add_score_to_history(
        self,
        overall_score: int,
        section_scores: dict[str, int] | None = None,
        message: str | None = None,
    ) -> ScoreHistoryEntry:
        with self.batch():
            entry = self._history.append(overall_score, section_scores, message)
            self._emit(EventKind.SCORE_HISTORY_APPENDED, overall_score=overall_score)
            return entry


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _coalesce(events: list[StoreEvent]) -> list[StoreEvent]:
    """Merge SECTIONS_CHANGED events of one batch into a single event."""
    merged: list[StoreEvent] = []
    section_names: list[str] = []
    sections_index: int | None = None
    for event in events:
        if event.kind is EventKind.SECTIONS_CHANGED:
            for name in event.payload.get("sections", []):
                if name not in section_names:
                    section_names.append(name)
            if sections_index is None:
                sections_index = len(merged)
                merged.append(event)
            continue
        merged.append(event)
    if sections_index is not None:
        merged[sections_index] = StoreEvent(
            kind=EventKind.SECTIONS_CHANGED, payload={"sections": section_names}
        )
    return merged


def _plan_renames(names: list[str], rename_map: dict[str, str]) -> dict[str, str]:
    """Old -> new names to apply, keeping section names unique.

    A rename whose target is held by a section that keeps its name, or that
    an earlier rename already claimed, is skipped. A skipped section keeps
    its name, which can block further renames, so this runs to a fixed point.
    """
    planned = {
        name: rename_map[name]
        for name in names
        if rename_map.get(name) and rename_map[name] != name
    }
    while True:
        kept = {name for name in names if name not in planned}
        claimed: set[str] = set()
        blocked = []
        for old, new in planned.items():
            if new in kept or new in claimed:
                blocked.append(old)
            else:
                claimed.add(new)
        if not blocked:
            return planned
        for old in blocked:
            logger.warning(
                "Rename %r -> %r skipped: a section with that name already exists",
                old,
                planned.pop(old),
            )


def _merge_header(header: CVHeader, fields: dict[str, str]) -> bool:
    changed = False
    for name, value in fields.items():
        if getattr(header, name) != value:
            setattr(header, name, value)
            changed = True
    return changed


def _set_overall(result: Analysis, overall: int) -> None:
    result.overall_score = overall
    if isinstance(result, ComprehensiveAnalysis):
        if result.overall_summary is None:
            result.overall_summary = OverallSummary(overall_score=overall)
        else:
            result.overall_summary.overall_score = overall


def _sync_structured_content(draft: ComprehensiveAnalysis, outcome: UpdateOutcome) -> None:
    """Mirror header and summary edits into the denormalized structured view."""
    content = draft.structured_content
    if outcome.header_changed:
        header = draft.cv_header
        info = content.personal_info
        info.name = header.name or info.name
        info.title = header.title or info.title
        info.contact.email = header.email
        info.contact.phone = header.phone
        info.contact.location = header.location
        info.contact.linkedin = header.linkedin
        info.contact.website = header.website

    summary_group = alias_group("professional summary")
    for section in draft.original_cv_sections:
        if section.section_name in outcome.updated or section.section_name in outcome.created:
            if section.section_name.strip().lower() in summary_group:
                content.professional_summary = section.content


def _split_items(text: str) -> list[str]:
    items = []
    for line in text.replace(",", "\n").replace("•", "\n").split("\n"):
        item = line.strip(" -*\t")
        if item:
            items.append(item)
    return items


def _reconstruct_structured_content(result: Analysis) -> StructuredContent:
    if isinstance(result, ComprehensiveAnalysis):
        header = result.cv_header
        personal = PersonalInfo.model_validate(
            {
                "name": header.name,
                "title": header.title,
                "contact": {
                    "email": header.email,
                    "phone": header.phone,
                    "location": header.location,
                    "linkedin": header.linkedin,
                    "website": header.website,
                },
            }
        )
        sections = result.ordered_sections()
    else:
        personal = PersonalInfo()
        sections = result.sections

    summary_match = resolve_section("professional summary", sections)
    skills_match = resolve_section("skills", sections)
    return StructuredContent(
        personal_info=personal,
        professional_summary=sections[summary_match.index].content if summary_match else "",
        skills=Skills(
            technical=_split_items(sections[skills_match.index].content) if skills_match else []
        ),
    )
