import itertools

import pytest

from models.analysis import CVSection, ComprehensiveAnalysis, LegacyAnalysis, OriginalCVSection
from services.analysis_store import AnalysisStore, UpdateOutcome, next_section_order
from services.errors import MalformedAnalysisError, SectionNotFoundError
from services.events import EventKind
from services.score_aggregator import round_half_up


def _ticking_clock():
    counter = itertools.count(1000, 1000)
    return lambda: next(counter)


@pytest.fixture
def store():
    return AnalysisStore(clock=_ticking_clock())


@pytest.fixture
def events(store):
    received = []
    store.subscribe(received.append)
    return received


def _orders(store: AnalysisStore) -> dict[str, int]:
    result = store.get_current_analysis()
    return {s.section_name: s.order for s in result.original_cv_sections}


# ---------------------------------------------------------------------------
# Empty store
# ---------------------------------------------------------------------------


class TestEmptyStore:
    def test_reads(self, store):
        assert store.get_current_analysis() is None
        assert not store.has_analysis
        assert store.get_score_history() == []
        assert store.snapshot().sections == ()
        assert store.structured_content() is None

    def test_mutations_are_noops(self, store, events):
        assert store.update_section_content("Skills", "Python") == UpdateOutcome()
        assert store.update_sections({"Skills": "Python"}) == UpdateOutcome()
        assert store.replace_section("Skills", {"section_name": "Skills", "score": 90}) is None
        assert store.rename_sections({"Skills": "Technical Skills"}) == []
        assert store.apply_score_improvements({"Skills": 90}) is None
        assert store.patch({"summary": "x"}) is False
        assert store.get_current_analysis() is None
        assert store.last_update_timestamp == 0
        assert events == []


# ---------------------------------------------------------------------------
# Ingest / patch / clear
# ---------------------------------------------------------------------------


class TestIngest:
    def test_ingest_records_initial_history(self, store, legacy_payload):
        store.ingest(legacy_payload)
        history = store.get_score_history()
        assert len(history) == 1
        assert history[0].overall_score == 70
        assert history[0].message == "Initial CV Analysis"
        assert history[0].section_scores == {"Professional Summary": 60, "Experience": 80, "Skills": 70}

    def test_ingest_twice_gives_two_entries(self, store, legacy_payload, comprehensive_payload):
        store.ingest(legacy_payload)
        store.ingest(comprehensive_payload)
        history = store.get_score_history()
        assert [e.message for e in history] == ["Initial CV Analysis", "Initial CV Analysis"]
        assert [e.overall_score for e in history] == [70, 74]
        assert isinstance(store.get_current_analysis(), ComprehensiveAnalysis)

    def test_ingest_publishes_replaced_and_history(self, store, events, legacy_payload):
        store.ingest(legacy_payload)
        assert [e.kind for e in events] == [
            EventKind.ANALYSIS_REPLACED,
            EventKind.SCORE_HISTORY_APPENDED,
        ]

    def test_ingest_malformed_leaves_store_untouched(self, store, legacy_payload):
        store.ingest(legacy_payload)
        with pytest.raises(MalformedAnalysisError):
            store.ingest({"summary": "no sections"})
        assert isinstance(store.get_current_analysis(), LegacyAnalysis)
        assert len(store.get_score_history()) == 1

    def test_returned_analysis_is_a_copy(self, store, legacy_payload):
        store.ingest(legacy_payload)
        copy = store.get_current_analysis()
        copy.sections[0].content = "tampered"
        assert store.get_current_analysis().sections[0].content == "Backend developer."

    def test_comprehensive_section_scores_seeded_from_checks(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        assert store.get_section_scores() == {
            "work_experience": 80,
            "education": 70,
            "skills_section": 60,
        }


class TestPatch:
    def test_patch_merges_top_level_fields(self, store, legacy_payload):
        store.ingest(legacy_payload)
        assert store.patch({"summary": "Rewritten"}) is True
        assert store.get_current_analysis().summary == "Rewritten"

    def test_patch_cannot_replace_section_arrays(self, store, legacy_payload):
        store.ingest(legacy_payload)
        assert store.patch({"sections": []}) is False
        assert len(store.get_current_analysis().sections) == 3

    def test_patch_overall_score_syncs_summary(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        store.patch({"overall_score": 81})
        result = store.get_current_analysis()
        assert result.overall_score == 81
        assert result.current_overall_score() == 81

    def test_patch_header_emits_header_changed(self, store, events, comprehensive_payload):
        store.ingest(comprehensive_payload)
        events.clear()
        store.patch({"cv_header": {"name": "Y", "title": "Lead"}})
        assert [e.kind for e in events] == [EventKind.HEADER_CHANGED]

    def test_invalid_patch_raises(self, store, legacy_payload):
        store.ingest(legacy_payload)
        with pytest.raises(MalformedAnalysisError):
            store.patch({"overall_score": 500})
        assert store.get_current_analysis().overall_score == 70


def test_clear_resets_result_and_history(store, events, legacy_payload):
    store.ingest(legacy_payload)
    store.set_editing_section("Skills")
    store.clear()
    assert store.get_current_analysis() is None
    assert store.get_score_history() == []
    assert store.editing_section is None
    assert events[-1].kind is EventKind.ANALYSIS_REPLACED


# ---------------------------------------------------------------------------
# Legacy sections
# ---------------------------------------------------------------------------


class TestLegacySections:
    def test_replace_section_recomputes_overall(self, store, legacy_payload):
        store.ingest(legacy_payload)
        store.set_editing_section("Skills")
        store.replace_section("Skills", CVSection(section_name="Skills", score=91, content="Python"))

        result = store.get_current_analysis()
        assert result.overall_score == round_half_up((60 + 80 + 91) / 3)
        assert store.editing_section is None
        latest = store.get_score_history()[-1]
        assert latest.message == "Edited section: Skills"
        assert latest.overall_score == result.overall_score

    def test_replace_section_requires_exact_name(self, store, legacy_payload):
        store.ingest(legacy_payload)
        with pytest.raises(SectionNotFoundError):
            store.replace_section("skills", {"section_name": "skills", "score": 10})
        assert store.get_current_analysis().overall_score == 70

    def test_replace_section_is_noop_on_comprehensive(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        assert store.replace_section("EXPERIENCE", {"section_name": "EXPERIENCE"}) is None
        assert len(store.get_score_history()) == 1

    def test_update_content_exact_match(self, store, legacy_payload):
        store.ingest(legacy_payload)
        outcome = store.update_section_content("Experience", "7 years at Acme.")
        assert outcome.updated == ["Experience"]
        assert store.get_current_analysis().sections[1].content == "7 years at Acme."

    def test_update_content_unknown_name_raises(self, store, legacy_payload):
        store.ingest(legacy_payload)
        before = store.last_update_timestamp
        with pytest.raises(SectionNotFoundError):
            store.update_section_content("Volunteering", "x")
        assert store.last_update_timestamp == before

    def test_batch_update_reports_unresolved(self, store, legacy_payload):
        store.ingest(legacy_payload)
        outcome = store.update_sections({"Skills": "Go", "Volunteering": "x"})
        assert outcome.updated == ["Skills"]
        assert outcome.unresolved == ["Volunteering"]

    def test_score_invariant_holds_after_improvements(self, store, legacy_payload):
        store.ingest(legacy_payload)
        store.apply_score_improvements({"Skills": 85, "experience": 90}, "Chat improvement: skills")
        result = store.get_current_analysis()
        scores = [s.score for s in result.sections]
        assert scores == [60, 90, 85]
        assert result.overall_score == round_half_up(sum(scores) / len(scores))

    def test_legacy_ignores_overall_override(self, store, legacy_payload):
        store.ingest(legacy_payload)
        store.apply_score_improvements({"Skills": 70}, overall_score=99)
        assert store.get_current_analysis().overall_score == 70


# ---------------------------------------------------------------------------
# Comprehensive sections
# ---------------------------------------------------------------------------


class TestComprehensiveSections:
    def test_alias_update_keeps_order_and_advances_timestamp(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        before = store.last_update_timestamp

        outcome = store.update_section_content("work experience", "7 years at Acme")

        assert outcome.updated == ["EXPERIENCE"]
        experience = next(
            s for s in store.get_current_analysis().original_cv_sections if s.section_name == "EXPERIENCE"
        )
        assert experience.content == "7 years at Acme"
        assert experience.order == 2
        assert store.last_update_timestamp > before

    def test_contact_info_updates_header(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        outcome = store.update_section_content("contact_info", "Email: a@b.com\nPhone: 555-1234")

        header = store.get_current_analysis().cv_header
        assert outcome.header_changed
        assert header.email == "a@b.com"
        assert header.phone == "555-1234"
        assert header.name == "X"
        assert len(store.get_current_analysis().original_cv_sections) == 3

    def test_contact_info_with_nothing_parsable_changes_nothing(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        before = store.last_update_timestamp
        outcome = store.update_section_content("Contact Information", "Open to relocation")
        assert not outcome.changed
        assert store.last_update_timestamp == before

    def test_header_block_updates_name_and_contacts(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        store.update_section_content("header", "Jane Doe\njane@doe.dev")
        header = store.get_current_analysis().cv_header
        assert header.name == "Jane Doe"
        assert header.email == "jane@doe.dev"
        assert header.title == "Engineer"

    def test_professional_summary_inserted_at_order_two(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        outcome = store.update_section_content("Professional Summary", "Seasoned engineer.")
        assert outcome.created == ["Professional Summary"]
        assert _orders(store) == {
            "HEADER": 1,
            "Professional Summary": 2,
            "EXPERIENCE": 3,
            "EDUCATION": 4,
        }

    def test_other_new_section_is_appended(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        store.update_section_content("Volunteering", "Food bank")
        assert _orders(store)["Volunteering"] == 4

    def test_batch_update_mixes_targets_atomically(self, store, events, comprehensive_payload):
        store.ingest(comprehensive_payload)
        events.clear()
        outcome = store.update_sections(
            {
                "EDUCATION": "MSc",
                "contact_info": "Email: a@b.com",
                "Certifications": "AWS SAA",
            }
        )
        assert outcome.updated == ["EDUCATION"]
        assert outcome.created == ["Certifications"]
        assert outcome.header_changed
        kinds = [e.kind for e in events]
        assert kinds == [EventKind.SECTIONS_CHANGED, EventKind.HEADER_CHANGED]
        assert events[0].payload["sections"] == ["EDUCATION", "Certifications"]

    def test_structured_content_follows_header_and_summary(self, store, comprehensive_payload):
        comprehensive_payload["structured_content"] = {
            "personal_info": {"name": "X", "title": "Engineer"},
            "professional_summary": "old",
        }
        store.ingest(comprehensive_payload)
        store.update_sections({"contact_info": "Email: a@b.com", "Professional Summary": "new"})
        content = store.structured_content()
        assert content.personal_info.contact.email == "a@b.com"
        assert content.professional_summary == "new"

    def test_structured_content_fallback(self, store, comprehensive_payload):
        comprehensive_payload["original_cv_sections"].append(
            {"section_name": "Skills", "content": "Python, Go\n- Docker", "order": 4}
        )
        store.ingest(comprehensive_payload)
        content = store.structured_content()
        assert content.personal_info.name == "X"
        assert content.skills.technical == ["Python", "Go", "Docker"]

    def test_score_improvements_update_checks_and_history(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        entry = store.apply_score_improvements({"skills_section": 75}, "Chat improvement: skills")
        result = store.get_current_analysis()
        assert result.detailed_checks["skills_section"].score == 75
        assert entry.overall_score == round_half_up((80 + 70 + 75) / 3)
        assert result.current_overall_score() == entry.overall_score

    def test_overall_override_is_honoured(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        entry = store.apply_score_improvements({"skills_section": 75}, overall_score=88)
        assert entry.overall_score == 88
        assert store.get_current_analysis().overall_summary.overall_score == 88

    def test_scores_are_clamped(self, store, comprehensive_payload):
        store.ingest(comprehensive_payload)
        store.apply_score_improvements({"education": 130, "work_experience": -5})
        scores = store.get_section_scores()
        assert scores["education"] == 100
        assert scores["work_experience"] == 0


# ---------------------------------------------------------------------------
# Rename / ordering / batches
# ---------------------------------------------------------------------------


def test_rename_sections_keeps_content_and_scores(store, legacy_payload):
    store.ingest(legacy_payload)
    renamed = store.rename_sections({"Skills": "Technical Skills", "Missing": "Other"})
    assert renamed == [("Skills", "Technical Skills")]
    result = store.get_current_analysis()
    assert result.sections[2].section_name == "Technical Skills"
    assert result.sections[2].content == "Python, FastAPI, PostgreSQL"
    assert store.get_section_scores()["Technical Skills"] == 70


def test_rename_to_existing_name_is_skipped(store, comprehensive_payload):
    store.ingest(comprehensive_payload)
    renamed = store.rename_sections({"EDUCATION": "EXPERIENCE"})
    assert renamed == []
    names = [s.section_name for s in store.get_current_analysis().original_cv_sections]
    assert names == ["HEADER", "EXPERIENCE", "EDUCATION"]


def test_rename_conflicts_keep_names_unique(store, comprehensive_payload):
    store.ingest(comprehensive_payload)
    renamed = store.rename_sections(
        {"EXPERIENCE": "Career", "EDUCATION": "Career", "HEADER": "EDUCATION"}
    )
    assert renamed == [("EXPERIENCE", "Career")]
    names = [s.section_name for s in store.get_current_analysis().original_cv_sections]
    assert len(names) == len(set(names))


def test_rename_swap_is_allowed(store, legacy_payload):
    store.ingest(legacy_payload)
    store.rename_sections({"Experience": "Skills", "Skills": "Experience"})
    result = store.get_current_analysis()
    assert [s.section_name for s in result.sections] == ["Professional Summary", "Skills", "Experience"]
    assert result.sections[1].content == "5 years at Acme building APIs."
    scores = store.get_section_scores()
    assert scores["Skills"] == 80
    assert scores["Experience"] == 70


def test_next_section_order_without_summary_shift():
    sections = [OriginalCVSection(section_name="A", order=1), OriginalCVSection(section_name="B", order=5)]
    assert next_section_order(sections, "Skills") == 6
    assert next_section_order([], "Skills") == 1


def test_nested_batches_publish_once(store, events, comprehensive_payload):
    store.ingest(comprehensive_payload)
    events.clear()
    with store.batch():
        store.rename_sections({"EDUCATION": "Education"})
        store.update_section_content("EXPERIENCE", "new")
        assert events == []
    assert [e.kind for e in events] == [EventKind.SECTIONS_CHANGED]
    assert events[0].payload["sections"] == ["Education", "EXPERIENCE"]


def test_listener_failure_does_not_break_store(store, legacy_payload):
    def broken(event):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.ingest(legacy_payload)
    assert store.has_analysis


def test_timestamp_is_strictly_increasing_with_frozen_clock(legacy_payload):
    store = AnalysisStore(clock=lambda: 5)
    store.ingest(legacy_payload)
    first = store.last_update_timestamp
    store.update_section_content("Skills", "Go")
    assert store.last_update_timestamp > first


def test_add_score_to_history(store, events, legacy_payload):
    store.ingest(legacy_payload)
    events.clear()
    entry = store.add_score_to_history(72, {"Skills": 75}, "Manual checkpoint")
    assert store.get_score_history()[-1] == entry
    assert store.history.net_change == 2
    assert [e.kind for e in events] == [EventKind.SCORE_HISTORY_APPENDED]


def test_snapshot_sorts_comprehensive_sections_by_order(store, comprehensive_payload):
    comprehensive_payload["original_cv_sections"].reverse()
    store.ingest(comprehensive_payload)
    snapshot = store.snapshot()
    assert [name for name, _ in snapshot.sections] == ["HEADER", "EXPERIENCE", "EDUCATION"]
    assert snapshot.header["name"] == "X"
    assert snapshot.version == store.last_update_timestamp
