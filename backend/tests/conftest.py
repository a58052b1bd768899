"""Shared test configuration, fixtures and a fake timer clock."""

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: talks to a real external service (needs API keys)"
    )


class FakeTimer:
    def __init__(self, due: float, callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: callbacks run only when the test advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self.now = target

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def legacy_payload():
    return {
        "overall_score": 70,
        "summary": "Solid CV with room for quantified achievements.",
        "ats_compatibility": {"score": 65, "feedback": "Mostly parseable", "suggestions": "Use standard headers"},
        "sections": [
            {
                "section_name": "Professional Summary",
                "score": 60,
                "content": "Backend developer.",
                "feedback": "Too short",
                "suggestions": "Add years of experience",
            },
            {
                "section_name": "Experience",
                "score": 80,
                "content": "5 years at Acme building APIs.",
                "feedback": "Good",
                "suggestions": "Add metrics",
            },
            {
                "section_name": "Skills",
                "score": 70,
                "content": "Python, FastAPI, PostgreSQL",
                "feedback": "OK",
                "suggestions": "Group by category",
            },
        ],
    }


@pytest.fixture
def comprehensive_payload():
    return {
        "summary": "Experienced engineer.",
        "ats_compatibility": {"score": 72, "feedback": "Good", "suggestions": "Add keywords"},
        "overall_summary": {
            "issues": 1,
            "warnings": 2,
            "total_checks": 8,
            "overall_score": 74,
            "passed_checks": 5,
        },
        "cv_header": {"name": "X", "title": "Engineer", "email": None, "phone": None},
        "original_cv_sections": [
            {"section_name": "HEADER", "content": "X\nEngineer", "order": 1},
            {"section_name": "EXPERIENCE", "content": "5 years...", "order": 2},
            {"section_name": "EDUCATION", "content": "BSc Computer Science", "order": 3},
        ],
        "detailed_checks": {
            "work_experience": {"score": 80, "status": "pass", "message": "Strong", "suggestions": []},
            "education": {"score": 70, "status": "pass", "message": "Fine", "suggestions": []},
            "skills_section": {"score": 60, "status": "warning", "message": "Missing", "suggestions": []},
        },
        "strengths": ["Clear experience"],
    }
