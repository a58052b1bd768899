"""CV analysis result models.

An analysis result comes in one of two shapes. The legacy shape carries a flat,
display-ordered list of scored sections. The comprehensive shape preserves the
original CV text as ordered sections plus a separate header block. Both are
tagged with ``schema_kind`` so that store operations dispatch on the tag rather
than probing for keys.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from services.errors import MalformedAnalysisError


class CVSection(BaseModel):
    section_name: str
    score: int = Field(0, ge=0, le=100)
    content: str = ""
    feedback: str = ""
    suggestions: str = ""


class ATSCompatibility(BaseModel):
    score: int = Field(0, ge=0, le=100)
    feedback: str = ""
    suggestions: str = ""


class OriginalCVSection(BaseModel):
    section_name: str
    content: str = ""
    order: int = 0


class CVHeader(BaseModel):
    name: str = ""
    title: str = ""
    email: str | None = None
    phone: str | None = None
    location: str | None = None
    linkedin: str | None = None
    github: str | None = None
    website: str | None = None


# ---------------------------------------------------------------------------
# Structured (denormalized) content
# ---------------------------------------------------------------------------


class ContactInfo(BaseModel):
    email: str | None = None
    phone: str | None = None
    location: str | None = None
    linkedin: str | None = None
    website: str | None = None


class PersonalInfo(BaseModel):
    name: str = ""
    title: str = ""
    contact: ContactInfo = ContactInfo()


class Experience(BaseModel):
    title: str = ""
    company: str = ""
    location: str | None = None
    duration: str = ""
    achievements: list[str] = []
    skills_used: list[str] = []


class Education(BaseModel):
    degree: str = ""
    institution: str = ""
    location: str | None = None
    duration: str = ""
    details: list[str] = []


class Skills(BaseModel):
    technical: list[str] = []
    soft: list[str] = []
    languages: list[str] = []


class Certification(BaseModel):
    name: str = ""
    issuer: str = ""
    date: str = ""


class StructuredContent(BaseModel):
    personal_info: PersonalInfo = PersonalInfo()
    professional_summary: str = ""
    experience: list[Experience] = []
    education: list[Education] = []
    skills: Skills = Skills()
    certifications: list[Certification] = []


# ---------------------------------------------------------------------------
# Comprehensive-only blocks
# ---------------------------------------------------------------------------


class DetailedCheck(BaseModel):
    score: int = Field(0, ge=0, le=100)
    status: Literal["pass", "warning", "fail"] = "warning"
    message: str = ""
    suggestions: list[str] = []


class OverallSummary(BaseModel):
    issues: int = 0
    warnings: int = 0
    total_checks: int = 0
    overall_score: int = Field(0, ge=0, le=100)
    passed_checks: int = 0


class ImprovementRecommendations(BaseModel):
    high_priority: list[str] = []
    medium_priority: list[str] = []
    low_priority: list[str] = []


# ---------------------------------------------------------------------------
# The tagged union
# ---------------------------------------------------------------------------


class _AnalysisBase(BaseModel):
    overall_score: int = Field(0, ge=0, le=100)
    summary: str = ""
    ats_compatibility: ATSCompatibility = ATSCompatibility()


class LegacyAnalysis(_AnalysisBase):
    schema_kind: Literal["legacy"] = "legacy"
    sections: list[CVSection] = []
    structured_content: StructuredContent | None = None

    def current_overall_score(self) -> int:
        return self.overall_score

    def section_scores(self) -> dict[str, int]:
        return {s.section_name: s.score for s in self.sections}


class ComprehensiveAnalysis(_AnalysisBase):
    schema_kind: Literal["comprehensive"] = "comprehensive"
    original_cv_sections: list[OriginalCVSection] = []
    cv_header: CVHeader = CVHeader()
    structured_content: StructuredContent | None = None
    overall_summary: OverallSummary | None = None
    detailed_checks: dict[str, DetailedCheck] = {}
    strengths: list[str] = []
    next_steps: list[str] = []
    missing_elements: list[str] = []
    industry_specific_tips: list[str] = []
    improvement_recommendations: ImprovementRecommendations = ImprovementRecommendations()

    def current_overall_score(self) -> int:
        """Nested ``overall_summary.overall_score`` wins over the top-level field."""
        if self.overall_summary is not None:
            return self.overall_summary.overall_score
        return self.overall_score

    def section_scores(self) -> dict[str, int]:
        return {name: check.score for name, check in self.detailed_checks.items()}

    def ordered_sections(self) -> list[OriginalCVSection]:
        return sorted(self.original_cv_sections, key=lambda s: s.order)


AnalysisResult = Annotated[
    Union[LegacyAnalysis, ComprehensiveAnalysis],
    Field(discriminator="schema_kind"),
]

_analysis_adapter: TypeAdapter = TypeAdapter(AnalysisResult)


def parse_analysis_result(data: Any) -> LegacyAnalysis | ComprehensiveAnalysis:
    """Validate raw producer JSON into a tagged analysis result.

    This is the only place that inspects which section key is present; the
    rest of the code dispatches on ``schema_kind``.
    """
    if isinstance(data, (LegacyAnalysis, ComprehensiveAnalysis)):
        return data
    if not isinstance(data, dict):
        raise MalformedAnalysisError("Analysis result must be a JSON object")

    payload = dict(data)
    if "schema_kind" not in payload:
        if "original_cv_sections" in payload:
            payload["schema_kind"] = "comprehensive"
            # Comprehensive producers may also emit a flat sections list; it is
            # not authoritative for this shape.
            payload.pop("sections", None)
        elif "sections" in payload:
            payload["schema_kind"] = "legacy"
        else:
            raise MalformedAnalysisError(
                "Analysis result has neither 'sections' nor 'original_cv_sections'"
            )

    if payload["schema_kind"] == "comprehensive" and "overall_score" not in payload:
        summary = payload.get("overall_summary") or {}
        if isinstance(summary, dict) and "overall_score" in summary:
            payload["overall_score"] = summary["overall_score"]

    try:
        return _analysis_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedAnalysisError(
            "Analysis result failed validation", detail=str(e)
        ) from e


class ScoreHistoryEntry(BaseModel):
    timestamp: datetime
    overall_score: int
    section_scores: dict[str, int] = {}
    message: str | None = None
