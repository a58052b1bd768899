from typing import Any

from pydantic import BaseModel, Field

from models.analysis import ScoreHistoryEntry


# --- Producer contracts (validated model output) ---


class SectionEditResult(BaseModel):
    improved_content: str = Field(..., min_length=1)
    score: int = Field(..., ge=0, le=100)
    changes_made: list[str] = []
    keywords_added: list[str] = []


class ScoreImprovement(BaseModel):
    old_score: int | None = None
    new_score: int = Field(..., ge=0, le=100)


class ChatResult(BaseModel):
    response: str = ""
    cv_updates: dict[str, str] = {}
    section_renames: dict[str, str] = {}
    score_improvements: dict[str, ScoreImprovement] = {}
    overall_score_improvement: ScoreImprovement | None = None
    suggestions: list[str] = []
    next_steps: list[str] = []


# --- API responses ---


class SessionResponse(BaseModel):
    session_id: str
    has_analysis: bool = False


class UpdateResponse(BaseModel):
    updated: list[str] = []
    created: list[str] = []
    unresolved: list[str] = []
    header_changed: bool = False
    last_update_timestamp: int = 0
    analysis: dict[str, Any] | None = None


class RenameResponse(BaseModel):
    renamed: dict[str, str] = {}
    last_update_timestamp: int = 0


class SectionEditResponse(BaseModel):
    edit: SectionEditResult
    analysis: dict[str, Any]


class ChatResponse(BaseModel):
    response: str
    suggestions: list[str] = []
    next_steps: list[str] = []
    updated_sections: list[str] = []
    created_sections: list[str] = []
    unresolved_sections: list[str] = []
    renamed_sections: dict[str, str] = {}
    overall_score: int | None = None


class HighlightResponse(BaseModel):
    highlights: list[str] = []
    state: str = "idle"


class ScoreHistoryResponse(BaseModel):
    entries: list[ScoreHistoryEntry] = []
    net_change: int = 0
