"""Conversational CV improvement: model call and application of its updates."""

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from models.analysis import ComprehensiveAnalysis, LegacyAnalysis
from models.responses import ChatResult
from services import gemini_client, prompt_builder
from services.analysis_store import AnalysisStore
from services.errors import MalformedResponseError

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I've updated your CV. Here are more ways to keep improving it."


def _chat_message_label(message: str) -> str:
    message = " ".join(message.split())
    if len(message) <= 50:
        return f"Chat improvement: {message}"
    return f"Chat improvement: {message[:50]}..."


async def chat(
    message: str,
    analysis: LegacyAnalysis | ComprehensiveAnalysis,
    history: list[dict[str, str]],
    section_scores: dict[str, int] | None = None,
) -> ChatResult:
    prompt = prompt_builder.build_chat_prompt(
        message,
        analysis.model_dump(mode="json", exclude={"schema_kind"}),
        history,
        section_scores,
    )
    data = await gemini_client.generate_json(
        prompt, system_instruction=prompt_builder.CHAT_SYSTEM_PROMPT, temperature=0.5
    )
    try:
        result = ChatResult.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError("Invalid chat response", detail=str(e)) from e

    if not result.response.strip():
        result.response = FALLBACK_REPLY
    return result


@dataclass
class ChatApplication:
    renamed: dict[str, str] = field(default_factory=dict)
    updated: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    overall_score: int | None = None


def apply_chat_result(store: AnalysisStore, result: ChatResult, message: str) -> ChatApplication:
    """Apply renames, score improvements and content updates as one batch.

    Renames go first so that updates may address sections by their new names.
    """
    applied = ChatApplication()
    with store.batch():
        if result.section_renames:
            applied.renamed = dict(store.rename_sections(result.section_renames))

        if result.score_improvements or result.overall_score_improvement:
            overall = (
                result.overall_score_improvement.new_score
                if result.overall_score_improvement
                else None
            )
            entry = store.apply_score_improvements(
                {name: imp.new_score for name, imp in result.score_improvements.items()},
                _chat_message_label(message),
                overall_score=overall,
            )
            if entry is not None:
                applied.overall_score = entry.overall_score

        if result.cv_updates:
            outcome = store.update_sections(result.cv_updates)
            applied.updated = outcome.updated
            applied.created = outcome.created
            applied.unresolved = outcome.unresolved

    logger.info(
        "Chat applied: renamed=%d updated=%d created=%d unresolved=%d",
        len(applied.renamed),
        len(applied.updated),
        len(applied.created),
        len(applied.unresolved),
    )
    return applied
