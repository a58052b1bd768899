"""AI rewrite of a single scored section."""

import logging

from pydantic import ValidationError

from models.analysis import CVSection
from models.responses import SectionEditResult
from services import gemini_client, prompt_builder
from services.errors import MalformedResponseError

logger = logging.getLogger(__name__)


async def edit_section(section: CVSection, additional_context: str | None = None) -> SectionEditResult:
    prompt = prompt_builder.build_section_edit_prompt(
        section.section_name,
        section.content,
        section.feedback,
        section.suggestions,
        additional_context,
    )
    data = await gemini_client.generate_json(
        prompt, system_instruction=prompt_builder.SECTION_EDIT_SYSTEM_PROMPT
    )
    try:
        result = SectionEditResult.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError("Invalid section edit response", detail=str(e)) from e

    result.changes_made = [c.strip() for c in result.changes_made if c.strip()]
    result.keywords_added = [k.strip() for k in result.keywords_added if k.strip()]
    logger.info(
        "Edited section %r: score %d -> %d", section.section_name, section.score, result.score
    )
    return result


def apply_edit(section: CVSection, edit: SectionEditResult) -> CVSection:
    """New section value after an edit; feedback is kept, the score updated."""
    return section.model_copy(
        update={"content": edit.improved_content.strip(), "score": edit.score}
    )
