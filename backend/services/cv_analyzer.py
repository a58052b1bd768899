"""CV analysis producer.

Pipeline:
1. Normalize the extracted CV text
2. Gemini analysis call (comprehensive schema)
3. Validate and tag the result (legacy or comprehensive)
4. Backfill header contact fields the model left empty from regex extraction
"""

import logging

from models.analysis import ComprehensiveAnalysis, LegacyAnalysis, parse_analysis_result
from services import gemini_client, prompt_builder
from services.contact_parser import EMAIL_RE, GITHUB_RE, LINKEDIN_RE
from services.errors import MalformedResponseError

logger = logging.getLogger(__name__)

MAX_CV_CHARS = 50000


def normalize_cv_text(text: str) -> str:
    """Collapse trailing whitespace and runs of blank lines."""
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").split("\n")]
    out: list[str] = []
    for line in lines:
        if not line and out and not out[-1]:
            continue
        out.append(line)
    return "\n".join(out).strip()[:MAX_CV_CHARS]


def _backfill_header(result: ComprehensiveAnalysis, cv_text: str) -> None:
    header = result.cv_header
    for field, pattern in (
        ("email", EMAIL_RE),
        ("linkedin", LINKEDIN_RE),
        ("github", GITHUB_RE),
    ):
        if getattr(header, field):
            continue
        match = pattern.search(cv_text)
        if match:
            setattr(header, field, match.group().strip())
            logger.debug("Backfilled header %s from CV text", field)


async def analyze(cv_text: str) -> LegacyAnalysis | ComprehensiveAnalysis:
    """Run the analysis producer and return a validated, tagged result."""
    text = normalize_cv_text(cv_text)
    if not text:
        raise MalformedResponseError("CV text is empty")

    data = await gemini_client.generate_json(
        prompt_builder.build_analysis_prompt(text),
        system_instruction=prompt_builder.ANALYSIS_SYSTEM_PROMPT,
    )
    result = parse_analysis_result(data)

    if isinstance(result, ComprehensiveAnalysis):
        if not result.original_cv_sections:
            raise MalformedResponseError("Analysis returned no CV sections")
        _backfill_header(result, text)
        logger.info(
            "Analysis complete: %d sections, overall score %d",
            len(result.original_cv_sections),
            result.current_overall_score(),
        )
    else:
        logger.info(
            "Analysis complete (legacy): %d sections, overall score %d",
            len(result.sections),
            result.overall_score,
        )
    return result
