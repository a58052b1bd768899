"""All prompt templates for Gemini API calls."""

import json

ANALYSIS_SYSTEM_PROMPT = """You are an expert CV/resume analyst with extensive experience in recruitment and applicant tracking systems (ATS).
Analyze REAL CVs and give personalized, detailed feedback based only on the content provided.
Never invent placeholder names, companies or contact details."""

SECTION_EDIT_SYSTEM_PROMPT = """You are an expert CV writer specializing in compelling, ATS-optimized content.
Improve the given CV section using its feedback and suggestions:
- Use action verbs and quantifiable achievements
- Optimize for ATS keyword scanning
- Keep a professional tone; be concise but complete"""

CHAT_SYSTEM_PROMPT = """You are an expert CV improvement assistant with access to the user's complete CV analysis.
Help the user enhance their CV through conversation:
- Give specific, actionable advice grounded in the current CV content
- Focus on high-impact changes that improve scores
- When the user asks for a change, return the full rewritten section text
- Only rename a section when the user asks for it or the current name is non-standard"""


def build_analysis_prompt(cv_text: str) -> str:
    """Analysis call: comprehensive schema with original sections and header."""
    return f"""Analyze the following CV.

SECTION RULES:
- List EVERY section that exists in the CV in original_cv_sections, in document order
- Use the exact section names as they appear in the CV
- Put the name/contact block in cv_header, not in original_cv_sections
- Copy section content verbatim; do not summarize it

SCORING RUBRIC (0-100):
- 0-40: major gaps (missing sections, no achievements, unreadable by ATS)
- 40-70: acceptable but generic, few metrics
- 70-90: strong, quantified, well structured
- 90-100: exceptional

CV TEXT:
---
{cv_text}
---

Respond with ONLY valid JSON (no markdown, no code fences) in this exact structure:
{{
  "overall_summary": {{
    "overall_score": <integer 0-100>,
    "total_checks": <integer>,
    "passed_checks": <integer>,
    "warnings": <integer>,
    "issues": <integer>
  }},
  "summary": "<2-3 sentence personalized assessment>",
  "ats_compatibility": {{
    "score": <integer 0-100>,
    "feedback": "<ATS assessment>",
    "suggestions": "<ATS optimization recommendations>"
  }},
  "cv_header": {{
    "name": "<real name>",
    "title": "<current title or target role>",
    "email": <string or null>,
    "phone": <string or null>,
    "location": <string or null>,
    "linkedin": <string or null>,
    "github": <string or null>,
    "website": <string or null>
  }},
  "original_cv_sections": [
    {{"section_name": "<exact name>", "content": "<verbatim content>", "order": <integer starting at 1>}}
  ],
  "detailed_checks": {{
    "<check name, e.g. work_experience>": {{
      "score": <integer 0-100>,
      "status": "pass" | "warning" | "fail",
      "message": "<finding>",
      "suggestions": [<strings>]
    }}
  }},
  "strengths": [<strings>],
  "next_steps": [<strings>],
  "missing_elements": [<strings>],
  "industry_specific_tips": [<strings>],
  "improvement_recommendations": {{
    "high_priority": [<strings>],
    "medium_priority": [<strings>],
    "low_priority": [<strings>]
  }}
}}

Use these detailed_checks keys: education, formatting, contact_info, skills_section,
work_experience, ats_compatibility, keyword_optimization, professional_summary."""


def build_section_edit_prompt(
    section_name: str,
    current_content: str,
    feedback: str,
    suggestions: str,
    additional_context: str | None = None,
) -> str:
    """Section edit call: rewrite one section and re-score it."""
    context_text = (
        f"\nAdditional context provided by the user:\n{additional_context}\n"
        if additional_context
        else ""
    )
    return f"""Improve the "{section_name}" section of a CV.

CURRENT CONTENT:
---
{current_content}
---

FEEDBACK: {feedback}
SUGGESTIONS: {suggestions}
{context_text}
Respond with ONLY valid JSON (no markdown, no code fences) in this exact structure:
{{
  "improved_content": "<the enhanced section content>",
  "score": <integer 0-100 for the improved section>,
  "changes_made": [<specific improvements made>],
  "keywords_added": [<relevant keywords incorporated>]
}}"""


def build_chat_prompt(
    message: str,
    analysis: dict,
    history: list[dict[str, str]],
    section_scores: dict[str, int] | None = None,
) -> str:
    """Chat call: conversational reply plus structured CV updates."""
    history_text = "\n".join(f"{m['role']}: {m['content']}" for m in history) or "(none)"
    scores_text = json.dumps(section_scores or {}, ensure_ascii=False)
    return f"""CURRENT CV ANALYSIS:
{json.dumps(analysis, indent=2, ensure_ascii=False)}

CURRENT SECTION SCORES: {scores_text}

PREVIOUS CONVERSATION:
{history_text}

USER REQUEST: {message}

Respond with ONLY valid JSON (no markdown, no code fences) in this exact structure:
{{
  "response": "<your helpful reply to the user>",
  "cv_updates": {{"<section name>": "<full updated section content>"}},
  "section_renames": {{"<old section name>": "<new section name>"}},
  "score_improvements": {{"<section name>": {{"old_score": <integer>, "new_score": <integer>}}}},
  "overall_score_improvement": {{"old_score": <integer>, "new_score": <integer>}} or null,
  "suggestions": [<specific suggestions>],
  "next_steps": [<next steps>]
}}

Use "contact_info" as the section name to change email, phone, LinkedIn, GitHub or location,
one "Label: value" per line. Leave cv_updates empty when no change was requested."""
