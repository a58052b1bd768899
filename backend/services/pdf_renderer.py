"""Snapshot-consistent CV HTML and its conversion to PDF.

The HTML is built from one store snapshot (comprehensive sections sorted by
``order``, legacy sections in list order) and posted to an external
HTML-to-PDF rendering service.
"""

import html
import logging
from datetime import date

import httpx

from config import settings
from models.analysis import ComprehensiveAnalysis, CVHeader, LegacyAnalysis
from services.errors import PDFRenderError

logger = logging.getLogger(__name__)

_STYLE = """
body { font-family: Arial, sans-serif; font-size: 12px; line-height: 1.6; color: #333;
       margin: 20px; max-width: 800px; }
h1 { font-size: 24px; text-align: center; margin-bottom: 4px; }
.title { text-align: center; font-size: 14px; color: #4b5563; }
.contact { text-align: center; font-size: 11px; color: #6b7280; margin-bottom: 16px; }
h2 { font-size: 16px; border-bottom: 2px solid #3b82f6; padding-bottom: 4px; margin-top: 18px; }
p { margin: 0 0 6px 0; white-space: pre-wrap; }
"""


def _paragraphs(text: str) -> str:
    blocks = [b.strip() for b in text.split("\n\n") if b.strip()]
    return "\n".join(f"<p>{html.escape(b)}</p>" for b in blocks)


def _header_html(header: CVHeader) -> str:
    parts = [f"<h1>{html.escape(header.name)}</h1>"] if header.name else []
    if header.title:
        parts.append(f'<div class="title">{html.escape(header.title)}</div>')
    contact = [
        v
        for v in (
            header.email,
            header.phone,
            header.location,
            header.linkedin,
            header.github,
            header.website,
        )
        if v
    ]
    if contact:
        parts.append(f'<div class="contact">{" | ".join(html.escape(c) for c in contact)}</div>')
    return "\n".join(parts)


def render_cv_html(analysis: LegacyAnalysis | ComprehensiveAnalysis) -> str:
    """Render a CV document from one analysis snapshot."""
    if isinstance(analysis, ComprehensiveAnalysis):
        header = _header_html(analysis.cv_header)
        sections = [
            (s.section_name, s.content)
            for s in analysis.ordered_sections()
            if s.section_name.strip().lower() != "header"
        ]
        doc_title = analysis.cv_header.name or "CV"
    else:
        header = ""
        sections = [(s.section_name, s.content) for s in analysis.sections]
        doc_title = "CV"

    body = [header] if header else []
    for name, content in sections:
        body.append(f"<h2>{html.escape(name)}</h2>\n{_paragraphs(content)}")

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{html.escape(doc_title)} - {date.today().isoformat()}</title>
<style>{_STYLE}</style>
</head>
<body>
{chr(10).join(body)}
</body>
</html>"""


async def render_to_pdf(html_content: str) -> bytes:
    """Convert HTML to PDF through the configured rendering service."""
    if not settings.pdf_renderer_url:
        raise PDFRenderError("PDF renderer URL not configured")
    if len(html_content) < 100:
        raise PDFRenderError("CV content is too short for PDF generation")

    headers = {"Content-Type": "application/json"}
    if settings.pdf_renderer_api_key:
        headers["Authorization"] = f"Bearer {settings.pdf_renderer_api_key}"

    try:
        async with httpx.AsyncClient(timeout=settings.pdf_renderer_timeout_seconds) as client:
            response = await client.post(
                settings.pdf_renderer_url,
                json={"source": html_content, "format": "A4"},
                headers=headers,
            )
            response.raise_for_status()
    except httpx.TimeoutException as e:
        logger.error("PDF renderer timed out: %s", e)
        raise PDFRenderError("PDF renderer timed out") from e
    except httpx.HTTPStatusError as e:
        logger.error("PDF renderer returned %d", e.response.status_code)
        raise PDFRenderError(
            f"PDF renderer returned {e.response.status_code}", detail=e.response.text[:500]
        ) from e
    except httpx.HTTPError as e:
        logger.error("PDF renderer request failed: %s", e)
        raise PDFRenderError("PDF renderer unreachable") from e

    if not response.content.startswith(b"%PDF"):
        raise PDFRenderError("PDF renderer returned a non-PDF payload")
    logger.info("Rendered PDF (%d bytes)", len(response.content))
    return response.content
