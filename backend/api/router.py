from typing import Any

from fastapi import APIRouter, Body, Depends, File, HTTPException, Request, Response, UploadFile
from fastapi.responses import HTMLResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.dependencies import get_registry, get_session
from config import settings
from models.analysis import ComprehensiveAnalysis, CVSection
from models.requests import (
    ChatRequest,
    QuickAnalyzeRequest,
    RenameSectionsRequest,
    SectionContentRequest,
    SectionEditRequest,
)
from models.responses import (
    ChatResponse,
    HighlightResponse,
    RenameResponse,
    ScoreHistoryResponse,
    SectionEditResponse,
    SessionResponse,
    UpdateResponse,
)
from services import chat_service, cv_analyzer, pdf_parser, pdf_renderer, section_editor
from services.errors import MalformedAnalysisError, SectionNotFoundError
from services.section_resolver import resolve_section
from services.session import SessionContext, SessionRegistry

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def _analysis_json(ctx: SessionContext) -> dict[str, Any] | None:
    analysis = ctx.store.get_current_analysis()
    return analysis.model_dump(mode="json") if analysis else None


def _require_analysis(ctx: SessionContext):
    analysis = ctx.store.get_current_analysis()
    if analysis is None:
        raise HTTPException(status_code=409, detail="No CV analysis loaded for this session")
    return analysis


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "gemini_configured": bool(settings.gemini_api_key),
        "pdf_renderer_configured": bool(settings.pdf_renderer_url),
    }


# --- Sessions ---


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(registry: SessionRegistry = Depends(get_registry)):
    ctx = registry.create()
    return SessionResponse(session_id=ctx.session_id)


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    if not registry.close(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(status_code=204)


@router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset_session(ctx: SessionContext = Depends(get_session)):
    ctx.reset()
    return SessionResponse(session_id=ctx.session_id, has_analysis=False)


# --- Analysis ---


@router.post("/sessions/{session_id}/analyze")
@limiter.limit("10/minute")
async def analyze(
    request: Request,
    cv_file: UploadFile = File(...),
    ctx: SessionContext = Depends(get_session),
):
    if not cv_file.filename or not cv_file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are accepted")

    content = await cv_file.read()
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Max size: {settings.max_upload_size_mb}MB",
        )
    if not pdf_parser.is_pdf(content):
        raise HTTPException(status_code=400, detail="File is not a valid PDF")

    try:
        cv_text = pdf_parser.extract_text(content)
    except Exception:
        raise HTTPException(status_code=400, detail="Could not parse PDF file")
    if not cv_text.strip():
        raise HTTPException(status_code=400, detail="No text could be extracted from PDF")

    token = ctx.token()
    result = await cv_analyzer.analyze(cv_text)
    ctx.ensure_current(token)
    ctx.store.ingest(result)
    return _analysis_json(ctx)


@router.post("/sessions/{session_id}/analyze/text")
@limiter.limit("10/minute")
async def analyze_text(
    request: Request,
    body: QuickAnalyzeRequest,
    ctx: SessionContext = Depends(get_session),
):
    token = ctx.token()
    result = await cv_analyzer.analyze(body.cv_text)
    ctx.ensure_current(token)
    ctx.store.ingest(result)
    return _analysis_json(ctx)


@router.post("/sessions/{session_id}/analysis")
async def ingest_analysis(
    payload: dict[str, Any] = Body(...),
    ctx: SessionContext = Depends(get_session),
):
    try:
        ctx.store.ingest(payload)
    except MalformedAnalysisError as e:
        raise HTTPException(status_code=422, detail=e.detail or str(e))
    return _analysis_json(ctx)


@router.get("/sessions/{session_id}/analysis")
async def get_analysis(ctx: SessionContext = Depends(get_session)):
    return _analysis_json(ctx)


@router.patch("/sessions/{session_id}/analysis", response_model=UpdateResponse)
async def patch_analysis(
    updates: dict[str, Any] = Body(...),
    ctx: SessionContext = Depends(get_session),
):
    try:
        ctx.store.patch(updates)
    except MalformedAnalysisError as e:
        raise HTTPException(status_code=422, detail=e.detail or str(e))
    return UpdateResponse(
        last_update_timestamp=ctx.store.last_update_timestamp,
        analysis=_analysis_json(ctx),
    )


# --- Sections ---


@router.put("/sessions/{session_id}/sections/{section_name}", response_model=UpdateResponse)
async def replace_section(
    section_name: str,
    section: CVSection,
    ctx: SessionContext = Depends(get_session),
):
    replaced = ctx.store.replace_section(section_name, section)
    return UpdateResponse(
        updated=[section.section_name] if replaced else [],
        last_update_timestamp=ctx.store.last_update_timestamp,
        analysis=_analysis_json(ctx),
    )


@router.put("/sessions/{session_id}/sections/{section_name}/content", response_model=UpdateResponse)
async def update_section_content(
    section_name: str,
    body: SectionContentRequest,
    ctx: SessionContext = Depends(get_session),
):
    outcome = ctx.store.update_section_content(section_name, body.content)
    return UpdateResponse(
        updated=outcome.updated,
        created=outcome.created,
        unresolved=outcome.unresolved,
        header_changed=outcome.header_changed,
        last_update_timestamp=ctx.store.last_update_timestamp,
        analysis=_analysis_json(ctx),
    )


@router.post("/sessions/{session_id}/sections/rename", response_model=RenameResponse)
async def rename_sections(body: RenameSectionsRequest, ctx: SessionContext = Depends(get_session)):
    renamed = ctx.store.rename_sections(body.renames)
    return RenameResponse(
        renamed=dict(renamed), last_update_timestamp=ctx.store.last_update_timestamp
    )


@router.post("/sessions/{session_id}/sections/{section_name}/edit", response_model=SectionEditResponse)
@limiter.limit("20/minute")
async def edit_section(
    request: Request,
    section_name: str,
    body: SectionEditRequest,
    ctx: SessionContext = Depends(get_session),
):
    analysis = _require_analysis(ctx)
    token = ctx.token()

    if isinstance(analysis, ComprehensiveAnalysis):
        match = resolve_section(section_name, analysis.original_cv_sections)
        if match is None:
            raise SectionNotFoundError(section_name)
        original = analysis.original_cv_sections[match.index]
        section = CVSection(
            section_name=original.section_name,
            content=original.content,
            score=ctx.store.get_section_scores().get(original.section_name, 0),
        )
    else:
        section = next((s for s in analysis.sections if s.section_name == section_name), None)
        if section is None:
            raise SectionNotFoundError(section_name)

    ctx.store.set_editing_section(section.section_name)
    try:
        edit = await section_editor.edit_section(section, body.additional_context)
    finally:
        if ctx.is_current(token):
            ctx.store.set_editing_section(None)
    ctx.ensure_current(token)

    if isinstance(analysis, ComprehensiveAnalysis):
        with ctx.store.batch():
            ctx.store.update_section_content(section.section_name, edit.improved_content)
            ctx.store.apply_score_improvements(
                {section.section_name: edit.score}, f"Edited section: {section.section_name}"
            )
    else:
        ctx.store.replace_section(section.section_name, section_editor.apply_edit(section, edit))

    return SectionEditResponse(edit=edit, analysis=_analysis_json(ctx))


# --- Chat ---


@router.post("/sessions/{session_id}/chat", response_model=ChatResponse)
@limiter.limit("30/minute")
async def chat(request: Request, body: ChatRequest, ctx: SessionContext = Depends(get_session)):
    analysis = _require_analysis(ctx)
    token = ctx.token()
    result = await chat_service.chat(
        body.message,
        analysis,
        list(ctx.chat_history),
        ctx.store.get_section_scores(),
    )
    ctx.ensure_current(token)

    ctx.append_chat("user", body.message)
    ctx.append_chat("assistant", result.response)
    applied = chat_service.apply_chat_result(ctx.store, result, body.message)
    return ChatResponse(
        response=result.response,
        suggestions=result.suggestions,
        next_steps=result.next_steps,
        updated_sections=applied.updated,
        created_sections=applied.created,
        unresolved_sections=applied.unresolved,
        renamed_sections=applied.renamed,
        overall_score=applied.overall_score,
    )


# --- Highlights and score history ---


@router.get("/sessions/{session_id}/highlights", response_model=HighlightResponse)
async def get_highlights(ctx: SessionContext = Depends(get_session)):
    return HighlightResponse(
        highlights=sorted(ctx.detector.get_highlight_set()),
        state=ctx.detector.state.value,
    )


@router.post("/sessions/{session_id}/highlights/clear", response_model=HighlightResponse)
async def clear_highlights(ctx: SessionContext = Depends(get_session)):
    ctx.detector.clear_highlights()
    return HighlightResponse(highlights=[], state=ctx.detector.state.value)


@router.get("/sessions/{session_id}/score-history", response_model=ScoreHistoryResponse)
async def get_score_history(ctx: SessionContext = Depends(get_session)):
    return ScoreHistoryResponse(
        entries=ctx.store.get_score_history(),
        net_change=ctx.store.history.net_change,
    )


# --- Export ---


@router.get("/sessions/{session_id}/export/html", response_class=HTMLResponse)
async def export_html(ctx: SessionContext = Depends(get_session)):
    return HTMLResponse(pdf_renderer.render_cv_html(_require_analysis(ctx)))


@router.post("/sessions/{session_id}/export/pdf")
@limiter.limit("5/minute")
async def export_pdf(request: Request, ctx: SessionContext = Depends(get_session)):
    html_content = pdf_renderer.render_cv_html(_require_analysis(ctx))
    pdf_bytes = await pdf_renderer.render_to_pdf(html_content)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="enhanced_cv.pdf"'},
    )
