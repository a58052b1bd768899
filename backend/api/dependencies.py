"""Shared dependencies for API routes."""

from fastapi import HTTPException, Request

from services.session import SessionContext, SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session(session_id: str, request: Request) -> SessionContext:
    ctx = get_registry(request).get(session_id)
    if ctx is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return ctx
