import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.router import limiter, router
from config import settings
from services.errors import (
    CVServiceError,
    LLMTimeoutError,
    LLMUnavailableError,
    MalformedResponseError,
    PDFRenderError,
    SectionNotFoundError,
    StaleSessionError,
)
from services.session import SessionRegistry

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[CVServiceError], int]] = [
    (SectionNotFoundError, 404),
    (StaleSessionError, 409),
    (LLMUnavailableError, 503),
    (LLMTimeoutError, 503),
    (MalformedResponseError, 502),
    (PDFRenderError, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.sessions.close_all()


app = FastAPI(
    title="CV Canvas API",
    description="AI-powered CV analysis and conversational improvement",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.sessions = SessionRegistry()
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CVServiceError)
async def cv_service_error_handler(request: Request, exc: CVServiceError):
    status_code = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error("%s on %s: %s (%s)", type(exc).__name__, request.url.path, exc, exc.detail)
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.user_message,
            "error": type(exc).__name__,
            "retryable": exc.retryable,
        },
    )


app.include_router(router)
