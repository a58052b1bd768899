"""Typed errors raised by the CV services.

Reconciliation code never raises for ordinary edge cases (a missing section
on the comprehensive schema, an empty store). These errors cover contract
violations, upstream failures and stale session results, and carry enough
information for the API layer to tell the user whether a retry makes sense.
"""


class CVServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    retryable: bool = False
    user_message: str = "Something went wrong, please retry."

    def __init__(self, message: str = "", *, detail: str | None = None) -> None:
        super().__init__(message or self.user_message)
        self.detail = detail


class SectionNotFoundError(CVServiceError):
    """A legacy-schema section name did not match any section exactly."""

    def __init__(self, section_name: str) -> None:
        super().__init__(f"Section not found: {section_name}")
        self.section_name = section_name
        self.user_message = f'Section "{section_name}" does not exist in this CV.'


class StaleSessionError(CVServiceError):
    """An async result resolved after its session was reset or closed."""

    user_message = "The session changed while the request was running. Please retry."

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Stale result for session {session_id}")
        self.session_id = session_id


# ---------------------------------------------------------------------------
# Upstream producers (LLM, PDF renderer)
# ---------------------------------------------------------------------------


class UpstreamError(CVServiceError):
    """Failure of an external collaborator."""


class LLMUnavailableError(UpstreamError):
    retryable = True
    user_message = "The AI service is temporarily unavailable. Please retry."


class LLMTimeoutError(UpstreamError):
    retryable = True
    user_message = "The AI service took too long to respond. Please retry."


class MalformedResponseError(UpstreamError):
    """The producer returned something that is not a valid result."""

    user_message = "Analysis failed, please retry."


class MalformedAnalysisError(MalformedResponseError):
    """An analysis payload has neither a legacy nor a comprehensive shape."""


class PDFRenderError(UpstreamError):
    retryable = True
    user_message = "PDF generation failed. Please retry."
