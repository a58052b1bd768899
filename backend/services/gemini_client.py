"""Google Gemini API wrapper with error handling."""

import asyncio
import json
import logging

from google import genai
from google.genai import errors, types

from config import settings
from services.errors import LLMTimeoutError, LLMUnavailableError, MalformedResponseError

logger = logging.getLogger(__name__)

_client: genai.Client | None = None


def get_client() -> genai.Client | None:
    global _client
    if not settings.gemini_api_key:
        logger.warning("No GEMINI_API_KEY set - Gemini features disabled")
        return None
    if _client is None:
        _client = genai.Client(api_key=settings.gemini_api_key)
    return _client


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()
    return text


def parse_json_text(text: str) -> dict:
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        logger.error("Failed to parse Gemini response as JSON: %s", e)
        raise MalformedResponseError("Model response is not valid JSON", detail=str(e)) from e
    if not isinstance(data, dict):
        raise MalformedResponseError("Model response must be a JSON object")
    return data


async def generate_json(
    prompt: str,
    system_instruction: str | None = None,
    temperature: float = 0.3,
    max_output_tokens: int = 8192,
) -> dict:
    """Send a prompt to Gemini and parse the JSON response.

    Raises LLMUnavailableError / LLMTimeoutError for transient failures and
    MalformedResponseError when the reply is not a JSON object.
    """
    client = get_client()
    if client is None:
        raise LLMUnavailableError("Gemini API key not configured")

    try:
        response = await asyncio.wait_for(
            client.aio.models.generate_content(
                model=settings.gemini_model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    temperature=temperature,
                    max_output_tokens=max_output_tokens,
                    response_mime_type="application/json",
                ),
            ),
            timeout=settings.llm_timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        logger.error("Gemini request timed out after %.0fs", settings.llm_timeout_seconds)
        raise LLMTimeoutError() from e
    except errors.ServerError as e:
        logger.error("Gemini server error: %s", e)
        raise LLMUnavailableError(detail=str(e)) from e
    except errors.ClientError as e:
        if e.code == 429:
            logger.warning("Gemini rate limited: %s", e)
            raise LLMUnavailableError(detail=str(e)) from e
        logger.error("Gemini rejected request: %s", e)
        raise MalformedResponseError("Gemini rejected the request", detail=str(e)) from e

    text = response.text or ""
    if not text.strip():
        raise MalformedResponseError("Gemini returned an empty response")
    return parse_json_text(text)
