"""
Shared google-genai client.

Services take a ``genai.Client`` in their constructor; this module only
builds the process-wide default from settings.
"""

import logging
from typing import Optional

from google import genai

from skooly.core.config import settings


logger = logging.getLogger(__name__)


_client: Optional[genai.Client] = None


class GeminiNotConfiguredError(RuntimeError):
    """GEMINI_API_KEY is not set."""


def get_gemini_client() -> genai.Client:
    """
    Get or create the global Gemini client.

    Raises:
        GeminiNotConfiguredError: If no API key is configured
    """
    global _client

    if _client is None:
        if not settings.GEMINI_API_KEY:
            raise GeminiNotConfiguredError("GEMINI_API_KEY is not configured")
        _client = genai.Client(api_key=settings.GEMINI_API_KEY)
        logger.info("Gemini client initialized")

    return _client


def reset_gemini_client() -> None:
    """Drop the cached client (tests, key rotation)."""
    global _client
    _client = None
