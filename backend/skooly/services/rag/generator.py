"""
Answer Generator

Thin layer over Gemini text generation used by chat, search ("rag" mode),
the validator's judge prompts and the content orchestrator.

Supports:
- a system instruction, optionally embedding RAG context
- conversation history ({role, content} dicts, oldest first)
- file references the model reads directly (materials without extracted
  text), fetched with httpx and sent inline
- streaming
"""

import logging
import mimetypes
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
from google import genai
from google.genai import types

from skooly.core.config import settings
from skooly.services.gemini import get_gemini_client


logger = logging.getLogger(__name__)


# Inline request payloads are capped by the API; larger files are skipped
MAX_INLINE_FILE_BYTES = 20 * 1024 * 1024


TUTOR_SYSTEM_PROMPT = """You are Skooly, an AI learning assistant for university courses.
You help students understand course materials, answer questions, and generate learning content.
Always be helpful, accurate, and cite sources when using provided context."""


_BLOCKED_PROMPT_REASONS = {
    types.BlockedReason.SAFETY,
    types.BlockedReason.BLOCKLIST,
    types.BlockedReason.PROHIBITED_CONTENT,
}

_BLOCKED_FINISH_REASONS = {
    types.FinishReason.SAFETY,
    types.FinishReason.BLOCKLIST,
    types.FinishReason.PROHIBITED_CONTENT,
    types.FinishReason.SPII,
}


class ResponseBlockedError(Exception):
    """The model answered with a safety block instead of text."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Response blocked: SAFETY ({reason})")


def blocked_reason(response: Any) -> Optional[str]:
    """Name of the safety block on a response, or None if it was not blocked."""
    feedback = getattr(response, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None)
    if reason in _BLOCKED_PROMPT_REASONS:
        return f"prompt {reason.value}"

    candidates = getattr(response, "candidates", None)
    if isinstance(candidates, list) and candidates:
        finish = getattr(candidates[0], "finish_reason", None)
        if finish in _BLOCKED_FINISH_REASONS:
            return f"finish {finish.value}"
    return None


def build_system_prompt(context: str = "", base: str = TUTOR_SYSTEM_PROMPT) -> str:
    """System instruction with the course-material context appended."""
    if not context:
        return base
    return (
        f"{base}\n\n"
        f"CONTEXT FROM COURSE MATERIALS:\n{context}\n\n"
        "Use the context above to answer the student's question. "
        "If the answer isn't in the context, say so."
    )


class AnswerGenerator:
    """
    Gemini text generation.

    Usage:
    ------
    generator = AnswerGenerator(client)
    answer = await generator.generate(
        "What is a B-tree?",
        system_instruction=build_system_prompt(rag.context),
        history=[{"role": "user", "content": "..."}, ...],
        file_refs=rag.file_urls,
    )

    async for piece in generator.generate_stream("Explain recursion"):
        print(piece, end="")
    """

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client
        self.model = model or settings.GEMINI_MODEL
        self._http_client = http_client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        file_refs: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        Generate a complete response.

        Errors from the API propagate unchanged; callers classify them.
        A safety-blocked response raises :class:`ResponseBlockedError`.
        """
        contents = await self._build_contents(prompt, history, file_refs)

        response = await self.client.aio.models.generate_content(
            model=model or self.model,
            contents=contents,
            config=self._config(system_instruction, temperature),
        )
        if not response.text:
            reason = blocked_reason(response)
            if reason:
                logger.warning(f"Gemini response blocked: {reason}")
                raise ResponseBlockedError(reason)
        return response.text or ""

    async def generate_stream(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        file_refs: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
    ) -> AsyncGenerator[str, None]:
        """Yield text fragments as they arrive."""
        contents = await self._build_contents(prompt, history, file_refs)

        stream = await self.client.aio.models.generate_content_stream(
            model=self.model,
            contents=contents,
            config=self._config(system_instruction, temperature),
        )
        async for chunk in stream:
            if chunk.text:
                yield chunk.text

    @staticmethod
    def _config(
        system_instruction: Optional[str],
        temperature: Optional[float],
    ) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
        )

    async def _build_contents(
        self,
        prompt: str,
        history: Optional[List[Dict[str, str]]],
        file_refs: Optional[List[Dict[str, Any]]],
    ) -> List[types.Content]:
        contents: List[types.Content] = []

        for message in history or []:
            text = message.get("content")
            if not text:
                continue
            role = "model" if message.get("role") == "assistant" else "user"
            contents.append(types.Content(role=role, parts=[types.Part.from_text(text=text)]))

        parts: List[types.Part] = []
        for ref in file_refs or []:
            part = await self._file_part(ref)
            if part is not None:
                parts.append(part)
        parts.append(types.Part.from_text(text=prompt))

        contents.append(types.Content(role="user", parts=parts))
        return contents

    async def _file_part(self, ref: Dict[str, Any]) -> Optional[types.Part]:
        """Download a referenced file and wrap it as an inline part."""
        url = ref.get("url")
        if not url:
            return None

        mime_type = ref.get("mime_type") or mimetypes.guess_type(url)[0] or "application/pdf"

        try:
            if self._http_client is not None:
                response = await self._http_client.get(url)
            else:
                async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as http:
                    response = await http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Could not fetch referenced file {url}: {e}")
            return None

        if len(response.content) > MAX_INLINE_FILE_BYTES:
            logger.warning(f"Referenced file {url} is too large to send inline, skipping")
            return None

        return types.Part.from_bytes(data=response.content, mime_type=mime_type)


# Global generator instance
_generator: Optional[AnswerGenerator] = None


def get_answer_generator() -> AnswerGenerator:
    """Get or create the global answer generator."""
    global _generator

    if _generator is None:
        _generator = AnswerGenerator()
        logger.info("Created global AnswerGenerator instance")

    return _generator
