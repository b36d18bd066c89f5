"""
Generation Orchestrator

Produces learning content (notes, slides, pdf, code guides, MCQ quizzes,
podcasts) from source text or an attached file.

Flow:
-----
1. prepare_source(): text, or the file itself when no text was extracted
2. build_prompt() for the content type
3. Model call raced against GENERATION_TIMEOUT_SECONDS
4. Type-specific post-processing:
   - mcq: output parsed into a validated question list
   - podcast: script rendered with multi-speaker TTS into a WAV file
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from google import genai
from google.genai import types

from skooly.core.config import Settings, settings as default_settings
from skooly.models.ai_material import ContentType
from skooly.models.content import FileReference, TextContent, decode_content
from skooly.services.gemini import get_gemini_client
from skooly.services.generation.audio import pcm_to_wav
from skooly.services.generation.prompts import build_prompt
from skooly.services.rag.generator import AnswerGenerator


logger = logging.getLogger(__name__)


SOURCE_TOO_SHORT_MESSAGE = "Source content is too short for meaningful generation."
TIMEOUT_MESSAGE = "Generation timed out. Please try with smaller content or try again later."
SAFETY_MESSAGE = "Content generation blocked by safety filters."

MCQ_OPTION_COUNT = 4

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ========================================
# Exceptions
# ========================================

class GenerationError(Exception):
    """Content generation failed."""


class GenerationTimeoutError(GenerationError):
    """The model did not answer within the generation timeout."""

    def __init__(self, message: str = TIMEOUT_MESSAGE):
        super().__init__(message)


class SafetyBlockedError(GenerationError):
    """The model refused the request on safety grounds."""

    def __init__(self, message: str = SAFETY_MESSAGE):
        super().__init__(message)


@dataclass
class GeneratedContent:
    content_type: ContentType
    content: str
    quiz: Optional[List[Dict[str, Any]]] = None
    # Podcast only: WAV bytes of the rendered script
    audio: Optional[bytes] = None


# ========================================
# Source Preparation
# ========================================

def prepare_source(
    source_content: Optional[str],
    file_url: Optional[str] = None,
    min_length: Optional[int] = None,
) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Decide what the model reads.

    Returns:
        (context_text, file_refs). file_refs is non-empty when the text is
        missing (or is a file-reference sentinel) and a file URL is known.

    Raises:
        ValueError: Text shorter than the minimum and no file to fall back on
    """
    min_length = default_settings.MIN_SOURCE_CONTENT_LENGTH if min_length is None else min_length

    content = decode_content(source_content)
    if isinstance(content, FileReference):
        return "", [{"url": content.url}]

    text = content.text.strip() if isinstance(content, TextContent) else ""

    if not text and file_url:
        return "", [{"url": file_url}]

    if len(text) < min_length and not file_url:
        raise ValueError(SOURCE_TOO_SHORT_MESSAGE)

    return text, []


# ========================================
# MCQ Parsing
# ========================================

def parse_mcq(raw: str) -> List[Dict[str, Any]]:
    """
    Parse model output into a list of questions.

    Accepts the answer either as the option text or as a letter A-D.

    Raises:
        GenerationError: Output is not a well-formed question list
    """
    text = _CODE_FENCE.sub("", (raw or "").strip()).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Quiz output is not valid JSON: {e}") from e

    if not isinstance(data, list) or not data:
        raise GenerationError("Quiz output must be a non-empty JSON array")

    questions = []
    for number, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise GenerationError(f"Question {number} is not an object")

        question = item.get("question")
        options = item.get("options")
        answer = item.get("answer")

        if not isinstance(question, str) or not question.strip():
            raise GenerationError(f"Question {number} has no question text")
        if (
            not isinstance(options, list)
            or len(options) != MCQ_OPTION_COUNT
            or not all(isinstance(option, str) and option.strip() for option in options)
        ):
            raise GenerationError(f"Question {number} must have exactly {MCQ_OPTION_COUNT} options")

        if isinstance(answer, str) and answer.strip().upper() in ("A", "B", "C", "D") and answer not in options:
            answer = options["ABCD".index(answer.strip().upper())]
        if answer not in options:
            raise GenerationError(f"Question {number} answer is not one of its options")

        questions.append({
            "question": question.strip(),
            "options": options,
            "answer": answer,
            "explanation": str(item.get("explanation") or ""),
        })

    return questions


# ========================================
# Orchestrator
# ========================================

class GenerationOrchestrator:
    """
    Usage:
    ------
    orchestrator = GenerationOrchestrator(client)
    context, file_refs = prepare_source(material.content, material.file_url)
    result = await orchestrator.generate(
        ContentType.NOTES, "Sorting", "Merge sort", context, file_urls=file_refs
    )
    """

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        settings: Optional[Settings] = None,
        generator: Optional[AnswerGenerator] = None,
    ):
        self._client = client
        self.settings = settings or default_settings
        self.generator = generator or AnswerGenerator(client=client, model=self.settings.GEMINI_MODEL)

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    async def generate(
        self,
        content_type: Union[ContentType, str],
        title: str,
        topic: Optional[str],
        context: str,
        customization: Optional[str] = None,
        file_urls: Optional[List[Dict[str, Any]]] = None,
    ) -> GeneratedContent:
        """
        Generate one piece of content.

        Raises:
            GenerationTimeoutError: No answer within GENERATION_TIMEOUT_SECONDS
            SafetyBlockedError: Blocked by the model's safety filters
            GenerationError: Any other failure, including a malformed quiz
        """
        content_type = ContentType(content_type)
        prompt = build_prompt(content_type, title, topic, context, customization)

        logger.info(
            f"Generating {content_type.value} for '{title}' "
            f"(context {len(context or '')} chars, {len(file_urls or [])} files)"
        )

        text = await self._call_with_timeout(
            self.generator.generate(prompt, file_refs=file_urls)
        )

        if not text or not text.strip():
            raise GenerationError("The model returned no content")

        result = GeneratedContent(content_type=content_type, content=text.strip())

        if content_type == ContentType.MCQ:
            result.quiz = parse_mcq(text)
            result.content = json.dumps(result.quiz, ensure_ascii=False)

        elif content_type == ContentType.PODCAST:
            result.audio = await self.synthesize_podcast(result.content)

        return result

    async def discuss(
        self,
        message: str,
        system_instruction: str,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """
        One study-chat turn, with the same timeout and error mapping as
        :meth:`generate`.
        """
        text = await self._call_with_timeout(
            self.generator.generate(message, system_instruction=system_instruction, history=history)
        )
        if not text or not text.strip():
            raise GenerationError("The model returned no content")
        return text.strip()

    async def _call_with_timeout(self, awaitable):
        try:
            return await asyncio.wait_for(
                awaitable, timeout=self.settings.GENERATION_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"Generation timed out after {self.settings.GENERATION_TIMEOUT_SECONDS}s"
            )
            raise GenerationTimeoutError() from e
        except GenerationError:
            raise
        except Exception as e:
            if "SAFETY" in str(e).upper():
                logger.warning(f"Generation blocked by safety filters: {e}")
                raise SafetyBlockedError() from e
            logger.error(f"Generation failed: {e}")
            raise GenerationError(f"Failed to generate content. {e}") from e

    # ------------------------------------------------------------------
    # Podcast audio
    # ------------------------------------------------------------------

    def _speech_config(self) -> types.SpeechConfig:
        return types.SpeechConfig(
            multi_speaker_voice_config=types.MultiSpeakerVoiceConfig(
                speaker_voice_configs=[
                    types.SpeakerVoiceConfig(
                        speaker=speaker,
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                        ),
                    )
                    for speaker, voice in self.settings.podcast_speaker_voices.items()
                ]
            )
        )

    async def synthesize_podcast(self, script: str) -> Optional[bytes]:
        """
        Render a two-speaker script to WAV.

        Returns None when TTS fails; the script is still usable on its own.
        """
        speakers = " and ".join(self.settings.podcast_speaker_voices)

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.settings.GEMINI_TTS_MODEL,
                    contents=f"TTS the following conversation between {speakers}:\n{script}",
                    config=types.GenerateContentConfig(
                        response_modalities=["AUDIO"],
                        speech_config=self._speech_config(),
                    ),
                ),
                timeout=self.settings.GENERATION_TIMEOUT_SECONDS,
            )
            pcm = response.candidates[0].content.parts[0].inline_data.data
        except asyncio.TimeoutError:
            logger.warning("Podcast TTS timed out, keeping script without audio")
            return None
        except Exception as e:
            logger.warning(f"Podcast TTS failed, keeping script without audio: {e}")
            return None

        if not pcm:
            logger.warning("Podcast TTS returned no audio")
            return None

        return pcm_to_wav(
            pcm,
            sample_rate=self.settings.PODCAST_SAMPLE_RATE,
            channels=self.settings.PODCAST_CHANNELS,
            bits_per_sample=self.settings.PODCAST_BITS_PER_SAMPLE,
        )


# Global orchestrator instance
_orchestrator: Optional[GenerationOrchestrator] = None


def get_generation_orchestrator() -> GenerationOrchestrator:
    """Get or create the global generation orchestrator."""
    global _orchestrator

    if _orchestrator is None:
        _orchestrator = GenerationOrchestrator()

    return _orchestrator
