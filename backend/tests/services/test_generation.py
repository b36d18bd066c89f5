"""
Tests for content generation: prompts, source preparation, the
orchestrator's error mapping, MCQ parsing and podcast audio.
"""

import asyncio
import json
import struct
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from google.genai import types

from skooly.core.config import settings
from skooly.models.ai_material import ContentType
from skooly.services.generation.audio import WAV_HEADER_SIZE, build_wav_header, pcm_to_wav
from skooly.services.generation.orchestrator import (
    SOURCE_TOO_SHORT_MESSAGE,
    GenerationError,
    GenerationOrchestrator,
    GenerationTimeoutError,
    SafetyBlockedError,
    parse_mcq,
    prepare_source,
)
from skooly.services.generation.prompts import ATTACHED_SOURCE_NOTE, build_prompt
from skooly.services.rag.generator import AnswerGenerator


LONG_TEXT = "Dynamic programming solves problems by combining solutions to overlapping subproblems. " * 3


def quiz_json(count=2, answer="B"):
    return json.dumps([
        {
            "question": f"Question {i}?",
            "options": ["A", "B", "C", "D"],
            "answer": answer,
            "explanation": "Because.",
        }
        for i in range(count)
    ])


def orchestrator_with(response=None, side_effect=None, client=None, timeout=5.0):
    generator = Mock()
    generator.generate = AsyncMock(return_value=response, side_effect=side_effect)
    test_settings = settings.model_copy(update={"GENERATION_TIMEOUT_SECONDS": timeout})
    return GenerationOrchestrator(client=client or Mock(), settings=test_settings, generator=generator)


# ========================================
# Prompts
# ========================================

class TestBuildPrompt:

    def test_context_and_topic(self):
        prompt = build_prompt(ContentType.NOTES, "Graphs", "BFS", "Breadth-first search visits...")
        assert "Graphs" in prompt
        assert "BFS" in prompt
        assert "Breadth-first search visits..." in prompt

    def test_topic_defaults_to_title(self):
        prompt = build_prompt("notes", "Hashing", None, "text")
        assert "(Topic: Hashing)" in prompt

    def test_empty_context_points_to_attachment(self):
        prompt = build_prompt(ContentType.PDF, "Scan", "Scan", "   ")
        assert ATTACHED_SOURCE_NOTE in prompt

    def test_customization_appended(self):
        prompt = build_prompt(ContentType.CODE_GUIDE, "Recursion", None, "text", customization=" Python only ")
        assert prompt.endswith("\n\nFocus on: Python only")

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            build_prompt("essay", "Title", None, "text")

    @pytest.mark.parametrize("content_type", list(ContentType))
    def test_every_type_has_template(self, content_type):
        assert build_prompt(content_type, "T", "t", "context")


# ========================================
# Source Preparation
# ========================================

class TestPrepareSource:

    def test_text_source(self):
        assert prepare_source(LONG_TEXT) == (LONG_TEXT.strip(), [])

    def test_sentinel_becomes_file_ref(self):
        assert prepare_source("FILE_URL:https://x/a.pdf") == ("", [{"url": "https://x/a.pdf"}])

    def test_blank_text_with_file(self):
        assert prepare_source("", file_url="https://x/b.pdf") == ("", [{"url": "https://x/b.pdf"}])

    def test_short_text_with_file_keeps_text(self):
        assert prepare_source("tiny", file_url="https://x/b.pdf") == ("tiny", [])

    def test_short_text_without_file(self):
        with pytest.raises(ValueError, match=SOURCE_TOO_SHORT_MESSAGE):
            prepare_source("too short")


# ========================================
# WAV
# ========================================

class TestWav:

    def test_header_layout(self):
        header = build_wav_header(1000, sample_rate=24000, channels=1, bits_per_sample=16)

        assert len(header) == WAV_HEADER_SIZE
        assert header[0:4] == b"RIFF"
        assert struct.unpack("<I", header[4:8])[0] == 1036
        assert header[8:16] == b"WAVEfmt "
        assert struct.unpack("<IHHIIHH", header[16:36]) == (16, 1, 1, 24000, 48000, 2, 16)
        assert header[36:40] == b"data"
        assert struct.unpack("<I", header[40:44])[0] == 1000

    def test_stereo_rates(self):
        header = build_wav_header(0, sample_rate=44100, channels=2, bits_per_sample=16)
        byte_rate, block_align = struct.unpack("<IH", header[28:34])
        assert byte_rate == 176400
        assert block_align == 4

    def test_negative_length(self):
        with pytest.raises(ValueError):
            build_wav_header(-1)

    def test_pcm_to_wav(self):
        pcm = b"\x01\x02" * 10
        wav = pcm_to_wav(pcm)
        assert wav[WAV_HEADER_SIZE:] == pcm
        assert len(wav) == WAV_HEADER_SIZE + 20


# ========================================
# MCQ Parsing
# ========================================

class TestParseMcq:

    def test_valid_quiz(self):
        quiz = parse_mcq(quiz_json(3))
        assert len(quiz) == 3
        assert quiz[0]["answer"] == "B"

    def test_code_fences_stripped(self):
        quiz = parse_mcq("```json\n" + quiz_json(1) + "\n```")
        assert len(quiz) == 1

    def test_letter_answer_mapped_to_option(self):
        raw = json.dumps([{"question": "Q?", "options": ["red", "green", "blue", "pink"], "answer": "c"}])
        assert parse_mcq(raw)[0]["answer"] == "blue"

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[]",
            '{"question": "Q?"}',
            json.dumps([{"question": "Q?", "options": ["a", "b", "c"], "answer": "a"}]),
            json.dumps([{"question": "Q?", "options": ["a", "b", "c", "d"], "answer": "e"}]),
            json.dumps([{"question": " ", "options": ["a", "b", "c", "d"], "answer": "a"}]),
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(GenerationError):
            parse_mcq(raw)


# ========================================
# Orchestrator
# ========================================

@pytest.mark.asyncio
class TestGenerationOrchestrator:

    async def test_notes(self):
        orchestrator = orchestrator_with("# Notes\n\nContent")

        result = await orchestrator.generate(ContentType.NOTES, "DP", "Memoization", LONG_TEXT)

        assert result.content == "# Notes\n\nContent"
        assert result.quiz is None
        prompt = orchestrator.generator.generate.call_args[0][0]
        assert "Memoization" in prompt

    async def test_file_refs_passed_to_model(self):
        orchestrator = orchestrator_with("notes")
        refs = [{"url": "https://x/scan.pdf"}]

        await orchestrator.generate("notes", "Scan", None, "", file_urls=refs)

        assert orchestrator.generator.generate.call_args.kwargs["file_refs"] == refs

    async def test_mcq_parsed(self):
        orchestrator = orchestrator_with(quiz_json(10))

        result = await orchestrator.generate(ContentType.MCQ, "DP", None, LONG_TEXT)

        assert len(result.quiz) == 10
        assert json.loads(result.content) == result.quiz

    async def test_timeout(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return "late"

        orchestrator = orchestrator_with(side_effect=slow, timeout=0.01)

        with pytest.raises(GenerationTimeoutError) as exc_info:
            await orchestrator.generate(ContentType.NOTES, "DP", None, LONG_TEXT)
        assert "timed out" in str(exc_info.value)

    async def test_safety_block(self):
        orchestrator = orchestrator_with(side_effect=RuntimeError("Response blocked: finish_reason=SAFETY"))

        with pytest.raises(SafetyBlockedError):
            await orchestrator.generate(ContentType.NOTES, "DP", None, LONG_TEXT)

    async def test_other_failure(self):
        orchestrator = orchestrator_with(side_effect=RuntimeError("503 unavailable"))

        with pytest.raises(GenerationError) as exc_info:
            await orchestrator.generate(ContentType.NOTES, "DP", None, LONG_TEXT)
        assert str(exc_info.value) == "Failed to generate content. 503 unavailable"
        assert not isinstance(exc_info.value, (GenerationTimeoutError, SafetyBlockedError))

    async def test_empty_output(self):
        orchestrator = orchestrator_with("   ")

        with pytest.raises(GenerationError):
            await orchestrator.generate(ContentType.NOTES, "DP", None, LONG_TEXT)

    async def test_podcast_audio(self):
        client = Mock()
        tts_response = MagicMock()
        tts_response.candidates[0].content.parts[0].inline_data.data = b"\x00\x01" * 50
        client.aio.models.generate_content = AsyncMock(return_value=tts_response)
        orchestrator = orchestrator_with("Alex: Hi.\nSam: Hello.", client=client)

        result = await orchestrator.generate(ContentType.PODCAST, "DP", None, LONG_TEXT)

        assert result.content == "Alex: Hi.\nSam: Hello."
        assert result.audio[:4] == b"RIFF"
        assert len(result.audio) == WAV_HEADER_SIZE + 100
        config = client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.response_modalities == ["AUDIO"]
        speakers = [
            voice.speaker
            for voice in config.speech_config.multi_speaker_voice_config.speaker_voice_configs
        ]
        assert speakers == ["Alex", "Sam"]

    async def test_podcast_tts_failure_keeps_script(self):
        client = Mock()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("tts down"))
        orchestrator = orchestrator_with("Alex: Hi.\nSam: Hello.", client=client)

        result = await orchestrator.generate(ContentType.PODCAST, "DP", None, LONG_TEXT)

        assert result.audio is None
        assert result.content.startswith("Alex:")


@pytest.mark.asyncio
class TestBlockedGeminiResponse:

    async def test_safety_finish_reason_maps_to_safety_error(self):
        client = Mock()
        client.aio.models.generate_content = AsyncMock(
            return_value=types.GenerateContentResponse(
                candidates=[types.Candidate(finish_reason=types.FinishReason.SAFETY)]
            )
        )
        test_settings = settings.model_copy(update={"GENERATION_TIMEOUT_SECONDS": 5.0})
        orchestrator = GenerationOrchestrator(
            client=client, settings=test_settings, generator=AnswerGenerator(client)
        )

        with pytest.raises(SafetyBlockedError) as exc_info:
            await orchestrator.generate(ContentType.NOTES, "DP", None, LONG_TEXT)
        assert "blocked by safety filters" in str(exc_info.value)


@pytest.mark.asyncio
class TestDiscuss:

    async def test_passes_instruction_and_history(self):
        orchestrator = orchestrator_with("  Heaps are trees.  ")
        history = [{"role": "user", "content": "Hi"}]

        answer = await orchestrator.discuss("What is a heap?", "Study this", history)

        assert answer == "Heaps are trees."
        orchestrator.generator.generate.assert_awaited_once_with(
            "What is a heap?", system_instruction="Study this", history=history,
        )

    async def test_errors_mapped_like_generate(self):
        orchestrator = orchestrator_with(side_effect=RuntimeError("finish_reason: SAFETY"))
        with pytest.raises(SafetyBlockedError):
            await orchestrator.discuss("?", "Study this")

        orchestrator = orchestrator_with("")
        with pytest.raises(GenerationError, match="no content"):
            await orchestrator.discuss("?", "Study this")
