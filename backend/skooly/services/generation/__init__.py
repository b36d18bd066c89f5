"""
Content generation: prompts, orchestration, podcast audio and video jobs.
"""

from skooly.services.generation.audio import build_wav_header, pcm_to_wav
from skooly.services.generation.prompts import build_prompt
from skooly.services.generation.orchestrator import (
    GeneratedContent,
    GenerationError,
    GenerationOrchestrator,
    GenerationTimeoutError,
    SafetyBlockedError,
    get_generation_orchestrator,
    prepare_source,
)

__all__ = [
    "build_wav_header",
    "pcm_to_wav",
    "build_prompt",
    "GeneratedContent",
    "GenerationError",
    "GenerationOrchestrator",
    "GenerationTimeoutError",
    "SafetyBlockedError",
    "get_generation_orchestrator",
    "prepare_source",
]
