"""
Service dependencies for the API routes.

Each provider builds a request-scoped service from the process-wide
collaborators; tests replace them through ``app.dependency_overrides``.
"""

from fastapi import Depends

from skooly.db.deps import DBSession
from skooly.services.ai_materials import AiMaterialService
from skooly.services.chat import ChatService
from skooly.services.community import CommunityService
from skooly.services.generation.orchestrator import GenerationOrchestrator, get_generation_orchestrator
from skooly.services.generation.video import VideoService, get_video_job_queue
from skooly.services.handwritten_notes import HandwrittenNoteService
from skooly.services.materials import MaterialService
from skooly.services.processors.embedder import GeminiEmbeddingService, get_embedding_service
from skooly.services.rag.context import RAGContextAssembler
from skooly.services.rag.generator import AnswerGenerator, get_answer_generator
from skooly.services.rag.store import EmbeddingStore
from skooly.services.rag.validator import ContentValidator


def get_embedder() -> GeminiEmbeddingService:
    return get_embedding_service()


def get_generator() -> AnswerGenerator:
    return get_answer_generator()


def get_orchestrator() -> GenerationOrchestrator:
    return get_generation_orchestrator()


def get_assembler(
    db: DBSession,
    embedder: GeminiEmbeddingService = Depends(get_embedder),
) -> RAGContextAssembler:
    return RAGContextAssembler(EmbeddingStore(db, embedder), embedder)


def get_validator(
    assembler: RAGContextAssembler = Depends(get_assembler),
    generator: AnswerGenerator = Depends(get_generator),
) -> ContentValidator:
    return ContentValidator(searcher=assembler, judge=generator)


def get_material_service(
    db: DBSession,
    embedder: GeminiEmbeddingService = Depends(get_embedder),
) -> MaterialService:
    return MaterialService(db, embedder=embedder)


def get_chat_service(
    db: DBSession,
    assembler: RAGContextAssembler = Depends(get_assembler),
    generator: AnswerGenerator = Depends(get_generator),
    validator: ContentValidator = Depends(get_validator),
) -> ChatService:
    return ChatService(db, assembler, generator, validator)


def get_community_service(
    db: DBSession,
    assembler: RAGContextAssembler = Depends(get_assembler),
    generator: AnswerGenerator = Depends(get_generator),
) -> CommunityService:
    return CommunityService(db, assembler, generator)


def get_ai_material_service(
    db: DBSession,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    assembler: RAGContextAssembler = Depends(get_assembler),
) -> AiMaterialService:
    return AiMaterialService(db, orchestrator, assembler)


def get_video_service(db: DBSession) -> VideoService:
    return VideoService(db, queue=get_video_job_queue())


def get_handwritten_note_service(db: DBSession) -> HandwrittenNoteService:
    return HandwrittenNoteService(db)
