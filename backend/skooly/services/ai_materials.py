"""
AI Material Service

Turns a generation request into a stored AiMaterial:

1. Resolve the source (existing material, pasted text or a file URL)
2. Optionally add retrieved course context
3. Run the GenerationOrchestrator
4. Store podcast audio in object storage
5. Persist the result
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skooly.models.ai_material import AiMaterial, ContentType
from skooly.models.content import FileReference
from skooly.models.material import Material, MaterialCategory
from skooly.services.generation.orchestrator import GenerationOrchestrator, prepare_source
from skooly.services.generation.prompts import build_study_chat_instruction
from skooly.services.materials import MaterialNotFoundError, PermissionDeniedError
from skooly.services.processors.embedder import EmbeddingError
from skooly.services.rag.context import CONTEXT_SEPARATOR, RAGContextAssembler
from skooly.services.storage import ObjectStorage, StorageError, get_storage


logger = logging.getLogger(__name__)


DEFAULT_COURSE = "AI Generated"

# Study chat keeps only the most recent turns
STUDY_CHAT_HISTORY_LIMIT = 10


class AiMaterialNotFoundError(Exception):
    """No generated material with that id."""


class AudioNotAvailableError(Exception):
    """The generated material has no stored audio."""


class AiMaterialService:
    def __init__(
        self,
        db: AsyncSession,
        orchestrator: GenerationOrchestrator,
        assembler: Optional[RAGContextAssembler] = None,
        storage: Optional[ObjectStorage] = None,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.assembler = assembler
        self._storage = storage

    @property
    def storage(self) -> ObjectStorage:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    async def generate(
        self,
        user_id: str,
        content_type: ContentType,
        title: str,
        category: str,
        topic: Optional[str] = None,
        source_content: Optional[str] = None,
        file_url: Optional[str] = None,
        material_id: Optional[int] = None,
        customization: Optional[str] = None,
        course: Optional[str] = None,
        week: Optional[int] = None,
        use_context: bool = False,
    ) -> AiMaterial:
        """
        Raises:
            ValueError: Bad category or source too short (400)
            MaterialNotFoundError: material_id does not exist
            GenerationError and subclasses: from the orchestrator
        """
        formatted_category = MaterialCategory.parse(category).value

        if material_id is not None:
            material = await self.db.get(Material, material_id)
            if material is None:
                raise MaterialNotFoundError(f"Material {material_id} not found")

            content = material.content_ref
            if isinstance(content, FileReference):
                source_content, file_url = None, content.url
            else:
                source_content, file_url = content.text, material.file_url

            course = course or material.course
            week = week or material.week
            topic = topic or material.topic

        context, file_refs = prepare_source(source_content, file_url)

        if use_context and self.assembler is not None:
            try:
                rag = await self.assembler.get_context(topic or title, category=formatted_category)
            except EmbeddingError as e:
                logger.warning(f"Context retrieval for generation failed: {e}")
            else:
                if rag.context:
                    context = CONTEXT_SEPARATOR.join(part for part in (context, rag.context) if part)
                known = {ref["url"] for ref in file_refs}
                file_refs.extend(ref for ref in rag.file_urls if ref["url"] not in known)

        result = await self.orchestrator.generate(
            content_type,
            title,
            topic,
            context,
            customization=customization,
            file_urls=file_refs,
        )

        ai_material = AiMaterial(
            uploaded_by=user_id,
            title=title,
            type=result.content_type.value,
            category=formatted_category,
            content=result.content,
            course=course or DEFAULT_COURSE,
            week=week or 1,
            topic=topic or title,
            source_material_id=material_id,
            customization=customization,
        )

        if result.audio:
            try:
                stored = await self.storage.upload(
                    result.audio,
                    folder="podcasts",
                    resource_kind="audio",
                    filename="podcast.wav",
                )
                ai_material.audio_url = stored["url"]
                ai_material.audio_public_id = stored["public_id"]
            except StorageError as e:
                logger.warning(f"Podcast audio could not be stored: {e}")

        self.db.add(ai_material)
        await self.db.commit()
        await self.db.refresh(ai_material)

        logger.info(f"Generated {ai_material.type} material {ai_material.id} for {user_id}")
        return ai_material

    async def list_for_user(self, user_id: str, content_type: Optional[str] = None) -> List[AiMaterial]:
        query = select(AiMaterial).where(AiMaterial.uploaded_by == user_id)
        if content_type:
            query = query.where(AiMaterial.type == ContentType(content_type).value)
        result = await self.db.execute(query.order_by(AiMaterial.created_at.desc()))
        return list(result.scalars().all())

    async def get_owned(self, ai_material_id: int, user_id: str) -> AiMaterial:
        ai_material = await self.db.get(AiMaterial, ai_material_id)
        if ai_material is None:
            raise AiMaterialNotFoundError(f"AI material {ai_material_id} not found")
        if ai_material.uploaded_by != user_id:
            raise PermissionDeniedError("You do not have access to this material")
        return ai_material

    async def delete(self, ai_material_id: int, user_id: str) -> None:
        ai_material = await self.get_owned(ai_material_id, user_id)
        audio_public_id = ai_material.audio_public_id

        await self.db.delete(ai_material)
        await self.db.commit()

        if audio_public_id:
            try:
                await self.storage.delete(audio_public_id, resource_kind="audio")
            except StorageError as e:
                logger.warning(f"Could not delete audio for AI material {ai_material_id}: {e}")

    async def audio(self, ai_material_id: int, user_id: str) -> bytes:
        ai_material = await self.get_owned(ai_material_id, user_id)
        if not ai_material.audio_public_id:
            raise AudioNotAvailableError("No audio for this material")
        return await self.storage.download(ai_material.audio_public_id, resource_kind="audio")

    async def study_chat(
        self,
        ai_material_id: int,
        user_id: str,
        message: str,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """
        Answer a question about one of the caller's generated materials.

        The material itself is the context; only the last
        STUDY_CHAT_HISTORY_LIMIT history messages are sent.

        Raises:
            AiMaterialNotFoundError, PermissionDeniedError
            GenerationError and subclasses: from the orchestrator
        """
        ai_material = await self.get_owned(ai_material_id, user_id)

        recent = [
            {"role": "user" if turn.get("role") == "user" else "assistant", "content": turn.get("content", "")}
            for turn in (history or [])[-STUDY_CHAT_HISTORY_LIMIT:]
        ]

        answer = await self.orchestrator.discuss(
            message,
            system_instruction=build_study_chat_instruction(ai_material.title, ai_material.content),
            history=recent,
        )
        logger.info(f"Study chat on AI material {ai_material_id} for {user_id} ({len(recent)} history turns)")
        return answer


def ai_material_to_dict(ai_material: AiMaterial) -> Dict[str, Any]:
    quiz = None
    if ai_material.type == ContentType.MCQ.value:
        try:
            quiz = json.loads(ai_material.content)
        except json.JSONDecodeError:
            quiz = None

    return {
        "id": ai_material.id,
        "uploaded_by": ai_material.uploaded_by,
        "title": ai_material.title,
        "type": ai_material.type,
        "category": ai_material.category,
        "content": ai_material.content,
        "quiz": quiz,
        "course": ai_material.course,
        "week": ai_material.week,
        "topic": ai_material.topic,
        "source_material_id": ai_material.source_material_id,
        "customization": ai_material.customization,
        "audio_url": ai_material.audio_url,
        "created_at": ai_material.created_at,
    }
