"""
Material Service

Upload, update, delete and listing of course materials, plus the embedding
maintenance operations (backfill, coverage statistics).

Upload pipeline:
----------------
1. Write the upload to a temp file
2. Parse it (ParseError → no text, the stored file stands in for it)
3. Upload the original to object storage (StorageError is fatal)
4. Create the Material row
5. Chunk + embed (failures logged; backfill repairs them later)
6. Remove the temp file, whatever happened
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from skooly.core.config import settings
from skooly.models.content import FileReference, TextContent, encode_content
from skooly.models.embedding import EmbeddingChunk
from skooly.models.material import Material, MaterialCategory, MaterialType
from skooly.services.processors.chunker import TextChunker
from skooly.services.processors.embedder import GeminiEmbeddingService, get_embedding_service
from skooly.services.processors.parser import (
    ParseError,
    is_code_text,
    material_type_for_extension,
    parse_file,
)
from skooly.services.rag.store import EmbeddingStore
from skooly.services.storage import ObjectStorage, StorageError, get_storage


logger = logging.getLogger(__name__)


# Changing any of these alters the stored chunk metadata (and the synthetic
# file-reference text), so chunks are rebuilt.
EMBEDDED_FIELDS = {"title", "category", "topic", "type", "week"}

UPDATABLE_FIELDS = EMBEDDED_FIELDS | {"description", "course", "tags"}


class MaterialServiceError(Exception):
    """Base exception for material operations."""


class MaterialNotFoundError(MaterialServiceError):
    """No material with the requested id."""


class PermissionDeniedError(MaterialServiceError):
    """The acting user does not own the resource."""


class UploadTooLargeError(MaterialServiceError):
    """Upload exceeds MAX_UPLOAD_SIZE_MB."""


class MaterialService:
    """
    Usage:
    ------
    service = MaterialService(db)
    material, chunks = await service.upload(
        user_id, "week3.pdf", data, title="Trees", course="CS201",
        category="Theory", topic="BST", week=3,
    )
    """

    def __init__(
        self,
        db: AsyncSession,
        embedder: Optional[GeminiEmbeddingService] = None,
        storage: Optional[ObjectStorage] = None,
        chunker: Optional[TextChunker] = None,
    ):
        self.db = db
        self.embedder = embedder or get_embedding_service()
        self.store = EmbeddingStore(db, self.embedder)
        self._storage = storage
        self.chunker = chunker or TextChunker()

    @property
    def storage(self) -> ObjectStorage:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    # ========================================
    # Upload
    # ========================================

    async def upload(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        title: str,
        course: str,
        category: str,
        topic: Optional[str] = None,
        week: int = 1,
        material_type: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        mime_type: Optional[str] = None,
    ) -> tuple[Material, int]:
        """
        Store, parse and index an uploaded file.

        Returns:
            (material, number of chunks embedded)

        Raises:
            ValueError: Invalid category / type / week
            UploadTooLargeError: File larger than MAX_UPLOAD_SIZE_MB
            StorageError: Object storage rejected the file
        """
        max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
        if len(data) > max_bytes:
            raise UploadTooLargeError(
                f"File exceeds the {settings.MAX_UPLOAD_SIZE_MB} MB upload limit"
            )

        parsed_category = MaterialCategory.parse(category)
        parsed_type = MaterialType(material_type or material_type_for_extension(filename))
        if week < 1:
            raise ValueError("week must be >= 1")

        suffix = Path(filename).suffix.lower()
        fd, temp_path = tempfile.mkstemp(suffix=suffix, dir=settings.UPLOAD_TMP_DIR)

        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)

            try:
                text = await asyncio.to_thread(parse_file, temp_path, mime_type)
            except ParseError as e:
                logger.warning(f"Parsing '{filename}' failed, falling back to the stored file: {e}")
                text = ""

            stored = await self.storage.upload(
                data,
                folder=f"course_materials/{course}",
                resource_kind="raw",
                filename=filename,
            )

            material = Material(
                title=title,
                description=description,
                course=course,
                category=parsed_category,
                type=parsed_type,
                topic=topic,
                week=week,
                tags=[tag.strip() for tag in tags or [] if tag and tag.strip()],
                file_url=stored["url"],
                storage_public_id=stored["public_id"],
                content=text if text.strip() else encode_content(FileReference(url=stored["url"])),
                uploaded_by=user_id,
            )
            try:
                self.db.add(material)
                await self.db.commit()
                await self.db.refresh(material)
            except Exception:
                await self.db.rollback()
                await self._discard_stored_file(stored["public_id"])
                raise

        finally:
            try:
                os.unlink(temp_path)
            except OSError as e:
                logger.warning(f"Could not remove temp file {temp_path}: {e}")

        logger.info(f"Material {material.id} created from '{filename}' ({len(text)} chars extracted)")

        try:
            chunk_count = await self.embed_material(material)
        except Exception as e:
            logger.error(f"Embedding material {material.id} failed, backfill will retry: {e}")
            chunk_count = 0

        return material, chunk_count

    def chunks_for(self, text: str) -> List[str]:
        if is_code_text(text):
            return self.chunker.chunk_code(text)
        return self.chunker.chunk_text(text)

    async def embed_material(self, material: Material) -> int:
        """(Re)build a material's chunks. Returns the number stored."""
        content = material.content_ref

        if isinstance(content, FileReference):
            return await self.store.upsert_chunks(
                material.id, [], material.metadata_snapshot(), source=content
            )

        if isinstance(content, TextContent) and not content.is_empty:
            return await self.store.upsert_chunks(
                material.id,
                self.chunks_for(content.text),
                material.metadata_snapshot(),
                source=content,
            )

        logger.warning(f"Material {material.id} has no content to embed")
        return 0

    # ========================================
    # Read
    # ========================================

    async def get(self, material_id: int) -> Material:
        material = await self.db.get(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(f"Material {material_id} not found")
        return material

    async def get_owned(self, material_id: int, user_id: str) -> Material:
        material = await self.get(material_id)
        if not material.is_owned_by(user_id):
            raise PermissionDeniedError("You can only modify materials you uploaded")
        return material

    async def list_materials(
        self,
        course: Optional[str] = None,
        category: Optional[str] = None,
        week: Optional[int] = None,
        material_type: Optional[str] = None,
        uploaded_by: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Material]:
        query = select(Material)

        if course:
            query = query.where(Material.course == course)
        if category:
            query = query.where(Material.category == MaterialCategory.parse(category))
        if week is not None:
            query = query.where(Material.week == week)
        if material_type:
            query = query.where(Material.type == MaterialType(material_type))
        if uploaded_by:
            query = query.where(Material.uploaded_by == uploaded_by)

        query = query.order_by(Material.week.asc(), Material.created_at.desc()).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_for_user(self, user_id: str) -> List[Material]:
        return await self.list_materials(uploaded_by=user_id, limit=1000)

    async def courses(self) -> List[str]:
        result = await self.db.execute(
            select(distinct(Material.course)).order_by(Material.course)
        )
        return [course for course in result.scalars().all() if course]

    # ========================================
    # Write
    # ========================================

    async def update(self, material_id: int, user_id: str, changes: Dict[str, Any]) -> Material:
        """
        Owner-only metadata update. Rebuilds chunks when embedded fields change.

        Raises:
            MaterialNotFoundError, PermissionDeniedError, ValueError
        """
        material = await self.get_owned(material_id, user_id)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        changed = set()
        for field, value in changes.items():
            if field == "category" and value is not None:
                value = MaterialCategory.parse(value)
            elif field == "type" and value is not None:
                value = MaterialType(value)
            elif field == "week" and value is not None and value < 1:
                raise ValueError("week must be >= 1")

            if getattr(material, field) != value:
                setattr(material, field, value)
                changed.add(field)

        if not changed:
            return material

        await self.db.commit()
        await self.db.refresh(material)
        logger.info(f"Material {material_id} updated: {', '.join(sorted(changed))}")

        if changed & EMBEDDED_FIELDS:
            try:
                await self.embed_material(material)
            except Exception as e:
                logger.error(f"Re-embedding material {material_id} failed: {e}")

        return material

    async def delete(self, material_id: int, user_id: str) -> None:
        """Owner-only delete; chunks cascade, the stored file is removed."""
        material = await self.get_owned(material_id, user_id)
        public_id = material.storage_public_id

        await self.db.delete(material)
        await self.db.commit()
        logger.info(f"Material {material_id} deleted by {user_id}")

        if public_id:
            await self._discard_stored_file(public_id)

    async def _discard_stored_file(self, public_id: str) -> None:
        try:
            await self.storage.delete(public_id)
        except StorageError as e:
            logger.warning(f"Could not delete stored file {public_id}: {e}")

    # ========================================
    # Embedding Maintenance
    # ========================================

    async def backfill(
        self,
        material_ids: Optional[Sequence[int]] = None,
        force: bool = False,
    ) -> Dict[str, Any]:
        """
        Embed materials that have no chunks (or all, with ``force``).

        ``force`` rebuilds through the store's transactional replace, so a
        material keeps its previous chunks if re-embedding yields nothing.
        """
        query = select(Material).order_by(Material.id)
        if material_ids:
            query = query.where(Material.id.in_(list(material_ids)))

        result = await self.db.execute(query)
        materials = list(result.scalars().all())

        results: Dict[str, Any] = {
            "total": len(materials),
            "processed": 0,
            "skipped": 0,
            "failed": 0,
            "errors": [],
            "details": [],
        }

        counts = {} if force else await self.store.chunk_counts()

        for material in materials:
            existing = counts.get(material.id, 0)
            if existing:
                results["skipped"] += 1
                results["details"].append({
                    "material_id": material.id,
                    "title": material.title,
                    "status": "skipped",
                    "reason": f"Already has {existing} embeddings",
                })
                continue

            content = material.content_ref
            if isinstance(content, TextContent) and content.is_empty:
                results["skipped"] += 1
                results["details"].append({
                    "material_id": material.id,
                    "title": material.title,
                    "status": "skipped",
                    "reason": "No content available",
                })
                continue

            try:
                embedded = await self.embed_material(material)
            except Exception as e:
                logger.error(f"Backfill failed for material {material.id}: {e}")
                results["failed"] += 1
                results["errors"].append({
                    "material_id": material.id,
                    "title": material.title,
                    "error": str(e),
                })
                results["details"].append({
                    "material_id": material.id,
                    "title": material.title,
                    "status": "failed",
                    "error": str(e),
                })
                continue

            if embedded == 0:
                results["failed"] += 1
                results["errors"].append({
                    "material_id": material.id,
                    "title": material.title,
                    "error": "No chunks could be embedded",
                })
                results["details"].append({
                    "material_id": material.id,
                    "title": material.title,
                    "status": "failed",
                    "error": "No chunks could be embedded",
                })
                continue

            results["processed"] += 1
            results["details"].append({
                "material_id": material.id,
                "title": material.title,
                "status": "success",
                "embedding_count": embedded,
            })

        logger.info(
            f"Backfill complete: {results['processed']} processed, "
            f"{results['skipped']} skipped, {results['failed']} failed"
        )
        return results

    async def backfill_summary(self) -> Dict[str, Any]:
        """What a backfill would do right now."""
        result = await self.db.execute(select(Material).order_by(Material.id))
        materials = list(result.scalars().all())
        counts = await self.store.chunk_counts()

        needs = [m for m in materials if not counts.get(m.id)]
        with_content = [
            m for m in needs
            if not (isinstance(m.content_ref, TextContent) and m.content_ref.is_empty)
        ]

        return {
            "summary": {
                "totalMaterials": len(materials),
                "withEmbeddings": len([m for m in materials if counts.get(m.id)]),
                "needsEmbeddings": len(needs),
                "needsEmbeddingsWithContent": len(with_content),
                "cannotEmbed": len(needs) - len(with_content),
            },
            "materialsNeedingEmbeddings": [
                {
                    "id": m.id,
                    "title": m.title,
                    "course": m.course,
                    "topic": m.topic,
                    "contentLength": len(m.content or ""),
                }
                for m in with_content
            ],
        }

    async def embedding_stats(self) -> Dict[str, Any]:
        """Embedding coverage across all materials."""
        result = await self.db.execute(select(Material).order_by(Material.id))
        materials = list(result.scalars().all())
        counts = await self.store.chunk_counts()

        total_embeddings = (
            await self.db.execute(select(func.count(EmbeddingChunk.id)))
        ).scalar() or 0

        with_embeddings = [m for m in materials if counts.get(m.id)]
        coverage = len(with_embeddings) / len(materials) * 100 if materials else 0.0

        return {
            "totalMaterials": len(materials),
            "totalEmbeddings": total_embeddings,
            "materialsWithEmbeddings": len(with_embeddings),
            "materialsWithoutEmbeddings": len(materials) - len(with_embeddings),
            "coverage": f"{coverage:.1f}%",
            "materials": sorted(
                [
                    {
                        "id": m.id,
                        "title": m.title,
                        "course": m.course,
                        "topic": m.topic,
                        "embeddingCount": counts.get(m.id, 0),
                    }
                    for m in materials
                ],
                key=lambda item: item["embeddingCount"],
                reverse=True,
            ),
        }


def material_to_dict(material: Material) -> Dict[str, Any]:
    content = material.content_ref
    return {
        "id": material.id,
        "title": material.title,
        "description": material.description,
        "course": material.course,
        "category": material.category.value if material.category else None,
        "type": material.type.value if material.type else None,
        "topic": material.topic,
        "week": material.week,
        "tags": list(material.tags or []),
        "file_url": material.file_url,
        "has_text": isinstance(content, TextContent) and not content.is_empty,
        "uploaded_by": material.uploaded_by,
        "created_at": material.created_at,
        "updated_at": material.updated_at,
    }
