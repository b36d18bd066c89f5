"""
Celery tasks for material embeddings.

These tasks handle:
- Embedding a single material after upload or edit
- Backfilling materials that have no embeddings (also run by beat)
"""

import asyncio
import logging
from typing import List, Optional

from celery import Task

from skooly.db.session import AsyncSessionLocal, engine
from skooly.services.materials import MaterialNotFoundError, MaterialService
from skooly.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """
    Run async coroutine in sync context.

    Creates a new event loop if needed or uses existing one.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        # Already inside a loop (eager mode in tests); run on a separate thread
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as executor:
            future = executor.submit(asyncio.run, coro)
            return future.result()


class EmbeddingTask(Task):
    """Base task with retry logic for embedding tasks."""

    autoretry_for = (Exception,)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True


async def _embed_material(material_id: int) -> dict:
    try:
        async with AsyncSessionLocal() as db:
            service = MaterialService(db)
            try:
                material = await service.get(material_id)
            except MaterialNotFoundError:
                logger.warning(f"Material {material_id} not found, nothing to embed")
                return {"material_id": material_id, "status": "not_found", "embedding_count": 0}

            count = await service.embed_material(material)
            return {"material_id": material_id, "status": "success", "embedding_count": count}
    finally:
        # Pool connections belong to this task's event loop
        await engine.dispose()


async def _backfill(material_ids: Optional[List[int]], force: bool) -> dict:
    try:
        async with AsyncSessionLocal() as db:
            return await MaterialService(db).backfill(material_ids=material_ids, force=force)
    finally:
        await engine.dispose()


@celery_app.task(base=EmbeddingTask, name='embedding.embed_material', bind=True)
def embed_material(self, material_id: int) -> dict:
    """
    Embed one material, replacing any chunks it already has.

    Args:
        material_id: ID of the material to embed

    Returns:
        Dict with status and embedding count
    """
    logger.info(f"Embedding material {material_id} (attempt {self.request.retries + 1})")
    result = run_async(_embed_material(material_id))
    logger.info(f"Material {material_id}: {result['status']}, {result['embedding_count']} embeddings")
    return result


@celery_app.task(base=EmbeddingTask, name='embedding.backfill_embeddings', bind=True)
def backfill_embeddings(self, material_ids: Optional[List[int]] = None, force: bool = False) -> dict:
    """
    Embed materials that have none (or every listed material when force is set).

    Runs periodically via Celery beat with no arguments.
    """
    logger.info(f"Starting embedding backfill (ids={material_ids}, force={force})")
    results = run_async(_backfill(material_ids, force))
    logger.info(
        f"Backfill complete: {results['processed']} processed, "
        f"{results['skipped']} skipped, {results['failed']} failed"
    )
    return results
