"""
Embedding Maintenance API Routes

- POST /embeddings/backfill (admin): embed materials that have no chunks
- GET  /embeddings/backfill (admin): what a backfill would do
- GET  /embeddings/stats: coverage statistics
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from skooly.api.deps import get_material_service
from skooly.core.auth import Identity, get_current_identity, require_admin
from skooly.schemas.embeddings import BackfillRequest
from skooly.services.materials import MaterialService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/embeddings", tags=["embeddings"])


@router.post("/backfill")
async def run_backfill(
    request: Optional[BackfillRequest] = Body(default=None),
    identity: Identity = Depends(require_admin),
    service: MaterialService = Depends(get_material_service),
):
    """Embed materials without chunks; ``force`` rebuilds all of them."""
    request = request or BackfillRequest()

    if request.background:
        from skooly.tasks.embedding_tasks import backfill_embeddings

        task = backfill_embeddings.delay(request.material_ids, request.force)
        logger.info(f"Backfill queued by {identity.user_id}: task {task.id}")
        return {"success": True, "queued": True, "task_id": task.id}

    try:
        results = await service.backfill(request.material_ids, force=request.force)
    except Exception as e:
        logger.error(f"Backfill failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Backfill process failed")

    return {
        "success": True,
        "message": (
            f"Backfill complete: {results['processed']} processed, "
            f"{results['skipped']} skipped, {results['failed']} failed"
        ),
        "results": results,
    }


@router.get("/backfill")
async def backfill_status(
    identity: Identity = Depends(require_admin),
    service: MaterialService = Depends(get_material_service),
):
    return {"success": True, **await service.backfill_summary()}


@router.get("/stats")
async def embedding_stats(
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    return {"success": True, "stats": await service.embedding_stats()}
