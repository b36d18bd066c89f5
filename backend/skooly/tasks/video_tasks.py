"""
Celery task for background video generation.
"""

import logging

from skooly.db.session import AsyncSessionLocal, engine
from skooly.services.generation.video import run_video_job
from skooly.tasks.embedding_tasks import run_async
from skooly.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run(video_id: int) -> dict:
    try:
        return await run_video_job(video_id, AsyncSessionLocal)
    finally:
        await engine.dispose()


@celery_app.task(name='video.generate_video', bind=True)
def generate_video(self, video_id: int) -> dict:
    logger.info(f"Generating video {video_id} (task {self.request.id})")
    result = run_async(_run(video_id))
    logger.info(f"Video {video_id} finished (success={result.get('success')})")
    return result
