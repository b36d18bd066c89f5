"""
Celery tasks for background processing.
"""

from skooly.tasks.embedding_tasks import backfill_embeddings, embed_material
from skooly.tasks.video_tasks import generate_video

__all__ = [
    "embed_material",
    "backfill_embeddings",
    "generate_video",
]
