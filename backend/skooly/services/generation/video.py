"""
Video generation with Veo.

Pipeline (run_video_job):
-------------------------
1. Turn course content into a short cinematic prompt (Gemini, with a
   template fallback)
2. Start a Veo operation
3. Poll every VIDEO_POLL_INTERVAL_SECONDS, at most VIDEO_MAX_POLLS times
4. Download the video (API key header) and upload it to object storage
5. Mark the VideoMaterial COMPLETED, or FAILED with the error message

Requests never wait for this: routes create a PENDING record and hand the id
to a VideoJobQueue.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx
from google import genai
from google.genai import types
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from skooly.core.config import Settings, settings as default_settings
from skooly.models.content import TextContent
from skooly.models.material import Material
from skooly.models.video import VideoMaterial, VideoStatus
from skooly.services.gemini import get_gemini_client
from skooly.services.materials import MaterialNotFoundError, PermissionDeniedError
from skooly.services.rag.store import file_reference_summary
from skooly.services.storage import ObjectStorage, StorageError, get_storage


logger = logging.getLogger(__name__)


VIDEO_PROMPT_REQUEST = """You are an expert video script writer for educational content.

Convert the following course material into a detailed, cinematic video prompt for video generation.

Topic: {topic}

Content:
{content}

Requirements:
- Create a vivid, visual description suitable for an {style} video
- Include specific camera movements (e.g., "close-up", "wide shot", "panning")
- Describe visual elements clearly (colors, lighting, composition)
- Include audio cues: dialogue, sound effects, or ambient sounds
- Make it engaging and educational
- Keep it concise but descriptive (aim for 2-3 sentences)
- Use present tense and active voice

Return ONLY the video prompt, nothing else."""

PROMPT_CONTENT_LIMIT = 2000


class VideoGenerationError(Exception):
    """Video generation failed; the record is marked FAILED with this message."""


class VideoNotFoundError(Exception):
    """No video with the requested id."""


def fallback_video_prompt(topic: str) -> str:
    return (
        f"An educational video explaining {topic}. Clear, professional presentation "
        "with visual aids and diagrams. Narrated with clear, engaging voiceover."
    )


# ========================================
# Veo Client
# ========================================

class VeoVideoGenerator:
    """
    Usage:
    ------
    veo = VeoVideoGenerator(client)
    prompt = await veo.generate_prompt(content, "Recursion")
    operation = await veo.start(prompt)
    operation = await veo.wait(operation)
    data, mime_type = await veo.download(operation)
    """

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self.settings = settings or default_settings
        self._http_client = http_client
        self._sleep = sleep

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    async def generate_prompt(self, content: str, topic: str, style: str = "educational") -> str:
        """Cinematic prompt for the content; falls back to a template on any failure."""
        excerpt = content[:PROMPT_CONTENT_LIMIT] + ("..." if len(content) > PROMPT_CONTENT_LIMIT else "")
        try:
            response = await self.client.aio.models.generate_content(
                model=self.settings.GEMINI_MODEL,
                contents=VIDEO_PROMPT_REQUEST.format(topic=topic, content=excerpt, style=style),
            )
            prompt = (response.text or "").strip()
        except Exception as e:
            logger.error(f"Error generating video prompt for '{topic}': {e}")
            return fallback_video_prompt(topic)

        return prompt or fallback_video_prompt(topic)

    async def start(
        self,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        resolution: Optional[str] = None,
        duration_seconds: Optional[int] = None,
        negative_prompt: Optional[str] = None,
    ):
        logger.info(f"Starting video generation: {prompt[:100]}")
        return await self.client.aio.models.generate_videos(
            model=self.settings.VEO_MODEL,
            prompt=prompt,
            config=types.GenerateVideosConfig(
                aspect_ratio=aspect_ratio or self.settings.VIDEO_ASPECT_RATIO,
                resolution=resolution or self.settings.VIDEO_RESOLUTION,
                duration_seconds=duration_seconds or self.settings.VIDEO_DURATION_SECONDS,
                negative_prompt=negative_prompt or None,
            ),
        )

    async def wait(self, operation):
        """
        Poll until the operation is done.

        Raises:
            VideoGenerationError: Still running after VIDEO_MAX_POLLS polls,
                                  or finished with an error
        """
        polls = 0
        while not operation.done:
            if polls >= self.settings.VIDEO_MAX_POLLS:
                raise VideoGenerationError(
                    f"Video generation timed out after {polls} status checks"
                )
            polls += 1
            await self._sleep(self.settings.VIDEO_POLL_INTERVAL_SECONDS)
            operation = await self.client.aio.operations.get(operation)
            logger.debug(f"Video operation {operation.name}: poll {polls}, done={operation.done}")

        if getattr(operation, "error", None):
            raise VideoGenerationError(f"Video generation failed: {operation.error}")

        logger.info(f"Video operation {operation.name} completed after {polls} polls")
        return operation

    async def download(self, operation) -> tuple[bytes, str]:
        """Fetch the generated file. Returns (bytes, mime_type)."""
        response = getattr(operation, "response", None)
        videos = getattr(response, "generated_videos", None) or []
        video = videos[0].video if videos else None
        if video is None or not video.uri:
            raise VideoGenerationError("Operation finished without a video")

        headers = {"x-goog-api-key": self.settings.GEMINI_API_KEY or ""}
        try:
            if self._http_client is not None:
                http_response = await self._http_client.get(video.uri, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=120.0, follow_redirects=True) as http:
                    http_response = await http.get(video.uri, headers=headers)
            http_response.raise_for_status()
        except httpx.HTTPError as e:
            raise VideoGenerationError(f"Failed to download video: {e}") from e

        mime_type = (
            getattr(video, "mime_type", None)
            or http_response.headers.get("content-type")
            or "video/mp4"
        )
        return http_response.content, mime_type


# ========================================
# Job Runner
# ========================================

async def run_video_job(
    video_id: int,
    session_factory: async_sessionmaker,
    generator: Optional[VeoVideoGenerator] = None,
    storage: Optional[ObjectStorage] = None,
) -> Dict[str, Any]:
    """
    Generate the video for one VideoMaterial record.

    Never raises for generation failures; the record carries the outcome.
    """
    generator = generator or VeoVideoGenerator()

    async with session_factory() as db:
        video = await db.get(VideoMaterial, video_id)
        if video is None:
            logger.warning(f"Video {video_id} not found, skipping")
            return {"success": False, "video_id": video_id, "error": "not found"}

        stale_after = generator.settings.VIDEO_STALE_AFTER_MINUTES
        if video.status == VideoStatus.COMPLETED or (
            video.status == VideoStatus.PROCESSING and not video.is_possibly_stale(stale_after)
        ):
            logger.info(f"Video {video_id} already {video.status.value}, skipping")
            return {"success": video.status == VideoStatus.COMPLETED, "video_id": video_id, "status": video.status.value}

        video.status = VideoStatus.PROCESSING
        video.started_at = datetime.now(timezone.utc)
        video.error_message = None
        await db.commit()

        try:
            prompt = await generator.generate_prompt(
                video.source_content or video.description or video.title,
                video.topic or video.title,
            )
            video.prompt = prompt
            await db.commit()

            operation = await generator.start(
                prompt,
                aspect_ratio=video.aspect_ratio,
                resolution=video.resolution,
                duration_seconds=video.duration_seconds,
            )
            operation = await generator.wait(operation)
            data, _mime_type = await generator.download(operation)

            uploaded = await (storage or get_storage()).upload(
                data,
                folder=f"course_videos/{video.course or 'general'}",
                resource_kind="video",
                filename=f"video_{video.id}.mp4",
            )

            video.video_url = uploaded["url"]
            video.storage_public_id = uploaded["public_id"]
            video.status = VideoStatus.COMPLETED
            video.completed_at = datetime.now(timezone.utc)
            await db.commit()

            logger.info(f"Video {video_id} completed ({len(data)} bytes)")
            return {"success": True, "video_id": video_id, "video_url": video.video_url}

        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Video {video_id} failed: {message}")
            await db.rollback()
            video = await db.get(VideoMaterial, video_id)
            if video is not None:
                video.status = VideoStatus.FAILED
                video.error_message = message
                video.completed_at = datetime.now(timezone.utc)
                await db.commit()
            return {"success": False, "video_id": video_id, "error": message}


# ========================================
# Job Queues
# ========================================

class VideoJobQueue:
    """Hands a video id to whatever runs run_video_job."""

    async def submit(self, video_id: int) -> None:
        raise NotImplementedError


class InProcessVideoJobQueue(VideoJobQueue):
    """Runs jobs as asyncio tasks in the API process (development, single node)."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None, generator: Optional[VeoVideoGenerator] = None):
        self.session_factory = session_factory
        self.generator = generator
        self._tasks: Set[asyncio.Task] = set()

    async def submit(self, video_id: int) -> None:
        if self.session_factory is None:
            from skooly.db.session import AsyncSessionLocal
            self.session_factory = AsyncSessionLocal

        task = asyncio.create_task(
            run_video_job(video_id, self.session_factory, generator=self.generator)
        )
        # Held until done so the task is not garbage collected mid-run
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Queued video {video_id} in-process")


class CeleryVideoJobQueue(VideoJobQueue):
    """Dispatches jobs to the Celery video queue."""

    async def submit(self, video_id: int) -> None:
        from skooly.tasks.video_tasks import generate_video

        generate_video.delay(video_id)
        logger.info(f"Queued video {video_id} on Celery")


_queue: Optional[VideoJobQueue] = None


def get_video_job_queue() -> VideoJobQueue:
    """Get the configured job queue."""
    global _queue
    if _queue is None:
        if default_settings.VIDEO_QUEUE_BACKEND == "celery":
            _queue = CeleryVideoJobQueue()
        else:
            _queue = InProcessVideoJobQueue()
    return _queue


# ========================================
# Video Records
# ========================================

def video_to_dict(video: VideoMaterial, stale_after_minutes: Optional[int] = None) -> Dict[str, Any]:
    stale_after = stale_after_minutes or default_settings.VIDEO_STALE_AFTER_MINUTES
    return {
        "id": video.id,
        "title": video.title,
        "description": video.description,
        "course": video.course,
        "topic": video.topic,
        "week": video.week,
        "status": video.status.value if video.status else None,
        "possibly_stale": video.is_possibly_stale(stale_after),
        "video_url": video.video_url,
        "prompt": video.prompt,
        "duration_seconds": video.duration_seconds,
        "aspect_ratio": video.aspect_ratio,
        "resolution": video.resolution,
        "error_message": video.error_message,
        "source_material_id": video.source_material_id,
        "uploaded_by": video.uploaded_by,
        "created_at": video.created_at,
        "started_at": video.started_at,
        "completed_at": video.completed_at,
    }


class VideoService:
    """
    Usage:
    ------
    service = VideoService(db, queue)
    video = await service.create_job(user_id, title="Recursion", content=text)
    """

    def __init__(self, db: AsyncSession, queue: Optional[VideoJobQueue] = None, storage: Optional[ObjectStorage] = None):
        self.db = db
        self.queue = queue or get_video_job_queue()
        self._storage = storage

    @property
    def storage(self) -> ObjectStorage:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    async def create_job(
        self,
        user_id: str,
        title: str,
        content: Optional[str] = None,
        topic: Optional[str] = None,
        course: Optional[str] = None,
        week: Optional[int] = None,
        description: Optional[str] = None,
        source_material_id: Optional[int] = None,
        aspect_ratio: Optional[str] = None,
        resolution: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> VideoMaterial:
        """
        Create a PENDING record and queue it.

        Without ``content`` the source material's text (or, for file-only
        materials, its metadata summary) is used.

        Raises:
            MaterialNotFoundError: Unknown source_material_id
            ValueError: Content shorter than MIN_SOURCE_CONTENT_LENGTH
        """
        if source_material_id is not None:
            material = await self.db.get(Material, source_material_id)
            if material is None:
                raise MaterialNotFoundError(f"Material {source_material_id} not found")

            if not content:
                source = material.content_ref
                if isinstance(source, TextContent) and not source.is_empty:
                    content = source.text
                else:
                    content = file_reference_summary(material.metadata_snapshot())
            course = course or material.course
            week = week or material.week
            topic = topic or material.topic

        content = (content or "").strip()
        if len(content) < default_settings.MIN_SOURCE_CONTENT_LENGTH:
            raise ValueError(
                f"Content is too short. Please provide at least "
                f"{default_settings.MIN_SOURCE_CONTENT_LENGTH} characters."
            )

        video = VideoMaterial(
            uploaded_by=user_id,
            title=title,
            description=description,
            course=course,
            topic=topic or title,
            week=week or 1,
            source_material_id=source_material_id,
            source_content=content,
            status=VideoStatus.PENDING,
            aspect_ratio=aspect_ratio or default_settings.VIDEO_ASPECT_RATIO,
            resolution=resolution or default_settings.VIDEO_RESOLUTION,
            duration_seconds=duration_seconds or default_settings.VIDEO_DURATION_SECONDS,
        )
        self.db.add(video)
        await self.db.commit()
        await self.db.refresh(video)

        await self.queue.submit(video.id)
        return video

    async def list_for_user(self, user_id: str) -> List[VideoMaterial]:
        result = await self.db.execute(
            select(VideoMaterial)
            .where(VideoMaterial.uploaded_by == user_id)
            .order_by(VideoMaterial.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_owned(self, video_id: int, user_id: str) -> VideoMaterial:
        """
        Raises:
            VideoNotFoundError: Unknown id
            PermissionDeniedError: Video belongs to another user
        """
        video = await self.db.get(VideoMaterial, video_id)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} not found")
        if not video.is_owned_by(user_id):
            raise PermissionDeniedError("You do not have access to this video")
        return video

    async def delete(self, video_id: int, user_id: str) -> None:
        video = await self.get_owned(video_id, user_id)
        public_id = video.storage_public_id

        await self.db.delete(video)
        await self.db.commit()

        if public_id:
            try:
                await self.storage.delete(public_id, resource_kind="video")
            except StorageError as e:
                logger.warning(f"Could not delete stored file for video {video_id}: {e}")
