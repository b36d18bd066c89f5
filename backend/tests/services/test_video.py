"""
Tests for Veo video generation: prompt fallback, polling cap, the job
runner's state transitions, job queues and VideoService.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from skooly.core.config import settings
from skooly.models.material import Material, MaterialCategory, MaterialType
from skooly.models.video import VideoMaterial, VideoStatus
from skooly.services.generation.video import (
    CeleryVideoJobQueue,
    InProcessVideoJobQueue,
    VeoVideoGenerator,
    VideoGenerationError,
    VideoNotFoundError,
    VideoService,
    fallback_video_prompt,
    run_video_job,
    video_to_dict,
)
from skooly.services.materials import MaterialNotFoundError, PermissionDeniedError


CONTENT = "Recursion is when a function calls itself to solve a smaller instance of the problem."


# ========================================
# Fixtures
# ========================================

def make_video(**overrides) -> VideoMaterial:
    values = dict(
        id=5,
        uploaded_by="user-1",
        title="Recursion",
        topic="Recursion",
        course="CS101",
        source_content=CONTENT,
        status=VideoStatus.PENDING,
        aspect_ratio="16:9",
        resolution="720p",
        duration_seconds=8,
    )
    values.update(overrides)
    return VideoMaterial(**values)


def session_factory_for(db):
    @asynccontextmanager
    async def factory():
        yield db
    return factory


@pytest.fixture
def veo():
    generator = Mock()
    generator.settings = settings
    generator.generate_prompt = AsyncMock(return_value="A wide shot of a recursive tree.")
    generator.start = AsyncMock(return_value=Mock(name="operation"))
    generator.wait = AsyncMock(side_effect=lambda operation: operation)
    generator.download = AsyncMock(return_value=(b"mp4-bytes", "video/mp4"))
    return generator


@pytest.fixture
def storage():
    storage = Mock()
    storage.upload = AsyncMock(return_value={"url": "https://cdn/v.mp4", "public_id": "course_videos/CS101/v.mp4"})
    storage.delete = AsyncMock()
    return storage


# ========================================
# VeoVideoGenerator
# ========================================

@pytest.mark.asyncio
class TestVeoVideoGenerator:

    async def test_prompt_fallback_on_error(self):
        client = Mock()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("quota"))
        veo = VeoVideoGenerator(client=client)

        prompt = await veo.generate_prompt(CONTENT, "Recursion")

        assert prompt == fallback_video_prompt("Recursion")

    async def test_prompt_fallback_on_empty_output(self):
        client = Mock()
        client.aio.models.generate_content = AsyncMock(return_value=Mock(text="  "))
        veo = VeoVideoGenerator(client=client)

        assert await veo.generate_prompt(CONTENT, "Stacks") == fallback_video_prompt("Stacks")

    async def test_wait_gives_up_after_max_polls(self):
        client = Mock()
        client.aio.operations.get = AsyncMock(return_value=Mock(done=False, error=None))
        sleep = AsyncMock()
        test_settings = settings.model_copy(update={"VIDEO_MAX_POLLS": 3, "VIDEO_POLL_INTERVAL_SECONDS": 10.0})
        veo = VeoVideoGenerator(client=client, settings=test_settings, sleep=sleep)

        with pytest.raises(VideoGenerationError, match="timed out after 3 status checks"):
            await veo.wait(Mock(done=False, error=None))

        assert client.aio.operations.get.await_count == 3
        sleep.assert_awaited_with(10.0)

    async def test_wait_returns_finished_operation(self):
        finished = Mock(done=True, error=None)
        client = Mock()
        client.aio.operations.get = AsyncMock(side_effect=[Mock(done=False, error=None), finished])
        veo = VeoVideoGenerator(client=client, sleep=AsyncMock())

        assert await veo.wait(Mock(done=False, error=None)) is finished

    async def test_wait_operation_error(self):
        veo = VeoVideoGenerator(client=Mock(), sleep=AsyncMock())

        with pytest.raises(VideoGenerationError, match="content policy"):
            await veo.wait(Mock(done=True, error="content policy"))

    async def test_download_sends_api_key(self):
        http_response = Mock(content=b"video", headers={"content-type": "video/mp4"})
        http_client = Mock()
        http_client.get = AsyncMock(return_value=http_response)
        video = Mock(uri="https://generativelanguage.example/v1/files/abc", mime_type=None)
        operation = Mock()
        operation.response.generated_videos = [Mock(video=video)]
        test_settings = settings.model_copy(update={"GEMINI_API_KEY": "secret"})
        veo = VeoVideoGenerator(client=Mock(), settings=test_settings, http_client=http_client)

        data, mime_type = await veo.download(operation)

        assert (data, mime_type) == (b"video", "video/mp4")
        http_client.get.assert_awaited_once_with(video.uri, headers={"x-goog-api-key": "secret"})

    async def test_download_without_video(self):
        operation = Mock()
        operation.response.generated_videos = []
        veo = VeoVideoGenerator(client=Mock())

        with pytest.raises(VideoGenerationError):
            await veo.download(operation)


# ========================================
# Job Runner
# ========================================

@pytest.mark.asyncio
class TestRunVideoJob:

    async def test_success(self, mock_db, veo, storage):
        video = make_video()
        mock_db.get = AsyncMock(return_value=video)

        result = await run_video_job(5, session_factory_for(mock_db), generator=veo, storage=storage)

        assert result == {"success": True, "video_id": 5, "video_url": "https://cdn/v.mp4"}
        assert video.status == VideoStatus.COMPLETED
        assert video.prompt == "A wide shot of a recursive tree."
        assert video.storage_public_id == "course_videos/CS101/v.mp4"
        assert video.completed_at is not None
        veo.generate_prompt.assert_awaited_once_with(CONTENT, "Recursion")
        storage.upload.assert_awaited_once_with(
            b"mp4-bytes",
            folder="course_videos/CS101",
            resource_kind="video",
            filename="video_5.mp4",
        )

    async def test_failure_marks_record_failed(self, mock_db, veo, storage):
        video = make_video()
        mock_db.get = AsyncMock(return_value=video)
        veo.wait.side_effect = VideoGenerationError("Video generation timed out after 60 status checks")

        result = await run_video_job(5, session_factory_for(mock_db), generator=veo, storage=storage)

        assert result["success"] is False
        assert video.status == VideoStatus.FAILED
        assert video.error_message == "Video generation timed out after 60 status checks"
        mock_db.rollback.assert_awaited_once()
        storage.upload.assert_not_called()

    async def test_completed_video_skipped(self, mock_db, veo, storage):
        mock_db.get = AsyncMock(return_value=make_video(status=VideoStatus.COMPLETED))

        result = await run_video_job(5, session_factory_for(mock_db), generator=veo, storage=storage)

        assert result["success"] is True
        veo.generate_prompt.assert_not_called()

    async def test_running_video_skipped(self, mock_db, veo, storage):
        video = make_video(status=VideoStatus.PROCESSING, started_at=datetime.now(timezone.utc))
        mock_db.get = AsyncMock(return_value=video)

        await run_video_job(5, session_factory_for(mock_db), generator=veo, storage=storage)

        veo.start.assert_not_called()

    async def test_stale_processing_video_rerun(self, mock_db, veo, storage):
        started = datetime.now(timezone.utc) - timedelta(hours=3)
        video = make_video(status=VideoStatus.PROCESSING, started_at=started)
        mock_db.get = AsyncMock(return_value=video)

        await run_video_job(5, session_factory_for(mock_db), generator=veo, storage=storage)

        assert video.status == VideoStatus.COMPLETED

    async def test_missing_video(self, mock_db, veo):
        mock_db.get = AsyncMock(return_value=None)

        result = await run_video_job(99, session_factory_for(mock_db), generator=veo)

        assert result["success"] is False


# ========================================
# Queues
# ========================================

@pytest.mark.asyncio
class TestQueues:

    async def test_in_process_queue_runs_job(self):
        factory = Mock()
        queue = InProcessVideoJobQueue(session_factory=factory)

        with patch("skooly.services.generation.video.run_video_job", new_callable=AsyncMock) as run:
            await queue.submit(7)
            await asyncio.gather(*queue._tasks)

        run.assert_awaited_once_with(7, factory, generator=None)

    async def test_celery_queue_delays_task(self):
        with patch("skooly.tasks.video_tasks.generate_video") as task:
            await CeleryVideoJobQueue().submit(8)

        task.delay.assert_called_once_with(8)


# ========================================
# VideoService
# ========================================

@pytest.mark.asyncio
class TestVideoService:

    async def test_create_job_queues_pending_record(self, mock_db):
        queue = Mock()
        queue.submit = AsyncMock()
        mock_db.refresh.side_effect = lambda obj: setattr(obj, "id", 11)
        service = VideoService(mock_db, queue=queue)

        video = await service.create_job("user-1", "Recursion", content=CONTENT, course="CS101")

        assert video.status == VideoStatus.PENDING
        assert video.uploaded_by == "user-1"
        assert video.topic == "Recursion"
        assert video.aspect_ratio == settings.VIDEO_ASPECT_RATIO
        mock_db.add.assert_called_once_with(video)
        queue.submit.assert_awaited_once_with(11)

    async def test_short_content_rejected(self, mock_db):
        queue = Mock()
        queue.submit = AsyncMock()
        service = VideoService(mock_db, queue=queue)

        with pytest.raises(ValueError, match="too short"):
            await service.create_job("user-1", "Recursion", content="short")
        queue.submit.assert_not_called()
        mock_db.commit.assert_not_called()

    async def test_content_from_material(self, mock_db):
        material = Material(
            id=3, title="Trees", course="CS201", category=MaterialCategory.THEORY,
            type=MaterialType.PDF, week=4, topic="BST", content=CONTENT, uploaded_by="prof",
        )
        mock_db.get = AsyncMock(return_value=material)
        queue = Mock()
        queue.submit = AsyncMock()
        service = VideoService(mock_db, queue=queue)

        video = await service.create_job("user-1", "Trees video", source_material_id=3)

        assert video.source_content == CONTENT
        assert video.course == "CS201"
        assert video.week == 4
        assert video.topic == "BST"

    async def test_unknown_material(self, mock_db):
        mock_db.get = AsyncMock(return_value=None)
        service = VideoService(mock_db, queue=Mock())

        with pytest.raises(MaterialNotFoundError):
            await service.create_job("user-1", "T", source_material_id=404)

    async def test_get_owned(self, mock_db):
        mock_db.get = AsyncMock(return_value=make_video())
        service = VideoService(mock_db, queue=Mock())

        with pytest.raises(PermissionDeniedError):
            await service.get_owned(5, "user-2")

        mock_db.get = AsyncMock(return_value=None)
        with pytest.raises(VideoNotFoundError):
            await service.get_owned(5, "user-1")

    async def test_delete_removes_stored_file(self, mock_db, storage):
        video = make_video(storage_public_id="course_videos/CS101/v.mp4")
        mock_db.get = AsyncMock(return_value=video)
        service = VideoService(mock_db, queue=Mock(), storage=storage)

        await service.delete(5, "user-1")

        storage.delete.assert_awaited_once_with("course_videos/CS101/v.mp4", resource_kind="video")
        mock_db.delete.assert_awaited_once_with(video)

    async def test_failed_delete_keeps_stored_file(self, mock_db, storage):
        mock_db.get = AsyncMock(return_value=make_video(storage_public_id="course_videos/CS101/v.mp4"))
        mock_db.commit = AsyncMock(side_effect=RuntimeError("db down"))
        service = VideoService(mock_db, queue=Mock(), storage=storage)

        with pytest.raises(RuntimeError):
            await service.delete(5, "user-1")
        storage.delete.assert_not_awaited()


def test_video_to_dict_reports_stale():
    video = make_video(
        status=VideoStatus.PROCESSING,
        started_at=datetime.now(timezone.utc) - timedelta(minutes=45),
    )

    data = video_to_dict(video, stale_after_minutes=30)

    assert data["status"] == "processing"
    assert data["possibly_stale"] is True
