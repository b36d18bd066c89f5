"""
Video API Routes

Generation is asynchronous: POST returns 202 with the video id, clients poll
GET /videos/{id}/status.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from skooly.api.deps import get_video_service
from skooly.core.auth import Identity, get_current_identity
from skooly.schemas.videos import VideoGenerateRequest, VideoJobResponse
from skooly.services.generation.video import VideoNotFoundError, VideoService, video_to_dict
from skooly.services.materials import MaterialNotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


@router.post("/generate", response_model=VideoJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_video(
    request: VideoGenerateRequest,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service),
):
    try:
        video = await service.create_job(
            identity.user_id,
            request.title,
            content=request.content,
            topic=request.topic,
            course=request.course,
            week=request.week,
            description=request.description,
            source_material_id=request.material_id,
            aspect_ratio=request.aspect_ratio,
            resolution=request.resolution,
            duration_seconds=request.duration_seconds,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    logger.info(f"Video {video.id} queued for {identity.user_id}")
    return VideoJobResponse(video_id=video.id, status=video.status.value)


@router.get("")
async def list_videos(
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service),
):
    videos = await service.list_for_user(identity.user_id)
    return {"videos": [video_to_dict(video) for video in videos]}


@router.get("/{video_id}")
async def get_video(
    video_id: int,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service),
):
    try:
        video = await service.get_owned(video_id, identity.user_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return video_to_dict(video)


@router.get("/{video_id}/status")
async def get_video_status(
    video_id: int,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service),
):
    try:
        video = await service.get_owned(video_id, identity.user_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    data = video_to_dict(video)
    return {
        "video_id": video.id,
        "status": data["status"],
        "possibly_stale": data["possibly_stale"],
        "video_url": data["video_url"],
        "error_message": data["error_message"],
    }


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    video_id: int,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service),
):
    try:
        await service.delete(video_id, identity.user_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
