"""
Community API Routes

Discussion posts, replies, and a single bot reply per post.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from skooly.api.deps import get_community_service
from skooly.core.auth import Identity, get_current_identity
from skooly.schemas.community import PostCreate, ReplyCreate
from skooly.services.community import CommunityService, PostNotFoundError, post_to_dict, reply_to_dict
from skooly.services.materials import PermissionDeniedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/community", tags=["community"])


@router.get("")
async def list_posts(
    course: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(get_current_identity),
    service: CommunityService = Depends(get_community_service),
):
    posts = await service.list_posts(course=course, limit=limit)
    return {"posts": [post_to_dict(post, include_replies=False) for post in posts]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_post(
    request: PostCreate,
    identity: Identity = Depends(get_current_identity),
    service: CommunityService = Depends(get_community_service),
):
    post = await service.create_post(
        identity.user_id,
        identity.display_name,
        request.title,
        body=request.body,
        course=request.course,
        tags=request.tags,
        mentions=request.mentions,
    )
    return post_to_dict(post)


@router.get("/{post_id}")
async def get_post(
    post_id: int,
    identity: Identity = Depends(get_current_identity),
    service: CommunityService = Depends(get_community_service),
):
    try:
        return post_to_dict(await service.get_post(post_id))
    except PostNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: int,
    identity: Identity = Depends(get_current_identity),
    service: CommunityService = Depends(get_community_service),
):
    try:
        await service.delete_post(post_id, identity.user_id)
    except PostNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.post("/{post_id}/replies", status_code=status.HTTP_201_CREATED)
async def add_reply(
    post_id: int,
    request: ReplyCreate,
    identity: Identity = Depends(get_current_identity),
    service: CommunityService = Depends(get_community_service),
):
    try:
        reply = await service.add_reply(post_id, identity.user_id, identity.display_name, request.content)
    except PostNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return reply_to_dict(reply)


@router.post("/{post_id}/bot-reply")
async def add_bot_reply(
    post_id: int,
    identity: Identity = Depends(get_current_identity),
    service: CommunityService = Depends(get_community_service),
):
    """Ask the bot to answer the post; returns the existing bot reply if there is one."""
    try:
        reply, created = await service.bot_reply(post_id)
    except PostNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Bot reply failed for post {post_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate bot reply")

    return {
        "reply": reply_to_dict(reply),
        "created": created,
        "message": "Bot reply added" if created else "Bot reply already present",
    }
