"""
Chat API Routes

This module provides REST API endpoints for the tutor chat:
- Send a message (new or existing chat) and get an answer
- List, read and delete the caller's chats
- Evaluate an answer with the content validator

All endpoints require authentication.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from skooly.api.deps import get_chat_service
from skooly.core.auth import Identity, get_current_identity
from skooly.schemas.chat import (
    ChatDetail,
    ChatListResponse,
    ChatRequest,
    ChatResponse,
    ChatSummary,
    EvaluateRequest,
)
from skooly.services.chat import ChatNotFoundError, ChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


# ========================================
# Messages
# ========================================

@router.post("", response_model=ChatResponse)
async def send_message(
    request: ChatRequest,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_chat_service),
):
    """
    Answer a message.

    Without chat_id (or with an unknown one) a new chat is started; its
    title is the first 50 characters of the message.
    """
    try:
        result = await service.chat(
            identity.user_id,
            request.message,
            chat_id=request.chat_id,
            validate=request.validate_response,
        )
        return ChatResponse(**result)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing chat message: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process message"
        )


@router.post("/evaluate")
async def evaluate_response(
    request: EvaluateRequest,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_chat_service),
):
    """Validation report for an answer; ``quick`` skips grounding and self-evaluation."""
    return await service.evaluate(request.response, request.query, quick=request.quick)


# ========================================
# Chat History
# ========================================

@router.get("", response_model=ChatListResponse)
async def list_chats(
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_chat_service),
):
    """The caller's 50 most recently active chats."""
    chats = await service.list_chats(identity.user_id)
    return ChatListResponse(chats=[ChatSummary.model_validate(chat) for chat in chats])


@router.get("/{chat_id}", response_model=ChatDetail)
async def get_chat(
    chat_id: int,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_chat_service),
):
    try:
        chat = await service.get_chat(chat_id, identity.user_id)
    except ChatNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return ChatDetail.model_validate(chat)


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    chat_id: int,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_chat_service),
):
    try:
        await service.delete_chat(chat_id, identity.user_id)
    except ChatNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
