"""
Content Generation API Routes

- POST /generate: notes, slides, pdf, code guides, MCQ quizzes, podcasts
- The caller's generated materials, and podcast audio
- POST /generate/materials/{id}/chat: study chat over one generated material
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from skooly.api.deps import get_ai_material_service
from skooly.core.auth import Identity, get_current_identity
from skooly.schemas.generate import (
    AiMaterialResponse,
    GenerateRequest,
    StudyChatRequest,
    StudyChatResponse,
)
from skooly.services.ai_materials import (
    AiMaterialNotFoundError,
    AiMaterialService,
    AudioNotAvailableError,
    ai_material_to_dict,
)
from skooly.services.generation.orchestrator import (
    GenerationError,
    GenerationTimeoutError,
    SafetyBlockedError,
)
from skooly.services.materials import MaterialNotFoundError, PermissionDeniedError
from skooly.services.storage import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generate", tags=["generate"])


@router.post("", response_model=AiMaterialResponse, status_code=status.HTTP_201_CREATED)
async def generate_content(
    request: GenerateRequest,
    identity: Identity = Depends(get_current_identity),
    service: AiMaterialService = Depends(get_ai_material_service),
):
    """
    Generate learning content from a material, pasted text or a file.

    Errors:
        400: Invalid category, source too short, or blocked by safety filters
        404: Unknown material_id
        504: Model did not answer within the generation timeout
    """
    try:
        ai_material = await service.generate(
            identity.user_id,
            request.type,
            request.title,
            request.category,
            topic=request.topic,
            source_content=request.source_content,
            file_url=request.file_url,
            material_id=request.material_id,
            customization=request.customization,
            course=request.course,
            week=request.week,
            use_context=request.use_context,
        )
        return AiMaterialResponse(**ai_material_to_dict(ai_material))

    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except GenerationTimeoutError as e:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
    except SafetyBlockedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GenerationError as e:
        logger.error(f"Generation failed for {identity.user_id}: {e}")
        message = str(e)
        if not message.startswith("Failed to generate content."):
            message = f"Failed to generate content. {message}"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.get("/materials", response_model=List[AiMaterialResponse])
async def list_generated_materials(
    type: Optional[str] = Query(None, description="Filter by content type"),
    identity: Identity = Depends(get_current_identity),
    service: AiMaterialService = Depends(get_ai_material_service),
):
    try:
        items = await service.list_for_user(identity.user_id, content_type=type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return [AiMaterialResponse(**ai_material_to_dict(item)) for item in items]


@router.get("/materials/{ai_material_id}", response_model=AiMaterialResponse)
async def get_generated_material(
    ai_material_id: int,
    identity: Identity = Depends(get_current_identity),
    service: AiMaterialService = Depends(get_ai_material_service),
):
    try:
        item = await service.get_owned(ai_material_id, identity.user_id)
    except AiMaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return AiMaterialResponse(**ai_material_to_dict(item))


@router.delete("/materials/{ai_material_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_generated_material(
    ai_material_id: int,
    identity: Identity = Depends(get_current_identity),
    service: AiMaterialService = Depends(get_ai_material_service),
):
    try:
        await service.delete(ai_material_id, identity.user_id)
    except AiMaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.get("/materials/{ai_material_id}/audio")
async def get_podcast_audio(
    ai_material_id: int,
    identity: Identity = Depends(get_current_identity),
    service: AiMaterialService = Depends(get_ai_material_service),
):
    """Podcast audio as WAV."""
    try:
        audio = await service.audio(ai_material_id, identity.user_id)
    except (AiMaterialNotFoundError, AudioNotAvailableError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except StorageError as e:
        logger.error(f"Audio download failed for AI material {ai_material_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Audio unavailable")

    return Response(content=audio, media_type="audio/wav")


@router.post("/materials/{ai_material_id}/chat", response_model=StudyChatResponse)
async def study_chat(
    ai_material_id: int,
    request: StudyChatRequest,
    identity: Identity = Depends(get_current_identity),
    service: AiMaterialService = Depends(get_ai_material_service),
):
    """Ask questions about one of your generated materials."""
    try:
        answer = await service.study_chat(
            ai_material_id,
            identity.user_id,
            request.message,
            history=[turn.model_dump() for turn in request.history],
        )
    except AiMaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except GenerationTimeoutError as e:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
    except SafetyBlockedError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Response blocked by safety filters.",
        )
    except GenerationError as e:
        logger.error(f"Study chat failed on AI material {ai_material_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate response. {e}",
        )

    return StudyChatResponse(response=answer)
