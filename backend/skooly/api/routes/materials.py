"""
Materials API Routes

- Upload a course file (parsed, stored, embedded)
- List / filter materials, the caller's uploads, course names
- Owner-only update and delete
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from skooly.api.deps import get_material_service
from skooly.core.auth import Identity, get_current_identity
from skooly.schemas.materials import (
    CourseListResponse,
    MaterialListResponse,
    MaterialResponse,
    MaterialUpdate,
    MaterialUploadResponse,
)
from skooly.services.materials import (
    MaterialNotFoundError,
    MaterialService,
    PermissionDeniedError,
    UploadTooLargeError,
    material_to_dict,
)
from skooly.services.storage import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/materials", tags=["materials"])


# ========================================
# Upload
# ========================================

@router.post("/upload", response_model=MaterialUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_material(
    file: UploadFile = File(...),
    title: str = Form(...),
    course: str = Form(...),
    category: str = Form(...),
    topic: Optional[str] = Form(None),
    week: int = Form(1),
    type: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma-separated"),
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    """
    Upload a course material.

    Text extraction failures do not fail the upload: the stored file is
    used for retrieval instead. Storage failures do (502).
    """
    try:
        data = await file.read()
        material, chunk_count = await service.upload(
            identity.user_id,
            file.filename or "upload",
            data,
            title=title,
            course=course,
            category=category,
            topic=topic,
            week=week,
            material_type=type,
            description=description,
            tags=tags.split(",") if tags else [],
            mime_type=file.content_type,
        )
        return MaterialUploadResponse(
            material=MaterialResponse(**material_to_dict(material)),
            embedded_chunks=chunk_count,
        )

    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UploadTooLargeError as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    except StorageError as e:
        logger.error(f"Upload storage failure: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to store the uploaded file")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error uploading material: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload material")


# ========================================
# Listing
# ========================================

@router.get("", response_model=MaterialListResponse)
async def list_materials(
    course: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    week: Optional[int] = Query(None, ge=1),
    type: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    try:
        materials = await service.list_materials(
            course=course, category=category, week=week, material_type=type, limit=limit, offset=offset
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    items = [MaterialResponse(**material_to_dict(m)) for m in materials]
    return MaterialListResponse(materials=items, total=len(items))


@router.get("/mine", response_model=MaterialListResponse)
async def list_my_materials(
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    materials = await service.list_for_user(identity.user_id)
    items = [MaterialResponse(**material_to_dict(m)) for m in materials]
    return MaterialListResponse(materials=items, total=len(items))


@router.get("/courses", response_model=CourseListResponse)
async def list_courses(
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    return CourseListResponse(courses=await service.courses())


# ========================================
# Single Material
# ========================================

@router.get("/{material_id}", response_model=MaterialResponse)
async def get_material(
    material_id: int,
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    try:
        material = await service.get(material_id)
    except MaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return MaterialResponse(**material_to_dict(material))


@router.patch("/{material_id}", response_model=MaterialResponse)
async def update_material(
    material_id: int,
    update: MaterialUpdate,
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    try:
        material = await service.update(
            material_id, identity.user_id, update.model_dump(exclude_unset=True)
        )
        return MaterialResponse(**material_to_dict(material))

    except MaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_material(
    material_id: int,
    identity: Identity = Depends(get_current_identity),
    service: MaterialService = Depends(get_material_service),
):
    try:
        await service.delete(material_id, identity.user_id)
    except MaterialNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
