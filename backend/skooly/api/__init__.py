"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from skooly.api.routes import (
    chat,
    community,
    embeddings,
    generate,
    handwritten_notes,
    materials,
    search,
    videos,
)

# Create main API router
api_router = APIRouter()

api_router.include_router(materials.router)
api_router.include_router(search.router)
api_router.include_router(generate.router)
api_router.include_router(embeddings.router)
api_router.include_router(chat.router)
api_router.include_router(videos.router)
api_router.include_router(community.router)
api_router.include_router(handwritten_notes.router)
