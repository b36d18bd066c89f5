"""Business logic services."""

from skooly.services.materials import MaterialService
from skooly.services.chat import ChatService
from skooly.services.community import CommunityService
from skooly.services.ai_materials import AiMaterialService
from skooly.services.storage import get_storage

__all__ = [
    "MaterialService",
    "ChatService",
    "CommunityService",
    "AiMaterialService",
    "get_storage",
]
