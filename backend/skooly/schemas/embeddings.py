"""
Pydantic schemas for embedding maintenance
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class BackfillRequest(BaseModel):
    material_ids: Optional[List[int]] = Field(
        default=None,
        description="Restrict to these materials; all materials when omitted",
    )
    force: bool = Field(default=False, description="Rebuild chunks even if they exist")
    background: bool = Field(default=False, description="Run on the Celery worker")
