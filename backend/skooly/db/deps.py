"""
Request-scoped database session.

Services commit explicitly; whatever a failed request left pending is rolled
back by :func:`skooly.db.session.get_session`.
"""

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from skooly.db.session import get_session


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


# Route signature shortcut: ``db: DBSession``
DBSession = Annotated[AsyncSession, Depends(get_db)]
