"""FastAPI dependency injection functions."""

import logging
from typing import Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AuthorizationError
from db.database import AsyncSessionLocal
from workflow.actor import Actor

logger = logging.getLogger(__name__)


async def get_db() -> AsyncSession:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error. One request is
    one transaction.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_name: Optional[str] = Header(default=None),
) -> Actor:
    """
    Identity of the caller, taken from the ``X-Actor-Id`` header.

    Authentication happens in front of this service; the header is trusted.

    Raises:
        AuthorizationError: If the header is missing
    """
    if not x_actor_id:
        raise AuthorizationError("X-Actor-Id header is required")
    return Actor(id=x_actor_id, name=x_actor_name or x_actor_id)
