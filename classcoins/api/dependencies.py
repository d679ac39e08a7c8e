"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classcoins.config import settings
from classcoins.db.database import get_session_factory
from classcoins.services.mystery_ball import MysteryBallService


def get_mystery_ball_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> MysteryBallService:
    """Service bound to the app's session factory and settings."""
    return MysteryBallService(session_factory, settings)
