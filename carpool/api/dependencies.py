"""FastAPI dependency injection helpers."""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.infrastructure.database import async_session_factory
from carpool.services.matching import MatchingService
from carpool.services.rides import RideService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_ride_service(request: Request) -> RideService:
    """Lifecycle service built once in the app lifespan."""
    return request.app.state.ride_service


def get_matching_service(request: Request) -> MatchingService:
    return request.app.state.matching_service
