"""
Admin / observability endpoints
===============================

GET    /api/v1/admin/health -- liveness plus a database round-trip
DELETE /api/v1/admin/rides  -- wipe every ride, request and passenger
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_db, get_ride_service
from carpool.api.middleware import limiter
from carpool.api.schemas import HealthResponse
from carpool.config import settings
from carpool.services.rides import RideService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return HealthResponse()


@router.delete("/rides", status_code=204, summary="Delete all rides")
@limiter.limit(settings.rate_limit)
async def delete_all_rides(
    request: Request,
    service: RideService = Depends(get_ride_service),
):
    await service.delete_all()
