"""
FastAPI application factory.

* Registers routes for rides, requests, passengers and admin.
* Builds the distance oracle, lock provider and services, and starts / stops
  the side-effect dispatcher via lifespan events.
* Maps engine errors to HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.middleware import limiter
from carpool.api.routes import admin, passengers, requests, rides
from carpool.config import Settings, settings
from carpool.domain.distance import DistanceOracle, HaversineOracle
from carpool.domain.errors import (
    CapacityExceeded,
    InvalidState,
    NoMatchFound,
    NotFound,
    OracleUnavailable,
)
from carpool.domain.matching import MatchingEngine
from carpool.domain.pricing import FareCalculator
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.gateways import NotificationGateway, PaymentGateway
from carpool.infrastructure.locks import InProcessLocks, LockNotAcquired, RedisLocks
from carpool.infrastructure.redis_client import get_redis
from carpool.infrastructure.routing import OpenRouteServiceOracle, Region
from carpool.services.matching import MatchingService
from carpool.services.rides import RideService
from carpool.workers.dispatcher import Dispatcher

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_oracle(cfg: Settings) -> DistanceOracle:
    """Road-network oracle when an API key is configured, else straight-line."""
    if not cfg.ors_api_key:
        logger.warning("ORS_API_KEY not set; using straight-line distances")
        return HaversineOracle(cfg.avg_speed_kmh)
    return OpenRouteServiceOracle(
        api_key=cfg.ors_api_key,
        directions_url=cfg.ors_directions_url,
        geocode_url=cfg.nominatim_url,
        region=Region(
            min_lat=cfg.region_min_lat,
            max_lat=cfg.region_max_lat,
            min_lng=cfg.region_min_lng,
            max_lng=cfg.region_max_lng,
        ),
        country_code=cfg.geocode_country_code,
        user_agent=cfg.nominatim_user_agent,
        timeout=cfg.oracle_timeout_seconds,
    )


def build_services(
    cfg: Settings, session_factory, oracle: DistanceOracle, locks, dispatcher
) -> tuple[RideService, MatchingService]:
    ride_service = RideService(
        session_factory,
        oracle,
        locks,
        dispatcher,
        FareCalculator(cfg.final_base_fare, cfg.final_rate_per_km, cfg.fallback_fare),
        segment_rate_per_km=cfg.segment_rate_per_km,
        fallback_segment_km=cfg.fallback_segment_km,
        fallback_duration_minutes=cfg.fallback_duration_minutes,
        payment_method=cfg.payment_method,
        h3_resolution=cfg.h3_resolution,
    )
    engine = MatchingEngine(
        oracle,
        radius_km=cfg.match_radius_km,
        neutral_score=cfg.neutral_match_score,
        h3_resolution=cfg.h3_resolution,
        noise_tokens=cfg.location_noise_tokens,
    )
    matching_service = MatchingService(
        session_factory,
        engine,
        ride_service,
        dispatcher,
        auto_accept=cfg.matching_auto_accept,
    )
    return ride_service, matching_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire services and start the dispatcher on startup; stop on shutdown."""
    if settings.use_redis_locks:
        locks = RedisLocks(
            await get_redis(), settings.lock_ttl_seconds, settings.lock_wait_seconds
        )
    else:
        locks = InProcessLocks()
    dispatcher = Dispatcher(
        PaymentGateway(settings.payment_service_url, settings.oracle_timeout_seconds),
        NotificationGateway(
            settings.notification_service_url, settings.oracle_timeout_seconds
        ),
        max_attempts=settings.dispatch_max_attempts,
        retry_seconds=settings.dispatch_retry_seconds,
    )
    app.state.ride_service, app.state.matching_service = build_services(
        settings, async_session_factory, build_oracle(settings), locks, dispatcher
    )
    await dispatcher.start()
    yield
    await dispatcher.stop()


# ── Error mapping ─────────────────────────────────────────────────────

_STATUS_CODES = {
    NotFound: 404,
    NoMatchFound: 404,
    CapacityExceeded: 409,
    InvalidState: 409,
    LockNotAcquired: 503,
    OracleUnavailable: 503,
}


async def _engine_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(
        code for kind, code in _STATUS_CODES.items() if isinstance(exc, kind)
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Segment Allocation API",
        description=(
            "Publishes driver routes as ordered segments, admits riders onto "
            "the exact segments they travel, and matches requests to nearby "
            "rides.  Capacity is enforced per segment under concurrent load."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    for kind in _STATUS_CODES:
        app.add_exception_handler(kind, _engine_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(requests.router, prefix="/api/v1")
    app.include_router(passengers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
