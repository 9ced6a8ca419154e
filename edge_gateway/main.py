"""
FastAPI Application Entry Point

Edge API Gateway - versioned RPC gateway with cross-region event fanout.
Supports both Mock services (development) and Real backends (production).

Endpoints:
    - POST /api/gateway: Versioned RPC entry point
    - POST /api/fanout: Broadcast an event to other regions
    - GET /api/versions/active: Current and fallback API versions
    - PUT /api/versions/active: Switch current/fallback versions (admin)
    - GET /api/versions: Registered API versions
    - GET /api/regions: Deployment regions
    - GET /health: System health check

Version: 1.0.0
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import redis
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edge_gateway.core.config import Settings, get_settings, setup_logging
from edge_gateway.core.errors import VersionConfigError
from edge_gateway.database import dispose_engine, init_db
from edge_gateway.schemas import (
    ActiveVersionResponse,
    ActiveVersionUpdate,
    ApiVersionInfo,
    EndpointResult,
    ErrorResponse,
    FanoutResponse,
    HealthResponse,
    RegionResponse,
    VersionListResponse,
)
from edge_gateway.services.backend import BaseDataBackend, get_data_backend
from edge_gateway.services.fanout import (
    BaseDeliveryTransport,
    RegionFanoutBroadcaster,
    get_broadcaster,
    get_delivery_transport,
    get_event_publisher,
)
from edge_gateway.services.gateway import RequestGateway, get_request_gateway
from edge_gateway.services.telemetry import (
    BaseTelemetryStore,
    StoredVersionConfig,
    get_telemetry_store,
)
from edge_gateway.services.versioning import VersionRegistry, get_version_registry

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

async def restore_active_version(registry: VersionRegistry, store: BaseTelemetryStore) -> None:
    """Apply the persisted active/fallback pair, which wins over settings."""
    try:
        stored = await store.load_active_version()
    except Exception as e:
        logger.error(f"Could not load persisted version config: {e}")
        return

    if stored is None:
        return

    try:
        registry.set_active_version(stored.current, stored.fallback, updated_at=stored.updated_at)
        logger.info(f"Restored persisted versions: current={stored.current}, fallback={stored.fallback}")
    except VersionConfigError as e:
        logger.error(f"Ignoring persisted version config: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # The in-memory telemetry store needs no tables
    if settings.use_real_services:
        await init_db()
        logger.info("✅ Database initialized")

    registry = get_version_registry()
    store = get_telemetry_store()
    await restore_active_version(registry, store)

    active = registry.get_active_version()
    logger.info(f"✅ API versions: {', '.join(v.identifier for v in registry.versions)}")
    logger.info(f"✅ Active version: {active.current} (fallback {active.fallback})")
    logger.info(f"✅ Regions: {', '.join(registry.list_regions())} (primary {registry.primary_region})")
    logger.info(f"✅ Data Backend: {get_data_backend().provider_name}")
    logger.info(f"✅ Delivery Transport: {get_delivery_transport().provider_name}")
    logger.info(f"✅ Telemetry Store: {store.provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await get_event_publisher().drain()
    await get_data_backend().close()
    await get_delivery_transport().close()
    await dispose_engine()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Versioned API gateway with automatic version fallback "
        "and cross-region event fanout."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-Region",
        "X-Request-Id",
        "X-Execution-Time",
        "X-Api-Version",
        "X-Fanout-Regions",
        "X-Fanout-Success",
        "X-Fanout-Total",
    ],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def to_response(result: EndpointResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)


def active_version_response(registry: VersionRegistry) -> ActiveVersionResponse:
    active = registry.get_active_version()
    return ActiveVersionResponse(
        current=active.current,
        fallback=active.fallback,
        updated_at=active.updated_at,
    )


async def check_redis(redis_url: str) -> str:
    """Ping Redis without blocking the event loop."""
    def ping() -> None:
        client = redis.Redis.from_url(redis_url, socket_timeout=2, socket_connect_timeout=2)
        try:
            client.ping()
        finally:
            client.close()

    try:
        await asyncio.to_thread(ping)
        return "healthy"
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return f"unhealthy: {str(e)}"


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "gateway": "/api/gateway",
        "fanout": "/api/fanout",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    registry: VersionRegistry = Depends(get_version_registry),
    backend: BaseDataBackend = Depends(get_data_backend),
    transport: BaseDeliveryTransport = Depends(get_delivery_transport),
    store: BaseTelemetryStore = Depends(get_telemetry_store),
    app_settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check data backend
    backend_health = await backend.health_check()
    backend_status = "healthy" if backend_health.healthy else f"unhealthy: {backend_health.error}"

    # Check delivery transport
    transport_status = "healthy" if await transport.health_check() else "unhealthy"

    # Check telemetry store
    store_status = "healthy" if await store.health_check() else "unhealthy"

    # Check Redis
    redis_status = await check_redis(app_settings.redis_url)

    overall = "operational" if all(
        s == "healthy" for s in [backend_status, transport_status, store_status, redis_status]
    ) else "degraded"

    active = registry.get_active_version()
    return HealthResponse(
        status=overall,
        data_backend=backend_status,
        delivery_transport=transport_status,
        telemetry_store=store_status,
        redis=redis_status,
        active_version=active.current,
        fallback_version=active.fallback,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# GATEWAY ENDPOINTS
# =============================================================================

@app.post(
    "/api/gateway",
    tags=["Gateway"],
    summary="Versioned RPC Gateway",
)
async def gateway(
    request: Request,
    request_gateway: RequestGateway = Depends(get_request_gateway),
) -> JSONResponse:
    """
    Resolve the API version for the calling client and dispatch the RPC.

    Body: ``{"rpc": "get_menu_items", "payload": {...}, "version"?: "v2", "region"?: "eu-west-1"}``

    The raw body is handed to the gateway so that malformed JSON is
    reported in the gateway's own error envelope.
    """
    body = await request.body()
    result = await request_gateway.handle(body, request.headers)
    return to_response(result)


@app.post(
    "/api/fanout",
    tags=["Fanout"],
    summary="Cross-Region Event Fanout",
    responses={200: {"model": FanoutResponse}, 400: {"model": ErrorResponse}},
)
async def fanout(
    request: Request,
    broadcaster: RegionFanoutBroadcaster = Depends(get_broadcaster),
) -> JSONResponse:
    """
    Broadcast an event to every target region other than its source.

    Body: ``{"type": "order_status", "payload": {...}, "sourceRegion"?, "targetRegions"?, "priority"?}``
    """
    body = await request.body()
    result = await broadcaster.handle_request(body)
    return to_response(result)


# =============================================================================
# VERSION ADMIN ENDPOINTS
# =============================================================================

@app.get(
    "/api/versions/active",
    response_model=ActiveVersionResponse,
    tags=["Versions"],
)
async def get_active_version(
    registry: VersionRegistry = Depends(get_version_registry),
) -> ActiveVersionResponse:
    """Current and fallback versions (bootstrap default when never set)."""
    return active_version_response(registry)


@app.put(
    "/api/versions/active",
    response_model=ActiveVersionResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    tags=["Versions"],
    summary="Switch Active API Version",
)
async def set_active_version(
    update: ActiveVersionUpdate,
    registry: VersionRegistry = Depends(get_version_registry),
    store: BaseTelemetryStore = Depends(get_telemetry_store),
    app_settings: Settings = Depends(get_settings),
    x_admin_token: Optional[str] = Header(None, alias="x-admin-token"),
) -> ActiveVersionResponse:
    """
    Atomically switch the current/fallback pair.

    Takes effect for every request that starts after the switch; requests
    already in flight finish on the version they resolved.
    """
    if app_settings.admin_token and x_admin_token != app_settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    try:
        snapshot = registry.set_active_version(update.current, update.fallback)
    except VersionConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        await store.save_active_version(
            StoredVersionConfig(
                current=snapshot.current,
                fallback=snapshot.fallback,
                updated_at=snapshot.updated_at,
            )
        )
    except Exception as e:
        logger.error(f"Failed to persist version config: {e}")

    return active_version_response(registry)


@app.get(
    "/api/versions",
    response_model=VersionListResponse,
    tags=["Versions"],
)
async def list_versions(
    registry: VersionRegistry = Depends(get_version_registry),
) -> VersionListResponse:
    """Every registered version, oldest first."""
    return VersionListResponse(
        active=active_version_response(registry),
        versions=[ApiVersionInfo(**version.to_dict()) for version in registry.versions],
    )


@app.get(
    "/api/regions",
    response_model=list[RegionResponse],
    tags=["Regions"],
)
async def list_regions(
    registry: VersionRegistry = Depends(get_version_registry),
) -> list[RegionResponse]:
    """Deployment regions in configured order."""
    return [RegionResponse(**info.to_dict()) for info in registry.region_info()]


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = ErrorResponse(
        error="Internal Server Error",
        detail=str(exc) if settings.debug else "An unexpected error occurred",
        request_id=request.headers.get("x-request-id"),
    ).model_dump()
    return JSONResponse(status_code=500, content=content)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "edge_gateway.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
