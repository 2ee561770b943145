import os
import sys
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Ensure local imports resolve
sys.path.append(os.path.dirname(__file__))

# Core
from core.config import settings
from core.errors import StoreUnavailable
from core.logging_config import logger
from core.permission_helpers import PermissionServices, build_permission_services

# -------------------------------------------------
# Routers
# -------------------------------------------------
from routers import api_router


# -------------------------------------------------
# Create the Application
# -------------------------------------------------
def create_app(services: Optional[PermissionServices] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Case Booking permission resolution API: Supabase-backed role/action matrix",
    )

    # One permission engine per app; tests pass their own
    app.state.permissions = services or build_permission_services()

    # -------------------------------------------------
    # CORS
    # -------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------
    # Startup / shutdown
    # -------------------------------------------------
    @app.on_event("startup")
    async def on_startup():
        logger.info("🚀 Starting Case Booking Permissions API")

        if settings.WARM_PERMISSION_CACHE_ON_STARTUP:
            try:
                roles = await app.state.permissions.cache.warm()
                logger.info(f"Permission cache warmed for {roles} roles")
            except StoreUnavailable as e:
                # Non-admin checks deny until the store is reachable
                logger.warning(f"Permission cache warm-up failed: {e}")

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.permissions.close()

    # -------------------------------------------------
    # Error handling
    # -------------------------------------------------
    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (401, 403, 500, 503):
            logger.warning(
                f"HTTP {exc.status_code} at {request.url}: {exc.detail}"
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error(f"Permission store unavailable at {request.url}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"detail": "Permission store unavailable"},
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.error("Unhandled error at %s", request.url, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # -------------------------------------------------
    # Register Routers
    # -------------------------------------------------
    app.include_router(api_router)

    return app


# Create the global FastAPI instance
app = create_app()
