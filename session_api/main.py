"""
Session API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events import check_redis
from shared.security.rate_limit import limiter
from session_api.core import configure_cors, lifespan, register_exception_handlers, register_middlewares
from session_api.routers.auth import router as auth_router
from session_api.routers.guest import public_router as guest_public_router
from session_api.routers.guest import sessions_router as guest_sessions_router
from session_api.routers.staff import sessions_router as staff_sessions_router
from session_api.routers.staff import tables_router as staff_tables_router

SERVICE_NAME = "session-api"


# Create FastAPI application
app = FastAPI(
    title="Numa Sessions API",
    description="Group dining sessions: shared carts, orders and bills per table",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter

register_exception_handlers(app)
register_middlewares(app)
configure_cors(app)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
async def detailed_health_check():
    """
    Detailed health check that verifies connectivity to dependencies.
    Redis is only checked when it is the configured event backend.
    """
    checks = {
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "dependencies": {},
    }
    all_healthy = True

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
    except Exception as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    if settings.events_backend == "redis":
        checks["dependencies"]["redis"] = await check_redis()
        all_healthy = all_healthy and checks["dependencies"]["redis"]["status"] == "healthy"

    checks["status"] = "healthy" if all_healthy else "degraded"

    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)

    return checks


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(auth_router, prefix=settings.api_prefix)
app.include_router(guest_public_router, prefix=settings.api_prefix)
app.include_router(guest_sessions_router, prefix=settings.api_prefix)
app.include_router(staff_sessions_router, prefix=settings.api_prefix)
app.include_router(staff_tables_router, prefix=settings.api_prefix)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "session_api.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=settings.debug,
    )
