"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pushengine.api import broadcasts, endpoints, notifications, preferences
from pushengine.api.dependencies import get_notification_service
from pushengine.config import get_settings
from pushengine.exceptions import ProviderError, PushEngineError
from pushengine.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events."""
    logger.info(f"Push engine starting ({settings.environment})")
    yield


app = FastAPI(
    title="Push Engine API",
    description="Push notification delivery: device registry, direct sends and broadcasts",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for development
if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(PushEngineError)
async def push_engine_error_handler(request: Request, exc: PushEngineError) -> JSONResponse:
    """Render engine errors with the same body shape as HTTPException."""
    content: dict = {"detail": exc.message}
    if isinstance(exc, ProviderError) and exc.record_id is not None:
        content["record_id"] = exc.record_id
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)


# Register routers
app.include_router(endpoints.router)
app.include_router(notifications.router)
app.include_router(broadcasts.router)
app.include_router(preferences.router)


@app.get("/health")
def health_check(
    service: Annotated[NotificationService, Depends(get_notification_service)],
):
    """Health check endpoint: provider reachability and store connectivity."""
    health = service.health_check()
    healthy = health["provider"] == "healthy" and health["database"] == "healthy"
    health["status"] = "healthy" if healthy else "unhealthy"
    health["environment"] = settings.environment
    if healthy:
        return health
    return JSONResponse(status_code=503, content=health)
