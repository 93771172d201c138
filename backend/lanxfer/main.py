"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from lanxfer import __version__
from lanxfer.config import settings
from lanxfer.log import configure_logging
from lanxfer.middleware.security import SecurityHeadersMiddleware
from lanxfer.routers import rooms_router, websocket_router
from lanxfer.services.cleanup import cleanup_service
from lanxfer.services.registry import room_registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the stale session sweeper for the lifetime of the relay."""
    configure_logging(settings.log_level)
    logger.info("[Relay] {} {} starting", settings.app_name, __version__)
    await cleanup_service.start()
    yield
    await cleanup_service.stop()
    logger.info("[Relay] stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Content-agnostic room relay for end-to-end encrypted file transfer",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,  # Disable docs in production
    redoc_url="/redoc" if settings.debug else None,
)

# Middleware runs in reverse order of addition, so CORS handles preflight first
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rooms_router, prefix="/api")
app.include_router(websocket_router, prefix="/api")


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "rooms": len(room_registry.rooms),
        "sessions": room_registry.session_count,
    }


@app.get("/")
async def root():
    """Root endpoint - relay info."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "relay": "/api/ws",
        "health": "/api/health",
    }
