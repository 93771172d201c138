"""API routers."""

from lanxfer.routers.rooms import router as rooms_router
from lanxfer.routers.websocket import router as websocket_router

__all__ = ["rooms_router", "websocket_router"]
