"""HTTP API routes."""

from murmur.app.api.routes import router

__all__ = ["router"]
