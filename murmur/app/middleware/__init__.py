"""Middleware package for the relay."""

from murmur.app.middleware.auth import require_admin
from murmur.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "require_admin",
    "RequestIdMiddleware",
    "get_request_id",
]
