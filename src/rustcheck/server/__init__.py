"""HTTP Server module."""

from rustcheck.server.app import create_app
from rustcheck.server.routes import create_routes

__all__ = [
    "create_app",
    "create_routes",
]
