"""ASGI application for standalone deployment."""

from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from rustcheck.checker import RustChecker


def create_app(checker: "RustChecker") -> Starlette:
    """Create the ASGI application.

    Args:
        checker: The configured RustChecker instance

    Returns:
        Starlette application
    """
    from rustcheck.server.routes import create_routes

    routes = create_routes(checker)

    # The editor runs in a browser on another origin
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=checker.config.server.cors_origins or ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        ),
    ]

    return Starlette(
        routes=routes,
        middleware=middleware,
    )
