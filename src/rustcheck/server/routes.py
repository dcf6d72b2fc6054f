"""HTTP route handlers."""

import asyncio
import math
from typing import TYPE_CHECKING

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from rustcheck.exceptions import (
    CapacityError,
    InvalidDependencyError,
    InvocationTimeoutError,
    RustCheckError,
)
from rustcheck.models import CheckRequest, CheckResponse
from rustcheck.observability import get_logger

if TYPE_CHECKING:
    from rustcheck.checker import RustChecker

logger = get_logger(__name__)


def create_routes(checker: "RustChecker") -> list[Route]:
    """Create HTTP routes for the checker.

    Args:
        checker: The configured RustChecker instance

    Returns:
        List of Starlette routes
    """

    async def health(request: Request) -> Response:
        """Health check endpoint with toolchain availability."""
        rust_available, cargo_available = await asyncio.gather(
            checker.is_rust_available(),
            checker.is_cargo_available(),
        )
        return JSONResponse(
            {
                "status": "ok",
                "rust_available": rust_available,
                "cargo_available": cargo_available,
            }
        )

    async def check(request: Request) -> Response:
        """Check endpoint - runs one check and returns its result."""
        try:
            body = await request.json()
        except ValueError:
            # JSONDecodeError and UnicodeDecodeError
            return JSONResponse(
                {"error": "Invalid JSON body"},
                status_code=400,
            )

        try:
            check_request = CheckRequest.model_validate(body)
        except ValidationError as e:
            return JSONResponse(
                {
                    "error": "Invalid check request",
                    "details": e.errors(include_url=False, include_context=False),
                },
                status_code=400,
            )

        try:
            result = await checker.check_request(check_request)
        except InvalidDependencyError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        except CapacityError as e:
            retry_after = math.ceil(e.retry_after or 1)
            return JSONResponse(
                {"error": str(e), "retry_after": retry_after},
                status_code=503,
                headers={"Retry-After": str(retry_after)},
            )
        except InvocationTimeoutError as e:
            return JSONResponse({"error": str(e)}, status_code=504)
        except RustCheckError as e:
            logger.error("Check request failed", error=e)
            return JSONResponse({"error": str(e)}, status_code=500)

        response = CheckResponse(
            result=result,
            rust_available=await checker.is_rust_available(),
        )
        return JSONResponse(response.model_dump(mode="json"))

    return [
        Route("/health", health, methods=["GET"]),
        Route("/ping", health, methods=["GET"]),
        Route("/check", check, methods=["POST"]),
    ]
