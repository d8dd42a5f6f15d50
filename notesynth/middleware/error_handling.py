"""
Error Handling Middleware

Provides consistent, informative error responses across the API.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Internal details (error details, exception text) only in debug mode
- Base exception classes the service layer derives its errors from

Usage:
    from notesynth.middleware.error_handling import ServiceError, setup_error_handling

    # Add middleware to app
    setup_error_handling(app, debug=settings.DEBUG)

    # Raise custom exceptions
    raise ServiceError("Something went wrong", status_code=500)

Exception handling hierarchy:
    - HTTPException: Re-raised for FastAPI's built-in handler
    - ServiceError: Custom exceptions → structured JSON response
    - Exception: Catch-all for unexpected errors → sanitized response

Caveat: BaseHTTPMiddleware cannot catch exceptions raised after the
response body starts streaming. The batch progress stream reports its own
failures as batch_failed events for that reason.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Provider pool not initialized", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class LLMError(ServiceError):
    """
    LLM provider error.

    Raised when LLM API calls fail (rate limits, bad responses, etc.)
    """

    status_code = 502
    error_code = "llm_error"


# =============================================================================
# Error Handling Middleware
# =============================================================================


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Turn errors escaping a route into JSON error bodies.

    ServiceErrors keep their status code, error code and message; their
    details are only included in debug mode. Anything else becomes a generic
    500 whose exception type and message are only shown in debug mode.
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        error_id = uuid4().hex[:8]
        route = f"{request.method} {request.url.path}"

        try:
            return await call_next(request)

        except HTTPException:
            raise

        except ServiceError as e:
            logger.warning(f"[{error_id}] {route} -> {e.status_code} {e.error_code}: {e.message}")
            content = self._body(e.error_code, e.message, error_id)
            if self.debug and e.details:
                content["details"] = e.details
            return JSONResponse(status_code=e.status_code, content=content)

        except Exception as e:
            logger.error(f"[{error_id}] {route} -> unhandled {type(e).__name__}: {e}", exc_info=True)
            content = self._body("internal_server_error", "An unexpected error occurred", error_id)
            if self.debug:
                content["details"] = {"exception": type(e).__name__, "message": str(e)}
            return JSONResponse(status_code=500, content=content)

    @staticmethod
    def _body(error_code: str, message: str, error_id: str) -> dict:
        return {
            "error": error_code,
            "message": message,
            "error_id": error_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


# =============================================================================
# Setup Function
# =============================================================================


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Args:
        app: FastAPI application instance
        debug: Whether to include error details in responses
    """
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")
