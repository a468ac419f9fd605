"""Global error handling middleware for consistent error responses."""

import logging
import traceback
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for errors returned to the caller with a status code."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type: str = "api_error",
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        super().__init__(message)


class WebhookSignatureError(APIError):
    """Webhook sender could not be authenticated."""

    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="invalid_signature",
        )


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a JSON error response in the ErrorResponse format."""
    body = ErrorResponse(error=error_type, message=message, request_id=request_id)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Middleware to catch and format all exceptions.

    Rejected webhooks (bad signature) get their 4xx. An unexpected
    exception while settling becomes a 500, which makes the payment
    provider redeliver the event; the step ledger and settlement line
    states make that redelivery safe.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or formatted error response.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        logger.warning(
            "Rejected %s: %s - %s",
            request.url.path,
            e.error_type,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return create_error_response(e.error_type, e.message, e.status_code, request_id)

    except HTTPException as e:
        logger.warning("HTTP exception: %s - %s", e.status_code, e.detail, extra={"request_id": request_id})
        return create_error_response("http_error", str(e.detail), e.status_code, request_id)

    except Exception as e:
        logger.error(
            "Unhandled exception on %s: %s\n%s",
            request.url.path,
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        message = "An unexpected error occurred"
        if "/webhooks/" in request.url.path:
            message = "Webhook processing failed"
        return create_error_response(
            "internal_error", message, status.HTTP_500_INTERNAL_SERVER_ERROR, request_id
        )
