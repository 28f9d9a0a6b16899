"""Application error taxonomy and the FastAPI handler that renders it."""
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error carrying an HTTP status and a caller-safe message."""
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, errors: Optional[Dict[str, Any]] = None):
        self.detail = detail or self.default_detail
        self.errors = errors
        super().__init__(self.detail)


class Unauthorized(AppError):
    status_code = 401
    default_detail = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    default_detail = "Insufficient permissions"


class NotFound(AppError):
    status_code = 404
    default_detail = "Not found"


class ValidationError(AppError):
    """Malformed input. `errors` maps field names to messages."""
    status_code = 400
    default_detail = "Invalid request"


class ReferenceNotFound(AppError):
    """An ingest batch names a property, competitor or room type that does not exist."""
    status_code = 400
    default_detail = "Property, competitor or room type not found"


class InternalError(AppError):
    status_code = 500
    default_detail = "Internal server error"


async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Internal error: %s", exc.detail)
    content: Dict[str, Any] = {"detail": exc.detail}
    if exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)
