"""
Application errors and their JSON rendering.

Every error the family inventory core raises on purpose derives from AppError.
install_handlers() turns them into JSON responses for the REST layer; the
real-time dispatcher turns them into ERROR messages for the acting connection.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    code = "app_error"

    def __init__(self, message: str, *, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(AppError):
    """Missing or invalid item fields."""
    status_code = 400
    code = "validation_error"


class NotFoundError(AppError):
    """Item id not present in the given family."""
    status_code = 404
    code = "not_found"


class StoreError(AppError):
    """The durable store rejected or failed a read/write."""
    status_code = 503
    code = "store_error"


class ConnectionSendError(Exception):
    """Peer transport is gone. Recovered locally by pruning the connection, never rendered."""


def install_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})
