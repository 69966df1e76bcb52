"""Typed errors raised by the storefront services and their HTTP rendering."""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base error for the storefront.

    `code` is a stable dotted identifier clients can branch on, `message` is
    the human readable text surfaced as `detail`.
    """

    status_code = 500
    default_code = "internal.error"

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None,
                 meta: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = int(status_code)
        self.meta = dict(meta or {})

    def to_public_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.meta)
        return payload


class BadRequestError(StoreError):
    status_code = 400
    default_code = "request.invalid"


class UnauthorizedError(StoreError):
    status_code = 401
    default_code = "auth.unauthorized"


class ForbiddenError(StoreError):
    status_code = 403
    default_code = "auth.forbidden"


class NotFoundError(StoreError):
    status_code = 404
    default_code = "resource.not_found"


class ConflictError(StoreError):
    status_code = 409
    default_code = "resource.conflict"


class PaymentServiceError(StoreError):
    status_code = 500
    default_code = "payments.unavailable"


class ServiceUnavailableError(StoreError):
    status_code = 503
    default_code = "service.unavailable"


def register_exception_handlers(app: FastAPI) -> None:
    """Render StoreError, HTTPException, validation errors and crashes as JSON."""

    @app.exception_handler(StoreError)
    async def _store_error_handler(request: Request, exc: StoreError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_public_dict())

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        payload = {"detail": exc.detail, "code": f"http.{exc.status_code}"}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=dict(exc.headers or {}))

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        payload = {"detail": jsonable_errors(exc), "code": "http.validation_error"}
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error", "code": "internal.unhandled"})


def jsonable_errors(exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        # ctx may carry exception instances that are not JSON serialisable
        err = {k: v for k, v in err.items() if k != "ctx"}
        errors.append(err)
    return errors
