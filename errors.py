import logging
import os
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import StorageError

DEBUG = os.getenv("DEBUG", "false").lower() in ("1", "true", "yes")

logger = logging.getLogger(__name__)


class ValidationError(HTTPException):
    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__(status_code=400, detail=errors)


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Unauthorized access"):
        super().__init__(status_code=401, detail=detail)


class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Access denied"):
        super().__init__(status_code=403, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class TransactionError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)


class ProductNotFound(HTTPException):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(status_code=400, detail=f"Product not found: {product_id}")


class InsufficientStock(HTTPException):
    def __init__(self, product_id: str, product_name: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            status_code=400,
            detail=f"Insufficient stock for {product_name}. Available: {available}, Requested: {requested}",
        )


def format_validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    errors = []
    for err in exc.errors():
        # drop the leading "body"/"path"/"query" segment
        loc = [str(part) for part in err.get("loc", ())[1:]]
        errors.append({"field": ".".join(loc) or None, "message": err.get("msg")})
    return errors


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, list):
        content: Dict[str, Any] = {"errors": exc.detail}
    elif exc.status_code == 404 and exc.detail == "Not Found":
        content = {"error": "Endpoint not found"}
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return await http_exception_handler(request, ValidationError(format_validation_errors(exc)))


async def storage_exception_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Database error"})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Something went wrong!",
            "message": str(exc) if DEBUG else "Internal server error",
        },
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StorageError, storage_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
