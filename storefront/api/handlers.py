# storefront/api/handlers.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.domain.errors import StorefrontError
from storefront.utils.logging import get_logger
from storefront.utils.settings import ENVIRONMENT

logger = get_logger(__name__)


def error_body(exc: StorefrontError) -> dict:
    body = {
        "success": False,
        "code": exc.code,
        "message": exc.message if exc.expose else exc.public_message,
    }
    if exc.data:
        body["data"] = exc.data
    if not exc.expose and ENVIRONMENT != "production":
        body["details"] = exc.message
    return body


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to the {success, code, message} envelope."""
    if exc.expose:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    else:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "path": ".".join(str(p) for p in err["loc"] if p != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "errors": errors,
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"success": False, "code": "INTERNAL_ERROR", "message": "Internal server error"}
    if ENVIRONMENT != "production":
        content["details"] = str(exc)
    return JSONResponse(status_code=500, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
