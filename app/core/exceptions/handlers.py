from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
import traceback
from app.cache.errors import InvalidKey, InvalidPolicy, TransientStoreFailure
from app.core.responses import send_error
from app.utils.logging import get_logger


def register_exception_handlers(app):
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger = get_logger()
        logger.error(
            f"Unhandled exception for {request.method} {request.url}: {exc}\n"
            f"Traceback: {traceback.format_exc()}\n"
            f"User-Agent: {request.headers.get('user-agent')}"
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=send_error(
                message="An unexpected error occurred.",
                data={"detail": str(exc)},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            ).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger = get_logger()
        raw_errors = exc.errors()
        logger.warning(
            f"Validation error for {request.method} {request.url}: {raw_errors}"
        )

        friendly_errors = {}
        for error in raw_errors:
            field = ".".join(map(str, error["loc"]))
            if field.startswith("query."):
                field = field.replace("query.", "")
            friendly_errors[field] = error["msg"]

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=send_error(
                message="Validation failed",
                data={"errors": friendly_errors},
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            ).model_dump(),
        )

    @app.exception_handler(InvalidPolicy)
    async def invalid_policy_handler(request: Request, exc: InvalidPolicy):
        logger = get_logger()
        logger.warning(
            f"Invalid expiration policy for {request.method} {request.url}: {exc}"
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=send_error(
                message=str(exc), status_code=status.HTTP_400_BAD_REQUEST
            ).model_dump(),
        )

    @app.exception_handler(InvalidKey)
    async def invalid_key_handler(request: Request, exc: InvalidKey):
        logger = get_logger()
        logger.warning(f"Invalid cache key for {request.method} {request.url}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=send_error(
                message=str(exc), status_code=status.HTTP_400_BAD_REQUEST
            ).model_dump(),
        )

    @app.exception_handler(TransientStoreFailure)
    async def transient_store_failure_handler(
        request: Request, exc: TransientStoreFailure
    ):
        logger = get_logger()
        logger.error(f"Cache store unavailable for {request.method} {request.url}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            headers={"Retry-After": "1"},
            content=send_error(
                message="Cache store temporarily unavailable.",
                data={"detail": str(exc), "retryable": True},
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            ).model_dump(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger = get_logger()
        logger.warning(
            f"HTTP {exc.status_code} for {request.method} {request.url}: {exc.detail}"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=send_error(
                message=exc.detail, status_code=exc.status_code
            ).model_dump(),
        )
