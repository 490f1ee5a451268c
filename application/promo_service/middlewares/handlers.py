from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError, HTTPException
from fastapi.responses import JSONResponse
from typing import Any

from promo_service.config.sentry import capture_exception, add_breadcrumb
from promo_service.core.exceptions import PromotionError
from promo_service.logging.utils import get_app_logger
from promo_service.middlewares.request_context import request_context

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

logger = get_app_logger("promo_service.middlewares.handlers")

DEBUG = configs.DEBUG


def _format_validation_errors(errors) -> dict:
    messages = []
    for err in errors:
        field_path = " -> ".join(str(loc) for loc in err.get("loc", []))
        messages.append(f"{field_path}: {err.get('msg', 'Invalid input')}")
    if len(messages) == 1:
        return {"message": messages[0]}
    return {"message": "Validation errors", "errors": messages}


async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body/query validation failures. Invariant messages are always returned."""
    request_context.module_name = 'middleware_handlers'
    logger.warning(f"validation_error | method={request.method} url={request.url.path} errors={exc.errors()}")
    add_breadcrumb(
        message=f"Validation error on {request.method} {request.url.path}",
        category="validation",
        level="warning",
    )
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_format_validation_errors(exc.errors()))


async def _promotion_exception_handler(request: Request, exc: PromotionError):
    request_context.module_name = 'middleware_handlers'
    logger.warning(f"promotion_error | method={request.method} url={request.url.path} error_code={exc.error_code} message={exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _http_exception_handler(request: Request, exc: Any):
    request_context.module_name = 'middleware_handlers'
    status_code = getattr(exc, 'status_code', status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail = getattr(exc, 'detail', str(exc))

    if status_code >= 500:
        logger.error(f"http_exception | method={request.method} url={request.url.path} status_code={status_code} detail={detail}", exc_info=True)
        add_breadcrumb(
            message=f"HTTP {status_code} error on {request.method} {request.url.path}",
            category="http",
            level="error",
            data={"status_code": status_code, "detail": detail},
        )
        capture_exception(exc)
    else:
        logger.warning(f"http_exception | method={request.method} url={request.url.path} status_code={status_code} detail={detail}")

    if DEBUG or isinstance(detail, dict):
        payload = detail if isinstance(detail, dict) else {"message": detail}
    elif status_code == 404:
        payload = {"message": "Resource not found"}
    elif status_code in (401, 403):
        payload = {"message": "Access denied"}
    elif 400 <= status_code < 500:
        payload = {"message": "Invalid request"}
    else:
        payload = {"message": "Something went wrong"}

    return JSONResponse(status_code=status_code, content=payload, headers=getattr(exc, 'headers', None))


async def _general_exception_handler(request: Request, exc: Exception):
    request_context.module_name = 'middleware_handlers'
    logger.error(
        f"unhandled_exception | method={request.method} url={request.url.path} exception_type={type(exc).__name__} exception_message={exc}",
        exc_info=True,
    )
    capture_exception(exc)

    payload = {"message": f"Internal server error: {exc}"} if DEBUG else {"message": "Something went wrong"}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the given FastAPI instance."""
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(PromotionError, _promotion_exception_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _general_exception_handler)
