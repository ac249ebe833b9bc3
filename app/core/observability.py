import json
import logging
import time
import traceback
from contextvars import ContextVar
from uuid import uuid4

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
shop_ctx: ContextVar[str | None] = ContextVar("shop", default=None)

root_logger = logging.getLogger("autotag")
logger = logging.getLogger("autotag.api")

# HTTP status -> error envelope code. Also used for the OpenAPI error examples.
ERROR_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
    429: "rate_limited",
    500: "internal_error",
    502: "upstream_error",
}


def setup_observability(level: int = logging.INFO) -> None:
    """Attach one JSON-lines stream handler to the `autotag` logger tree."""
    if root_logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    root_logger.propagate = False


def get_request_id() -> str:
    return request_id_ctx.get()


def log_event(target: logging.Logger, event: str, *, level: int = logging.INFO, **fields) -> None:
    payload = {"event": event, "request_id": get_request_id()}
    shop = shop_ctx.get()
    if shop and "shop" not in fields:
        payload["shop"] = shop
    payload.update(fields)
    target.log(level, json.dumps(payload, default=str))


def _request_id_for(request: Request) -> str:
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or get_request_id()
    )


def error_body(
    *,
    code: str,
    message: str,
    request_id: str,
    path: str,
    details: list[dict] | None = None,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
            "path": path,
            "details": details,
        }
    }


def _error_response(
    request: Request,
    *,
    status_code: int,
    message: str,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=error_body(
            code=ERROR_CODES.get(status_code, "http_error"),
            message=message,
            request_id=_request_id_for(request),
            path=request.url.path,
            details=details,
        ),
    )


async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    request_token = request_id_ctx.set(request_id)
    shop_token = shop_ctx.set(request.headers.get("x-shopify-shop-domain"))
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        log_event(
            logger,
            "request",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        shop_ctx.reset(shop_token)
        request_id_ctx.reset(request_token)

    response.headers["X-Request-ID"] = request_id
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    log_event(
        logger,
        "unhandled_exception",
        level=logging.ERROR,
        request_id=_request_id_for(request),
        path=request.url.path,
        error=str(exc),
        traceback=traceback.format_exc(limit=10),
    )
    return _error_response(request, status_code=500, message="Internal server error")


async def http_exception_handler(request: Request, exc: HTTPException):
    # `detail` is a message string, or {"message": ..., "details": [...]}.
    detail = exc.detail
    details = None
    if isinstance(detail, str):
        message = detail
    elif isinstance(detail, dict):
        message = str(detail.get("message") or "HTTP error")
        details = detail.get("details")
    else:
        message = "HTTP error"
        details = detail
    return _error_response(
        request,
        status_code=exc.status_code,
        message=message,
        details=details,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", []) if part != "body"]
        details.append(
            {
                "field": ".".join(location) if location else "body",
                "message": err.get("msg", "Invalid value"),
                "type": err.get("type"),
            }
        )
    return _error_response(request, status_code=422, message="Validation failed", details=details)
