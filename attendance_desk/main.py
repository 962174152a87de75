import asyncio
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from attendance_desk.errors import (
    AccessDeniedError,
    ApiError,
    RequestSupersededError,
    UpstreamError,
    error_response,
)
from attendance_desk.logging_utils import request_id_var, setup_json_logging
from attendance_desk.routers import attendance
from attendance_desk.services.attendance import AttendanceSessionRegistry
from attendance_desk.services.upstream import HttpAttendanceClient
from attendance_desk.settings import get_cors_origins, get_settings, get_upstream_base_url

settings = get_settings()
setup_json_logging(settings.log_level)
logger = logging.getLogger("attendance_desk.request")
lifecycle_logger = logging.getLogger("attendance_desk.lifecycle")


app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    request.state.actor = getattr(request.state, "actor", "anonymous")
    request.state.actor_id = getattr(request.state, "actor_id", None)

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
                "actor": getattr(request.state, "actor", "anonymous"),
                "actor_id": getattr(request.state, "actor_id", None),
                "employee_id": getattr(request.state, "employee_id", None),
            },
        )
        request_id_var.reset(token)


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
    )


@app.exception_handler(AccessDeniedError)
async def handle_access_denied(request: Request, exc: AccessDeniedError) -> JSONResponse:
    logger.info(
        "attendance_access_denied",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "actor_id": getattr(request.state, "actor_id", None),
            "reason": exc.message,
        },
    )
    return error_response(request, status_code=403, code="FORBIDDEN", message=exc.message)


@app.exception_handler(UpstreamError)
async def handle_upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.warning(
        "upstream_unavailable",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "endpoint": exc.endpoint,
            "upstream_status_code": exc.status_code,
            "error": exc.message,
        },
    )
    return error_response(
        request,
        status_code=502,
        code="UPSTREAM_UNAVAILABLE",
        message="Attendance data is temporarily unavailable. Please retry.",
    )


@app.exception_handler(RequestSupersededError)
async def handle_superseded(request: Request, exc: RequestSupersededError) -> JSONResponse:
    return error_response(
        request,
        status_code=409,
        code="REQUEST_SUPERSEDED",
        message="A newer attendance request replaced this one.",
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    status_code = exc.status_code
    code_map = {
        401: "INVALID_TOKEN",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
    }
    code = code_map.get(status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=status_code,
        code=code,
        message=message,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=str(exc.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


app.include_router(attendance.router)


@app.on_event("startup")
async def start_upstream_client() -> None:
    if getattr(app.state, "attendance_client", None) is not None:
        return
    client = HttpAttendanceClient()
    app.state.attendance_client = client
    app.state.session_registry = AttendanceSessionRegistry(lambda: client)
    lifecycle_logger.info(
        "upstream_client_started",
        extra={
            "base_url": get_upstream_base_url(),
            "timeout_seconds": settings.upstream_timeout_seconds,
            "page_size": settings.upstream_page_size,
        },
    )


@app.on_event("shutdown")
async def stop_upstream_client() -> None:
    client: HttpAttendanceClient | None = getattr(app.state, "attendance_client", None)
    registry: AttendanceSessionRegistry | None = getattr(app.state, "session_registry", None)
    if registry is not None:
        registry.clear()
    if client is not None:
        await asyncio.to_thread(client.close)
    app.state.attendance_client = None
    app.state.session_registry = None
    lifecycle_logger.info("upstream_client_stopped")


@app.get("/health")
def health() -> dict[str, Any]:
    registry: AttendanceSessionRegistry | None = getattr(app.state, "session_registry", None)
    return {
        "status": "ok",
        "upstream_base_url": get_upstream_base_url(),
        "upstream_client_ready": getattr(app.state, "attendance_client", None) is not None,
        "active_sessions": registry.session_count() if registry is not None else 0,
    }
