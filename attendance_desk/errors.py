from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class AccessDeniedError(Exception):
    """Raised when the caller's permission set does not cover the request."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(Exception):
    """Transport-level failure talking to the upstream HR API."""

    def __init__(self, message: str, *, endpoint: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code


class RequestSupersededError(Exception):
    """A newer request from the same session replaced this one while it was in flight."""

    def __init__(self, generation: int, current_generation: int):
        super().__init__(f"Request generation {generation} superseded by {current_generation}.")
        self.generation = generation
        self.current_generation = current_generation


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
