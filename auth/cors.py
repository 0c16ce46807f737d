from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

SIGNIN_METHODS = "GET, POST, OPTIONS"
SIGNIN_REQUEST_HEADERS = "Content-Type, Accept"
# Seconds a browser may cache the preflight answer.
PREFLIGHT_MAX_AGE = "600"


def is_trusted_origin(origin: str | None, trusted_origins: set[str]) -> bool:
    return bool(origin) and origin in trusted_origins


def with_cors_headers(request: Request, response: Response, trusted_origins: set[str]) -> Response:
    """Let a trusted embedding page read the response and send the session cookie."""
    origin = request.headers.get("origin")
    if not is_trusted_origin(origin, trusted_origins):
        return response

    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.headers["Vary"] = "Origin"
    return response


def preflight_response(request: Request, trusted_origins: set[str]) -> Response:
    response = Response(status_code=204)
    if is_trusted_origin(request.headers.get("origin"), trusted_origins):
        response.headers["Access-Control-Allow-Methods"] = SIGNIN_METHODS
        response.headers["Access-Control-Allow-Headers"] = SIGNIN_REQUEST_HEADERS
        response.headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    return with_cors_headers(request, response, trusted_origins)


def flow_error_response(
    request: Request,
    trusted_origins: set[str],
    code: str,
    message: str,
    status_code: int = 400,
) -> Response:
    """JSON error body shaped like the ``error`` member of a flow snapshot."""
    body = {"error": code, "message": message}
    return with_cors_headers(request, JSONResponse(body, status_code=status_code), trusted_origins)
