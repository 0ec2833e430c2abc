import re
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .config import settings

logger = structlog.get_logger("booking_desk.middleware")

_RESOURCE_PATH_RE = re.compile(r"^/api/(reservations|services|users)/(\d+)(?:/|$)")
_RESOURCE_KEYS = {
    "reservations": "reservation_id",
    "services": "service_id",
    "users": "user_id",
}


def resource_ids_from_path(path: str) -> dict[str, int]:
    """Map ``/api/reservations/7/confirm`` style paths to ``{"reservation_id": 7}``."""
    match = _RESOURCE_PATH_RE.match(path or "")
    if not match:
        return {}
    return {_RESOURCE_KEYS[match.group(1)]: int(match.group(2))}


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Binds a request id and the addressed reservation/service/user id to every log line."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=path,
            method=request.method,
            app=settings.APP_NAME,
            **resource_ids_from_path(path),
        )

        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                error=str(exc),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        response.headers["X-Request-ID"] = request_id
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_finished",
            status=response.status_code,
            staff_token=bool(request.headers.get("Authorization")),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        if settings.SECURITY_HEADERS_ENABLED:
            response.headers.setdefault("X-Content-Type-Options", "nosniff")
            response.headers.setdefault("X-Frame-Options", "DENY")
            response.headers.setdefault("Referrer-Policy", "no-referrer")
            response.headers.setdefault("Cache-Control", "no-store")
        return response
