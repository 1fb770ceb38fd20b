from __future__ import annotations

import enum
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from polyshop.core.events import emit_event
from polyshop.core.logging import get_logger
from polyshop.core.metrics import normalize_path, record_request_metrics


class Outcome(str, enum.Enum):
    ok = "ok"
    rejected = "rejected"
    store_unavailable = "store_unavailable"
    server_error = "server_error"


def classify(request: Request, status_code: int) -> Outcome:
    """Store outages are told apart from other 5xx by the StoreFailure handler's mark."""
    if getattr(request.state, "store_failure", False):
        return Outcome.store_unavailable
    if status_code >= 500:
        return Outcome.server_error
    if status_code >= 400:
        return Outcome.rejected
    return Outcome.ok


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Per-service request metrics; failed requests are logged and reported to the event sink."""

    _LEVELS = {
        Outcome.rejected: "warning",
        Outcome.store_unavailable: "error",
        Outcome.server_error: "error",
    }
    _MESSAGES = {
        Outcome.rejected: "Request rejected",
        Outcome.store_unavailable: "Store unavailable, request failed",
        Outcome.server_error: "Server error response",
    }

    def __init__(self, app, *, log_rejected: bool = True) -> None:
        super().__init__(app)
        self.logger = get_logger("polyshop.requests")
        self.log_rejected = log_rejected

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._finish(request, 500, time.perf_counter() - start, Outcome.server_error)
            raise

        status_code = response.status_code
        self._finish(request, status_code, time.perf_counter() - start, classify(request, status_code))
        return response

    def _finish(self, request: Request, status_code: int, duration: float, outcome: Outcome) -> None:
        service = getattr(request.app.state, "service_name", "unknown")
        record_request_metrics(request, status_code, duration, service=service)
        if outcome is Outcome.ok:
            return

        path = normalize_path(request)
        emit_event(
            getattr(request.app.state, "sink", None),
            f"http.{outcome.value}",
            service=service,
            method=request.method,
            path=path,
            status_code=status_code,
        )
        if outcome is Outcome.rejected and not self.log_rejected:
            return
        log = getattr(self.logger, self._LEVELS[outcome])
        log(
            self._MESSAGES[outcome],
            extra={
                "service": service,
                "outcome": outcome.value,
                "method": request.method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration * 1000, 3),
                "user_id": request.path_params.get("user_id"),
                "request_id": request.headers.get("x-request-id"),
                "traceparent": request.headers.get("traceparent"),
            },
        )
