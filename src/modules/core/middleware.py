import re
import time
import uuid
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

logger = structlog.get_logger()

_SAFE_REQUEST_ID = re.compile(r"[A-Za-z0-9._:-]{1,128}")


def _request_id_from(request: HttpRequest) -> str:
    """Caller-supplied X-Request-ID, or a fresh UUID4 when absent or unsafe.

    The value ends up in every log line and in a response header, so only
    short header-safe tokens are echoed back.
    """
    supplied = request.META.get("HTTP_X_REQUEST_ID", "")
    if _SAFE_REQUEST_ID.fullmatch(supplied):
        return supplied
    return str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Binds a correlation id to structlog for the duration of a request.

    Order, stock and outbox log events emitted while serving the request
    carry it, and the client receives it back in ``X-Request-ID``.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = _request_id_from(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        started = time.monotonic()
        logger.info("request_started", method=request.method, path=request.path)
        response = self.get_response(request)
        logger.info(
            "request_finished",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )

        response["X-Request-ID"] = cid
        return response
