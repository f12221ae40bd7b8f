"""Operational endpoints: liveness probe and identity echo."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict

import structlog
from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.models import OutboxEvent

logger = structlog.get_logger()


def _ping_database() -> Dict[str, Any]:
    with connections["default"].cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {}


def _ping_cache() -> Dict[str, Any]:
    # throttle counters and JWKS keys live here
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")
    return {}


def _outbox_backlog() -> Dict[str, Any]:
    backlog = OutboxEvent.objects.relayable(settings.OUTBOX_MAX_RETRIES).count()
    return {"backlog": backlog}


_PROBES: Dict[str, Callable[[], Dict[str, Any]]] = {
    "database": _ping_database,
    "cache": _ping_cache,
    "outbox": _outbox_backlog,
}


def _probe(name: str, check: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    start = time.monotonic()
    try:
        details = check()
    except (DatabaseError, ConnectionError, OSError) as exc:
        logger.error("health_check.probe_failed", service=name, error=str(exc))
        return {"status": "down"}
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
        **details,
    }


def health_check(request: HttpRequest) -> JsonResponse:
    """GET /health

    503 when the database or the cache is down.  The outbox probe only
    reports how many events still wait for delivery.
    """
    services = {name: _probe(name, check) for name, check in _PROBES.items()}
    healthy = all(services[name]["status"] == "up" for name in ("database", "cache"))

    logger.info("health_check_completed", status="healthy" if healthy else "unhealthy")
    return JsonResponse(
        {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=200 if healthy else 503,
    )


class WhoAmIView(APIView):
    """Echo the identity resolved from the bearer token.

    * No token  -> 401
    * Bad token -> 401
    * Valid JWT -> 200 with ``id`` and ``role``
    """

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        return Response({"id": request.user.id, "role": request.user.role})
