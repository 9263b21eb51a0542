"""
Infrastructure endpoints that sit outside the chat domain.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check for load balancers and container orchestration.

    Reports database, cache and channel layer connectivity. Only the
    database is critical; cache and channel layer failures are reported
    as "disconnected" but keep the endpoint at 200 so a Redis hiccup does
    not take every web node out of rotation.

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
            "channel_layer": "connected"
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
        "channel_layer": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database failure: {e}")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception as e:
        logger.warning(f"Health check cache failure: {e}")
        health_status["cache"] = "disconnected"

    try:
        channel_layer = get_channel_layer()
        async_to_sync(channel_layer.group_send)(
            "health-check", {"type": "health.ping"}
        )
        health_status["channel_layer"] = "connected"
    except Exception as e:
        logger.warning(f"Health check channel layer failure: {e}")
        health_status["channel_layer"] = "disconnected"

    return JsonResponse(health_status, status=200 if is_healthy else 503)
