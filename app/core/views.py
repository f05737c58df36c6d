"""
Core views providing infrastructure endpoints.

Views here carry no booking logic; they exist for load balancers,
container health checks and uptime monitors.
"""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint.

    Webhook providers disable endpoints that fail for long periods, so
    the check only covers what webhook processing needs: the database
    holding bookings and the idempotency ledger.

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable

    Example Response:
        {"status": "healthy", "database": "connected"}
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("Health check failed: database unreachable")
        return JsonResponse(
            {"status": "unhealthy", "database": "disconnected"},
            status=503,
        )

    return JsonResponse({"status": "healthy", "database": "connected"})
