"""
Webhook endpoint views for Stripe and Calendly.

Both views hand the raw body and headers to the reconciliation
coordinator and translate its result into an HTTP response. Processing
is synchronous: the response code tells the provider whether to retry.

Response codes:
    - 200: Applied, ignored, duplicate or dead-lettered
    - 400: Missing or invalid signature
    - 409: The same delivery is being processed right now
    - 503: Retryable provider failure, redeliver later

Usage:
    # In urls.py
    from bookings.webhooks.views import calendly_webhook, stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
        path("webhooks/calendly/", calendly_webhook, name="calendly_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from bookings.services.coordinator import ReconciliationCoordinator
from bookings.state_machines import Provider

logger = logging.getLogger(__name__)


def _handle(request: HttpRequest, provider: str) -> JsonResponse:
    result = ReconciliationCoordinator.handle_delivery(
        request.body,
        request.headers,
        provider,
    )
    if result.status_code >= 500:
        logger.warning(
            "Webhook answered with retryable failure",
            extra={"provider": provider, "outcome": result.outcome},
        )
    return JsonResponse(result.to_body(), status=result.status_code)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive Stripe events.

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    return _handle(request, Provider.PAYMENT)


@csrf_exempt
@require_POST
def calendly_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive Calendly invitee events.

    Example Calendly-Webhook-Signature header:
        t=1614556800,v1=xxx
    """
    return _handle(request, Provider.SCHEDULING)
