"""
URL configuration for the bookings app.

Routes:
    - POST /                   - Create a booking intent
    - GET  /<id>/              - Booking status
    - POST /webhooks/stripe/   - Stripe webhook endpoint
    - POST /webhooks/calendly/ - Calendly webhook endpoint

All routes are prefixed with /api/v1/bookings/ when included in the main URLconf.
"""

from django.urls import path
from rest_framework.routers import SimpleRouter

from bookings.views import BookingViewSet
from bookings.webhooks.views import calendly_webhook, stripe_webhook

app_name = "bookings"

router = SimpleRouter()
router.register("", BookingViewSet, basename="booking")

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("webhooks/calendly/", calendly_webhook, name="calendly_webhook"),
] + router.urls
