"""
Bookings app configuration.

This app reconciles Calendly scheduling webhooks and Stripe payment
webhooks into a single booking record.
"""

from django.apps import AppConfig


class BookingsConfig(AppConfig):
    """Configuration for the bookings application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "bookings"
    verbose_name = "Bookings"
