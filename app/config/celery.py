"""
Celery configuration for the booking reconciliation engine.

Celery runs the work that must not block a webhook response:
- Booking notifications dispatched after a transition commits
- Releasing scheduling holds for bookings that failed
- Periodic ledger sweeps and payment backfill (django-celery-beat)

Tasks are auto-discovered from all installed Django apps.

Usage:
    from bookings.tasks import redrive_delivery

    redrive_delivery.delay(delivery_id)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
