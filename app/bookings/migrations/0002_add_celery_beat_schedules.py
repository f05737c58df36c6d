"""
Add Celery Beat schedules for booking reconciliation tasks.

This migration creates periodic task schedules for:
- Ledger sweep (deliveries stuck in PENDING past the grace period)
- Payment backfill (PENDING_PAYMENT bookings whose webhook was lost)
"""

from django.db import migrations


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for booking reconciliation."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Every minute
    schedule_1min, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="minutes",
    )

    # Every 15 minutes
    schedule_15min, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Bookings: Sweep Stuck Deliveries",
        defaults={
            "task": "bookings.tasks.sweep_stuck_deliveries",
            "interval": schedule_1min,
            "enabled": True,
            "description": (
                "Marks webhook deliveries left PENDING past the grace period "
                "as ERROR and re-drives them from the stored payload."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Bookings: Backfill Pending Payments",
        defaults={
            "task": "bookings.tasks.backfill_pending_payments",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Retrieves checkout sessions of bookings stuck in PENDING_PAYMENT "
                "and applies paid or expired sessions."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove booking periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    task_names = [
        "Bookings: Sweep Stuck Deliveries",
        "Bookings: Backfill Pending Payments",
    ]

    PeriodicTask.objects.filter(name__in=task_names).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("bookings", "0001_initial"),
        ("django_celery_beat", "0018_improve_crontab_helptext"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
