"""
Re-drive a webhook delivery from its stored payload.

Bypasses the duplicate short-circuit for one operator-confirmed
delivery: the ledger row is re-claimed regardless of its outcome and
the stored payload goes through the coordinator again.

Usage:
    python manage.py replay_delivery evt_1NirD82eZvKYlo2CIvbtLWuY
    python manage.py replay_delivery calendly:9f86d0... --yes
"""

from django.core.management.base import BaseCommand, CommandError

from bookings.models import WebhookDelivery
from bookings.services import IdempotencyLedger, ReconciliationCoordinator


class Command(BaseCommand):
    help = "Replay a webhook delivery, bypassing duplicate detection"

    def add_arguments(self, parser):
        parser.add_argument("delivery_id", help="Ledger key of the delivery to replay")
        parser.add_argument(
            "--yes",
            action="store_true",
            help="Do not ask for confirmation",
        )

    def handle(self, *args, **options):
        delivery_id = options["delivery_id"]
        try:
            delivery = WebhookDelivery.objects.get(pk=delivery_id)
        except WebhookDelivery.DoesNotExist:
            raise CommandError(f"Delivery {delivery_id} not found")

        self.stdout.write(
            f"{delivery.delivery_id} [{delivery.provider}] "
            f"{delivery.provider_event_type or '-'} outcome={delivery.outcome} "
            f"attempts={delivery.attempts}"
        )

        if not options["yes"]:
            answer = input("Replay this delivery? [y/N] ")
            if answer.strip().lower() not in ("y", "yes"):
                self.stdout.write("Aborted.")
                return

        decision = IdempotencyLedger.begin_processing(
            delivery_id=delivery.delivery_id,
            provider=delivery.provider,
            payload=delivery.payload,
            provider_event_type=delivery.provider_event_type,
            force=True,
        )
        if not decision.proceed:
            raise CommandError(
                f"Delivery {delivery_id} is being processed concurrently "
                f"(outcome={decision.outcome})"
            )

        result = ReconciliationCoordinator.process(decision.delivery)
        message = f"Replayed {delivery_id}: {result.detail} (outcome={result.outcome})"
        if result.status_code >= 500:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))
