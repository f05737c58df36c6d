"""
Inspect and resolve dead-lettered webhook events.

Usage:
    python manage.py dead_letter list [--all] [--reason UNRESOLVABLE_CORRELATION]
    python manage.py dead_letter resolve <id> --booking <booking_id> [--note "..."]
    python manage.py dead_letter ignore <id> [--note "..."]

resolve applies the stored event to the given booking through the
coordinator (correlation is skipped) and marks the dead letter RESOLVED.
"""

import uuid

from django.core.management.base import BaseCommand, CommandError

from bookings.models import Booking, DeadLetterEvent, WebhookDelivery
from bookings.services import IdempotencyLedger, ReconciliationCoordinator
from bookings.state_machines import DeadLetterReason, DeadLetterStatus, DeliveryOutcome


def _parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise CommandError(f"Invalid {label}: {value}")


class Command(BaseCommand):
    help = "List, resolve or ignore dead-lettered webhook events"

    def add_arguments(self, parser):
        subparsers = parser.add_subparsers(dest="action", required=True)

        list_parser = subparsers.add_parser("list", help="List dead letters")
        list_parser.add_argument(
            "--all",
            action="store_true",
            help="Include resolved and ignored entries",
        )
        list_parser.add_argument(
            "--reason",
            choices=DeadLetterReason.values,
            help="Only show this reason",
        )
        list_parser.add_argument("--limit", type=int, default=50)

        resolve_parser = subparsers.add_parser(
            "resolve",
            help="Apply a dead-lettered event to a booking",
        )
        resolve_parser.add_argument("dead_letter_id")
        resolve_parser.add_argument("--booking", required=True, help="Booking ID")
        resolve_parser.add_argument("--note", default="")

        ignore_parser = subparsers.add_parser("ignore", help="Close without applying")
        ignore_parser.add_argument("dead_letter_id")
        ignore_parser.add_argument("--note", default="")

    def handle(self, *args, **options):
        action = options["action"]
        if action == "list":
            self._list(options)
        elif action == "resolve":
            self._resolve(options)
        elif action == "ignore":
            self._ignore(options)

    # =========================================================================
    # Actions
    # =========================================================================

    def _list(self, options):
        queryset = DeadLetterEvent.objects.select_related("delivery").order_by("-created_at")
        if not options["all"]:
            queryset = queryset.filter(status=DeadLetterStatus.PENDING)
        if options["reason"]:
            queryset = queryset.filter(reason=options["reason"])

        entries = list(queryset[: options["limit"]])
        if not entries:
            self.stdout.write("No dead letters.")
            return

        for entry in entries:
            delivery_id = entry.delivery_id or "-"
            self.stdout.write(
                f"{entry.id}  {entry.created_at:%Y-%m-%d %H:%M}  {entry.status:<8} "
                f"{entry.reason:<26} {entry.provider:<10} "
                f"{entry.provider_event_type or '-':<40} {delivery_id}"
            )
            if entry.error_message:
                self.stdout.write(f"    {entry.error_message}")

    def _resolve(self, options):
        entry = self._get_pending(options["dead_letter_id"])
        booking_id = _parse_uuid(options["booking"], "booking ID")
        try:
            booking = Booking.objects.get(pk=booking_id)
        except Booking.DoesNotExist:
            raise CommandError(f"Booking {booking_id} not found")

        if entry.delivery_id is None:
            raise CommandError(f"Dead letter {entry.id} has no stored delivery")

        delivery = WebhookDelivery.objects.get(pk=entry.delivery_id)
        decision = IdempotencyLedger.begin_processing(
            delivery_id=delivery.delivery_id,
            provider=delivery.provider,
            payload=delivery.payload,
            provider_event_type=delivery.provider_event_type,
            force=True,
        )
        if not decision.proceed:
            raise CommandError(
                f"Delivery {delivery.delivery_id} is being processed concurrently"
            )

        result = ReconciliationCoordinator.process(decision.delivery, booking_id=booking.id)
        if result.outcome not in (
            DeliveryOutcome.APPLIED,
            DeliveryOutcome.IGNORED_STALE,
        ):
            raise CommandError(
                f"Event could not be applied to booking {booking.id}: "
                f"{result.detail} (outcome={result.outcome})"
            )

        entry.mark_resolved(booking, note=options["note"])
        entry.save()
        self.stdout.write(
            self.style.SUCCESS(
                f"Resolved {entry.id} against booking {booking.id} (outcome={result.outcome})"
            )
        )

    def _ignore(self, options):
        entry = self._get_pending(options["dead_letter_id"])
        entry.mark_ignored(note=options["note"])
        entry.save()
        self.stdout.write(self.style.SUCCESS(f"Ignored {entry.id}"))

    def _get_pending(self, value: str) -> DeadLetterEvent:
        dead_letter_id = _parse_uuid(value, "dead letter ID")
        try:
            entry = DeadLetterEvent.objects.get(pk=dead_letter_id)
        except DeadLetterEvent.DoesNotExist:
            raise CommandError(f"Dead letter {dead_letter_id} not found")
        if not entry.is_pending:
            raise CommandError(f"Dead letter {entry.id} is already {entry.status}")
        return entry
