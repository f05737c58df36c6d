"""
Booking admin configuration.

Read-mostly views for support and operators. Booking status is never
edited here: state changes go through webhook reconciliation, replay or
dead-letter resolution.
"""

from django.contrib import admin

from bookings.models import Booking, BookingTransition, DeadLetterEvent, WebhookDelivery


class BookingTransitionInline(admin.TabularInline):
    model = BookingTransition
    extra = 0
    can_delete = False
    fields = ["version", "from_status", "to_status", "event_type", "delivery_id", "created_at"]
    readonly_fields = fields
    ordering = ["version"]

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "client_id",
        "builder_id",
        "status",
        "payment_status",
        "amount_cents",
        "currency",
        "start_time",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "currency"]
    search_fields = [
        "id",
        "client_id",
        "builder_id",
        "client_email",
        "scheduling_event_id",
        "payment_session_id",
        "payment_charge_id",
    ]
    readonly_fields = [
        "id",
        "status",
        "version",
        "scheduling_event_id",
        "scheduling_invitee_id",
        "payment_session_id",
        "payment_charge_id",
        "payment_amount_cents",
        "payment_currency",
        "payment_status",
        "refund_issued",
        "failure_reason",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    inlines = [BookingTransitionInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "status", "version", "client_id", "builder_id", "session_type_id"),
            },
        ),
        (
            "Client",
            {
                "fields": ("client_name", "client_email"),
            },
        ),
        (
            "Scheduling",
            {
                "fields": (
                    "scheduling_url",
                    "scheduling_event_id",
                    "scheduling_invitee_id",
                    "start_time",
                    "end_time",
                ),
            },
        ),
        (
            "Payment",
            {
                "fields": (
                    "amount_cents",
                    "currency",
                    "payment_session_id",
                    "payment_charge_id",
                    "payment_amount_cents",
                    "payment_currency",
                    "payment_status",
                    "checkout_url",
                ),
            },
        ),
        (
            "Cancellation / Failure",
            {
                "fields": (
                    "cancellation_reason",
                    "cancellation_initiated_by",
                    "refund_issued",
                    "failure_reason",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(WebhookDelivery)
class WebhookDeliveryAdmin(admin.ModelAdmin):
    """
    Admin configuration for the idempotency ledger.

    Rows are append-only; use the replay_delivery command to re-drive one.
    """

    list_display = [
        "delivery_id",
        "provider",
        "provider_event_type",
        "event_type",
        "outcome",
        "attempts",
        "received_at",
        "processed_at",
    ]
    list_filter = ["provider", "outcome", "event_type"]
    search_fields = ["delivery_id", "provider_event_type", "booking__id"]
    readonly_fields = [
        "delivery_id",
        "provider",
        "event_type",
        "provider_event_type",
        "payload",
        "booking",
        "outcome",
        "received_at",
        "claimed_at",
        "processed_at",
        "attempts",
        "error_message",
        "created_at",
        "updated_at",
    ]
    ordering = ["-received_at"]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DeadLetterEvent)
class DeadLetterEventAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "provider",
        "provider_event_type",
        "reason",
        "status",
        "resolved_booking",
        "created_at",
    ]
    list_filter = ["status", "reason", "provider"]
    search_fields = ["id", "delivery__delivery_id", "provider_event_type"]
    readonly_fields = [
        "id",
        "delivery",
        "provider",
        "event_type",
        "provider_event_type",
        "reason",
        "payload",
        "error_message",
        "resolved_booking",
        "resolved_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request):
        return False
