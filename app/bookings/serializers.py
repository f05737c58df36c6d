from rest_framework import serializers

from bookings.models import Booking


class BookingIntentSerializer(serializers.Serializer):
    """Input for creating a booking intent."""

    builder_id = serializers.CharField(max_length=255)
    session_type_id = serializers.CharField(max_length=255)
    amount_cents = serializers.IntegerField(min_value=1)
    currency = serializers.CharField(max_length=3, default="usd")
    invitee_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    invitee_email = serializers.EmailField(required=False, allow_blank=True, default="")

    def validate_currency(self, value):
        if not value.isalpha() or len(value) != 3:
            raise serializers.ValidationError("Must be a 3-letter ISO 4217 code.")
        return value.lower()


class BookingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Booking
        fields = [
            "id",
            "status",
            "version",
            "builder_id",
            "session_type_id",
            "amount_cents",
            "currency",
            "scheduling_url",
            "start_time",
            "end_time",
            "payment_status",
            "checkout_url",
            "cancellation_reason",
            "cancellation_initiated_by",
            "refund_issued",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
