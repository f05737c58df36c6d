from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from bookings.models import Booking
from bookings.serializers import BookingIntentSerializer, BookingSerializer
from bookings.services import BookingIntentParams, BookingIntentService


class BookingViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Booking intents for the requesting client.

    Status is only ever written by webhook reconciliation; this API
    creates bookings and lets the client poll them.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = BookingSerializer

    def get_queryset(self):
        return Booking.objects.filter(client_id=str(self.request.user.pk))

    @extend_schema(
        summary="Create a booking intent",
        description=(
            "Creates a PENDING_SCHEDULING booking and returns it with a "
            "single-use scheduling link."
        ),
        tags=["Bookings"],
        request=BookingIntentSerializer,
        responses={
            201: BookingSerializer,
            400: OpenApiResponse(description="Invalid input"),
            502: OpenApiResponse(description="Scheduling provider refused the request"),
        },
    )
    def create(self, request, *args, **kwargs):
        serializer = BookingIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = BookingIntentService.create(
            BookingIntentParams(client_id=str(request.user.pk), **serializer.validated_data)
        )
        if not result.success:
            return Response(result.to_response(), status=status.HTTP_502_BAD_GATEWAY)
        return Response(BookingSerializer(result.data).data, status=status.HTTP_201_CREATED)

    @extend_schema(summary="Get booking status", tags=["Bookings"])
    def retrieve(self, request, *args, **kwargs):
        return super().retrieve(request, *args, **kwargs)
