"""
Bookings app: the booking lifecycle reconciliation engine.

This app handles:
- Booking intents and single-use Calendly scheduling links
- Verified, deduplicated Stripe and Calendly webhooks
- The booking state machine and provider commands it issues
- Dead-letter handling, replay and payment backfill

Usage:
    from bookings.services import ReconciliationCoordinator

    result = ReconciliationCoordinator.handle_delivery(body, headers, Provider.PAYMENT)
"""
