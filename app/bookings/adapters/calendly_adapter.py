"""
Calendly adapter: the scheduling orchestrator.

Wraps the Calendly v2 REST API with httpx. Like the Stripe adapter,
every call has a bounded timeout and returns either a result dataclass
or a SchedulingError value.

Configuration (via settings):
- CALENDLY_API_TOKEN: Personal access / OAuth bearer token
- CALENDLY_API_BASE_URL: API root (default: https://api.calendly.com)
- CALENDLY_API_TIMEOUT_SECONDS: Request timeout (default: 10)

Usage:
    from bookings.adapters import CalendlyAdapter, InviteeContact

    result = CalendlyAdapter.generate_scheduling_link(
        booking_id=booking.id,
        session_type_id=booking.session_type_id,
        invitee=InviteeContact(name="Ada", email="ada@example.com"),
        correlation_metadata=scheduling_tracking(booking.id),
    )
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode

import httpx
from django.conf import settings

from bookings.adapters.types import (
    ProviderErrorKind,
    SchedulingAck,
    SchedulingError,
    SchedulingLinkResult,
)

INVALID_REQUEST_STATUSES = frozenset({400, 404, 409, 422})
AUTHENTICATION_STATUSES = frozenset({401, 403})
ALREADY_CANCELED_STATUSES = frozenset({400, 403, 409})
ALREADY_CANCELED_PATTERN = re.compile(r"already\s+cancell?ed", re.IGNORECASE)


@dataclass(frozen=True)
class InviteeContact:
    name: str = ""
    email: str = ""


class CalendlyAdapter:
    """
    Adapter for Calendly API operations.

    All methods are classmethods - no instance state is maintained.

    Usage:
        result = CalendlyAdapter.generate_scheduling_link(...)
        result = CalendlyAdapter.cancel_event(event_uuid, reason="Payment expired")
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _client(cls) -> httpx.Client:
        """HTTP client with auth header and timeout applied."""
        return httpx.Client(
            base_url=settings.CALENDLY_API_BASE_URL,
            headers={
                "Authorization": f"Bearer {settings.CALENDLY_API_TOKEN}",
                "Content-Type": "application/json",
            },
            timeout=getattr(settings, "CALENDLY_API_TIMEOUT_SECONDS", 10),
        )

    @staticmethod
    def event_type_uri(session_type_id: str) -> str:
        """Session type IDs are Calendly event type UUIDs (or full URIs)."""
        if session_type_id.startswith("https://"):
            return session_type_id
        base_url = settings.CALENDLY_API_BASE_URL.rstrip("/")
        return f"{base_url}/event_types/{session_type_id}"

    # =========================================================================
    # Operations
    # =========================================================================

    @classmethod
    def generate_scheduling_link(
        cls,
        booking_id: uuid.UUID,
        session_type_id: str,
        invitee: InviteeContact,
        correlation_metadata: dict[str, str],
    ) -> SchedulingLinkResult | SchedulingError:
        """
        Create a single-use scheduling link for a booking.

        The correlation metadata (utm_* fields) is appended to the link;
        Calendly echoes it back in the invitee's tracking block on every
        invitee webhook, which is how the event finds its booking again.

        Args:
            booking_id: Booking the link is for (logging only)
            session_type_id: Calendly event type UUID or URI
            invitee: Prefill values for the booking form
            correlation_metadata: utm_source / utm_campaign / utm_content

        Returns:
            SchedulingLinkResult or SchedulingError
        """
        logger = cls.get_logger()
        log_context = {
            "operation": "generate_scheduling_link",
            "booking_id": str(booking_id),
            "session_type_id": session_type_id,
        }
        start_time = time.time()
        logger.info("Starting Calendly operation", extra=log_context)

        body = {
            "max_event_count": 1,
            "owner": cls.event_type_uri(session_type_id),
            "owner_type": "EventType",
        }
        response = cls._request("POST", "/scheduling_links", body, log_context, start_time)
        if isinstance(response, SchedulingError):
            return response

        booking_url = response.get("resource", {}).get("booking_url")
        if not booking_url:
            return cls._error(
                ProviderErrorKind.UNKNOWN,
                "Calendly response did not include a booking_url",
                log_context,
            )

        query: dict[str, str] = {}
        if invitee.name:
            query["name"] = invitee.name
        if invitee.email:
            query["email"] = invitee.email
        query.update(correlation_metadata)

        separator = "&" if "?" in booking_url else "?"
        scheduling_url = f"{booking_url}{separator}{urlencode(query)}"

        logger.info(
            "Calendly operation completed",
            extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
        )
        return SchedulingLinkResult(scheduling_url=scheduling_url, raw_response=response)

    @classmethod
    def cancel_event(
        cls,
        external_event_id: str,
        reason: str,
    ) -> SchedulingAck | SchedulingError:
        """
        Cancel a scheduled event, releasing the builder's calendar hold.

        An event that is already canceled is acknowledged.

        Args:
            external_event_id: Calendly scheduled event UUID
            reason: Shown to invitee and host in the cancellation email
        """
        logger = cls.get_logger()
        log_context = {
            "operation": "cancel_event",
            "external_event_id": external_event_id,
        }
        start_time = time.time()
        logger.info("Starting Calendly operation", extra=log_context)

        response = cls._request(
            "POST",
            f"/scheduled_events/{external_event_id}/cancellation",
            {"reason": reason},
            log_context,
            start_time,
            settled=_already_canceled,
        )
        if isinstance(response, SchedulingError):
            return response

        logger.info(
            "Calendly operation completed",
            extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
        )
        return SchedulingAck(external_event_id=external_event_id, raw_response=response)

    # =========================================================================
    # HTTP & Error Handling
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        body: dict[str, Any],
        log_context: dict[str, Any],
        start_time: float,
        settled: Callable[[httpx.Response], bool] | None = None,
    ) -> dict[str, Any] | SchedulingError:
        try:
            with cls._client() as client:
                response = client.request(method, path, json=body)
        except httpx.TimeoutException:
            return cls._error(
                ProviderErrorKind.UNKNOWN,
                "Calendly request timed out",
                log_context,
                start_time,
                provider_code="timeout",
            )
        except httpx.HTTPError as e:
            return cls._error(
                ProviderErrorKind.UNKNOWN,
                f"Could not connect to Calendly: {e}",
                log_context,
                start_time,
                provider_code="connection_error",
            )

        if response.is_success:
            return response.json() if response.content else {}
        if settled is not None and settled(response):
            cls.get_logger().info(
                "Calendly reports the operation already done",
                extra={**log_context, "status_code": response.status_code},
            )
            return {}

        return cls._error(
            cls._classify_status(response.status_code),
            _error_message(response),
            log_context,
            start_time,
            provider_code=str(response.status_code),
            details={"status_code": response.status_code},
        )

    @staticmethod
    def _classify_status(status_code: int) -> str:
        if status_code in AUTHENTICATION_STATUSES:
            return ProviderErrorKind.AUTHENTICATION
        if status_code == 429:
            return ProviderErrorKind.RATE_LIMIT
        if status_code in INVALID_REQUEST_STATUSES:
            return ProviderErrorKind.INVALID_REQUEST
        return ProviderErrorKind.UNKNOWN

    @classmethod
    def _error(
        cls,
        kind: str,
        message: str,
        log_context: dict[str, Any],
        start_time: float | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> SchedulingError:
        logger = cls.get_logger()
        context = {**log_context, "kind": kind, "provider_code": provider_code}
        if start_time is not None:
            context["duration_ms"] = (time.time() - start_time) * 1000

        if kind == ProviderErrorKind.AUTHENTICATION:
            logger.critical("Calendly authentication failed - check API token", extra=context)
        elif kind in (ProviderErrorKind.RATE_LIMIT, ProviderErrorKind.UNKNOWN):
            logger.warning(f"Calendly call failed: {message}", extra=context)
        else:
            logger.error(f"Calendly rejected request: {message}", extra=context)

        return SchedulingError(
            kind=kind,
            message=message,
            provider_code=provider_code,
            details=details or {},
        )


def _already_canceled(response: httpx.Response) -> bool:
    return response.status_code in ALREADY_CANCELED_STATUSES and bool(
        ALREADY_CANCELED_PATTERN.search(_error_message(response))
    )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"Calendly returned HTTP {response.status_code}"
    return data.get("message") or data.get("title") or f"HTTP {response.status_code}"
