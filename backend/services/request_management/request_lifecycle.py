"""
Service request creation and cancellation.

Normal requests open a quote window; emergency requests skip negotiation
and go straight into the sequential dispatch queue.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from marketplace.models import DispatchQueueEntry, Quote, ServiceRequest
from realtime.notifications import notify_operator_event
from services.exceptions import (
    NotOwnerError,
    RequestNotFoundError,
    RequestNotOpenError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class RequestResult:
    """Result object for request operations."""
    success: bool
    request: Optional[ServiceRequest] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None

    def as_dict(self) -> Dict[str, Any]:
        expires_at = self.request.quote_window_expires_at
        return {
            "request_id": self.request.id,
            "status": self.request.status,
            "quote_window_expires_at": expires_at.isoformat() if expires_at else None,
            "message": self.message,
            **(self.extra or {}),
        }


def _clean_coordinates(latitude, longitude):
    if latitude is None and longitude is None:
        return None, None
    if latitude is None or longitude is None:
        raise ValidationError("Latitude and longitude must be given together")
    try:
        latitude = Decimal(str(latitude))
        longitude = Decimal(str(longitude))
    except InvalidOperation:
        raise ValidationError("Coordinates must be numbers")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ValidationError("Coordinates out of range")
    return round(latitude, 7), round(longitude, 7)


@transaction.atomic
def create_service_request(
    requester,
    service_type: str,
    latitude=None,
    longitude=None,
    is_emergency: bool = False,
    description: str = "",
    address: str = "",
    budget_range: str = "",
    now=None,
) -> RequestResult:
    """
    Create a request and start resolving it.
    
    Args:
        requester: User posting the request
        service_type: Service catalog id (unknown ids are allowed)
        latitude / longitude: Request location; required for emergencies
        is_emergency: Dispatch sequentially instead of collecting quotes
        description, address, budget_range: Free text shown to operators
    
    Returns:
        RequestResult; the quote window expiry is None for emergencies
    """
    from services.matching import build_dispatch_queue
    from services.negotiation import quote_window

    if not service_type or not service_type.strip():
        raise ValidationError("Service type is required")
    latitude, longitude = _clean_coordinates(latitude, longitude)
    if is_emergency and latitude is None:
        raise ValidationError("Emergency requests need a location")

    now = now or timezone.now()
    service_request = ServiceRequest.objects.create(
        requester=requester,
        service_type=service_type.strip(),
        latitude=latitude,
        longitude=longitude,
        is_emergency=is_emergency,
        description=description or "",
        address=address or "",
        budget_range=budget_range or "",
        quote_window_expires_at=None if is_emergency else now + quote_window(),
    )

    if not is_emergency:
        logger.info(
            "Request %s (%s) open for quotes until %s",
            service_request.id, service_request.service_type, service_request.quote_window_expires_at,
        )
        return RequestResult(
            success=True, request=service_request, message="Request posted. Operators can now send quotes.",
        )

    entries = build_dispatch_queue(service_request, now)
    if entries:
        message = "Notifying nearby operators..."
    else:
        message = "No available operators found nearby."
    return RequestResult(
        success=True,
        request=service_request,
        message=message,
        extra={"operator_candidates": len(entries)},
    )


def get_request(user, request_id: int) -> ServiceRequest:
    try:
        service_request = ServiceRequest.objects.select_related("operator").get(id=request_id)
    except ServiceRequest.DoesNotExist:
        raise RequestNotFoundError()
    if user.id not in (service_request.requester_id, service_request.operator_id):
        raise NotOwnerError("You cannot view this request")
    return service_request


def cancel_request(requester, request_id: int, reason: str = "", now=None) -> RequestResult:
    """
    Cancel a request on behalf of its requester.

    Open requests close their quotes and dispatch entries; assigned
    requests cancel their job as a requester cancellation.
    """
    from services.job_management import cancel_job

    now = now or timezone.now()
    with transaction.atomic():
        try:
            service_request = ServiceRequest.objects.select_for_update().get(id=request_id)
        except ServiceRequest.DoesNotExist:
            raise RequestNotFoundError()
        if service_request.requester_id != requester.id:
            raise NotOwnerError("Only the requester can cancel this request")
        if service_request.status in ServiceRequest.TERMINAL_STATUSES:
            raise RequestNotOpenError(f"Request is already {service_request.status}")

        if service_request.status == ServiceRequest.STATUS_ASSIGNED:
            result = cancel_job(requester, service_request.job.id, reason, now)
            service_request.refresh_from_db()
            return RequestResult(
                success=True, request=service_request, message="Request cancelled",
                extra={"job_id": result.job.id},
            )

        quoted = list(
            service_request.quotes.filter(status=Quote.STATUS_PENDING).values_list("operator_id", flat=True)
        )
        service_request.quotes.filter(status=Quote.STATUS_PENDING).update(
            status=Quote.STATUS_DECLINED, responded_at=now
        )
        notified = list(
            service_request.dispatch_entries.filter(
                status=DispatchQueueEntry.STATUS_NOTIFIED
            ).values_list("operator_id", flat=True)
        )
        service_request.dispatch_entries.filter(
            status__in=[DispatchQueueEntry.STATUS_PENDING, DispatchQueueEntry.STATUS_NOTIFIED]
        ).update(status=DispatchQueueEntry.STATUS_EXPIRED, responded_at=now)

        service_request.status = ServiceRequest.STATUS_CANCELLED
        if service_request.negotiation_status == ServiceRequest.NEGOTIATION_OPEN:
            service_request.negotiation_status = ServiceRequest.NEGOTIATION_CLOSED
        service_request.cancelled_at = now
        service_request.cancellation_reason = reason or ""
        service_request.save(update_fields=[
            "status", "negotiation_status", "cancelled_at", "cancellation_reason",
        ])

        for operator_id in quoted + notified:
            notify_operator_event(
                "request_cancelled", service_request, operator_id,
                "The requester cancelled this request.",
            )

    logger.info("Requester %s cancelled request %s", requester.id, service_request.id)
    return RequestResult(success=True, request=service_request, message="Request cancelled")
