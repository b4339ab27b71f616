"""
Sequential, expiring dispatch queue for emergency requests.

Handles the daisy-chain pattern for emergency offers:
1. The nearest N eligible operators are queued in distance order
2. Only the head of the queue is notified, with an expiry
3. On decline or expiry the next pending entry is promoted
4. Repeat until one operator accepts or the queue is exhausted

All state changes for a request happen while its row is locked, so two
entries can never both be ``notified``.
"""

import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from marketplace.models import DispatchQueueEntry, ServiceRequest
from marketplace.tasks import expire_dispatch_entry_task
from operators.models import OperatorProfile
from realtime.notifications import notify_operator_event, notify_requester_event
from services.exceptions import (
    OfferExpiredError,
    OfferNotActiveError,
    OfferNotFoundError,
    OperatorNotAvailableError,
    OperatorNotFoundError,
    RequestNotFoundError,
    RequestNotOpenError,
)
from .geo_matcher import eligible_operators

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueSlot:
    """Immutable view of one queue entry used by the pure transition."""
    position: int
    status: str


@dataclass
class DispatchResult:
    """Result object for dispatch operations."""
    success: bool
    request: Optional[ServiceRequest] = None
    entry: Optional[DispatchQueueEntry] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


def queue_size() -> int:
    return getattr(settings, "DISPATCH_QUEUE_SIZE", 5)


def offer_timeout() -> timedelta:
    return timedelta(minutes=getattr(settings, "DISPATCH_OFFER_TIMEOUT_MINUTES", 10))


# ===================== Pure transition =====================

def advance(slots: Sequence[QueueSlot]) -> Tuple[List[QueueSlot], Optional[int]]:
    """
    Promote the lowest-position pending slot when nothing is in flight.

    Returns:
        (new_slots, promoted_position); promoted_position is None when a slot
        is already notified or no pending slot remains.
    """
    slots = list(slots)
    if any(s.status == DispatchQueueEntry.STATUS_NOTIFIED for s in slots):
        return slots, None

    pending = [s for s in slots if s.status == DispatchQueueEntry.STATUS_PENDING]
    if not pending:
        return slots, None

    head = min(pending, key=lambda s: s.position)
    promoted = [
        replace(s, status=DispatchQueueEntry.STATUS_NOTIFIED) if s.position == head.position else s
        for s in slots
    ]
    return promoted, head.position


def is_exhausted(slots: Sequence[QueueSlot]) -> bool:
    """True when no entry is notified or still waiting its turn."""
    live = (DispatchQueueEntry.STATUS_PENDING, DispatchQueueEntry.STATUS_NOTIFIED)
    return not any(s.status in live for s in slots)


# ===================== Queue construction =====================

def build_dispatch_queue(service_request: ServiceRequest, now=None) -> List[DispatchQueueEntry]:
    """
    Build the ordered DispatchQueueEntry list for one emergency and notify the head.

    Must run inside the transaction that created the request.
    
    Returns:
        List of DispatchQueueEntry instances sorted by distance (closest first)
    """
    now = now or timezone.now()
    candidates = [
        c for c in eligible_operators(service_request)
        if c.operator_id != service_request.requester_id
    ][:queue_size()]

    entries: List[DispatchQueueEntry] = []
    for position, candidate in enumerate(candidates, start=1):
        distance = None
        if candidate.distance_km is not None:
            distance = Decimal(str(round(candidate.distance_km, 3)))
        entries.append(DispatchQueueEntry.objects.create(
            request=service_request,
            operator_id=candidate.operator_id,
            position=position,
            status=DispatchQueueEntry.STATUS_PENDING,
            distance_km=distance,
        ))

    logger.info(
        "Built dispatch queue of %d entries for emergency %s",
        len(entries), service_request.id,
    )

    _advance_queue(service_request, entries, now)
    return entries


# ===================== Advancement =====================

def _locked_entries(service_request: ServiceRequest) -> List[DispatchQueueEntry]:
    return list(
        service_request.dispatch_entries
        .select_for_update()
        .order_by("position")
    )


def _schedule_expiry(entry: DispatchQueueEntry):
    """Schedule the one-shot expiry check once the notification is committed."""
    def _apply():
        try:
            expire_dispatch_entry_task.apply_async((entry.id,), eta=entry.expires_at)
        except Exception:
            logger.exception("Could not schedule expiry for dispatch entry %s", entry.id)

    transaction.on_commit(_apply)


def _notify_entry(entry: DispatchQueueEntry, now):
    entry.status = DispatchQueueEntry.STATUS_NOTIFIED
    entry.notified_at = now
    entry.expires_at = now + offer_timeout()
    entry.save(update_fields=["status", "notified_at", "expires_at"])

    logger.info(
        "Notifying operator %s (position %s) for emergency %s",
        entry.operator_id, entry.position, entry.request_id,
    )
    notify_operator_event(
        "dispatch_offer",
        entry.request,
        entry.operator_id,
        "New emergency request near you.",
        extra={
            "position": entry.position,
            "expires_at": entry.expires_at.isoformat(),
            "distance_km": float(entry.distance_km) if entry.distance_km is not None else None,
        },
    )
    _schedule_expiry(entry)


def _advance_queue(service_request: ServiceRequest, entries: List[DispatchQueueEntry], now) -> Optional[DispatchQueueEntry]:
    """
    Apply the pure transition to the stored entries.

    Promotes the next entry, or cancels the request when the queue is exhausted.
    """
    slots = [QueueSlot(position=e.position, status=e.status) for e in entries]
    _, promoted_position = advance(slots)

    if promoted_position is not None:
        entry = next(e for e in entries if e.position == promoted_position)
        _notify_entry(entry, now)
        return entry

    if is_exhausted(slots):
        service_request.status = ServiceRequest.STATUS_CANCELLED
        service_request.negotiation_status = ServiceRequest.NEGOTIATION_CLOSED
        service_request.cancelled_at = now
        service_request.cancellation_reason = "No operators accepted the emergency request"
        service_request.save(update_fields=[
            "status", "negotiation_status", "cancelled_at", "cancellation_reason",
        ])
        logger.info("Dispatch queue exhausted for emergency %s", service_request.id)
        notify_requester_event(
            "no_operators_available",
            service_request,
            "No operators accepted your emergency request. Please try again later.",
        )
    return None


def expire_stale_entries(service_request: ServiceRequest, now=None) -> List[DispatchQueueEntry]:
    """
    Lazily expire the in-flight entry if its window has passed and advance.

    Caller must hold the request row lock.
    
    Returns:
        The entries that were expired (empty when nothing was stale)
    """
    now = now or timezone.now()
    if service_request.status != ServiceRequest.STATUS_PENDING:
        return []

    entries = _locked_entries(service_request)
    expired = []
    for entry in entries:
        if (
            entry.status == DispatchQueueEntry.STATUS_NOTIFIED
            and entry.expires_at is not None
            and entry.expires_at <= now
        ):
            entry.status = DispatchQueueEntry.STATUS_EXPIRED
            entry.responded_at = now
            entry.save(update_fields=["status", "responded_at"])
            expired.append(entry)
            notify_operator_event(
                "dispatch_expired",
                service_request,
                entry.operator_id,
                "Your emergency offer has timed out.",
            )

    if expired:
        logger.info(
            "Expired %d dispatch entr%s for emergency %s",
            len(expired), "y" if len(expired) == 1 else "ies", service_request.id,
        )
        _advance_queue(service_request, entries, now)
    return expired


def _lock_emergency(request_id: int) -> ServiceRequest:
    try:
        return ServiceRequest.objects.select_for_update().get(id=request_id, is_emergency=True)
    except ServiceRequest.DoesNotExist:
        raise RequestNotFoundError("Emergency request not found")


def _operator_entry(service_request: ServiceRequest, operator) -> DispatchQueueEntry:
    entry = service_request.dispatch_entries.filter(operator=operator).first()
    if entry is None:
        raise OfferNotFoundError()
    return entry


def _entry_has_lapsed(entry: DispatchQueueEntry, now) -> bool:
    return (
        entry.status == DispatchQueueEntry.STATUS_NOTIFIED
        and entry.expires_at is not None
        and entry.expires_at <= now
    )


def _ensure_entry_active(entry: DispatchQueueEntry):
    if entry.status == DispatchQueueEntry.STATUS_EXPIRED:
        raise OfferExpiredError()
    if entry.status != DispatchQueueEntry.STATUS_NOTIFIED:
        raise OfferNotActiveError()


# ===================== Operator Operations =====================

def accept_dispatch(operator, request_id: int, now=None) -> DispatchResult:
    """
    Accept the emergency offer currently notified to this operator.

    The first accept wins: the entry is accepted, every other live entry is
    declined, the request is assigned and an AcceptedJob is opened.
    
    Raises:
        OfferExpiredError: the offer lapsed (the lapse itself is recorded)
        OfferNotActiveError: the entry is not the one in flight
    """
    from services.job_management import create_job

    now = now or timezone.now()
    with transaction.atomic():
        service_request = _lock_emergency(request_id)
        if service_request.status != ServiceRequest.STATUS_PENDING:
            raise RequestNotOpenError()

        entry = _operator_entry(service_request, operator)
        lapsed = _entry_has_lapsed(entry, now)
        if lapsed:
            expire_stale_entries(service_request, now)
        else:
            _ensure_entry_active(entry)

            try:
                profile = OperatorProfile.objects.get(user=operator)
            except OperatorProfile.DoesNotExist:
                raise OperatorNotFoundError()
            if profile.online_tier is None:
                raise OperatorNotAvailableError()

            entry.status = DispatchQueueEntry.STATUS_ACCEPTED
            entry.responded_at = now
            entry.save(update_fields=["status", "responded_at"])

            # Resolved entries keep their terminal status
            service_request.dispatch_entries.exclude(id=entry.id).filter(
                status__in=[DispatchQueueEntry.STATUS_PENDING, DispatchQueueEntry.STATUS_NOTIFIED]
            ).update(status=DispatchQueueEntry.STATUS_DECLINED, responded_at=now)

            service_request.operator = operator
            service_request.status = ServiceRequest.STATUS_ASSIGNED
            service_request.negotiation_status = ServiceRequest.NEGOTIATION_CLOSED
            service_request.assigned_at = now
            service_request.save(update_fields=[
                "operator", "status", "negotiation_status", "assigned_at",
            ])

            job = create_job(service_request, operator, tier=profile.online_tier)

            logger.info("Operator %s accepted emergency %s", operator.id, service_request.id)
            notify_requester_event(
                "request_assigned",
                service_request,
                "An operator accepted your emergency request and is on the way.",
                extra={"operator_id": operator.id, "job_id": job.id},
            )
            return DispatchResult(
                success=True,
                request=service_request,
                entry=entry,
                message="Emergency accepted. Navigate to the request location.",
                extra={"job_id": job.id},
            )

    # Reached only when the offer lapsed; the expiry above is committed
    raise OfferExpiredError()


def decline_dispatch(operator, request_id: int, now=None) -> DispatchResult:
    """
    Decline the emergency offer currently notified to this operator and
    promote the next pending entry.
    """
    now = now or timezone.now()
    with transaction.atomic():
        service_request = _lock_emergency(request_id)
        if service_request.status != ServiceRequest.STATUS_PENDING:
            raise RequestNotOpenError()

        entry = _operator_entry(service_request, operator)
        lapsed = _entry_has_lapsed(entry, now)
        if lapsed:
            expire_stale_entries(service_request, now)
        else:
            _ensure_entry_active(entry)

            entry.status = DispatchQueueEntry.STATUS_DECLINED
            entry.responded_at = now
            entry.save(update_fields=["status", "responded_at"])

            entries = _locked_entries(service_request)
            promoted = _advance_queue(service_request, entries, now)

            logger.info(
                "Operator %s declined emergency %s (next position: %s)",
                operator.id, service_request.id, promoted.position if promoted else None,
            )
            return DispatchResult(
                success=True,
                request=service_request,
                entry=entry,
                message="Offer declined." + (" We will notify the next available operator." if promoted else ""),
                extra={
                    "queued_next_operator": promoted is not None,
                    "next_position": promoted.position if promoted else None,
                },
            )

    raise OfferExpiredError()


# ===================== Expiry entry points =====================

def expire_dispatch_entry(entry_id: int, now=None) -> bool:
    """
    Expire one entry if it is still in flight past its deadline.

    Safe to call at any time; returns False when there was nothing to do.
    """
    now = now or timezone.now()
    try:
        entry = DispatchQueueEntry.objects.get(id=entry_id)
    except DispatchQueueEntry.DoesNotExist:
        logger.warning("Dispatch entry %s not found for expiry", entry_id)
        return False

    with transaction.atomic():
        service_request = ServiceRequest.objects.select_for_update().get(id=entry.request_id)
        expired = expire_stale_entries(service_request, now)
    return any(e.id == entry_id for e in expired)


def get_dispatch_queue(request_id: int, now=None) -> List[DispatchQueueEntry]:
    """Read the queue for an emergency, applying any pending lazy expiry first."""
    now = now or timezone.now()
    with transaction.atomic():
        service_request = _lock_emergency(request_id)
        expire_stale_entries(service_request, now)
        return list(service_request.dispatch_entries.select_related("operator").order_by("position"))
