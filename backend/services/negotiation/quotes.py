"""
Timed quote negotiation for non-emergency requests.

Operators submit priced quotes while the request's quote window is open.
The requester accepts one quote (every sibling is declined in the same
transaction) or lets the window lapse. A lapsed window expires the
negotiation only; the request itself stays pending.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from marketplace.models import Quote, ServiceRequest
from operators.models import OperatorProfile
from operators.tiers import tier_allows_service
from realtime.notifications import notify_operator_event, notify_requester_event
from services.exceptions import (
    DuplicateQuoteError,
    NotOwnerError,
    OperatorNotAvailableError,
    OperatorNotFoundError,
    QuoteExpiredError,
    QuoteNotFoundError,
    QuoteNotPendingError,
    QuoteWindowClosedError,
    RequestNotFoundError,
    RequestNotOpenError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class QuoteResult:
    """Result object for quote operations."""
    success: bool
    quote: Optional[Quote] = None
    request: Optional[ServiceRequest] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


def quote_window() -> timedelta:
    return timedelta(hours=getattr(settings, "QUOTE_WINDOW_HOURS", 12))


def window_has_lapsed(service_request: ServiceRequest, now) -> bool:
    expires_at = service_request.quote_window_expires_at
    return expires_at is not None and expires_at <= now


def _lock_request(request_id: int) -> ServiceRequest:
    try:
        return ServiceRequest.objects.select_for_update().get(id=request_id)
    except ServiceRequest.DoesNotExist:
        raise RequestNotFoundError()


def _clean_price(price) -> Decimal:
    try:
        price = Decimal(str(price)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ValidationError("Price must be a number")
    if price <= 0:
        raise ValidationError("Price must be greater than zero")
    return price


def _clean_eta(eta_minutes) -> int:
    try:
        eta_minutes = int(eta_minutes)
    except (TypeError, ValueError):
        raise ValidationError("ETA must be a whole number of minutes")
    if eta_minutes <= 0:
        raise ValidationError("ETA must be greater than zero")
    return eta_minutes


# ===================== Window expiry =====================

def expire_quote_window(service_request: ServiceRequest, now=None) -> int:
    """
    Close a lapsed negotiation. Caller must hold the request row lock.

    Pending quotes become expired and the negotiation is marked expired.
    The request keeps its status, so the requester may still cancel it.

    Returns:
        Number of quotes expired
    """
    now = now or timezone.now()
    if service_request.negotiation_status != ServiceRequest.NEGOTIATION_OPEN:
        return 0

    expired = service_request.quotes.filter(status=Quote.STATUS_PENDING).update(
        status=Quote.STATUS_EXPIRED, responded_at=now
    )
    service_request.negotiation_status = ServiceRequest.NEGOTIATION_EXPIRED
    service_request.save(update_fields=["negotiation_status"])

    logger.info(
        "Quote window expired for request %s (%d pending quotes expired)",
        service_request.id, expired,
    )
    return expired


# ===================== Operator Operations =====================

def submit_quote(operator, request_id: int, price, eta_minutes, message: str = "", now=None) -> QuoteResult:
    """
    Submit a pending quote on an open, non-emergency request.

    The quote is recorded against the operator's current online tier and
    expires with the request's quote window.

    Raises:
        QuoteWindowClosedError: the window has lapsed (the lapse is recorded)
        DuplicateQuoteError: this operator already quoted on the request
    """
    price = _clean_price(price)
    eta_minutes = _clean_eta(eta_minutes)
    now = now or timezone.now()

    with transaction.atomic():
        service_request = _lock_request(request_id)
        if service_request.is_emergency:
            raise RequestNotOpenError("Emergency requests are dispatched, not quoted")
        if service_request.requester_id == operator.id:
            raise ValidationError("You cannot quote on your own request")
        if service_request.negotiation_status == ServiceRequest.NEGOTIATION_EXPIRED:
            raise QuoteWindowClosedError()
        if not service_request.is_open or service_request.negotiation_status != ServiceRequest.NEGOTIATION_OPEN:
            raise RequestNotOpenError()

        lapsed = window_has_lapsed(service_request, now)
        if lapsed:
            expire_quote_window(service_request, now)
        else:
            try:
                profile = OperatorProfile.objects.get(user=operator)
            except OperatorProfile.DoesNotExist:
                raise OperatorNotFoundError()
            if profile.online_tier is None:
                raise OperatorNotAvailableError()
            if not tier_allows_service(profile.online_tier, service_request.service_type):
                raise ValidationError(
                    f"Your {profile.online_tier} tier cannot take {service_request.service_type} jobs",
                    code="tier_not_allowed",
                )
            if service_request.quotes.filter(operator=operator).exists():
                raise DuplicateQuoteError()

            try:
                with transaction.atomic():
                    quote = Quote.objects.create(
                        request=service_request,
                        operator=operator,
                        tier=profile.online_tier,
                        price=price,
                        eta_minutes=eta_minutes,
                        message=message or "",
                        expires_at=service_request.quote_window_expires_at or now + quote_window(),
                    )
            except IntegrityError:
                raise DuplicateQuoteError()

            ServiceRequest.objects.filter(id=service_request.id).update(quote_count=F("quote_count") + 1)
            service_request.refresh_from_db(fields=["quote_count"])

            logger.info(
                "Operator %s quoted %s on request %s (%s tier)",
                operator.id, price, service_request.id, quote.tier,
            )
            notify_requester_event(
                "quote_received",
                service_request,
                "You received a new quote.",
                extra={
                    "quote_id": quote.id,
                    "price": str(quote.price),
                    "eta_minutes": quote.eta_minutes,
                    "tier": quote.tier,
                    "quote_count": service_request.quote_count,
                },
            )
            return QuoteResult(success=True, quote=quote, request=service_request, message="Quote submitted")

    raise QuoteWindowClosedError()


# ===================== Requester Operations =====================

def _owned_request(requester, request_id: int) -> ServiceRequest:
    service_request = _lock_request(request_id)
    if service_request.requester_id != requester.id:
        raise NotOwnerError("Only the requester can respond to quotes")
    return service_request


def _lock_quote(service_request: ServiceRequest, quote_id: int) -> Quote:
    try:
        return service_request.quotes.select_for_update().get(id=quote_id)
    except Quote.DoesNotExist:
        raise QuoteNotFoundError()


def _ensure_quote_pending(quote: Quote):
    if quote.status == Quote.STATUS_EXPIRED:
        raise QuoteExpiredError()
    if quote.status != Quote.STATUS_PENDING:
        raise QuoteNotPendingError()


def accept_quote(requester, request_id: int, quote_id: int, now=None) -> QuoteResult:
    """
    Accept one pending quote, decline its siblings and open the job.

    Raises:
        QuoteExpiredError: the quote or its window lapsed (the lapse is recorded)
        QuoteNotPendingError: the quote was already resolved
    """
    from services.job_management import create_job

    now = now or timezone.now()
    with transaction.atomic():
        service_request = _owned_request(requester, request_id)
        quote = _lock_quote(service_request, quote_id)

        lapsed = False
        if quote.status == Quote.STATUS_PENDING and window_has_lapsed(service_request, now):
            expire_quote_window(service_request, now)
            lapsed = True
        elif quote.status == Quote.STATUS_PENDING and quote.expires_at <= now:
            quote.status = Quote.STATUS_EXPIRED
            quote.responded_at = now
            quote.save(update_fields=["status", "responded_at"])
            lapsed = True

        if not lapsed:
            _ensure_quote_pending(quote)
            if not service_request.is_open:
                raise RequestNotOpenError()

            quote.status = Quote.STATUS_ACCEPTED
            quote.responded_at = now
            quote.save(update_fields=["status", "responded_at"])

            siblings = list(
                service_request.quotes.exclude(id=quote.id)
                .filter(status=Quote.STATUS_PENDING)
                .values_list("operator_id", flat=True)
            )
            service_request.quotes.exclude(id=quote.id).filter(
                status=Quote.STATUS_PENDING
            ).update(status=Quote.STATUS_DECLINED, responded_at=now)

            service_request.operator_id = quote.operator_id
            service_request.status = ServiceRequest.STATUS_ASSIGNED
            service_request.negotiation_status = ServiceRequest.NEGOTIATION_ACCEPTED
            service_request.assigned_at = now
            service_request.save(update_fields=[
                "operator", "status", "negotiation_status", "assigned_at",
            ])

            job = create_job(
                service_request,
                quote.operator,
                tier=quote.tier,
                quote=quote,
                estimated_value=quote.price,
            )

            logger.info(
                "Requester %s accepted quote %s on request %s (%d siblings declined)",
                requester.id, quote.id, service_request.id, len(siblings),
            )
            notify_operator_event(
                "quote_accepted", service_request, quote.operator_id,
                "Your quote was accepted.", extra={"quote_id": quote.id, "job_id": job.id},
            )
            for operator_id in siblings:
                notify_operator_event(
                    "quote_declined", service_request, operator_id,
                    "The requester chose another quote.",
                )
            return QuoteResult(
                success=True,
                quote=quote,
                request=service_request,
                message="Quote accepted",
                extra={"job_id": job.id, "declined_quotes": len(siblings)},
            )

    raise QuoteExpiredError()


def decline_quote(requester, request_id: int, quote_id: int, now=None) -> QuoteResult:
    """Decline a single pending quote; the negotiation stays open."""
    now = now or timezone.now()
    with transaction.atomic():
        service_request = _owned_request(requester, request_id)
        quote = _lock_quote(service_request, quote_id)

        if quote.status == Quote.STATUS_PENDING and window_has_lapsed(service_request, now):
            expire_quote_window(service_request, now)
        else:
            _ensure_quote_pending(quote)

            quote.status = Quote.STATUS_DECLINED
            quote.responded_at = now
            quote.save(update_fields=["status", "responded_at"])

            logger.info("Requester %s declined quote %s", requester.id, quote.id)
            notify_operator_event(
                "quote_declined", service_request, quote.operator_id, "Your quote was declined.",
                extra={"quote_id": quote.id},
            )
            return QuoteResult(success=True, quote=quote, request=service_request, message="Quote declined")

    raise QuoteExpiredError()


def list_quotes(requester, request_id: int, now=None):
    """Quotes on a request, after lazily closing a lapsed window."""
    now = now or timezone.now()
    with transaction.atomic():
        service_request = _owned_request(requester, request_id)
        if window_has_lapsed(service_request, now):
            expire_quote_window(service_request, now)
        return service_request, list(service_request.quotes.select_related("operator"))
