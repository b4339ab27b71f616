"""
Sweep for lapsed dispatch offers and quote windows.

Expiry is normally discovered lazily when a request is touched; this sweep
closes whatever nobody touched, so queues keep advancing and negotiations
close on time.
"""

import logging
from typing import Tuple

from django.db import transaction
from django.utils import timezone

from marketplace.models import DispatchQueueEntry, ServiceRequest

logger = logging.getLogger(__name__)


def process_expirations(now=None) -> Tuple[int, int]:
    """
    Expire stale dispatch entries (advancing their queues) and lapsed quote windows.

    Returns a tuple of (dispatch_entries_expired, quote_windows_expired).
    """
    from services.matching import expire_stale_entries
    from services.negotiation import expire_quote_window

    now = now or timezone.now()

    stale_request_ids = (
        DispatchQueueEntry.objects.filter(
            status=DispatchQueueEntry.STATUS_NOTIFIED,
            expires_at__lte=now,
            request__status=ServiceRequest.STATUS_PENDING,
        )
        .values_list("request_id", flat=True)
        .distinct()
    )

    entries_expired = 0
    for request_id in list(stale_request_ids):
        with transaction.atomic():
            service_request = ServiceRequest.objects.select_for_update().get(id=request_id)
            entries_expired += len(expire_stale_entries(service_request, now))

    lapsed_ids = ServiceRequest.objects.filter(
        is_emergency=False,
        status=ServiceRequest.STATUS_PENDING,
        negotiation_status=ServiceRequest.NEGOTIATION_OPEN,
        quote_window_expires_at__lte=now,
    ).values_list("id", flat=True)

    windows_expired = 0
    for request_id in list(lapsed_ids):
        with transaction.atomic():
            service_request = ServiceRequest.objects.select_for_update().get(id=request_id)
            if service_request.negotiation_status == ServiceRequest.NEGOTIATION_OPEN:
                expire_quote_window(service_request, now)
                windows_expired += 1

    if entries_expired or windows_expired:
        logger.info(
            "Expiry sweep closed %s dispatch entries and %s quote windows",
            entries_expired, windows_expired,
        )

    return entries_expired, windows_expired
