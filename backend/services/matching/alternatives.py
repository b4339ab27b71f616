"""
Re-rank candidates for a request after one or more operators declined.

Ordering: highest rating first, nearest first among equal ratings.
"""

from typing import Iterable, List, Optional

from marketplace.models import DispatchQueueEntry, Quote, ServiceRequest
from .geo_matcher import Candidate, eligible_operators


def declined_operator_ids(service_request: ServiceRequest) -> set:
    """Operators who declined or let lapse an offer or quote on this request."""
    quote_ids = service_request.quotes.filter(
        status=Quote.STATUS_DECLINED
    ).values_list("operator_id", flat=True)
    dispatch_ids = service_request.dispatch_entries.filter(
        status__in=[DispatchQueueEntry.STATUS_DECLINED, DispatchQueueEntry.STATUS_EXPIRED]
    ).values_list("operator_id", flat=True)
    return set(quote_ids) | set(dispatch_ids)


def find_alternative_operators(
    service_request: ServiceRequest,
    declined_ids: Optional[Iterable[int]] = None,
    limit: Optional[int] = None,
) -> List[Candidate]:
    """
    Recompute eligible operators for a request, excluding a block-list.
    
    Args:
        service_request: ServiceRequest instance
        declined_ids: Operator user ids to exclude; defaults to everyone who
            already declined this request
        limit: Optional cap on the number of candidates returned
    
    Returns:
        Candidates ordered by rating (desc) then distance (asc)
    """
    if declined_ids is None:
        declined_ids = declined_operator_ids(service_request)
    blocked = set(declined_ids)
    blocked.add(service_request.requester_id)

    candidates = [
        c for c in eligible_operators(service_request)
        if c.operator_id not in blocked
    ]
    candidates.sort(key=lambda c: (
        -c.rating,
        c.distance_km is None,
        c.distance_km or 0.0,
    ))
    if limit is not None:
        candidates = candidates[:limit]
    return candidates
