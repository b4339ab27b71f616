"""
Geospatial eligibility filtering.

An operator is eligible for a request when they are online, offer the
service, their online tier may take it (with any certification or licence
it needs), and the request lies inside that tier's radius measured from
the operator's home base.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from django.conf import settings

from common.utils import calculate_distance
from operators.models import OperatorProfile
from operators.tiers import service_requirements, tier_allows_service

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """An eligible operator together with the facts used to rank them."""
    profile: OperatorProfile
    tier: str
    distance_km: Optional[float]

    @property
    def operator_id(self):
        return self.profile.user_id

    @property
    def rating(self):
        return self.profile.rating


def online_operators():
    """Queryset of operators currently online on some tier."""
    return (
        OperatorProfile.objects.select_related("user")
        .prefetch_related("tier_subscriptions")
        .filter(online_tier__isnull=False)
    )


def include_requests_without_coordinates() -> bool:
    return getattr(settings, "INCLUDE_REQUESTS_WITHOUT_COORDINATES", True)


def distance_to_home(profile: OperatorProfile, service_request) -> Optional[float]:
    """Distance in km from the operator's home to the request, if both are known."""
    if not service_request.has_coordinates or not profile.has_home_location:
        return None
    return calculate_distance(
        service_request.latitude,
        service_request.longitude,
        profile.home_latitude,
        profile.home_longitude,
    )


def check_eligibility(profile: OperatorProfile, service_request) -> Tuple[bool, Optional[float], str]:
    """
    Evaluate one operator against one request.

    Returns:
        (eligible, distance_km, reason) where reason names the first failed rule
    """
    tier = profile.online_tier
    if tier is None:
        return False, None, "offline"

    service_type = service_request.service_type
    if not profile.offers_service(service_type):
        return False, None, "service_not_offered"
    if not tier_allows_service(tier, service_type):
        return False, None, "tier_not_allowed"

    requirements = service_requirements(service_type)
    if requirements is not None:
        if requirements.requires_certification and not profile.is_certified:
            return False, None, "certification_required"
        if requirements.requires_business_license and not profile.business_license:
            return False, None, "business_license_required"

    dist = distance_to_home(profile, service_request)
    radius = profile.radius_for(tier)
    if radius is None:
        return True, dist, "unrestricted"

    if not service_request.has_coordinates:
        if include_requests_without_coordinates():
            return True, None, "request_without_coordinates"
        return False, None, "request_without_coordinates"

    if dist is None:
        # Restricted tier and no home base to measure from
        return False, None, "no_home_location"

    if dist <= float(radius):
        return True, dist, "within_radius"
    return False, dist, "outside_radius"


def eligible_operators(service_request, operators: Optional[Iterable[OperatorProfile]] = None) -> List[Candidate]:
    """
    Filter operators down to those eligible for a request.
    
    Args:
        service_request: ServiceRequest instance
        operators: Candidate profiles; defaults to every online operator
    
    Returns:
        List of Candidate sorted nearest first (unknown distances last)
    """
    if operators is None:
        operators = online_operators()

    candidates: List[Candidate] = []
    for profile in operators:
        eligible, dist, reason = check_eligibility(profile, service_request)
        if eligible:
            candidates.append(Candidate(profile=profile, tier=profile.online_tier, distance_km=dist))
        else:
            logger.debug(
                "Operator %s not eligible for request %s: %s",
                profile.user_id, service_request.id, reason,
            )

    candidates.sort(key=lambda c: (c.distance_km is None, c.distance_km or 0.0))
    return candidates


def open_requests_for_operator(profile: OperatorProfile, now=None) -> List[Tuple[object, Optional[float]]]:
    """
    Quotable requests an operator is eligible for on their online tier.

    Returns:
        List of (ServiceRequest, distance_km) sorted nearest first
    """
    from django.utils import timezone
    from marketplace.models import ServiceRequest

    if profile.online_tier is None:
        return []

    now = now or timezone.now()
    open_requests = (
        ServiceRequest.objects.filter(
            status=ServiceRequest.STATUS_PENDING,
            negotiation_status=ServiceRequest.NEGOTIATION_OPEN,
            is_emergency=False,
            quote_window_expires_at__gt=now,
        )
        .exclude(requester_id=profile.user_id)
        .exclude(quotes__operator_id=profile.user_id)
    )

    matches = []
    for service_request in open_requests:
        eligible, dist, _ = check_eligibility(profile, service_request)
        if eligible:
            matches.append((service_request, dist))
    matches.sort(key=lambda m: (m[1] is None, m[1] or 0.0))
    return matches
