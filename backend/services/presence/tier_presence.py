"""
Tier presence management.

An operator is either offline or online on exactly one of their subscribed
tiers. The online tier is a single field on the operator profile and every
change to it happens under a row lock, so two tiers can never read as
online at the same time.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from jobs.models import AcceptedJob
from operators.models import OperatorProfile, OperatorTierSubscription
from operators.tiers import OperatorTier, get_tier_rules
from services.exceptions import (
    ActiveJobsError,
    AlreadySubscribedError,
    OperatorNotFoundError,
    TierNotSubscribedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class PresenceResult:
    """Outcome of a presence change, or the confirmation it still needs."""
    success: bool
    profile: Optional[OperatorProfile] = None
    requires_confirmation: bool = False
    current_tier: Optional[str] = None
    new_tier: Optional[str] = None
    message: str = ""

    def as_dict(self) -> Dict[str, Any]:
        if self.requires_confirmation:
            return {
                "requires_confirmation": True,
                "current_tier": self.current_tier,
                "new_tier": self.new_tier,
                "message": self.message,
            }
        return {
            "is_online": self.profile.is_online,
            "active_tier": self.profile.online_tier,
            "view_tier": self.profile.view_tier,
            "message": self.message,
        }


def _validate_tier(tier: str) -> str:
    if tier not in OperatorTier.values:
        raise ValidationError(f"Unknown tier: {tier}", code="unknown_tier")
    return tier


def _lock_profile(operator) -> OperatorProfile:
    try:
        return (
            OperatorProfile.objects.select_for_update()
            .get(user=operator)
        )
    except OperatorProfile.DoesNotExist:
        raise OperatorNotFoundError()


def _has_job_in_progress(operator, tier: Optional[str] = None) -> bool:
    jobs = AcceptedJob.objects.filter(operator=operator, status=AcceptedJob.STATUS_IN_PROGRESS)
    if tier is not None:
        jobs = jobs.filter(tier=tier)
    return jobs.exists()


# ===================== Presence =====================

@transaction.atomic
def go_online(operator, tier: str, confirmed: bool = False) -> PresenceResult:
    """
    Put an operator online on one tier.

    Switching away from another online tier is a two-step operation: the
    first call without ``confirmed`` only reports what would change.
    
    Raises:
        TierNotSubscribedError: tier is not in the operator's subscriptions
        ActiveJobsError: the current tier has a job in progress
    """
    _validate_tier(tier)
    profile = _lock_profile(operator)

    if tier not in profile.subscribed_tiers:
        raise TierNotSubscribedError()

    current = profile.online_tier
    if current is not None and current != tier:
        if _has_job_in_progress(operator, current):
            raise ActiveJobsError(details={"current_tier": current, "new_tier": tier})

        if not confirmed:
            return PresenceResult(
                success=False,
                profile=profile,
                requires_confirmation=True,
                current_tier=current,
                new_tier=tier,
                message=f"You are online as {current}. Confirm to switch to {tier}.",
            )
        logger.info("Operator %s switching online tier %s -> %s", operator.id, current, tier)

    if current != tier:
        profile.online_since = timezone.now()
    profile.online_tier = tier
    profile.view_tier = tier
    profile.save(update_fields=["online_tier", "online_since", "view_tier"])

    return PresenceResult(success=True, profile=profile, message=f"You are online as {tier}.")


@transaction.atomic
def go_offline(operator) -> PresenceResult:
    """Clear the online tier; the last viewed tier is kept as a routing hint."""
    profile = _lock_profile(operator)
    if profile.online_tier is not None:
        logger.info("Operator %s going offline from %s", operator.id, profile.online_tier)
    profile.online_tier = None
    profile.online_since = None
    profile.save(update_fields=["online_tier", "online_since"])
    return PresenceResult(success=True, profile=profile, message="You are offline.")


def set_presence(operator, tier: Optional[str], online: bool, confirmed: bool = False) -> PresenceResult:
    if not online:
        return go_offline(operator)
    if not tier:
        raise ValidationError("tier is required to go online", code="tier_required")
    return go_online(operator, tier, confirmed=confirmed)


@transaction.atomic
def set_view_tier(operator, tier: str) -> PresenceResult:
    """Change which tier the operator's dashboard shows. Presence is untouched."""
    _validate_tier(tier)
    profile = _lock_profile(operator)
    if tier not in profile.subscribed_tiers:
        raise TierNotSubscribedError()
    profile.view_tier = tier
    profile.save(update_fields=["view_tier"])
    return PresenceResult(success=True, profile=profile)


# ===================== Subscriptions =====================

def _resolve_radius(tier: str, operating_radius_km) -> Optional[Decimal]:
    rules = get_tier_rules(tier)
    if rules.radius_km is None:
        # Unrestricted tiers ignore any requested radius
        return None
    if operating_radius_km is None:
        return rules.radius_km

    try:
        radius = Decimal(str(operating_radius_km))
    except (InvalidOperation, ValueError):
        raise ValidationError("operating_radius_km must be a number", code="invalid_radius")
    if radius <= 0:
        raise ValidationError("operating_radius_km must be positive", code="invalid_radius")
    if rules.radius_max_km is not None and radius > rules.radius_max_km:
        raise ValidationError(
            f"{rules.label} radius cannot exceed {rules.radius_max_km} km",
            code="radius_above_max",
        )
    return radius


def subscribe_tier(operator, tier: str, operating_radius_km=None) -> OperatorTierSubscription:
    """Add a tier to the operator's subscribed set with its operating radius."""
    _validate_tier(tier)
    radius = _resolve_radius(tier, operating_radius_km)

    with transaction.atomic():
        profile = _lock_profile(operator)
        if tier in profile.subscribed_tiers:
            raise AlreadySubscribedError()
        try:
            with transaction.atomic():
                subscription = OperatorTierSubscription.objects.create(
                    operator=profile,
                    tier=tier,
                    operating_radius_km=radius,
                )
        except IntegrityError:
            raise AlreadySubscribedError()
        if profile.view_tier is None:
            profile.view_tier = tier
            profile.save(update_fields=["view_tier"])

    logger.info("Operator %s subscribed to %s (radius=%s)", operator.id, tier, radius)
    return subscription


# ===================== Location =====================

def update_operator_location(operator, lat, lon) -> OperatorProfile:
    """
    Persist the operator's last known position.
    Matching keeps using the home location; this is informational only.
    """
    try:
        lat = Decimal(str(lat))
        lon = Decimal(str(lon))
    except (InvalidOperation, ValueError):
        raise ValidationError("latitude and longitude must be numbers", code="invalid_coordinates")
    if not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
        raise ValidationError("Coordinates out of range", code="invalid_coordinates")

    updated = OperatorProfile.objects.filter(user=operator).update(
        current_latitude=round(lat, 7),
        current_longitude=round(lon, 7),
        last_location_update=timezone.now(),
    )
    if not updated:
        raise OperatorNotFoundError()
    return OperatorProfile.objects.get(user=operator)
