"""
Operator tier rules.

Every per-tier business rule (operating radius, radius cap, pricing
multiplier, which services a tier may take and what paperwork they need)
is read from the tables in this module. Callers never branch on a tier
name directly.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from django.db import models


class OperatorTier(models.TextChoices):
    MANUAL = 'manual', 'Manual Operator'
    EQUIPPED = 'equipped', 'Skilled & Equipped'
    PROFESSIONAL = 'professional', 'Professional & Certified'


@dataclass(frozen=True)
class TierRules:
    tier: str
    label: str
    radius_km: Optional[Decimal]       # None = unrestricted
    radius_max_km: Optional[Decimal]
    pricing_multiplier: Decimal
    badge: str = ""


@dataclass(frozen=True)
class ServiceRule:
    service_id: str
    name: str
    tiers: FrozenSet[str]
    requires_certification: bool = False
    requires_business_license: bool = False


TIER_RULES: Dict[str, TierRules] = {
    OperatorTier.MANUAL: TierRules(
        tier=OperatorTier.MANUAL,
        label="Manual Operator",
        radius_km=Decimal("5"),
        radius_max_km=Decimal("8"),
        pricing_multiplier=Decimal("0.6"),
        badge="⛏️",
    ),
    OperatorTier.EQUIPPED: TierRules(
        tier=OperatorTier.EQUIPPED,
        label="Skilled & Equipped",
        radius_km=Decimal("15"),
        radius_max_km=Decimal("50"),
        pricing_multiplier=Decimal("1.0"),
        badge="🚛",
    ),
    OperatorTier.PROFESSIONAL: TierRules(
        tier=OperatorTier.PROFESSIONAL,
        label="Professional & Certified",
        radius_km=None,
        radius_max_km=None,
        pricing_multiplier=Decimal("1.5"),
        badge="🏆",
    ),
}

_ALL = frozenset(OperatorTier.values)
_EQUIPPED_UP = frozenset({OperatorTier.EQUIPPED, OperatorTier.PROFESSIONAL})
_PROFESSIONAL = frozenset({OperatorTier.PROFESSIONAL})


def _rule(service_id, name, tiers, certification=False, business_license=False):
    return service_id, ServiceRule(
        service_id=service_id,
        name=name,
        tiers=tiers,
        requires_certification=certification,
        requires_business_license=business_license,
    )


SERVICE_CATALOG: Dict[str, ServiceRule] = dict([
    # micro services
    _rule("snow_shoveling", "Snow Shoveling", _ALL),
    _rule("lawn_maintenance", "Lawn Maintenance", _ALL),
    _rule("window_cleaning", "Window Cleaning", _ALL),
    _rule("yard_cleanup", "Yard Cleanup", _ALL),
    _rule("debris_removal", "Debris Removal", _ALL),
    _rule("local_errands", "Local Errands", _ALL),
    # standard services
    _rule("snow_plowing", "Snow Plowing", _EQUIPPED_UP),
    _rule("towing", "Towing", _EQUIPPED_UP),
    _rule("hauling", "Hauling", _EQUIPPED_UP),
    _rule("courier", "Courier Services", _EQUIPPED_UP),
    _rule("drywall", "Drywall", _EQUIPPED_UP),
    _rule("framing", "Framing", _EQUIPPED_UP),
    _rule("basic_home_repairs", "Basic Home Repairs", _EQUIPPED_UP),
    _rule("carpentry", "Carpentry", _EQUIPPED_UP),
    _rule("light_plumbing", "Light Plumbing", _EQUIPPED_UP, certification=True),
    _rule("electrician", "Electrician Services", _EQUIPPED_UP, certification=True),
    # professional services
    _rule("roofing", "Roofing", _PROFESSIONAL, business_license=True),
    _rule("licensed_plumbing", "Licensed Plumbing", _PROFESSIONAL, certification=True, business_license=True),
    _rule("licensed_electrical", "Licensed Electrical", _PROFESSIONAL, certification=True, business_license=True),
    _rule("welding", "Welding", _PROFESSIONAL, certification=True),
    _rule("restoration", "Restoration", _PROFESSIONAL, business_license=True),
    _rule("full_construction", "Full Construction", _PROFESSIONAL, business_license=True),
    _rule("heavy_hauling", "Heavy Hauling", _PROFESSIONAL),
])


def get_tier_rules(tier: str) -> TierRules:
    try:
        return TIER_RULES[tier]
    except KeyError:
        raise ValueError(f"Unknown operator tier: {tier}")


def tier_allows_service(tier: str, service_type: str) -> bool:
    """Service types outside the catalog are open to every tier."""
    rule = SERVICE_CATALOG.get(service_type)
    if rule is None:
        return True
    return tier in rule.tiers


def service_requirements(service_type: str) -> Optional[ServiceRule]:
    return SERVICE_CATALOG.get(service_type)
