"""Shared fixtures for the app test suites."""

from decimal import Decimal

from accounts.models import User
from marketplace.models import ServiceRequest
from operators.models import OperatorProfile, OperatorTierSubscription
from operators.tiers import get_tier_rules

# Downtown Toronto
ORIGIN = (Decimal("43.6500000"), Decimal("-79.3800000"))

# Roughly one kilometre of latitude at any longitude
KM_IN_DEGREES = Decimal("0.0089932")


def north_of_origin(km):
	"""A point the given number of kilometres due north of ORIGIN."""
	return (ORIGIN[0] + KM_IN_DEGREES * Decimal(str(km))).quantize(Decimal("0.0000001")), ORIGIN[1]


def make_requester(username="requester"):
	return User.objects.create_user(
		username=username,
		password='pass1234',
		role=User.ROLE_REQUESTER,
	)


def make_operator(username, tiers=("manual",), online_tier=None, home=ORIGIN,
				  services=("snow_shoveling",), rating="0", certified=False):
	user = User.objects.create_user(
		username=username,
		password='operator1234',
		role=User.ROLE_OPERATOR,
	)
	profile = OperatorProfile.objects.create(
		user=user,
		display_name=username,
		home_latitude=home[0] if home else None,
		home_longitude=home[1] if home else None,
		services=list(services),
		rating=Decimal(rating),
		is_certified=certified,
		online_tier=online_tier,
		view_tier=online_tier,
	)
	for tier in tiers:
		OperatorTierSubscription.objects.create(
			operator=profile,
			tier=tier,
			operating_radius_km=get_tier_rules(tier).radius_km,
		)
	return user


def make_request(requester, service_type="snow_shoveling", location=ORIGIN, **kwargs):
	return ServiceRequest.objects.create(
		requester=requester,
		service_type=service_type,
		latitude=location[0] if location else None,
		longitude=location[1] if location else None,
		**kwargs
	)
