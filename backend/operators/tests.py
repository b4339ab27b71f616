from decimal import Decimal

from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import ORIGIN, make_operator, make_request, make_requester, north_of_origin
from common.utils import calculate_distance, distance
from jobs.models import AcceptedJob
from operators.models import OperatorProfile, OperatorTierSubscription
from operators.tiers import OperatorTier, tier_allows_service
from operators.views import OperatorProfileView, PresenceView, TierSubscriptionView
from services.exceptions import (
	ActiveJobsError,
	AlreadySubscribedError,
	TierNotSubscribedError,
	ValidationError,
)
from services.matching import check_eligibility, eligible_operators
from services.presence import (
	go_offline,
	go_online,
	set_view_tier,
	subscribe_tier,
	update_operator_location,
)


class DistanceTests(TestCase):
	def test_distance_to_self_is_zero(self):
		self.assertEqual(distance(ORIGIN, ORIGIN), 0.0)

	def test_distance_is_symmetric(self):
		other = (Decimal("45.5017"), Decimal("-73.5673"))
		self.assertAlmostEqual(distance(ORIGIN, other), distance(other, ORIGIN))

	def test_toronto_to_montreal(self):
		km = calculate_distance(43.6532, -79.3832, 45.5017, -73.5673)
		self.assertAlmostEqual(km, 504, delta=5)

	def test_north_of_origin_helper(self):
		self.assertAlmostEqual(distance(ORIGIN, north_of_origin(5.6)), 5.6, places=2)


class EligibilityTests(TestCase):
	def setUp(self):
		self.requester = make_requester()
		self.request = make_request(self.requester)

	def _profile(self, user):
		return OperatorProfile.objects.get(user=user)

	def test_manual_operator_outside_radius_is_excluded(self):
		far = make_operator('far', online_tier='manual', home=north_of_origin(5.6))
		eligible, dist, reason = check_eligibility(self._profile(far), self.request)

		self.assertFalse(eligible)
		self.assertEqual(reason, 'outside_radius')
		self.assertAlmostEqual(dist, 5.6, places=1)

	def test_manual_operator_inside_radius_is_included(self):
		near = make_operator('near', online_tier='manual', home=north_of_origin(1.1))
		eligible, dist, _ = check_eligibility(self._profile(near), self.request)

		self.assertTrue(eligible)
		self.assertAlmostEqual(dist, 1.1, places=1)

	def test_professional_tier_is_unrestricted(self):
		make_operator('pro', tiers=['professional'], online_tier='professional', home=north_of_origin(300))
		candidates = eligible_operators(self.request)

		self.assertEqual([c.profile.user.username for c in candidates], ['pro'])
		self.assertAlmostEqual(candidates[0].distance_km, 300, delta=1)

	def test_offline_operator_is_excluded(self):
		make_operator('offline', home=north_of_origin(1))
		self.assertEqual(eligible_operators(self.request), [])

	def test_candidates_sorted_nearest_first(self):
		make_operator('three', online_tier='manual', home=north_of_origin(3))
		make_operator('one', online_tier='manual', home=north_of_origin(1))
		make_operator('two', online_tier='manual', home=north_of_origin(2))

		names = [c.profile.user.username for c in eligible_operators(self.request)]
		self.assertEqual(names, ['one', 'two', 'three'])

	def test_request_without_coordinates_included_by_default(self):
		request = make_request(self.requester, location=None)
		op = make_operator('op', online_tier='manual', home=north_of_origin(1))

		eligible, dist, _ = check_eligibility(self._profile(op), request)
		self.assertTrue(eligible)
		self.assertIsNone(dist)

	@override_settings(INCLUDE_REQUESTS_WITHOUT_COORDINATES=False)
	def test_request_without_coordinates_excluded_when_disabled(self):
		request = make_request(self.requester, location=None)
		op = make_operator('op', online_tier='manual', home=north_of_origin(1))

		eligible, _, reason = check_eligibility(self._profile(op), request)
		self.assertFalse(eligible)
		self.assertEqual(reason, 'request_without_coordinates')

	def test_tier_must_allow_service(self):
		request = make_request(self.requester, service_type='roofing')
		op = make_operator('op', online_tier='manual', services=['roofing'])

		eligible, _, reason = check_eligibility(self._profile(op), request)
		self.assertFalse(eligible)
		self.assertEqual(reason, 'tier_not_allowed')

	def test_certification_required_for_electrician(self):
		request = make_request(self.requester, service_type='electrician')
		op = make_operator('op', tiers=['equipped'], online_tier='equipped', services=['electrician'])

		eligible, _, reason = check_eligibility(self._profile(op), request)
		self.assertFalse(eligible)
		self.assertEqual(reason, 'certification_required')

	def test_unknown_service_open_to_every_tier(self):
		for tier in OperatorTier.values:
			self.assertTrue(tier_allows_service(tier, 'gutter_polishing'))


class PresenceTests(TestCase):
	def setUp(self):
		self.operator = make_operator('op', tiers=['manual', 'equipped'])

	def _profile(self):
		return OperatorProfile.objects.get(user=self.operator)

	def test_go_online_on_subscribed_tier(self):
		result = go_online(self.operator, 'manual')

		self.assertTrue(result.success)
		profile = self._profile()
		self.assertEqual(profile.online_tier, 'manual')
		self.assertEqual(profile.view_tier, 'manual')
		self.assertIsNotNone(profile.online_since)

	def test_go_online_requires_subscription(self):
		with self.assertRaises(TierNotSubscribedError):
			go_online(self.operator, 'professional')
		self.assertIsNone(self._profile().online_tier)

	def test_switch_without_confirmation_changes_nothing(self):
		go_online(self.operator, 'manual')
		result = go_online(self.operator, 'equipped')

		self.assertTrue(result.requires_confirmation)
		self.assertEqual(result.as_dict()['current_tier'], 'manual')
		self.assertEqual(result.as_dict()['new_tier'], 'equipped')
		self.assertEqual(self._profile().online_tier, 'manual')

	def test_confirmed_switch_leaves_single_online_tier(self):
		go_online(self.operator, 'manual')
		go_online(self.operator, 'equipped', confirmed=True)

		profile = self._profile()
		self.assertEqual(profile.online_tier, 'equipped')
		self.assertEqual(profile.view_tier, 'equipped')

	def test_switch_blocked_by_job_in_progress(self):
		go_online(self.operator, 'manual')
		request = make_request(make_requester())
		AcceptedJob.objects.create(
			request=request, operator=self.operator, tier='manual', status='in_progress'
		)

		with self.assertRaises(ActiveJobsError) as ctx:
			go_online(self.operator, 'equipped', confirmed=True)

		self.assertEqual(ctx.exception.code, 'active_jobs')
		self.assertEqual(self._profile().online_tier, 'manual')

	def test_go_offline_keeps_view_tier(self):
		go_online(self.operator, 'equipped')
		go_offline(self.operator)

		profile = self._profile()
		self.assertIsNone(profile.online_tier)
		self.assertEqual(profile.view_tier, 'equipped')

	def test_view_tier_does_not_change_presence(self):
		go_online(self.operator, 'manual')
		set_view_tier(self.operator, 'equipped')

		profile = self._profile()
		self.assertEqual(profile.online_tier, 'manual')
		self.assertEqual(profile.view_tier, 'equipped')

	def test_update_location_persists_coordinates(self):
		profile = update_operator_location(self.operator, 43.7, -79.4)

		self.assertEqual(profile.current_latitude, Decimal("43.7000000"))
		self.assertIsNotNone(profile.last_location_update)


class SubscriptionTests(TestCase):
	def setUp(self):
		self.operator = make_operator('op', tiers=[])

	def test_subscribe_uses_tier_default_radius(self):
		subscription = subscribe_tier(self.operator, 'equipped')
		self.assertEqual(subscription.operating_radius_km, Decimal("15"))

	def test_subscribe_rejects_radius_above_max(self):
		with self.assertRaises(ValidationError):
			subscribe_tier(self.operator, 'manual', operating_radius_km=9)
		self.assertFalse(OperatorTierSubscription.objects.exists())

	def test_professional_radius_is_unrestricted(self):
		subscription = subscribe_tier(self.operator, 'professional', operating_radius_km=20)
		self.assertIsNone(subscription.operating_radius_km)

	def test_duplicate_subscription_is_conflict(self):
		subscribe_tier(self.operator, 'manual')
		with self.assertRaises(AlreadySubscribedError):
			subscribe_tier(self.operator, 'manual')


class PresenceApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.operator = make_operator('op', tiers=['manual', 'equipped'], online_tier='manual')

	def test_switch_returns_confirmation_payload(self):
		request = self.factory.put('/api/operator/presence/', {'online': True, 'tier': 'equipped'}, format='json')
		force_authenticate(request, user=self.operator)
		response = PresenceView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['requires_confirmation'])
		self.assertEqual(response.data['current_tier'], 'manual')

	def test_unsubscribed_tier_returns_error_code(self):
		request = self.factory.put('/api/operator/presence/', {'online': True, 'tier': 'professional'}, format='json')
		force_authenticate(request, user=self.operator)
		response = PresenceView.as_view()(request)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'tier_not_subscribed')

	def test_subscribe_endpoint(self):
		request = self.factory.post('/api/operator/tiers/', {'tier': 'professional'}, format='json')
		force_authenticate(request, user=self.operator)
		response = TierSubscriptionView.as_view()(request)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['tier'], 'professional')
		self.assertIsNone(response.data['operating_radius_km'])

	def test_operator_cannot_set_own_business_license(self):
		request = self.factory.post('/api/operator/profile/', {'business_license': 'LIC-123'}, format='json')
		force_authenticate(request, user=self.operator)
		response = OperatorProfileView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(OperatorProfile.objects.get(user=self.operator).business_license, '')

	def test_requester_cannot_use_operator_endpoints(self):
		request = self.factory.get('/api/operator/presence/')
		force_authenticate(request, user=make_requester())
		response = PresenceView.as_view()(request)

		self.assertEqual(response.status_code, 403)
