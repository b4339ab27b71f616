from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import ORIGIN, make_operator, make_request, make_requester, north_of_origin
from jobs.models import AcceptedJob
from marketplace.models import DispatchQueueEntry, Quote
from marketplace.services.expirations import process_expirations
from marketplace.tasks import expire_dispatch_entry_task
from marketplace.views import accept_emergency, create_request, submit_request_quote
from services.exceptions import (
	DuplicateQuoteError,
	NotOwnerError,
	OfferExpiredError,
	OfferNotActiveError,
	OperatorNotAvailableError,
	QuoteExpiredError,
	QuoteNotPendingError,
	QuoteWindowClosedError,
	RequestNotOpenError,
)
from services.matching import (
	QueueSlot,
	accept_dispatch,
	advance,
	decline_dispatch,
	find_alternative_operators,
	get_dispatch_queue,
)
from services.negotiation import accept_quote, decline_quote, submit_quote
from services.request_management import cancel_request, create_service_request


def _entries(service_request):
	return list(DispatchQueueEntry.objects.filter(request=service_request).order_by('position'))


class AdvanceTransitionTests(TestCase):
	def test_promotes_lowest_pending_position(self):
		slots = [QueueSlot(1, 'declined'), QueueSlot(2, 'pending'), QueueSlot(3, 'pending')]
		new_slots, promoted = advance(slots)

		self.assertEqual(promoted, 2)
		self.assertEqual([s.status for s in new_slots], ['declined', 'notified', 'pending'])

	def test_no_promotion_while_an_entry_is_notified(self):
		slots = [QueueSlot(1, 'notified'), QueueSlot(2, 'pending')]
		new_slots, promoted = advance(slots)

		self.assertIsNone(promoted)
		self.assertEqual(new_slots, slots)

	def test_exhausted_queue_promotes_nothing(self):
		_, promoted = advance([QueueSlot(1, 'declined'), QueueSlot(2, 'expired')])
		self.assertIsNone(promoted)


class DispatchQueueTests(TestCase):
	def setUp(self):
		self.now = timezone.now()
		self.requester = make_requester()
		self.operators = [
			make_operator('op%d' % km, tiers=['equipped'], online_tier='equipped', home=north_of_origin(km))
			for km in (7, 3, 1, 6, 2, 5, 4)
		]

	def _emergency(self):
		result = create_service_request(
			self.requester, 'snow_shoveling', ORIGIN[0], ORIGIN[1], is_emergency=True, now=self.now,
		)
		return result.request

	def _operator(self, username):
		return next(op for op in self.operators if op.username == username)

	def test_queue_holds_nearest_five_in_distance_order(self):
		emergency = self._emergency()
		entries = _entries(emergency)

		self.assertEqual(len(entries), 5)
		self.assertEqual([e.operator.username for e in entries], ['op1', 'op2', 'op3', 'op4', 'op5'])
		self.assertEqual([e.position for e in entries], [1, 2, 3, 4, 5])
		self.assertIsNone(emergency.quote_window_expires_at)

	def test_head_is_notified_with_ten_minute_expiry(self):
		entries = _entries(self._emergency())

		self.assertEqual(entries[0].status, 'notified')
		self.assertEqual(entries[0].expires_at, self.now + timedelta(minutes=10))
		self.assertTrue(all(e.status == 'pending' for e in entries[1:]))

	def test_decline_promotes_next_with_fresh_expiry(self):
		emergency = self._emergency()
		later = self.now + timedelta(minutes=2)

		result = decline_dispatch(self._operator('op1'), emergency.id, now=later)

		self.assertTrue(result.extra['queued_next_operator'])
		entries = _entries(emergency)
		self.assertEqual(entries[0].status, 'declined')
		self.assertEqual(entries[1].status, 'notified')
		self.assertEqual(entries[1].expires_at, later + timedelta(minutes=10))
		self.assertEqual(sum(e.status == 'notified' for e in entries), 1)

	def test_accept_assigns_request_and_declines_the_rest(self):
		emergency = self._emergency()
		decline_dispatch(self._operator('op1'), emergency.id, now=self.now)

		result = accept_dispatch(self._operator('op2'), emergency.id, now=self.now)

		emergency.refresh_from_db()
		self.assertEqual(emergency.status, 'assigned')
		self.assertEqual(emergency.operator, self._operator('op2'))
		statuses = [e.status for e in _entries(emergency)]
		self.assertEqual(statuses, ['declined', 'accepted', 'declined', 'declined', 'declined'])

		job = AcceptedJob.objects.get(request=emergency)
		self.assertEqual(job.id, result.extra['job_id'])
		self.assertEqual(job.tier, 'equipped')
		self.assertEqual(job.status, 'accepted')

	def test_only_the_notified_operator_may_accept(self):
		emergency = self._emergency()

		with self.assertRaises(OfferNotActiveError):
			accept_dispatch(self._operator('op3'), emergency.id, now=self.now)

		emergency.refresh_from_db()
		self.assertEqual(emergency.status, 'pending')

	def test_second_accept_after_first_wins_is_rejected(self):
		emergency = self._emergency()
		accept_dispatch(self._operator('op1'), emergency.id, now=self.now)

		with self.assertRaises(RequestNotOpenError):
			accept_dispatch(self._operator('op2'), emergency.id, now=self.now)

	def test_late_accept_records_expiry_and_promotes_next(self):
		emergency = self._emergency()

		with self.assertRaises(OfferExpiredError):
			accept_dispatch(self._operator('op1'), emergency.id, now=self.now + timedelta(minutes=11))

		entries = _entries(emergency)
		self.assertEqual(entries[0].status, 'expired')
		self.assertEqual(entries[1].status, 'notified')
		emergency.refresh_from_db()
		self.assertEqual(emergency.status, 'pending')

	def test_exhausted_queue_cancels_request(self):
		for op in self.operators[2:]:
			op.operator_profile.online_tier = None
			op.operator_profile.save(update_fields=['online_tier'])

		emergency = self._emergency()
		self.assertEqual(len(_entries(emergency)), 2)

		decline_dispatch(self._operator('op3'), emergency.id, now=self.now)
		decline_dispatch(self._operator('op7'), emergency.id, now=self.now)

		emergency.refresh_from_db()
		self.assertEqual(emergency.status, 'cancelled')
		self.assertTrue(all(e.status == 'declined' for e in _entries(emergency)))

	def test_no_eligible_operators_cancels_immediately(self):
		for op in self.operators:
			op.operator_profile.online_tier = None
			op.operator_profile.save(update_fields=['online_tier'])

		result = create_service_request(
			self.requester, 'snow_shoveling', ORIGIN[0], ORIGIN[1], is_emergency=True, now=self.now,
		)

		self.assertEqual(result.extra['operator_candidates'], 0)
		self.assertEqual(result.request.status, 'cancelled')

	def test_reading_the_queue_applies_lazy_expiry(self):
		emergency = self._emergency()
		entries = get_dispatch_queue(emergency.id, now=self.now + timedelta(minutes=10))

		self.assertEqual([e.status for e in entries[:2]], ['expired', 'notified'])

	def test_notify_schedules_expiry_task_at_deadline(self):
		with patch('services.matching.dispatch_queue.expire_dispatch_entry_task') as mock_task:
			with self.captureOnCommitCallbacks(execute=True):
				emergency = self._emergency()

		head = _entries(emergency)[0]
		mock_task.apply_async.assert_called_once_with((head.id,), eta=head.expires_at)

	def test_expiry_task_is_noop_before_deadline(self):
		emergency = self._emergency()
		head = _entries(emergency)[0]

		self.assertFalse(expire_dispatch_entry_task(head.id))
		head.refresh_from_db()
		self.assertEqual(head.status, 'notified')

	def test_process_expirations_advances_stale_queue(self):
		emergency = self._emergency()

		expired, windows = process_expirations(now=self.now + timedelta(minutes=11))

		self.assertEqual((expired, windows), (1, 0))
		statuses = [e.status for e in _entries(emergency)]
		self.assertEqual(statuses[:2], ['expired', 'notified'])

	def test_requester_cancel_expires_live_entries(self):
		emergency = self._emergency()

		cancel_request(self.requester, emergency.id, 'Sorted it myself')

		emergency.refresh_from_db()
		self.assertEqual(emergency.status, 'cancelled')
		self.assertFalse(
			DispatchQueueEntry.objects.filter(request=emergency, status__in=['pending', 'notified']).exists()
		)


class QuoteNegotiationTests(TestCase):
	def setUp(self):
		self.now = timezone.now()
		self.requester = make_requester()
		self.op_a = make_operator('op_a', online_tier='manual', home=north_of_origin(1))
		self.op_b = make_operator('op_b', tiers=['equipped'], online_tier='equipped', home=north_of_origin(2))
		self.op_c = make_operator('op_c', online_tier='manual', home=north_of_origin(3))
		self.request = create_service_request(
			self.requester, 'snow_shoveling', ORIGIN[0], ORIGIN[1],
			budget_range='$40-$60', now=self.now,
		).request
		self.soon = self.now + timedelta(hours=1)

	def test_request_opens_twelve_hour_window(self):
		self.assertEqual(self.request.quote_window_expires_at, self.now + timedelta(hours=12))
		self.assertEqual(self.request.negotiation_status, 'open')

	def test_submit_creates_pending_quote_in_online_tier(self):
		result = submit_quote(self.op_b, self.request.id, '55.00', 30, now=self.soon)

		self.assertEqual(result.quote.status, 'pending')
		self.assertEqual(result.quote.tier, 'equipped')
		self.assertEqual(result.quote.expires_at, self.request.quote_window_expires_at)
		self.request.refresh_from_db()
		self.assertEqual(self.request.quote_count, 1)

	def test_offline_operator_cannot_quote(self):
		self.op_a.operator_profile.online_tier = None
		self.op_a.operator_profile.save(update_fields=['online_tier'])

		with self.assertRaises(OperatorNotAvailableError):
			submit_quote(self.op_a, self.request.id, 50, 30, now=self.soon)

	def test_duplicate_quote_is_conflict(self):
		submit_quote(self.op_a, self.request.id, 50, 30, now=self.soon)
		with self.assertRaises(DuplicateQuoteError):
			submit_quote(self.op_a, self.request.id, 45, 20, now=self.soon)

		self.request.refresh_from_db()
		self.assertEqual(self.request.quote_count, 1)

	def test_emergency_requests_do_not_take_quotes(self):
		emergency = make_request(self.requester, is_emergency=True)
		with self.assertRaises(RequestNotOpenError):
			submit_quote(self.op_a, emergency.id, 50, 30, now=self.soon)

	def test_late_quote_closes_window_but_keeps_request_pending(self):
		submit_quote(self.op_a, self.request.id, 50, 30, now=self.soon)

		with self.assertRaises(QuoteWindowClosedError):
			submit_quote(self.op_b, self.request.id, 55, 30, now=self.now + timedelta(hours=13))

		self.request.refresh_from_db()
		self.assertEqual(self.request.negotiation_status, 'expired')
		self.assertEqual(self.request.status, 'pending')
		self.assertEqual(Quote.objects.get(operator=self.op_a).status, 'expired')

	def test_accept_declines_every_sibling(self):
		q_a = submit_quote(self.op_a, self.request.id, 45, 30, now=self.soon).quote
		q_b = submit_quote(self.op_b, self.request.id, 60, 20, now=self.soon).quote
		q_c = submit_quote(self.op_c, self.request.id, 50, 40, now=self.soon).quote

		result = accept_quote(self.requester, self.request.id, q_b.id, now=self.soon)

		self.assertEqual(result.extra['declined_quotes'], 2)
		for quote, expected in ((q_a, 'declined'), (q_b, 'accepted'), (q_c, 'declined')):
			quote.refresh_from_db()
			self.assertEqual(quote.status, expected)

		self.request.refresh_from_db()
		self.assertEqual(self.request.status, 'assigned')
		self.assertEqual(self.request.negotiation_status, 'accepted')
		self.assertEqual(self.request.operator, self.op_b)

		job = AcceptedJob.objects.get(request=self.request)
		self.assertEqual(job.quote, q_b)
		self.assertEqual(job.tier, 'equipped')
		self.assertEqual(job.estimated_value, Decimal('60.00'))

	def test_only_requester_may_accept(self):
		quote = submit_quote(self.op_a, self.request.id, 45, 30, now=self.soon).quote
		with self.assertRaises(NotOwnerError):
			accept_quote(self.op_b, self.request.id, quote.id, now=self.soon)

	def test_declined_quote_cannot_be_accepted(self):
		quote = submit_quote(self.op_a, self.request.id, 45, 30, now=self.soon).quote
		decline_quote(self.requester, self.request.id, quote.id, now=self.soon)

		with self.assertRaises(QuoteNotPendingError):
			accept_quote(self.requester, self.request.id, quote.id, now=self.soon)

		self.request.refresh_from_db()
		self.assertEqual(self.request.negotiation_status, 'open')

	def test_accept_after_window_expires_the_quote(self):
		quote = submit_quote(self.op_a, self.request.id, 45, 30, now=self.soon).quote

		with self.assertRaises(QuoteExpiredError):
			accept_quote(self.requester, self.request.id, quote.id, now=self.now + timedelta(hours=12))

		quote.refresh_from_db()
		self.assertEqual(quote.status, 'expired')
		self.assertFalse(AcceptedJob.objects.exists())

	def test_decline_after_window_expires_the_negotiation(self):
		quote = submit_quote(self.op_a, self.request.id, 45, 30, now=self.soon).quote

		with self.assertRaises(QuoteExpiredError):
			decline_quote(self.requester, self.request.id, quote.id, now=self.now + timedelta(hours=13))

		quote.refresh_from_db()
		self.request.refresh_from_db()
		self.assertEqual(quote.status, 'expired')
		self.assertEqual(self.request.negotiation_status, 'expired')
		self.assertEqual(self.request.status, 'pending')

	def test_window_sweep_expires_negotiation_only(self):
		submit_quote(self.op_a, self.request.id, 45, 30, now=self.soon)

		call_command('process_expirations')  # real clock: window still open
		self.request.refresh_from_db()
		self.assertEqual(self.request.negotiation_status, 'open')

		expired, windows = process_expirations(now=self.now + timedelta(hours=12, minutes=1))

		self.assertEqual((expired, windows), (0, 1))
		self.request.refresh_from_db()
		self.assertEqual(self.request.negotiation_status, 'expired')
		self.assertEqual(self.request.status, 'pending')
		self.assertEqual(Quote.objects.get(operator=self.op_a).status, 'expired')

		cancel_request(self.requester, self.request.id)
		self.request.refresh_from_db()
		self.assertEqual(self.request.status, 'cancelled')


class AlternativeOperatorTests(TestCase):
	def setUp(self):
		self.requester = make_requester()
		self.request = make_request(self.requester, quote_window_expires_at=timezone.now() + timedelta(hours=12))
		self.decliner = make_operator('decliner', online_tier='manual', home=north_of_origin(1), rating='5.00')
		self.top_far = make_operator('top_far', online_tier='manual', home=north_of_origin(4), rating='4.80')
		self.top_near = make_operator('top_near', online_tier='manual', home=north_of_origin(2), rating='4.80')
		self.low = make_operator('low', online_tier='manual', home=north_of_origin(1), rating='3.10')

	def test_ranked_by_rating_then_distance_excluding_decliners(self):
		quote = submit_quote(self.decliner, self.request.id, 50, 30).quote
		decline_quote(self.requester, self.request.id, quote.id)

		names = [c.profile.user.username for c in find_alternative_operators(self.request)]
		self.assertEqual(names, ['top_near', 'top_far', 'low'])

	def test_limit(self):
		candidates = find_alternative_operators(self.request, declined_ids=[], limit=2)
		self.assertEqual([c.profile.user.username for c in candidates], ['decliner', 'top_near'])


class MarketplaceApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.requester = make_requester()
		self.operator = make_operator('op', online_tier='manual', home=north_of_origin(1))

	def test_create_request_returns_window_expiry(self):
		request = self.factory.post('/api/marketplace/requests/', {
			'service_type': 'snow_shoveling',
			'latitude': '43.6500000',
			'longitude': '-79.3800000',
			'budget_range': '$40-$60',
		}, format='json')
		force_authenticate(request, user=self.requester)
		response = create_request(request)

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		self.assertIsNotNone(response.data['quote_window_expires_at'])
		self.assertEqual(response.data['request']['negotiation_status'], 'open')

	def test_emergency_without_location_is_rejected(self):
		request = self.factory.post('/api/marketplace/requests/', {
			'service_type': 'towing',
			'is_emergency': True,
		}, format='json')
		force_authenticate(request, user=self.requester)
		response = create_request(request)

		self.assertEqual(response.status_code, 400)

	def test_operator_cannot_create_requests(self):
		request = self.factory.post('/api/marketplace/requests/', {'service_type': 'towing'}, format='json')
		force_authenticate(request, user=self.operator)
		response = create_request(request)

		self.assertEqual(response.status_code, 403)

	def test_submit_quote_endpoint(self):
		service_request = create_service_request(self.requester, 'snow_shoveling', ORIGIN[0], ORIGIN[1]).request
		request = self.factory.post('/quote/', {'price': '50.00', 'eta_minutes': 30}, format='json')
		force_authenticate(request, user=self.operator)
		response = submit_request_quote(request, request_id=service_request.id)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'pending')

	def test_accept_without_active_offer_returns_conflict(self):
		other = make_operator('other', online_tier='manual', home=north_of_origin(2))
		emergency = create_service_request(
			self.requester, 'snow_shoveling', ORIGIN[0], ORIGIN[1], is_emergency=True,
		).request

		request = self.factory.post('/accept/')
		force_authenticate(request, user=other)
		response = accept_emergency(request, request_id=emergency.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'offer_not_active')
		self.assertFalse(response.data['success'])
