from decimal import Decimal

from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import make_operator, make_request, make_requester
from jobs.models import AcceptedJob, EarningsLedger, PenaltyRecord
from jobs.views import CancelJobView, CompleteJobView
from operators.models import OperatorProfile
from services.exceptions import (
	AlreadyRatedError,
	InvalidTransitionError,
	JobInProgressError,
	NotOwnerError,
	ValidationError,
)
from services.job_management import (
	BudgetParseError,
	cancel_job,
	complete_job,
	create_job,
	earnings_summary,
	parse_budget_range,
	rate_job,
	start_job,
	update_progress,
)


def flat_fee_policy(job):
	return Decimal("10")


class BudgetParsingTests(TestCase):
	def test_range_with_hyphen(self):
		self.assertEqual(parse_budget_range("$40-$60"), (Decimal("40"), Decimal("60")))

	def test_range_with_en_dash(self):
		self.assertEqual(parse_budget_range("$40–$60"), (Decimal("40"), Decimal("60")))

	def test_thousands_separator(self):
		self.assertEqual(parse_budget_range("$1,200 - $1,500"), (Decimal("1200"), Decimal("1500")))

	def test_single_amount(self):
		self.assertEqual(parse_budget_range("$75"), (Decimal("75"), Decimal("75")))

	def test_unreadable_budget(self):
		for budget in ("", "negotiable", "$1-$2-$3"):
			with self.assertRaises(BudgetParseError):
				parse_budget_range(budget)


class JobLifecycleTests(TestCase):
	def setUp(self):
		self.requester = make_requester()
		self.operator = make_operator('op', tiers=['manual', 'equipped'], online_tier='manual')
		self.other = make_operator('other', online_tier='manual')

	def _job(self, tier='manual', budget='$40-$60', estimated_value=None):
		service_request = make_request(
			self.requester, budget_range=budget, status='assigned', operator=self.operator,
		)
		return create_job(service_request, self.operator, tier=tier, estimated_value=estimated_value)

	def _started(self, progress=0, **kwargs):
		job = self._job(**kwargs)
		start_job(self.operator, job.id)
		if progress:
			update_progress(self.operator, job.id, progress)
		job.refresh_from_db()
		return job

	def test_start_moves_job_in_progress(self):
		job = self._job()
		result = start_job(self.operator, job.id)

		self.assertEqual(result.job.status, 'in_progress')
		self.assertIsNotNone(result.job.started_at)

	def test_one_job_in_progress_across_tiers(self):
		self._started(tier='manual')
		second = self._job(tier='equipped')

		with self.assertRaises(JobInProgressError):
			start_job(self.operator, second.id)

		second.refresh_from_db()
		self.assertEqual(second.status, 'accepted')
		self.assertEqual(
			AcceptedJob.objects.filter(operator=self.operator, status='in_progress').count(), 1
		)

	def test_other_operator_cannot_touch_job(self):
		job = self._job()
		with self.assertRaises(NotOwnerError):
			start_job(self.other, job.id)
		with self.assertRaises(NotOwnerError):
			update_progress(self.other, job.id, 10)

	def test_progress_is_clamped(self):
		job = self._started()

		self.assertEqual(update_progress(self.operator, job.id, 150).job.progress, 100)
		self.assertEqual(update_progress(self.operator, job.id, -5).job.progress, 0)

	def test_progress_requires_started_job(self):
		job = self._job()
		with self.assertRaises(InvalidTransitionError):
			update_progress(self.operator, job.id, 20)

	def test_complete_posts_daily_and_monthly_earnings(self):
		first = self._started()
		complete_job(self.operator, first.id, '80.00')
		second = self._started()
		complete_job(self.operator, second.id, Decimal('20.50'))

		first.refresh_from_db()
		self.assertEqual(first.status, 'completed')
		self.assertEqual(first.progress, 100)
		self.assertEqual(first.request.status, 'completed')

		for period in ('daily', 'monthly'):
			row = EarningsLedger.objects.get(operator=self.operator, tier='manual', period=period)
			self.assertEqual(row.total_earnings, Decimal('100.50'))
			self.assertEqual(row.jobs_completed, 2)

		self.assertEqual(OperatorProfile.objects.get(user=self.operator).completed_jobs, 2)
		summary = earnings_summary(self.operator)
		self.assertEqual(summary['manual']['daily_earnings'], '100.50')
		self.assertEqual(summary['manual']['monthly_jobs'], 2)

	def test_complete_defaults_to_estimated_value(self):
		job = self._started(estimated_value=Decimal('65.00'))
		result = complete_job(self.operator, job.id)

		self.assertEqual(result.job.earnings, Decimal('65.00'))

	def test_non_numeric_earnings_are_rejected(self):
		job = self._started()

		with self.assertRaises(ValidationError):
			complete_job(self.operator, job.id, 'NaN')

		job.refresh_from_db()
		self.assertEqual(job.status, 'in_progress')
		self.assertFalse(EarningsLedger.objects.exists())

	def test_terminal_job_cannot_be_completed_again(self):
		job = self._started()
		complete_job(self.operator, job.id, 50)

		with self.assertRaises(InvalidTransitionError):
			complete_job(self.operator, job.id, 50)
		with self.assertRaises(InvalidTransitionError):
			cancel_job(self.operator, job.id)

	def test_early_operator_cancel_posts_penalty(self):
		job = self._started(progress=30)

		result = cancel_job(self.operator, job.id, 'Truck broke down')

		self.assertEqual(result.extra['penalty'], '50.00')
		record = PenaltyRecord.objects.get(job=job)
		self.assertEqual(record.amount, Decimal('50.00'))
		self.assertEqual(record.progress_at_cancellation, 30)
		self.assertEqual(record.tier, 'manual')

		job.refresh_from_db()
		self.assertEqual(job.status, 'cancelled')
		self.assertTrue(job.cancelled_by_operator)
		self.assertEqual(job.request.status, 'cancelled')

	def test_late_operator_cancel_has_no_penalty(self):
		job = self._started(progress=70)

		result = cancel_job(self.operator, job.id)

		self.assertIsNone(result.extra['penalty'])
		self.assertFalse(PenaltyRecord.objects.exists())

	def test_malformed_budget_does_not_block_cancel(self):
		job = self._started(progress=10, budget='whatever works')

		with self.assertLogs('services.job_management.penalties', level='WARNING'):
			result = cancel_job(self.operator, job.id)

		self.assertTrue(result.success)
		self.assertIsNone(result.extra['penalty'])
		job.refresh_from_db()
		self.assertEqual(job.status, 'cancelled')

	def test_penalty_falls_back_to_quote_price(self):
		job = self._started(budget='', estimated_value=Decimal('72.00'))

		result = cancel_job(self.operator, job.id)

		self.assertEqual(result.extra['penalty'], '72.00')

	@override_settings(CANCELLATION_PENALTY_POLICY='jobs.tests.flat_fee_policy')
	def test_penalty_policy_is_replaceable(self):
		job = self._started(progress=90)

		result = cancel_job(self.operator, job.id)

		self.assertEqual(result.extra['penalty'], '10.00')

	def test_requester_cancel_is_never_penalised(self):
		job = self._started(progress=10)

		cancel_job(self.requester, job.id, 'Changed my mind')

		job.refresh_from_db()
		self.assertEqual(job.status, 'cancelled')
		self.assertFalse(job.cancelled_by_operator)
		self.assertFalse(PenaltyRecord.objects.exists())

	def test_stranger_cannot_cancel(self):
		job = self._job()
		with self.assertRaises(NotOwnerError):
			cancel_job(make_requester('stranger'), job.id)


class RatingTests(TestCase):
	def setUp(self):
		self.requester = make_requester()
		self.operator = make_operator('op', online_tier='manual')

	def _completed_job(self):
		service_request = make_request(self.requester, status='assigned', operator=self.operator)
		job = create_job(service_request, self.operator, tier='manual')
		start_job(self.operator, job.id)
		complete_job(self.operator, job.id, 40)
		return job

	def test_rating_updates_operator_average(self):
		rate_job(self.requester, self._completed_job().id, 4, 'Quick and tidy')
		rate_job(self.requester, self._completed_job().id, 5)

		profile = OperatorProfile.objects.get(user=self.operator)
		self.assertEqual(profile.rating, Decimal('4.50'))
		self.assertEqual(profile.total_ratings, 2)

	def test_job_rated_once(self):
		job = self._completed_job()
		rate_job(self.requester, job.id, 4)

		with self.assertRaises(AlreadyRatedError):
			rate_job(self.requester, job.id, 5)

	def test_only_completed_jobs_can_be_rated(self):
		service_request = make_request(self.requester, status='assigned', operator=self.operator)
		job = create_job(service_request, self.operator, tier='manual')

		with self.assertRaises(InvalidTransitionError):
			rate_job(self.requester, job.id, 3)

	def test_stars_out_of_range(self):
		with self.assertRaises(ValidationError):
			rate_job(self.requester, self._completed_job().id, 6)


class JobApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.requester = make_requester()
		self.operator = make_operator('op', online_tier='manual')
		service_request = make_request(
			self.requester, budget_range='$40-$60', status='assigned', operator=self.operator,
		)
		self.job = create_job(service_request, self.operator, tier='manual')
		start_job(self.operator, self.job.id)

	def test_cancel_endpoint_reports_penalty(self):
		request = self.factory.post('/api/jobs/%d/cancel/' % self.job.id, {'reason': 'Sick'}, format='json')
		force_authenticate(request, user=self.operator)
		response = CancelJobView.as_view()(request, job_id=self.job.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['penalty'], '50.00')

	def test_complete_endpoint(self):
		request = self.factory.post('/api/jobs/%d/complete/' % self.job.id, {'earnings': '55.00'}, format='json')
		force_authenticate(request, user=self.operator)
		response = CompleteJobView.as_view()(request, job_id=self.job.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['job']['status'], 'completed')
		self.assertEqual(response.data['earnings'], '55.00')

	def test_requester_cannot_complete(self):
		request = self.factory.post('/api/jobs/%d/complete/' % self.job.id, {}, format='json')
		force_authenticate(request, user=self.requester)
		response = CompleteJobView.as_view()(request, job_id=self.job.id)

		self.assertEqual(response.status_code, 403)
