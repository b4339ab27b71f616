"""Earnings and penalty postings, keyed by operator, tier and period."""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Tuple

from django.db import IntegrityError, transaction
from django.db.models import F, Q, Sum
from django.utils import timezone

from jobs.models import EarningsLedger, PenaltyRecord

logger = logging.getLogger(__name__)


def period_keys(when=None) -> Tuple[date, date]:
    """(day, first day of month) for a moment, in the project timezone."""
    day = timezone.localdate(when or timezone.now())
    return day, day.replace(day=1)


def _ledger_row(operator, tier: str, period: str, period_start: date) -> EarningsLedger:
    lookup = dict(operator=operator, tier=tier, period=period, period_start=period_start)
    try:
        with transaction.atomic():
            row, _ = EarningsLedger.objects.get_or_create(**lookup)
    except IntegrityError:
        # Lost the insert race; the row exists now
        row = EarningsLedger.objects.get(**lookup)
    return row


def post_earnings(operator, tier: str, amount: Decimal, when=None):
    """Add a completed job's earnings to the daily and monthly aggregates."""
    day, month = period_keys(when)
    rows = []
    for period, start in (
        (EarningsLedger.PERIOD_DAILY, day),
        (EarningsLedger.PERIOD_MONTHLY, month),
    ):
        row = _ledger_row(operator, tier, period, start)
        EarningsLedger.objects.filter(pk=row.pk).update(
            total_earnings=F("total_earnings") + amount,
            jobs_completed=F("jobs_completed") + 1,
        )
        row.refresh_from_db()
        rows.append(row)

    logger.info("Posted earnings %s for operator %s (%s)", amount, operator.id, tier)
    return rows


def post_penalty(job, amount: Decimal, reason: str = "", when=None) -> PenaltyRecord:
    day, month = period_keys(when)
    record = PenaltyRecord.objects.create(
        operator_id=job.operator_id,
        job=job,
        tier=job.tier,
        amount=amount,
        reason=reason,
        progress_at_cancellation=job.progress,
        period_day=day,
        period_month=month,
    )
    logger.info(
        "Posted penalty %s for operator %s on job %s (progress %s%%)",
        amount, job.operator_id, job.id, job.progress,
    )
    return record


def earnings_summary(operator, when=None) -> Dict[str, Dict[str, str]]:
    """Today's and this month's earnings and penalties per tier."""
    day, month = period_keys(when)
    summary: Dict[str, Dict[str, str]] = {}

    rows = EarningsLedger.objects.filter(operator=operator).filter(
        Q(period=EarningsLedger.PERIOD_DAILY, period_start=day)
        | Q(period=EarningsLedger.PERIOD_MONTHLY, period_start=month)
    )
    for row in rows:
        tier_summary = summary.setdefault(row.tier, {})
        tier_summary[f"{row.period}_earnings"] = str(row.total_earnings)
        tier_summary[f"{row.period}_jobs"] = row.jobs_completed

    penalties = (
        PenaltyRecord.objects.filter(operator=operator, period_month=month)
        .values("tier")
        .annotate(total=Sum("amount"))
    )
    for item in penalties:
        summary.setdefault(item["tier"], {})["monthly_penalties"] = str(item["total"])

    return summary
