"""
Early-cancellation penalty policy.

The active policy is a plain function ``policy(job) -> Decimal | None``
named by the ``CANCELLATION_PENALTY_POLICY`` setting, so the rule can be
swapped without touching the job lifecycle.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Tuple

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

DEFAULT_POLICY = "services.job_management.penalties.default_penalty_policy"
CENTS = Decimal("0.01")

_AMOUNT_RE = re.compile(r"\d+(?:\.\d+)?")


class BudgetParseError(ValueError):
    """Raised when a budget string holds no usable amount."""


def parse_budget_range(budget: str) -> Tuple[Decimal, Decimal]:
    """
    Parse a free-text budget such as "$40-$60", "$40–$60", "1,200" or "$75".

    Returns:
        (low, high); a single amount yields the same value twice
    """
    if not budget or not budget.strip():
        raise BudgetParseError("empty budget")

    amounts = [Decimal(m) for m in _AMOUNT_RE.findall(budget.replace(",", ""))]
    if not amounts or len(amounts) > 2:
        raise BudgetParseError(f"cannot read budget {budget!r}")

    low, high = amounts[0], amounts[-1]
    if low > high:
        low, high = high, low
    return low, high


def estimate_job_value(job) -> Optional[Decimal]:
    """
    Best estimate of what the job is worth.

    The midpoint of the request's budget range wins; without a budget the
    accepted quote price (stored as ``estimated_value``) is used.
    """
    budget = job.request.budget_range
    if budget:
        low, high = parse_budget_range(budget)
        return ((low + high) / 2).quantize(CENTS, rounding=ROUND_HALF_UP)
    if job.estimated_value is not None:
        return Decimal(job.estimated_value).quantize(CENTS, rounding=ROUND_HALF_UP)
    return None


def progress_threshold() -> int:
    return getattr(settings, "PENALTY_PROGRESS_THRESHOLD", 50)


def default_penalty_policy(job) -> Optional[Decimal]:
    """Full estimated value below the progress threshold, nothing at or above it."""
    if job.progress >= progress_threshold():
        return None
    return estimate_job_value(job)


def get_penalty_policy() -> Callable:
    return import_string(getattr(settings, "CANCELLATION_PENALTY_POLICY", DEFAULT_POLICY))


def compute_penalty(job) -> Optional[Decimal]:
    """
    Run the configured policy for an operator cancellation.

    Never raises: a failed computation is logged and yields no penalty, so
    the cancellation itself always goes through.
    """
    try:
        amount = get_penalty_policy()(job)
    except BudgetParseError as e:
        logger.warning("Skipping penalty for job %s: %s", job.id, e)
        return None
    except Exception:
        logger.exception("Penalty policy failed for job %s", job.id)
        return None

    if amount is None or amount <= 0:
        return None
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
