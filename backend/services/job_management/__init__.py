"""
Job management services.

Owns the AcceptedJob lifecycle, the earnings ledger and penalty postings.
"""

from .job_lifecycle import (
    JobResult,
    cancel_job,
    complete_job,
    create_job,
    get_current_job,
    start_job,
    update_progress,
)
from .ledger import earnings_summary, post_earnings, post_penalty
from .penalties import (
    BudgetParseError,
    compute_penalty,
    default_penalty_policy,
    estimate_job_value,
    parse_budget_range,
)
from .ratings import rate_job

__all__ = [
    'JobResult',
    'create_job',
    'start_job',
    'update_progress',
    'complete_job',
    'cancel_job',
    'get_current_job',
    'rate_job',
    'earnings_summary',
    'post_earnings',
    'post_penalty',
    'BudgetParseError',
    'compute_penalty',
    'default_penalty_policy',
    'estimate_job_value',
    'parse_budget_range',
]
