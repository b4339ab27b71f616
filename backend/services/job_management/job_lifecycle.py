"""
Accepted job lifecycle: start, progress, complete and cancel.

Every mutating call locks the job row and verifies the caller owns the job
before anything changes. An operator holds at most one in-progress job
across all of their tiers.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from jobs.models import AcceptedJob
from marketplace.models import ServiceRequest
from operators.models import OperatorProfile
from realtime.notifications import notify_operator_event, notify_requester_event
from services.exceptions import (
    InvalidTransitionError,
    JobInProgressError,
    JobNotFoundError,
    NotOwnerError,
    ValidationError,
)
from .ledger import post_earnings, post_penalty
from .penalties import compute_penalty

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    """Result object for job operations."""
    success: bool
    job: Optional[AcceptedJob] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


def create_job(service_request: ServiceRequest, operator, tier: str, quote=None, estimated_value=None) -> AcceptedJob:
    """Open the AcceptedJob for a freshly assigned request (caller holds the request lock)."""
    job = AcceptedJob.objects.create(
        request=service_request,
        operator=operator,
        quote=quote,
        tier=tier,
        estimated_value=estimated_value,
    )
    logger.info(
        "Created job %s for request %s (operator %s, tier %s)",
        job.id, service_request.id, operator.id, tier,
    )
    return job


def _lock_job(job_id: int) -> AcceptedJob:
    try:
        return (
            AcceptedJob.objects.select_for_update()
            .select_related("request")
            .get(id=job_id)
        )
    except AcceptedJob.DoesNotExist:
        raise JobNotFoundError()


def _ensure_operator_owns(job: AcceptedJob, operator):
    if job.operator_id != operator.id:
        raise NotOwnerError("This job is assigned to another operator")


def _ensure_not_terminal(job: AcceptedJob):
    if job.is_terminal:
        raise InvalidTransitionError(f"Job is already {job.status}")


# ===================== Operator Operations =====================

def start_job(operator, job_id: int, now=None) -> JobResult:
    """
    Move an accepted job to in_progress.

    Raises:
        JobInProgressError: the operator already has a job in progress on any tier
    """
    now = now or timezone.now()
    with transaction.atomic():
        job = _lock_job(job_id)
        _ensure_operator_owns(job, operator)
        if job.status != AcceptedJob.STATUS_ACCEPTED:
            raise InvalidTransitionError(f"Cannot start a job that is {job.status}")

        if AcceptedJob.objects.filter(
            operator=operator, status=AcceptedJob.STATUS_IN_PROGRESS
        ).exclude(id=job.id).exists():
            raise JobInProgressError()

        job.status = AcceptedJob.STATUS_IN_PROGRESS
        job.started_at = now
        try:
            with transaction.atomic():
                job.save(update_fields=["status", "started_at"])
        except IntegrityError:
            # Concurrent start on another tier won the constraint
            raise JobInProgressError()

        logger.info("Operator %s started job %s", operator.id, job.id)
        notify_requester_event(
            "job_started", job.request, "Your operator has started the job.",
            extra={"job_id": job.id},
        )
    return JobResult(success=True, job=job, message="Job started")


def update_progress(operator, job_id: int, percent) -> JobResult:
    """Record progress on an in-progress job; values are clamped to 0-100."""
    try:
        percent = int(percent)
    except (TypeError, ValueError):
        raise ValidationError("Progress must be a whole number")

    with transaction.atomic():
        job = _lock_job(job_id)
        _ensure_operator_owns(job, operator)
        if job.status != AcceptedJob.STATUS_IN_PROGRESS:
            raise InvalidTransitionError("Progress can only be updated on a job in progress")

        job.progress = max(0, min(100, percent))
        job.save(update_fields=["progress"])

    logger.debug("Job %s progress -> %s%%", job.id, job.progress)
    return JobResult(success=True, job=job, message="Progress updated")


def complete_job(operator, job_id: int, earnings=None, now=None) -> JobResult:
    """
    Complete an in-progress job and post its earnings.

    Without an explicit amount the job's estimated value is booked.
    """
    now = now or timezone.now()
    with transaction.atomic():
        job = _lock_job(job_id)
        _ensure_operator_owns(job, operator)
        if job.status != AcceptedJob.STATUS_IN_PROGRESS:
            raise InvalidTransitionError("Only a job in progress can be completed")

        if earnings is None:
            earnings = job.estimated_value
        if earnings is None:
            raise ValidationError("Earnings are required to complete this job")
        try:
            earnings = Decimal(str(earnings)).quantize(Decimal("0.01"))
        except InvalidOperation:
            raise ValidationError("Earnings must be a number")
        if not earnings.is_finite():
            raise ValidationError("Earnings must be a number")
        if earnings < 0:
            raise ValidationError("Earnings cannot be negative")

        job.status = AcceptedJob.STATUS_COMPLETED
        job.progress = 100
        job.earnings = earnings
        job.completed_at = now
        job.save(update_fields=["status", "progress", "earnings", "completed_at"])

        service_request = job.request
        service_request.status = ServiceRequest.STATUS_COMPLETED
        service_request.save(update_fields=["status"])

        OperatorProfile.objects.filter(user_id=job.operator_id).update(
            completed_jobs=F("completed_jobs") + 1
        )
        post_earnings(operator, job.tier, earnings, now)

        logger.info("Operator %s completed job %s for %s", operator.id, job.id, earnings)
        notify_requester_event(
            "job_completed", service_request, "Your job is complete. Please rate your operator.",
            extra={"job_id": job.id},
        )
    return JobResult(success=True, job=job, message="Job completed", extra={"earnings": str(earnings)})


# ===================== Cancellation =====================

def cancel_job(user, job_id: int, reason: str = "", now=None) -> JobResult:
    """
    Cancel a non-terminal job on behalf of its operator or its requester.

    Operator cancellations below the progress threshold incur a penalty;
    a penalty that cannot be computed is skipped and the cancel proceeds.
    """
    now = now or timezone.now()
    penalty = None
    with transaction.atomic():
        job = _lock_job(job_id)
        by_operator = job.operator_id == user.id
        if not by_operator and job.request.requester_id != user.id:
            raise NotOwnerError("You are not part of this job")
        _ensure_not_terminal(job)

        job.status = AcceptedJob.STATUS_CANCELLED
        job.cancelled_at = now
        job.cancellation_reason = reason or ""
        job.cancelled_by_operator = by_operator
        job.save(update_fields=[
            "status", "cancelled_at", "cancellation_reason", "cancelled_by_operator",
        ])

        service_request = job.request
        service_request.status = ServiceRequest.STATUS_CANCELLED
        service_request.cancelled_at = now
        service_request.cancellation_reason = reason or ""
        service_request.save(update_fields=["status", "cancelled_at", "cancellation_reason"])

        if by_operator:
            amount = compute_penalty(job)
            if amount is not None:
                penalty = post_penalty(job, amount, reason or "Early cancellation", now)
            notify_requester_event(
                "job_cancelled", service_request, "Your operator cancelled the job.",
                extra={"job_id": job.id},
            )
        else:
            notify_operator_event(
                "job_cancelled", service_request, job.operator_id,
                "The requester cancelled the job.", extra={"job_id": job.id},
            )

    logger.info(
        "Job %s cancelled by %s %s (penalty: %s)",
        job.id, "operator" if by_operator else "requester", user.id,
        penalty.amount if penalty else None,
    )
    extra = {"penalty": str(penalty.amount) if penalty else None}
    return JobResult(success=True, job=job, message="Job cancelled", extra=extra)


def get_current_job(operator) -> Optional[AcceptedJob]:
    """The operator's most recent non-terminal job, in progress first."""
    jobs = AcceptedJob.objects.filter(operator=operator).exclude(
        status__in=AcceptedJob.TERMINAL_STATUSES
    ).select_related("request")
    return (
        jobs.filter(status=AcceptedJob.STATUS_IN_PROGRESS).first()
        or jobs.order_by("-accepted_at").first()
    )
