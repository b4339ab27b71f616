import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Avg, Count

from jobs.models import AcceptedJob, OperatorRating
from operators.models import OperatorProfile
from services.exceptions import (
    AlreadyRatedError,
    InvalidTransitionError,
    JobNotFoundError,
    NotOwnerError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def rate_job(requester, job_id: int, stars, review: str = "") -> OperatorRating:
    """Rate a completed job once and refresh the operator's average."""
    try:
        stars = int(stars)
    except (TypeError, ValueError):
        raise ValidationError("Rating must be a whole number")
    if not 1 <= stars <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    with transaction.atomic():
        try:
            job = AcceptedJob.objects.select_for_update().select_related("request").get(id=job_id)
        except AcceptedJob.DoesNotExist:
            raise JobNotFoundError()
        if job.request.requester_id != requester.id:
            raise NotOwnerError("Only the requester can rate this job")
        if job.status != AcceptedJob.STATUS_COMPLETED:
            raise InvalidTransitionError("Only completed jobs can be rated")
        if OperatorRating.objects.filter(job=job).exists():
            raise AlreadyRatedError()

        rating = OperatorRating.objects.create(
            job=job,
            requester=requester,
            operator_id=job.operator_id,
            stars=stars,
            review=review or "",
        )

        stats = OperatorRating.objects.filter(operator_id=job.operator_id).aggregate(
            avg=Avg("stars"), count=Count("id")
        )
        OperatorProfile.objects.filter(user_id=job.operator_id).update(
            rating=Decimal(str(stats["avg"])).quantize(Decimal("0.01")),
            total_ratings=stats["count"],
        )

    logger.info("Job %s rated %s stars by %s", job.id, stars, requester.id)
    return rating
