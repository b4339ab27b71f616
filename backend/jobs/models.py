from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from operators.tiers import OperatorTier


class AcceptedJob(models.Model):
    """Durable record of an assigned request, from acceptance to completion."""

    STATUS_ACCEPTED = 'accepted'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    request = models.OneToOneField(
        'marketplace.ServiceRequest',
        on_delete=models.CASCADE,
        related_name='job'
    )
    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='jobs'
    )
    quote = models.OneToOneField(
        'marketplace.Quote',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='job'
    )
    tier = models.CharField(max_length=20, choices=OperatorTier.choices)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACCEPTED)
    progress = models.PositiveSmallIntegerField(
        default=0, validators=[MinValueValidator(0), MaxValueValidator(100)]
    )

    estimated_value = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    earnings = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Timestamps
    accepted_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True)
    cancelled_by_operator = models.BooleanField(null=True, blank=True)

    class Meta:
        db_table = 'accepted_jobs'
        ordering = ['-accepted_at']
        constraints = [
            models.UniqueConstraint(
                fields=['operator'],
                condition=Q(status='in_progress'),
                name='one_in_progress_job_per_operator'
            ),
        ]

    def __str__(self):
        return f"Job #{self.id} - {self.operator} - {self.tier} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES


class EarningsLedger(models.Model):
    """Daily and monthly earnings aggregates per operator and tier."""

    PERIOD_DAILY = 'daily'
    PERIOD_MONTHLY = 'monthly'
    PERIOD_CHOICES = [
        (PERIOD_DAILY, 'Daily'),
        (PERIOD_MONTHLY, 'Monthly'),
    ]

    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='earnings_ledger'
    )
    tier = models.CharField(max_length=20, choices=OperatorTier.choices)
    period = models.CharField(max_length=10, choices=PERIOD_CHOICES)
    period_start = models.DateField()
    total_earnings = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    jobs_completed = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'earnings_ledger'
        ordering = ['-period_start']
        constraints = [
            models.UniqueConstraint(
                fields=['operator', 'tier', 'period', 'period_start'],
                name='unique_ledger_period'
            )
        ]

    def __str__(self):
        return f"{self.operator} {self.tier} {self.period} {self.period_start}: {self.total_earnings}"


class PenaltyRecord(models.Model):
    """Append-only penalty posted for an early operator cancellation."""

    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='penalties'
    )
    job = models.ForeignKey(
        AcceptedJob,
        on_delete=models.CASCADE,
        related_name='penalties'
    )
    tier = models.CharField(max_length=20, choices=OperatorTier.choices)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    reason = models.TextField(blank=True)
    progress_at_cancellation = models.PositiveSmallIntegerField(default=0)
    period_day = models.DateField()
    period_month = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'penalty_records'
        ordering = ['-created_at']

    def __str__(self):
        return f"Penalty {self.amount} - {self.operator} - Job {self.job_id}"


class OperatorRating(models.Model):
    """A requester's 1-5 star rating of a completed job."""

    job = models.OneToOneField(
        AcceptedJob,
        on_delete=models.CASCADE,
        related_name='rating'
    )
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ratings_given'
    )
    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ratings_received'
    )
    stars = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    review = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'operator_ratings'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.stars}* for {self.operator} (Job {self.job_id})"
