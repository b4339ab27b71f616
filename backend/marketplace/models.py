from django.conf import settings
from django.db import models
from django.db.models import Q

from operators.tiers import OperatorTier


class ServiceRequest(models.Model):
    """A job posted by a requester, resolved by quotes or emergency dispatch."""

    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ASSIGNED, 'Assigned'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    NEGOTIATION_OPEN = 'open'
    NEGOTIATION_ACCEPTED = 'accepted'
    NEGOTIATION_EXPIRED = 'expired'
    NEGOTIATION_CLOSED = 'closed'
    NEGOTIATION_CHOICES = [
        (NEGOTIATION_OPEN, 'Open'),
        (NEGOTIATION_ACCEPTED, 'Accepted'),
        (NEGOTIATION_EXPIRED, 'Expired'),
        (NEGOTIATION_CLOSED, 'Closed'),
    ]

    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='service_requests'
    )
    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_requests'
    )

    service_type = models.CharField(max_length=50)
    description = models.TextField(blank=True)
    address = models.TextField(blank=True)
    latitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    longitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    is_emergency = models.BooleanField(default=False)
    budget_range = models.CharField(max_length=50, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    # Quote negotiation is tracked apart from the request itself
    negotiation_status = models.CharField(
        max_length=20, choices=NEGOTIATION_CHOICES, default=NEGOTIATION_OPEN
    )
    quote_window_expires_at = models.DateTimeField(null=True, blank=True)
    quote_count = models.IntegerField(default=0)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True)

    class Meta:
        db_table = 'service_requests'
        ordering = ['-created_at']

    def __str__(self):
        kind = 'Emergency' if self.is_emergency else 'Request'
        return f"{kind} #{self.id} - {self.service_type} - {self.status}"

    @property
    def has_coordinates(self):
        return self.latitude is not None and self.longitude is not None

    @property
    def is_open(self):
        return self.status == self.STATUS_PENDING


class Quote(models.Model):
    """An operator's priced proposal for a non-emergency request."""

    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_DECLINED = 'declined'
    STATUS_EXPIRED = 'expired'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_DECLINED, 'Declined'),
        (STATUS_EXPIRED, 'Expired'),
    ]

    request = models.ForeignKey(
        ServiceRequest,
        on_delete=models.CASCADE,
        related_name='quotes'
    )
    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='quotes'
    )
    tier = models.CharField(max_length=20, choices=OperatorTier.choices)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    eta_minutes = models.PositiveIntegerField()
    message = models.TextField(blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    submitted_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'quotes'
        ordering = ['submitted_at']
        constraints = [
            models.UniqueConstraint(
                fields=['request', 'operator'],
                name='unique_request_operator_quote'
            ),
            models.UniqueConstraint(
                fields=['request'],
                condition=Q(status='accepted'),
                name='one_accepted_quote_per_request'
            ),
        ]

    def __str__(self):
        return f"Quote #{self.id} - Request {self.request_id} -> {self.operator} ({self.status})"


class DispatchQueueEntry(models.Model):
    """One slot in the ordered dispatch queue of an emergency request."""

    STATUS_PENDING = 'pending'
    STATUS_NOTIFIED = 'notified'
    STATUS_ACCEPTED = 'accepted'
    STATUS_DECLINED = 'declined'
    STATUS_EXPIRED = 'expired'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_NOTIFIED, 'Notified'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_DECLINED, 'Declined'),
        (STATUS_EXPIRED, 'Expired'),
    ]

    request = models.ForeignKey(
        ServiceRequest,
        on_delete=models.CASCADE,
        related_name='dispatch_entries'
    )
    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='dispatch_entries'
    )
    position = models.PositiveIntegerField()  # 1 = nearest operator
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    distance_km = models.DecimalField(max_digits=8, decimal_places=3, null=True, blank=True)

    notified_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'dispatch_queue_entries'
        ordering = ['position']
        constraints = [
            models.UniqueConstraint(
                fields=['request', 'operator'],
                name='unique_dispatch_request_operator'
            ),
            models.UniqueConstraint(
                fields=['request', 'position'],
                name='unique_dispatch_request_position'
            ),
            models.UniqueConstraint(
                fields=['request'],
                condition=Q(status='notified'),
                name='one_notified_entry_per_request'
            ),
        ]

    def __str__(self):
        return f"Dispatch #{self.position} - Request {self.request_id} -> {self.operator} ({self.status})"
