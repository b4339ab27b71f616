from django.conf import settings
from django.db import models
from django.utils import timezone

from .tiers import OperatorTier, get_tier_rules

User = settings.AUTH_USER_MODEL


class OperatorProfile(models.Model):
    """Operator-specific details, presence and matching attributes"""

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='operator_profile')
    display_name = models.CharField(max_length=120, blank=True)

    # Home base used for radius eligibility
    home_latitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    home_longitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)

    # Last known position (persisted only, never streamed)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    last_location_update = models.DateTimeField(null=True, blank=True)

    services = models.JSONField(default=list, blank=True)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    total_ratings = models.IntegerField(default=0)
    completed_jobs = models.IntegerField(default=0)
    is_certified = models.BooleanField(default=False)
    business_license = models.CharField(max_length=100, blank=True)

    # Presence: the single online tier. NULL means offline.
    online_tier = models.CharField(
        max_length=20, choices=OperatorTier.choices, null=True, blank=True
    )
    online_since = models.DateTimeField(null=True, blank=True)
    # UI routing hint only, survives going offline
    view_tier = models.CharField(
        max_length=20, choices=OperatorTier.choices, null=True, blank=True
    )

    class Meta:
        db_table = 'operator_profiles'

    def __str__(self):
        return f"{self.user.username} ({self.online_tier or 'offline'})"

    @property
    def is_online(self):
        return self.online_tier is not None

    @property
    def subscribed_tiers(self):
        return {sub.tier for sub in self.tier_subscriptions.all()}

    @property
    def has_home_location(self):
        return self.home_latitude is not None and self.home_longitude is not None

    def offers_service(self, service_type: str) -> bool:
        return service_type in (self.services or [])

    def radius_for(self, tier: str):
        """Operating radius in km for a tier, None when unrestricted."""
        for sub in self.tier_subscriptions.all():
            if sub.tier == tier:
                return sub.operating_radius_km
        return get_tier_rules(tier).radius_km


class OperatorTierSubscription(models.Model):
    """A tier the operator is allowed to go online on, with its own radius."""

    operator = models.ForeignKey(
        OperatorProfile,
        on_delete=models.CASCADE,
        related_name='tier_subscriptions',
    )
    tier = models.CharField(max_length=20, choices=OperatorTier.choices)
    operating_radius_km = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    subscribed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'operator_tier_subscriptions'
        constraints = [
            models.UniqueConstraint(
                fields=['operator', 'tier'],
                name='unique_operator_tier'
            )
        ]

    def __str__(self):
        radius = self.operating_radius_km if self.operating_radius_km is not None else 'unrestricted'
        return f"{self.operator.user.username} - {self.tier} ({radius})"
