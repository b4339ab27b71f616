from django.contrib import admin

from operators.models import OperatorProfile, OperatorTierSubscription


class OperatorTierSubscriptionInline(admin.TabularInline):
    model = OperatorTierSubscription
    extra = 0


@admin.register(OperatorProfile)
class OperatorProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Operator Profiles"""

    list_display = [
        "user",
        "online_tier",
        "view_tier",
        "rating",
        "is_certified",
        "home_latitude",
        "home_longitude",
    ]

    list_filter = [
        "online_tier",
        "is_certified",
    ]

    search_fields = [
        "user__username",
        "display_name",
    ]

    readonly_fields = [
        "last_location_update",
        "online_since",
    ]

    inlines = [OperatorTierSubscriptionInline]

    ordering = ("user__username",)
