from django.contrib import admin

from .models import AcceptedJob, EarningsLedger, OperatorRating, PenaltyRecord


@admin.register(AcceptedJob)
class AcceptedJobAdmin(admin.ModelAdmin):
    list_display = ['id', 'request', 'operator', 'tier', 'status', 'progress', 'earnings', 'accepted_at']
    list_filter = ['status', 'tier', 'accepted_at']
    search_fields = ['operator__username', 'request__id']
    readonly_fields = ['accepted_at', 'started_at', 'completed_at', 'cancelled_at']
    date_hierarchy = 'accepted_at'


@admin.register(EarningsLedger)
class EarningsLedgerAdmin(admin.ModelAdmin):
    list_display = ("operator", "tier", "period", "period_start", "total_earnings", "jobs_completed")
    list_filter = ("period", "tier")
    search_fields = ("operator__username",)


@admin.register(PenaltyRecord)
class PenaltyRecordAdmin(admin.ModelAdmin):
    list_display = ("operator", "job", "tier", "amount", "progress_at_cancellation", "created_at")
    list_filter = ("tier",)
    search_fields = ("operator__username", "job__id")


@admin.register(OperatorRating)
class OperatorRatingAdmin(admin.ModelAdmin):
    list_display = ("job", "operator", "requester", "stars", "created_at")
    list_filter = ("stars",)
