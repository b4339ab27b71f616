"""Tells what to show in the Django admin interface for the marketplace app"""

from django.contrib import admin
from .models import ServiceRequest, Quote, DispatchQueueEntry


class QuoteInline(admin.TabularInline):
    model = Quote
    extra = 0
    readonly_fields = ['submitted_at', 'responded_at']


class DispatchQueueEntryInline(admin.TabularInline):
    model = DispatchQueueEntry
    extra = 0
    readonly_fields = ['notified_at', 'expires_at', 'responded_at']


@admin.register(ServiceRequest)
class ServiceRequestAdmin(admin.ModelAdmin):
    """Service Request admin"""
    list_display = ['id', 'requester', 'operator', 'service_type', 'is_emergency', 'status',
                    'negotiation_status', 'quote_count', 'created_at']
    list_filter = ['status', 'negotiation_status', 'is_emergency', 'created_at']
    search_fields = ['requester__username', 'operator__username', 'service_type', 'address']
    readonly_fields = ['created_at', 'assigned_at', 'cancelled_at']
    date_hierarchy = 'created_at'
    inlines = [QuoteInline, DispatchQueueEntryInline]


@admin.register(Quote)
class QuoteAdmin(admin.ModelAdmin):
    list_display = ("request", "operator", "tier", "price", "eta_minutes", "status", "submitted_at")
    list_filter = ("status", "tier")
    search_fields = ("request__id", "operator__username")


@admin.register(DispatchQueueEntry)
class DispatchQueueEntryAdmin(admin.ModelAdmin):
    list_display = ("request", "operator", "position", "status", "notified_at", "expires_at")
    list_filter = ("status",)
    search_fields = ("request__id", "operator__username")
