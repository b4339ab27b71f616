from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from .models import DispatchQueueEntry, Quote, ServiceRequest


class ServiceRequestSerializer(serializers.ModelSerializer):
    """Serializer for Service Requests"""
    requester = UserBasicSerializer(read_only=True)
    operator = UserBasicSerializer(read_only=True)
    job_id = serializers.SerializerMethodField()

    class Meta:
        model = ServiceRequest
        fields = ['id', 'requester', 'operator', 'service_type', 'description', 'address',
                  'latitude', 'longitude', 'is_emergency', 'budget_range', 'status',
                  'negotiation_status', 'quote_window_expires_at', 'quote_count',
                  'created_at', 'assigned_at', 'cancelled_at', 'cancellation_reason', 'job_id']
        read_only_fields = fields

    def get_job_id(self, obj):
        job = getattr(obj, 'job', None)
        return job.id if job else None


class ServiceRequestCreateSerializer(serializers.Serializer):
    """Input for posting a request; emergencies need coordinates"""
    service_type = serializers.CharField(max_length=50)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    address = serializers.CharField(required=False, allow_blank=True, default="")
    latitude = serializers.DecimalField(max_digits=10, decimal_places=7, required=False, allow_null=True,
                                        min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=10, decimal_places=7, required=False, allow_null=True,
                                         min_value=-180, max_value=180)
    is_emergency = serializers.BooleanField(required=False, default=False)
    budget_range = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        has_lat = attrs.get('latitude') is not None
        has_lon = attrs.get('longitude') is not None
        if has_lat != has_lon:
            raise serializers.ValidationError("Latitude and longitude must be given together.")
        if attrs.get('is_emergency') and not has_lat:
            raise serializers.ValidationError("Emergency requests need a location.")
        return attrs


class CancelSerializer(serializers.Serializer):
    """Serializer for request and job cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class QuoteSerializer(serializers.ModelSerializer):
    operator = UserBasicSerializer(read_only=True)

    class Meta:
        model = Quote
        fields = ['id', 'request', 'operator', 'tier', 'price', 'eta_minutes', 'message',
                  'status', 'submitted_at', 'expires_at', 'responded_at']
        read_only_fields = fields


class QuoteSubmitSerializer(serializers.Serializer):
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    eta_minutes = serializers.IntegerField(min_value=1)
    message = serializers.CharField(required=False, allow_blank=True, default="")


class DispatchQueueEntrySerializer(serializers.ModelSerializer):
    operator = UserBasicSerializer(read_only=True)

    class Meta:
        model = DispatchQueueEntry
        fields = ['id', 'position', 'operator', 'status', 'distance_km',
                  'notified_at', 'expires_at', 'responded_at']
        read_only_fields = fields


class CandidateSerializer(serializers.Serializer):
    """A ranked operator candidate (services.matching.Candidate)"""
    operator_id = serializers.IntegerField()
    display_name = serializers.CharField(source='profile.display_name')
    tier = serializers.CharField()
    rating = serializers.DecimalField(max_digits=3, decimal_places=2)
    distance_km = serializers.FloatField(allow_null=True)
