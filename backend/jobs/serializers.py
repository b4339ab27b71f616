from rest_framework import serializers

from marketplace.serializers import ServiceRequestSerializer
from .models import AcceptedJob, OperatorRating, PenaltyRecord


class AcceptedJobSerializer(serializers.ModelSerializer):
    request = ServiceRequestSerializer(read_only=True)
    penalty = serializers.SerializerMethodField()

    class Meta:
        model = AcceptedJob
        fields = ['id', 'request', 'operator', 'quote', 'tier', 'status', 'progress',
                  'estimated_value', 'earnings', 'accepted_at', 'started_at', 'completed_at',
                  'cancelled_at', 'cancellation_reason', 'cancelled_by_operator', 'penalty']
        read_only_fields = fields

    def get_penalty(self, obj):
        record = obj.penalties.first()
        return str(record.amount) if record else None


class ProgressSerializer(serializers.Serializer):
    # Out-of-range values are clamped by the service
    progress = serializers.IntegerField()


class CompleteJobSerializer(serializers.Serializer):
    earnings = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)


class RatingSerializer(serializers.Serializer):
    stars = serializers.IntegerField(min_value=1, max_value=5)
    review = serializers.CharField(required=False, allow_blank=True, default="")


class OperatorRatingSerializer(serializers.ModelSerializer):
    class Meta:
        model = OperatorRating
        fields = ['id', 'job', 'operator', 'requester', 'stars', 'review', 'created_at']
        read_only_fields = fields


class PenaltyRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = PenaltyRecord
        fields = ['id', 'job', 'tier', 'amount', 'reason', 'progress_at_cancellation', 'created_at']
        read_only_fields = fields
