from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from operators.models import OperatorProfile, OperatorTierSubscription
from operators.tiers import OperatorTier, SERVICE_CATALOG, get_tier_rules


class OperatorTierSubscriptionSerializer(serializers.ModelSerializer):
    label = serializers.SerializerMethodField()
    pricing_multiplier = serializers.SerializerMethodField()

    class Meta:
        model = OperatorTierSubscription
        fields = ["tier", "label", "operating_radius_km", "pricing_multiplier", "subscribed_at"]
        read_only_fields = fields

    def get_label(self, obj):
        return get_tier_rules(obj.tier).label

    def get_pricing_multiplier(self, obj):
        return str(get_tier_rules(obj.tier).pricing_multiplier)


class OperatorProfileSerializer(serializers.ModelSerializer):
    """
    Full operator profile serializer
    """
    user = UserBasicSerializer(read_only=True)
    subscriptions = OperatorTierSubscriptionSerializer(source="tier_subscriptions", many=True, read_only=True)
    is_online = serializers.BooleanField(read_only=True)

    class Meta:
        model = OperatorProfile
        fields = [
            "id",
            "user",
            "display_name",
            "home_latitude",
            "home_longitude",
            "current_latitude",
            "current_longitude",
            "last_location_update",
            "services",
            "rating",
            "total_ratings",
            "completed_jobs",
            "is_certified",
            "business_license",
            "is_online",
            "online_tier",
            "online_since",
            "view_tier",
            "subscriptions",
        ]
        read_only_fields = [
            "id", "current_latitude", "current_longitude", "last_location_update",
            "rating", "total_ratings", "completed_jobs", "is_certified", "business_license",
            "online_tier", "online_since", "view_tier",
        ]

    def validate_services(self, value):
        if not isinstance(value, list) or not all(isinstance(s, str) and s for s in value):
            raise serializers.ValidationError("services must be a list of service ids")
        return sorted(set(value))

    def validate(self, attrs):
        lat = attrs.get("home_latitude", getattr(self.instance, "home_latitude", None))
        lon = attrs.get("home_longitude", getattr(self.instance, "home_longitude", None))
        if (lat is None) != (lon is None):
            raise serializers.ValidationError("home_latitude and home_longitude must be set together")
        return attrs


class PresenceSerializer(serializers.Serializer):
    """
    Serializer for going online on a tier or going offline.
    """
    online = serializers.BooleanField()
    tier = serializers.ChoiceField(choices=OperatorTier.choices, required=False, allow_null=True)
    confirmed = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs["online"] and not attrs.get("tier"):
            raise serializers.ValidationError("tier is required to go online")
        return attrs


class ViewTierSerializer(serializers.Serializer):
    tier = serializers.ChoiceField(choices=OperatorTier.choices)


class SubscribeTierSerializer(serializers.Serializer):
    tier = serializers.ChoiceField(choices=OperatorTier.choices)
    operating_radius_km = serializers.DecimalField(
        max_digits=6, decimal_places=2, required=False, allow_null=True
    )


class LocationUpdateSerializer(serializers.Serializer):
    latitude = serializers.DecimalField(max_digits=10, decimal_places=7, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=10, decimal_places=7, min_value=-180, max_value=180)


class ServiceCatalogSerializer(serializers.Serializer):
    service_id = serializers.CharField()
    name = serializers.CharField()
    tiers = serializers.SerializerMethodField()
    requires_certification = serializers.BooleanField()
    requires_business_license = serializers.BooleanField()

    def get_tiers(self, obj):
        return sorted(obj.tiers)


def catalog():
    return ServiceCatalogSerializer(SERVICE_CATALOG.values(), many=True).data
