from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from accounts.models import User
from common.responses import error_response
from operators.models import OperatorProfile
from operators.serializers import (
    LocationUpdateSerializer,
    OperatorProfileSerializer,
    OperatorTierSubscriptionSerializer,
    PresenceSerializer,
    SubscribeTierSerializer,
    ViewTierSerializer,
    catalog,
)
from operators.tiers import TIER_RULES
from services.exceptions import MarketplaceError
from services.presence import (
    set_presence,
    set_view_tier,
    subscribe_tier,
    update_operator_location,
)


# Utility: Ensure request.user is an operator
def require_operator(user, create=False):
    if user.role != User.ROLE_OPERATOR:
        return False, Response({"error": "Only operators allowed"}, status=403)
    if create:
        profile, _ = OperatorProfile.objects.get_or_create(user=user)
        return True, profile
    try:
        return True, user.operator_profile
    except OperatorProfile.DoesNotExist:
        return False, Response({"error": "Operator profile not found"}, status=404)


class OperatorProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile  # Response object

        serializer = OperatorProfileSerializer(profile, context={"request": request})
        return Response(serializer.data)

    def post(self, request):
        ok, profile = require_operator(request.user, create=True)
        if ok is False:
            return profile

        serializer = OperatorProfileSerializer(
            profile, data=request.data, partial=True, context={"request": request}
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data, status=200)


class PresenceView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile

        return Response({
            "is_online": profile.is_online,
            "active_tier": profile.online_tier,
            "view_tier": profile.view_tier,
            "online_since": profile.online_since,
            "subscribed_tiers": sorted(profile.subscribed_tiers),
        })

    def put(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile

        serializer = PresenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = set_presence(request.user, data.get("tier"), data["online"], data["confirmed"])
        except MarketplaceError as e:
            return error_response(e)

        # A pending switch confirmation is a normal answer, not an error
        return Response(result.as_dict())


class ViewTierView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile

        serializer = ViewTierSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = set_view_tier(request.user, serializer.validated_data["tier"])
        except MarketplaceError as e:
            return error_response(e)

        return Response({
            "view_tier": result.profile.view_tier,
            "active_tier": result.profile.online_tier,
        })


class TierSubscriptionView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile

        serializer = OperatorTierSubscriptionSerializer(profile.tier_subscriptions.all(), many=True)
        return Response({"subscriptions": serializer.data})

    def post(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile

        serializer = SubscribeTierSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            subscription = subscribe_tier(
                request.user,
                serializer.validated_data["tier"],
                serializer.validated_data.get("operating_radius_km"),
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response(OperatorTierSubscriptionSerializer(subscription).data, status=201)


class OperatorLocationView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
        })

    def post(self, request):
        ok, profile = require_operator(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        try:
            profile = update_operator_location(request.user, lat, lon)
        except MarketplaceError as e:
            return error_response(e)

        return Response({
            "message": "Location updated",
            "latitude": float(lat),
            "longitude": float(lon),
            "last_updated": profile.last_location_update,
        })


class TierCatalogView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        tiers = [
            {
                "tier": rules.tier,
                "label": rules.label,
                "radius_km": str(rules.radius_km) if rules.radius_km is not None else None,
                "radius_max_km": str(rules.radius_max_km) if rules.radius_max_km is not None else None,
                "pricing_multiplier": str(rules.pricing_multiplier),
                "badge": rules.badge,
            }
            for rules in TIER_RULES.values()
        ]
        return Response({"tiers": tiers, "services": catalog()})
