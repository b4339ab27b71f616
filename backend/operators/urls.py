from django.urls import path
from .views import (
    OperatorProfileView,
    PresenceView,
    ViewTierView,
    TierSubscriptionView,
    OperatorLocationView,
    TierCatalogView,
)

urlpatterns = [
    path("profile/", OperatorProfileView.as_view(), name="operator-profile"),
    path("presence/", PresenceView.as_view(), name="operator-presence"),
    path("view-tier/", ViewTierView.as_view(), name="operator-view-tier"),
    path("tiers/", TierSubscriptionView.as_view(), name="operator-tiers"),
    path("tiers/catalog/", TierCatalogView.as_view(), name="operator-tier-catalog"),
    path("location/", OperatorLocationView.as_view(), name="operator-location"),
]
