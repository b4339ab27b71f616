from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Operator APIs (profile, presence, tiers, location)
    path('api/operator/', include('operators.urls')),

    # Requests, quotes and emergency dispatch (at /api/marketplace/)
    path('api/marketplace/', include('marketplace.urls')),

    # Accepted jobs, earnings and ratings (at /api/jobs/)
    path('api/jobs/', include('jobs.urls')),
]
