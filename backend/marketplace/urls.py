from django.urls import path
from . import views

app_name = 'marketplace'

urlpatterns = [
    # Requester APIs
    path('requests/', views.create_request, name='create-request'),
    path('requests/mine/', views.my_requests, name='my-requests'),
    path('requests/<int:request_id>/', views.request_detail, name='request-detail'),
    path('requests/<int:request_id>/cancel/', views.cancel_service_request, name='cancel-request'),
    path('requests/<int:request_id>/quotes/', views.request_quotes, name='request-quotes'),
    path('requests/<int:request_id>/quotes/<int:quote_id>/accept/', views.accept_request_quote, name='accept-quote'),
    path('requests/<int:request_id>/quotes/<int:quote_id>/decline/', views.decline_request_quote, name='decline-quote'),
    path('requests/<int:request_id>/dispatch/', views.dispatch_queue, name='dispatch-queue'),
    path('requests/<int:request_id>/alternatives/', views.alternative_operators, name='alternative-operators'),

    # Operator APIs
    path('operator/requests/', views.available_requests, name='available-requests'),
    path('operator/requests/<int:request_id>/quote/', views.submit_request_quote, name='submit-quote'),
    path('operator/emergencies/<int:request_id>/accept/', views.accept_emergency, name='accept-emergency'),
    path('operator/emergencies/<int:request_id>/decline/', views.decline_emergency, name='decline-emergency'),
]
