"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers import OperatorConsumer, RequesterConsumer

websocket_urlpatterns = [
    # URL: ws://localhost:8000/ws/operator/
    re_path(
        r"ws/operator/$",
        OperatorConsumer.as_asgi(),
        name="operator-ws"
    ),

    # URL: ws://localhost:8000/ws/requester/
    re_path(
        r"ws/requester/$",
        RequesterConsumer.as_asgi(),
        name="requester-ws"
    ),
]
