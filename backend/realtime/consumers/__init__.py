"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .operator_consumer import OperatorConsumer
from .requester_consumer import RequesterConsumer

__all__ = [
    "BaseConsumer",
    "OperatorConsumer",
    "RequesterConsumer",
]
