"""
Notification helpers for sending WebSocket messages to connected clients.

Events are published after the surrounding transaction commits, so a
rolled-back mutation never reaches a client. Delivery is best effort: a
missing or failing channel layer is logged and otherwise ignored.

Groups:
    - operator_<user_id>: dispatch offers, quote decisions, job events
    - user_<user_id>: everything addressed to a requester
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

logger = logging.getLogger(__name__)


def _send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available for %s", group)
        return False
    try:
        async_to_sync(channel_layer.group_send)(group, payload)
    except Exception:
        logger.exception("Failed to deliver %s to %s", payload.get("type"), group)
        return False
    logger.debug("WS -> %s: %s", group, payload)
    return True


def _request_payload(event_type: str, service_request, message: str, extra: Optional[Dict[str, Any]]):
    payload = {
        "type": event_type,
        "request_id": service_request.id,
        "status": service_request.status,
        "service_type": service_request.service_type,
        "is_emergency": service_request.is_emergency,
        **(extra or {}),
    }
    if message:
        payload["message"] = message
    return payload


def notify_operator_event(
    event_type: str,
    service_request,
    operator_id: int | None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Queue an event for a specific operator using their personal group: operator_<id>
    
    Args:
        event_type: Handler name in consumer (dispatch_offer, dispatch_expired, quote_accepted, ...)
        service_request: ServiceRequest model instance
        operator_id: Target operator's user ID
        message: Optional message to include
        extra: Additional payload data
    
    Returns:
        True if the event was queued, False if there is no recipient
    """
    if not operator_id:
        return False

    payload = _request_payload(event_type, service_request, message, extra)
    transaction.on_commit(lambda: _send(f"operator_{operator_id}", payload))
    return True


def notify_requester_event(
    event_type: str,
    service_request,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Queue a request-related event for the requester through: user_<requester_id>
    
    Args:
        event_type: Handler name in consumer (quote_received, request_assigned, job_completed, ...)
        service_request: ServiceRequest model instance
        message: Optional message to include
        extra: Additional payload data
    """
    requester_id = service_request.requester_id
    if not requester_id:
        return False

    payload = _request_payload(event_type, service_request, message, extra)
    transaction.on_commit(lambda: _send(f"user_{requester_id}", payload))
    return True
