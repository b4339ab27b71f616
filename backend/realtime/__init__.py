"""
Realtime app for WebSocket event delivery.

This app provides:
- WebSocket consumers for operators and requesters
- Notification helpers that publish marketplace events to channel groups
- JWT authentication middleware for WebSocket connections

Usage:
    from realtime.notifications import notify_operator_event, notify_requester_event
"""
