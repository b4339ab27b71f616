"""
Operator presence service.

This module handles:
    - Going online on exactly one subscribed tier (with switch confirmation)
    - Going offline while keeping the viewed tier
    - Tier subscriptions and their operating radius
    - Last-known location persistence
"""

from .tier_presence import (
    PresenceResult,
    go_online,
    go_offline,
    set_presence,
    set_view_tier,
    subscribe_tier,
    update_operator_location,
)

__all__ = [
    "PresenceResult",
    "go_online",
    "go_offline",
    "set_presence",
    "set_view_tier",
    "subscribe_tier",
    "update_operator_location",
]
