"""
Operator matching and emergency dispatch service.

This module handles:
    - Geospatial eligibility filtering by tier rules
    - Building ordered dispatch queues for emergencies (daisy-chain pattern)
    - Expiring offers and moving to the next operator
    - Re-ranking alternative operators after a decline
"""

from .geo_matcher import (
    Candidate,
    check_eligibility,
    eligible_operators,
    online_operators,
    open_requests_for_operator,
)
from .dispatch_queue import (
    QueueSlot,
    DispatchResult,
    advance,
    build_dispatch_queue,
    accept_dispatch,
    decline_dispatch,
    expire_stale_entries,
    expire_dispatch_entry,
    get_dispatch_queue,
)
from .alternatives import declined_operator_ids, find_alternative_operators

__all__ = [
    "Candidate",
    "check_eligibility",
    "eligible_operators",
    "online_operators",
    "open_requests_for_operator",
    "QueueSlot",
    "DispatchResult",
    "advance",
    "build_dispatch_queue",
    "accept_dispatch",
    "decline_dispatch",
    "expire_stale_entries",
    "expire_dispatch_entry",
    "get_dispatch_queue",
    "declined_operator_ids",
    "find_alternative_operators",
]
