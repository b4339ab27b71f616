"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - matching: Geospatial eligibility, emergency dispatch queue, alternatives
    - presence: Single online tier per operator, subscriptions, view tier
    - negotiation: Quote submission and acceptance inside the quote window
    - job_management: Job lifecycle, penalties, earnings ledger, ratings
    - request_management: Creating and cancelling service requests
"""

# Expose commonly used functions at package level
from .request_management import create_service_request, cancel_request
from .matching import accept_dispatch, decline_dispatch, eligible_operators
from .presence import go_online, go_offline
from .negotiation import submit_quote, accept_quote, decline_quote
from .job_management import start_job, update_progress, complete_job, cancel_job
from .exceptions import MarketplaceError

__all__ = [
    # Requests
    "create_service_request",
    "cancel_request",
    # Matching
    "accept_dispatch",
    "decline_dispatch",
    "eligible_operators",
    # Presence
    "go_online",
    "go_offline",
    # Negotiation
    "submit_quote",
    "accept_quote",
    "decline_quote",
    # Jobs
    "start_job",
    "update_progress",
    "complete_job",
    "cancel_job",
    # Exceptions
    "MarketplaceError",
]
