"""
Quote negotiation service.

This module handles:
    - Submitting quotes inside a request's quote window
    - Accepting one quote and declining its siblings
    - Declining single quotes
    - Expiring lapsed quote windows
"""

from .quotes import (
    QuoteResult,
    accept_quote,
    decline_quote,
    expire_quote_window,
    list_quotes,
    quote_window,
    submit_quote,
    window_has_lapsed,
)

__all__ = [
    "QuoteResult",
    "submit_quote",
    "accept_quote",
    "decline_quote",
    "expire_quote_window",
    "list_quotes",
    "quote_window",
    "window_has_lapsed",
]
