"""
Request management service - creating and cancelling service requests.
"""

from .request_lifecycle import (
    RequestResult,
    cancel_request,
    create_service_request,
    get_request,
)

__all__ = [
    "RequestResult",
    "create_service_request",
    "get_request",
    "cancel_request",
]
