"""Custom exceptions for marketplace operations.

Every error carries a stable ``code`` and the HTTP status it maps to, so the
API layer can render it without knowing which operation raised it.
"""


class MarketplaceError(Exception):
    """Base class for all domain errors."""
    code = "error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)


# ===================== Taxonomy =====================

class ValidationError(MarketplaceError):
    """Malformed or missing input."""
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input"


class NotFoundError(MarketplaceError):
    """Unknown identifier."""
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class ConflictError(MarketplaceError):
    """Invalid state transition."""
    code = "conflict"
    status_code = 409
    default_message = "Operation conflicts with current state"


class AuthorizationError(MarketplaceError):
    """Caller does not own the target resource."""
    code = "not_owner"
    status_code = 403
    default_message = "You are not allowed to modify this resource"


class ExpiryError(MarketplaceError):
    """Action attempted past its window."""
    code = "expired"
    status_code = 410
    default_message = "This action is no longer available"


# ===================== Concrete errors =====================

class TierNotSubscribedError(ValidationError):
    """Raised when an operator targets a tier outside their subscriptions."""
    code = "tier_not_subscribed"
    default_message = "You are not subscribed to this tier"


class OperatorNotFoundError(NotFoundError):
    code = "operator_not_found"
    default_message = "Operator profile not found"


class RequestNotFoundError(NotFoundError):
    code = "request_not_found"
    default_message = "Service request not found"


class QuoteNotFoundError(NotFoundError):
    code = "quote_not_found"
    default_message = "Quote not found"


class OfferNotFoundError(NotFoundError):
    """Raised when an operator has no dispatch entry for an emergency."""
    code = "offer_not_found"
    default_message = "No dispatch offer found for this emergency"


class JobNotFoundError(NotFoundError):
    code = "job_not_found"
    default_message = "Job not found"


class ActiveJobsError(ConflictError):
    """Raised when a tier switch is blocked by a job in progress."""
    code = "active_jobs"
    default_message = "Finish your in-progress job before switching tiers"


class AlreadySubscribedError(ConflictError):
    code = "already_subscribed"
    default_message = "You are already subscribed to this tier"


class OperatorNotAvailableError(ConflictError):
    """Raised when an operator must be online for the operation."""
    code = "operator_offline"
    default_message = "Go online before taking work"


class RequestNotOpenError(ConflictError):
    """Raised when a request is no longer accepting quotes or dispatch replies."""
    code = "request_not_open"
    default_message = "This request was already handled or cancelled"


class OfferNotActiveError(ConflictError):
    """Raised when a dispatch entry is not the one currently notified."""
    code = "offer_not_active"
    default_message = "This dispatch offer is not active for you"


class QuoteNotPendingError(ConflictError):
    code = "quote_not_pending"
    default_message = "This quote was already resolved"


class DuplicateQuoteError(ConflictError):
    code = "duplicate_quote"
    default_message = "You already submitted a quote for this request"


class JobInProgressError(ConflictError):
    """Raised when an operator already has a job in progress."""
    code = "job_in_progress"
    default_message = "You already have a job in progress"


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"
    default_message = "This job cannot move to the requested state"


class AlreadyRatedError(ConflictError):
    code = "already_rated"
    default_message = "This job was already rated"


class NotOwnerError(AuthorizationError):
    code = "not_owner"


class OfferExpiredError(ExpiryError):
    """Raised when a dispatch offer has timed out."""
    code = "offer_expired"
    default_message = "This dispatch offer has timed out"


class QuoteWindowClosedError(ExpiryError):
    code = "quote_window_closed"
    default_message = "The quote window for this request has closed"


class QuoteExpiredError(ExpiryError):
    code = "quote_expired"
    default_message = "This quote has expired"
