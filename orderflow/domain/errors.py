# orderflow/domain/errors.py
"""
Error taxonomy of the ordering core.

Every error carries a stable ``kind`` (rendered to API clients) and the HTTP
status it maps to. Base classes also inherit the matching builtin
(ValueError, LookupError, PermissionError) so callers catching builtins keep
working.
"""


class DomainError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(DomainError, ValueError):
    kind = "validation_error"
    status_code = 400


class IdentityRequired(ValidationError):
    kind = "identity_required"

    def __init__(self, message: str = "User ID or Session ID is required"):
        super().__init__(message)


class NotFound(DomainError, LookupError):
    kind = "not_found"
    status_code = 404


class AuthorizationError(DomainError, PermissionError):
    kind = "authorization_error"
    status_code = 403


class Conflict(DomainError):
    kind = "conflict"
    status_code = 409


class InsufficientStock(Conflict):
    kind = "insufficient_stock"

    def __init__(self, product_id: int, requested: int, message: str = ""):
        super().__init__(message or f"Not enough stock for product {product_id} (requested {requested})")
        self.product_id = product_id
        self.requested = requested


class DuplicateOrderNumber(Conflict):
    kind = "duplicate_order_number"


class SequenceExhausted(Conflict):
    kind = "sequence_exhausted"


class InvalidTransition(Conflict):
    kind = "invalid_transition"


class AlreadyApplied(Conflict):
    kind = "already_applied"


class ConcurrencyConflict(Conflict):
    kind = "concurrency_conflict"

    def __init__(self, message: str = "Cart was modified by another operation, retry"):
        super().__init__(message)


class Expired(DomainError):
    kind = "expired"
    status_code = 410


class UpstreamError(DomainError):
    """Payment provider call failed; safe for the caller to retry."""

    kind = "upstream_error"
    status_code = 502
