"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each
carries a stable ``code``; the API layer maps its ``category`` to an
HTTP status (see ``modules.core.exception_handler``).
"""

from __future__ import annotations

from shared.domain.exceptions import DomainError


class OrderNotFound(DomainError):
    """The requested order does not exist."""

    code = "order_not_found"
    category = "not_found"


class CancelRequestNotFound(DomainError):
    """The requested cancellation request does not exist."""

    code = "cancel_request_not_found"
    category = "not_found"


class Forbidden(DomainError):
    """The caller does not own the order or its role lacks authority."""

    code = "forbidden"
    category = "forbidden"


class InvalidTransition(DomainError):
    """The status change is not allowed from the current state."""

    code = "invalid_transition"
    category = "conflict"


class AlreadyCancelled(InvalidTransition):
    """The order is already cancelled."""

    code = "already_cancelled"


class OrderLocked(DomainError):
    """The order has been dispatched or reached a terminal state."""

    code = "order_locked"
    category = "conflict"


class AlreadyProcessed(DomainError):
    """The cancellation request was already approved or rejected."""

    code = "already_processed"
    category = "conflict"


class DuplicateCancelRequest(DomainError):
    """An open cancellation request already exists for the order."""

    code = "duplicate_cancel_request"
    category = "conflict"


class ConcurrentModification(DomainError):
    """Another writer changed the order since it was read."""

    code = "concurrent_modification"
    category = "conflict"


class OrderItemNotFound(DomainError):
    """The order has no item for the given product."""

    code = "order_item_not_found"
    category = "not_found"
