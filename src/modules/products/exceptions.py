"""Product and stock domain exceptions.

Raised by the Stock Ledger and the order services when catalog or stock
rules are violated.  The API layer renders them through the shared
exception handler.
"""

from __future__ import annotations

from shared.domain.exceptions import DomainError


class ProductNotFound(DomainError):
    """The requested product does not exist."""

    code = "product_not_found"
    category = "not_found"


class InactiveProduct(DomainError):
    """The product is not active and cannot be sold."""

    code = "inactive_product"
    category = "invalid"


class InsufficientStock(DomainError):
    """Requested quantity exceeds the available stock."""

    code = "insufficient_stock"
    category = "conflict"

    def __init__(self, message: str, *, product_id: str = "", requested: int = 0) -> None:
        super().__init__(message)
        self.product_id = product_id
        self.requested = requested
