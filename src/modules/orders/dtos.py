"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``OrderItemDTO``: a product and quantity (creation and edits).
- ``CreateOrderDTO``: input for order creation.
- ``UpdateOrderDTO``: owner edits while the order is still editable.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modules.products.ledger import StockLine


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class OrderItemDTO(BaseModel):
    """A single order line requested by the client.

    ``unit_price`` is resolved by the Service Layer from the product.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    def to_stock_line(self) -> StockLine:
        return StockLine(self.product_id, self.quantity)


def _validate_items(items: List[OrderItemDTO]) -> List[OrderItemDTO]:
    if not items:
        raise ValueError("Order must have at least one item.")
    product_ids = [item.product_id for item in items]
    if len(product_ids) != len(set(product_ids)):
        raise ValueError("Duplicate product IDs are not allowed in the same order.")
    return items


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Validates:
    - ``items`` must contain at least one item, one line per product.
    - ``shipping_address`` must not be blank.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: str
    items: List[OrderItemDTO]
    shipping_address: str
    shipping_fee: Decimal = Decimal("0.00")
    note: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_be_valid(cls, v: List[OrderItemDTO]) -> List[OrderItemDTO]:
        return _validate_items(v)

    @field_validator("shipping_address")
    @classmethod
    def address_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Shipping address is required.")
        return v.strip()

    @field_validator("shipping_fee")
    @classmethod
    def fee_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Shipping fee cannot be negative.")
        return v


class UpdateOrderDTO(BaseModel):
    """Owner edits.  ``None`` means "leave unchanged".

    ``items``, when given, replaces the whole item list.
    """

    model_config = ConfigDict(frozen=True)

    items: Optional[List[OrderItemDTO]] = None
    shipping_address: Optional[str] = None
    shipping_fee: Optional[Decimal] = None
    note: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_be_valid(
        cls, v: Optional[List[OrderItemDTO]]
    ) -> Optional[List[OrderItemDTO]]:
        if v is None:
            return v
        return _validate_items(v)

    @field_validator("shipping_address")
    @classmethod
    def address_must_not_be_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Shipping address cannot be blank.")
        return v.strip() if v is not None else v

    @field_validator("shipping_fee")
    @classmethod
    def fee_must_not_be_negative(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v < 0:
            raise ValueError("Shipping fee cannot be negative.")
        return v

    @model_validator(mode="after")
    def at_least_one_field(self):
        if all(
            value is None
            for value in (self.items, self.shipping_address, self.shipping_fee, self.note)
        ):
            raise ValueError("Nothing to update.")
        return self

