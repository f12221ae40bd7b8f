"""Domain events for the inventory side of the Products module."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class LowStockDetected(DomainEvent):
    """Raised when a ledger mutation leaves stock at or below the threshold."""

    vendor_id: str
    sku: str
    name: str
    stock: int
    threshold: int
