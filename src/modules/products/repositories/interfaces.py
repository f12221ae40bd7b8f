"""Product repository interface.

Extends ``IRepository[Product]`` with the look-ups order placement and
the vendor low-stock report need.  Stock itself is never written through
the repository; see ``modules.products.ledger``.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, List
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product projection."""

    @abstractmethod
    def get_many(self, ids: Iterable[UUID]) -> Dict[UUID, "Product"]:
        """Return the existing products among ``ids``, keyed by id."""

    @abstractmethod
    def list_low_stock(self, vendor_id: str, threshold: int) -> List["Product"]:
        """Active products of ``vendor_id`` with ``stock <= threshold``."""
