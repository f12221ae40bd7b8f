"""Order repositories package."""

from modules.orders.repositories.django_repository import (
    CancelRequestDjangoRepository,
    OrderDjangoRepository,
)
from modules.orders.repositories.interfaces import (
    ICancelRequestRepository,
    IOrderRepository,
)

__all__ = [
    "CancelRequestDjangoRepository",
    "ICancelRequestRepository",
    "IOrderRepository",
    "OrderDjangoRepository",
]
