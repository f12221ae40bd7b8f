"""Stock Ledger: the only code path that mutates ``Product.stock``.

Every mutation is a single conditional ``UPDATE`` evaluated by the
database (``stock = stock - n WHERE stock >= n``), so concurrent orders
against the same product are linearised by the row write itself.  There
is no read-then-write window.

Multi-product operations are not wrapped in one database transaction.
Each line is applied on its own and, when a later line fails, the lines
already applied are compensated in reverse order (saga style).

Low-stock signalling is best effort: the ``LowStockDetected`` event is
written to the outbox inside its own savepoint, and a failure there is
logged without undoing the stock change.  Multi-line operations only signal
once every line has been applied, so a rolled-back reservation leaves
no event behind.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from modules.core.outbox import record_events
from modules.products.events import LowStockDetected
from modules.products.exceptions import InsufficientStock, ProductNotFound
from modules.products.models import Product

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockLine:
    """A quantity of one product."""

    product_id: UUID
    quantity: int


def merge_lines(lines: Iterable[StockLine]) -> "OrderedDict[UUID, int]":
    """Sum quantities per product, ordered by product id."""
    totals: Dict[UUID, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return OrderedDict(sorted(totals.items(), key=lambda kv: str(kv[0])))


class StockLedger:
    """Atomic stock primitives plus saga-style multi-line helpers."""

    def __init__(self, low_stock_threshold: Optional[int] = None) -> None:
        if low_stock_threshold is None:
            low_stock_threshold = settings.LOW_STOCK_THRESHOLD
        self._threshold = low_stock_threshold

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def decrement(self, product_id: UUID, quantity: int) -> int:
        """Remove ``quantity`` units if at least that many are available.

        Returns the stock left after the update.

        Raises:
            ProductNotFound: the product does not exist.
            InsufficientStock: fewer than ``quantity`` units are available.
        """
        row = self._take(product_id, quantity)
        self._signal_if_low(product_id, row)
        return row["stock"] if row else 0

    def restore(self, product_id: UUID, quantity: int) -> int:
        """Return ``quantity`` units to stock.

        Raises:
            ProductNotFound: the product does not exist.
        """
        row = self._give(product_id, quantity)
        self._signal_if_low(product_id, row)
        return row["stock"] if row else 0

    # ------------------------------------------------------------------
    # Multi-line operations
    # ------------------------------------------------------------------

    def reserve(self, lines: Sequence[StockLine]) -> None:
        """Decrement every line or none of them.

        Lines are merged per product and applied in product-id order.  On
        failure the lines already applied are restored before re-raising.
        Low-stock events are only recorded once every line is applied.
        """
        applied: List[StockLine] = []
        touched: Dict[UUID, Optional[dict]] = {}
        try:
            for product_id, quantity in merge_lines(lines).items():
                touched[product_id] = self._take(product_id, quantity)
                applied.append(StockLine(product_id, quantity))
        except Exception:
            self._compensate_decrements(applied)
            raise
        for product_id, row in touched.items():
            self._signal_if_low(product_id, row)

    def release(self, lines: Sequence[StockLine]) -> None:
        """Restore every line.

        Products that no longer exist are skipped with a warning; the
        other lines are still restored.
        """
        for product_id, quantity in merge_lines(lines).items():
            try:
                self.restore(product_id, quantity)
            except ProductNotFound:
                logger.warning(
                    "stock.release_skipped",
                    product_id=str(product_id),
                    quantity=quantity,
                )

    def reconcile(
        self,
        old_lines: Sequence[StockLine],
        new_lines: Sequence[StockLine],
    ) -> Dict[UUID, int]:
        """Move stock from the ``old_lines`` allocation to ``new_lines``.

        Decreases (and removed products) are restored first so freed units
        are available to the increases that follow.  If an increase cannot
        be satisfied every change made so far is undone and the error is
        re-raised, leaving stock exactly as it was.

        Returns the applied per-product deltas (positive means units were
        taken from stock), suitable for ``revert``.
        """
        old = merge_lines(old_lines)
        new = merge_lines(new_lines)
        deltas: Dict[UUID, int] = {}
        for product_id in set(old) | set(new):
            delta = new.get(product_id, 0) - old.get(product_id, 0)
            if delta:
                deltas[product_id] = delta

        restores = sorted(
            ((pid, -d) for pid, d in deltas.items() if d < 0), key=lambda kv: str(kv[0])
        )
        decrements = sorted(
            ((pid, d) for pid, d in deltas.items() if d > 0), key=lambda kv: str(kv[0])
        )

        applied: Dict[UUID, int] = {}
        touched: Dict[UUID, Optional[dict]] = {}
        try:
            for product_id, quantity in restores:
                touched[product_id] = self._give(product_id, quantity)
                applied[product_id] = -quantity
            for product_id, quantity in decrements:
                touched[product_id] = self._take(product_id, quantity)
                applied[product_id] = quantity
        except Exception:
            self.revert(applied)
            raise

        for product_id, row in touched.items():
            self._signal_if_low(product_id, row)
        logger.info("stock.reconciled", changed_products=len(applied))
        return applied

    def revert(self, deltas: Dict[UUID, int]) -> None:
        """Undo deltas returned by ``reconcile``.

        Compensation never raises for a single line; failures are logged
        so the remaining lines are still compensated.
        """
        for product_id, delta in deltas.items():
            try:
                if delta > 0:
                    self._give(product_id, delta)
                else:
                    self._take(product_id, -delta)

            except (ProductNotFound, InsufficientStock, DatabaseError):
                logger.exception(
                    "stock.compensation_failed",
                    product_id=str(product_id),
                    delta=delta,
                )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _take(self, product_id: UUID, quantity: int) -> Optional[dict]:
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        updated = Product.objects.filter(id=product_id, stock__gte=quantity).update(
            stock=F("stock") - quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            available = (
                Product.objects.filter(id=product_id)
                .values_list("stock", flat=True)
                .first()
            )
            if available is None:
                raise ProductNotFound(f"Product {product_id} not found.")
            logger.warning(
                "stock.insufficient",
                product_id=str(product_id),
                requested=quantity,
                available=available,
            )
            raise InsufficientStock(
                f"Product {product_id}: requested {quantity}, available {available}.",
                product_id=str(product_id),
                requested=quantity,
            )

        row = self._snapshot(product_id)
        logger.info(
            "stock.decremented",
            product_id=str(product_id),
            quantity=quantity,
            remaining=row["stock"] if row else None,
        )
        return row

    def _give(self, product_id: UUID, quantity: int) -> Optional[dict]:
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        updated = Product.objects.filter(id=product_id).update(
            stock=F("stock") + quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            raise ProductNotFound(f"Product {product_id} not found.")

        row = self._snapshot(product_id)
        logger.info(
            "stock.restored",
            product_id=str(product_id),
            quantity=quantity,
            remaining=row["stock"] if row else None,
        )
        return row

    def _compensate_decrements(self, applied: List[StockLine]) -> None:
        for line in reversed(applied):
            try:
                self._give(line.product_id, line.quantity)
            except (ProductNotFound, DatabaseError):
                logger.exception(
                    "stock.compensation_failed",
                    product_id=str(line.product_id),
                    delta=line.quantity,
                )
        if applied:
            logger.info("stock.reservation_compensated", lines=len(applied))

    def _snapshot(self, product_id: UUID) -> Optional[dict]:
        return (
            Product.objects.filter(id=product_id)
            .values("vendor_id", "sku", "name", "stock")
            .first()
        )

    def _signal_if_low(self, product_id: UUID, row: Optional[dict]) -> None:
        if row is not None and row["stock"] <= self._threshold:
            self._signal_low_stock(product_id, row)

    def _signal_low_stock(self, product_id: UUID, row: dict) -> None:
        event = LowStockDetected(
            aggregate_id=product_id,
            vendor_id=row["vendor_id"],
            sku=row["sku"],
            name=row["name"],
            stock=row["stock"],
            threshold=self._threshold,
        )
        try:
            with transaction.atomic():
                record_events([event], topic="inventory")
        except DatabaseError:
            logger.exception(
                "stock.low_stock_signal_failed",
                product_id=str(product_id),
                stock=row["stock"],
            )
            return
        logger.info(
            "stock.low_stock_detected",
            product_id=str(product_id),
            stock=row["stock"],
            threshold=self._threshold,
        )
