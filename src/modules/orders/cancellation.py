"""Cancellation Workflow: customer request, staff decision.

A customer cannot cancel an order directly.  They file a
``CancelRequest`` which CSR or admin staff approve or reject exactly
once.  Approval delegates to ``OrderService.cancel_order``, so the order
is re-validated at decision time (it may have shipped meanwhile) and
stock is restored by the same code path as a staff cancellation.

This workflow never touches the stock ledger itself.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.core.identity import STAFF_ROLES, Principal, Role
from modules.orders import state_machine
from modules.orders.constants import CancelRequestStatus
from modules.orders.events import CancellationProcessed, CancellationRequested
from modules.orders.exceptions import (
    AlreadyProcessed,
    CancelRequestNotFound,
    DuplicateCancelRequest,
    Forbidden,
    OrderLocked,
)
from modules.orders.services import CANCELLED_VIA_REQUEST

if TYPE_CHECKING:
    from modules.orders.models import CancelRequest
    from modules.orders.repositories.interfaces import ICancelRequestRepository
    from modules.orders.services import OrderService

logger = structlog.get_logger(__name__)


class CancellationService:
    """Application service for cancellation requests."""

    def __init__(
        self,
        request_repository: ICancelRequestRepository,
        order_service: OrderService,
    ) -> None:
        self._request_repo = request_repository
        self._orders = order_service

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def request_cancellation(
        self, order_id: UUID, requester: Principal, reason: str
    ) -> CancelRequest:
        """File a cancel request for an order the requester owns.

        Raises:
            OrderNotFound: the order does not exist.
            Forbidden: the requester is not the owning customer.
            AlreadyCancelled: the order is already cancelled.
            OrderLocked: the order has been dispatched.
            DuplicateCancelRequest: a request is already waiting.
        """
        order = self._orders.get_order(str(order_id))
        if requester.role != Role.CUSTOMER or order.customer_id != requester.id:
            raise Forbidden("Only the customer who placed the order can request cancellation.")

        log = logger.bind(order_id=str(order.id), status=order.status)
        if order.is_dispatched:
            log.warning("cancel_request.order_dispatched")
            raise OrderLocked(f"Order is {order.status} and can no longer be cancelled.")
        state_machine.check_cancellable(order.status)

        if self._request_repo.has_pending(order.id):
            raise DuplicateCancelRequest(
                f"Order {order.id} already has a pending cancellation request."
            )

        with transaction.atomic():
            request = self._request_repo.create(order, requester.id, reason)
            request.add_domain_event(
                CancellationRequested(
                    aggregate_id=order.id,
                    request_id=str(request.id),
                    customer_id=requester.id,
                    order_number=order.order_number,
                    reason=reason,
                )
            )
            self._request_repo.save_events(request)

        log.info("cancel_request.filed", request_id=str(request.id))
        return request

    def process_cancellation_request(
        self,
        request_id: UUID,
        is_approved: bool,
        actor: Principal,
        note: str = "",
    ) -> CancelRequest:
        """Approve or reject a Pending request.

        Approval cancels the order first; if the order can no longer be
        cancelled the error propagates and the request stays Pending.
        The request is resolved with a conditional update on
        ``status=Pending`` inside the same transaction, so a concurrent
        second decision fails with ``AlreadyProcessed`` and its order
        change is rolled back.

        Raises:
            Forbidden: the actor is not CSR or admin.
            CancelRequestNotFound: the request does not exist.
            AlreadyProcessed: the request was already resolved.
            InvalidTransition, OrderLocked, ConcurrentModification: from
                the order cancellation on approval.
        """
        if actor.role not in STAFF_ROLES:
            raise Forbidden("Only CSR or admin staff can process cancellation requests.")

        request = self.get_request(str(request_id))
        log = logger.bind(
            request_id=str(request.id),
            order_id=str(request.order_id),
            approved=is_approved,
            actor=actor.id,
        )
        if request.is_resolved:
            log.warning("cancel_request.already_processed", status=request.status)
            raise AlreadyProcessed(f"Cancellation request {request.id} is already {request.status}.")

        new_status = CancelRequestStatus.APPROVED if is_approved else CancelRequestStatus.REJECTED
        with transaction.atomic():
            if is_approved:
                self._orders.cancel_order(
                    request.order_id,
                    actor,
                    reason=note or request.reason,
                    cancelled_via=CANCELLED_VIA_REQUEST,
                )
            if not self._request_repo.resolve(request, new_status, actor.id, note):
                log.warning("cancel_request.lost_race")
                raise AlreadyProcessed(f"Cancellation request {request.id} was already processed.")
            request.add_domain_event(
                CancellationProcessed(
                    aggregate_id=request.order_id,
                    request_id=str(request.id),
                    customer_id=request.customer_id,
                    order_number=request.order.order_number,
                    approved=is_approved,
                    decision_note=note,
                )
            )
            self._request_repo.save_events(request)

        log.info("cancel_request.processed", status=new_status)
        return request

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> CancelRequest:
        request = self._request_repo.get_by_id(request_id)
        if not request:
            raise CancelRequestNotFound(f"Cancellation request {request_id} not found.")
        return request

    def list_requests(self, status: Optional[str] = None) -> List[CancelRequest]:
        filters = {"status": status} if status else None
        return self._request_repo.list(filters)
