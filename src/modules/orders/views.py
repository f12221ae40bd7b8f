"""Order API views, one ViewSet per role surface.

Every surface calls the same ``OrderService`` and ``CancellationService``;
the role gate on the view only decides who may reach the endpoint.
Ownership, vendor scoping and transition rules are enforced by the
services.  Domain exceptions propagate to the shared exception handler,
which renders them in the standard error envelope.
"""

from __future__ import annotations

from typing import Any, Type
from uuid import UUID

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from pydantic import BaseModel as PydanticModel
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.core.permissions import IsAdmin, IsCsrOrAdmin, IsCustomer, IsVendor
from modules.orders.cancellation import CancellationService
from modules.orders.dtos import CreateOrderDTO, UpdateOrderDTO
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories import CancelRequestDjangoRepository, OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CancelRequestQuerySerializer,
    CancelRequestSerializer,
    CreateCancelRequestSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    PaymentStatusSerializer,
    ProcessCancelRequestSerializer,
    UpdateItemStatusSerializer,
    UpdateOrderSerializer,
    UpdateStatusSerializer,
    VendorOrderSerializer,
)
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository


def _build_dto(dto_class: Type[PydanticModel], **data: Any) -> PydanticModel:
    """Instantiate a DTO, reporting rule violations as a 400."""
    try:
        return dto_class(**data)
    except PydanticValidationError as exc:
        raise ValidationError(
            {"non_field_errors": [error["msg"] for error in exc.errors()]}
        ) from exc


def _validated(serializer_class, request: Request) -> dict:
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class _OrderViewSetBase(GenericViewSet):
    """Wires the services and the list plumbing shared by every surface."""

    queryset = Order.objects.none()
    filterset_class = OrderFilter
    search_fields = ["order_number"]
    ordering_fields = ["created_at", "status", "payment_status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    pagination_class = StandardResultsSetPagination

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )
        self._cancellations = CancellationService(
            request_repository=CancelRequestDjangoRepository(),
            order_service=self._service,
        )

    def get_serializer_class(self):
        if self.action == "list":
            return OrderListSerializer
        return OrderSerializer

    def list(self, request: Request) -> Response:
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        order = self._service.get_order_for(pk, request.user)
        return Response(self.get_serializer(order).data)


# ---------------------------------------------------------------------------
# Customer surface: /api/v1/orders/
# ---------------------------------------------------------------------------


class CustomerOrderViewSet(_OrderViewSetBase):
    """The caller's own orders."""

    permission_classes = [IsCustomer]

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttle scopes per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        return self._service.order_history_for_customer(self.request.user.id)

    @extend_schema(request=CreateOrderSerializer, responses=OrderSerializer)
    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        data = _validated(CreateOrderSerializer, request)
        idempotency_key = request.headers.get("Idempotency-Key")
        if idempotency_key:
            replayed = self._service.list_orders(
                {"idempotency_key": idempotency_key}
            ).exists()
        else:
            replayed = False

        dto = _build_dto(
            CreateOrderDTO,
            customer_id=request.user.id,
            items=[dict(item) for item in data["items"]],
            shipping_address=data["shipping_address"],
            shipping_fee=data["shipping_fee"],
            note=data["note"],
            idempotency_key=idempotency_key,
        )
        order = self._service.create_order(dto)
        return Response(
            OrderSerializer(order).data,
            status=status.HTTP_200_OK if replayed else status.HTTP_201_CREATED,
        )

    @extend_schema(request=UpdateOrderSerializer, responses=OrderSerializer)
    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Edits items, shipping address, shipping fee or note while the
        order is Pending or Processing.
        """
        data = _validated(UpdateOrderSerializer, request)
        if "items" in data:
            data["items"] = [dict(item) for item in data["items"]]
        dto = _build_dto(UpdateOrderDTO, **data)
        order = self._service.get_order_for(pk, request.user)
        order = self._service.update_order(order.id, request.user, dto)
        return Response(OrderSerializer(order).data)

    @extend_schema(request=CreateCancelRequestSerializer, responses=CancelRequestSerializer)
    @action(detail=True, methods=["post"], url_path="cancel-request")
    def cancel_request(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel-request/"""
        data = _validated(CreateCancelRequestSerializer, request)
        order = self._service.get_order_for(pk, request.user)
        cancel_request = self._cancellations.request_cancellation(
            order.id, request.user, data["reason"]
        )
        return Response(
            CancelRequestSerializer(cancel_request).data,
            status=status.HTTP_201_CREATED,
        )


# ---------------------------------------------------------------------------
# Vendor surface: /api/v1/vendor/orders/
# ---------------------------------------------------------------------------


class VendorOrderViewSet(_OrderViewSetBase):
    """Orders containing at least one of the caller's items."""

    permission_classes = [IsVendor]

    def get_queryset(self):
        return self._service.list_orders_for_vendor(self.request.user.id)

    def get_serializer_class(self):
        if self.action == "list":
            return OrderListSerializer
        return VendorOrderSerializer

    def get_serializer_context(self) -> dict:
        context = super().get_serializer_context()
        context["vendor_id"] = self.request.user.id
        return context

    @extend_schema(request=UpdateItemStatusSerializer, responses=VendorOrderSerializer)
    @action(
        detail=True,
        methods=["patch"],
        url_path=r"items/(?P<product_id>[0-9a-fA-F-]+)/status",
    )
    def item_status(
        self, request: Request, pk: str | None = None, product_id: str | None = None
    ) -> Response:
        """PATCH /api/v1/vendor/orders/{pk}/items/{product_id}/status/"""
        data = _validated(UpdateItemStatusSerializer, request)
        order = self._service.get_order_for(pk, request.user)
        order = self._service.update_item_status(
            order.id, _parse_uuid(product_id, "product_id"), data["status"], request.user
        )
        return Response(self.get_serializer(order).data)

    @extend_schema(request=UpdateStatusSerializer, responses=VendorOrderSerializer)
    @action(detail=True, methods=["patch"], url_path="status")
    def change_status(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/vendor/orders/{pk}/status/

        Vendors may only move an order to Processing, Shipped or Cancelled.
        """
        data = _validated(UpdateStatusSerializer, request)
        order = self._service.get_order_for(pk, request.user)
        order = self._service.update_status(
            order.id, data["status"], request.user, note=data["note"]
        )
        return Response(self.get_serializer(order).data)

    @extend_schema(request=CancelOrderSerializer, responses=VendorOrderSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/vendor/orders/{pk}/cancel/"""
        data = _validated(CancelOrderSerializer, request)
        order = self._service.get_order_for(pk, request.user)
        order = self._service.cancel_order(order.id, request.user, reason=data["reason"])
        return Response(self.get_serializer(order).data)


# ---------------------------------------------------------------------------
# Staff surfaces: /api/v1/csr/orders/ and /api/v1/admin/orders/
# ---------------------------------------------------------------------------


class StaffOrderViewSet(_OrderViewSetBase):
    """Every order, for customer service and admins."""

    permission_classes = [IsCsrOrAdmin]

    def get_queryset(self):
        return self._service.list_orders()

    @extend_schema(request=UpdateStatusSerializer, responses=OrderSerializer)
    @action(detail=True, methods=["patch"], url_path="status")
    def change_status(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/csr/orders/{pk}/status/

        A target of ``Cancelled`` restores stock like ``cancel``.
        """
        data = _validated(UpdateStatusSerializer, request)
        order = self._service.get_order(pk)
        order = self._service.update_status(
            order.id, data["status"], request.user, note=data["note"]
        )
        return Response(OrderSerializer(order).data)

    @extend_schema(request=CancelOrderSerializer, responses=OrderSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/csr/orders/{pk}/cancel/

        Direct staff cancellation; restores the stock of all items.
        """
        data = _validated(CancelOrderSerializer, request)
        order = self._service.get_order(pk)
        order = self._service.cancel_order(order.id, request.user, reason=data["reason"])
        return Response(OrderSerializer(order).data)


class AdminOrderViewSet(StaffOrderViewSet):
    """Staff surface plus payment status and hard delete."""

    permission_classes = [IsAdmin]

    @extend_schema(request=PaymentStatusSerializer, responses=OrderSerializer)
    @action(detail=True, methods=["patch"])
    def payment(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/admin/orders/{pk}/payment/"""
        data = _validated(PaymentStatusSerializer, request)
        order = self._service.get_order(pk)
        order = self._service.update_payment_status(
            order.id, data["payment_status"], request.user
        )
        return Response(OrderSerializer(order).data)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/admin/orders/{pk}/"""
        order = self._service.get_order(pk)
        self._service.delete_order(order.id, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Cancellation requests: /api/v1/csr/cancel-requests/
# ---------------------------------------------------------------------------


class CancelRequestViewSet(GenericViewSet):
    permission_classes = [IsCsrOrAdmin]
    serializer_class = CancelRequestSerializer
    pagination_class = StandardResultsSetPagination

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CancellationService(
            request_repository=CancelRequestDjangoRepository(),
            order_service=OrderService(
                order_repository=OrderDjangoRepository(),
                product_repository=ProductDjangoRepository(),
            ),
        )

    @extend_schema(parameters=[CancelRequestQuerySerializer])
    def list(self, request: Request) -> Response:
        """GET /api/v1/csr/cancel-requests/?status=Pending"""
        query = CancelRequestQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        requests = self._service.list_requests(query.validated_data.get("status"))
        page = self.paginate_queryset(requests)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        return Response(self.get_serializer(self._service.get_request(pk)).data)

    @extend_schema(request=ProcessCancelRequestSerializer, responses=CancelRequestSerializer)
    @action(detail=True, methods=["post"])
    def process(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/csr/cancel-requests/{pk}/process/"""
        data = _validated(ProcessCancelRequestSerializer, request)
        cancel_request = self._service.get_request(pk)
        cancel_request = self._service.process_cancellation_request(
            cancel_request.id, data["is_approved"], request.user, note=data["note"]
        )
        return Response(self.get_serializer(cancel_request).data)


def _parse_uuid(value: str | None, field: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError({field: "Must be a valid UUID."}) from exc
