"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from modules.orders.constants import (
    ITEM_STATUS_SEQUENCE,
    CancelRequestStatus,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.models import CancelRequest, Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload.

    The customer is always the authenticated caller.
    """

    items = OrderItemInputSerializer(many=True, allow_empty=False)
    shipping_address = serializers.CharField()
    shipping_fee = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, default=Decimal("0.00")
    )
    note = serializers.CharField(required=False, default="", allow_blank=True)


class UpdateOrderSerializer(serializers.Serializer):
    items = OrderItemInputSerializer(many=True, allow_empty=False, required=False)
    shipping_address = serializers.CharField(required=False)
    shipping_fee = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False
    )
    note = serializers.CharField(required=False, allow_blank=True)


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(required=False, default="", allow_blank=True)


class UpdateItemStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=list(ITEM_STATUS_SEQUENCE))


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


class PaymentStatusSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)


class CreateCancelRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=2000)


class ProcessCancelRequestSerializer(serializers.Serializer):
    is_approved = serializers.BooleanField()
    note = serializers.CharField(required=False, default="", allow_blank=True)


class CancelRequestQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=CancelRequestStatus.choices, required=False)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with product snapshot."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "vendor_id",
            "quantity",
            "unit_price",
            "total_price",
            "status",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "notes",
            "changed_by",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "payment_status",
            "total_amount",
            "shipping_address",
            "shipping_fee",
            "note",
            "version",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class VendorOrderSerializer(OrderSerializer):
    """Order as seen by a vendor: only the vendor's own items."""

    items = serializers.SerializerMethodField()

    def get_items(self, order: Order):
        vendor_id = self.context["vendor_id"]
        own = [item for item in order.items.all() if item.vendor_id == vendor_id]
        return OrderItemSerializer(own, many=True).data


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order lists (no nested relations)."""

    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "payment_status",
            "total_amount",
            "created_at",
        ]
        read_only_fields = fields


class CancelRequestSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)
    requested_date = serializers.DateTimeField(read_only=True)

    class Meta:
        model = CancelRequest
        fields = [
            "id",
            "order_id",
            "order_number",
            "customer_id",
            "reason",
            "status",
            "requested_date",
            "processed_by",
            "processed_at",
            "decision_note",
        ]
        read_only_fields = fields
