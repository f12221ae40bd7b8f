"""Product DRF serializers for API output."""

from __future__ import annotations

from rest_framework import serializers

from modules.products.models import Product


class LowStockProductSerializer(serializers.ModelSerializer):
    """Read-only view of a product running out of stock."""

    class Meta:
        model = Product
        fields = ["id", "sku", "name", "price", "stock", "status", "updated_at"]
        read_only_fields = fields
