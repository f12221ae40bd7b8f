"""Product URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.products.views import VendorLowStockViewSet

router = DefaultRouter(trailing_slash=True)
router.register(
    "vendor/products/low-stock", VendorLowStockViewSet, basename="vendor-low-stock"
)

urlpatterns = router.urls
