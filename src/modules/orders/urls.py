"""Order URL configuration, one prefix per role surface."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.orders.views import (
    AdminOrderViewSet,
    CancelRequestViewSet,
    CustomerOrderViewSet,
    StaffOrderViewSet,
    VendorOrderViewSet,
)

router = DefaultRouter(trailing_slash=True)
router.register("orders", CustomerOrderViewSet, basename="order")
router.register("vendor/orders", VendorOrderViewSet, basename="vendor-order")
router.register("csr/orders", StaffOrderViewSet, basename="csr-order")
router.register("admin/orders", AdminOrderViewSet, basename="admin-order")
router.register("csr/cancel-requests", CancelRequestViewSet, basename="csr-cancel-request")
router.register("admin/cancel-requests", CancelRequestViewSet, basename="admin-cancel-request")

urlpatterns = router.urls
