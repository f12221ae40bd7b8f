from __future__ import annotations

import time
from decimal import Decimal
from itertools import count

import jwt
import pytest
from django.conf import settings as django_settings
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.core.identity import Principal, Role
from modules.orders.cancellation import CancellationService
from modules.orders.dtos import CreateOrderDTO, OrderItemDTO
from modules.orders.repositories import CancelRequestDjangoRepository, OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

_sku_counter = count(1)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _local_cache(settings):
    """Throttle counters live in a per-test in-memory cache."""
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}
    }
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer():
    return Principal(id="customer-1", role=Role.CUSTOMER)


@pytest.fixture()
def other_customer():
    return Principal(id="customer-2", role=Role.CUSTOMER)


@pytest.fixture()
def vendor():
    return Principal(id="vendor-1", role=Role.VENDOR)


@pytest.fixture()
def other_vendor():
    return Principal(id="vendor-2", role=Role.VENDOR)


@pytest.fixture()
def csr():
    return Principal(id="csr-1", role=Role.CSR)


@pytest.fixture()
def admin():
    return Principal(id="admin-1", role=Role.ADMIN)


@pytest.fixture()
def client_for():
    """Return an APIClient force-authenticated as the given principal."""

    def _client(principal: Principal) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=principal)
        return client

    return _client


@pytest.fixture()
def make_token():
    """Sign a bearer token the way the identity provider would."""

    def _token(sub: str, role: str | None, expires_in: int = 300, key: str | None = None) -> str:
        payload = {"sub": sub, "exp": int(time.time()) + expires_in}
        if role is not None:
            payload[django_settings.JWT_ROLE_CLAIM] = role
        return jwt.encode(
            payload,
            key or django_settings.JWT_SIGNING_KEY,
            algorithm=django_settings.JWT_ALGORITHM,
        )

    return _token


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    def _product(
        vendor_id: str = "vendor-1",
        stock: int = 100,
        price: str = "10.00",
        status: str = ProductStatus.ACTIVE,
        name: str | None = None,
    ) -> Product:
        number = next(_sku_counter)
        return Product.objects.create(
            vendor_id=vendor_id,
            sku=f"sku-{number:05d}",
            name=name or f"Product {number}",
            price=Decimal(price),
            stock=stock,
            status=status,
        )

    return _product


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_service():
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )


@pytest.fixture()
def cancellation_service(order_service):
    return CancellationService(
        request_repository=CancelRequestDjangoRepository(),
        order_service=order_service,
    )


@pytest.fixture()
def place_order(order_service):
    """Create an order through the service: ``place_order(customer, (product, qty), ...)``."""

    def _place(customer: Principal, *lines, **extra):
        dto = CreateOrderDTO(
            customer_id=customer.id,
            items=[OrderItemDTO(product_id=product.id, quantity=qty) for product, qty in lines],
            shipping_address=extra.pop("shipping_address", "1 Main Street"),
            **extra,
        )
        return order_service.create_order(dto)

    return _place


@pytest.fixture()
def stock_of():
    """Read the current stock straight from the database."""

    def _stock(product: Product) -> int:
        return Product.objects.values_list("stock", flat=True).get(id=product.id)

    return _stock
