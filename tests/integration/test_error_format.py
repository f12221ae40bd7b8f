"""Integration tests for standardized error responses.

Every failure, whether raised by DRF or by the domain layer, is rendered
as ``{"type": ..., "errors": [{"code", "detail", "attr"}]}``.
"""

import pytest

pytestmark = pytest.mark.integration


def _assert_envelope(data, expected_type):
    assert data["type"] == expected_type
    assert isinstance(data["errors"], list)
    assert data["errors"]
    assert {"code", "detail", "attr"} <= set(data["errors"][0])


class TestStandardizedErrors:
    def test_auth_error_has_standard_format(self, api_client):
        response = api_client.get("/api/v1/orders/")
        assert response.status_code == 401
        _assert_envelope(response.json(), "client_error")

    def test_validation_error_has_standard_format(self, client_for, customer):
        response = client_for(customer).post(
            "/api/v1/orders/", data="{", content_type="application/json"
        )
        assert response.status_code == 400
        _assert_envelope(response.json(), "client_error")

    def test_field_validation_reports_attr(self, client_for, customer):
        response = client_for(customer).post(
            "/api/v1/orders/", {"items": [], "shipping_address": "x"}, format="json"
        )
        assert response.status_code == 400
        data = response.json()
        _assert_envelope(data, "validation_error")
        assert any((error["attr"] or "").startswith("items") for error in data["errors"])

    def test_unknown_order_is_404_with_domain_code(self, client_for, csr):
        response = client_for(csr).get(
            "/api/v1/csr/orders/01900000-0000-7000-8000-000000000000/"
        )
        assert response.status_code == 404
        data = response.json()
        _assert_envelope(data, "client_error")
        assert data["errors"][0]["code"] == "order_not_found"

    def test_insufficient_stock_is_409_with_domain_code(self, client_for, customer, make_product):
        product = make_product(stock=1)
        response = client_for(customer).post(
            "/api/v1/orders/",
            {
                "items": [{"product_id": str(product.id), "quantity": 2}],
                "shipping_address": "1 Main Street",
            },
            format="json",
        )
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "insufficient_stock"
