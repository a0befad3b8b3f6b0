"""
API route tests: authentication, role checks and the JSON error shape.
"""

import pytest

from conftest import auth_headers, single_tier
from retailpos.services import stock_service, loyalty_service


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================


class TestAuth:

    def test_missing_user_header(self, client, db_session):
        response = client.get("/api/products")
        assert response.status_code == 401

    @pytest.mark.parametrize("value", ["abc", "-1", "999999"])
    def test_bad_or_unknown_user(self, client, db_session, value):
        response = client.get("/api/products", headers={"X-User-Id": value})
        assert response.status_code == 401

    def test_inactive_user(self, client, db_session, cashier):
        cashier.is_active = False
        db_session.commit()
        response = client.get("/api/products", headers=auth_headers(cashier))
        assert response.status_code == 401

    def test_cashier_cannot_create_product(self, client, cashier_headers):
        response = client.post("/api/products", json={"sku": "X", "name": "X"}, headers=cashier_headers)
        assert response.status_code == 403
        assert response.get_json()["required_roles"] == ["admin", "manager"]

    def test_cashier_cannot_adjust_points(self, client, cashier_headers, customer):
        response = client.post(
            f"/api/customers/{customer.id}/loyalty/adjust",
            json={"points": 5, "reason": "x"},
            headers=cashier_headers,
        )
        assert response.status_code == 403


# =============================================================================
# PRODUCTS AND PRICING
# =============================================================================


class TestProducts:

    def test_create_product(self, client, manager_headers):
        response = client.post("/api/products", json={
            "sku": "TEA-250",
            "name": "Tea 250g",
            "unit_prices": single_tier(35000),
            "opening_quantity": 12,
            "reorder_point": 4,
        }, headers=manager_headers)

        assert response.status_code == 201
        product = response.get_json()["product"]
        assert product["sku"] == "TEA-250"
        assert stock_service.get_quantity_on_hand(product["id"]) == 12

    def test_duplicate_sku(self, client, manager_headers, product):
        response = client.post("/api/products", json={
            "sku": product.sku,
            "name": "Again",
            "unit_prices": single_tier(),
        }, headers=manager_headers)

        assert response.status_code == 409
        assert response.get_json()["code"] == "conflict"

    def test_unknown_field_rejected(self, client, manager_headers):
        response = client.post("/api/products", json={
            "sku": "A", "name": "A", "unit_prices": single_tier(), "price": 5,
        }, headers=manager_headers)
        assert response.status_code == 400

    def test_non_object_body_rejected(self, client, manager_headers):
        response = client.post("/api/products", json=[1, 2], headers=manager_headers)

        assert response.status_code == 400
        assert response.get_json()["code"] == "validation_error"

    def test_invalid_tier_set_returns_validation_error(self, client, manager_headers, product):
        tiers = single_tier() + single_tier()
        tiers[1]["unit_type"] = "dozen"
        tiers[1]["quantity"] = 12

        response = client.post(
            f"/api/products/{product.id}/unit-pricing",
            json={"unit_prices": tiers},
            headers=manager_headers,
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["code"] == "validation_error"
        assert set(body) == {"error", "code", "details"}

    def test_replace_and_read_pricing(self, client, manager_headers, cashier_headers, product):
        tiers = single_tier(9000) + [{
            "unit_type": "dozen", "quantity": 12, "buying_price_cents": 50000,
            "selling_price_cents": 100000, "is_default": False,
        }]
        response = client.post(
            f"/api/products/{product.id}/unit-pricing",
            json={"unit_prices": tiers},
            headers=manager_headers,
        )
        assert response.status_code == 200

        listed = client.get(f"/api/products/{product.id}/unit-pricing", headers=cashier_headers).get_json()
        assert [t["unit_type"] for t in listed["unit_prices"]] == ["single", "dozen"]

    def test_unknown_product(self, client, cashier_headers):
        response = client.get("/api/products/777777", headers=cashier_headers)
        assert response.status_code == 404
        assert response.get_json()["code"] == "not_found"

    def test_stock_thresholds(self, client, manager_headers, product):
        response = client.put(
            f"/api/products/{product.id}/stock",
            json={"min_stock": 2, "max_stock": 40, "reorder_point": 5},
            headers=manager_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["stock"]["reorder_point"] == 5

    def test_list_products(self, client, cashier_headers, product):
        body = client.get("/api/products?search=Product", headers=cashier_headers).get_json()
        assert body["count"] == 1
        assert "pagination" not in body

        body = client.get("/api/products?search=product&page=1", headers=cashier_headers).get_json()
        assert body["pagination"]["total"] == 1
        assert body["items"][0]["id"] == product.id


# =============================================================================
# SALES
# =============================================================================


class TestSales:

    def test_checkout_returns_sale_and_receipt(self, client, cashier_headers, product, customer):
        response = client.post("/api/sales", json={
            "lines": [{"product_id": product.id, "unit_type": "single", "quantity": 3}],
            "payment_method": "cash",
            "customer_id": customer.id,
            "amount_paid_cents": 40000,
        }, headers=cashier_headers)

        assert response.status_code == 201
        body = response.get_json()
        assert body["sale"]["total_cents"] == 30000
        assert body["receipt"]["payment"]["change_due_cents"] == 10000
        assert body["receipt"]["loyalty"]["points_earned"] == 3
        assert stock_service.get_quantity_on_hand(product.id) == 7

        receipt = client.get(f"/api/sales/{body['sale']['id']}/receipt", headers=cashier_headers).get_json()
        assert receipt["receipt"]["transaction_id"] == f"TXN-{body['sale']['id']}"

    def test_insufficient_stock_is_409(self, client, cashier_headers, product):
        response = client.post("/api/sales", json={
            "lines": [{"product_id": product.id, "quantity": 11}],
            "payment_method": "cash",
        }, headers=cashier_headers)

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "insufficient_stock"
        assert body["details"]["on_hand"] == 10
        assert stock_service.get_quantity_on_hand(product.id) == 10

    def test_insufficient_points_is_409(self, client, cashier_headers, product, customer):
        response = client.post("/api/sales", json={
            "lines": [{"product_id": product.id, "quantity": 1}],
            "payment_method": "cash",
            "customer_id": customer.id,
            "points_to_redeem": 4,
        }, headers=cashier_headers)

        assert response.status_code == 409
        assert response.get_json()["code"] == "insufficient_points"

    def test_missing_lines(self, client, cashier_headers):
        response = client.post("/api/sales", json={"payment_method": "cash"}, headers=cashier_headers)
        assert response.status_code == 400

    def test_list_sales(self, client, cashier_headers, product):
        client.post("/api/sales", json={
            "lines": [{"product_id": product.id, "quantity": 1}],
            "payment_method": "card",
        }, headers=cashier_headers)

        body = client.get("/api/sales", headers=cashier_headers).get_json()
        assert body["pagination"]["total"] == 1


# =============================================================================
# CUSTOMERS AND LOYALTY
# =============================================================================


class TestCustomers:

    def test_create_and_search(self, client, cashier_headers):
        response = client.post("/api/customers", json={
            "name": "Wanjiru",
            "email": "wanjiru@example.test",
        }, headers=cashier_headers)
        assert response.status_code == 201

        found = client.get("/api/customers?q=wanj", headers=cashier_headers).get_json()
        assert [c["name"] for c in found["items"]] == ["Wanjiru"]

    def test_duplicate_email(self, client, cashier_headers):
        payload = {"name": "A", "email": "dup@example.test"}
        client.post("/api/customers", json=payload, headers=cashier_headers)
        response = client.post("/api/customers", json=payload, headers=cashier_headers)
        assert response.status_code == 409

    def test_loyalty_endpoints(self, client, manager_headers, customer):
        empty = client.get(f"/api/customers/{customer.id}/loyalty", headers=manager_headers).get_json()
        assert empty["points_balance"] == 0

        response = client.post(
            f"/api/customers/{customer.id}/loyalty/adjust",
            json={"points": 12, "reason": "Welcome bonus"},
            headers=manager_headers,
        )
        assert response.status_code == 201
        assert response.get_json()["points_balance"] == 12

        history = client.get(f"/api/customers/{customer.id}/loyalty/history", headers=manager_headers).get_json()
        assert history["count"] == 1

        report = client.post(f"/api/customers/{customer.id}/loyalty/reconcile", headers=manager_headers)
        assert report.status_code == 200
        assert report.get_json()["drift"] == 0
        assert loyalty_service.balance(customer.id) == 12

    def test_adjust_below_zero_is_409(self, client, manager_headers, customer):
        response = client.post(
            f"/api/customers/{customer.id}/loyalty/adjust",
            json={"points": -1, "reason": "Oops"},
            headers=manager_headers,
        )
        assert response.status_code == 409

    def test_unknown_customer_loyalty(self, client, cashier_headers):
        response = client.get("/api/customers/4040/loyalty", headers=cashier_headers)
        assert response.status_code == 404


# =============================================================================
# SUPPLIERS AND PURCHASE ORDERS
# =============================================================================


class TestPurchasing:

    def test_supplier_crud(self, client, manager_headers, cashier_headers):
        response = client.post("/api/suppliers", json={"name": "Bidco"}, headers=manager_headers)
        assert response.status_code == 201
        supplier_id = response.get_json()["supplier"]["id"]

        patched = client.patch(f"/api/suppliers/{supplier_id}", json={"phone": "+254711000000"}, headers=manager_headers)
        assert patched.get_json()["supplier"]["phone"] == "+254711000000"

        denied = client.post("/api/suppliers", json={"name": "Nope"}, headers=cashier_headers)
        assert denied.status_code == 403

    def test_order_flow(self, client, manager_headers, cashier_headers, supplier, product):
        created = client.post("/api/purchase-orders", json={
            "supplier_id": supplier.id,
            "lines": [{"product_id": product.id, "quantity": 5, "buying_price_cents": 5000}],
        }, headers=cashier_headers)
        assert created.status_code == 201
        order = created.get_json()["purchase_order"]
        assert order["status"] == "pending"

        # Cashiers cannot approve
        denied = client.post(f"/api/purchase-orders/{order['id']}/status", json={"status": "approved"},
                             headers=cashier_headers)
        assert denied.status_code == 403

        early = client.post(f"/api/purchase-orders/{order['id']}/receive", json={"lines": []},
                            headers=manager_headers)
        assert early.status_code == 409
        assert early.get_json()["code"] == "invalid_transition"

        approved = client.post(f"/api/purchase-orders/{order['id']}/status", json={"status": "approved"},
                               headers=manager_headers)
        assert approved.get_json()["purchase_order"]["status"] == "approved"

        received = client.post(f"/api/purchase-orders/{order['id']}/receive", json={
            "lines": [{"item_id": order["items"][0]["id"], "quantity_received": 5}],
        }, headers=manager_headers)
        assert received.status_code == 200
        body = received.get_json()["purchase_order"]
        assert body["status"] == "completed"
        assert body["is_fully_received"] is True
        assert stock_service.get_quantity_on_hand(product.id) == 15

        listed = client.get("/api/purchase-orders?status=completed", headers=cashier_headers).get_json()
        assert listed["count"] == 1
        assert "items" not in listed["items"][0]


# =============================================================================
# REPORTS / SYSTEM
# =============================================================================


class TestReportsAndSystem:

    def test_low_stock(self, client, cashier_headers, make_product):
        make_product(quantity=1, reorder_point=3)
        body = client.get("/api/reports/low-stock", headers=cashier_headers).get_json()
        assert len(body["low_stock"]) == 1

    def test_sales_summary_requires_manager(self, client, cashier_headers, manager_headers):
        assert client.get("/api/reports/sales-summary", headers=cashier_headers).status_code == 403
        response = client.get("/api/reports/sales-summary?period=week", headers=manager_headers)
        assert response.status_code == 200
        assert response.get_json()["period"] == "week"

    def test_sales_summary_bad_period(self, client, manager_headers):
        response = client.get("/api/reports/sales-summary?period=eon", headers=manager_headers)
        assert response.status_code == 400

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"
