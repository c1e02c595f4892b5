from conftest import API, auth_headers
from models.cart import CartItem
from models.order import Order
from models.product import Product

ADDRESS = {
    "first_name": "Jane",
    "last_name": "Doe",
    "address": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "USA",
    "phone": "+1 555 0100",
}


def _order(client, headers, products=None, **extra):
    payload = {"shipping_address": ADDRESS, **extra}
    if products is not None:
        payload["products"] = products
    return client.post(f"{API}/orders", json=payload, headers=headers)


def _stock(db, product_id):
    db.expire_all()
    return db.get(Product, product_id).stock


class TestCreateOrder:
    def test_create_from_explicit_lines(self, client, user_headers, make_product, db):
        product = make_product(price=40.0, discount_percentage=25, stock=10)
        response = _order(client, user_headers, [{"id": product.id, "quantity": 2}], payment_intent_id="pi_123")
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "PENDING"
        assert data["subtotal"] == 60.0
        assert data["tax"] == 4.8
        assert data["shipping"] == 9.99
        assert data["total"] == 74.79
        assert data["payment_intent_id"] == "pi_123"
        assert data["shipping_address"]["city"] == "Springfield"
        item = data["items"][0]
        assert item["product_title"] == product.title
        assert item["price"] == 40.0
        assert item["total"] == 60.0
        assert _stock(db, product.id) == 8

    def test_large_order_ships_free(self, client, user_headers, make_product):
        product = make_product(price=60.0, stock=10)
        data = _order(client, user_headers, [{"id": product.id, "quantity": 2}]).json()["data"]
        assert data["shipping"] == 0.0
        assert data["total"] == 129.6

    def test_checkout_from_cart_clears_cart(self, client, user_headers, make_product, db):
        product = make_product(stock=5)
        client.post(f"{API}/cart/items", json={"product_id": product.id, "quantity": 3}, headers=user_headers)

        response = _order(client, user_headers)
        assert response.status_code == 201
        assert response.json()["data"]["items"][0]["quantity"] == 3
        assert db.query(CartItem).count() == 0
        assert _stock(db, product.id) == 2

    def test_empty_cart_cannot_checkout(self, client, user_headers):
        response = _order(client, user_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CART_EMPTY"

    def test_checkout_skips_deactivated_cart_lines(self, client, user_headers, make_product, db):
        kept = make_product(title="Kept", price=20.0, stock=5)
        dropped = make_product(title="Dropped", stock=5)
        for product in (kept, dropped):
            client.post(f"{API}/cart/items", json={"product_id": product.id, "quantity": 1}, headers=user_headers)
        dropped.is_active = False
        db.commit()

        response = _order(client, user_headers)
        assert response.status_code == 201
        data = response.json()["data"]
        assert [i["product_id"] for i in data["items"]] == [kept.id]
        assert data["subtotal"] == 20.0
        assert _stock(db, dropped.id) == 5
        assert db.query(CartItem).count() == 0

    def test_cart_with_only_deactivated_lines_is_empty(self, client, user_headers, make_product, db):
        product = make_product(stock=5)
        client.post(f"{API}/cart/items", json={"product_id": product.id, "quantity": 1}, headers=user_headers)
        product.is_active = False
        db.commit()

        response = _order(client, user_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CART_EMPTY"

    def test_insufficient_stock_rolls_back_everything(self, client, user_headers, make_product, db):
        plenty = make_product(title="Plenty", stock=10)
        scarce = make_product(title="Scarce", stock=1)
        response = _order(client, user_headers, [
            {"id": plenty.id, "quantity": 3},
            {"id": scarce.id, "quantity": 2},
        ])
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INSUFFICIENT_STOCK"
        assert error["details"] == {"available": 1}
        assert _stock(db, plenty.id) == 10
        assert db.query(Order).count() == 0

    def test_unknown_product_is_not_found(self, client, user_headers, make_product, db):
        product = make_product(stock=4)
        response = _order(client, user_headers, [{"id": product.id, "quantity": 1}, {"id": 999, "quantity": 1}])
        assert response.status_code == 404
        assert _stock(db, product.id) == 4

    def test_inactive_product_is_not_found(self, client, user_headers, make_product):
        product = make_product(is_active=False)
        assert _order(client, user_headers, [{"id": product.id, "quantity": 1}]).status_code == 404

    def test_requires_authentication(self, client, make_product):
        product = make_product()
        assert _order(client, {}, [{"id": product.id, "quantity": 1}]).status_code == 401

    def test_address_is_validated(self, client, user_headers, make_product):
        product = make_product()
        response = client.post(
            f"{API}/orders",
            json={"products": [{"id": product.id, "quantity": 1}], "shipping_address": {"city": "X"}},
            headers=user_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestReadOrders:
    def test_list_is_paginated_newest_first(self, client, user_headers, make_product):
        product = make_product(stock=10)
        ids = [_order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"] for _ in range(3)]

        response = client.get(f"{API}/orders", params={"limit": 2}, headers=user_headers)
        body = response.json()
        assert [o["id"] for o in body["data"]] == [ids[2], ids[1]]
        assert body["meta"]["total"] == 3
        assert body["meta"]["total_pages"] == 2

    def test_cannot_read_someone_elses_order(self, client, user_headers, make_user, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]
        stranger = make_user(email="stranger@example.com")
        assert client.get(f"{API}/orders/{order_id}", headers=auth_headers(stranger)).status_code == 404

    def test_admin_can_read_any_order(self, client, user_headers, admin_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]
        assert client.get(f"{API}/orders/{order_id}", headers=admin_headers).status_code == 200


class TestCancel:
    def test_cancel_restores_stock(self, client, user_headers, make_product, db):
        product = make_product(stock=5)
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 2}]).json()["data"]["id"]

        response = client.post(f"{API}/orders/{order_id}/cancel", json={"reason": "Changed my mind"},
                               headers=user_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "CANCELLED"
        assert data["cancel_reason"] == "Changed my mind"
        assert data["cancelled_at"]
        assert _stock(db, product.id) == 5

    def test_shipped_order_cannot_be_cancelled(self, client, user_headers, admin_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]
        client.patch(f"{API}/orders/{order_id}/status", json={"status": "SHIPPED"}, headers=admin_headers)

        response = client.post(f"{API}/orders/{order_id}/cancel", headers=user_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ORDER_CANNOT_CANCEL"


class TestAdminStatus:
    def test_status_flow_and_delivery_timestamp(self, client, user_headers, admin_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]

        shipped = client.patch(
            f"{API}/orders/{order_id}/status",
            json={"status": "SHIPPED", "tracking_number": "1Z999", "carrier": "UPS"},
            headers=admin_headers,
        )
        assert shipped.status_code == 200
        assert shipped.json()["data"]["tracking_number"] == "1Z999"

        delivered = client.patch(f"{API}/orders/{order_id}/status", json={"status": "DELIVERED"}, headers=admin_headers)
        assert delivered.json()["data"]["status"] == "DELIVERED"
        assert delivered.json()["data"]["delivered_at"]

    def test_estimated_delivery_is_stored_in_utc(self, client, user_headers, admin_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]

        response = client.patch(
            f"{API}/orders/{order_id}/status",
            json={"status": "SHIPPED", "estimated_delivery": "2026-10-20T12:00:00+02:00"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["estimated_delivery"] == "2026-10-20T10:00:00"

    def test_backwards_transition_is_rejected(self, client, user_headers, admin_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]
        client.patch(f"{API}/orders/{order_id}/status", json={"status": "SHIPPED"}, headers=admin_headers)

        response = client.patch(f"{API}/orders/{order_id}/status", json={"status": "PENDING"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"

    def test_admin_cancel_restores_stock(self, client, user_headers, admin_headers, make_product, db):
        product = make_product(stock=3)
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 3}]).json()["data"]["id"]
        assert _stock(db, product.id) == 0

        response = client.patch(f"{API}/orders/{order_id}/status", json={"status": "CANCELLED"}, headers=admin_headers)
        assert response.status_code == 200
        assert _stock(db, product.id) == 3

    def test_customers_cannot_change_status(self, client, user_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]
        response = client.patch(f"{API}/orders/{order_id}/status", json={"status": "SHIPPED"}, headers=user_headers)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"

    def test_unknown_status_value(self, client, admin_headers):
        response = client.patch(f"{API}/orders/1/status", json={"status": "LOST"}, headers=admin_headers)
        assert response.status_code == 400


class TestTrackingAndStats:
    def test_tracking_unavailable_without_number(self, client, user_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]
        response = client.get(f"{API}/orders/{order_id}/tracking", headers=user_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TRACKING_UNAVAILABLE"

    def test_tracking_info(self, client, user_headers, admin_headers, make_product):
        product = make_product()
        order_id = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]["id"]
        client.patch(
            f"{API}/orders/{order_id}/status",
            json={"status": "SHIPPED", "tracking_number": "1Z999", "carrier": "UPS"},
            headers=admin_headers,
        )

        data = client.get(f"{API}/orders/{order_id}/tracking", headers=user_headers).json()["data"]
        assert data["tracking_url"] == "https://www.ups.com/track?tracknum=1Z999"
        assert [e["status"] for e in data["events"]] == ["order_placed", "shipped"]

    def test_admin_lists_all_orders(self, client, user_headers, admin_headers, make_user, make_product):
        product = make_product(stock=10)
        other = make_user(email="other@example.com")
        _order(client, user_headers, [{"id": product.id, "quantity": 1}])
        _order(client, auth_headers(other), [{"id": product.id, "quantity": 1}])

        response = client.get(f"{API}/orders/admin/all", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["meta"]["total"] == 2
        assert client.get(f"{API}/orders/admin/all", headers=user_headers).status_code == 403

    def test_stats(self, client, user_headers, admin_headers, make_product, db):
        product = make_product(price=50.0, stock=10)
        first = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]
        second = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]
        third = _order(client, user_headers, [{"id": product.id, "quantity": 1}]).json()["data"]
        client.post(f"{API}/orders/{second['id']}/cancel", headers=user_headers)
        client.patch(f"{API}/orders/{third['id']}/status", json={"status": "DELIVERED"}, headers=admin_headers)

        stats = client.get(f"{API}/orders/admin/stats", headers=admin_headers).json()["data"]
        assert stats["total_orders"] == 3
        assert stats["pending_orders"] == 1
        assert stats["completed_orders"] == 1
        assert stats["cancelled_orders"] == 1
        assert stats["revenue"] == round(first["total"] + third["total"], 2)
