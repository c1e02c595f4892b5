from conftest import API, auth_headers
from models.cart import CartItem
from models.wishlist import Wishlist


def _add(client, headers, product_id):
    return client.post(f"{API}/wishlist", json={"product_id": product_id}, headers=headers)


class TestWishlist:
    def test_add_and_list(self, client, user_headers, make_product):
        first = make_product(title="First")
        second = make_product(title="Second")
        response = _add(client, user_headers, first.id)
        assert response.status_code == 201
        assert response.json()["data"]["product"]["title"] == "First"
        _add(client, user_headers, second.id)

        data = client.get(f"{API}/wishlist", headers=user_headers).json()["data"]
        assert [w["product_id"] for w in data] == [second.id, first.id]

    def test_duplicate_conflicts(self, client, user_headers, make_product):
        product = make_product()
        _add(client, user_headers, product.id)
        response = _add(client, user_headers, product.id)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_IN_WISHLIST"

    def test_inactive_product_is_not_found(self, client, user_headers, make_product):
        product = make_product(is_active=False)
        assert _add(client, user_headers, product.id).status_code == 404

    def test_count_and_check(self, client, user_headers, make_product):
        product = make_product()
        other = make_product(title="Other")
        _add(client, user_headers, product.id)

        assert client.get(f"{API}/wishlist/count", headers=user_headers).json()["data"] == {"count": 1}
        check = client.get(f"{API}/wishlist/check/{product.id}", headers=user_headers).json()["data"]
        assert check == {"product_id": product.id, "in_wishlist": True}
        missing = client.get(f"{API}/wishlist/check/{other.id}", headers=user_headers).json()["data"]
        assert missing["in_wishlist"] is False

    def test_remove(self, client, user_headers, make_product, db):
        product = make_product()
        _add(client, user_headers, product.id)
        assert client.delete(f"{API}/wishlist/{product.id}", headers=user_headers).status_code == 200
        assert db.query(Wishlist).count() == 0
        assert client.delete(f"{API}/wishlist/{product.id}", headers=user_headers).status_code == 404

    def test_clear_only_touches_own_entries(self, client, user_headers, make_user, make_product, db):
        product = make_product()
        other = make_user(email="other@example.com")
        _add(client, user_headers, product.id)
        _add(client, auth_headers(other), product.id)

        assert client.delete(f"{API}/wishlist", headers=user_headers).status_code == 200
        assert db.query(Wishlist).filter(Wishlist.user_id == other.id).count() == 1
        assert db.query(Wishlist).count() == 1

    def test_requires_authentication(self, client):
        assert client.get(f"{API}/wishlist").status_code == 401


class TestMoveToCart:
    def test_move_adds_one_and_removes_entry(self, client, user_headers, make_product, db):
        product = make_product(stock=5)
        _add(client, user_headers, product.id)

        response = client.post(f"{API}/wishlist/{product.id}/move-to-cart", headers=user_headers)
        assert response.status_code == 200
        items = response.json()["data"]["items"]
        assert [(i["product_id"], i["quantity"]) for i in items] == [(product.id, 1)]
        assert db.query(Wishlist).count() == 0

    def test_out_of_stock_keeps_entry(self, client, user_headers, make_product, db):
        product = make_product(stock=0)
        _add(client, user_headers, product.id)

        response = client.post(f"{API}/wishlist/{product.id}/move-to-cart", headers=user_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"
        db.expire_all()
        assert db.query(Wishlist).count() == 1
        assert db.query(CartItem).count() == 0

    def test_move_missing_entry(self, client, user_headers, make_product):
        product = make_product()
        assert client.post(f"{API}/wishlist/{product.id}/move-to-cart", headers=user_headers).status_code == 404
