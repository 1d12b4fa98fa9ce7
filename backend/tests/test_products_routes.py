# Overview: Pytest coverage for the cached product search listing.

from conftest import make_product, make_user
from test_sales_routes import sale_payload


class TestListProducts:
    def test_lists_store_products_by_name(self, client, db_session, cashier, products, other_store, headers_for):
        make_product(db_session, other_store, "X1", 3, name="Beras")

        body = client.get("/api/products", headers=headers_for(cashier)).json

        assert [p["name"] for p in body["items"]] == ["Gula", "Kopi", "Teh"]
        assert body["pagination"]["total"] == 3

    def test_search_matches_name_or_sku(self, client, db_session, cashier, products, headers_for):
        headers = headers_for(cashier)

        assert [p["name"] for p in client.get("/api/products?q=kop", headers=headers).json["items"]] == ["Kopi"]
        assert [p["sku"] for p in client.get("/api/products?q=p2", headers=headers).json["items"]] == ["P2"]

    def test_attendant_may_list(self, client, db_session, attendant, products, headers_for):
        assert client.get("/api/products", headers=headers_for(attendant)).status_code == 200

    def test_bad_page_is_400(self, client, db_session, cashier, headers_for):
        response = client.get("/api/products?page=0", headers=headers_for(cashier))
        assert response.status_code == 400

    def test_checkout_evicts_cached_stock(self, client, db_session, cashier, attendant, products, headers_for):
        headers = headers_for(cashier)
        kopi = products[0]

        first = client.get("/api/products?q=kopi", headers=headers)
        second = client.get("/api/products?q=kopi", headers=headers)
        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json["items"][0]["stock"] == 10

        created = client.post("/api/sales", json=sale_payload(attendant, [(kopi, 4)]), headers=headers)
        assert created.status_code == 201, created.json

        third = client.get("/api/products?q=kopi", headers=headers)
        assert third.headers["X-Cache"] == "MISS"
        assert third.json["items"][0]["stock"] == 6

    def test_other_store_cache_survives_checkout(
        self, client, db_session, cashier, attendant, other_store, products, headers_for
    ):
        make_product(db_session, other_store, "X1", 3, name="Beras")
        other_cashier = make_user(db_session, other_store, "kasir2", "CASHIER")
        other_headers = headers_for(other_cashier)
        client.get("/api/products", headers=other_headers)

        client.post("/api/sales", json=sale_payload(attendant, [(products[0], 1)]), headers=headers_for(cashier))

        assert client.get("/api/products", headers=other_headers).headers["X-Cache"] == "HIT"
