"""
HTTP tests for the cart the checkout consumes.
"""
import pytest

from storefront.models import ProductStatus
from tests.factories import auth_headers, create_product


class TestCartRoutes:
    @pytest.mark.asyncio
    async def test_add_and_merge(self, client, customer, product_a):
        headers = auth_headers(customer)

        first = await client.post("/api/cart/items", json={"product_id": product_a.id, "quantity": 2}, headers=headers)
        assert first.status_code == 201

        second = await client.post("/api/cart/items", json={"product_id": product_a.id, "quantity": 1}, headers=headers)
        body = second.json()
        assert len(body["items"]) == 1
        assert body["items"][0]["quantity"] == 3
        assert body["subtotal"] == "30.00"
        assert body["item_count"] == 3

    @pytest.mark.asyncio
    async def test_cannot_exceed_stock(self, client, customer, product_b):
        response = await client.post(
            "/api/cart/items", json={"product_id": product_b.id, "quantity": 2}, headers=auth_headers(customer)
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INSUFFICIENT_STOCK"

    @pytest.mark.asyncio
    async def test_per_item_cap(self, client, session_factory, customer):
        plenty = await create_product(session_factory, "SKU-BULK", "1.00", 100)

        response = await client.post(
            "/api/cart/items", json={"product_id": plenty.id, "quantity": 11}, headers=auth_headers(customer)
        )

        assert response.status_code == 400
        assert response.json()["error"] == "CART_LIMIT_EXCEEDED"

    @pytest.mark.asyncio
    async def test_inactive_product(self, client, session_factory, customer):
        draft = await create_product(session_factory, "SKU-DRAFT", "9.00", 3, ProductStatus.DRAFT)

        response = await client.post(
            "/api/cart/items", json={"product_id": draft.id, "quantity": 1}, headers=auth_headers(customer)
        )

        assert response.status_code == 400
        assert response.json()["error"] == "PRODUCT_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_update_remove_clear(self, client, customer, product_a, product_b):
        headers = auth_headers(customer)
        added = await client.post("/api/cart/items", json={"product_id": product_a.id, "quantity": 1}, headers=headers)
        await client.post("/api/cart/items", json={"product_id": product_b.id, "quantity": 1}, headers=headers)
        item_id = added.json()["items"][0]["id"]

        updated = await client.patch(f"/api/cart/items/{item_id}", json={"quantity": 4}, headers=headers)
        assert updated.status_code == 200
        assert updated.json()["items"][0]["quantity"] == 4

        too_many = await client.patch(f"/api/cart/items/{item_id}", json={"quantity": 6}, headers=headers)
        assert too_many.status_code == 400

        removed = await client.delete(f"/api/cart/items/{item_id}", headers=headers)
        assert [line["product_id"] for line in removed.json()["items"]] == [product_b.id]

        cleared = await client.delete("/api/cart", headers=headers)
        assert cleared.status_code == 204
        assert (await client.get("/api/cart", headers=headers)).json()["items"] == []

    @pytest.mark.asyncio
    async def test_other_users_line_is_not_found(self, client, customer, other_customer, product_a):
        added = await client.post(
            "/api/cart/items", json={"product_id": product_a.id, "quantity": 1}, headers=auth_headers(customer)
        )
        item_id = added.json()["items"][0]["id"]

        response = await client.delete(f"/api/cart/items/{item_id}", headers=auth_headers(other_customer))

        assert response.status_code == 404
