import asyncio
import uuid

import pytest
from httpx import AsyncClient

from conftest import auth

CART = "/api/v1/cart"


async def _add(client: AsyncClient, token: str, product_id, quantity):
    return await client.post(
        f"{CART}/items",
        json={"productId": str(product_id), "quantity": quantity},
        headers=auth(token),
    )


@pytest.mark.asyncio
async def test_view_without_cart_returns_zeroed_meta(client: AsyncClient, buyer_token: str):
    resp = await client.get(CART, headers=auth(buyer_token))
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["items"] == []
    assert body["meta"] == {
        "totalItems": 0,
        "totalAmount": 0,
        "currency": "INR",
        "warnings": [],
        "hasIssues": False,
    }


@pytest.mark.asyncio
async def test_add_then_view(client: AsyncClient, buyer_token: str, make_product):
    product = make_product(price=250, stock=20, category="books")

    added = await _add(client, buyer_token, product.id, 2)
    assert added.status_code == 201, added.text
    data = added.json()
    assert data["productId"] == str(product.id)
    assert data["quantity"] == 2
    uuid.UUID(data["cartItemId"])

    view = (await client.get(CART, headers=auth(buyer_token))).json()
    assert len(view["items"]) == 1
    line = view["items"][0]
    assert line["requestedQuantity"] == 2
    assert line["availableQuantity"] == 2
    assert line["lineTotal"] == 500.0
    assert line["warnings"] == []
    assert line["product"]["stockStatus"] == "in-stock"
    assert line["product"]["category"] == "books"
    assert view["meta"]["totalItems"] == 2
    assert view["meta"]["totalAmount"] == 500.0
    assert view["meta"]["hasIssues"] is False


@pytest.mark.asyncio
async def test_adding_same_product_merges_quantities(client: AsyncClient, buyer_token: str, make_product):
    product = make_product(stock=10)

    first = await _add(client, buyer_token, product.id, 3)
    second = await _add(client, buyer_token, product.id, 4)
    assert second.status_code == 201, second.text
    assert second.json()["cartItemId"] == first.json()["cartItemId"]
    assert second.json()["quantity"] == 7

    view = (await client.get(CART, headers=auth(buyer_token))).json()
    assert len(view["items"]) == 1


@pytest.mark.asyncio
async def test_add_beyond_stock_reports_maximum_allowed(client: AsyncClient, buyer_token: str, make_product):
    product = make_product(stock=5)
    assert (await _add(client, buyer_token, product.id, 3)).status_code == 201

    resp = await _add(client, buyer_token, product.id, 3)
    assert resp.status_code == 409, resp.text
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "INSUFFICIENT_STOCK"
    assert body["details"] == {"available": 2, "maximumAllowed": 2}


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -2])
async def test_add_rejects_non_positive_quantity(client: AsyncClient, buyer_token: str, make_product, quantity):
    product = make_product()
    resp = await _add(client, buyer_token, product.id, quantity)
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_INPUT"


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [1.5, "3", True, None])
async def test_add_rejects_non_integer_quantity(client: AsyncClient, buyer_token: str, make_product, quantity):
    product = make_product()
    resp = await _add(client, buyer_token, product.id, quantity)
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_add_without_quantity_fails_validation(client: AsyncClient, buyer_token: str, make_product):
    product = make_product()
    resp = await client.post(f"{CART}/items", json={"productId": str(product.id)}, headers=auth(buyer_token))
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "VALIDATION_FAILED"
    assert body["errors"][0]["field"] == "quantity"


@pytest.mark.asyncio
async def test_add_rejects_malformed_product_id(client: AsyncClient, buyer_token: str):
    resp = await _add(client, buyer_token, "not-a-uuid", 1)
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_add_inactive_or_missing_product_is_unavailable(client: AsyncClient, buyer_token: str, make_product):
    inactive = make_product(is_active=False)

    resp = await _add(client, buyer_token, inactive.id, 1)
    assert resp.status_code == 404
    assert resp.json()["error"] == "PRODUCT_UNAVAILABLE"

    resp = await _add(client, buyer_token, uuid.uuid4(), 1)
    assert resp.status_code == 404
    assert resp.json()["error"] == "PRODUCT_UNAVAILABLE"


@pytest.mark.asyncio
async def test_view_reflects_live_stock(client: AsyncClient, buyer_token: str, make_product, db_session):
    """The cart reports shortages but keeps the requested quantity."""
    product = make_product(price=100, stock=10)
    assert (await _add(client, buyer_token, product.id, 5)).status_code == 201

    product.stock = 2
    db_session.commit()

    view = (await client.get(CART, headers=auth(buyer_token))).json()
    line = view["items"][0]
    assert line["requestedQuantity"] == 5
    assert line["availableQuantity"] == 2
    assert line["lineTotal"] == 200.0
    assert line["product"]["stockStatus"] == "low-stock"
    assert line["warnings"] == ["Only 2 items available (requested 5)"]
    assert view["meta"]["warnings"] == ["Only 2 items available (requested 5)"]
    assert view["meta"]["hasIssues"] is True
    assert view["meta"]["totalAmount"] == 200.0


@pytest.mark.asyncio
async def test_view_counts_inactive_products_as_unavailable(client: AsyncClient, buyer_token: str, make_product, db_session):
    product = make_product(stock=10)
    assert (await _add(client, buyer_token, product.id, 1)).status_code == 201

    product.is_active = False
    db_session.commit()

    view = (await client.get(CART, headers=auth(buyer_token))).json()
    assert view["items"][0]["availableQuantity"] == 0
    assert view["meta"]["totalItems"] == 0
    assert view["meta"]["hasIssues"] is True


@pytest.mark.asyncio
async def test_update_item(client: AsyncClient, buyer_token: str, make_product):
    product = make_product(stock=4)
    item_id = (await _add(client, buyer_token, product.id, 1)).json()["cartItemId"]

    ok = await client.patch(f"{CART}/items/{item_id}", json={"quantity": 4}, headers=auth(buyer_token))
    assert ok.status_code == 200, ok.text
    assert ok.json()["success"] is True

    too_many = await client.patch(f"{CART}/items/{item_id}", json={"quantity": 5}, headers=auth(buyer_token))
    assert too_many.status_code == 409
    assert too_many.json()["error"] == "INSUFFICIENT_STOCK"

    view = (await client.get(CART, headers=auth(buyer_token))).json()
    assert view["items"][0]["requestedQuantity"] == 4


@pytest.mark.asyncio
async def test_update_unknown_item_is_not_found(client: AsyncClient, buyer_token: str):
    resp = await client.patch(f"{CART}/items/{uuid.uuid4()}", json={"quantity": 1}, headers=auth(buyer_token))
    assert resp.status_code == 404
    assert resp.json()["error"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_remove_and_clear_are_idempotent(client: AsyncClient, buyer_token: str, make_product):
    first = make_product()
    second = make_product()
    item_id = (await _add(client, buyer_token, first.id, 1)).json()["cartItemId"]
    await _add(client, buyer_token, second.id, 1)

    for _ in range(2):
        resp = await client.delete(f"{CART}/items/{item_id}", headers=auth(buyer_token))
        assert resp.status_code == 200, resp.text
    view = (await client.get(CART, headers=auth(buyer_token))).json()
    assert [line["product"]["id"] for line in view["items"]] == [str(second.id)]

    for _ in range(2):
        resp = await client.delete(CART, headers=auth(buyer_token))
        assert resp.status_code == 200, resp.text
    view = (await client.get(CART, headers=auth(buyer_token))).json()
    assert view["items"] == []
    assert view["meta"]["totalItems"] == 0


@pytest.mark.asyncio
async def test_carts_are_private(client: AsyncClient, buyer_token: str, other_buyer_token: str, make_product):
    product = make_product()
    item_id = (await _add(client, buyer_token, product.id, 1)).json()["cartItemId"]

    resp = await client.patch(f"{CART}/items/{item_id}", json={"quantity": 2}, headers=auth(other_buyer_token))
    assert resp.status_code == 404

    other_view = (await client.get(CART, headers=auth(other_buyer_token))).json()
    assert other_view["items"] == []


@pytest.mark.asyncio
async def test_cart_requires_buyer_role(client: AsyncClient, seller_token: str):
    resp = await client.get(CART)
    assert resp.status_code == 401
    assert resp.json()["success"] is False

    resp = await client.get(CART, headers=auth(seller_token))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_concurrent_first_adds_share_one_cart(client: AsyncClient, buyer_token: str, make_product):
    first = make_product(stock=5)
    second = make_product(stock=5)

    results = await asyncio.gather(
        _add(client, buyer_token, first.id, 1),
        _add(client, buyer_token, second.id, 2),
    )
    assert [r.status_code for r in results] == [201, 201], [r.text for r in results]

    cart = (await client.get(CART, headers=auth(buyer_token))).json()
    quantities = {line["product"]["id"]: line["requestedQuantity"] for line in cart["items"]}
    assert quantities == {str(first.id): 1, str(second.id): 2}


@pytest.mark.asyncio
async def test_concurrent_adds_of_same_product_merge(client: AsyncClient, buyer_token: str, make_product):
    warmup = make_product(stock=5)
    product = make_product(stock=5)
    assert (await _add(client, buyer_token, warmup.id, 1)).status_code == 201

    results = await asyncio.gather(
        _add(client, buyer_token, product.id, 1),
        _add(client, buyer_token, product.id, 2),
    )
    assert [r.status_code for r in results] == [201, 201], [r.text for r in results]

    cart = (await client.get(CART, headers=auth(buyer_token))).json()
    lines = [line for line in cart["items"] if line["product"]["id"] == str(product.id)]
    assert len(lines) == 1
    assert lines[0]["requestedQuantity"] == 3
