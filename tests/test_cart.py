# tests/test_cart.py
from decimal import Decimal

import pytest

from fulfillment.data.models.cart import CartModel
from fulfillment.domain.enums import ProductStatus
from fulfillment.domain.errors import NotFoundError, OutOfStockError, ProductInactiveError
from fulfillment.domain.pricing import Pricing
from fulfillment.repos.cart_repo import CartRepo


def test_cart_is_created_lazily(db, carts):
    first = carts.get_cart(db, "u1")
    second = carts.get_cart(db, "u1")

    assert first["cart_id"] == second["cart_id"]
    assert first["items"] == []
    assert first["subtotal"] == Decimal("0.00")


def test_cart_created_by_a_concurrent_request_is_reused(db, carts, monkeypatch):
    winner = CartModel(user_id="u1")
    db.add(winner)
    db.commit()

    # the first lookup misses, as if the other request committed right after it
    real_lookup = CartRepo.get_cart_by_user
    lookups = []

    def late_lookup(self, user_id):
        lookups.append(user_id)
        return None if len(lookups) == 1 else real_lookup(self, user_id)

    monkeypatch.setattr(CartRepo, "get_cart_by_user", late_lookup)

    cart = carts.get_cart(db, "u1")

    assert cart["cart_id"] == winner.id
    assert db.query(CartModel).filter_by(user_id="u1").count() == 1


def test_add_item_snapshots_the_variant(db, carts, make_variant):
    variant = make_variant(price="19.90", cost_price="8.00", attributes={"color": "red"})

    cart = carts.add_item(db, "u1", variant.product_id, 2, variant_id=variant.id)

    (item,) = cart["items"]
    assert item["variant_id"] == variant.id
    assert item["price_snapshot"] == Decimal("19.90")
    assert item["sku_snapshot"] == variant.sku
    assert item["attributes_snapshot"] == {"color": "red"}
    assert item["line_total"] == Decimal("39.80")
    assert cart["subtotal"] == Decimal("39.80")


def test_snapshot_is_insulated_from_catalog_changes(db, carts, make_variant):
    variant = make_variant(price="10.00")
    carts.add_item(db, "u1", variant.product_id, 1, variant_id=variant.id)

    variant.pricing = Pricing(Decimal("99.00"))
    db.commit()

    assert carts.get_cart(db, "u1")["items"][0]["price_snapshot"] == Decimal("10.00")


def test_add_without_variant_picks_one_in_stock(db, carts, make_variant):
    empty = make_variant(on_hand=0)
    stocked = make_variant(on_hand=5, product=empty.product)

    cart = carts.add_item(db, "u1", empty.product_id, 3)

    assert cart["items"][0]["variant_id"] == stocked.id


def test_adding_same_variant_merges(db, carts, make_variant):
    variant = make_variant(on_hand=5)

    carts.add_item(db, "u1", variant.product_id, 2, variant_id=variant.id)
    cart = carts.add_item(db, "u1", variant.product_id, 3, variant_id=variant.id)

    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5

    with pytest.raises(OutOfStockError):
        carts.add_item(db, "u1", variant.product_id, 1, variant_id=variant.id)


def test_add_rejections(db, carts, make_variant):
    variant = make_variant(on_hand=2)
    other = make_variant(on_hand=2)
    draft = make_variant(status=ProductStatus.DRAFT)

    with pytest.raises(NotFoundError):
        carts.add_item(db, "u1", "missing", 1)
    with pytest.raises(ProductInactiveError) as exc:
        carts.add_item(db, "u1", draft.product_id, 1, variant_id=draft.id)
    assert exc.value.code == "product_inactive"
    with pytest.raises(NotFoundError):
        carts.add_item(db, "u1", variant.product_id, 1, variant_id=other.id)
    with pytest.raises(OutOfStockError) as exc:
        carts.add_item(db, "u1", variant.product_id, 3, variant_id=variant.id)
    assert exc.value.code == "out_of_stock"

    assert carts.get_cart(db, "u1")["items"] == []


def test_update_and_remove_item(db, carts, make_variant):
    variant = make_variant(on_hand=4)
    item_id = carts.add_item(db, "u1", variant.product_id, 1, variant_id=variant.id)["items"][0]["id"]

    cart = carts.update_item(db, "u1", item_id, 4)
    assert cart["items"][0]["quantity"] == 4

    with pytest.raises(OutOfStockError):
        carts.update_item(db, "u1", item_id, 5)

    with pytest.raises(NotFoundError):
        carts.update_item(db, "u2", item_id, 1)

    cart = carts.remove_item(db, "u1", item_id)
    assert cart["items"] == []

    with pytest.raises(NotFoundError):
        carts.remove_item(db, "u1", item_id)
