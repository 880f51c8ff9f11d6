# fulfillment/services/cart_service.py
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from fulfillment.data.database import transactional
from fulfillment.data.models.cart import CartModel
from fulfillment.data.models.cart_item import CartItemModel
from fulfillment.data.models.product import ProductModel, ProductVariantModel
from fulfillment.domain.enums import ProductStatus
from fulfillment.domain.errors import NotFoundError, OutOfStockError, ProductInactiveError
from fulfillment.domain.pricing import ZERO, to_money
from fulfillment.repos.cart_repo import CartRepo
from fulfillment.repos.catalog_repo import CatalogRepo
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


def cart_subtotal(items: Iterable[CartItemModel]) -> Decimal:
    return to_money(sum((item.pricing.line_total(item.quantity) for item in items), ZERO))


def cart_item_view(item: CartItemModel) -> dict:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "quantity": item.quantity,
        "price_snapshot": item.price_snapshot,
        "name_snapshot": item.name_snapshot,
        "sku_snapshot": item.sku_snapshot,
        "attributes_snapshot": dict(item.attributes_snapshot or {}),
        "line_total": item.pricing.line_total(item.quantity),
    }


class CartService:
    """
    Per-user cart. The cart is created lazily on first access; every item
    carries a snapshot of the variant taken when it was added or updated.
    """

    def get_or_create_cart(self, db: Session, user_id: str) -> CartModel:
        repo = CartRepo(db)
        cart = repo.get_cart_by_user(user_id)
        if cart is None:
            created = repo.create_cart(CartModel(user_id=user_id))
            if created is None:
                logger.info(f"Cart for user {user_id} created concurrently, reusing it")
                return repo.get_cart_by_user(user_id)
            cart = created
            logger.info(f"Cart {cart.id} created for user {user_id}")
        return cart

    @transactional(isolation_level=None)
    def get_cart(self, db: Session, user_id: str) -> dict:
        return self._view(self.get_or_create_cart(db, user_id))

    @transactional(isolation_level=None)
    def add_item(self, db: Session, user_id: str, product_id: str, quantity: int, variant_id: str | None = None) -> dict:
        cart = self.get_or_create_cart(db, user_id)
        product = self._active_product(db, product_id)

        repo = CartRepo(db)
        existing = repo.find_item_for_variant(cart.id, variant_id) if variant_id else None
        wanted = quantity + (existing.quantity if existing else 0)

        variant = self._resolve_variant(db, product, variant_id, wanted)
        if existing is None:
            existing = repo.find_item_for_variant(cart.id, variant.id)
            if existing is not None:
                wanted = quantity + existing.quantity
                variant = self._resolve_variant(db, product, variant.id, wanted)

        if existing is not None:
            existing.quantity = wanted
            self._snapshot(existing, product, variant)
            db.flush()
            logger.info(f"Cart {cart.id}: variant {variant.id} quantity now {wanted}")
        else:
            item = CartItemModel(product_id=product.id, variant_id=variant.id, quantity=quantity)
            self._snapshot(item, product, variant)
            repo.add_cart_item(cart, item)
            logger.info(f"Cart {cart.id}: added {quantity} x variant {variant.id}")

        return self._view(cart)

    @transactional(isolation_level=None)
    def update_item(self, db: Session, user_id: str, item_id: str, quantity: int) -> dict:
        cart = self.get_or_create_cart(db, user_id)
        item = CartRepo(db).get_cart_item(cart.id, item_id)
        if item is None:
            raise NotFoundError("Cart item not found")

        product = CatalogRepo(db).get_product(item.product_id)
        if product is None or product.status != ProductStatus.ACTIVE.value:
            raise ProductInactiveError("Product is not available")

        variant = self._resolve_variant(db, product, item.variant_id, quantity)
        item.quantity = quantity
        item.variant_id = variant.id
        self._snapshot(item, product, variant)
        db.flush()

        logger.info(f"Cart {cart.id}: item {item.id} quantity set to {quantity}")
        return self._view(cart)

    @transactional(isolation_level=None)
    def remove_item(self, db: Session, user_id: str, item_id: str) -> dict:
        cart = self.get_or_create_cart(db, user_id)
        repo = CartRepo(db)
        item = repo.get_cart_item(cart.id, item_id)
        if item is None:
            raise NotFoundError("Cart item not found")

        repo.delete_cart_item(cart, item)
        logger.info(f"Cart {cart.id}: item {item_id} removed")
        return self._view(cart)

    def _active_product(self, db: Session, product_id: str) -> ProductModel:
        product = CatalogRepo(db).get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if product.status != ProductStatus.ACTIVE.value:
            raise ProductInactiveError("Product is not available")
        return product

    def _resolve_variant(
        self, db: Session, product: ProductModel, variant_id: str | None, quantity: int
    ) -> ProductVariantModel:
        catalog = CatalogRepo(db)
        if variant_id:
            variant = catalog.get_variant(variant_id)
            if variant is None or variant.product_id != product.id:
                raise NotFoundError("Variant not found")
            on_hand = variant.stock_item.on_hand if variant.stock_item else 0
            if on_hand < quantity:
                raise OutOfStockError("Requested quantity is not in stock")
            return variant

        # no variant chosen: first variant that can cover the quantity
        variant = catalog.first_variant_with_stock(product.id, quantity)
        if variant is None:
            raise OutOfStockError("Product is out of stock")
        return variant

    def _snapshot(self, item: CartItemModel, product: ProductModel, variant: ProductVariantModel) -> None:
        item.pricing = variant.pricing
        item.name_snapshot = variant.name or product.name
        item.sku_snapshot = variant.sku or product.slug
        item.attributes_snapshot = dict(variant.attributes or {})

    def _view(self, cart: CartModel) -> dict:
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "items": [cart_item_view(item) for item in cart.items],
            "subtotal": cart_subtotal(cart.items),
        }
