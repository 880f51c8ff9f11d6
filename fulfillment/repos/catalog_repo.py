# fulfillment/repos/catalog_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from fulfillment.data.models.product import ProductModel, ProductVariantModel
from fulfillment.data.models.stock import StockItemModel


class CatalogRepo:
    """Read-only access to the catalog's product and variant rows."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_variant(self, variant_id: str) -> ProductVariantModel | None:
        return self.db.execute(
            select(ProductVariantModel)
            .options(joinedload(ProductVariantModel.stock_item))
            .where(ProductVariantModel.id == variant_id)
        ).scalar_one_or_none()

    def first_variant_with_stock(self, product_id: str, quantity: int) -> ProductVariantModel | None:
        return self.db.execute(
            select(ProductVariantModel)
            .join(StockItemModel, StockItemModel.variant_id == ProductVariantModel.id)
            .where(
                ProductVariantModel.product_id == product_id,
                StockItemModel.on_hand >= quantity,
            )
            .order_by(ProductVariantModel.created_at, ProductVariantModel.id)
            .limit(1)
        ).scalar_one_or_none()
