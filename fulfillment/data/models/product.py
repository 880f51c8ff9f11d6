from sqlalchemy import JSON, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import composite, relationship

from fulfillment.data.database import Base, new_id
from fulfillment.domain.enums import ProductStatus
from fulfillment.domain.pricing import Pricing
from fulfillment.utils.clock import utcnow


class ProductModel(Base):
    """Catalog product, owned by the catalog; the core only reads it."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=ProductStatus.DRAFT.value)
    base_price = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    variants = relationship(
        "ProductVariantModel",
        back_populates="product",
        order_by="ProductVariantModel.created_at",
    )


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    sku = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    cost_price = Column(Numeric(12, 2), nullable=True)
    attributes = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    pricing = composite(Pricing, price, cost_price)

    product = relationship("ProductModel", back_populates="variants")
    stock_item = relationship("StockItemModel", back_populates="variant", uselist=False)
