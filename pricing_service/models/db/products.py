from __future__ import annotations
"""SQLAlchemy models for the product catalog (read for snapshots, written with derived prices)."""
from datetime import datetime
from typing import Any

from sqlalchemy import Integer, String, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship, Mapped, mapped_column

from pricing_service.database import Base
from pricing_service.utils.time import utc_now
from .enums import ProductStatus, ProductType


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    base_sku: Mapped[str] = mapped_column(String, unique=True, index=True)
    product_type: Mapped[str] = mapped_column(String(64), nullable=False, default=ProductType.JEWELLERY_DEFAULT.value)
    status: Mapped[ProductStatus] = mapped_column(Enum(ProductStatus), nullable=False, default=ProductStatus.DRAFT, index=True)
    # Bill of materials: stone entries, attributes (categories/tags/badges)
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    # Derived, written by price recalculation (subunits)
    min_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    @property
    def display_name(self) -> str:
        return self.name or self.base_sku


class ProductVariant(Base):
    __tablename__ = "product_variants"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku: Mapped[str | None] = mapped_column(String, nullable=True)
    # Metal purity/type/color, weights, chosen stone qualities
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    compare_at_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_components: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    product: Mapped[Product] = relationship("Product", back_populates="variants")
