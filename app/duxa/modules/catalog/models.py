from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.duxa.models import Base


class Product(Base):
    """
    Something the platform sells to restaurants: a subscription plan, a device, an add-on.
    """

    __tablename__ = "products"
    __table_args__ = (
        Index("idx_products_type", "type"),
        Index("idx_products_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    type: Mapped[str] = mapped_column(String(32), nullable=False)  # subscription, hardware, addon, service
    billing_cycle: Mapped[str] = mapped_column(String(16), nullable=False, default="one_time")

    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    min_sales_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=20)

    stock_track: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_stock: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    options: Mapped[list["ProductOption"]] = relationship(
        "ProductOption",
        foreign_keys="ProductOption.parent_product_id",
        back_populates="parent",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProductOption(Base):
    """Links an add-on product (child) to the product it can be sold with (parent)."""

    __tablename__ = "product_options"
    __table_args__ = (
        UniqueConstraint("parent_product_id", "child_product_id", name="uq_product_options_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parent_product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    child_product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    parent: Mapped[Product] = relationship(Product, foreign_keys=[parent_product_id], back_populates="options")
    child: Mapped[Product] = relationship(Product, foreign_keys=[child_product_id], lazy="selectin")


class ProductSale(Base):
    __tablename__ = "product_sales"
    __table_args__ = (
        Index("idx_product_sales_product", "product_id"),
        Index("idx_product_sales_tenant", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    tenant_id: Mapped[int | None] = mapped_column(ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    sold_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
