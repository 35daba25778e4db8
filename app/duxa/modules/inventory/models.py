from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.duxa.models import Base

if TYPE_CHECKING:
    from app.duxa.modules.catalog.models import Product
    from app.duxa.modules.tenants.models import Tenant


class HardwareInventoryItem(Base):
    __tablename__ = "hardware_inventory"
    __table_args__ = (
        Index("idx_hardware_inventory_status", "status"),
        Index("idx_hardware_inventory_tenant", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    serial_number: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    device_type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "POS", "Kiosk", "Printer"
    model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="in_stock")

    tenant_id: Mapped[int | None] = mapped_column(ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    assignment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    tenant: Mapped["Tenant | None"] = relationship("Tenant", lazy="selectin")
    product: Mapped["Product | None"] = relationship("Product", lazy="selectin")
