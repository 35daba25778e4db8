from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.duxa.models import Base


class Theme(Base):
    """Design token set applied to a restaurant's online menu and kiosk screens."""

    __tablename__ = "themes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # e.g. "theme-1"
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    colors: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    typography: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    layout: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    components: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
