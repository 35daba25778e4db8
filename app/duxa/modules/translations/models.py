from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.duxa.models import Base


class SupportedLanguage(Base):
    __tablename__ = "supported_languages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(8), nullable=False, unique=True)  # e.g. "tr"
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_in_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_in_marketing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_in_online_menu: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Translation(Base):
    """One UI string in one language. `key` is the dotted path into the i18n JSON file."""

    __tablename__ = "translations"
    __table_args__ = (
        UniqueConstraint("key", "language_code", name="uq_translations_key_lang"),
        Index("idx_translations_updated", "updated_at"),
        Index("idx_translations_lang", "language_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    language_code: Mapped[str] = mapped_column(String(8), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
