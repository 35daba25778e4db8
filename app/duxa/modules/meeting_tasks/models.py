from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.duxa.models import Base

if TYPE_CHECKING:
    from app.duxa.models import User


class MeetingTask(Base):
    """A decision or follow-up recorded during a staff meeting."""

    __tablename__ = "meeting_tasks"
    __table_args__ = (
        Index("idx_meeting_tasks_status", "status"),
        Index("idx_meeting_tasks_order", "order_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    link: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # active | important | postponed | completed
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    responsible_person_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # first moment the task had a title or description
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    responsible_person: Mapped["User | None"] = relationship("User", foreign_keys=[responsible_person_id], lazy="selectin")
