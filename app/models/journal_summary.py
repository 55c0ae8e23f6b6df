"""
JournalSummary — weekly / monthly rollup narrative.

Produced once per (user, period, start_date, end_date) from the complete
journals inside the window; no update path. Read by the memory aggregator.
"""
from datetime import datetime, date
import enum

from sqlalchemy import (
    Integer, Text, DateTime, Date, Enum, ForeignKey, JSON, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class SummaryPeriod(str, enum.Enum):
    week = "week"
    month = "month"


class JournalSummary(Base):
    __tablename__ = "journal_summaries"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "period", "start_date", "end_date", name="uq_journal_summary_window"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period: Mapped[str] = mapped_column(
        Enum(SummaryPeriod, name="summary_period_enum"), nullable=False, index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
