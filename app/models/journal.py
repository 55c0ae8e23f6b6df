"""
Journal — one conversational entry per (user, calendar day).

Lifecycle: draft → in_review → complete. `edit` is the only transition
back (complete → draft); see app/services/journal_lifecycle.py.

chat_session: JSON list of {role, content, timestamp}. Always assign a new
list; in-place mutation of a JSON column is not tracked.
"""
import datetime as dt
from typing import Any
import enum

from sqlalchemy import (
    Integer, String, Text, DateTime, Date, Enum, ForeignKey, JSON,
    UniqueConstraint, CheckConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class JournalStatus(str, enum.Enum):
    draft = "draft"
    in_review = "in_review"
    complete = "complete"


class ToneTag(str, enum.Enum):
    happy = "happy"
    calm = "calm"
    energized = "energized"
    overwhelmed = "overwhelmed"
    sad = "sad"
    angry = "angry"
    anxious = "anxious"


TONE_TAG_VALUES = frozenset(t.value for t in ToneTag)
MAX_TONE_TAGS = 2


class Journal(Base):
    __tablename__ = "journals"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_journal_user_date"),
        CheckConstraint("day_rating BETWEEN 1 AND 5", name="ck_journal_day_rating"),
        CheckConstraint(
            "inferred_day_rating BETWEEN 1 AND 5", name="ck_journal_inferred_day_rating"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        Enum(JournalStatus, name="journal_status_enum"),
        nullable=False,
        default=JournalStatus.draft,
        index=True,
    )
    initial_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    chat_session: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    # Generated on finish, cleared on edit
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)
    tone_tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    day_rating: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="1-5, set by the user",
    )
    inferred_day_rating: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="1-5, keyword heuristic; only when day_rating is null",
    )

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
