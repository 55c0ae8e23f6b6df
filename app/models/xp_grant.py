"""
XpGrant — append-only XP ledger.

entity_id is a weak reference: the (entity_type, entity_id) pair points at
a row in character_stats, family_members, tags … without a foreign key.
Cached totals on those rows must always equal SUM(xp_amount) here.

Rows are never updated. They are deleted in bulk when the source journal
is deleted or substantively edited.
"""
from datetime import datetime
import enum

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, Index, CheckConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class XpEntityType(str, enum.Enum):
    character_stat = "character_stat"
    family_member = "family_member"
    content_tag = "content_tag"
    goal = "goal"
    project = "project"
    adventure = "adventure"


class XpSourceType:
    JOURNAL = "journal"


class XpGrant(Base):
    __tablename__ = "xp_grants"
    __table_args__ = (
        Index("ix_xp_grants_entity", "entity_type", "entity_id"),
        Index("ix_xp_grants_source", "source_type", "source_id"),
        CheckConstraint("xp_amount >= 0", name="ck_xp_grant_non_negative"),
        CheckConstraint(
            "entity_type <> 'content_tag' OR xp_amount = 0", name="ck_xp_grant_content_tag_zero"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
