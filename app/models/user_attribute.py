from datetime import datetime
import enum

from sqlalchemy import Integer, String, DateTime, Enum, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class AttributeSource(str, enum.Enum):
    user_set = "user_set"
    gpt_summary = "gpt_summary"
    journal_analysis = "journal_analysis"


# Category used for free-form traits discovered while finishing a journal.
TRAIT_CATEGORY = "traits"
SUMMARY_CATEGORIES = ("priorities", "values", "motivators", "challenges")


class UserAttribute(Base):
    """A durable trait inferred about (or declared by) the user."""

    __tablename__ = "user_attributes"
    __table_args__ = (
        UniqueConstraint("user_id", "category", "value", name="uq_user_attribute"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[str] = mapped_column(String(128), nullable=False)
    source: Mapped[str] = mapped_column(
        Enum(AttributeSource, name="attribute_source_enum"), nullable=False,
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
