from datetime import datetime
from typing import Any
from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class CharacterStat(Base):
    """
    A trainable attribute of the user's character (Strength, Wisdom …).

    total_xp is a cache of SUM(xp_grants.xp_amount) for this stat and can be
    rebuilt with app.services.xp_ledger.recompute_entity_total.
    """

    __tablename__ = "character_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    example_activities: Mapped[list[Any] | None] = mapped_column(
        JSON, nullable=True,
        comment='[{"description": "Deadlift session", "suggestedXp": 20}] or plain strings',
    )
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
