import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class XpGrantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: int
    xp_amount: int
    source_type: str
    source_id: Optional[int] = None
    reason: Optional[str] = None
    created_at: Optional[dt.datetime] = None


class JournalGrantsOut(BaseModel):
    journal_id: int
    date: dt.date
    grants: list[XpGrantOut]
    total_xp: int = Field(description="Sum over all grants; content tags always count 0.")
    totals_by_entity_type: dict[str, int]
