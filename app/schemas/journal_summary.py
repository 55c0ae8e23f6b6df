import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.journal_summary import SummaryPeriod


class GenerateSummaryRequest(BaseModel):
    """
    Window to summarize. When end_date is omitted the window is the
    Saturday..Friday week (period=week) or calendar month containing
    start_date.
    """
    period: SummaryPeriod = Field(examples=["week"])
    start_date: dt.date = Field(examples=["2025-05-31"])
    end_date: Optional[dt.date] = Field(default=None, examples=["2025-06-06"])

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SummaryFilters(BaseModel):
    period: Optional[SummaryPeriod] = None
    year: Optional[int] = Field(default=None, ge=1970, le=9999)
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class JournalSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    period: str
    start_date: dt.date
    end_date: dt.date
    summary: str
    tags: list[str] = Field(default_factory=list)
    created_at: Optional[dt.datetime] = None

    @field_validator("period", mode="before")
    @classmethod
    def enum_value(cls, v):
        return v.value if hasattr(v, "value") else v

    @field_validator("tags", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


class SummaryPageOut(BaseModel):
    items: list[JournalSummaryOut]
    total: int
    limit: int
    offset: int
    has_more: bool
