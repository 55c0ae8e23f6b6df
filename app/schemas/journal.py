"""
Journal request / response schemas.

POST /journals                    → JournalCreate      → JournalOut
PUT  /journals/{date}             → JournalUpdate      → JournalOut
POST /journals/{date}/edit        → JournalEditRequest → JournalOut
POST /journals/{date}/chat        → ChatRequest        → JournalOut
POST /journals/{date}/finish                           → FinishOut
GET  /journals                    → JournalFilters     → JournalPageOut
"""
from __future__ import annotations

import datetime as dt
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.journal import MAX_TONE_TAGS, JournalStatus, ToneTag

DayRating = Annotated[int, Field(ge=1, le=5, description="1 (rough) to 5 (great).", examples=[4])]

LIST_DEFAULT_LIMIT = 20
LIST_MAX_LIMIT = 100
MESSAGE_MAX_LENGTH = 20_000


# ---------------------------------------------------------------------------
# Chat session
# ---------------------------------------------------------------------------

class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(max_length=MESSAGE_MAX_LENGTH)
    timestamp: Optional[str] = Field(default=None, description="ISO-8601 timestamp.")


class ChatMessageOut(BaseModel):
    role: str
    content: str
    timestamp: Optional[str] = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class JournalCreate(BaseModel):
    date: dt.date = Field(description="Calendar day of the entry (YYYY-MM-DD).", examples=["2025-06-01"])
    initial_message: Optional[str] = Field(
        default=None,
        max_length=MESSAGE_MAX_LENGTH,
        description="What the user wrote first.",
        examples=["Great day at the park"],
    )
    day_rating: Optional[DayRating] = None


class JournalUpdate(BaseModel):
    """
    Partial update. Only fields present in the body are applied; an
    explicit null clears the field. Status is not editable here.
    """
    model_config = ConfigDict(use_enum_values=True)

    initial_message: Optional[str] = Field(default=None, max_length=MESSAGE_MAX_LENGTH)
    day_rating: Optional[DayRating] = None
    chat_session: Optional[list[ChatMessageIn]] = None
    summary: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=256)
    synopsis: Optional[str] = None
    tone_tags: Optional[list[ToneTag]] = Field(
        default=None,
        max_length=MAX_TONE_TAGS,
        description="At most two tones from the fixed list.",
        examples=[["happy", "calm"]],
    )

    @field_validator("tone_tags")
    @classmethod
    def unique_tones(cls, v):
        if v is not None and len(set(v)) != len(v):
            raise ValueError("tone tags must be unique")
        return v


class JournalEditRequest(BaseModel):
    initial_message: Optional[str] = Field(default=None, max_length=MESSAGE_MAX_LENGTH)
    day_rating: Optional[DayRating] = None


class ChatRequest(BaseModel):
    message: str = Field(
        min_length=1,
        max_length=MESSAGE_MAX_LENGTH,
        examples=["It was mostly the meeting with my manager."],
    )

    @field_validator("message", mode="before")
    @classmethod
    def strip_and_check_empty(cls, v):
        stripped = v.strip() if isinstance(v, str) else v
        if isinstance(stripped, str) and not stripped:
            raise ValueError("message must not be empty after stripping whitespace")
        return stripped


class JournalFilters(BaseModel):
    status: Optional[JournalStatus] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    search: Optional[str] = Field(default=None, max_length=200)
    tag_id: Optional[int] = None
    tone_tag: Optional[ToneTag] = None
    limit: int = Field(default=LIST_DEFAULT_LIMIT, ge=1, le=LIST_MAX_LIMIT)
    offset: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class JournalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: dt.date
    status: str
    initial_message: Optional[str] = None
    chat_session: list[ChatMessageOut] = Field(default_factory=list)
    summary: Optional[str] = None
    title: Optional[str] = None
    synopsis: Optional[str] = None
    tone_tags: list[str] = Field(default_factory=list)
    day_rating: Optional[int] = None
    inferred_day_rating: Optional[int] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def enum_value(cls, v: Any) -> Any:
        return v.value if hasattr(v, "value") else v

    @field_validator("chat_session", "tone_tags", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return v or []


class TodayOut(BaseModel):
    exists: bool
    journal: Optional[JournalOut] = None
    status: Optional[str] = None
    action_text: str = Field(examples=["Write Journal", "Continue Writing"])


class ContentTagOut(BaseModel):
    id: int
    name: str


class TagUsageOut(BaseModel):
    id: int
    name: str
    usage_count: int


class JournalListItemOut(JournalOut):
    xp_earned: int = 0
    content_tags: list[ContentTagOut] = Field(default_factory=list)
    character_count: int = 0
    word_count: int = 0


class JournalPageOut(BaseModel):
    items: list[JournalListItemOut]
    total: int
    limit: int
    offset: int
    has_more: bool
    available_tags: list[TagUsageOut] = Field(default_factory=list)


class FinishOut(BaseModel):
    journal: JournalOut
    xp_awarded: int
    content_tag_ids: list[int]
    todo_ids: list[int]
    attributes_added: list[str]


class DeleteOut(BaseModel):
    date: dt.date
    recomputed: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Entities whose cached XP totals were rebuilt.",
    )


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

class DailyMemoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    initial_message: str
    assistant_reply: Optional[str] = None


class PeriodMemoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_date: dt.date
    end_date: dt.date
    summary: str


class JournalMemoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cutoff: dt.date
    monthly: list[PeriodMemoryOut]
    weekly: list[PeriodMemoryOut]
    daily: list[DailyMemoryOut]
