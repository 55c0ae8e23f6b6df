"""
Journal memory aggregator — layered context for the companion.

Three tiers, never overlapping in the dates they cover:

  daily    complete journals from the cutoff up to today (newest 14)
  weekly   weekly summaries that ended at least 7 days ago (newest 3)
  monthly  monthly summaries ending before the oldest included weekly
           summary starts, or before the daily cutoff (newest 2)

Cutoff = day after the end of the most recent weekly summary that ended
at least 7 days ago; today - 14 days when there is none.

Queries read newest first; the returned memory is reversed so each tier
runs oldest → newest. Prompt order is monthly → weekly → daily.

Public API
----------
get_journal_memory(db, user_id, today=None) -> JournalMemory
memory_to_messages(memory)                  -> list[ChatMessage]
format_memory_for_prompt(memory)            -> str
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.journal import Journal, JournalStatus
from app.models.journal_summary import JournalSummary, SummaryPeriod

WEEKLY_SETTLE_DAYS = 7
DEFAULT_DAILY_WINDOW_DAYS = 14


def _today() -> date:
    return date.today()


# ---------------------------------------------------------------------------
# Tier types
# ---------------------------------------------------------------------------

@dataclass
class DailyMemory:
    date: date
    initial_message: str
    assistant_reply: Optional[str] = None


@dataclass
class PeriodMemory:
    start_date: date
    end_date: date
    summary: str


@dataclass
class JournalMemory:
    cutoff: date
    daily: list[DailyMemory] = field(default_factory=list)
    weekly: list[PeriodMemory] = field(default_factory=list)
    monthly: list[PeriodMemory] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.daily or self.weekly or self.monthly)


def _first_assistant_reply(chat_session) -> Optional[str]:
    for message in chat_session or []:
        if isinstance(message, dict) and message.get("role") == "assistant":
            return message.get("content")
    return None


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

def get_journal_memory(
    db: Session,
    user_id: int,
    today: Optional[date] = None,
) -> JournalMemory:
    today = today or _today()
    settled_before = today - timedelta(days=WEEKLY_SETTLE_DAYS)

    weekly_rows = list(
        db.scalars(
            select(JournalSummary)
            .where(
                JournalSummary.user_id == user_id,
                JournalSummary.period == SummaryPeriod.week,
                JournalSummary.end_date <= settled_before,
            )
            .order_by(JournalSummary.end_date.desc())
            .limit(settings.MEMORY_WEEKLY_LIMIT)
        )
    )

    if weekly_rows:
        cutoff = weekly_rows[0].end_date + timedelta(days=1)
    else:
        cutoff = today - timedelta(days=DEFAULT_DAILY_WINDOW_DAYS)

    journals = list(
        db.scalars(
            select(Journal)
            .where(
                Journal.user_id == user_id,
                Journal.status == JournalStatus.complete,
                Journal.date >= cutoff,
                Journal.date <= today,
            )
            .order_by(Journal.date.desc())
            .limit(settings.MEMORY_DAILY_LIMIT)
        )
    )
    daily = [
        DailyMemory(
            date=j.date,
            initial_message=j.initial_message or "",
            assistant_reply=(
                _first_assistant_reply(j.chat_session)
                if i < settings.MEMORY_DAILY_WITH_REPLY
                else None
            ),
        )
        for i, j in enumerate(journals)
    ]

    monthly_before = weekly_rows[-1].start_date if weekly_rows else cutoff
    monthly_rows = list(
        db.scalars(
            select(JournalSummary)
            .where(
                JournalSummary.user_id == user_id,
                JournalSummary.period == SummaryPeriod.month,
                JournalSummary.end_date < monthly_before,
            )
            .order_by(JournalSummary.end_date.desc())
            .limit(settings.MEMORY_MONTHLY_LIMIT)
        )
    )

    return JournalMemory(
        cutoff=cutoff,
        daily=list(reversed(daily)),
        weekly=[PeriodMemory(s.start_date, s.end_date, s.summary) for s in reversed(weekly_rows)],
        monthly=[PeriodMemory(s.start_date, s.end_date, s.summary) for s in reversed(monthly_rows)],
    )


# ---------------------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------------------

def _short(d: date) -> str:
    return f"{d:%b} {d.day}"


def _monthly_text(m: PeriodMemory) -> str:
    return f"Monthly summary ({m.start_date:%B %Y}):\n{m.summary}"


def _weekly_text(w: PeriodMemory) -> str:
    return f"Weekly summary ({_short(w.start_date)} - {_short(w.end_date)}):\n{w.summary}"


def memory_to_messages(memory: JournalMemory) -> list[dict[str, str]]:
    """
    Role-tagged messages: summaries as user-side context, each past entry
    as the user's words followed by the companion's first reply if kept.
    """
    messages: list[dict[str, str]] = []
    for m in memory.monthly:
        messages.append({"role": "user", "content": _monthly_text(m)})
    for w in memory.weekly:
        messages.append({"role": "user", "content": _weekly_text(w)})
    for d in memory.daily:
        messages.append({
            "role": "user",
            "content": f"Journal entry from {d.date.isoformat()}:\n{d.initial_message}",
        })
        if d.assistant_reply:
            messages.append({"role": "assistant", "content": d.assistant_reply})
    return messages


def format_memory_for_prompt(memory: JournalMemory) -> str:
    parts: list[str] = []

    if memory.monthly:
        parts.append("**Monthly Context:**")
        parts.extend(f"**{m.start_date:%B %Y}**\n{m.summary}" for m in memory.monthly)

    if memory.weekly:
        parts.append("**Weekly Context:**")
        parts.extend(
            f"**{_short(w.start_date)} - {_short(w.end_date)}**\n{w.summary}" for w in memory.weekly
        )

    if memory.daily:
        parts.append("**Recent Daily Journals:**")
        for d in memory.daily:
            block = f"**{_short(d.date)}**\n\"{d.initial_message}\""
            if d.assistant_reply:
                block += f"\n*Response: \"{d.assistant_reply}\"*"
            parts.append(block)

    return "\n\n".join(parts)
