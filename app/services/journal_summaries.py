"""
Period summaries — weekly / monthly rollups of complete journals.

Weeks run Saturday → Friday. A summary is produced once per window and
never updated; the memory aggregator reads them as its weekly and monthly
tiers. Attributes the model infers across the window are upserted with
source=gpt_summary.

Public API
----------
week_boundaries(d)                                        -> (start, end)
month_boundaries(d)                                       -> (start, end)
generate_period_summary(db, gateway, user_id, period, start, end) -> JournalSummary
list_summaries(db, user_id, period=None, year=None, limit, offset) -> (rows, total)
get_summary(db, user_id, summary_id)                      -> JournalSummary
"""
from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    SummaryAlreadyExistsError,
    SummaryNotFoundError,
    UpstreamParseError,
    ValidationError,
)
from app.models.journal import Journal, JournalStatus
from app.models.journal_summary import JournalSummary, SummaryPeriod
from app.models.user_attribute import SUMMARY_CATEGORIES, AttributeSource
from app.services.llm_gateway import PERIOD_SUMMARY_MARKER, LLMGateway, parse_json_content
from app.services.tags import normalize_tag_name
from app.services.user_attributes import upsert_attribute
from app.services.user_context import build_user_context, format_user_context

logger = logging.getLogger(__name__)

WEEK_START = calendar.SATURDAY
MAX_SUMMARY_TAGS = 8
SUMMARY_TEMPERATURE = 0.7


def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


# ---------------------------------------------------------------------------
# Window arithmetic
# ---------------------------------------------------------------------------

def week_boundaries(d: date) -> tuple[date, date]:
    """Saturday..Friday window containing d."""
    start = d - timedelta(days=(d.weekday() - WEEK_START) % 7)
    return start, start + timedelta(days=6)


def month_boundaries(d: date) -> tuple[date, date]:
    last_day = calendar.monthrange(d.year, d.month)[1]
    return d.replace(day=1), d.replace(day=last_day)


def period_boundaries(period: str, d: date) -> tuple[date, date]:
    if _ev(period) == SummaryPeriod.week.value:
        return week_boundaries(d)
    return month_boundaries(d)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def _build_messages(
    ctx_text: str,
    period: str,
    journals: list[Journal],
    existing: dict[str, list[str]],
) -> list[dict[str, str]]:
    system = (
        f"You are a thoughtful journal curator summarizing the user's {period}.\n\n"
        "## User context\n\n"
        f"{ctx_text}\n\n"
        "## Instructions\n"
        "1. Write a flowing first-person narrative covering major themes, moods, events, "
        "growth and challenges. Patterns over day-by-day recaps.\n"
        f"2. Give 3-{MAX_SUMMARY_TAGS} short lowercase tags.\n"
        "3. Infer attributes that recur across several entries, each with a category from: "
        f"{', '.join(SUMMARY_CATEGORIES)}. Values are 1-3 words.\n\n"
        "Respond with a JSON object: "
        "{\"summary\": str, \"tags\": [str], \"attributes\": [{\"category\": str, \"value\": str}]}"
    )
    known = [
        f"- {category.capitalize()}: {', '.join(values)}"
        for category, values in sorted(existing.items())
        if values
    ]
    if known:
        system += "\n\nAlready known (do not repeat exact values):\n" + "\n".join(known)

    entries = "\n\n---\n\n".join(
        f"**{j.date.isoformat()}**\n{j.initial_message}" for j in journals if j.initial_message
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": f"Journal entries from this {period}:\n\n{entries}"},
        {"role": "user", "content": PERIOD_SUMMARY_MARKER},
    ]


def _parse_result(text: str) -> tuple[str, list[str], list[tuple[str, str]]]:
    data = parse_json_content(text)
    summary = data.get("summary")
    tags = data.get("tags")
    if not isinstance(summary, str) or not summary.strip() or not isinstance(tags, list):
        raise UpstreamParseError("Period summary response is missing summary or tags.", snippet=text)

    clean_tags: list[str] = []
    for t in tags:
        if isinstance(t, str) and normalize_tag_name(t) and normalize_tag_name(t) not in clean_tags:
            clean_tags.append(normalize_tag_name(t))

    attributes: list[tuple[str, str]] = []
    raw_attrs = data.get("attributes")
    for item in raw_attrs if isinstance(raw_attrs, list) else []:
        if not isinstance(item, dict):
            continue
        category, value = item.get("category"), item.get("value")
        if category in SUMMARY_CATEGORIES and isinstance(value, str) and value.strip():
            attributes.append((category, value.strip()))

    return summary.strip(), clean_tags[:MAX_SUMMARY_TAGS], attributes


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def generate_period_summary(
    db: Session,
    gateway: LLMGateway,
    user_id: int,
    period: str,
    start_date: date,
    end_date: date,
) -> JournalSummary:
    period = _ev(period)
    if end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date.",
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )

    window = (
        JournalSummary.user_id == user_id,
        JournalSummary.period == period,
        JournalSummary.start_date == start_date,
        JournalSummary.end_date == end_date,
    )
    if db.scalar(select(JournalSummary.id).where(*window)) is not None:
        raise SummaryAlreadyExistsError(period, start_date, end_date)

    journals = list(
        db.scalars(
            select(Journal)
            .where(
                Journal.user_id == user_id,
                Journal.status == JournalStatus.complete,
                Journal.date >= start_date,
                Journal.date <= end_date,
            )
            .order_by(Journal.date)
        )
    )
    if not any((j.initial_message or "").strip() for j in journals):
        raise ValidationError(
            f"No complete journals between {start_date} and {end_date}.",
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )

    ctx = build_user_context(db, user_id, include_attributes=True)
    messages = _build_messages(format_user_context(ctx), period, journals, ctx.attributes or {})
    response = gateway.call_model(messages, temperature=SUMMARY_TEMPERATURE)
    summary_text, tags, attributes = _parse_result(response.content)

    row = JournalSummary(
        user_id=user_id,
        period=period,
        start_date=start_date,
        end_date=end_date,
        summary=summary_text,
        tags=tags,
    )
    try:
        db.add(row)
        db.flush()
        for category, value in attributes:
            upsert_attribute(db, user_id, category, value, AttributeSource.gpt_summary.value)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise SummaryAlreadyExistsError(period, start_date, end_date)
    except Exception:
        db.rollback()
        raise

    db.refresh(row)
    logger.info(
        "Generated %s summary %s for user %s (%s..%s, %d journals, %d attributes)",
        period, row.id, user_id, start_date, end_date, len(journals), len(attributes),
    )
    return row


def list_summaries(
    db: Session,
    user_id: int,
    period: Optional[str] = None,
    year: Optional[int] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[JournalSummary], int]:
    q = select(JournalSummary).where(JournalSummary.user_id == user_id)
    if period is not None:
        q = q.where(JournalSummary.period == _ev(period))
    if year is not None:
        q = q.where(
            JournalSummary.start_date >= date(year, 1, 1),
            JournalSummary.start_date <= date(year, 12, 31),
        )
    total = db.scalar(select(func.count()).select_from(q.subquery())) or 0
    rows = list(
        db.scalars(q.order_by(JournalSummary.start_date.desc()).limit(limit).offset(offset))
    )
    return rows, total


def get_summary(db: Session, user_id: int, summary_id: int) -> JournalSummary:
    row = db.scalar(
        select(JournalSummary).where(
            JournalSummary.id == summary_id, JournalSummary.user_id == user_id
        )
    )
    if row is None:
        raise SummaryNotFoundError(summary_id)
    return row
