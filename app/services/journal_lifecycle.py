"""
Journal lifecycle controller.

States:  draft → in_review → complete
         complete → draft only through edit_journal()

Transaction rules:
- Every public function here is a root operation: it commits on success
  and rolls back on any exception.
- finish_journal() calls the model before writing anything. The status
  change is a guarded UPDATE (... WHERE status IN ('draft','in_review'))
  that must hit exactly one row; the side-effect batch then runs in the
  same transaction. A concurrent second finish loses the guard.

Public API
----------
create_journal(db, user_id, day, initial_message, day_rating)   -> Journal
get_journal(db, user_id, day)                                    -> Journal
get_today(db, user_id, today=None)                               -> TodayStatus
list_journals(db, user_id, filters)                              -> JournalPage
update_journal(db, user_id, day, changes)                        -> Journal
edit_journal(db, user_id, day, changes)                          -> Journal
start_reflection(db, gateway, user_id, day)                      -> Journal
append_chat_message(db, gateway, user_id, day, message)          -> Journal
finish_journal(db, gateway, user_id, day)                        -> FinishResult
delete_journal(db, user_id, day)                                 -> list[(entity_type, entity_id)]
infer_day_rating(chat_session)                                   -> int
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import String, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    InvalidStateError,
    JournalAlreadyExistsError,
    JournalNotFoundError,
    ValidationError,
)
from app.models.character_stat import CharacterStat
from app.models.family_member import FamilyMember
from app.models.journal import Journal, JournalStatus
from app.models.tag import Tag
from app.models.todo import Todo
from app.models.user_attribute import TRAIT_CATEGORY, AttributeSource
from app.models.xp_grant import XpEntityType, XpGrant, XpSourceType
from app.schemas.journal import JournalEditRequest, JournalFilters, JournalUpdate
from app.services.extraction import (
    JournalMetadata,
    generate_follow_up,
    resolve_metadata,
    resolve_tag_ids,
    run_analyses,
)
from app.services.journal_memory import get_journal_memory
from app.services.llm_gateway import LLMGateway
from app.services.tags import TagUsage, list_tags_with_counts
from app.services.user_attributes import bulk_insert_attributes
from app.services.user_context import build_user_context
from app.services.xp_ledger import (
    delete_grants_for_source,
    grant_family_xp,
    grant_stat_xp,
    record_grant,
    xp_earned_by_source,
)

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (JournalStatus.draft, JournalStatus.in_review)

ACTION_TEXT = {
    None: "Write Journal",
    JournalStatus.draft.value: "Continue Writing",
    JournalStatus.in_review.value: "Resume Reflection",
    JournalStatus.complete.value: "View Entry",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _today() -> date:
    return date.today()


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _ev(v) -> str:
    """Return bare string value from a str-enum or plain str."""
    return v.value if hasattr(v, "value") else str(v)


def chat_message(role: str, content: str) -> dict[str, str]:
    return {"role": role, "content": content, "timestamp": _now().isoformat()}


def _require_status(journal: Journal, allowed: Sequence[JournalStatus], action: str) -> None:
    if _ev(journal.status) not in {s.value for s in allowed}:
        raise InvalidStateError(
            f"Can only {action} journal in {' or '.join(s.value for s in allowed)} status.",
            current_status=_ev(journal.status),
        )


# ---------------------------------------------------------------------------
# Day rating heuristic
# ---------------------------------------------------------------------------

POSITIVE_WORDS = ("great", "good", "happy", "amazing", "wonderful", "excellent", "fantastic")
NEGATIVE_WORDS = ("bad", "terrible", "awful", "sad", "angry", "frustrated", "stressed")

_POSITIVE_RE = re.compile(r"\b(?:" + "|".join(POSITIVE_WORDS) + r")\b")
_NEGATIVE_RE = re.compile(r"\b(?:" + "|".join(NEGATIVE_WORDS) + r")\b")


def infer_day_rating(chat_session: Sequence[dict[str, Any]]) -> int:
    text = " ".join(str(m.get("content") or "") for m in chat_session).lower()
    positive = len(_POSITIVE_RE.findall(text))
    negative = len(_NEGATIVE_RE.findall(text))

    if positive > negative * 2:
        return 5
    if positive > negative:
        return 4
    if positive == negative:
        return 3
    if negative > positive:
        return 2
    # Unreachable: the branches above are exhaustive. Kept so the scale
    # still spans 1-5 if the lexicon weighting ever changes.
    return 1


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@dataclass
class TodayStatus:
    exists: bool
    action_text: str
    journal: Optional[Journal] = None
    status: Optional[str] = None


@dataclass
class ContentTagRef:
    id: int
    name: str


@dataclass
class JournalListItem:
    journal: Journal
    xp_earned: int
    content_tags: list[ContentTagRef]
    character_count: int
    word_count: int


@dataclass
class JournalPage:
    items: list[JournalListItem]
    total: int
    limit: int
    offset: int
    has_more: bool
    available_tags: list[TagUsage] = field(default_factory=list)


def get_journal(db: Session, user_id: int, day: date) -> Journal:
    journal = db.scalar(select(Journal).where(Journal.user_id == user_id, Journal.date == day))
    if journal is None:
        raise JournalNotFoundError(day)
    return journal


def get_today(db: Session, user_id: int, today: Optional[date] = None) -> TodayStatus:
    day = today or _today()
    journal = db.scalar(select(Journal).where(Journal.user_id == user_id, Journal.date == day))
    if journal is None:
        return TodayStatus(exists=False, action_text=ACTION_TEXT[None])
    status = _ev(journal.status)
    return TodayStatus(exists=True, journal=journal, status=status, action_text=ACTION_TEXT[status])


def _content_tags_by_journal(db: Session, journal_ids: list[int]) -> dict[int, list[ContentTagRef]]:
    if not journal_ids:
        return {}
    rows = db.execute(
        select(XpGrant.source_id, Tag.id, Tag.name)
        .join(Tag, Tag.id == XpGrant.entity_id)
        .where(
            XpGrant.source_type == XpSourceType.JOURNAL,
            XpGrant.source_id.in_(journal_ids),
            XpGrant.entity_type == XpEntityType.content_tag.value,
        )
        .order_by(XpGrant.id)
    ).all()
    tags: dict[int, list[ContentTagRef]] = {jid: [] for jid in journal_ids}
    for journal_id, tag_id, name in rows:
        if all(t.id != tag_id for t in tags[journal_id]):
            tags[journal_id].append(ContentTagRef(id=tag_id, name=name))
    return tags


def list_journals(db: Session, user_id: int, filters: JournalFilters) -> JournalPage:
    q = select(Journal).where(Journal.user_id == user_id)

    if filters.status is not None:
        q = q.where(Journal.status == filters.status)
    if filters.date_from is not None:
        q = q.where(Journal.date >= filters.date_from)
    if filters.date_to is not None:
        q = q.where(Journal.date <= filters.date_to)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        q = q.where(
            or_(
                Journal.title.ilike(pattern),
                Journal.synopsis.ilike(pattern),
                Journal.initial_message.ilike(pattern),
            )
        )
    if filters.tag_id is not None:
        tagged = select(XpGrant.source_id).where(
            XpGrant.user_id == user_id,
            XpGrant.source_type == XpSourceType.JOURNAL,
            XpGrant.entity_type == XpEntityType.content_tag.value,
            XpGrant.entity_id == filters.tag_id,
        )
        q = q.where(Journal.id.in_(tagged))
    if filters.tone_tag is not None:
        # tone_tags is a JSON list; match the quoted member in its text form.
        q = q.where(cast(Journal.tone_tags, String).like(f'%"{_ev(filters.tone_tag)}"%'))

    total = db.scalar(select(func.count()).select_from(q.subquery())) or 0
    journals = list(
        db.scalars(
            q.order_by(Journal.date.desc()).limit(filters.limit).offset(filters.offset)
        )
    )

    ids = [j.id for j in journals]
    xp = xp_earned_by_source(db, XpSourceType.JOURNAL, ids)
    tags = _content_tags_by_journal(db, ids)

    items = []
    for j in journals:
        text = j.initial_message or ""
        items.append(
            JournalListItem(
                journal=j,
                xp_earned=xp.get(j.id, 0),
                content_tags=tags.get(j.id, []),
                character_count=len(text),
                word_count=len(text.split()),
            )
        )

    return JournalPage(
        items=items,
        total=total,
        limit=filters.limit,
        offset=filters.offset,
        has_more=filters.offset + len(items) < total,
        available_tags=list_tags_with_counts(db, user_id),
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def create_journal(
    db: Session,
    user_id: int,
    day: date,
    initial_message: Optional[str] = None,
    day_rating: Optional[int] = None,
) -> Journal:
    existing = db.scalar(select(Journal.id).where(Journal.user_id == user_id, Journal.date == day))
    if existing is not None:
        raise JournalAlreadyExistsError(day)

    journal = Journal(
        user_id=user_id,
        date=day,
        status=JournalStatus.draft,
        initial_message=initial_message,
        day_rating=day_rating,
        chat_session=[],
    )
    db.add(journal)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with another create for the same day.
        db.rollback()
        raise JournalAlreadyExistsError(day)
    db.refresh(journal)
    logger.info("Journal %s created for user %s (%s)", journal.id, user_id, day)
    return journal


def update_journal(db: Session, user_id: int, day: date, changes: JournalUpdate) -> Journal:
    """Apply only the fields present in the request; status is not editable here."""
    journal = get_journal(db, user_id, day)
    fields = changes.model_dump(exclude_unset=True)

    for name, value in fields.items():
        if name == "tone_tags" and value is not None:
            value = [_ev(t) for t in value]
        if name == "chat_session" and value is not None:
            value = [dict(m) for m in value]
        setattr(journal, name, value)

    if fields.get("day_rating") is not None:
        journal.inferred_day_rating = None

    db.commit()
    db.refresh(journal)
    return journal


def edit_journal(db: Session, user_id: int, day: date, changes: JournalEditRequest) -> Journal:
    """
    Reopen a journal for editing.

    On a complete journal the generated fields are cleared and status goes
    back to draft; if the initial message actually changed, the XP this
    journal granted is removed first. Draft and in_review journals only
    take the new values.
    """
    journal = get_journal(db, user_id, day)
    fields = changes.model_dump(exclude_unset=True)
    new_message = fields.get("initial_message", journal.initial_message)
    content_changed = (new_message or "").strip() != (journal.initial_message or "").strip()

    try:
        if _ev(journal.status) == JournalStatus.complete.value:
            if content_changed:
                delete_grants_for_source(db, user_id, XpSourceType.JOURNAL, journal.id)
            journal.summary = None
            journal.title = None
            journal.synopsis = None
            journal.tone_tags = None
            journal.inferred_day_rating = None
            journal.status = JournalStatus.draft

        if "initial_message" in fields:
            journal.initial_message = fields["initial_message"]
        if "day_rating" in fields:
            journal.day_rating = fields["day_rating"]
            if fields["day_rating"] is not None:
                journal.inferred_day_rating = None

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(journal)
    logger.info(
        "Journal %s edited (content_changed=%s, status=%s)",
        journal.id, content_changed, _ev(journal.status),
    )
    return journal


def start_reflection(db: Session, gateway: LLMGateway, user_id: int, day: date) -> Journal:
    journal = get_journal(db, user_id, day)
    _require_status(journal, (JournalStatus.draft,), "start reflection on")
    if not (journal.initial_message or "").strip():
        raise ValidationError("Write something before starting a reflection.")

    ctx = build_user_context(db, user_id)
    memory = get_journal_memory(db, user_id)
    session = [chat_message("user", journal.initial_message)]
    reply = generate_follow_up(gateway, session, ctx, memory)

    journal.chat_session = session + [chat_message("assistant", reply)]
    journal.status = JournalStatus.in_review
    db.commit()
    db.refresh(journal)
    return journal


def append_chat_message(
    db: Session,
    gateway: LLMGateway,
    user_id: int,
    day: date,
    message: str,
) -> Journal:
    journal = get_journal(db, user_id, day)
    _require_status(journal, (JournalStatus.in_review,), "chat on")
    if not message.strip():
        raise ValidationError("Message must not be empty.")

    ctx = build_user_context(db, user_id)
    memory = get_journal_memory(db, user_id)
    session = list(journal.chat_session or []) + [chat_message("user", message)]
    reply = generate_follow_up(gateway, session, ctx, memory)

    # New list object so the JSON column is flagged dirty.
    journal.chat_session = session + [chat_message("assistant", reply)]
    db.commit()
    db.refresh(journal)
    return journal


# ---------------------------------------------------------------------------
# Finish
# ---------------------------------------------------------------------------

@dataclass
class FinishResult:
    journal: Journal
    xp_awarded: int
    content_tag_ids: list[int]
    todo_ids: list[int]
    attributes_added: list[str]


def _apply_side_effects(
    db: Session,
    journal: Journal,
    metadata: JournalMetadata,
) -> FinishResult:
    user_id, source_id = journal.user_id, journal.id
    source = XpSourceType.JOURNAL

    tag_ids = resolve_tag_ids(db, user_id, metadata.tag_names)
    for tag_id in tag_ids:
        record_grant(
            db, user_id, XpEntityType.content_tag, tag_id, 0, source, source_id,
            reason="Content tag from journal",
        )

    xp_awarded = 0
    for award in metadata.stat_awards:
        stat = db.get(CharacterStat, award.entity_id)
        if stat is None or stat.user_id != user_id:
            continue
        grant_stat_xp(db, stat, award.xp, source, source_id, award.reason or None)
        xp_awarded += award.xp

    for award in metadata.family_awards:
        member = db.get(FamilyMember, award.entity_id)
        if member is None or member.user_id != user_id:
            continue
        grant_family_xp(db, member, award.xp, journal.date, source, source_id, award.reason or None)
        xp_awarded += award.xp

    expires_at = _now() + timedelta(hours=settings.TODO_TTL_HOURS)
    todos = [
        Todo(
            user_id=user_id,
            title=title,
            source_type=source,
            source_id=source_id,
            expires_at=expires_at,
        )
        for title in metadata.todos
    ]
    db.add_all(todos)
    db.flush()

    added = bulk_insert_attributes(
        db, user_id, TRAIT_CATEGORY, metadata.attributes, AttributeSource.journal_analysis.value,
    )

    return FinishResult(
        journal=journal,
        xp_awarded=xp_awarded,
        content_tag_ids=tag_ids,
        todo_ids=[t.id for t in todos],
        attributes_added=[a.value for a in added],
    )


def finish_journal(db: Session, gateway: LLMGateway, user_id: int, day: date) -> FinishResult:
    journal = get_journal(db, user_id, day)
    _require_status(journal, _OPEN_STATUSES, "finish")

    if _ev(journal.status) == JournalStatus.draft.value:
        if not (journal.initial_message or "").strip():
            raise ValidationError("Cannot finish an empty journal.")
        session = [chat_message("user", journal.initial_message)]
    else:
        session = list(journal.chat_session or [])

    # Model calls first; nothing has been written if they fail.
    ctx = build_user_context(db, user_id, include_tags=True, include_attributes=True)
    raw = run_analyses(gateway, session, ctx)
    metadata = resolve_metadata(raw, ctx)
    inferred = infer_day_rating(session) if journal.day_rating is None else None

    journal_id = journal.id
    try:
        claimed = db.execute(
            update(Journal)
            .where(Journal.id == journal_id, Journal.status.in_(_OPEN_STATUSES))
            .values(
                status=JournalStatus.complete,
                chat_session=session,
                summary=metadata.summary or None,
                title=metadata.title or None,
                synopsis=metadata.synopsis or None,
                tone_tags=metadata.tone_tags,
                inferred_day_rating=inferred,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            db.rollback()
            current = db.scalar(select(Journal.status).where(Journal.id == journal_id))
            raise InvalidStateError(
                "Journal was finished by another request.",
                current_status=_ev(current) if current is not None else None,
            )

        # A journal reopened without content changes still holds grants
        # from its previous completion.
        delete_grants_for_source(db, user_id, XpSourceType.JOURNAL, journal_id)
        result = _apply_side_effects(db, journal, metadata)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(journal)
    logger.info(
        "Journal %s finished: %d XP, %d tags, %d todos, %d attributes",
        journal_id,
        result.xp_awarded,
        len(result.content_tag_ids),
        len(result.todo_ids),
        len(result.attributes_added),
    )
    return result


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

def delete_journal(db: Session, user_id: int, day: date) -> list[tuple[str, int]]:
    journal = get_journal(db, user_id, day)
    journal_id = journal.id
    try:
        affected = delete_grants_for_source(db, user_id, XpSourceType.JOURNAL, journal_id)
        db.delete(journal)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Journal %s deleted (%d XP targets recomputed)", journal_id, len(affected))
    return affected
