"""
Content tag helpers.

get_or_create_tag(db, user_id, name)  -> Tag          (flush only)
list_tags_with_counts(db, user_id)    -> list[TagUsage] (most used first)
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.models.tag import Tag
from app.models.xp_grant import XpEntityType, XpGrant

_MAX_TAG_LENGTH = 64


@dataclass
class TagUsage:
    id: int
    name: str
    usage_count: int


def normalize_tag_name(name: str) -> str:
    return " ".join(name.split()).lower()[:_MAX_TAG_LENGTH]


def get_or_create_tag(db: Session, user_id: int, name: str) -> Tag:
    normalized = normalize_tag_name(name or "")
    if not normalized:
        raise ValidationError("Tag name must not be empty.")

    existing = db.scalar(select(Tag).where(Tag.user_id == user_id, Tag.name == normalized))
    if existing is not None:
        return existing

    # Another request may insert the same name between the read and the flush.
    savepoint = db.begin_nested()
    try:
        tag = Tag(user_id=user_id, name=normalized)
        db.add(tag)
        db.flush()
        savepoint.commit()
        return tag
    except IntegrityError:
        savepoint.rollback()
        return db.scalars(select(Tag).where(Tag.user_id == user_id, Tag.name == normalized)).one()


def list_tags_with_counts(db: Session, user_id: int) -> list[TagUsage]:
    usage = (
        select(XpGrant.entity_id.label("tag_id"), func.count(XpGrant.id).label("n"))
        .where(
            XpGrant.user_id == user_id,
            XpGrant.entity_type == XpEntityType.content_tag.value,
        )
        .group_by(XpGrant.entity_id)
        .subquery()
    )
    rows = db.execute(
        select(Tag.id, Tag.name, func.coalesce(usage.c.n, 0))
        .outerjoin(usage, usage.c.tag_id == Tag.id)
        .where(Tag.user_id == user_id)
        .order_by(func.coalesce(usage.c.n, 0).desc(), Tag.name)
    ).all()
    return [TagUsage(id=tag_id, name=name, usage_count=int(n)) for tag_id, name, n in rows]
