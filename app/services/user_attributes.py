"""
User attribute store.

Two write paths with different conflict rules on (user_id, category, value):

bulk_insert_attributes  — journal analysis; first write wins, collisions skipped.
upsert_attribute        — period summaries; a recurring value refreshes
                          source and last_updated instead of duplicating.

Both flush only.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.user_attribute import UserAttribute

logger = logging.getLogger(__name__)

_MAX_VALUE_LENGTH = 128


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _clean(value: str) -> str:
    return " ".join(value.split())[:_MAX_VALUE_LENGTH]


def list_attributes(
    db: Session,
    user_id: int,
    source: Optional[str] = None,
) -> list[UserAttribute]:
    q = select(UserAttribute).where(UserAttribute.user_id == user_id)
    if source:
        q = q.where(UserAttribute.source == source)
    return list(db.scalars(q.order_by(UserAttribute.category, UserAttribute.value)))


def grouped_attributes(db: Session, user_id: int) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for attr in list_attributes(db, user_id):
        grouped.setdefault(attr.category, []).append(attr.value)
    return grouped


def _insert(db: Session, user_id: int, category: str, value: str, source: str) -> Optional[UserAttribute]:
    """Insert inside a savepoint; None when (user, category, value) already exists."""
    savepoint = db.begin_nested()
    try:
        attr = UserAttribute(
            user_id=user_id,
            category=category,
            value=value,
            source=source,
            last_updated=_now(),
        )
        db.add(attr)
        db.flush()
        savepoint.commit()
        return attr
    except IntegrityError:
        savepoint.rollback()
        return None


def bulk_insert_attributes(
    db: Session,
    user_id: int,
    category: str,
    values: Iterable[str],
    source: str,
) -> list[UserAttribute]:
    """Insert new (category, value) pairs; existing ones are left untouched."""
    cleaned = list(dict.fromkeys(_clean(v) for v in values if v and v.strip()))
    created = []
    for value in cleaned:
        attr = _insert(db, user_id, category, value, source)
        if attr is not None:
            created.append(attr)

    if len(created) < len(cleaned):
        logger.debug(
            "Skipped %d existing attribute(s) for user %s", len(cleaned) - len(created), user_id
        )
    return created


def upsert_attribute(
    db: Session,
    user_id: int,
    category: str,
    value: str,
    source: str,
) -> UserAttribute:
    value = _clean(value)
    attr = _insert(db, user_id, category, value, source)
    if attr is not None:
        return attr

    attr = db.scalars(
        select(UserAttribute).where(
            UserAttribute.user_id == user_id,
            UserAttribute.category == category,
            UserAttribute.value == value,
        )
    ).one()
    attr.source = source
    attr.last_updated = _now()
    db.flush()
    return attr
