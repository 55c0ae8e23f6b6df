"""
XP ledger service.

Rules:
- xp_grants is append-only; cached totals live on the target rows
  (character_stats.total_xp, family_members.connection_xp).
- Cached totals are changed with column increments (total = total + n),
  never read-modify-write in Python.
- content_tag grants always carry 0 XP.
- Flush only. The caller owns the transaction and commits.

Public API
----------
record_grant(db, ...)                                   -> XpGrant
grant_stat_xp(db, stat, xp, ...)                        -> XpGrant
grant_family_xp(db, member, xp, interaction_date, ...)  -> XpGrant
grants_for_source(db, user_id, source_type, source_id)  -> list[XpGrant]
delete_grants_for_source(db, user_id, source_type, source_id) -> list[(entity_type, entity_id)]
recompute_entity_total(db, entity_type, entity_id)      -> int | None
xp_earned_by_source(db, source_type, source_ids)        -> dict[int, int]
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.models.character_stat import CharacterStat
from app.models.family_member import FamilyMember
from app.models.xp_grant import XpEntityType, XpGrant

logger = logging.getLogger(__name__)


def _ev(v) -> str:
    """Return bare string value from a str-enum or plain str."""
    return v.value if hasattr(v, "value") else str(v)


# entity_type -> (model, cached total column name)
_CACHED_TOTALS = {
    XpEntityType.character_stat.value: (CharacterStat, "total_xp"),
    XpEntityType.family_member.value: (FamilyMember, "connection_xp"),
}


# ---------------------------------------------------------------------------
# Inserts
# ---------------------------------------------------------------------------

def record_grant(
    db: Session,
    user_id: int,
    entity_type: str,
    entity_id: int,
    xp_amount: int,
    source_type: str,
    source_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> XpGrant:
    """Insert one ledger row. Does not touch any cached total."""
    entity_type = _ev(entity_type)
    if xp_amount < 0:
        raise ValidationError(
            "XP amount must not be negative.",
            details={"entity_type": entity_type, "xp_amount": xp_amount},
        )
    if entity_type == XpEntityType.content_tag.value:
        xp_amount = 0

    grant = XpGrant(
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        xp_amount=xp_amount,
        source_type=source_type,
        source_id=source_id,
        reason=reason,
    )
    db.add(grant)
    db.flush()
    return grant


def grant_stat_xp(
    db: Session,
    stat: CharacterStat,
    xp_amount: int,
    source_type: str,
    source_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> XpGrant:
    """Ledger row first, then the cached total."""
    grant = record_grant(
        db, stat.user_id, XpEntityType.character_stat, stat.id,
        xp_amount, source_type, source_id, reason,
    )
    db.execute(
        update(CharacterStat)
        .where(CharacterStat.id == stat.id)
        .values(total_xp=CharacterStat.total_xp + xp_amount)
    )
    return grant


def grant_family_xp(
    db: Session,
    member: FamilyMember,
    xp_amount: int,
    interaction_date: date,
    source_type: str,
    source_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> XpGrant:
    grant = record_grant(
        db, member.user_id, XpEntityType.family_member, member.id,
        xp_amount, source_type, source_id, reason,
    )
    db.execute(
        update(FamilyMember)
        .where(FamilyMember.id == member.id)
        .values(
            connection_xp=FamilyMember.connection_xp + xp_amount,
            last_interaction_date=interaction_date,
        )
    )
    return grant


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def grants_for_source(
    db: Session,
    user_id: int,
    source_type: str,
    source_id: int,
) -> list[XpGrant]:
    return list(
        db.scalars(
            select(XpGrant)
            .where(
                XpGrant.user_id == user_id,
                XpGrant.source_type == source_type,
                XpGrant.source_id == source_id,
            )
            .order_by(XpGrant.id)
        )
    )


def xp_earned_by_source(
    db: Session,
    source_type: str,
    source_ids: Iterable[int],
) -> dict[int, int]:
    """Sum of XP (content tags excluded) per source id. Missing ids map to 0."""
    ids = list(source_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(XpGrant.source_id, func.coalesce(func.sum(XpGrant.xp_amount), 0))
        .where(
            XpGrant.source_type == source_type,
            XpGrant.source_id.in_(ids),
            XpGrant.entity_type != XpEntityType.content_tag.value,
        )
        .group_by(XpGrant.source_id)
    ).all()
    earned = {source_id: 0 for source_id in ids}
    earned.update({source_id: int(total) for source_id, total in rows})
    return earned


# ---------------------------------------------------------------------------
# Deletes + recompute
# ---------------------------------------------------------------------------

def recompute_entity_total(db: Session, entity_type: str, entity_id: int) -> Optional[int]:
    """
    Rebuild the cached total of one entity from the ledger.
    Returns the new total, or None when the entity type has no cached total.
    """
    target = _CACHED_TOTALS.get(_ev(entity_type))
    if target is None:
        return None
    model, column = target

    total = db.scalar(
        select(func.coalesce(func.sum(XpGrant.xp_amount), 0)).where(
            XpGrant.entity_type == _ev(entity_type),
            XpGrant.entity_id == entity_id,
        )
    )
    db.execute(
        update(model).where(model.id == entity_id).values({column: int(total or 0)})
    )
    return int(total or 0)


def delete_grants_for_source(
    db: Session,
    user_id: int,
    source_type: str,
    source_id: int,
) -> list[tuple[str, int]]:
    """
    Delete every grant produced by one source, then recompute the cached
    totals of the entities those grants pointed at.

    Each recompute runs in its own savepoint: a failure there is logged and
    the remaining entities are still recomputed.
    """
    affected = [
        (entity_type, entity_id)
        for entity_type, entity_id in db.execute(
            select(XpGrant.entity_type, XpGrant.entity_id)
            .where(
                XpGrant.user_id == user_id,
                XpGrant.source_type == source_type,
                XpGrant.source_id == source_id,
            )
            .distinct()
        ).all()
    ]
    if not affected:
        return []

    db.execute(
        delete(XpGrant).where(
            XpGrant.user_id == user_id,
            XpGrant.source_type == source_type,
            XpGrant.source_id == source_id,
        )
    )
    db.flush()

    for entity_type, entity_id in affected:
        if entity_type not in _CACHED_TOTALS:
            continue
        savepoint = db.begin_nested()
        try:
            recompute_entity_total(db, entity_type, entity_id)
            savepoint.commit()
        except SQLAlchemyError:
            savepoint.rollback()
            logger.exception("Recompute failed for %s %s", entity_type, entity_id)

    logger.info(
        "Deleted XP grants for %s %s (%d entities recomputed)",
        source_type, source_id, len(affected),
    )
    return affected
