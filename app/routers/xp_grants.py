"""
XP grants router.

GET /xp-grants/journal/{day} — the audit trail one journal produced.
"""
import datetime as dt
from collections import defaultdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_user_id
from app.db.base import get_db
from app.models.xp_grant import XpSourceType
from app.schemas.common import ERROR_RESPONSES, ApiResponse
from app.schemas.xp_grant import JournalGrantsOut, XpGrantOut
from app.services.journal_lifecycle import get_journal
from app.services.xp_ledger import grants_for_source

router = APIRouter(prefix="/xp-grants", tags=["xp-grants"])


@router.get(
    "/journal/{day}",
    response_model=ApiResponse[JournalGrantsOut],
    summary="XP grants sourced from one journal",
    responses=ERROR_RESPONSES,
)
def grants_for_journal(
    day: dt.date,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    journal = get_journal(db, user_id, day)
    grants = grants_for_source(db, user_id, XpSourceType.JOURNAL, journal.id)

    totals: dict[str, int] = defaultdict(int)
    for g in grants:
        totals[g.entity_type] += g.xp_amount

    return ApiResponse[JournalGrantsOut](
        data=JournalGrantsOut(
            journal_id=journal.id,
            date=journal.date,
            grants=[XpGrantOut.model_validate(g) for g in grants],
            total_xp=sum(totals.values()),
            totals_by_entity_type=dict(totals),
        )
    )
