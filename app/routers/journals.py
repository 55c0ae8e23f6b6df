"""
Journals router.

GET    /journals/today
GET    /journals
POST   /journals
GET    /journals/{day}
PUT    /journals/{day}
POST   /journals/{day}/edit
POST   /journals/{day}/start-reflection
POST   /journals/{day}/chat
POST   /journals/{day}/finish
DELETE /journals/{day}
GET    /journals/{day}/memory
"""
from __future__ import annotations

import datetime as dt
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.core.deps import get_current_user_id
from app.db.base import get_db
from app.models.journal import Journal
from app.schemas.common import ERROR_RESPONSES, ApiResponse
from app.schemas.journal import (
    ChatRequest,
    DeleteOut,
    FinishOut,
    JournalCreate,
    JournalEditRequest,
    JournalFilters,
    JournalListItemOut,
    JournalMemoryOut,
    JournalOut,
    JournalPageOut,
    JournalUpdate,
    TodayOut,
)
from app.services import journal_lifecycle as lifecycle
from app.services.journal_memory import get_journal_memory
from app.services.llm_gateway import LLMGateway, get_llm_gateway

router = APIRouter(prefix="/journals", tags=["journals"])

DayPath = Annotated[dt.date, Path(description="Journal day (YYYY-MM-DD).", examples=["2025-06-01"])]
UPSTREAM_RESPONSES = {502: {"description": "The language model failed or returned unusable output."}}


def _out(journal: Journal) -> ApiResponse[JournalOut]:
    return ApiResponse[JournalOut](data=JournalOut.model_validate(journal))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get(
    "/today",
    response_model=ApiResponse[TodayOut],
    summary="Today's journal and the action to offer",
)
def journals_today(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    today = lifecycle.get_today(db, user_id)
    return ApiResponse[TodayOut](
        data=TodayOut(
            exists=today.exists,
            journal=JournalOut.model_validate(today.journal) if today.journal else None,
            status=today.status,
            action_text=today.action_text,
        )
    )


@router.get(
    "",
    response_model=ApiResponse[JournalPageOut],
    summary="Paginated journal history",
    responses=ERROR_RESPONSES,
)
def journals_list(
    filters: Annotated[JournalFilters, Query()],
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Newest first. Each item carries the XP it earned (content tags excluded),
    its content tags and simple length counts of the initial message.
    """
    page = lifecycle.list_journals(db, user_id, filters)
    items = [
        JournalListItemOut(
            **JournalOut.model_validate(item.journal).model_dump(),
            xp_earned=item.xp_earned,
            content_tags=[{"id": t.id, "name": t.name} for t in item.content_tags],
            character_count=item.character_count,
            word_count=item.word_count,
        )
        for item in page.items
    ]
    return ApiResponse[JournalPageOut](
        data=JournalPageOut(
            items=items,
            total=page.total,
            limit=page.limit,
            offset=page.offset,
            has_more=page.has_more,
            available_tags=[
                {"id": t.id, "name": t.name, "usage_count": t.usage_count}
                for t in page.available_tags
            ],
        )
    )


@router.get(
    "/{day}",
    response_model=ApiResponse[JournalOut],
    summary="One journal by day",
    responses=ERROR_RESPONSES,
)
def journals_get(
    day: DayPath,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return _out(lifecycle.get_journal(db, user_id, day))


@router.get(
    "/{day}/memory",
    response_model=ApiResponse[JournalMemoryOut],
    summary="Memory tiers as seen from a given day",
)
def journals_memory(
    day: DayPath,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Monthly, weekly and daily tiers, each oldest first."""
    memory = get_journal_memory(db, user_id, today=day)
    return ApiResponse[JournalMemoryOut](data=JournalMemoryOut.model_validate(memory))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ApiResponse[JournalOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft journal for a day",
    responses={**ERROR_RESPONSES, 409: {"description": "A journal already exists for this day."}},
)
def journals_create(
    payload: JournalCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    journal = lifecycle.create_journal(
        db, user_id, payload.date,
        initial_message=payload.initial_message,
        day_rating=payload.day_rating,
    )
    return _out(journal)


@router.put(
    "/{day}",
    response_model=ApiResponse[JournalOut],
    summary="Partial update of a journal",
    responses=ERROR_RESPONSES,
)
def journals_update(
    day: DayPath,
    payload: JournalUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Only fields present in the body change. Status cannot be set here."""
    return _out(lifecycle.update_journal(db, user_id, day, payload))


@router.post(
    "/{day}/edit",
    response_model=ApiResponse[JournalOut],
    summary="Reopen a journal for editing",
    responses=ERROR_RESPONSES,
)
def journals_edit(
    day: DayPath,
    payload: JournalEditRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    On a complete journal: clears generated fields and returns it to draft.
    If the initial message changed, the XP it granted is removed first.
    """
    return _out(lifecycle.edit_journal(db, user_id, day, payload))


@router.post(
    "/{day}/start-reflection",
    response_model=ApiResponse[JournalOut],
    summary="Start the companion conversation (draft → in_review)",
    responses={**ERROR_RESPONSES, **UPSTREAM_RESPONSES},
)
def journals_start_reflection(
    day: DayPath,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: LLMGateway = Depends(get_llm_gateway),
):
    return _out(lifecycle.start_reflection(db, gateway, user_id, day))


@router.post(
    "/{day}/chat",
    response_model=ApiResponse[JournalOut],
    summary="Send a message in an in_review conversation",
    responses={**ERROR_RESPONSES, **UPSTREAM_RESPONSES},
)
def journals_chat(
    day: DayPath,
    payload: ChatRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: LLMGateway = Depends(get_llm_gateway),
):
    return _out(lifecycle.append_chat_message(db, gateway, user_id, day, payload.message))


@router.post(
    "/{day}/finish",
    response_model=ApiResponse[FinishOut],
    summary="Complete a journal and apply its XP, todos and attributes",
    responses={**ERROR_RESPONSES, **UPSTREAM_RESPONSES},
)
def journals_finish(
    day: DayPath,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: LLMGateway = Depends(get_llm_gateway),
):
    """
    Runs the analyses, then marks the journal complete and writes every
    side effect in one transaction. A model failure leaves the journal
    untouched.
    """
    result = lifecycle.finish_journal(db, gateway, user_id, day)
    return ApiResponse[FinishOut](
        data=FinishOut(
            journal=JournalOut.model_validate(result.journal),
            xp_awarded=result.xp_awarded,
            content_tag_ids=result.content_tag_ids,
            todo_ids=result.todo_ids,
            attributes_added=result.attributes_added,
        )
    )


@router.delete(
    "/{day}",
    response_model=ApiResponse[DeleteOut],
    summary="Delete a journal and the XP it granted",
    responses=ERROR_RESPONSES,
)
def journals_delete(
    day: DayPath,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    affected = lifecycle.delete_journal(db, user_id, day)
    return ApiResponse[DeleteOut](
        data=DeleteOut(
            date=day,
            recomputed=[
                {"entity_type": entity_type, "entity_id": entity_id}
                for entity_type, entity_id in affected
            ],
        )
    )
