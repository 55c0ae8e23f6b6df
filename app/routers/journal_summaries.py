"""
Journal summaries router.

GET  /journal-summaries
GET  /journal-summaries/{summary_id}
POST /journal-summaries/generate
"""
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.deps import get_current_user_id
from app.db.base import get_db
from app.schemas.common import ERROR_RESPONSES, ApiResponse
from app.schemas.journal_summary import (
    GenerateSummaryRequest,
    JournalSummaryOut,
    SummaryFilters,
    SummaryPageOut,
)
from app.services.journal_summaries import (
    generate_period_summary,
    get_summary,
    list_summaries,
    period_boundaries,
)
from app.services.llm_gateway import LLMGateway, get_llm_gateway

router = APIRouter(prefix="/journal-summaries", tags=["journal-summaries"])


@router.get(
    "",
    response_model=ApiResponse[SummaryPageOut],
    summary="List weekly / monthly summaries, newest first",
    responses=ERROR_RESPONSES,
)
def summaries_list(
    filters: Annotated[SummaryFilters, Query()],
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rows, total = list_summaries(
        db, user_id,
        period=filters.period,
        year=filters.year,
        limit=filters.limit,
        offset=filters.offset,
    )
    return ApiResponse[SummaryPageOut](
        data=SummaryPageOut(
            items=[JournalSummaryOut.model_validate(r) for r in rows],
            total=total,
            limit=filters.limit,
            offset=filters.offset,
            has_more=filters.offset + len(rows) < total,
        )
    )


@router.get(
    "/{summary_id}",
    response_model=ApiResponse[JournalSummaryOut],
    summary="One summary by id",
    responses=ERROR_RESPONSES,
)
def summaries_get(
    summary_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ApiResponse[JournalSummaryOut](
        data=JournalSummaryOut.model_validate(get_summary(db, user_id, summary_id))
    )


@router.post(
    "/generate",
    response_model=ApiResponse[JournalSummaryOut],
    status_code=status.HTTP_201_CREATED,
    summary="Summarize the complete journals of a week or month",
    responses={
        **ERROR_RESPONSES,
        409: {"description": "A summary already exists for this window."},
        502: {"description": "The language model failed or returned unusable output."},
    },
)
def summaries_generate(
    payload: GenerateSummaryRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: LLMGateway = Depends(get_llm_gateway),
):
    """
    Raises **409** if the window already has a summary and **400** if it
    holds no complete journals.
    """
    if payload.end_date is None:
        start, end = period_boundaries(payload.period, payload.start_date)
    else:
        start, end = payload.start_date, payload.end_date
    row = generate_period_summary(db, gateway, user_id, payload.period, start, end)
    return ApiResponse[JournalSummaryOut](data=JournalSummaryOut.model_validate(row))
