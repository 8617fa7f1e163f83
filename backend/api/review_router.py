"""API routes for review plans and review sessions."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.api.dependencies import get_engine
from backend.api.schemas import PlansByStatusResponse, ReviewWordResponse, SessionStateResponse
from backend.api.session_router import build_state_response
from backend.errors import EmptyWordSet
from backend.srs.schedule import find_stage, progress_visualization
from backend.srs.session import SessionEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/review", tags=["review"])


@router.get("/plans", response_model=PlansByStatusResponse, response_model_by_alias=False)
async def review_plans(engine: SessionEngine = Depends(get_engine)) -> PlansByStatusResponse:
    """Non-mastered plans bucketed into overdue, today, upcoming and future."""
    buckets = await engine.scheduler.get_plans_by_status()
    return PlansByStatusResponse(
        today=buckets.today,
        upcoming=buckets.upcoming,
        overdue=buckets.overdue,
        future=buckets.future,
        total=buckets.total,
    )


@router.get("/words", response_model=list[ReviewWordResponse], response_model_by_alias=False)
async def review_words(
    due_only: bool = False,
    engine: SessionEngine = Depends(get_engine),
) -> list[ReviewWordResponse]:
    """Words whose current stage is pending or overdue."""
    words = await engine.scheduler.get_words_for_current_stage(due_only=due_only)
    response = []
    for rw in words:
        stage = find_stage(rw.plan, rw.plan.current_stage)
        response.append(
            ReviewWordResponse(
                id=rw.id,
                word=rw.word,
                pinyin=rw.pinyin,
                current_stage=rw.plan.current_stage,
                scheduled_at=stage.scheduled_at if stage else None,
                progress=progress_visualization(rw.plan),
            )
        )
    return response


@router.post("/{word_id}/practice", response_model=SessionStateResponse, response_model_by_alias=False)
async def review_practice(
    word_id: str,
    engine: SessionEngine = Depends(get_engine),
) -> SessionStateResponse:
    """Start an error-practice session for one word's current stage."""
    try:
        await engine.start_review(word_id, test=False)
    except EmptyWordSet as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return build_state_response(engine)


@router.post("/{word_id}/test", response_model=SessionStateResponse, response_model_by_alias=False)
async def review_test(
    word_id: str,
    engine: SessionEngine = Depends(get_engine),
) -> SessionStateResponse:
    """Start a review test; only allowed once the current stage is due."""
    try:
        await engine.start_review(word_id, test=True)
    except EmptyWordSet as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return build_state_response(engine)
