"""API routes for the word bank, the error book and dashboard statistics."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.api.dependencies import get_engine, get_storage
from backend.api.schemas import AddWordRequest, BatchRequest, WordListResponse
from backend.models.records import ErrorRecord, SessionLog, WordBankEntry
from backend.srs.ledger import BatchAction, WordSelection
from backend.srs.session import SessionEngine
from backend.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["stats"])


@router.get("/words", response_model=WordListResponse, response_model_by_alias=False)
async def list_words(storage: Storage = Depends(get_storage)) -> WordListResponse:
    return WordListResponse(words=await storage.get_word_bank())


@router.post("/words", response_model=WordBankEntry, response_model_by_alias=False)
async def add_word(request: AddWordRequest, storage: Storage = Depends(get_storage)) -> WordBankEntry:
    """Add a word; an identical existing entry is returned unchanged."""
    entry = await storage.add_word(
        request.word,
        pinyin=request.pinyin,
        grade=request.grade,
        semester=request.semester,
        unit=request.unit,
    )
    if entry is None:
        raise HTTPException(status_code=422, detail="Word must not be empty")
    return entry


@router.get("/errors", response_model=list[ErrorRecord], response_model_by_alias=False)
async def list_errors(storage: Storage = Depends(get_storage)) -> list[ErrorRecord]:
    return await storage.get_error_words()


@router.post("/errors/batch", response_model=list[ErrorRecord], response_model_by_alias=False)
async def batch_errors(
    request: BatchRequest,
    engine: SessionEngine = Depends(get_engine),
) -> list[ErrorRecord]:
    """Mark or clear words across session logs, then rebuild the ledger."""
    try:
        action = BatchAction(request.action)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Unknown action: {request.action}") from exc

    selections = [
        WordSelection(word_id=s.word_id, round_id=s.round_id, group_index=s.group_index)
        for s in request.selections
    ]
    return await engine.ledger.apply_batch(selections, action)


@router.get("/logs", response_model=list[SessionLog], response_model_by_alias=False)
async def list_logs(storage: Storage = Depends(get_storage)) -> list[SessionLog]:
    return await storage.get_practice_logs()


@router.delete("/logs/{log_id}")
async def delete_log(log_id: str, engine: SessionEngine = Depends(get_engine)) -> dict:
    """Delete a session log and re-derive the ledger without it."""
    await engine.storage.remove_practice_log(log_id)
    records = await engine.ledger.rebuild()
    return {"status": "deleted", "error_words": len(records)}


@router.get("/stats")
async def get_stats(engine: SessionEngine = Depends(get_engine)) -> dict:
    """Counts for the dashboard."""
    storage = engine.storage
    bank = await storage.get_word_bank()
    logs = await storage.get_practice_logs()
    errors = await storage.get_error_words()
    plans = await engine.scheduler.get_all_plans()
    buckets = await engine.scheduler.get_plans_by_status()

    return {
        "words": len(bank),
        "sessions": len(logs),
        "error_words": len({r.word_id for r in errors}),
        "plans": len(plans),
        "mastered": sum(1 for p in plans if p.mastered),
        "overdue": len(buckets.overdue),
        "due_today": len(buckets.today),
    }
