"""API routes for drill sessions."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.api.dependencies import get_engine
from backend.api.schemas import (
    CardResponse,
    PinyinRequest,
    ResultsResponse,
    RetryRequest,
    SessionStartRequest,
    SessionStateResponse,
    TimerResponse,
)
from backend.errors import EmptyWordSet
from backend.srs.modes import parse_mode
from backend.srs.session import SessionEngine, SessionResults, SessionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


def _results_response(results: SessionResults) -> ResultsResponse:
    return ResultsResponse(
        log_id=results.log_id,
        mode=results.mode,
        total_words=results.total_words,
        error_count=results.error_count,
        accuracy=results.accuracy,
        comment=results.comment,
        error_words=results.error_words,
        saved=results.saved,
    )


def build_state_response(engine: SessionEngine) -> SessionStateResponse:
    s = engine.session
    if s is None:
        return SessionStateResponse(state=SessionState.IDLE.value)

    timer = None
    snapshot = engine.tick()
    if snapshot is not None:
        timer = TimerResponse(
            elapsed=snapshot.elapsed_text,
            countdown=snapshot.countdown.text if snapshot.countdown else None,
            overtime=snapshot.countdown.overtime if snapshot.countdown else False,
        )
    results = engine.results()
    return SessionStateResponse(
        state=s.state.value,
        mode=s.mode.value,
        log_id=s.log.id,
        progress=engine.progress_text(),
        show_pinyin=s.show_pinyin,
        cards=[CardResponse(**vars(card)) for card in engine.current_cards()],
        timer=timer,
        results=_results_response(results) if results is not None else None,
    )


def _require_session(engine: SessionEngine) -> None:
    if engine.session is None:
        raise HTTPException(status_code=409, detail="No active session")


@router.post("/start", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_start(
    request: SessionStartRequest,
    engine: SessionEngine = Depends(get_engine),
) -> SessionStateResponse:
    """Start a new session, replacing any previous one."""
    try:
        mode = parse_mode(request.mode)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    selected = None
    if request.word_ids:
        wanted = set(request.word_ids)
        selected = [w for w in await engine.storage.get_word_bank() if w.id in wanted]
        if not selected:
            raise HTTPException(status_code=404, detail="None of the selected words exist")

    try:
        await engine.start_from_bank(
            mode,
            selected=selected,
            total=request.total,
            speed_per_word=request.speed_per_word,
            words_per_page=request.words_per_page,
            only_wrong=request.only_wrong,
        )
    except EmptyWordSet as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return build_state_response(engine)


@router.get("/state", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_state(engine: SessionEngine = Depends(get_engine)) -> SessionStateResponse:
    return build_state_response(engine)


@router.post("/next", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_next(engine: SessionEngine = Depends(get_engine)) -> SessionStateResponse:
    """Advance one page; the last page finishes the session."""
    _require_session(engine)
    await engine.next_group()
    return build_state_response(engine)


@router.post("/prev", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_prev(engine: SessionEngine = Depends(get_engine)) -> SessionStateResponse:
    _require_session(engine)
    engine.prev_group()
    return build_state_response(engine)


@router.post("/toggle/{word_id}", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_toggle(
    word_id: str,
    engine: SessionEngine = Depends(get_engine),
) -> SessionStateResponse:
    _require_session(engine)
    engine.toggle_mark(word_id)
    return build_state_response(engine)


@router.post("/pinyin", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_pinyin(
    request: PinyinRequest,
    engine: SessionEngine = Depends(get_engine),
) -> SessionStateResponse:
    _require_session(engine)
    await engine.set_show_pinyin(request.visible)
    return build_state_response(engine)


@router.post("/pause", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_pause(engine: SessionEngine = Depends(get_engine)) -> SessionStateResponse:
    _require_session(engine)
    engine.pause()
    return build_state_response(engine)


@router.post("/resume", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_resume(engine: SessionEngine = Depends(get_engine)) -> SessionStateResponse:
    _require_session(engine)
    engine.resume()
    return build_state_response(engine)


@router.post("/finish", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_finish(engine: SessionEngine = Depends(get_engine)) -> SessionStateResponse:
    """Finish early. Finishing an already finished session changes nothing."""
    _require_session(engine)
    await engine.finish()
    return build_state_response(engine)


@router.post("/results/toggle/{word_id}", response_model=ResultsResponse, response_model_by_alias=False)
async def results_toggle(
    word_id: str,
    checked: bool,
    engine: SessionEngine = Depends(get_engine),
) -> ResultsResponse:
    """Edit a mark on the results screen. Nothing is saved until confirm."""
    if engine.state is not SessionState.FINISHED:
        raise HTTPException(status_code=409, detail="No finished session")
    if not engine.toggle_result_mark(word_id, checked):
        raise HTTPException(status_code=404, detail=f"Word {word_id} is not in this session")
    return _results_response(engine.results())


@router.post("/confirm", response_model=ResultsResponse, response_model_by_alias=False)
async def results_confirm(engine: SessionEngine = Depends(get_engine)) -> ResultsResponse:
    results = await engine.confirm_results()
    if results is None:
        raise HTTPException(status_code=409, detail="No finished session")
    return _results_response(results)


@router.post("/autosave")
async def results_autosave(engine: SessionEngine = Depends(get_engine)) -> dict:
    """Persist the results view, for clients about to go away."""
    saved = await engine.auto_save()
    return {"saved": saved}


@router.post("/retry", response_model=SessionStateResponse, response_model_by_alias=False)
async def session_retry(
    request: RetryRequest,
    engine: SessionEngine = Depends(get_engine),
) -> SessionStateResponse:
    """Run the same words again, optionally as a re-test."""
    _require_session(engine)
    try:
        if request.test:
            await engine.retry_test(errors_only=request.errors_only)
        else:
            await engine.retry()
    except EmptyWordSet as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return build_state_response(engine)
