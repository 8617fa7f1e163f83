"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.models.records import ErrorRecord, ReviewPlan, WordBankEntry

# --- Session ---


class SessionStartRequest(BaseModel):
    """Start a session from the word bank (or an explicit selection)."""

    mode: str = "practice"  # preview, practice, error-practice, test
    word_ids: list[str] | None = None
    total: int | None = Field(default=None, ge=1)
    speed_per_word: int | None = Field(default=None, ge=1)
    words_per_page: int | None = Field(default=None, ge=1)
    only_wrong: bool = False


class CardResponse(BaseModel):
    id: str
    word: str
    pinyin: str
    marked_wrong: bool
    show_pinyin: bool


class TimerResponse(BaseModel):
    elapsed: str
    countdown: str | None = None
    overtime: bool = False


class ResultsResponse(BaseModel):
    """What the results screen shows after a session finishes."""

    log_id: str
    mode: str
    total_words: int
    error_count: int
    accuracy: int
    comment: str
    error_words: list[ErrorRecord]
    saved: bool | None


class SessionStateResponse(BaseModel):
    """Snapshot of the active session for rendering."""

    state: str
    mode: str | None = None
    log_id: str | None = None
    progress: str = "0/0"
    show_pinyin: bool = False
    cards: list[CardResponse] = []
    timer: TimerResponse | None = None
    results: ResultsResponse | None = None


class PinyinRequest(BaseModel):
    visible: bool


class RetryRequest(BaseModel):
    test: bool = False
    errors_only: bool = False


# --- Review ---


class PlansByStatusResponse(BaseModel):
    today: list[ReviewPlan]
    upcoming: list[ReviewPlan]
    overdue: list[ReviewPlan]
    future: list[ReviewPlan]
    total: int


class ReviewWordResponse(BaseModel):
    id: str
    word: str
    pinyin: str
    current_stage: int
    scheduled_at: datetime | None
    progress: str


# --- Words and error book ---


class AddWordRequest(BaseModel):
    word: str = Field(min_length=1)
    pinyin: str = ""
    grade: str = ""
    semester: str = ""
    unit: int | str | None = 1


class BatchSelection(BaseModel):
    word_id: str
    round_id: str | None = None
    group_index: int | None = None


class BatchRequest(BaseModel):
    """Bulk correction of marks from the error book."""

    action: str  # wrong, correct, delete
    selections: list[BatchSelection]


class WordListResponse(BaseModel):
    words: list[WordBankEntry]
