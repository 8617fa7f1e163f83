"""Record shapes persisted in the key-value store.

Field names are snake_case in Python and camelCase in the stored JSON,
so blobs written by older clients load without translation.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Unit = int | str | None


class RecordModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*", mode="after")
    @classmethod
    def to_naive_utc(cls, value):
        # Stored timestamps may carry an offset ("...Z"); the clock is naive UTC.
        if isinstance(value, datetime) and value.tzinfo is not None:
            return value.astimezone(UTC).replace(tzinfo=None)
        return value

    def to_json_dict(self) -> dict:
        """Serialize with camelCase keys and ISO timestamps."""
        return self.model_dump(mode="json", by_alias=True)


class WordBankEntry(RecordModel):
    """A word in the learner's bank. Immutable during a session."""

    id: str
    word: str
    pinyin: str = ""
    unit: Unit = None
    grade: str = ""
    semester: str = ""
    added_date: datetime | None = None


class GroupWord(RecordModel):
    """A word as shown within one group, with its mark state.

    ``marked_at`` is set iff ``marked_wrong`` is true.
    """

    id: str
    word: str
    pinyin: str = ""
    unit: Unit = None
    marked_wrong: bool = False
    marked_at: datetime | None = None


class Group(RecordModel):
    """One page of words shown together."""

    id: str
    index: int
    words: list[GroupWord] = Field(default_factory=list)


class ErrorRecord(RecordModel):
    """A derived fact: word X was marked wrong in round Y."""

    id: str  # {round_id}_{group_index}_{word_id}_{position}
    word_id: str
    word: str
    pinyin: str = ""
    unit: Unit = None
    round_id: str
    marked_at: datetime


class SessionLog(RecordModel):
    """The persisted record of one session (round)."""

    id: str
    date: datetime
    mode: str  # preview, practice, error-practice, test
    total_words: int
    words_per_page: int
    speed_per_word: int
    duration: int = 0  # seconds
    show_pinyin: bool = False
    is_official_test: bool = False
    groups: list[Group] = Field(default_factory=list)
    error_words: list[ErrorRecord] = Field(default_factory=list)


class SummaryEntry(RecordModel):
    """Per-unit summary of a word's error history (test results win)."""

    id: str
    word_id: str
    word: str
    pinyin: str = ""
    unit: str
    round_id: str
    marked_at: datetime
    source: str  # test, practice
    first_marked_at: datetime
    last_marked_at: datetime


class StageStatus(str, Enum):
    """Review stage status, derived from timestamps on every read."""

    PENDING = "pending"
    OVERDUE = "overdue"
    COMPLETED = "completed"


class Stage(RecordModel):
    stage: int  # 1..6
    scheduled_at: datetime
    completed_at: datetime | None = None
    status: StageStatus = StageStatus.PENDING


class ReviewPlan(RecordModel):
    """The six-stage spaced-repetition schedule for one word."""

    word_id: str
    word: str
    pinyin: str = ""
    unit: Unit = None
    first_marked_at: datetime
    stages: list[Stage]
    current_stage: int = 1
    mastered: bool = False
    current_round_practice_completed: bool = False
    current_round_test_completed: bool = False
    current_round_test_date: datetime | None = None


class PracticeSettings(RecordModel):
    """Learner preferences remembered between sessions."""

    total: int | None = None
    speed: int | None = None
    per_page: int | None = None
    show_pinyin_preview: bool = True
    show_pinyin_practice: bool = False
