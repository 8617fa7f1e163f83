"""ORM models and persisted record shapes for the word drill."""

from backend.models.base import Base
from backend.models.kv_entry import KVEntry
from backend.models.records import (
    ErrorRecord,
    Group,
    GroupWord,
    PracticeSettings,
    ReviewPlan,
    SessionLog,
    Stage,
    StageStatus,
    SummaryEntry,
    WordBankEntry,
)

__all__ = [
    "Base",
    "ErrorRecord",
    "Group",
    "GroupWord",
    "KVEntry",
    "PracticeSettings",
    "ReviewPlan",
    "SessionLog",
    "Stage",
    "StageStatus",
    "SummaryEntry",
    "WordBankEntry",
]
