from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class KVEntry(Base, TimestampMixin):
    """One persisted collection, stored as a single JSON blob."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)  # word_bank, practice_logs, ...
    value: Mapped[str] = mapped_column(Text, nullable=False)  # JSON document
