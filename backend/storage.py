"""Key-value persistence for the word drill.

Each collection (word bank, session logs, error ledger, review plans,
settings) lives in one ``kv_entries`` row as a JSON document. Every write
is a full read-modify-write of that row inside a single transaction, so a
collection is never left partially written. There is no cross-collection
transaction and the last writer wins.
"""

import json
import logging
import time
import uuid
from typing import Any, TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import settings, utcnow
from backend.errors import PersistenceFailure
from backend.models.kv_entry import KVEntry
from backend.models.records import (
    ErrorRecord,
    PracticeSettings,
    RecordModel,
    ReviewPlan,
    SessionLog,
    SummaryEntry,
    WordBankEntry,
)

logger = logging.getLogger(__name__)

WORD_BANK = "word_bank"
PRACTICE_LOGS = "practice_logs"
ERROR_WORDS = "error_words"
REVIEW_PLANS = "review_plans"
SETTINGS = "settings"
SUMMARY_ERROR_WORDS = "summary_error_words"

M = TypeVar("M", bound=RecordModel)


class Storage:
    """Typed access to the persisted collections."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession] | None = None,
        write_attempts: int | None = None,
    ) -> None:
        if sessionmaker is None:
            from backend.database import async_session

            sessionmaker = async_session
        self._sessionmaker = sessionmaker
        self.write_attempts = write_attempts or settings.storage_write_attempts

    # --- Raw blob access ---

    async def _read(self, key: str) -> Any:
        try:
            async with self._sessionmaker() as db:
                entry = await db.get(KVEntry, key)
        except SQLAlchemyError as exc:
            logger.error("Failed to read %s: %s", key, exc)
            raise PersistenceFailure(key, "read", exc) from exc

        if entry is None:
            return None
        try:
            return json.loads(entry.value)
        except json.JSONDecodeError:
            logger.error("Stored %s is not valid JSON; treating it as empty", key)
            return None

    async def _upsert(self, key: str, payload: str) -> None:
        async with self._sessionmaker() as db:
            entry = await db.get(KVEntry, key)
            if entry is None:
                db.add(KVEntry(key=key, value=payload))
            else:
                entry.value = payload
            await db.commit()

    async def _write(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.write_attempts),
                wait=wait_exponential(multiplier=0.05, max=1),
                retry=retry_if_exception_type(OperationalError),
                reraise=True,
            ):
                with attempt:
                    await self._upsert(key, payload)
        except SQLAlchemyError as exc:
            logger.error("Failed to write %s: %s", key, exc)
            raise PersistenceFailure(key, "write", exc) from exc

    async def _read_list(self, key: str, model: type[M]) -> list[M]:
        raw = await self._read(key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Stored %s is not a list; treating it as empty", key)
            return []

        items: list[M] = []
        for i, item in enumerate(raw):
            try:
                items.append(model.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping invalid %s entry %d: %s", key, i, exc)
        return items

    async def _write_list(self, key: str, items: list[M]) -> None:
        await self._write(key, [item.to_json_dict() for item in items])

    async def ping(self) -> bool:
        """Round-trip the store. Raises PersistenceFailure if unreachable."""
        await self._read(SETTINGS)
        return True

    # --- Word bank ---

    async def get_word_bank(self) -> list[WordBankEntry]:
        return await self._read_list(WORD_BANK, WordBankEntry)

    async def save_word_bank(self, items: list[WordBankEntry]) -> None:
        await self._write_list(WORD_BANK, items)

    async def add_word(
        self,
        word: str,
        pinyin: str = "",
        grade: str = "",
        semester: str = "",
        unit: int | str | None = 1,
    ) -> WordBankEntry | None:
        """Add a word unless an identical (word, grade, semester, unit) exists.

        Returns the existing entry on a duplicate, or None for an empty word.
        """
        if not word:
            logger.warning("Refusing to add an empty word")
            return None

        unit = unit or 1
        bank = await self.get_word_bank()
        for entry in bank:
            if (
                entry.word == word
                and entry.grade == grade
                and entry.semester == semester
                and entry.unit == unit
            ):
                return entry

        entry = WordBankEntry(
            id=f"word_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}",
            word=word,
            pinyin=pinyin,
            grade=grade,
            semester=semester,
            unit=unit,
            added_date=utcnow(),
        )
        bank.append(entry)
        await self.save_word_bank(bank)
        return entry

    # --- Session logs ---

    async def get_practice_logs(self) -> list[SessionLog]:
        return await self._read_list(PRACTICE_LOGS, SessionLog)

    async def get_practice_log(self, log_id: str) -> SessionLog | None:
        for log in await self.get_practice_logs():
            if log.id == log_id:
                return log
        return None

    async def save_practice_log(self, log: SessionLog) -> None:
        """Upsert one session log by id."""
        logs = await self.get_practice_logs()
        for i, existing in enumerate(logs):
            if existing.id == log.id:
                logs[i] = log
                break
        else:
            logs.append(log)
        await self._write_list(PRACTICE_LOGS, logs)

    async def save_practice_logs(self, logs: list[SessionLog]) -> None:
        await self._write_list(PRACTICE_LOGS, logs)

    async def remove_practice_log(self, log_id: str) -> None:
        logs = [log for log in await self.get_practice_logs() if log.id != log_id]
        await self._write_list(PRACTICE_LOGS, logs)

    # --- Settings ---

    async def get_settings(self) -> PracticeSettings:
        raw = await self._read(SETTINGS)
        if not isinstance(raw, dict):
            return PracticeSettings()
        try:
            return PracticeSettings.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring invalid settings: %s", exc)
            return PracticeSettings()

    async def save_settings(self, practice_settings: PracticeSettings) -> None:
        await self._write(SETTINGS, practice_settings.to_json_dict())

    # --- Error ledger ---

    async def get_error_words(self) -> list[ErrorRecord]:
        return await self._read_list(ERROR_WORDS, ErrorRecord)

    async def save_error_words(self, records: list[ErrorRecord]) -> None:
        await self._write_list(ERROR_WORDS, records)

    async def save_error_words_for_round(self, round_id: str, records: list[ErrorRecord]) -> None:
        """Replace one round's contribution to the ledger."""
        if not round_id:
            return
        others = [r for r in await self.get_error_words() if r.round_id != round_id]
        await self.save_error_words(others + list(records))

    # --- Summary ledger ---

    async def get_summary_error_words(self) -> list[SummaryEntry]:
        return await self._read_list(SUMMARY_ERROR_WORDS, SummaryEntry)

    async def save_summary_error_words(self, entries: list[SummaryEntry]) -> None:
        await self._write_list(SUMMARY_ERROR_WORDS, entries)

    # --- Review plans ---

    async def get_review_plans(self) -> list[ReviewPlan]:
        return await self._read_list(REVIEW_PLANS, ReviewPlan)

    async def get_review_plan(self, word_id: str) -> ReviewPlan | None:
        for plan in await self.get_review_plans():
            if plan.word_id == word_id:
                return plan
        return None

    async def save_review_plan(self, plan: ReviewPlan) -> None:
        """Upsert one plan by word id."""
        plans = await self.get_review_plans()
        for i, existing in enumerate(plans):
            if existing.word_id == plan.word_id:
                plans[i] = plan
                break
        else:
            plans.append(plan)
        await self._write_list(REVIEW_PLANS, plans)

    async def remove_review_plan(self, word_id: str) -> None:
        if not word_id:
            return
        plans = [p for p in await self.get_review_plans() if p.word_id != word_id]
        await self._write_list(REVIEW_PLANS, plans)
