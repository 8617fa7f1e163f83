"""Error ledger consolidation.

The global ledger (``error_words``) is always derivable from the session
logs. A round's contribution is replaced wholesale on every save, so
re-deriving after edits is idempotent, and a full rebuild from all logs
yields the same ledger as saving every round in turn.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from backend.models.records import ErrorRecord, SessionLog, SummaryEntry
from backend.srs.clock import Clock, SystemClock
from backend.storage import Storage

logger = logging.getLogger(__name__)


def error_record_id(round_id: str, group_index: int, word_id: str, position: int) -> str:
    return f"{round_id}_{group_index}_{word_id}_{position}"


def collect_error_records(log: SessionLog, now: datetime) -> list[ErrorRecord]:
    """Derive one ErrorRecord per marked word, in group then position order.

    A marked word missing ``marked_at`` gets ``now`` written back into the
    log, so collecting again from the same log yields identical records.
    """
    records = []
    for group in log.groups:
        for position, word in enumerate(group.words):
            if not word.marked_wrong:
                continue
            if word.marked_at is None:
                word.marked_at = now
            records.append(
                ErrorRecord(
                    id=error_record_id(log.id, group.index, word.id, position),
                    word_id=word.id,
                    word=word.word,
                    pinyin=word.pinyin,
                    unit=word.unit,
                    round_id=log.id,
                    marked_at=word.marked_at,
                )
            )
    return records


def count_marked(log: SessionLog) -> int:
    return sum(1 for group in log.groups for word in group.words if word.marked_wrong)


class BatchAction(str, Enum):
    """Bulk corrections applied from the error book."""

    WRONG = "wrong"
    CORRECT = "correct"
    DELETE = "delete"


@dataclass(frozen=True)
class WordSelection:
    """A word in one round's group, or in every round when round_id is None."""

    word_id: str
    round_id: str | None = None
    group_index: int | None = None


class ErrorLedger:
    """Maintains the global error ledger and the per-unit summary."""

    def __init__(self, storage: Storage, clock: Clock | None = None) -> None:
        self.storage = storage
        self.clock = clock or SystemClock()

    async def save_for_round(self, round_id: str, records: list[ErrorRecord]) -> None:
        await self.storage.save_error_words_for_round(round_id, records)

    async def merge_test_round(self, existing_word_ids: set[str], records: list[ErrorRecord]) -> None:
        """Fold a re-test into the ledger without removing known errors.

        Existing entries for words in ``existing_word_ids`` survive unless
        this round re-marked the word; this round's records are appended.
        """
        new_ids = {r.word_id for r in records}
        kept = [
            r
            for r in await self.storage.get_error_words()
            if r.word_id in existing_word_ids and r.word_id not in new_ids
        ]
        await self.storage.save_error_words(kept + list(records))

    async def rebuild(self, logs: list[SessionLog] | None = None) -> list[ErrorRecord]:
        """Replace the ledger with the records derived from every log."""
        if logs is None:
            logs = await self.storage.get_practice_logs()
        now = self.clock.now()
        records = [record for log in logs for record in collect_error_records(log, now)]
        await self.storage.save_error_words(records)
        logger.info("Rebuilt error ledger from %d logs: %d records", len(logs), len(records))
        return records

    async def word_ids(self) -> set[str]:
        return {r.word_id for r in await self.storage.get_error_words()}

    async def apply_batch(self, selections: Iterable[WordSelection], action: BatchAction) -> list[ErrorRecord]:
        """Mark or clear the selected words in their logs, then rebuild the ledger.

        Clearing a word (``correct`` or ``delete``) also drops its review plan.
        """
        logs = await self.storage.get_practice_logs()
        by_id = {log.id: log for log in logs}
        now = self.clock.now()
        affected: set[str] = set()
        cleared: set[str] = set()

        for selection in selections:
            if selection.round_id is not None:
                log = by_id.get(selection.round_id)
                targets = [log] if log is not None else []
            else:
                targets = logs
            for log in targets:
                for group in log.groups:
                    if selection.group_index is not None and group.index != selection.group_index:
                        continue
                    for word in group.words:
                        if word.id != selection.word_id:
                            continue
                        if action is BatchAction.WRONG:
                            word.marked_wrong = True
                            word.marked_at = now
                        else:
                            word.marked_wrong = False
                            word.marked_at = None
                            cleared.add(word.id)
                        affected.add(log.id)

        for log_id in affected:
            log = by_id[log_id]
            log.error_words = collect_error_records(log, now)
        if affected:
            await self.storage.save_practice_logs(logs)

        records = await self.rebuild(logs)
        for word_id in cleared:
            await self.storage.remove_review_plan(word_id)

        logger.info(
            "Applied %s to %d logs (%d words cleared)", action.value, len(affected), len(cleared)
        )
        return records

    async def remove_word(self, word_id: str) -> None:
        """Drop a word from the ledger and the summary (terminal success)."""
        remaining = [r for r in await self.storage.get_error_words() if r.word_id != word_id]
        await self.storage.save_error_words(remaining)
        summary = [e for e in await self.storage.get_summary_error_words() if e.word_id != word_id]
        await self.storage.save_summary_error_words(summary)

    async def update_summary(self, records: list[ErrorRecord], mode: str) -> None:
        """Fold a round's errors into the per-unit summary.

        Test results overwrite practice results for the same word and unit;
        practice results are only added when the unit has no entry yet.
        """
        if not records or mode not in ("test", "practice"):
            return

        summary = await self.storage.get_summary_error_words()
        for record in records:
            unit = str(record.unit) if record.unit not in (None, "") else "default"
            index = next(
                (i for i, e in enumerate(summary) if e.word_id == record.word_id and e.unit == unit),
                None,
            )
            if index is None:
                summary.append(
                    SummaryEntry(
                        id=record.id,
                        word_id=record.word_id,
                        word=record.word,
                        pinyin=record.pinyin,
                        unit=unit,
                        round_id=record.round_id,
                        marked_at=record.marked_at,
                        source=mode,
                        first_marked_at=record.marked_at,
                        last_marked_at=record.marked_at,
                    )
                )
                continue

            existing = summary[index]
            if mode == "test":
                summary[index] = existing.model_copy(
                    update={
                        "id": record.id,
                        "word": record.word,
                        "pinyin": record.pinyin,
                        "round_id": record.round_id,
                        "marked_at": record.marked_at,
                        "source": "test",
                        "last_marked_at": record.marked_at,
                    }
                )
            elif existing.source == "practice":
                existing.last_marked_at = record.marked_at

        await self.storage.save_summary_error_words(summary)
