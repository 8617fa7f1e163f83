"""Drill session engine.

Runs one timed session at a time: shuffles and pages the word list,
tracks per-word marks, times each group, and on completion persists the
session log and the round's error records, creates review plans for new
errors, and reports review outcomes to the scheduler.

State machine: IDLE -> ACTIVE <-> PAUSED -> FINISHED. Starting a new
session discards the previous one's in-memory state; whatever it last
persisted stays in the store.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from backend.config import settings
from backend.errors import EmptyWordSet, PersistenceFailure
from backend.models.records import ErrorRecord, PracticeSettings, SessionLog, WordBankEntry
from backend.srs.clock import Clock, SystemClock
from backend.srs.ledger import ErrorLedger, collect_error_records, count_marked
from backend.srs.modes import (
    ErrorPractice,
    Practice,
    Preview,
    ReviewTarget,
    SessionMode,
    Test,
    parse_mode,
    review_target_of,
)
from backend.srs.paging import build_group, find_group, merge_group_record, restore_marks, total_groups, upsert_group
from backend.srs.scheduler import ReviewScheduler
from backend.srs.timer import CountdownReading, GroupCountdown, Stopwatch
from backend.storage import Storage

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass
class CardView:
    """What a renderer needs to draw one card of the current group."""

    id: str
    word: str
    pinyin: str
    marked_wrong: bool
    show_pinyin: bool


@dataclass
class TimerSnapshot:
    elapsed_seconds: int
    countdown: CountdownReading | None

    @property
    def elapsed_text(self) -> str:
        return f"{self.elapsed_seconds}s"


@dataclass
class SessionResults:
    """Summary shown on the results screen."""

    log_id: str
    mode: str
    total_words: int
    error_count: int
    error_words: list[ErrorRecord]
    saved: bool | None

    @property
    def accuracy(self) -> int:
        """Percentage of words not marked wrong, rounded half up."""
        if not self.total_words:
            return 0
        return int((self.total_words - self.error_count) * 100 / self.total_words + 0.5)

    @property
    def comment(self) -> str:
        if self.error_count == 0:
            return "Perfect round!"
        return f"Nice work, we caught {self.error_count} words still to learn."


@dataclass
class DrillSession:
    """One session run, created per ``start`` call."""

    words: list[WordBankEntry]
    mode: SessionMode
    speed_per_word: int
    words_per_page: int
    log: SessionLog
    started_at: datetime
    stopwatch: Stopwatch
    show_pinyin: bool
    countdown: GroupCountdown | None = None
    state: SessionState = SessionState.ACTIVE
    current_index: int = 0
    marks: dict[str, bool] = field(default_factory=dict)
    results_dirty: bool = False
    last_save_ok: bool | None = None  # None until the first persist attempt
    # Ledger word ids snapshotted by a re-test; its errors merge additively.
    existing_error_ids: set[str] | None = None

    @property
    def is_live(self) -> bool:
        return self.state in (SessionState.ACTIVE, SessionState.PAUSED)

    @property
    def total_groups(self) -> int:
        return total_groups(len(self.words), self.words_per_page)

    @property
    def group_budget(self) -> int:
        return self.words_per_page * self.speed_per_word

    def current_words(self) -> list[WordBankEntry]:
        return build_group(self.words, self.current_index, self.words_per_page)


class SessionEngine:
    """Owns the active drill session and drives it through its states."""

    def __init__(
        self,
        storage: Storage,
        scheduler: ReviewScheduler | None = None,
        ledger: ErrorLedger | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.storage = storage
        self.clock = clock or SystemClock()
        self.ledger = ledger or ErrorLedger(storage, self.clock)
        self.scheduler = scheduler or ReviewScheduler(storage, self.ledger, self.clock)
        self.rng = rng or random.Random()
        self.session: DrillSession | None = None

    @property
    def state(self) -> SessionState:
        return self.session.state if self.session is not None else SessionState.IDLE

    # --- Starting ---

    async def start(
        self,
        word_list: Sequence[WordBankEntry],
        mode: SessionMode,
        speed_per_word: int | None = None,
        words_per_page: int | None = None,
        total: int | None = None,
    ) -> DrillSession:
        """Start a new session over a shuffled selection of ``word_list``.

        Raises:
            EmptyWordSet: if ``word_list`` is empty. No state is touched.
        """
        if not word_list:
            raise EmptyWordSet("No words available to start a session")

        prefs = await self._load_settings()
        speed = max(1, speed_per_word or prefs.speed or settings.default_speed)
        per_page = max(1, words_per_page or prefs.per_page or settings.default_per_page)

        shuffled = list(word_list)
        self.rng.shuffle(shuffled)
        words = shuffled[: max(1, total)] if total else shuffled

        match mode:
            case Test():
                show_pinyin = False
            case Preview():
                show_pinyin = prefs.show_pinyin_preview
            case Practice() | ErrorPractice():
                show_pinyin = prefs.show_pinyin_practice

        now = self.clock.now()
        log = SessionLog(
            id=f"round_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:6]}",
            date=now,
            mode=mode.value,
            total_words=len(words),
            words_per_page=per_page,
            speed_per_word=speed,
            show_pinyin=show_pinyin,
            is_official_test=isinstance(mode, Test),
        )
        stopwatch = Stopwatch()
        stopwatch.start(now)

        session = DrillSession(
            words=words,
            mode=mode,
            speed_per_word=speed,
            words_per_page=per_page,
            log=log,
            started_at=now,
            stopwatch=stopwatch,
            show_pinyin=show_pinyin,
        )
        self._enter_group(session)
        self.session = session

        logger.info(
            "Started %s session %s: %d words, %d per page, %ds per word",
            mode.value,
            log.id,
            len(words),
            per_page,
            speed,
        )
        return session

    async def start_from_bank(
        self,
        mode: SessionMode,
        selected: Sequence[WordBankEntry] | None = None,
        total: int | None = None,
        speed_per_word: int | None = None,
        words_per_page: int | None = None,
        only_wrong: bool = False,
    ) -> DrillSession:
        """Start from the selected words, or the whole bank when none are selected.

        Missing parameters fall back to the stored settings, then to the
        configured defaults; the values used are saved back to settings.
        """
        prefs = await self._load_settings()
        words = list(selected) if selected else await self.storage.get_word_bank()
        if not words:
            raise EmptyWordSet("The word bank is empty")
        if only_wrong:
            wrong_ids = await self.ledger.word_ids()
            words = [w for w in words if w.id in wrong_ids]
            if not words:
                raise EmptyWordSet("None of the selected words are in the error ledger")

        total = max(1, total or prefs.total or settings.default_total)
        speed = max(1, speed_per_word or prefs.speed or settings.default_speed)
        per_page = max(1, words_per_page or prefs.per_page or settings.default_per_page)
        await self._guard(
            "save settings",
            self.storage.save_settings(
                prefs.model_copy(update={"total": total, "speed": speed, "per_page": per_page})
            ),
        )
        return await self.start(words, mode, speed, per_page, total)

    async def start_review(self, word_id: str, test: bool = False) -> DrillSession:
        """Start a one-word review session bound to the word's current stage.

        Practice is always allowed; a test requires the stage to be due.
        """
        candidates = await self.scheduler.get_words_for_current_stage(word_id, due_only=test)
        if not candidates:
            raise EmptyWordSet(f"No review due for {word_id}")

        review_word = candidates[0]
        target = ReviewTarget(word_id=review_word.id, stage=review_word.plan.current_stage)
        mode: SessionMode = Test(review_target=target) if test else ErrorPractice(review_target=target)
        return await self.start(
            [review_word.to_word_entry()],
            mode,
            settings.review_speed,
            settings.review_per_page,
        )

    async def retry(self) -> DrillSession | None:
        """Run the same words again in the same mode.

        A retried review session no longer reports to its plan stage.
        """
        s = self.session
        if s is None:
            return None
        mode = parse_mode(s.mode.value)
        return await self.start(s.words, mode, s.speed_per_word, s.words_per_page, len(s.words))

    async def retry_test(self, errors_only: bool = False) -> DrillSession | None:
        """Re-test the same words (or only those in the ledger).

        The re-test can add errors to the ledger but never removes any.
        """
        s = self.session
        if s is None:
            return None
        ledger_ids = await self.ledger.word_ids()
        words = [w for w in s.words if w.id in ledger_ids] if errors_only else list(s.words)
        if not words:
            raise EmptyWordSet("There are no error words to re-test")

        session = await self.start(words, Test(), s.speed_per_word, s.words_per_page, len(words))
        session.existing_error_ids = ledger_ids
        return session

    # --- Navigation and marking ---

    async def next_group(self) -> SessionResults | None:
        """Advance one page; past the last page the session finishes.

        Returns the results when this call finished the session.
        """
        s = self.session
        if s is None or not s.is_live:
            return None
        self._persist_current_group(s)
        if s.current_index + 1 >= s.total_groups:
            return await self.finish()
        s.current_index += 1
        self._enter_group(s)
        return None

    def prev_group(self) -> None:
        s = self.session
        if s is None or not s.is_live or s.current_index == 0:
            return
        self._persist_current_group(s)
        s.current_index -= 1
        self._enter_group(s)

    def toggle_mark(self, word_id: str) -> bool | None:
        """Flip a word's mark in the current group and return the new value.

        Returns None when nothing can be marked (no live session, an
        unmarkable mode, or a word outside the current group).
        """
        s = self.session
        if s is None or not s.is_live or not s.mode.markable or word_id not in s.marks:
            return None
        s.marks[word_id] = not s.marks[word_id]
        self._persist_current_group(s)
        return s.marks[word_id]

    def pause(self) -> None:
        s = self.session
        if s is None or s.state is not SessionState.ACTIVE:
            return
        now = self.clock.now()
        s.state = SessionState.PAUSED
        s.stopwatch.pause(now)
        if s.countdown is not None:
            s.countdown.stopwatch.pause(now)

    def resume(self) -> None:
        s = self.session
        if s is None or s.state is not SessionState.PAUSED:
            return
        now = self.clock.now()
        s.state = SessionState.ACTIVE
        s.stopwatch.resume(now)
        if s.countdown is not None:
            s.countdown.stopwatch.resume(now)

    def tick(self) -> TimerSnapshot | None:
        """Read both timers. Called by the host's event loop."""
        s = self.session
        if s is None:
            return None
        now = self.clock.now()
        countdown = s.countdown.read(now) if s.countdown is not None and s.is_live else None
        return TimerSnapshot(elapsed_seconds=int(s.stopwatch.elapsed(now)), countdown=countdown)

    async def set_show_pinyin(self, visible: bool) -> bool:
        """Change pinyin visibility and remember it for this mode family.

        Ignored (returns False) when the mode locks pinyin off.
        """
        s = self.session
        if s is None or s.mode.pinyin_locked:
            return False
        s.show_pinyin = visible
        prefs = await self._load_settings()
        match s.mode:
            case Preview():
                prefs.show_pinyin_preview = visible
            case _:
                prefs.show_pinyin_practice = visible
        await self._guard("save pinyin preference", self.storage.save_settings(prefs))
        return True

    # --- Completion ---

    async def finish(self) -> SessionResults | None:
        """Complete the live session. A no-op unless ACTIVE or PAUSED."""
        s = self.session
        if s is None or not s.is_live:
            return None
        self._persist_current_group(s)

        now = self.clock.now()
        s.state = SessionState.FINISHED
        s.stopwatch.stop(now)
        if s.countdown is not None:
            s.countdown.stopwatch.stop(now)
        s.log.duration = round((now - s.started_at).total_seconds())

        records = collect_error_records(s.log, now)
        s.log.error_words = records
        s.last_save_ok = await self._persist_round(s, records)
        if s.last_save_ok:
            s.existing_error_ids = None

        if records:
            await self._guard("create review plans", self.scheduler.create_plans_for_error_words(records))
            await self._guard("update summary", self.ledger.update_summary(records, s.mode.value))
        await self._report_review_outcome(s, records)

        logger.info(
            "Finished %s session %s: %d words, %d errors, %ds",
            s.mode.value,
            s.log.id,
            len(s.words),
            len(records),
            s.log.duration,
        )
        return self.results()

    async def _report_review_outcome(self, s: DrillSession, records: list[ErrorRecord]) -> None:
        target = review_target_of(s.mode)
        if target is None:
            return
        match s.mode:
            case ErrorPractice():
                await self._guard(
                    "report review practice",
                    self.scheduler.complete_practice(target.word_id, target.stage),
                )
            case Test():
                passed = all(r.word_id != target.word_id for r in records)
                await self._guard(
                    "report review test",
                    self.scheduler.complete_test(target.word_id, target.stage, passed),
                )

    def toggle_result_mark(self, word_id: str, checked: bool) -> bool:
        """Edit a word's mark on the results screen, in every group it appears.

        Returns False if the session is not finished or the word is absent.
        """
        s = self.session
        if s is None or s.state is not SessionState.FINISHED:
            return False
        now = self.clock.now()
        found = False
        for group in s.log.groups:
            for word in group.words:
                if word.id != word_id:
                    continue
                found = True
                # marked_at is stamped only when a mark is added
                if word.marked_wrong != checked:
                    word.marked_wrong = checked
                    word.marked_at = now if checked else None
        if found:
            s.results_dirty = True
        return found

    async def confirm_results(self) -> SessionResults | None:
        """Re-derive and persist after results-screen edits.

        Scheduler outcomes reported at finish are not revisited.
        """
        s = self.session
        if s is None or s.state is not SessionState.FINISHED:
            return None
        records = collect_error_records(s.log, self.clock.now())
        s.log.error_words = records
        s.last_save_ok = await self._persist_round(s, records)
        if s.last_save_ok:
            s.results_dirty = False
        return self.results()

    async def auto_save(self) -> bool:
        """Teardown hook: persist the results view if one is showing.

        Returns True only when a save happened and succeeded.
        """
        s = self.session
        if s is None or s.state is not SessionState.FINISHED:
            return False
        logger.info("Auto-saving results of session %s", s.log.id)
        await self.confirm_results()
        return bool(s.last_save_ok)

    # --- Read-only queries ---

    def current_cards(self) -> list[CardView]:
        s = self.session
        if s is None or not s.is_live:
            return []
        cards = []
        for word in s.current_words():
            marked = s.marks.get(word.id, False)
            match s.mode:
                case Preview():
                    visible = s.show_pinyin
                case _:
                    visible = s.show_pinyin or marked
            cards.append(
                CardView(id=word.id, word=word.word, pinyin=word.pinyin, marked_wrong=marked, show_pinyin=visible)
            )
        return cards

    def progress_text(self) -> str:
        s = self.session
        if s is None:
            return "0/0"
        return f"{min(s.current_index + 1, s.total_groups)}/{s.total_groups}"

    def results(self) -> SessionResults | None:
        s = self.session
        if s is None or s.state is not SessionState.FINISHED:
            return None
        return SessionResults(
            log_id=s.log.id,
            mode=s.mode.value,
            total_words=len(s.words),
            error_count=count_marked(s.log),
            error_words=list(s.log.error_words),
            saved=s.last_save_ok,
        )

    # --- Internals ---

    def _enter_group(self, s: DrillSession) -> None:
        """Load the mark map for the current page and restart its countdown."""
        s.marks = restore_marks(s.log.groups, s.current_index, s.current_words())
        if not s.mode.timed:
            s.countdown = None
            return
        now = self.clock.now()
        s.countdown = GroupCountdown.begin(s.group_budget, now)
        if s.state is SessionState.PAUSED:
            s.countdown.stopwatch.pause(now)

    def _persist_current_group(self, s: DrillSession) -> None:
        words = s.current_words()
        if not words:
            return
        existing = find_group(s.log.groups, s.current_index)
        record = merge_group_record(existing, s.current_index, words, s.marks, self.clock.now())
        upsert_group(s.log.groups, record)

    async def _persist_round(self, s: DrillSession, records: list[ErrorRecord]) -> bool:
        """Write the log and the round's ledger contribution."""
        try:
            await self.storage.save_practice_log(s.log)
            if s.existing_error_ids is not None:
                await self.ledger.merge_test_round(s.existing_error_ids, records)
            else:
                await self.ledger.save_for_round(s.log.id, records)
        except PersistenceFailure as exc:
            logger.error("Could not persist session %s: %s", s.log.id, exc)
            return False
        return True

    async def _load_settings(self) -> PracticeSettings:
        try:
            return await self.storage.get_settings()
        except PersistenceFailure as exc:
            logger.error("Using default settings: %s", exc)
            return PracticeSettings()

    async def _guard(self, action: str, operation: Awaitable[object]) -> bool:
        try:
            await operation
        except PersistenceFailure as exc:
            logger.error("Failed to %s: %s", action, exc)
            return False
        return True
