"""Spaced-repetition scheduler for error words.

Owns the review plans. Plans are created from error records and advanced
only by review-session outcomes reported by the session engine. Every
operation on an unknown word id is a silent no-op: a learner may act on a
stale review list.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from backend.config import settings
from backend.models.records import ErrorRecord, ReviewPlan, StageStatus, WordBankEntry
from backend.srs.clock import Clock, SystemClock
from backend.srs.ledger import ErrorLedger
from backend.srs.schedule import find_stage, new_plan, refresh_plan
from backend.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class PlansByStatus:
    """Non-mastered plans bucketed by when their current stage is due."""

    today: list[ReviewPlan] = field(default_factory=list)
    upcoming: list[ReviewPlan] = field(default_factory=list)
    overdue: list[ReviewPlan] = field(default_factory=list)
    future: list[ReviewPlan] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.today) + len(self.upcoming) + len(self.overdue) + len(self.future)


@dataclass
class ReviewWord:
    """A word due for its current stage, annotated with its plan."""

    id: str
    word: str
    pinyin: str
    unit: int | str | None
    plan: ReviewPlan

    def to_word_entry(self) -> WordBankEntry:
        return WordBankEntry(id=self.id, word=self.word, pinyin=self.pinyin, unit=self.unit)


class ReviewScheduler:
    """Creates, queries and advances review plans."""

    def __init__(
        self,
        storage: Storage,
        ledger: ErrorLedger | None = None,
        clock: Clock | None = None,
        upcoming_window_days: int | None = None,
    ) -> None:
        self.storage = storage
        self.clock = clock or SystemClock()
        self.ledger = ledger or ErrorLedger(storage, self.clock)
        self.upcoming_window_days = upcoming_window_days or settings.upcoming_window_days

    async def create_plan_for_error_word(self, record: ErrorRecord) -> ReviewPlan | None:
        """Create a plan for the record's word, or return the existing one.

        An existing plan is never rescheduled or merged.
        """
        if not record.word_id:
            return None
        now = self.clock.now()

        existing = await self.storage.get_review_plan(record.word_id)
        if existing is not None:
            return refresh_plan(existing, now)

        plan = new_plan(record, now)
        await self.storage.save_review_plan(plan)
        logger.info(
            "Created review plan for %s (%s), stage 1 due %s",
            record.word_id,
            record.word,
            plan.stages[0].scheduled_at.isoformat(),
        )
        return plan

    async def create_plans_for_error_words(self, records: list[ErrorRecord]) -> list[ReviewPlan]:
        plans = []
        for record in records:
            plan = await self.create_plan_for_error_word(record)
            if plan is not None:
                plans.append(plan)
        return plans

    async def get_all_plans(self) -> list[ReviewPlan]:
        now = self.clock.now()
        return [refresh_plan(plan, now) for plan in await self.storage.get_review_plans()]

    async def get_plan(self, word_id: str) -> ReviewPlan | None:
        plan = await self.storage.get_review_plan(word_id)
        return refresh_plan(plan, self.clock.now()) if plan is not None else None

    async def get_plans_by_status(self) -> PlansByStatus:
        """Bucket plans by the scheduled time of their current stage.

        ``overdue`` is already past due; ``today`` is due before the next
        midnight; ``upcoming`` is due within the upcoming window; the rest
        is ``future``. Day boundaries are taken from the clock's date.

        A pending stage due later today counts as ``today``, not ``upcoming``.
        Older clients compared against the start of the day and filed such
        stages under ``upcoming``; this bucketing deliberately differs.
        """
        now = self.clock.now()
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end_of_today = start_of_today + timedelta(days=1)
        upcoming_limit = start_of_today + timedelta(days=self.upcoming_window_days)
        result = PlansByStatus()

        def bucket_for(scheduled_at: datetime) -> list[ReviewPlan]:
            if scheduled_at < end_of_today:
                return result.today
            if scheduled_at <= upcoming_limit:
                return result.upcoming
            return result.future

        for plan in await self.get_all_plans():
            if plan.mastered:
                continue
            stage = find_stage(plan, plan.current_stage)
            if stage is None:
                result.future.append(plan)
            elif stage.status is StageStatus.COMPLETED:
                next_stage = find_stage(plan, plan.current_stage + 1)
                if next_stage is None:
                    result.future.append(plan)
                else:
                    bucket_for(next_stage.scheduled_at).append(plan)
            elif stage.status is StageStatus.OVERDUE:
                result.overdue.append(plan)
            else:
                bucket_for(stage.scheduled_at).append(plan)
        return result

    async def complete_practice(self, word_id: str, stage: int) -> ReviewPlan | None:
        """Record that the current round's practice is done.

        Practice only unlocks testing; it never changes stage status.
        """
        plan = await self.storage.get_review_plan(word_id)
        if plan is None or find_stage(plan, stage) is None:
            logger.debug("No plan stage %s for %s; ignoring practice completion", stage, word_id)
            return None

        plan.current_round_practice_completed = True
        plan = refresh_plan(plan, self.clock.now())
        await self.storage.save_review_plan(plan)
        return plan

    async def complete_test(self, word_id: str, stage: int, passed: bool) -> ReviewPlan | None:
        """Apply a review-test outcome to one stage.

        A pass completes the stage; completing the last stage masters the
        word and removes it from the active error ledger. A failure leaves
        the stage and its schedule as they were.
        """
        plan = await self.storage.get_review_plan(word_id)
        target = find_stage(plan, stage) if plan is not None else None
        if plan is None or target is None:
            logger.debug("No plan stage %s for %s; ignoring test result", stage, word_id)
            return None

        now = self.clock.now()
        if passed:
            target.completed_at = now
            plan.current_round_test_completed = True
        else:
            plan.current_round_test_completed = False
        plan.current_round_test_date = now

        plan = refresh_plan(plan, now)
        await self.storage.save_review_plan(plan)

        if passed and plan.mastered:
            await self.ledger.remove_word(word_id)
            logger.info("Word %s (%s) mastered", word_id, plan.word)
        elif passed:
            logger.info("Word %s passed stage %d; now at stage %d", word_id, stage, plan.current_stage)
        else:
            logger.info("Word %s failed stage %d", word_id, stage)
        return plan

    async def get_words_for_current_stage(
        self,
        word_id: str | None = None,
        due_only: bool = False,
    ) -> list[ReviewWord]:
        """List words whose current stage is pending or overdue.

        Practice may use any of them; tests pass ``due_only`` to keep only
        stages whose scheduled time has arrived.
        """
        now = self.clock.now()
        words = []
        for plan in await self.get_all_plans():
            if plan.mastered:
                continue
            if word_id is not None and plan.word_id != word_id:
                continue
            stage = find_stage(plan, plan.current_stage)
            if stage is None or stage.status not in (StageStatus.PENDING, StageStatus.OVERDUE):
                continue
            if due_only and stage.scheduled_at > now:
                continue
            words.append(
                ReviewWord(id=plan.word_id, word=plan.word, pinyin=plan.pinyin, unit=plan.unit, plan=plan)
            )
        return words

    async def remove_plan(self, word_id: str) -> None:
        await self.storage.remove_review_plan(word_id)
