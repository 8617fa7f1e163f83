"""Tests for the fixed-interval review schedule and the scheduler."""

from datetime import timedelta

import pytest
from conftest import START, make_words

from backend.errors import EmptyWordSet
from backend.models import ErrorRecord, StageStatus
from backend.srs.clock import ManualClock
from backend.srs.modes import ErrorPractice, Test
from backend.srs.schedule import (
    REVIEW_INTERVALS_HOURS,
    calculate_review_schedule,
    new_plan,
    progress_visualization,
)
from backend.srs.scheduler import ReviewScheduler
from backend.srs.session import SessionEngine
from backend.storage import Storage


def _make_record(word_id: str = "w1", when=START) -> ErrorRecord:
    return ErrorRecord(
        id=f"round_1_0_{word_id}_0",
        word_id=word_id,
        word=f"字{word_id}",
        pinyin="zi",
        unit=1,
        round_id="round_1",
        marked_at=when,
    )


# --- Schedule ---


class TestSchedule:
    def test_stages_follow_fixed_intervals(self) -> None:
        stages = calculate_review_schedule(START)
        assert [s.stage for s in stages] == [1, 2, 3, 4, 5, 6]
        assert [s.scheduled_at - START for s in stages] == [
            timedelta(hours=h) for h in (1, 24, 72, 168, 336, 720)
        ]
        assert len(REVIEW_INTERVALS_HOURS) == 6

    def test_new_plan_starts_at_stage_one(self) -> None:
        plan = new_plan(_make_record(), START)
        assert plan.current_stage == 1
        assert plan.mastered is False
        assert all(s.status is StageStatus.PENDING for s in plan.stages)

    def test_progress_visualization(self) -> None:
        plan = new_plan(_make_record(), START)
        assert progress_visualization(plan) == "○○○○○○"
        plan.stages[0].completed_at = START
        plan.stages[1].completed_at = START
        assert progress_visualization(plan) == "●●○○○○"
        assert progress_visualization(None) == "○○○○○○"


# --- Plan creation ---


class TestCreatePlan:
    @pytest.mark.asyncio
    async def test_session_error_creates_plan(self, engine: SessionEngine, storage: Storage) -> None:
        await engine.start(make_words(1), ErrorPractice(), 3, 1)
        engine.toggle_mark("w1")
        await engine.finish()

        plan = await storage.get_review_plan("w1")
        assert plan.current_stage == 1
        assert plan.first_marked_at == START
        assert plan.stages[0].scheduled_at == START + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_existing_plan_is_not_rescheduled(
        self, scheduler: ReviewScheduler, clock: ManualClock
    ) -> None:
        first = await scheduler.create_plan_for_error_word(_make_record())
        clock.advance(minutes=5)
        again = await scheduler.create_plan_for_error_word(_make_record(when=clock.now()))

        assert again.first_marked_at == first.first_marked_at
        assert again.stages[0].scheduled_at == first.stages[0].scheduled_at
        assert len(await scheduler.get_all_plans()) == 1

    @pytest.mark.asyncio
    async def test_record_without_word_id_is_ignored(self, scheduler: ReviewScheduler) -> None:
        assert await scheduler.create_plan_for_error_word(_make_record(word_id="")) is None


# --- Outcomes ---


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_passing_overdue_stage_advances(self, scheduler: ReviewScheduler, clock: ManualClock) -> None:
        await scheduler.create_plan_for_error_word(_make_record())
        clock.advance(hours=2)

        buckets = await scheduler.get_plans_by_status()
        assert [p.word_id for p in buckets.overdue] == ["w1"]

        plan = await scheduler.complete_test("w1", 1, passed=True)
        assert plan.stages[0].status is StageStatus.COMPLETED
        assert plan.stages[0].completed_at == clock.now()
        assert plan.current_stage == 2
        assert plan.current_round_test_completed is True

    @pytest.mark.asyncio
    async def test_failing_leaves_stage_untouched(self, scheduler: ReviewScheduler, clock: ManualClock) -> None:
        created = await scheduler.create_plan_for_error_word(_make_record())
        clock.advance(hours=2)

        plan = await scheduler.complete_test("w1", 1, passed=False)
        assert plan.stages[0].status is StageStatus.OVERDUE
        assert plan.stages[0].completed_at is None
        assert plan.stages[0].scheduled_at == created.stages[0].scheduled_at
        assert plan.current_stage == 1
        assert plan.current_round_test_completed is False
        assert plan.current_round_test_date == clock.now()

    @pytest.mark.asyncio
    async def test_practice_only_sets_flag(self, scheduler: ReviewScheduler) -> None:
        await scheduler.create_plan_for_error_word(_make_record())
        plan = await scheduler.complete_practice("w1", 1)
        assert plan.current_round_practice_completed is True
        assert plan.stages[0].status is StageStatus.PENDING
        assert plan.current_stage == 1

    @pytest.mark.asyncio
    async def test_all_stages_passed_masters_word(
        self, scheduler: ReviewScheduler, storage: Storage, clock: ManualClock
    ) -> None:
        record = _make_record()
        await storage.save_error_words([record])
        await scheduler.create_plan_for_error_word(record)

        for stage in range(1, 7):
            clock.advance(days=31)
            plan = await scheduler.complete_test("w1", stage, passed=True)

        assert plan.mastered is True
        assert plan.current_stage == 7
        assert all(s.status is StageStatus.COMPLETED for s in plan.stages)
        assert await scheduler.get_words_for_current_stage() == []
        assert await storage.get_error_words() == []
        assert (await scheduler.get_plans_by_status()).total == 0

    @pytest.mark.asyncio
    async def test_missing_plan_is_noop(self, scheduler: ReviewScheduler) -> None:
        assert await scheduler.complete_test("nope", 1, passed=True) is None
        assert await scheduler.complete_practice("nope", 1) is None
        assert await scheduler.complete_test("w1", 9, passed=True) is None
        await scheduler.remove_plan("nope")
        assert await scheduler.get_plan("nope") is None


# --- Queries ---


class TestQueries:
    @pytest.mark.asyncio
    async def test_plans_bucketed_by_due_day(self, scheduler: ReviewScheduler) -> None:
        await scheduler.create_plan_for_error_word(_make_record("overdue", START - timedelta(days=1)))
        await scheduler.create_plan_for_error_word(_make_record("today", START))
        await scheduler.create_plan_for_error_word(_make_record("soon", START + timedelta(days=1)))
        await scheduler.create_plan_for_error_word(_make_record("later", START + timedelta(days=3)))

        buckets = await scheduler.get_plans_by_status()
        assert [p.word_id for p in buckets.overdue] == ["overdue"]
        assert [p.word_id for p in buckets.today] == ["today"]
        assert [p.word_id for p in buckets.upcoming] == ["soon"]
        assert [p.word_id for p in buckets.future] == ["later"]
        assert buckets.total == 4

    @pytest.mark.asyncio
    async def test_due_only_filters_future_stages(self, scheduler: ReviewScheduler, clock: ManualClock) -> None:
        await scheduler.create_plan_for_error_word(_make_record())
        assert [w.id for w in await scheduler.get_words_for_current_stage()] == ["w1"]
        assert await scheduler.get_words_for_current_stage(due_only=True) == []

        clock.advance(hours=1)
        words = await scheduler.get_words_for_current_stage("w1", due_only=True)
        assert [w.id for w in words] == ["w1"]
        assert words[0].to_word_entry().pinyin == "zi"


# --- Review sessions ---


class TestReviewSessions:
    @pytest.mark.asyncio
    async def test_test_requires_due_stage(self, engine: SessionEngine, scheduler: ReviewScheduler) -> None:
        await scheduler.create_plan_for_error_word(_make_record())
        with pytest.raises(EmptyWordSet):
            await engine.start_review("w1", test=True)

    @pytest.mark.asyncio
    async def test_unknown_word_cannot_be_reviewed(self, engine: SessionEngine) -> None:
        with pytest.raises(EmptyWordSet):
            await engine.start_review("missing")

    @pytest.mark.asyncio
    async def test_practice_session_reports_completion(
        self, engine: SessionEngine, scheduler: ReviewScheduler
    ) -> None:
        await scheduler.create_plan_for_error_word(_make_record())
        session = await engine.start_review("w1")
        assert isinstance(session.mode, ErrorPractice)
        assert session.mode.review_target.stage == 1
        assert [w.id for w in session.words] == ["w1"]

        await engine.finish()
        plan = await scheduler.get_plan("w1")
        assert plan.current_round_practice_completed is True
        assert plan.current_stage == 1

    @pytest.mark.asyncio
    async def test_retried_review_does_not_report_again(
        self, engine: SessionEngine, scheduler: ReviewScheduler, clock: ManualClock
    ) -> None:
        await scheduler.create_plan_for_error_word(_make_record())
        clock.advance(hours=2)
        await engine.start_review("w1", test=True)
        await engine.finish()
        passed = await scheduler.get_plan("w1")

        clock.advance(minutes=10)
        session = await engine.retry()
        assert isinstance(session.mode, Test)
        assert session.mode.review_target is None
        engine.toggle_mark("w1")
        await engine.finish()

        assert await scheduler.get_plan("w1") == passed

    @pytest.mark.asyncio
    async def test_clean_test_passes_stage(
        self, engine: SessionEngine, scheduler: ReviewScheduler, clock: ManualClock
    ) -> None:
        await scheduler.create_plan_for_error_word(_make_record())
        clock.advance(hours=2)
        session = await engine.start_review("w1", test=True)
        assert isinstance(session.mode, Test)

        await engine.next_group()
        plan = await scheduler.get_plan("w1")
        assert plan.stages[0].status is StageStatus.COMPLETED
        assert plan.current_stage == 2

    @pytest.mark.asyncio
    async def test_marked_test_fails_stage(
        self, engine: SessionEngine, scheduler: ReviewScheduler, clock: ManualClock
    ) -> None:
        created = await scheduler.create_plan_for_error_word(_make_record())
        clock.advance(hours=2)
        await engine.start_review("w1", test=True)
        engine.toggle_mark("w1")
        await engine.finish()

        plan = await scheduler.get_plan("w1")
        assert plan.current_stage == 1
        assert plan.current_round_test_completed is False
        assert plan.first_marked_at == created.first_marked_at
