"""Fixed-interval review schedule (Ebbinghaus forgetting curve).

A plan has six stages scheduled at fixed offsets from the first time the
word was marked wrong. Stage status, the current stage and mastery are
never trusted from storage: they are recomputed from the stored
timestamps by ``refresh_plan`` at every read.
"""

from datetime import datetime, timedelta

from backend.models.records import ErrorRecord, ReviewPlan, Stage, StageStatus

# Hours after the first mark: 1h, 1d, 3d, 1w, 2w, 1mo
REVIEW_INTERVALS_HOURS = (1, 24, 72, 168, 336, 720)

STAGE_COUNT = len(REVIEW_INTERVALS_HOURS)


def calculate_review_schedule(first_marked_at: datetime) -> list[Stage]:
    return [
        Stage(stage=i + 1, scheduled_at=first_marked_at + timedelta(hours=hours))
        for i, hours in enumerate(REVIEW_INTERVALS_HOURS)
    ]


def stage_status(stage: Stage, now: datetime) -> StageStatus:
    if stage.completed_at is not None:
        return StageStatus.COMPLETED
    if stage.scheduled_at < now:
        return StageStatus.OVERDUE
    return StageStatus.PENDING


def refresh_plan(plan: ReviewPlan, now: datetime) -> ReviewPlan:
    """Return a copy of ``plan`` with its derived fields recomputed for ``now``.

    ``current_stage`` is the first stage not yet completed, or one past the
    last stage once every stage is completed (mastered).
    """
    stages = [s.model_copy(update={"status": stage_status(s, now)}) for s in plan.stages]
    current = next(
        (s.stage for s in stages if s.status in (StageStatus.PENDING, StageStatus.OVERDUE)),
        len(stages) + 1,
    )
    mastered = all(s.status is StageStatus.COMPLETED for s in stages)
    return plan.model_copy(update={"stages": stages, "current_stage": current, "mastered": mastered})


def find_stage(plan: ReviewPlan, number: int) -> Stage | None:
    for stage in plan.stages:
        if stage.stage == number:
            return stage
    return None


def new_plan(record: ErrorRecord, now: datetime) -> ReviewPlan:
    """Build a fresh plan scheduled from the record's mark time."""
    first_marked_at = record.marked_at or now
    plan = ReviewPlan(
        word_id=record.word_id,
        word=record.word,
        pinyin=record.pinyin,
        unit=record.unit,
        first_marked_at=first_marked_at,
        stages=calculate_review_schedule(first_marked_at),
    )
    return refresh_plan(plan, now)


def progress_visualization(plan: ReviewPlan | None) -> str:
    """One filled dot per completed stage, hollow for the rest."""
    if plan is None or not plan.stages:
        return "○" * STAGE_COUNT
    completed = sum(1 for s in plan.stages if s.completed_at is not None)
    return "●" * completed + "○" * (len(plan.stages) - completed)
