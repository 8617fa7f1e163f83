"""Session modes.

A mode is a small frozen value rather than a string: it carries the
mode-specific rules (timing, marking, pinyin lock, review target) as data,
and callers dispatch on it with ``match``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReviewTarget:
    """The plan stage a review session reports its outcome to."""

    word_id: str
    stage: int


@dataclass(frozen=True)
class Preview:
    """Untimed browsing; nothing can be marked."""

    value: str = "preview"
    timed: bool = False
    markable: bool = False
    pinyin_locked: bool = False


@dataclass(frozen=True)
class Practice:
    value: str = "practice"
    timed: bool = True
    markable: bool = True
    pinyin_locked: bool = False


@dataclass(frozen=True)
class ErrorPractice:
    """Practice of error words, optionally driven by a review plan."""

    review_target: ReviewTarget | None = None
    value: str = "error-practice"
    timed: bool = True
    markable: bool = True
    pinyin_locked: bool = False


@dataclass(frozen=True)
class Test:
    """Graded run. Pinyin hints are forced off for the whole session."""

    review_target: ReviewTarget | None = None
    value: str = "test"
    timed: bool = True
    markable: bool = True
    pinyin_locked: bool = True

    __test__ = False  # not a pytest test class


SessionMode = Preview | Practice | ErrorPractice | Test


def parse_mode(value: str, review_target: ReviewTarget | None = None) -> SessionMode:
    """Build a mode from its persisted name."""
    match value:
        case "preview":
            return Preview()
        case "practice":
            return Practice()
        case "error-practice":
            return ErrorPractice(review_target=review_target)
        case "test":
            return Test(review_target=review_target)
        case _:
            raise ValueError(f"Unknown session mode: {value!r}")


def review_target_of(mode: SessionMode) -> ReviewTarget | None:
    match mode:
        case ErrorPractice(review_target=target) | Test(review_target=target):
            return target
        case Preview() | Practice():
            return None
