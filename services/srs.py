"""Spaced repetition algorithm implementation (SM-2)"""

import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from services.clock import utc_now

# SM-2 algorithm parameters
INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3

# Quality at or above this counts as a correct recall
PASSING_QUALITY = 3

MIN_QUALITY = 0
MAX_QUALITY = 5

# Fixed intervals (days) for the first two successful reviews
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6

# Interval forced after a lapse
LAPSE_INTERVAL = 1

# (minimum repetitions, mastery level), highest threshold first
MASTERY_THRESHOLDS = [(8, 5), (6, 4), (4, 3), (2, 2), (1, 1)]

QUALITY_DESCRIPTIONS = {
    0: 'Complete blackout',
    1: 'Incorrect, but recognised the answer',
    2: 'Incorrect, but it felt familiar',
    3: 'Correct with serious effort',
    4: 'Correct after hesitation',
    5: 'Perfect recall',
}


class InvalidInput(ValueError):
    """Raised when a review is submitted with a malformed quality or latency"""


class ReviewProgress(BaseModel):
    """
    SM-2 state of one vocabulary item for one user.

    A freshly constructed instance (``ReviewProgress.new()``) is the state of an
    item that has never been reviewed; all defaults for new items live here.
    ``mastery_level`` is derived from ``repetitions`` and never set directly.
    """
    model_config = ConfigDict(from_attributes=True)

    ease_factor: float = Field(
        default=INITIAL_EASE_FACTOR,
        ge=MIN_EASE_FACTOR,
        description="Difficulty multiplier, lower means harder"
    )
    repetitions: int = Field(
        default=0,
        ge=0,
        description="Consecutive successful recalls since the last lapse"
    )
    interval_days: int = Field(
        default=0,
        ge=0,
        description="Days until the next scheduled review"
    )
    next_review_at: Optional[datetime] = None
    times_seen: int = Field(default=0, ge=0)
    times_correct: int = Field(default=0, ge=0)
    times_wrong: int = Field(default=0, ge=0)
    avg_response_ms: Optional[int] = Field(
        default=None,
        ge=0,
        description="Rolling two-point average of response latency"
    )
    last_reviewed_at: Optional[datetime] = None

    @computed_field
    @property
    def mastery_level(self) -> int:
        return calculate_mastery_level(self.repetitions)

    @classmethod
    def new(cls) -> 'ReviewProgress':
        """State of an item that has never been reviewed"""
        return cls()


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def validate_quality(quality) -> int:
    """
    Check that a quality rating is an integer in [0, 5].

    Args:
        quality: Rating submitted by the learner

    Returns:
        int: The validated rating

    Raises:
        InvalidInput: If quality is missing, not an integer, or out of range
    """
    if quality is None:
        raise InvalidInput("quality is required")
    # bool is an int subclass, but True/False are not ratings
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidInput(f"quality must be an integer, got: {quality!r}")
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidInput(f"quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got: {quality}")
    return quality


def validate_response_ms(response_ms) -> Optional[int]:
    if response_ms is None:
        return None
    if isinstance(response_ms, bool) or not isinstance(response_ms, int):
        raise InvalidInput(f"response_ms must be an integer, got: {response_ms!r}")
    if response_ms < 0:
        raise InvalidInput(f"response_ms cannot be negative, got: {response_ms}")
    return response_ms


def calculate_ease_factor(current_ease: float, quality: int) -> float:
    """
    Adjust the ease factor for a quality rating.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3
    and rounded to 2 decimal places.

    Example:
        >>> calculate_ease_factor(2.5, 5)
        2.6
        >>> calculate_ease_factor(1.3, 0)
        1.3
    """
    distance = MAX_QUALITY - quality
    new_ease = current_ease + (0.1 - distance * (0.08 + distance * 0.02))
    return round_half_up(max(MIN_EASE_FACTOR, new_ease), 2)


def calculate_interval(repetitions: int, ease_factor: float, previous_interval: int) -> int:
    """
    Days until the next review after a successful recall.

    I(1) = 1, I(2) = 6, I(n) = round(I(n-1) * EF) for n > 2.

    Args:
        repetitions: Repetition count after this review was counted
        ease_factor: Ease factor before this review
        previous_interval: Interval scheduled by the previous review

    Returns:
        int: Interval in days (0 when nothing is scheduled yet)
    """
    if repetitions <= 0:
        return 0
    if repetitions == 1:
        return FIRST_INTERVAL
    if repetitions == 2:
        return SECOND_INTERVAL
    return int(round_half_up(previous_interval * ease_factor))


def calculate_mastery_level(repetitions: int) -> int:
    """
    Coarse 0-5 mastery bucket for a repetition count.

    0 -> 0, 1 -> 1, 2-3 -> 2, 4-5 -> 3, 6-7 -> 4, 8+ -> 5
    """
    for threshold, level in MASTERY_THRESHOLDS:
        if repetitions >= threshold:
            return level
    return 0


def average_response_ms(previous_avg: Optional[int], response_ms: Optional[int]) -> Optional[int]:
    """Two-point average of the stored average and the new latency"""
    if previous_avg is not None and response_ms is not None:
        return int(round_half_up((previous_avg + response_ms) / 2))
    return response_ms if response_ms is not None else previous_avg


def schedule_review(
    quality: int,
    response_ms: Optional[int] = None,
    prior: Optional[ReviewProgress] = None,
    now: Optional[datetime] = None
) -> ReviewProgress:
    """
    Compute the progress state that follows one review.

    The ease factor is always recomputed from the ease factor the item had
    before this review, on both the lapse and the success branch. Counters
    (times_seen, times_correct, times_wrong), the latency average and
    last_reviewed_at are carried forward from ``prior``.

    Args:
        quality: Quality of response (0-5)
                0-2: lapse, the item is retried the next day
                3-5: correct, the interval grows
        response_ms: Response latency in milliseconds, if measured
        prior: Current progress, or None for an item never reviewed
        now: Reference time for next_review_at (defaults to the current UTC time)

    Returns:
        ReviewProgress: The new state; ``prior`` is not modified

    Raises:
        InvalidInput: If quality or response_ms is malformed

    Example:
        >>> progress = schedule_review(5)
        >>> progress.repetitions, progress.interval_days, progress.ease_factor
        (1, 1, 2.6)
    """
    quality = validate_quality(quality)
    response_ms = validate_response_ms(response_ms)

    if prior is None:
        prior = ReviewProgress.new()
    if now is None:
        now = utc_now()

    ease_factor = prior.ease_factor
    is_correct = quality >= PASSING_QUALITY

    if is_correct:
        repetitions = prior.repetitions + 1
        interval_days = calculate_interval(repetitions, ease_factor, prior.interval_days)
    else:
        repetitions = 0
        interval_days = LAPSE_INTERVAL

    return ReviewProgress(
        ease_factor=calculate_ease_factor(ease_factor, quality),
        repetitions=repetitions,
        interval_days=interval_days,
        next_review_at=now + timedelta(days=interval_days),
        times_seen=prior.times_seen + 1,
        times_correct=prior.times_correct + (1 if is_correct else 0),
        times_wrong=prior.times_wrong + (0 if is_correct else 1),
        avg_response_ms=average_response_ms(prior.avg_response_ms, response_ms),
        last_reviewed_at=now,
    )


def describe_quality(quality: int) -> str:
    return QUALITY_DESCRIPTIONS.get(quality, 'Unknown')


def estimate_retention(correct_count: int, incorrect_count: int) -> float:
    """
    Estimate retention rate for an item

    Args:
        correct_count: Number of correct answers
        incorrect_count: Number of incorrect answers

    Returns:
        Retention rate (0-1)
    """
    total = correct_count + incorrect_count
    if total == 0:
        return 0.0
    return correct_count / total
