"""Streak Service - Study streak and XP bookkeeping for reviews"""
import logging
from datetime import date, timedelta
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import update

from models import db
from models.user import User
from services.clock import study_today

logger = logging.getLogger(__name__)

# XP earned per review, by quality rating
XP_BY_QUALITY = {
    0: 0,
    1: 0,
    2: 0,
    3: 5,   # Correct with serious effort
    4: 8,   # Correct after hesitation
    5: 10,  # Perfect recall
}


class StreakState(BaseModel):
    """Consecutive-day study streak for one user"""
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    total_study_days: int = Field(default=0, ge=0)
    last_study_date: Optional[date] = Field(
        default=None,
        description="Most recent study day, in STUDY_TIMEZONE"
    )


class StreakUpdate(BaseModel):
    state: StreakState
    changed: bool


class UserCounters(BaseModel):
    """Per-user counters touched by every review: the streak and the XP balance"""
    streak: StreakState = Field(default_factory=StreakState)
    total_xp: int = Field(default=0, ge=0)


class RewardResult(BaseModel):
    counters: UserCounters
    streak_changed: bool
    xp_earned: int


def advance_streak(today: date, prior: Optional[StreakState] = None) -> StreakUpdate:
    """
    Count ``today`` as a study day.

    - Same day as last_study_date: no change
    - Day after last_study_date: current_streak + 1
    - Any gap, or no previous study day: current_streak restarts at 1

    Args:
        today: Calendar date being recorded
        prior: Stored streak state, or None for a user who never studied

    Returns:
        StreakUpdate: New state and whether anything changed

    Example:
        >>> state = StreakState(current_streak=3, longest_streak=5,
        ...                     total_study_days=10, last_study_date=date(2024, 5, 1))
        >>> advance_streak(date(2024, 5, 2), state).state.current_streak
        4
    """
    if prior is None:
        prior = StreakState()

    if prior.last_study_date == today:
        return StreakUpdate(state=prior, changed=False)

    if prior.last_study_date == today - timedelta(days=1):
        current_streak = prior.current_streak + 1
    else:
        current_streak = 1

    state = StreakState(
        current_streak=current_streak,
        longest_streak=max(prior.longest_streak, current_streak),
        total_study_days=prior.total_study_days + 1,
        last_study_date=today,
    )
    return StreakUpdate(state=state, changed=True)


def xp_for_quality(quality: int) -> int:
    """XP earned for a review; nothing below quality 3"""
    return XP_BY_QUALITY.get(quality, 0)


def record_study_activity(counters: UserCounters, quality: int, today: date) -> RewardResult:
    """
    Apply one review to a user's counters without touching the database.

    Args:
        counters: Current streak and XP balance
        quality: Validated quality rating of the review
        today: Study day the review belongs to

    Returns:
        RewardResult: Updated counters, whether the streak moved, and XP earned
    """
    streak_update = advance_streak(today, counters.streak)
    xp = xp_for_quality(quality)
    return RewardResult(
        counters=UserCounters(
            streak=streak_update.state,
            total_xp=counters.total_xp + xp
        ),
        streak_changed=streak_update.changed,
        xp_earned=xp
    )


def counters_from_user(user: User) -> UserCounters:
    return UserCounters(
        streak=StreakState(
            current_streak=user.current_streak or 0,
            longest_streak=user.longest_streak or 0,
            total_study_days=user.total_study_days or 0,
            last_study_date=user.last_study_date
        ),
        total_xp=user.total_xp or 0
    )


def add_xp(user_id: int, xp: int) -> None:
    """
    Atomically add XP to a user's balance (no commit).

    Raises:
        ValueError: If xp is negative
    """
    if xp < 0:
        raise ValueError(f"XP cannot be negative, got: {xp}")
    if xp == 0:
        return

    db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_xp=db.func.coalesce(User.total_xp, 0) + xp)
        .execution_options(synchronize_session=False)
    )
    logger.debug(f"Added {xp} XP for user_id={user_id}")


def apply_review_rewards(user_id: int, quality: int, today: Optional[date] = None) -> RewardResult:
    """
    Update the stored streak and XP balance after a review and commit.

    The user row is locked for the duration of the update so concurrent
    reviews by the same user cannot count a day twice.

    Args:
        user_id: The ID of the user
        quality: Validated quality rating (0-5)
        today: Study day (defaults to services.clock.study_today())

    Returns:
        RewardResult: The counters as stored after the update

    Raises:
        ValueError: If the user does not exist
        RuntimeError: If database operations fail
    """
    if today is None:
        today = study_today()

    user = User.query.filter_by(id=user_id).with_for_update().first()
    if not user:
        logger.error(f"Cannot update streak, user not found: user_id={user_id}")
        raise ValueError(f"User {user_id} not found")

    try:
        result = record_study_activity(counters_from_user(user), quality, today)

        if result.streak_changed:
            streak = result.counters.streak
            user.current_streak = streak.current_streak
            user.longest_streak = streak.longest_streak
            user.total_study_days = streak.total_study_days
            user.last_study_date = streak.last_study_date

        add_xp(user_id, result.xp_earned)
        db.session.commit()

        logger.info(
            f"Updated study counters: user_id={user_id}, streak={result.counters.streak.current_streak}, "
            f"streak_changed={result.streak_changed}, xp_earned={result.xp_earned}"
        )
        return result

    except Exception as e:
        logger.error(f"Failed to update streak/XP for user_id={user_id}: {str(e)}", exc_info=True)
        db.session.rollback()
        raise RuntimeError(f"Failed to update study counters: {str(e)}")


def get_user_counters(user_id: int) -> Optional[UserCounters]:
    user = db.session.get(User, user_id)
    if not user:
        return None
    return counters_from_user(user)
