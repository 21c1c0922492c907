"""Progress Service - Persists SM-2 review progress and builds review queues"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from models import db
from models.user_vocabulary_progress import UserVocabularyProgress
from models.vocabulary import Vocabulary
from services.clock import utc_now
from services.srs import (
    ReviewProgress,
    describe_quality,
    estimate_retention,
    round_half_up,
    schedule_review,
    validate_quality,
    validate_response_ms,
)
from services.streak_service import apply_review_rewards

logger = logging.getLogger(__name__)

# Mastery level from which a word counts as mastered in statistics
MASTERED_LEVEL = 3

# A first review that loses the insert race is retried once against the new row
MAX_INSERT_ATTEMPTS = 2


def get_progress(user_id: int, vocabulary_id: int, lock: bool = False) -> Optional[UserVocabularyProgress]:
    """
    Get the progress row for a user-word pair.

    Args:
        user_id: The ID of the user
        vocabulary_id: The ID of the vocabulary item
        lock: Take a row lock (SELECT ... FOR UPDATE) for a read-modify-write

    Returns:
        The UserVocabularyProgress object if it exists, None otherwise
    """
    query = UserVocabularyProgress.query.filter_by(
        user_id=user_id,
        vocabulary_id=vocabulary_id
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def snapshot_from_row(row: Optional[UserVocabularyProgress]) -> Optional[ReviewProgress]:
    if row is None:
        return None
    return ReviewProgress.model_validate(row)


def _write_snapshot(row: UserVocabularyProgress, snapshot: ReviewProgress) -> None:
    row.ease_factor = snapshot.ease_factor
    row.repetitions = snapshot.repetitions
    row.interval_days = snapshot.interval_days
    row.mastery_level = snapshot.mastery_level
    row.next_review_at = snapshot.next_review_at
    row.times_seen = snapshot.times_seen
    row.times_correct = snapshot.times_correct
    row.times_wrong = snapshot.times_wrong
    row.avg_response_ms = snapshot.avg_response_ms
    row.last_reviewed_at = snapshot.last_reviewed_at


def _lock_vocabulary(vocabulary_id: int) -> Optional[Vocabulary]:
    return Vocabulary.query.filter_by(id=vocabulary_id).with_for_update().first()


def record_review(
    user_id: int,
    vocabulary_id: int,
    quality: int,
    response_ms: Optional[int] = None,
    now: Optional[datetime] = None
) -> ReviewProgress:
    """
    Schedule the next review of a word and persist the new progress.

    The vocabulary row and the progress row are locked while the progress is
    read, recomputed and written, so two submissions for the same user and
    word are applied one after another, including the first review of a word.
    If a concurrent first review still inserts the progress row before ours,
    the transaction is retried once against the row it created.

    Args:
        user_id: The ID of the user
        vocabulary_id: The ID of the vocabulary item
        quality: Quality of response (0-5)
        response_ms: Response latency in milliseconds, if measured
        now: Review time (defaults to the current UTC time)

    Returns:
        ReviewProgress: The stored state after the review

    Raises:
        InvalidInput: If quality or response_ms is malformed
        LookupError: If the vocabulary item does not exist
        RuntimeError: If database operations fail
    """
    quality = validate_quality(quality)
    response_ms = validate_response_ms(response_ms)
    now = now or utc_now()

    for attempt in range(MAX_INSERT_ATTEMPTS):
        if _lock_vocabulary(vocabulary_id) is None:
            db.session.rollback()
            logger.warning(f"Review submitted for unknown vocabulary_id={vocabulary_id}")
            raise LookupError(f"Vocabulary {vocabulary_id} not found")

        try:
            row = get_progress(user_id, vocabulary_id, lock=True)
            snapshot = schedule_review(
                quality,
                response_ms=response_ms,
                prior=snapshot_from_row(row),
                now=now
            )

            if row is None:
                row = UserVocabularyProgress(user_id=user_id, vocabulary_id=vocabulary_id)
                db.session.add(row)

            _write_snapshot(row, snapshot)
            db.session.commit()

        except IntegrityError as e:
            db.session.rollback()
            if attempt + 1 < MAX_INSERT_ATTEMPTS:
                logger.warning(
                    f"Progress for user_id={user_id}, vocabulary_id={vocabulary_id} "
                    f"was created concurrently, retrying"
                )
                continue
            logger.error(
                f"Failed to record review for user_id={user_id}, vocabulary_id={vocabulary_id}: {str(e)}",
                exc_info=True
            )
            raise RuntimeError(f"Failed to record review: {str(e)}")

        except Exception as e:
            logger.error(
                f"Failed to record review for user_id={user_id}, vocabulary_id={vocabulary_id}: {str(e)}",
                exc_info=True
            )
            db.session.rollback()
            raise RuntimeError(f"Failed to record review: {str(e)}")

        logger.info(
            f"Recorded review: user_id={user_id}, vocabulary_id={vocabulary_id}, quality={quality}, "
            f"repetitions={snapshot.repetitions}, interval_days={snapshot.interval_days}, "
            f"ease_factor={snapshot.ease_factor}"
        )
        return snapshot


def submit_review(
    user_id: int,
    vocabulary_id: int,
    quality: int,
    response_ms: Optional[int] = None,
    today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Record a review, then update the user's streak and XP.

    A failure while updating the streak or XP is logged and does not undo
    the review, which has already been committed.

    Returns:
        dict: {
            'progress': ReviewProgress,
            'quality_description': str,
            'xp_earned': int,
            'streak': StreakState or None,
            'streak_updated': bool
        }
    """
    progress = record_review(user_id, vocabulary_id, quality, response_ms)

    result = {
        'progress': progress,
        'quality_description': describe_quality(quality),
        'xp_earned': 0,
        'streak': None,
        'streak_updated': False
    }

    try:
        rewards = apply_review_rewards(user_id, quality, today=today)
        result['xp_earned'] = rewards.xp_earned
        result['streak'] = rewards.counters.streak
        result['streak_updated'] = rewards.streak_changed
    except (ValueError, RuntimeError) as e:
        logger.error(f"Streak/XP update failed after review for user_id={user_id}: {str(e)}")

    return result


def _clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    if not limit or limit < 1:
        return default
    return min(limit, maximum)


def get_due_vocabulary(
    user_id: int,
    limit: Optional[int] = None,
    hsk_level: Optional[int] = None,
    now: Optional[datetime] = None,
    default_limit: int = 20,
    max_limit: int = 100
) -> List[UserVocabularyProgress]:
    """
    Progress rows whose next review is due, oldest first.

    Ties are broken by lowest mastery level.
    """
    if now is None:
        now = utc_now()

    query = (
        UserVocabularyProgress.query
        .join(Vocabulary, UserVocabularyProgress.vocabulary_id == Vocabulary.id)
        .filter(
            UserVocabularyProgress.user_id == user_id,
            UserVocabularyProgress.next_review_at <= now
        )
    )
    if hsk_level:
        query = query.filter(Vocabulary.hsk_level == hsk_level)

    return (
        query
        .order_by(UserVocabularyProgress.next_review_at.asc(), UserVocabularyProgress.mastery_level.asc())
        .limit(_clamp_limit(limit, default_limit, max_limit))
        .all()
    )


def get_new_vocabulary(
    user_id: int,
    limit: Optional[int] = None,
    hsk_level: Optional[int] = None,
    default_limit: int = 10,
    max_limit: int = 50
) -> List[Vocabulary]:
    """
    Words the user has never reviewed, most frequent first.

    Words without a Vietnamese meaning are not offered.
    """
    started = select(UserVocabularyProgress.vocabulary_id).where(
        UserVocabularyProgress.user_id == user_id
    )

    query = Vocabulary.query.filter(
        Vocabulary.id.notin_(started),
        Vocabulary.meaning_vi.isnot(None),
        Vocabulary.meaning_vi != ''
    )
    if hsk_level:
        query = query.filter(Vocabulary.hsk_level == hsk_level)

    return (
        query
        .order_by(Vocabulary.frequency_rank.asc(), Vocabulary.hsk_level.asc())
        .limit(_clamp_limit(limit, default_limit, max_limit))
        .all()
    )


def get_stats(user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Summary of a user's vocabulary progress.

    Returns:
        dict: {
            'total_learned': int,
            'mastered': int,            # mastery_level >= 3
            'due_today': int,
            'avg_mastery': float,       # one decimal
            'total_reviews': int,
            'accuracy': int,            # percent of reviews answered correctly
            'mastery_distribution': {level: count},
            'hsk_distribution': {hsk_level: count}
        }
    """
    if now is None:
        now = utc_now()

    base = UserVocabularyProgress.query.filter(UserVocabularyProgress.user_id == user_id)

    total_learned = base.count()
    mastered = base.filter(UserVocabularyProgress.mastery_level >= MASTERED_LEVEL).count()
    due_today = base.filter(UserVocabularyProgress.next_review_at <= now).count()

    avg_mastery, total_reviews, total_correct = db.session.query(
        func.avg(UserVocabularyProgress.mastery_level),
        func.coalesce(func.sum(UserVocabularyProgress.times_seen), 0),
        func.coalesce(func.sum(UserVocabularyProgress.times_correct), 0)
    ).filter(UserVocabularyProgress.user_id == user_id).one()

    total_reviews = int(total_reviews or 0)
    total_correct = int(total_correct or 0)
    retention = estimate_retention(total_correct, total_reviews - total_correct)

    mastery_rows = (
        db.session.query(UserVocabularyProgress.mastery_level, func.count(UserVocabularyProgress.id))
        .filter(UserVocabularyProgress.user_id == user_id)
        .group_by(UserVocabularyProgress.mastery_level)
        .order_by(UserVocabularyProgress.mastery_level)
        .all()
    )

    hsk_rows = (
        db.session.query(Vocabulary.hsk_level, func.count(UserVocabularyProgress.id))
        .join(Vocabulary, UserVocabularyProgress.vocabulary_id == Vocabulary.id)
        .filter(UserVocabularyProgress.user_id == user_id)
        .group_by(Vocabulary.hsk_level)
        .order_by(Vocabulary.hsk_level)
        .all()
    )

    return {
        'total_learned': total_learned,
        'mastered': mastered,
        'due_today': due_today,
        'avg_mastery': round_half_up(float(avg_mastery or 0), 1),
        'total_reviews': total_reviews,
        'accuracy': int(round_half_up(retention * 100)),
        'mastery_distribution': {level: count for level, count in mastery_rows},
        'hsk_distribution': {level: count for level, count in hsk_rows if level}
    }
