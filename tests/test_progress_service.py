"""
Unit tests for progress service.

Tests persisting review results, the due and new review queues, and the
learning statistics.
"""

import sys
import os
import pytest
from datetime import date, datetime, timedelta
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from models import db
from models.user import User
from models.vocabulary import Vocabulary
from models.user_vocabulary_progress import UserVocabularyProgress
from services.progress_service import (
    get_due_vocabulary,
    get_new_vocabulary,
    get_progress,
    get_stats,
    record_review,
    snapshot_from_row,
    submit_review,
)
from services.srs import InvalidInput

NOW = datetime(2024, 5, 10, 9, 30, 0)
TODAY = date(2024, 5, 10)


@pytest.fixture(scope='function')
def app_context():
    """Create a fresh app context and database for each test"""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def test_user(app_context):
    """Create a test user"""
    user = User(
        google_id='progress_user_123',
        email='progress@example.com',
        name='Progress User'
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def vocabulary(app_context):
    """Create a handful of words across two HSK levels"""
    words = [
        Vocabulary(simplified='你好', pinyin='nǐ hǎo', meaning_vi='xin chào', meaning_en='hello',
                   hsk_level=1, frequency_rank=1),
        Vocabulary(simplified='学习', pinyin='xuéxí', meaning_vi='học tập', meaning_en='to study',
                   hsk_level=1, frequency_rank=5),
        Vocabulary(simplified='经济', pinyin='jīngjì', meaning_vi='kinh tế', meaning_en='economy',
                   hsk_level=4, frequency_rank=3),
        Vocabulary(simplified='喵', pinyin='miāo', meaning_vi='', meaning_en='meow',
                   hsk_level=1, frequency_rank=2),
    ]
    db.session.add_all(words)
    db.session.commit()
    return words


def add_progress(user, vocab, **values):
    row = UserVocabularyProgress(user_id=user.id, vocabulary_id=vocab.id, **values)
    db.session.add(row)
    db.session.commit()
    return row


class TestRecordReview:
    """Test record_review function"""

    def test_first_review_creates_progress(self, app_context, test_user, vocabulary):
        snapshot = record_review(test_user.id, vocabulary[0].id, 5, response_ms=1500, now=NOW)

        row = get_progress(test_user.id, vocabulary[0].id)
        assert row is not None
        assert row.repetitions == 1
        assert row.interval_days == 1
        assert row.ease_factor == 2.6
        assert row.mastery_level == 1
        assert row.times_seen == 1
        assert row.times_correct == 1
        assert row.times_wrong == 0
        assert row.avg_response_ms == 1500
        assert row.next_review_at == NOW + timedelta(days=1)
        assert row.last_reviewed_at == NOW
        assert snapshot.repetitions == row.repetitions

    def test_first_review_lapse(self, app_context, test_user, vocabulary):
        record_review(test_user.id, vocabulary[0].id, 1, now=NOW)

        row = get_progress(test_user.id, vocabulary[0].id)
        assert row.repetitions == 0
        assert row.interval_days == 1
        assert row.times_wrong == 1
        assert row.times_correct == 0
        assert row.avg_response_ms is None

    def test_repeated_reviews_update_single_row(self, app_context, test_user, vocabulary):
        for quality in [5, 5, 5, 2, 5]:
            record_review(test_user.id, vocabulary[0].id, quality, now=NOW)

        rows = UserVocabularyProgress.query.filter_by(user_id=test_user.id).all()
        assert len(rows) == 1

        row = rows[0]
        assert row.repetitions == 1
        assert row.interval_days == 1
        assert row.mastery_level == 1
        assert row.times_seen == 5
        assert row.times_correct == 4
        assert row.times_wrong == 1

    def test_latency_average(self, app_context, test_user, vocabulary):
        record_review(test_user.id, vocabulary[0].id, 4, response_ms=1000, now=NOW)
        record_review(test_user.id, vocabulary[0].id, 4, response_ms=3000, now=NOW)

        assert get_progress(test_user.id, vocabulary[0].id).avg_response_ms == 2000

    def test_existing_row_round_trips_through_snapshot(self, app_context, test_user, vocabulary):
        row = add_progress(test_user, vocabulary[1], ease_factor=2.1, repetitions=4,
                           interval_days=12, mastery_level=3, times_seen=6,
                           times_correct=4, times_wrong=2)

        snapshot = snapshot_from_row(row)
        assert snapshot.ease_factor == 2.1
        assert snapshot.repetitions == 4
        assert snapshot.mastery_level == 3

        record_review(test_user.id, vocabulary[1].id, 4, now=NOW)
        updated = get_progress(test_user.id, vocabulary[1].id)
        assert updated.repetitions == 5
        assert updated.interval_days == 25  # round(12 * 2.1)
        assert updated.times_seen == 7

    def test_first_review_retries_when_row_created_concurrently(self, app_context, test_user, vocabulary):
        # Another request inserted the row between our read and our insert
        add_progress(test_user, vocabulary[0], repetitions=1, interval_days=1, mastery_level=1,
                     times_seen=1, times_correct=1)
        reads = []

        def read_after_concurrent_insert(user_id, vocabulary_id, lock=False):
            reads.append(lock)
            if len(reads) == 1:
                return None
            return get_progress(user_id, vocabulary_id, lock=lock)

        with patch('services.progress_service.get_progress', side_effect=read_after_concurrent_insert):
            snapshot = record_review(test_user.id, vocabulary[0].id, 5, now=NOW)

        assert reads == [True, True]
        assert snapshot.repetitions == 2
        assert snapshot.interval_days == 6

        rows = UserVocabularyProgress.query.filter_by(user_id=test_user.id).all()
        assert len(rows) == 1
        assert rows[0].times_seen == 2
        assert rows[0].repetitions == 2

    def test_repeated_insert_conflict_fails(self, app_context, test_user, vocabulary):
        add_progress(test_user, vocabulary[0], times_seen=1)

        with patch('services.progress_service.get_progress', return_value=None):
            with pytest.raises(RuntimeError):
                record_review(test_user.id, vocabulary[0].id, 4, now=NOW)

        assert get_progress(test_user.id, vocabulary[0].id).times_seen == 1

    def test_invalid_quality(self, app_context, test_user, vocabulary):
        with pytest.raises(InvalidInput):
            record_review(test_user.id, vocabulary[0].id, 7)

        assert get_progress(test_user.id, vocabulary[0].id) is None

    def test_unknown_vocabulary(self, app_context, test_user):
        with pytest.raises(LookupError):
            record_review(test_user.id, 9999, 4)

    def test_database_failure_rolls_back(self, app_context, test_user, vocabulary):
        with patch('services.progress_service._write_snapshot', side_effect=Exception('DB down')):
            with pytest.raises(RuntimeError):
                record_review(test_user.id, vocabulary[0].id, 4, now=NOW)

        assert get_progress(test_user.id, vocabulary[0].id) is None


class TestSubmitReview:
    """Test submit_review function"""

    def test_updates_progress_streak_and_xp(self, app_context, test_user, vocabulary):
        result = submit_review(test_user.id, vocabulary[0].id, 5, response_ms=900, today=TODAY)

        assert result['progress'].repetitions == 1
        assert result['quality_description'] == 'Perfect recall'
        assert result['xp_earned'] == 10
        assert result['streak_updated'] is True
        assert result['streak'].current_streak == 1

        user = db.session.get(User, test_user.id)
        assert user.total_xp == 10
        assert user.total_study_days == 1
        assert user.last_study_date == TODAY

    def test_second_review_same_day_keeps_streak(self, app_context, test_user, vocabulary):
        submit_review(test_user.id, vocabulary[0].id, 5, today=TODAY)
        result = submit_review(test_user.id, vocabulary[1].id, 3, today=TODAY)

        assert result['streak_updated'] is False
        assert result['xp_earned'] == 5

        user = db.session.get(User, test_user.id)
        assert user.current_streak == 1
        assert user.total_xp == 15

    def test_streak_failure_does_not_fail_review(self, app_context, test_user, vocabulary):
        with patch('services.progress_service.apply_review_rewards',
                   side_effect=RuntimeError('counters unavailable')):
            result = submit_review(test_user.id, vocabulary[0].id, 4, today=TODAY)

        assert result['progress'].repetitions == 1
        assert result['xp_earned'] == 0
        assert result['streak'] is None
        assert get_progress(test_user.id, vocabulary[0].id) is not None


class TestGetDueVocabulary:
    """Test get_due_vocabulary function"""

    def test_returns_only_due_words_in_order(self, app_context, test_user, vocabulary):
        add_progress(test_user, vocabulary[0], next_review_at=NOW - timedelta(days=1), mastery_level=2)
        add_progress(test_user, vocabulary[1], next_review_at=NOW - timedelta(days=3), mastery_level=1)
        add_progress(test_user, vocabulary[2], next_review_at=NOW + timedelta(days=2), mastery_level=0)

        rows = get_due_vocabulary(test_user.id, now=NOW)
        assert [row.vocabulary_id for row in rows] == [vocabulary[1].id, vocabulary[0].id]

    def test_ties_broken_by_mastery(self, app_context, test_user, vocabulary):
        due = NOW - timedelta(hours=1)
        add_progress(test_user, vocabulary[0], next_review_at=due, mastery_level=3)
        add_progress(test_user, vocabulary[1], next_review_at=due, mastery_level=1)

        rows = get_due_vocabulary(test_user.id, now=NOW)
        assert rows[0].vocabulary_id == vocabulary[1].id

    def test_hsk_filter(self, app_context, test_user, vocabulary):
        add_progress(test_user, vocabulary[0], next_review_at=NOW - timedelta(days=1))
        add_progress(test_user, vocabulary[2], next_review_at=NOW - timedelta(days=1))

        rows = get_due_vocabulary(test_user.id, hsk_level=4, now=NOW)
        assert [row.vocabulary_id for row in rows] == [vocabulary[2].id]

    def test_limit_is_capped(self, app_context, test_user, vocabulary):
        for word in vocabulary:
            add_progress(test_user, word, next_review_at=NOW - timedelta(days=1))

        assert len(get_due_vocabulary(test_user.id, limit=2, now=NOW)) == 2
        assert len(get_due_vocabulary(test_user.id, limit=500, now=NOW, max_limit=3)) == 3

    def test_other_users_progress_ignored(self, app_context, test_user, vocabulary):
        other = User(google_id='other_user', email='other@example.com')
        db.session.add(other)
        db.session.commit()
        add_progress(other, vocabulary[0], next_review_at=NOW - timedelta(days=1))

        assert get_due_vocabulary(test_user.id, now=NOW) == []


class TestGetNewVocabulary:
    """Test get_new_vocabulary function"""

    def test_excludes_started_and_untranslated_words(self, app_context, test_user, vocabulary):
        add_progress(test_user, vocabulary[0])

        words = get_new_vocabulary(test_user.id)
        # 喵 has no Vietnamese meaning; 你好 is already started
        assert [w.simplified for w in words] == ['经济', '学习']

    def test_hsk_filter(self, app_context, test_user, vocabulary):
        words = get_new_vocabulary(test_user.id, hsk_level=1)
        assert [w.simplified for w in words] == ['你好', '学习']

    def test_limit(self, app_context, test_user, vocabulary):
        assert len(get_new_vocabulary(test_user.id, limit=1)) == 1


class TestGetStats:
    """Test get_stats function"""

    def test_empty_stats(self, app_context, test_user):
        stats = get_stats(test_user.id, now=NOW)
        assert stats['total_learned'] == 0
        assert stats['mastered'] == 0
        assert stats['due_today'] == 0
        assert stats['avg_mastery'] == 0
        assert stats['total_reviews'] == 0
        assert stats['accuracy'] == 0
        assert stats['mastery_distribution'] == {}
        assert stats['hsk_distribution'] == {}

    def test_stats_summary(self, app_context, test_user, vocabulary):
        add_progress(test_user, vocabulary[0], mastery_level=4, times_seen=8, times_correct=7,
                     next_review_at=NOW + timedelta(days=10))
        add_progress(test_user, vocabulary[1], mastery_level=1, times_seen=3, times_correct=1,
                     next_review_at=NOW - timedelta(hours=2))
        add_progress(test_user, vocabulary[2], mastery_level=1, times_seen=1, times_correct=1,
                     next_review_at=NOW - timedelta(days=1))

        stats = get_stats(test_user.id, now=NOW)
        assert stats['total_learned'] == 3
        assert stats['mastered'] == 1
        assert stats['due_today'] == 2
        assert stats['avg_mastery'] == 2.0
        assert stats['total_reviews'] == 12
        assert stats['accuracy'] == 75
        assert stats['mastery_distribution'] == {1: 2, 4: 1}
        assert stats['hsk_distribution'] == {1: 2, 4: 1}

    def test_rounds_halves_up(self, app_context, test_user, vocabulary):
        add_progress(test_user, vocabulary[0], mastery_level=2, times_seen=8, times_correct=1)
        for word in vocabulary[1:]:
            add_progress(test_user, word, mastery_level=1)

        stats = get_stats(test_user.id, now=NOW)
        assert stats['accuracy'] == 13  # 12.5%
        assert stats['avg_mastery'] == 1.3  # 1.25
