"""
Progress Routes - Endpoints for vocabulary review with spaced repetition.

This module provides API endpoints for the review system including:
- POST /progress/review - Submit a review and schedule the next one
- GET /progress/due - Words due for review
- GET /progress/new - Words the user has not started yet
- GET /progress/stats - Learning statistics
- GET /progress/streak - Study streak and XP balance
- GET /progress/<vocab_id> - Progress for one word
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from pydantic import ValidationError

from models import db
from services.progress_service import (
    get_due_vocabulary,
    get_new_vocabulary,
    get_progress,
    get_stats,
    submit_review,
)
from services.review_models import ReviewSubmission
from services.srs import InvalidInput
from services.streak_service import get_user_counters

logger = logging.getLogger(__name__)

bp = Blueprint('progress', __name__, url_prefix='/progress')


def _isoformat(value):
    return value.isoformat() if value else None


def _vocabulary_to_dict(vocab):
    return {
        'id': vocab.id,
        'simplified': vocab.simplified,
        'traditional': vocab.traditional,
        'pinyin': vocab.pinyin,
        'han_viet': vocab.han_viet,
        'meaning_vi': vocab.meaning_vi,
        'meaning_en': vocab.meaning_en,
        'hsk_level': vocab.hsk_level,
        'audio_url': vocab.audio_url
    }


def _progress_to_dict(progress):
    return {
        'mastery_level': progress.mastery_level,
        'ease_factor': progress.ease_factor,
        'interval_days': progress.interval_days,
        'repetitions': progress.repetitions,
        'next_review_at': _isoformat(progress.next_review_at),
        'times_seen': progress.times_seen,
        'times_correct': progress.times_correct,
        'times_wrong': progress.times_wrong,
        'avg_response_ms': progress.avg_response_ms,
        'last_reviewed_at': _isoformat(progress.last_reviewed_at)
    }


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = '.'.join(str(part) for part in first['loc'])
    if first['type'] == 'missing':
        return f'Missing required field: {field}'
    return f'Invalid {field}: {first["msg"]}'


@bp.route('/review', methods=['POST'])
@login_required
def submit_vocabulary_review():
    """
    Submit a review result for one vocabulary item.

    Request Body:
        {
            "vocab_id": 42,
            "quality": 4,
            "response_ms": 2300
        }

    Returns:
        200: Review recorded
            {
                "success": true,
                "vocab_id": 42,
                "quality": 4,
                "quality_description": "Correct after hesitation",
                "xp_earned": 8,
                "streak": {"current_streak": 3, ...},
                "streak_updated": true,
                "progress": {"repetitions": 1, "interval_days": 1, ...}
            }
        400: Missing or invalid fields
        404: Vocabulary not found
        500: Server error
    """
    try:
        data = request.get_json(silent=True)

        if not data:
            return jsonify({'error': 'No JSON data provided'}), 400

        try:
            submission = ReviewSubmission.model_validate(data)
        except ValidationError as e:
            return jsonify({'error': _validation_message(e)}), 400

        result = submit_review(
            user_id=current_user.id,
            vocabulary_id=submission.vocab_id,
            quality=submission.quality,
            response_ms=submission.response_ms
        )

        streak = result['streak']
        return jsonify({
            'success': True,
            'vocab_id': submission.vocab_id,
            'quality': submission.quality,
            'quality_description': result['quality_description'],
            'xp_earned': result['xp_earned'],
            'streak': streak.model_dump(mode='json') if streak else None,
            'streak_updated': result['streak_updated'],
            'progress': _progress_to_dict(result['progress'])
        })

    except InvalidInput as e:
        return jsonify({'error': str(e)}), 400
    except LookupError as e:
        return jsonify({'error': str(e)}), 404
    except Exception as e:
        db.session.rollback()
        logger.exception(f'Failed to submit review for user {current_user.id}: {str(e)}')
        return jsonify({'error': 'Failed to submit review'}), 500


@bp.route('/due', methods=['GET'])
@login_required
def get_due():
    """
    Get vocabulary due for review.

    Query Parameters:
        limit (int, optional): Maximum number of words (default 20, max 100)
        hsk (int, optional): Only words of this HSK level
    """
    try:
        rows = get_due_vocabulary(
            current_user.id,
            limit=request.args.get('limit', type=int),
            hsk_level=request.args.get('hsk', type=int),
            default_limit=current_app.config['DUE_LIMIT_DEFAULT'],
            max_limit=current_app.config['DUE_LIMIT_MAX']
        )

        data = [
            {**_vocabulary_to_dict(row.vocabulary), 'progress': _progress_to_dict(row)}
            for row in rows
        ]
        return jsonify({'count': len(data), 'data': data})

    except Exception as e:
        logger.exception(f'Failed to get due vocabulary for user {current_user.id}: {str(e)}')
        return jsonify({'error': 'Failed to get due vocabulary'}), 500


@bp.route('/new', methods=['GET'])
@login_required
def get_new():
    """
    Get vocabulary the user has not started learning.

    Query Parameters:
        limit (int, optional): Maximum number of words (default 10, max 50)
        hsk (int, optional): Only words of this HSK level
    """
    try:
        words = get_new_vocabulary(
            current_user.id,
            limit=request.args.get('limit', type=int),
            hsk_level=request.args.get('hsk', type=int),
            default_limit=current_app.config['NEW_LIMIT_DEFAULT'],
            max_limit=current_app.config['NEW_LIMIT_MAX']
        )

        data = [_vocabulary_to_dict(word) for word in words]
        return jsonify({'count': len(data), 'data': data})

    except Exception as e:
        logger.exception(f'Failed to get new vocabulary for user {current_user.id}: {str(e)}')
        return jsonify({'error': 'Failed to get new vocabulary'}), 500


@bp.route('/stats', methods=['GET'])
@login_required
def get_statistics():
    try:
        return jsonify(get_stats(current_user.id))
    except Exception as e:
        logger.exception(f'Failed to get statistics for user {current_user.id}: {str(e)}')
        return jsonify({'error': 'Failed to get statistics'}), 500


@bp.route('/streak', methods=['GET'])
@login_required
def get_streak():
    """Current study streak and XP balance of the logged-in user"""
    counters = get_user_counters(current_user.id)
    if counters is None:
        return jsonify({'error': 'User not found'}), 404

    return jsonify({
        **counters.streak.model_dump(mode='json'),
        'total_xp': counters.total_xp
    })


@bp.route('/<int:vocab_id>', methods=['GET'])
@login_required
def get_vocabulary_progress(vocab_id):
    """
    Get the logged-in user's progress for one word.

    Returns:
        200: {"learned": false} when the word was never reviewed, otherwise
            {
                "learned": true,
                "vocab_id": 42,
                "simplified": "学习",
                "pinyin": "xuéxí",
                "meaning_vi": "học tập",
                "progress": {...}
            }
    """
    try:
        progress = get_progress(current_user.id, vocab_id)
        vocab = progress.vocabulary if progress else None
        if vocab is None:
            return jsonify({'learned': False})

        return jsonify({
            'learned': True,
            'vocab_id': vocab_id,
            'simplified': vocab.simplified,
            'pinyin': vocab.pinyin,
            'meaning_vi': vocab.meaning_vi,
            'progress': _progress_to_dict(progress)
        })

    except Exception as e:
        logger.exception(f'Failed to get progress for vocab {vocab_id}: {str(e)}')
        return jsonify({'error': 'Failed to get progress'}), 500
