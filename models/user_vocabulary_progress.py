from models import db
from datetime import datetime


class UserVocabularyProgress(db.Model):
    """UserVocabularyProgress model - SM-2 review state for one user and one word"""
    __tablename__ = 'user_vocabulary_progress'

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    vocabulary_id = db.Column(db.Integer, db.ForeignKey('vocabulary.id'), nullable=False)

    # 0-5, derived from repetitions
    mastery_level = db.Column(db.Integer, nullable=False, default=0)

    ease_factor = db.Column(db.Float, nullable=False, default=2.5)
    interval_days = db.Column(db.Integer, nullable=False, default=0)
    repetitions = db.Column(db.Integer, nullable=False, default=0)
    next_review_at = db.Column(db.DateTime)

    times_seen = db.Column(db.Integer, nullable=False, default=0)
    times_correct = db.Column(db.Integer, nullable=False, default=0)
    times_wrong = db.Column(db.Integer, nullable=False, default=0)

    avg_response_ms = db.Column(db.Integer)
    last_reviewed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    user = db.relationship('User', back_populates='vocabulary_progress')
    vocabulary = db.relationship('Vocabulary', back_populates='learning_progress')

    # Unique constraint on (user_id, vocabulary_id) and index on (user_id, next_review_at)
    __table_args__ = (
        db.UniqueConstraint('user_id', 'vocabulary_id', name='uq_user_vocabulary'),
        db.Index('idx_user_next_review', 'user_id', 'next_review_at'),
    )

    def __repr__(self):
        return (
            f'<UserVocabularyProgress user_id={self.user_id} vocabulary_id={self.vocabulary_id} '
            f'mastery_level={self.mastery_level}>'
        )
