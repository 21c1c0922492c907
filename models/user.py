from models import db
from datetime import datetime
from flask_login import UserMixin
from sqlalchemy.orm import validates
import re


class User(UserMixin, db.Model):
    """User model - stores account information, study streak and XP balance"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)

    # Google OAuth identifier
    google_id = db.Column(db.String, unique=True, nullable=False)

    email = db.Column(db.String, nullable=False, index=True)
    name = db.Column(db.String)

    # Lifetime XP, only ever incremented
    total_xp = db.Column(db.Integer, nullable=False, default=0)

    # Study streak bookkeeping (calendar days in STUDY_TIMEZONE)
    current_streak = db.Column(db.Integer, nullable=False, default=0)
    longest_streak = db.Column(db.Integer, nullable=False, default=0)
    total_study_days = db.Column(db.Integer, nullable=False, default=0)
    last_study_date = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_active_at = db.Column(db.DateTime)

    # Relationships
    vocabulary_progress = db.relationship('UserVocabularyProgress', back_populates='user', lazy='dynamic')

    @validates('email')
    def validate_email(self, key, email):
        if not email:
            raise ValueError('Email is required')
        # Basic email format validation
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(pattern, email):
            raise ValueError(f'Invalid email format: {email}')
        return email

    @validates('total_xp')
    def validate_total_xp(self, key, value):
        if value is not None and value < 0:
            raise ValueError('total_xp cannot be negative')
        return value

    def __repr__(self):
        return f'<User {self.email}>'
