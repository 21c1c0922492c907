from models import db
from datetime import datetime, timezone
from sqlalchemy.orm import validates


class Vocabulary(db.Model):
    """Vocabulary model - Chinese words with readings, meanings and HSK level"""
    __tablename__ = 'vocabulary'

    id = db.Column(db.Integer, primary_key=True)

    simplified = db.Column(db.String(50), nullable=False, index=True)
    traditional = db.Column(db.String(50))
    pinyin = db.Column(db.String(100))

    # Sino-Vietnamese reading
    han_viet = db.Column(db.String(100))

    meaning_vi = db.Column(db.Text)
    meaning_en = db.Column(db.Text)

    # 1-6, NULL for words outside the HSK lists
    hsk_level = db.Column(db.Integer, index=True)

    audio_url = db.Column(db.String(500))

    # Lower rank = more frequent word, drives the order of new words
    frequency_rank = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    learning_progress = db.relationship('UserVocabularyProgress', back_populates='vocabulary', lazy='dynamic')

    @validates('simplified')
    def validate_simplified(self, key, text):
        if not text or not text.strip():
            raise ValueError('Vocabulary text cannot be empty or whitespace')
        return text.strip()

    @validates('hsk_level')
    def validate_hsk_level(self, key, value):
        if value is not None and not 1 <= value <= 6:
            raise ValueError(f'hsk_level must be between 1 and 6, got: {value}')
        return value

    def __repr__(self):
        return f'<Vocabulary {self.simplified} (HSK {self.hsk_level})>'
