#!/usr/bin/env python3
"""
Script to seed the vocabulary table with a starter set of HSK 1 words.
Existing words (matched on simplified form) are updated in place so that
learners' review progress keeps pointing at the same rows.

Usage: python populate_vocabulary.py
"""

from app import create_app
from models import db
from models.vocabulary import Vocabulary


def populate_vocabulary():
    """Insert or update the starter vocabulary"""

    # (simplified, traditional, pinyin, han_viet, meaning_vi, meaning_en, hsk_level, frequency_rank)
    vocabulary_data = [
        ('的', '的', 'de', 'Đích', 'của (trợ từ)', 'possessive particle', 1, 1),
        ('我', '我', 'wǒ', 'Ngã', 'tôi', 'I, me', 1, 2),
        ('你', '你', 'nǐ', 'Nhĩ', 'bạn', 'you', 1, 3),
        ('是', '是', 'shì', 'Thị', 'là', 'to be', 1, 4),
        ('不', '不', 'bù', 'Bất', 'không', 'not', 1, 5),
        ('他', '他', 'tā', 'Tha', 'anh ấy', 'he, him', 1, 6),
        ('我们', '我們', 'wǒmen', 'Ngã môn', 'chúng tôi', 'we, us', 1, 7),
        ('好', '好', 'hǎo', 'Hảo', 'tốt', 'good', 1, 8),
        ('有', '有', 'yǒu', 'Hữu', 'có', 'to have', 1, 9),
        ('这', '這', 'zhè', 'Giá', 'này', 'this', 1, 10),
        ('人', '人', 'rén', 'Nhân', 'người', 'person', 1, 11),
        ('中国', '中國', 'Zhōngguó', 'Trung Quốc', 'Trung Quốc', 'China', 1, 12),
        ('学习', '學習', 'xuéxí', 'Học tập', 'học tập', 'to study', 1, 13),
        ('朋友', '朋友', 'péngyou', 'Bằng hữu', 'bạn bè', 'friend', 1, 14),
        ('谢谢', '謝謝', 'xièxie', 'Tạ tạ', 'cảm ơn', 'thank you', 1, 15),
        ('再见', '再見', 'zàijiàn', 'Tái kiến', 'tạm biệt', 'goodbye', 1, 16),
    ]

    app = create_app()

    with app.app_context():
        print("Creating database tables...")
        db.create_all()

        inserted_count = 0
        updated_count = 0
        for simplified, traditional, pinyin, han_viet, meaning_vi, meaning_en, hsk_level, rank in vocabulary_data:
            word = Vocabulary.query.filter_by(simplified=simplified).first()
            if word is None:
                word = Vocabulary(simplified=simplified)
                db.session.add(word)
                inserted_count += 1
            else:
                updated_count += 1

            word.traditional = traditional
            word.pinyin = pinyin
            word.han_viet = han_viet
            word.meaning_vi = meaning_vi
            word.meaning_en = meaning_en
            word.hsk_level = hsk_level
            word.frequency_rank = rank
            print(f"  [{rank:3d}] {simplified:6s} {pinyin:12s} - {meaning_en}")

        try:
            db.session.commit()
            print(f"\n✓ Inserted {inserted_count} and updated {updated_count} words")

            total_words = Vocabulary.query.count()
            print(f"✓ Database now contains {total_words} words")

        except Exception as e:
            db.session.rollback()
            print(f"\n✗ Error occurred: {e}")
            raise


if __name__ == '__main__':
    populate_vocabulary()
