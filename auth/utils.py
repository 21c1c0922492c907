from models import db
from models.user import User
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


def get_or_create_user(google_id, email, name):
    """
    Get or create a user from a verified Google identity.

    New users start with an empty streak and no XP.

    Args:
        google_id: Google OAuth identifier
        email: User's email from Google
        name: User's name from Google

    Returns:
        User object or None if database operation fails
    """
    try:
        user = User.query.filter_by(google_id=google_id).first()

        if user:
            # Update last active timestamp
            user.last_active_at = datetime.utcnow()
            db.session.commit()
            return user

        user = User(
            google_id=google_id,
            email=email,
            name=name,
            total_xp=0,
            current_streak=0,
            longest_streak=0,
            total_study_days=0,
            last_active_at=datetime.utcnow()
        )

        db.session.add(user)
        db.session.commit()

        logger.info(f'Created new user: {email}')
        return user

    except Exception as e:
        db.session.rollback()
        logger.error(f'Failed to create/update user {email}: {str(e)}')
        return None
