from flask import Blueprint, current_app, jsonify, request
from flask_login import login_user, logout_user, current_user
from google.oauth2 import id_token
from google.auth.transport import requests
import logging

# Set up logging
logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/auth')


def _user_to_dict(user):
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'total_xp': user.total_xp,
        'current_streak': user.current_streak
    }


@bp.route('/google', methods=['POST'])
def google_signin():
    """
    Handle Google Identity Services (GIS) sign-in.
    Receives a credential token from the frontend and verifies it.
    """
    client_id = current_app.config.get('GOOGLE_CLIENT_ID')
    if not client_id:
        logger.error('Google sign-in attempted but GOOGLE_CLIENT_ID is not configured')
        return jsonify({
            'success': False,
            'error': 'Google sign-in is not configured'
        }), 503

    try:
        data = request.get_json(silent=True) or {}
        credential = data.get('credential')

        if not credential:
            return jsonify({
                'success': False,
                'error': 'No credential provided'
            }), 400

        # Verify the credential token with Google
        try:
            idinfo = id_token.verify_oauth2_token(
                credential,
                requests.Request(),
                client_id
            )
        except ValueError as e:
            logger.error(f'Invalid Google token: {str(e)}')
            return jsonify({
                'success': False,
                'error': 'Invalid credential token'
            }), 401

        google_id = idinfo.get('sub')
        email = idinfo.get('email')
        name = idinfo.get('name', '')

        if not google_id or not email:
            logger.error('Incomplete user info from Google token')
            return jsonify({
                'success': False,
                'error': 'Incomplete user information'
            }), 400

        # Import here to avoid circular imports
        from auth.utils import get_or_create_user

        user = get_or_create_user(google_id, email, name)

        if not user:
            logger.error(f'Failed to create/retrieve user for google_id: {google_id}')
            return jsonify({
                'success': False,
                'error': 'Failed to create user account'
            }), 500

        login_user(user, remember=True)
        logger.info(f'User {email} logged in successfully via GIS')

        return jsonify({
            'success': True,
            'user': _user_to_dict(user)
        }), 200

    except Exception as e:
        logger.exception(f'Exception during Google sign-in: {str(e)}')
        return jsonify({
            'success': False,
            'error': 'An unexpected error occurred'
        }), 500


@bp.route('/me', methods=['GET'])
def get_current_user():
    """
    Get current authenticated user information.
    Used by frontend to check auth status and get user data.
    """
    if current_user.is_authenticated:
        return jsonify({
            'success': True,
            'authenticated': True,
            'user': _user_to_dict(current_user)
        }), 200

    return jsonify({
        'success': True,
        'authenticated': False,
        'user': None
    }), 200


@bp.route('/logout', methods=['POST'])
def logout():
    """Log out the current user (API endpoint for frontend)"""
    user_email = current_user.email if current_user.is_authenticated else 'anonymous'
    logout_user()
    logger.info(f'User {user_email} logged out')
    return jsonify({'success': True}), 200
