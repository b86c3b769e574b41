"""
JWT authentication decorators for the REST API.
"""
from functools import wraps
from datetime import datetime, timedelta, timezone

import jwt
from flask import request, current_app

from eventful.blueprints.api.helpers import api_error
from eventful.extensions import db
from eventful.models.user import User


def _jwt_secret():
    return current_app.config.get('JWT_SECRET_KEY') or current_app.config['SECRET_KEY']


def create_access_token(user_id, expires_minutes=None):
    """Create a JWT access token."""
    if expires_minutes is None:
        expires_minutes = current_app.config.get('JWT_ACCESS_EXPIRES_MINUTES', 60)
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'type': 'access',
        'iat': now,
        'exp': now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm='HS256')


def create_refresh_token(user_id, expires_days=None):
    """Create a JWT refresh token (longer-lived)."""
    if expires_days is None:
        expires_days = current_app.config.get('JWT_REFRESH_EXPIRES_DAYS', 30)
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'type': 'refresh',
        'iat': now,
        'exp': now + timedelta(days=expires_days),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm='HS256')


def decode_token(token):
    """Decode and validate a JWT token. Returns payload or None."""
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_api_user():
    """Extract user from Authorization header. Returns (user, error_response)."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None, api_error('missing_token', 'Authorization header with Bearer token required.', 401)

    payload = decode_token(auth_header[7:])
    if payload is None:
        return None, api_error('invalid_token', 'Token is invalid or expired.', 401)

    if payload.get('type') != 'access':
        return None, api_error('wrong_token_type', 'Access token required (not refresh token).', 401)

    try:
        user_id = int(payload['sub'])
    except (KeyError, ValueError, TypeError):
        return None, api_error('invalid_token', 'Token contains invalid user ID.', 401)

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None, api_error('user_not_found', 'User not found or deactivated.', 401)

    return user, None


def jwt_required(f):
    """Decorator: require valid JWT access token."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user, error = get_current_api_user()
        if error:
            return error
        request.api_user = user
        return f(*args, **kwargs)
    return decorated


def requires_role(*roles):
    """Decorator: require one of the given roles (admins always pass).

    Usage: @requires_role(UserRole.CREATOR)
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user, error = get_current_api_user()
            if error:
                return error

            if not user.has_role(*roles):
                return api_error('forbidden', 'Insufficient permissions.', 403)

            request.api_user = user
            return f(*args, **kwargs)
        return decorated
    return decorator
