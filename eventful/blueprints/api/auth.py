"""
API Authentication endpoints: JWT login, refresh, and user info.
"""
from flask import request, current_app

from eventful.blueprints.api import api_bp
from eventful.blueprints.api.decorators import (
    create_access_token,
    create_refresh_token,
    decode_token,
    jwt_required,
)
from eventful.blueprints.api.helpers import api_error, api_success, load_json
from eventful.blueprints.api.schemas import UserSchema, LoginSchema, RefreshSchema
from eventful.extensions import db, limiter
from eventful.models.user import User


def _expires_in():
    return current_app.config.get('JWT_ACCESS_EXPIRES_MINUTES', 60) * 60


@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit('10 per minute')
def api_login():
    """Authenticate user and return JWT tokens.

    Request body:
        {"email": "...", "password": "..."}

    Returns:
        {"data": {"access_token": "...", "refresh_token": "...", "user": {...}}}
    """
    data = load_json(LoginSchema())
    email = data['email'].strip().lower()

    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(data['password']):
        current_app.logger.info(f"Failed API login for {email}")
        return api_error('invalid_credentials', 'Invalid email or password.', 401)

    if not user.is_active:
        return api_error('account_inactive', 'Account is deactivated. Contact an administrator.', 403)

    return api_success({
        'access_token': create_access_token(user.id),
        'refresh_token': create_refresh_token(user.id),
        'token_type': 'Bearer',
        'expires_in': _expires_in(),
        'user': UserSchema().dump(user),
    })


@api_bp.route('/auth/refresh', methods=['POST'])
@limiter.limit('20 per minute')
def api_refresh():
    """Exchange a refresh token for a new access token.

    Request body:
        {"refresh_token": "..."}
    """
    data = load_json(RefreshSchema())

    payload = decode_token(data['refresh_token'])
    if payload is None:
        return api_error('invalid_token', 'Refresh token is invalid or expired.', 401)

    if payload.get('type') != 'refresh':
        return api_error('wrong_token_type', 'Refresh token required.', 401)

    try:
        user = db.session.get(User, int(payload['sub']))
    except (KeyError, ValueError, TypeError):
        user = None
    if user is None or not user.is_active:
        return api_error('user_not_found', 'User not found or deactivated.', 401)

    return api_success({
        'access_token': create_access_token(user.id),
        'token_type': 'Bearer',
        'expires_in': _expires_in(),
    })


@api_bp.route('/auth/me', methods=['GET'])
@jwt_required
def api_me():
    """Get current authenticated user profile."""
    return api_success(UserSchema().dump(request.api_user))
