"""
nORM - Authentication Routes
User login, registration, and token management
"""
import hmac
import logging
import re
from datetime import datetime, timezone
from functools import wraps

import jwt
from flask import Blueprint, request, jsonify, current_app

from norm.database import db
from norm.errors import AuthenticationError, ValidationError
from norm.models.db_models import DBUser
from norm.utils import utcnow

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def validate_password(password):
    """
    Validate password meets security requirements.
    Returns: (is_valid: bool, error_message: str or None)
    """
    if not password:
        return False, "Password is required"
    if len(password) < 8:
        return False, "Password must be at least 8 characters"
    if not re.search(r'[A-Za-z]', password):
        return False, "Password must contain at least one letter"
    if not re.search(r'[0-9]', password):
        return False, "Password must contain at least one number"
    return True, None


def _bearer_token():
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1].strip()
    return None


def token_required(f):
    """Decorator to require valid JWT token"""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthenticationError('Token is missing')

        try:
            payload = jwt.decode(
                token,
                current_app.config['JWT_SECRET_KEY'],
                algorithms=['HS256']
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError('Token has expired')
        except jwt.InvalidTokenError:
            raise AuthenticationError('Invalid token')

        current_user = db.session.get(DBUser, payload.get('user_id'))
        if not current_user:
            raise AuthenticationError('User not found')
        if not current_user.is_active:
            raise AuthenticationError('User is deactivated')

        return f(current_user, *args, **kwargs)

    return decorated


def cron_required(f):
    """Decorator for scheduler-only endpoints: Authorization: Bearer <CRON_SECRET>"""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = current_app.config.get('CRON_SECRET')
        if not secret:
            if current_app.config.get('ENV_NAME') != 'development':
                logger.error("CRON_SECRET is not configured; rejecting cron request")
                raise AuthenticationError('Cron secret not configured')
            logger.warning("CRON_SECRET is not configured; allowing cron request in development")
            return f(*args, **kwargs)

        token = _bearer_token() or ''
        if not hmac.compare_digest(token.encode(), secret.encode()):
            logger.warning(f"Rejected cron request from {request.remote_addr}")
            raise AuthenticationError('Invalid cron secret')

        return f(*args, **kwargs)

    return decorated


def generate_token(user: DBUser) -> str:
    """Generate JWT token for user"""
    payload = {
        'user_id': user.id,
        'email': user.email,
        'exp': datetime.now(timezone.utc) + current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET_KEY'],
        algorithm='HS256'
    )


@auth_bp.route('/register', methods=['POST'])
def register():
    """
    Create an account

    POST /api/auth/register
    {
        "email": "user@example.com",
        "name": "Maria Silva",
        "password": "senha1234"
    }
    """
    data = request.get_json(silent=True) or {}

    email = (data.get('email') or '').strip().lower()
    name = (data.get('name') or '').strip()
    password = data.get('password') or ''

    if not email or not EMAIL_PATTERN.match(email):
        raise ValidationError('A valid email is required')
    if not name:
        raise ValidationError('name is required')

    is_valid, error = validate_password(password)
    if not is_valid:
        raise ValidationError(error)

    if DBUser.query.filter_by(email=email).first():
        raise ValidationError('Email already registered')

    user = DBUser(email=email, name=name, password=password)
    db.session.add(user)
    db.session.commit()
    logger.info(f"Registered user {user.id}")

    return jsonify({
        'token': generate_token(user),
        'user': user.to_dict()
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    User login

    POST /api/auth/login
    {
        "email": "user@example.com",
        "password": "senha1234"
    }
    """
    data = request.get_json(silent=True) or {}

    if not data.get('email') or not data.get('password'):
        raise ValidationError('Email and password required')

    user = DBUser.query.filter_by(email=data['email'].strip().lower()).first()

    if not user or not user.verify_password(data['password']):
        logger.info(f"Failed login for {data['email']}")
        raise AuthenticationError('Invalid email or password')

    if not user.is_active:
        raise AuthenticationError('Account is deactivated')

    user.last_login = utcnow()
    db.session.commit()

    return jsonify({
        'token': generate_token(user),
        'user': user.to_dict()
    })


@auth_bp.route('/me', methods=['GET'])
@token_required
def get_current_user(current_user):
    """Get current user info with their client roles"""
    from norm.models.db_models import DBClientUser

    memberships = DBClientUser.query.filter_by(user_id=current_user.id).all()
    user = current_user.to_dict()
    user['clients'] = [{'client_id': m.client_id, 'role': m.role} for m in memberships]
    return jsonify({'user': user})
