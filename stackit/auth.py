import re
from functools import wraps

import bcrypt
import jwt
from flask import current_app, g, request

from .db import get_store
from .errors import Unauthorized

USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_]{3,50}$')
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def validate_username(username):
    return USERNAME_PATTERN.match(username) is not None


def validate_email(email):
    return EMAIL_PATTERN.match(email) is not None


def validate_password(password):
    # At least 8 characters, one uppercase, one lowercase, one number
    if len(password) < 8:
        return False
    if not re.search(r'[A-Z]', password):
        return False
    if not re.search(r'[a-z]', password):
        return False
    if not re.search(r'\d', password):
        return False
    return True


def hash_password(password):
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def decode_token(token, secret):
    """Return the ``user_id`` claim of an HS256 token."""
    if not token:
        raise Unauthorized('Token is missing')
    if token.startswith('Bearer '):
        token = token[7:]
    try:
        data = jwt.decode(token, secret, algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        raise Unauthorized('Token has expired')
    except jwt.InvalidTokenError:
        raise Unauthorized('Invalid token')
    if 'user_id' not in data:
        raise Unauthorized('Invalid token')
    return data['user_id']


def load_user_from_token(token):
    user_id = decode_token(token, current_app.config['SECRET_KEY'])
    with get_store().session() as repo:
        user = repo.get_user(user_id)
    if not user:
        raise Unauthorized('User not found')
    return user


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        g.current_user = load_user_from_token(request.headers.get('Authorization'))
        return f(*args, **kwargs)

    return decorated


def token_optional(f):
    """Like ``token_required``, but anonymous requests get ``g.current_user = None``.

    A header that is present but invalid is still rejected.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        token = request.headers.get('Authorization')
        g.current_user = load_user_from_token(token) if token else None
        return f(*args, **kwargs)

    return decorated
