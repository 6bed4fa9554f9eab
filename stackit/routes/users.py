from flask import Blueprint, current_app, g, jsonify

from ..auth import (hash_password, token_required, validate_email,
                    validate_password, validate_username)
from ..db import get_store
from ..errors import BadRequest, Conflict, NotFound
from ..serializers import serialize_answer, serialize_question, serialize_user
from . import get_json_body, get_text

bp = Blueprint('users', __name__)


@bp.route('/users', methods=['POST'])
def register_user():
    """
    User Registration API

    Logic:
    1. Validate input data (email, username, password)
    2. Check if user already exists
    3. Hash password using bcrypt
    4. Create user in database

    Input:
    - username: string (3-50 characters, alphanumeric + underscore)
    - email: string (valid email format)
    - password: string (min 8 chars, 1 upper, 1 lower, 1 number)

    Tokens for the new account come from the identity service sharing
    SECRET_KEY; none is issued here.
    """
    data = get_json_body()
    username = get_text(data, 'username')
    email = get_text(data, 'email').lower()
    password = data.get('password')
    if not isinstance(password, str):
        password = ''

    if not username or not email or not password:
        raise BadRequest('Missing required fields')
    if not validate_username(username):
        raise BadRequest('Username must be 3-50 characters and contain only letters, numbers, and underscores')
    if not validate_email(email):
        raise BadRequest('Invalid email format')
    if not validate_password(password):
        raise BadRequest('Password must be at least 8 characters with uppercase, lowercase, and number')

    with get_store().session() as repo:
        if repo.find_user(username, email):
            raise Conflict('Username or email already exists')
        user = repo.create_user(username, email, hash_password(password))

    current_app.logger.info('Registered user %s (%s)', user['id'], username)
    return jsonify({
        'success': True,
        'message': 'User registered successfully',
        'user': serialize_user(user, include_email=True)
    }), 201


@bp.route('/users/me', methods=['GET'])
@token_required
def get_current_user():
    """Get current user profile"""
    with get_store().session() as repo:
        stats = repo.count_user_content(g.current_user['id'])

    user = serialize_user(g.current_user, include_email=True)
    user['stats'] = {
        'questions': stats['questions'],
        'answers': stats['answers']
    }
    return jsonify({'success': True, 'user': user}), 200


@bp.route('/users/<int:user_id>', methods=['GET'])
def get_user(user_id):
    with get_store().session() as repo:
        user = repo.get_user(user_id)
    if not user:
        raise NotFound('User not found')
    return jsonify({'success': True, 'user': serialize_user(user)}), 200


@bp.route('/users/<int:user_id>/questions', methods=['GET'])
def get_user_questions(user_id):
    with get_store().session() as repo:
        if not repo.get_user(user_id):
            raise NotFound('User not found')
        questions = repo.list_user_questions(user_id)
        tags_by_question = repo.get_question_tags([q['id'] for q in questions])

    return jsonify({
        'success': True,
        'questions': [
            serialize_question(q, tags_by_question.get(q['id'], []), summary=True)
            for q in questions
        ]
    }), 200


@bp.route('/users/<int:user_id>/answers', methods=['GET'])
def get_user_answers(user_id):
    with get_store().session() as repo:
        if not repo.get_user(user_id):
            raise NotFound('User not found')
        answers = repo.list_user_answers(user_id)

    return jsonify({
        'success': True,
        'answers': [serialize_answer(a) for a in answers]
    }), 200
