from flask import Blueprint, current_app, g, jsonify, request

from ..auth import token_optional, token_required
from ..content import embed_images, sanitize_content, uploaded_images
from ..db import get_store
from ..errors import BadRequest, Forbidden, NotFound
from ..forum import cast_vote, remove_question
from ..serializers import (serialize_answer, serialize_comment,
                           serialize_question)
from . import get_json_body, get_text

bp = Blueprint('questions', __name__)

SORT_OPTIONS = ('newest', 'oldest', 'score', 'views', 'answers')
MAX_TAGS = 5


def normalize_tags(raw_tags):
    """Trimmed, lower-cased, de-duplicated tag names in submission order."""
    if not isinstance(raw_tags, list):
        return []
    names = []
    for tag_name in raw_tags:
        if not isinstance(tag_name, str):
            continue
        tag_name = tag_name.strip().lower()
        if tag_name and tag_name not in names:
            names.append(tag_name)
    return names


def validate_question(title, description, tags=None):
    if not title or not description:
        raise BadRequest('Title and description are required')
    if len(title) < 5 or len(title) > 255:
        raise BadRequest('Title must be 5-255 characters')
    if len(description) < 10:
        raise BadRequest('Description must be at least 10 characters')
    if tags is None:
        return
    if not tags:
        raise BadRequest('At least one tag is required')
    if len(tags) > MAX_TAGS:
        raise BadRequest(f'Maximum {MAX_TAGS} tags allowed')
    if any(len(tag_name) > 50 for tag_name in tags):
        raise BadRequest('Tag names must be at most 50 characters')


def _load_owned_question(repo, question_id):
    question = repo.get_question(question_id, include_closed=True)
    if not question:
        raise NotFound('Question not found')
    if question['author_id'] != g.current_user['id']:
        raise Forbidden()
    return question


@bp.route('/questions', methods=['POST'])
@token_required
def create_question():
    """
    Create Question API with Image Support

    Logic:
    1. Validate title, description and tags
    2. Upload base64 images to Cloudinary
    3. Replace {image_<i>} placeholders with the uploaded images
    4. Sanitize the description
    5. Save the question, creating unknown tags; uploads are removed if this fails
    """
    data = get_json_body()
    title = get_text(data, 'title')
    description = get_text(data, 'description')
    tags = normalize_tags(data.get('tags'))
    validate_question(title, description, tags)

    images = data.get('images') or []
    if not isinstance(images, list):
        raise BadRequest('Images must be a list')
    if not all(isinstance(image_data, str) for image_data in images):
        raise BadRequest('Images must be base64 strings')

    with uploaded_images(images) as image_urls:
        description = sanitize_content(embed_images(description, image_urls))
        with get_store().session() as repo:
            question = repo.create_question(title, description, g.current_user['id'])
            tag_rows = repo.get_or_create_tags(tags, g.current_user['id'])
            repo.set_question_tags(question['id'], [tag['id'] for tag in tag_rows])

    current_app.logger.info('User %s asked question %s', g.current_user['id'], question['id'])
    question_data = serialize_question(question, tag_rows)
    question_data['images'] = image_urls
    return jsonify({
        'success': True,
        'message': 'Question created successfully',
        'question': question_data
    }), 201


@bp.route('/questions', methods=['GET'])
def get_questions():
    """
    Questions list API

    Input (Query Parameters):
    - limit: int (default 10, max 50)
    - tags: comma-separated tag names, any of them matches
    - sort: string (newest, oldest, score, views, answers)
    """
    try:
        limit = int(request.args.get('limit', current_app.config['QUESTIONS_PAGE_LIMIT']))
    except ValueError:
        raise BadRequest('limit must be an integer')
    limit = max(1, min(limit, current_app.config['QUESTIONS_PAGE_MAX']))

    sort_by = request.args.get('sort', 'newest')
    if sort_by not in SORT_OPTIONS:
        sort_by = 'newest'

    tags_filter = request.args.get('tags', '')
    tag_names = [tag.strip().lower() for tag in tags_filter.split(',') if tag.strip()]

    with get_store().session() as repo:
        questions = repo.list_questions(tags=tag_names, sort=sort_by, limit=limit)
        tags_by_question = repo.get_question_tags([q['id'] for q in questions])

    return jsonify({
        'success': True,
        'questions': [
            serialize_question(q, tags_by_question.get(q['id'], []), summary=True)
            for q in questions
        ],
        'filters': {
            'tags': tag_names,
            'sort': sort_by,
            'limit': limit
        }
    }), 200


@bp.route('/questions/<int:question_id>', methods=['GET'])
@token_optional
def get_question_details(question_id):
    """
    Question Details API

    Logic:
    1. Fetch question with full details
    2. Increment view count
    3. Get all answers sorted by acceptance, score and age
    4. Get question tags and comments
    5. Get user vote status (if authenticated)
    """
    user_vote = None
    with get_store().session() as repo:
        question = repo.get_question(question_id)
        if not question:
            raise NotFound('Question not found')

        repo.increment_views(question_id)
        tags = repo.get_question_tags([question_id]).get(question_id, [])
        answers = repo.list_answers(question_id)
        comments = repo.list_comments(question_id=question_id)

        if g.current_user:
            user_id = g.current_user['id']
            user_vote = {
                'question': repo.get_vote(user_id, 'question', question_id),
                'answers': repo.get_user_votes(user_id, 'answer', [a['id'] for a in answers])
            }

    question_data = serialize_question(question, tags)
    question_data['views'] += 1  # Include the increment

    answers_data = [
        serialize_answer(answer, user_vote['answers'].get(answer['id']) if user_vote else None)
        for answer in answers
    ]

    return jsonify({
        'success': True,
        'question': question_data,
        'answers': answers_data,
        'comments': [serialize_comment(c) for c in comments],
        'user_vote': user_vote,
        'answer_count': len(answers_data)
    }), 200


@bp.route('/questions/<int:question_id>', methods=['PUT'])
@token_required
def update_question(question_id):
    data = get_json_body()
    title = get_text(data, 'title')
    description = get_text(data, 'description')
    tags = normalize_tags(data.get('tags')) if 'tags' in data else None
    validate_question(title, description, tags)

    with get_store().session() as repo:
        _load_owned_question(repo, question_id)
        repo.update_question(question_id, title, sanitize_content(description))
        if tags is not None:
            tag_rows = repo.get_or_create_tags(tags, g.current_user['id'])
            repo.set_question_tags(question_id, [tag['id'] for tag in tag_rows])
        question = repo.get_question(question_id, include_closed=True)
        tag_rows = repo.get_question_tags([question_id]).get(question_id, [])

    current_app.logger.info('User %s updated question %s', g.current_user['id'], question_id)
    return jsonify({
        'success': True,
        'message': 'Question updated successfully',
        'question': serialize_question(question, tag_rows)
    }), 200


@bp.route('/questions/<int:question_id>', methods=['DELETE'])
@token_required
def delete_question(question_id):
    with get_store().session() as repo:
        question = _load_owned_question(repo, question_id)
        remove_question(repo, question)

    current_app.logger.info('User %s deleted question %s', g.current_user['id'], question_id)
    return jsonify({'success': True, 'message': 'Question removed'}), 200


@bp.route('/questions/<int:question_id>/vote', methods=['POST'])
@token_required
def vote_question(question_id):
    """Vote on a question (upvote/downvote)"""
    data = get_json_body()

    with get_store().session() as repo:
        question = repo.get_question(question_id, include_closed=True)
        if not question:
            raise NotFound('Question not found')
        result = cast_vote(repo, g.current_user, 'question', question, data.get('vote_type'))

    return jsonify({'success': True, **result}), 200
