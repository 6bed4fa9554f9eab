from flask import Blueprint, current_app, g, jsonify

from ..auth import token_required
from ..content import sanitize_content
from ..db import get_store
from ..errors import BadRequest, Forbidden, NotFound
from ..forum import post_comment
from ..realtime import push_notifications
from ..serializers import serialize_comment
from . import get_json_body, get_text

bp = Blueprint('comments', __name__)

MAX_COMMENT_LENGTH = 600


def _create_comment(question_id=None, answer_id=None):
    data = get_json_body()
    content = get_text(data, 'content')
    if not content:
        raise BadRequest('Comment content is required')
    if len(content) > MAX_COMMENT_LENGTH:
        raise BadRequest(f'Comment must be at most {MAX_COMMENT_LENGTH} characters')

    with get_store().session() as repo:
        comment, notifications = post_comment(repo, g.current_user, sanitize_content(content),
                                              question_id=question_id, answer_id=answer_id)

    push_notifications(notifications)
    current_app.logger.info('User %s posted comment %s', g.current_user['id'], comment['id'])
    return jsonify({'success': True, 'comment': serialize_comment(comment)}), 201


@bp.route('/questions/<int:question_id>/comments', methods=['POST'])
@token_required
def comment_on_question(question_id):
    return _create_comment(question_id=question_id)


@bp.route('/answers/<int:answer_id>/comments', methods=['POST'])
@token_required
def comment_on_answer(answer_id):
    return _create_comment(answer_id=answer_id)


@bp.route('/questions/<int:question_id>/comments', methods=['GET'])
def get_question_comments(question_id):
    with get_store().session() as repo:
        if not repo.get_question(question_id, include_closed=True):
            raise NotFound('Question not found')
        comments = repo.list_comments(question_id=question_id)
    return jsonify({'success': True, 'comments': [serialize_comment(c) for c in comments]}), 200


@bp.route('/answers/<int:answer_id>/comments', methods=['GET'])
def get_answer_comments(answer_id):
    with get_store().session() as repo:
        if not repo.get_answer(answer_id):
            raise NotFound('Answer not found')
        comments = repo.list_comments(answer_id=answer_id)
    return jsonify({'success': True, 'comments': [serialize_comment(c) for c in comments]}), 200


@bp.route('/comments/<int:comment_id>', methods=['DELETE'])
@token_required
def delete_comment(comment_id):
    with get_store().session() as repo:
        comment = repo.get_comment(comment_id)
        if not comment:
            raise NotFound('Comment not found')
        if comment['author_id'] != g.current_user['id']:
            raise Forbidden()
        repo.delete_comment(comment_id)

    current_app.logger.info('User %s deleted comment %s', g.current_user['id'], comment_id)
    return jsonify({'success': True, 'message': 'Comment removed'}), 200
