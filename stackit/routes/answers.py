from flask import Blueprint, current_app, g, jsonify

from ..auth import token_required
from ..content import sanitize_content
from ..db import get_store
from ..errors import BadRequest, NotFound
from ..forum import (ANSWER_VOTE_REPUTATION, cast_vote, post_answer,
                     remove_answer, toggle_acceptance)
from ..realtime import push_notifications
from ..serializers import serialize_answer
from . import get_json_body, get_text

bp = Blueprint('answers', __name__)


@bp.route('/questions/<int:question_id>/answers', methods=['POST'])
@token_required
def create_answer(question_id):
    """
    Post an answer to a question

    The question's answer count goes up and its author is notified,
    along with anyone @mentioned in the answer.
    """
    data = get_json_body()
    content = get_text(data, 'content')

    if not content or len(content) < 10:
        raise BadRequest('Answer content must be at least 10 characters')

    with get_store().session() as repo:
        answer, notifications = post_answer(repo, g.current_user, question_id, sanitize_content(content))

    push_notifications(notifications)
    current_app.logger.info('User %s answered question %s with answer %s',
                            g.current_user['id'], question_id, answer['id'])
    return jsonify({
        'success': True,
        'message': 'Answer posted successfully',
        'answer': serialize_answer(answer)
    }), 201


@bp.route('/questions/<int:question_id>/answers', methods=['GET'])
def get_answers(question_id):
    with get_store().session() as repo:
        if not repo.get_question(question_id):
            raise NotFound('Question not found')
        answers = repo.list_answers(question_id)

    return jsonify({
        'success': True,
        'answers': [serialize_answer(a) for a in answers]
    }), 200


@bp.route('/answers/<int:answer_id>', methods=['DELETE'])
@token_required
def delete_answer(answer_id):
    with get_store().session() as repo:
        remove_answer(repo, g.current_user, answer_id)

    current_app.logger.info('User %s deleted answer %s', g.current_user['id'], answer_id)
    return jsonify({'success': True, 'message': 'Answer removed'}), 200


@bp.route('/answers/<int:answer_id>/accept', methods=['PUT'])
@token_required
def accept_answer(answer_id):
    """Mark an answer as accepted, or un-accept it (question owner only)"""
    with get_store().session() as repo:
        answer = toggle_acceptance(repo, g.current_user, answer_id)

    current_app.logger.info('User %s set answer %s accepted=%s',
                            g.current_user['id'], answer_id, answer['is_accepted'])
    return jsonify({'success': True, 'answer': serialize_answer(answer)}), 200


@bp.route('/answers/<int:answer_id>/vote', methods=['POST'])
@token_required
def vote_answer(answer_id):
    """Vote on an answer (upvote/downvote); moves the author's reputation"""
    data = get_json_body()

    with get_store().session() as repo:
        answer = repo.get_answer(answer_id)
        if not answer:
            raise NotFound('Answer not found')
        result = cast_vote(repo, g.current_user, 'answer', answer, data.get('vote_type'),
                           reputation=ANSWER_VOTE_REPUTATION)

    return jsonify({'success': True, **result}), 200
