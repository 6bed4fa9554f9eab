"""Write paths that touch more than one record.

Each function runs inside the caller's ``store.session()`` so all of its
updates (counters, reputation, acceptance flags, notifications) commit
together. Functions that create notifications return them; the caller
pushes them over Socket.IO once the session has committed.
"""
from .content import extract_mentions
from .errors import BadRequest, Forbidden, NotFound

VOTE_TYPES = ('upvote', 'downvote')

# Reputation moved to an answer's author
ANSWER_VOTE_REPUTATION = {'upvote': 10, 'downvote': -2}
ACCEPTED_ANSWER_REPUTATION = 15


def _title_excerpt(title):
    return f'"{title[:50]}..."'


def cast_vote(repo, user, votable_type, target, vote_type, reputation=None):
    """Record ``user``'s vote on ``target`` and update its counters.

    Voting the same way twice removes the vote; voting the other way
    switches it. ``reputation`` maps vote types to the reputation change
    of the target's author, or is ``None`` when votes carry none.
    """
    if vote_type not in VOTE_TYPES:
        raise BadRequest('Invalid vote type')
    if target['author_id'] == user['id']:
        raise BadRequest(f'Cannot vote on your own {votable_type}')

    existing_vote = repo.get_vote(user['id'], votable_type, target['id'])
    up_delta = down_delta = 0
    weights = reputation or {}
    reputation_change = 0

    if existing_vote == vote_type:
        repo.delete_vote(user['id'], votable_type, target['id'])
        if vote_type == 'upvote':
            up_delta = -1
        else:
            down_delta = -1
        reputation_change -= weights.get(vote_type, 0)
        vote_result = None
    else:
        repo.save_vote(user['id'], votable_type, target['id'], vote_type)
        if existing_vote:
            # switching direction undoes the old vote as well
            if vote_type == 'upvote':
                up_delta, down_delta = 1, -1
            else:
                up_delta, down_delta = -1, 1
            reputation_change -= weights.get(existing_vote, 0)
        elif vote_type == 'upvote':
            up_delta = 1
        else:
            down_delta = 1
        reputation_change += weights.get(vote_type, 0)
        vote_result = vote_type

    counts = repo.adjust_vote_counts(votable_type, target['id'], up_delta, down_delta)
    if reputation_change:
        repo.adjust_reputation(target['author_id'], reputation_change)

    return {
        'vote': vote_result,
        'upvotes': counts['upvotes'],
        'downvotes': counts['downvotes'],
        'score': counts['score'],
    }


def _notify(repo, created, recipient_id, type, message, related_entity_id):
    notification = repo.create_notification(recipient_id, type, message, related_entity_id)
    created.append(notification)
    return notification


def notify_mentions(repo, actor, text, related_entity_id, skip=()):
    """Notify each existing user mentioned in ``text`` once.

    The actor and anyone in ``skip`` (already notified by the same write)
    are left out.
    """
    created = []
    names = extract_mentions(text)
    if not names:
        return created
    skip_ids = set(skip) | {actor['id']}
    for mentioned in repo.get_users_by_usernames(names):
        if mentioned['id'] in skip_ids:
            continue
        skip_ids.add(mentioned['id'])
        _notify(repo, created, mentioned['id'], 'mention',
                f"{actor['username']} mentioned you.", related_entity_id)
    return created


def post_answer(repo, user, question_id, content):
    question = repo.get_question(question_id)
    if not question:
        raise NotFound('Question not found or closed')

    answer = repo.create_answer(question_id, content, user['id'])
    repo.adjust_answer_count(question_id, 1)

    notifications = []
    if question['author_id'] != user['id']:
        _notify(repo, notifications, question['author_id'], 'answer',
                f"Someone answered your question: {_title_excerpt(question['title'])}",
                question['id'])
    notifications += notify_mentions(repo, user, content, question['id'],
                                     skip=[n['recipient_id'] for n in notifications])
    return answer, notifications


def remove_answer(repo, user, answer_id):
    answer = repo.get_answer(answer_id)
    if not answer:
        raise NotFound('Answer not found')
    if answer['author_id'] != user['id']:
        raise Forbidden()

    if answer['is_accepted']:
        question = repo.get_question(answer['question_id'], include_closed=True)
        if question:
            repo.set_accepted_answer(question['id'], None)
            _move_acceptance_reputation(repo, question, answer, -ACCEPTED_ANSWER_REPUTATION)

    repo.delete_answer(answer_id)
    repo.adjust_answer_count(answer['question_id'], -1)
    return answer


def remove_question(repo, question):
    """Delete ``question`` with its answers, comments and votes.

    The accepted answer's author loses the acceptance reputation, the
    same as when that answer is deleted on its own.
    """
    for accepted in repo.get_accepted_answers(question['id']):
        _move_acceptance_reputation(repo, question, accepted, -ACCEPTED_ANSWER_REPUTATION)
    repo.delete_question(question['id'])


def _move_acceptance_reputation(repo, question, answer, delta):
    # accepting your own answer earns nothing
    if answer['author_id'] != question['author_id']:
        repo.adjust_reputation(answer['author_id'], delta)


def toggle_acceptance(repo, user, answer_id):
    """Accept ``answer_id``, or un-accept it if it already is.

    Only the question's author may do this. A question has at most one
    accepted answer: accepting a new one un-accepts the previous one and
    takes back its author's reputation.
    """
    answer = repo.get_answer(answer_id)
    if not answer:
        raise NotFound('Answer not found')
    question = repo.get_question(answer['question_id'], include_closed=True)
    if not question:
        raise NotFound('Question not found')
    if question['author_id'] != user['id']:
        raise Forbidden('User not authorized to accept this answer')

    if answer['is_accepted']:
        repo.set_answer_accepted(answer['id'], False)
        repo.set_accepted_answer(question['id'], None)
        _move_acceptance_reputation(repo, question, answer, -ACCEPTED_ANSWER_REPUTATION)
    else:
        for previous in repo.get_accepted_answers(question['id']):
            repo.set_answer_accepted(previous['id'], False)
            _move_acceptance_reputation(repo, question, previous, -ACCEPTED_ANSWER_REPUTATION)
        repo.set_answer_accepted(answer['id'], True)
        repo.set_accepted_answer(question['id'], answer['id'])
        _move_acceptance_reputation(repo, question, answer, ACCEPTED_ANSWER_REPUTATION)

    return repo.get_answer(answer['id'])


def post_comment(repo, user, content, question_id=None, answer_id=None):
    notifications = []
    if question_id is not None:
        question = repo.get_question(question_id, include_closed=True)
        if not question:
            raise NotFound('Question not found')
        comment = repo.create_comment(content, user['id'], question_id=question_id)
        owner_id = question['author_id']
        related_entity_id = question['id']
        message = f"Someone commented on your question: {_title_excerpt(question['title'])}"
    else:
        answer = repo.get_answer(answer_id)
        if not answer:
            raise NotFound('Answer not found')
        comment = repo.create_comment(content, user['id'], answer_id=answer_id)
        owner_id = answer['author_id']
        related_entity_id = answer['id']
        message = 'Someone commented on your answer.'

    if owner_id != user['id']:
        _notify(repo, notifications, owner_id, 'comment', message, related_entity_id)
    notifications += notify_mentions(repo, user, content, related_entity_id,
                                     skip=[n['recipient_id'] for n in notifications])
    return comment, notifications
