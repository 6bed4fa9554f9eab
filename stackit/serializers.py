"""Row -> JSON shapes shared by the route modules."""


def _iso(value):
    return value.isoformat() if value else None


def serialize_user(user, include_email=False):
    data = {
        'id': user['id'],
        'username': user['username'],
        'role': user['role'],
        'reputation': user['reputation'],
        'profile_picture': user.get('profile_picture'),
        'bio': user.get('bio'),
        'created_at': _iso(user['created_at']),
    }
    if include_email:
        data['email'] = user['email']
    return data


def serialize_author(row):
    return {
        'id': row['author_id'],
        'username': row['author_username'],
        'reputation': row.get('author_reputation'),
        'profile_picture': row.get('author_profile_picture'),
    }


def serialize_tag(tag):
    return {'id': tag['id'], 'name': tag['name'], 'color': tag['color']}


def serialize_question(question, tags=(), summary=False):
    description = question['description']
    if summary and len(description) > 200:
        description = description[:200] + '...'
    return {
        'id': question['id'],
        'title': question['title'],
        'description': description,
        'author': serialize_author(question),
        'views': question['views'],
        'upvotes': question['upvotes'],
        'downvotes': question['downvotes'],
        'score': question['score'],
        'answer_count': question['answer_count'],
        'accepted_answer_id': question['accepted_answer_id'],
        'has_accepted_answer': question['accepted_answer_id'] is not None,
        'tags': [serialize_tag(tag) for tag in tags],
        'created_at': _iso(question['created_at']),
        'updated_at': _iso(question['updated_at']),
        'last_activity': _iso(question['last_activity']),
    }


def serialize_answer(answer, user_vote=None):
    data = {
        'id': answer['id'],
        'question_id': answer['question_id'],
        'content': answer['content'],
        'author': serialize_author(answer),
        'upvotes': answer['upvotes'],
        'downvotes': answer['downvotes'],
        'score': answer['score'],
        'is_accepted': answer['is_accepted'],
        'accepted_at': _iso(answer['accepted_at']),
        'created_at': _iso(answer['created_at']),
        'updated_at': _iso(answer['updated_at']),
        'user_vote': user_vote,
    }
    if 'question_title' in answer:
        data['question_title'] = answer['question_title']
    return data


def serialize_comment(comment):
    return {
        'id': comment['id'],
        'content': comment['content'],
        'author': {'id': comment['author_id'], 'username': comment['author_username']},
        'question_id': comment['question_id'],
        'answer_id': comment['answer_id'],
        'created_at': _iso(comment['created_at']),
    }


def serialize_notification(notification):
    return {
        'id': notification['id'],
        'recipient_id': notification['recipient_id'],
        'type': notification['type'],
        'message': notification['message'],
        'is_read': notification['is_read'],
        'related_entity_id': notification['related_entity_id'],
        'created_at': _iso(notification['created_at']),
    }
