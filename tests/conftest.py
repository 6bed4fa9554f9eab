import copy
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from stackit import create_app

SECRET_KEY = 'test-secret-key-that-is-long-enough-for-hs256'

VOTABLE_TABLES = {'question': 'questions', 'answer': 'answers'}


class InMemoryStore:
    """Dict-backed stand-in for ``PostgresStore``.

    A session works on the live tables and restores a snapshot when the
    ``with`` block raises, so rollbacks behave like the real store.
    """

    def __init__(self):
        self.tables = {
            'users': {}, 'tags': {}, 'questions': {}, 'answers': {},
            'comments': {}, 'notifications': {},
        }
        self.question_tags = set()
        self.votes = {}
        self.next_ids = {}
        self.clock = datetime(2024, 1, 1, 12, 0, 0)
        self.schema_sql = None

    def now(self):
        self.clock += timedelta(seconds=1)
        return self.clock

    def next_id(self, table):
        self.next_ids[table] = self.next_ids.get(table, 0) + 1
        return self.next_ids[table]

    @contextmanager
    def session(self):
        snapshot = copy.deepcopy((self.tables, self.question_tags, self.votes))
        try:
            yield InMemoryRepository(self)
        except Exception:
            self.tables, self.question_tags, self.votes = snapshot
            raise

    def init_schema(self, schema_sql):
        self.schema_sql = schema_sql


class InMemoryRepository:
    def __init__(self, store):
        self.store = store

    @property
    def t(self):
        return self.store.tables

    def _insert(self, table, **fields):
        row_id = self.store.next_id(table)
        fields['id'] = row_id
        self.t[table][row_id] = fields
        return row_id

    def _with_author(self, row):
        author = self.t['users'][row['author_id']]
        row = dict(row)
        row['author_username'] = author['username']
        row['author_reputation'] = author['reputation']
        row['author_profile_picture'] = author['profile_picture']
        return row

    # Users

    def get_user(self, user_id):
        user = self.t['users'].get(user_id)
        return dict(user) if user and user['is_active'] else None

    def find_user(self, username, email):
        for user in self.t['users'].values():
            if user['username'].lower() == username.lower() or user['email'] == email:
                return {'id': user['id']}
        return None

    def create_user(self, username, email, password_hash):
        user_id = self._insert(
            'users', username=username, email=email, password_hash=password_hash,
            role='user', reputation=0, bio=None, profile_picture=None, is_active=True,
            created_at=self.store.now(), last_login=None)
        return dict(self.t['users'][user_id])

    def get_users_by_usernames(self, usernames):
        wanted = {name.lower() for name in usernames}
        return [{'id': u['id'], 'username': u['username']} for u in self.t['users'].values()
                if u['username'].lower() in wanted and u['is_active']]

    def adjust_reputation(self, user_id, delta):
        self.t['users'][user_id]['reputation'] += delta

    def count_user_content(self, user_id):
        return {
            'questions': sum(1 for q in self.t['questions'].values() if q['author_id'] == user_id),
            'answers': sum(1 for a in self.t['answers'].values() if a['author_id'] == user_id),
        }

    # Tags

    def get_or_create_tags(self, names, created_by):
        tags = []
        for name in names:
            tag = next((t for t in self.t['tags'].values() if t['name'] == name), None)
            if not tag:
                tag_id = self._insert('tags', name=name, color='#3b82f6', description=None,
                                      usage_count=0, created_by=created_by, created_at=self.store.now())
                tag = self.t['tags'][tag_id]
            tags.append(dict(tag))
        return tags

    def set_question_tags(self, question_id, tag_ids):
        for link in [link for link in self.store.question_tags if link[0] == question_id]:
            self.store.question_tags.discard(link)
            tag = self.t['tags'][link[1]]
            tag['usage_count'] = max(tag['usage_count'] - 1, 0)
        for tag_id in tag_ids:
            self.store.question_tags.add((question_id, tag_id))
            self.t['tags'][tag_id]['usage_count'] += 1

    def get_question_tags(self, question_ids):
        tags_by_question = {}
        for question_id, tag_id in sorted(self.store.question_tags):
            if question_id in question_ids:
                tag = dict(self.t['tags'][tag_id], question_id=question_id)
                tags_by_question.setdefault(question_id, []).append(tag)
        for tags in tags_by_question.values():
            tags.sort(key=lambda tag: tag['name'])
        return tags_by_question

    def list_tags(self, limit=100):
        tags = sorted(self.t['tags'].values(), key=lambda t: (-t['usage_count'], t['name']))
        return [dict(t) for t in tags[:limit]]

    # Questions

    def create_question(self, title, description, author_id):
        now = self.store.now()
        question_id = self._insert(
            'questions', title=title, description=description, author_id=author_id,
            views=0, upvotes=0, downvotes=0, score=0, answer_count=0,
            accepted_answer_id=None, is_closed=False,
            created_at=now, updated_at=now, last_activity=now)
        return self.get_question(question_id)

    def get_question(self, question_id, include_closed=False):
        question = self.t['questions'].get(question_id)
        if not question or (question['is_closed'] and not include_closed):
            return None
        return self._with_author(question)

    def list_questions(self, tags=None, sort='newest', limit=10):
        questions = [q for q in self.t['questions'].values() if not q['is_closed']]
        if tags:
            tag_ids = {t['id'] for t in self.t['tags'].values() if t['name'] in tags}
            tagged = {qid for qid, tid in self.store.question_tags if tid in tag_ids}
            questions = [q for q in questions if q['id'] in tagged]
        if sort == 'oldest':
            questions.sort(key=lambda q: (q['created_at'], q['id']))
        else:
            field = {'score': 'score', 'views': 'views', 'answers': 'answer_count'}.get(sort)
            if field:
                questions.sort(key=lambda q: (q[field], q['created_at'], q['id']), reverse=True)
            else:
                questions.sort(key=lambda q: (q['created_at'], q['id']), reverse=True)
        return [self._with_author(q) for q in questions[:limit]]

    def list_user_questions(self, user_id):
        questions = [q for q in self.t['questions'].values() if q['author_id'] == user_id]
        questions.sort(key=lambda q: (q['created_at'], q['id']), reverse=True)
        return [self._with_author(q) for q in questions]

    def update_question(self, question_id, title, description):
        now = self.store.now()
        self.t['questions'][question_id].update(
            title=title, description=description, updated_at=now, last_activity=now)

    def delete_question(self, question_id):
        self.set_question_tags(question_id, [])
        answer_ids = {a['id'] for a in self.t['answers'].values() if a['question_id'] == question_id}
        for key in list(self.store.votes):
            if key[1:] == ('question', question_id) or (key[1] == 'answer' and key[2] in answer_ids):
                del self.store.votes[key]
        for comment_id, comment in list(self.t['comments'].items()):
            if comment['question_id'] == question_id or comment['answer_id'] in answer_ids:
                del self.t['comments'][comment_id]
        for answer_id in answer_ids:
            del self.t['answers'][answer_id]
        del self.t['questions'][question_id]

    def increment_views(self, question_id):
        self.t['questions'][question_id]['views'] += 1

    def adjust_answer_count(self, question_id, delta):
        question = self.t['questions'][question_id]
        question['answer_count'] = max(question['answer_count'] + delta, 0)
        question['last_activity'] = self.store.now()

    def set_accepted_answer(self, question_id, answer_id):
        self.t['questions'][question_id]['accepted_answer_id'] = answer_id

    # Answers

    def create_answer(self, question_id, content, author_id):
        now = self.store.now()
        answer_id = self._insert(
            'answers', question_id=question_id, content=content, author_id=author_id,
            upvotes=0, downvotes=0, score=0, is_accepted=False, accepted_at=None,
            created_at=now, updated_at=now)
        return self.get_answer(answer_id)

    def get_answer(self, answer_id):
        answer = self.t['answers'].get(answer_id)
        return self._with_author(answer) if answer else None

    def list_answers(self, question_id):
        answers = [a for a in self.t['answers'].values() if a['question_id'] == question_id]
        answers.sort(key=lambda a: (not a['is_accepted'], -a['score'], a['created_at'], a['id']))
        return [self._with_author(a) for a in answers]

    def list_user_answers(self, user_id):
        answers = [a for a in self.t['answers'].values() if a['author_id'] == user_id]
        answers.sort(key=lambda a: (a['created_at'], a['id']), reverse=True)
        rows = []
        for answer in answers:
            row = self._with_author(answer)
            row['question_title'] = self.t['questions'][answer['question_id']]['title']
            rows.append(row)
        return rows

    def get_accepted_answers(self, question_id):
        return [self._with_author(a) for a in self.t['answers'].values()
                if a['question_id'] == question_id and a['is_accepted']]

    def set_answer_accepted(self, answer_id, accepted):
        self.t['answers'][answer_id].update(
            is_accepted=accepted, accepted_at=self.store.now() if accepted else None)

    def delete_answer(self, answer_id):
        for key in [k for k in self.store.votes if k[1:] == ('answer', answer_id)]:
            del self.store.votes[key]
        for comment_id in [c['id'] for c in self.t['comments'].values() if c['answer_id'] == answer_id]:
            del self.t['comments'][comment_id]
        del self.t['answers'][answer_id]

    # Votes

    def get_vote(self, user_id, votable_type, votable_id):
        return self.store.votes.get((user_id, votable_type, votable_id))

    def save_vote(self, user_id, votable_type, votable_id, vote_type):
        self.store.votes[(user_id, votable_type, votable_id)] = vote_type

    def delete_vote(self, user_id, votable_type, votable_id):
        self.store.votes.pop((user_id, votable_type, votable_id), None)

    def adjust_vote_counts(self, votable_type, votable_id, up_delta, down_delta):
        row = self.t[VOTABLE_TABLES[votable_type]][votable_id]
        row['upvotes'] += up_delta
        row['downvotes'] += down_delta
        row['score'] += up_delta - down_delta
        return {'upvotes': row['upvotes'], 'downvotes': row['downvotes'], 'score': row['score']}

    def get_user_votes(self, user_id, votable_type, votable_ids):
        return {key[2]: vote_type for key, vote_type in self.store.votes.items()
                if key[0] == user_id and key[1] == votable_type and key[2] in votable_ids}

    # Comments

    def create_comment(self, content, author_id, question_id=None, answer_id=None):
        comment_id = self._insert('comments', content=content, author_id=author_id,
                                  question_id=question_id, answer_id=answer_id,
                                  created_at=self.store.now())
        return self.get_comment(comment_id)

    def get_comment(self, comment_id):
        comment = self.t['comments'].get(comment_id)
        if not comment:
            return None
        return dict(comment, author_username=self.t['users'][comment['author_id']]['username'])

    def list_comments(self, question_id=None, answer_id=None):
        if question_id is not None:
            comments = [c for c in self.t['comments'].values() if c['question_id'] == question_id]
        else:
            comments = [c for c in self.t['comments'].values() if c['answer_id'] == answer_id]
        comments.sort(key=lambda c: (c['created_at'], c['id']))
        return [self.get_comment(c['id']) for c in comments]

    def delete_comment(self, comment_id):
        del self.t['comments'][comment_id]

    # Notifications

    def create_notification(self, recipient_id, type, message, related_entity_id):
        notification_id = self._insert(
            'notifications', recipient_id=recipient_id, type=type, message=message,
            is_read=False, related_entity_id=related_entity_id, created_at=self.store.now())
        return dict(self.t['notifications'][notification_id])

    def get_notification(self, notification_id):
        notification = self.t['notifications'].get(notification_id)
        return dict(notification) if notification else None

    def list_notifications(self, recipient_id):
        notifications = [n for n in self.t['notifications'].values() if n['recipient_id'] == recipient_id]
        notifications.sort(key=lambda n: (n['created_at'], n['id']), reverse=True)
        return [dict(n) for n in notifications]

    def count_unread(self, recipient_id):
        return sum(1 for n in self.t['notifications'].values()
                   if n['recipient_id'] == recipient_id and not n['is_read'])

    def mark_notification_read(self, notification_id):
        self.t['notifications'][notification_id]['is_read'] = True
        return dict(self.t['notifications'][notification_id])

    def mark_all_read(self, recipient_id):
        updated = 0
        for notification in self.t['notifications'].values():
            if notification['recipient_id'] == recipient_id and not notification['is_read']:
                notification['is_read'] = True
                updated += 1
        return updated


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def app(store):
    app = create_app(config={
        'TESTING': True,
        'SECRET_KEY': SECRET_KEY,
        'CLOUDINARY_URL': None,
        'LOG_LEVEL': 'WARNING',
    }, store=store)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(store):
    def _make_user(username, email=None):
        with store.session() as repo:
            return repo.create_user(username, email or f'{username}@example.com', 'not-a-real-hash')
    return _make_user


def make_token(user_id, expires_in=timedelta(hours=1), secret=SECRET_KEY):
    return jwt.encode({
        'user_id': user_id,
        'exp': datetime.now(timezone.utc) + expires_in
    }, secret, algorithm='HS256')


@pytest.fixture
def token_for():
    def _token_for(user, **kwargs):
        return make_token(user['id'], **kwargs)
    return _token_for


@pytest.fixture
def auth_header():
    def _auth_header(user):
        return {'Authorization': f"Bearer {make_token(user['id'])}"}
    return _auth_header


@pytest.fixture
def ask(client, auth_header):
    """Post a question as ``user`` and return its JSON."""
    def _ask(user, title='How do I reverse a list?', description='I have a list and need it backwards.',
             tags=('python',)):
        response = client.post('/api/questions', json={
            'title': title,
            'description': description,
            'tags': list(tags),
        }, headers=auth_header(user))
        assert response.status_code == 201, response.get_json()
        return response.get_json()['question']
    return _ask


@pytest.fixture
def answer(client, auth_header):
    def _answer(user, question_id, content='Use reversed() or slice with [::-1].'):
        response = client.post(f'/api/questions/{question_id}/answers',
                               json={'content': content}, headers=auth_header(user))
        assert response.status_code == 201, response.get_json()
        return response.get_json()['answer']
    return _answer
