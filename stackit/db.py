"""PostgreSQL persistence.

``PostgresStore.session()`` opens one connection per unit of work and
yields a :class:`Repository` bound to its cursor. Everything done through
the repository commits together when the ``with`` block exits cleanly and
is rolled back otherwise.
"""
from contextlib import contextmanager
from datetime import datetime, timezone

import psycopg2
from psycopg2.extras import RealDictCursor
from flask import current_app


def utcnow():
    """Naive UTC timestamp, matching the ``TIMESTAMP`` columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_store():
    return current_app.extensions['stackit.store']


QUESTION_SELECT = """
    SELECT q.*, u.username AS author_username, u.reputation AS author_reputation,
           u.profile_picture AS author_profile_picture
    FROM questions q
    JOIN users u ON q.author_id = u.id
"""

ANSWER_SELECT = """
    SELECT a.*, u.username AS author_username, u.reputation AS author_reputation,
           u.profile_picture AS author_profile_picture
    FROM answers a
    JOIN users u ON a.author_id = u.id
"""

COMMENT_SELECT = """
    SELECT c.*, u.username AS author_username
    FROM comments c
    JOIN users u ON c.author_id = u.id
"""

QUESTION_ORDER = {
    'newest': 'q.created_at DESC, q.id DESC',
    'oldest': 'q.created_at ASC, q.id ASC',
    'score': 'q.score DESC, q.created_at DESC, q.id DESC',
    'views': 'q.views DESC, q.created_at DESC, q.id DESC',
    'answers': 'q.answer_count DESC, q.created_at DESC, q.id DESC',
}

VOTABLE_TABLES = {'question': 'questions', 'answer': 'answers'}


class PostgresStore:
    def __init__(self, database_url):
        self.database_url = database_url

    def get_db_connection(self):
        return psycopg2.connect(self.database_url, cursor_factory=RealDictCursor)

    @contextmanager
    def session(self):
        conn = self.get_db_connection()
        try:
            with conn.cursor() as cursor:
                yield Repository(cursor)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self, schema_sql):
        with self.session() as repo:
            repo.cursor.execute(schema_sql)


class Repository:
    """SQL for every record type, over a single cursor."""

    def __init__(self, cursor):
        self.cursor = cursor

    def _one(self, query, params=()):
        self.cursor.execute(query, params)
        return self.cursor.fetchone()

    def _all(self, query, params=()):
        self.cursor.execute(query, params)
        return self.cursor.fetchall()

    # Users

    def get_user(self, user_id):
        return self._one("SELECT * FROM users WHERE id = %s AND is_active = true", (user_id,))

    def find_user(self, username, email):
        return self._one("SELECT id FROM users WHERE LOWER(username) = LOWER(%s) OR email = %s", (username, email))

    def create_user(self, username, email, password_hash):
        return self._one("""
            INSERT INTO users (username, email, password_hash, role, created_at)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING *
        """, (username, email, password_hash, 'user', utcnow()))

    def get_users_by_usernames(self, usernames):
        if not usernames:
            return []
        return self._all("""
            SELECT id, username FROM users
            WHERE LOWER(username) = ANY(%s) AND is_active = true
        """, ([name.lower() for name in usernames],))

    def adjust_reputation(self, user_id, delta):
        self.cursor.execute(
            "UPDATE users SET reputation = reputation + %s WHERE id = %s", (delta, user_id))

    def count_user_content(self, user_id):
        return self._one("""
            SELECT
                (SELECT COUNT(*) FROM questions WHERE author_id = %s) AS questions,
                (SELECT COUNT(*) FROM answers WHERE author_id = %s) AS answers
        """, (user_id, user_id))

    # Tags

    def get_or_create_tags(self, names, created_by):
        tags = []
        for name in names:
            tag = self._one("SELECT * FROM tags WHERE name = %s", (name,))
            if not tag:
                tag = self._one("""
                    INSERT INTO tags (name, created_at, created_by)
                    VALUES (%s, %s, %s)
                    RETURNING *
                """, (name, utcnow(), created_by))
            tags.append(tag)
        return tags

    def set_question_tags(self, question_id, tag_ids):
        self.cursor.execute("""
            UPDATE tags SET usage_count = GREATEST(usage_count - 1, 0)
            WHERE id IN (SELECT tag_id FROM question_tags WHERE question_id = %s)
        """, (question_id,))
        self.cursor.execute("DELETE FROM question_tags WHERE question_id = %s", (question_id,))
        for tag_id in tag_ids:
            self.cursor.execute(
                "INSERT INTO question_tags (question_id, tag_id) VALUES (%s, %s)", (question_id, tag_id))
            self.cursor.execute("UPDATE tags SET usage_count = usage_count + 1 WHERE id = %s", (tag_id,))

    def get_question_tags(self, question_ids):
        tags_by_question = {}
        if not question_ids:
            return tags_by_question
        rows = self._all("""
            SELECT qt.question_id, t.id, t.name, t.color
            FROM question_tags qt
            JOIN tags t ON qt.tag_id = t.id
            WHERE qt.question_id = ANY(%s)
            ORDER BY t.name ASC
        """, (list(question_ids),))
        for row in rows:
            tags_by_question.setdefault(row['question_id'], []).append(row)
        return tags_by_question

    def list_tags(self, limit=100):
        return self._all("""
            SELECT id, name, color, usage_count, description
            FROM tags
            ORDER BY usage_count DESC, name ASC
            LIMIT %s
        """, (limit,))

    # Questions

    def create_question(self, title, description, author_id):
        now = utcnow()
        row = self._one("""
            INSERT INTO questions (title, description, author_id, created_at, updated_at, last_activity)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id
        """, (title, description, author_id, now, now, now))
        return self.get_question(row['id'])

    def get_question(self, question_id, include_closed=False):
        query = QUESTION_SELECT + " WHERE q.id = %s"
        if not include_closed:
            query += " AND q.is_closed = false"
        return self._one(query, (question_id,))

    def list_questions(self, tags=None, sort='newest', limit=10):
        query = QUESTION_SELECT + " WHERE q.is_closed = false"
        params = []
        if tags:
            query += """
                AND EXISTS (
                    SELECT 1 FROM question_tags qt
                    JOIN tags t ON qt.tag_id = t.id
                    WHERE qt.question_id = q.id AND t.name = ANY(%s)
                )
            """
            params.append(list(tags))
        query += " ORDER BY " + QUESTION_ORDER.get(sort, QUESTION_ORDER['newest']) + " LIMIT %s"
        params.append(limit)
        return self._all(query, params)

    def list_user_questions(self, user_id):
        return self._all(QUESTION_SELECT + " WHERE q.author_id = %s ORDER BY q.created_at DESC, q.id DESC",
                         (user_id,))

    def update_question(self, question_id, title, description):
        now = utcnow()
        self.cursor.execute("""
            UPDATE questions SET title = %s, description = %s, updated_at = %s, last_activity = %s
            WHERE id = %s
        """, (title, description, now, now, question_id))

    def delete_question(self, question_id):
        self.set_question_tags(question_id, [])
        self.cursor.execute("""
            DELETE FROM votes
            WHERE (votable_type = 'question' AND votable_id = %s)
               OR (votable_type = 'answer' AND votable_id IN (SELECT id FROM answers WHERE question_id = %s))
        """, (question_id, question_id))
        # answers, comments and tag links cascade
        self.cursor.execute("DELETE FROM questions WHERE id = %s", (question_id,))

    def increment_views(self, question_id):
        self.cursor.execute("UPDATE questions SET views = views + 1 WHERE id = %s", (question_id,))

    def adjust_answer_count(self, question_id, delta):
        self.cursor.execute("""
            UPDATE questions SET answer_count = GREATEST(answer_count + %s, 0), last_activity = %s
            WHERE id = %s
        """, (delta, utcnow(), question_id))

    def set_accepted_answer(self, question_id, answer_id):
        self.cursor.execute(
            "UPDATE questions SET accepted_answer_id = %s WHERE id = %s", (answer_id, question_id))

    # Answers

    def create_answer(self, question_id, content, author_id):
        now = utcnow()
        row = self._one("""
            INSERT INTO answers (question_id, content, author_id, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id
        """, (question_id, content, author_id, now, now))
        return self.get_answer(row['id'])

    def get_answer(self, answer_id):
        return self._one(ANSWER_SELECT + " WHERE a.id = %s", (answer_id,))

    def list_answers(self, question_id):
        return self._all(ANSWER_SELECT + """
            WHERE a.question_id = %s
            ORDER BY a.is_accepted DESC, a.score DESC, a.created_at ASC, a.id ASC
        """, (question_id,))

    def list_user_answers(self, user_id):
        return self._all("""
            SELECT a.*, u.username AS author_username, u.reputation AS author_reputation,
                   u.profile_picture AS author_profile_picture, q.title AS question_title
            FROM answers a
            JOIN users u ON a.author_id = u.id
            JOIN questions q ON a.question_id = q.id
            WHERE a.author_id = %s
            ORDER BY a.created_at DESC, a.id DESC
        """, (user_id,))

    def get_accepted_answers(self, question_id):
        return self._all(ANSWER_SELECT + " WHERE a.question_id = %s AND a.is_accepted = true",
                         (question_id,))

    def set_answer_accepted(self, answer_id, accepted):
        self.cursor.execute("""
            UPDATE answers SET is_accepted = %s, accepted_at = %s WHERE id = %s
        """, (accepted, utcnow() if accepted else None, answer_id))

    def delete_answer(self, answer_id):
        self.cursor.execute(
            "DELETE FROM votes WHERE votable_type = 'answer' AND votable_id = %s", (answer_id,))
        self.cursor.execute("DELETE FROM answers WHERE id = %s", (answer_id,))

    # Votes

    def get_vote(self, user_id, votable_type, votable_id):
        row = self._one("""
            SELECT vote_type FROM votes
            WHERE user_id = %s AND votable_type = %s AND votable_id = %s
        """, (user_id, votable_type, votable_id))
        return row['vote_type'] if row else None

    def save_vote(self, user_id, votable_type, votable_id, vote_type):
        now = utcnow()
        self.cursor.execute("""
            INSERT INTO votes (user_id, votable_type, votable_id, vote_type, created_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (user_id, votable_type, votable_id)
            DO UPDATE SET vote_type = EXCLUDED.vote_type, updated_at = %s
        """, (user_id, votable_type, votable_id, vote_type, now, now))

    def delete_vote(self, user_id, votable_type, votable_id):
        self.cursor.execute("""
            DELETE FROM votes
            WHERE user_id = %s AND votable_type = %s AND votable_id = %s
        """, (user_id, votable_type, votable_id))

    def adjust_vote_counts(self, votable_type, votable_id, up_delta, down_delta):
        table = VOTABLE_TABLES[votable_type]
        return self._one(f"""
            UPDATE {table}
            SET upvotes = upvotes + %s, downvotes = downvotes + %s, score = score + %s
            WHERE id = %s
            RETURNING upvotes, downvotes, score
        """, (up_delta, down_delta, up_delta - down_delta, votable_id))

    def get_user_votes(self, user_id, votable_type, votable_ids):
        if not votable_ids:
            return {}
        rows = self._all("""
            SELECT votable_id, vote_type FROM votes
            WHERE user_id = %s AND votable_type = %s AND votable_id = ANY(%s)
        """, (user_id, votable_type, list(votable_ids)))
        return {row['votable_id']: row['vote_type'] for row in rows}

    # Comments

    def create_comment(self, content, author_id, question_id=None, answer_id=None):
        row = self._one("""
            INSERT INTO comments (content, author_id, question_id, answer_id, created_at)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id
        """, (content, author_id, question_id, answer_id, utcnow()))
        return self.get_comment(row['id'])

    def get_comment(self, comment_id):
        return self._one(COMMENT_SELECT + " WHERE c.id = %s", (comment_id,))

    def list_comments(self, question_id=None, answer_id=None):
        if question_id is not None:
            return self._all(COMMENT_SELECT + " WHERE c.question_id = %s ORDER BY c.created_at ASC, c.id ASC",
                             (question_id,))
        return self._all(COMMENT_SELECT + " WHERE c.answer_id = %s ORDER BY c.created_at ASC, c.id ASC",
                         (answer_id,))

    def delete_comment(self, comment_id):
        self.cursor.execute("DELETE FROM comments WHERE id = %s", (comment_id,))

    # Notifications

    def create_notification(self, recipient_id, type, message, related_entity_id):
        return self._one("""
            INSERT INTO notifications (recipient_id, type, message, related_entity_id, created_at)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING *
        """, (recipient_id, type, message, related_entity_id, utcnow()))

    def get_notification(self, notification_id):
        return self._one("SELECT * FROM notifications WHERE id = %s", (notification_id,))

    def list_notifications(self, recipient_id):
        return self._all("""
            SELECT * FROM notifications
            WHERE recipient_id = %s
            ORDER BY created_at DESC, id DESC
        """, (recipient_id,))

    def count_unread(self, recipient_id):
        row = self._one("""
            SELECT COUNT(*) AS unread FROM notifications
            WHERE recipient_id = %s AND is_read = false
        """, (recipient_id,))
        return row['unread']

    def mark_notification_read(self, notification_id):
        return self._one("UPDATE notifications SET is_read = true WHERE id = %s RETURNING *",
                         (notification_id,))

    def mark_all_read(self, recipient_id):
        self.cursor.execute("""
            UPDATE notifications SET is_read = true
            WHERE recipient_id = %s AND is_read = false
        """, (recipient_id,))
        return self.cursor.rowcount
