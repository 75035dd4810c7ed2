"""
PostgreSQL ForumStore

Synchronous psycopg2 implementation of ForumStore.

Provides:
- Durability (state survives restarts)
- Multi-instance support (shared database)
- One transaction per call; replace_roles runs its three statements
  in a single transaction with the user row locked FOR UPDATE

THREAD SAFETY:
Every call opens its own connection from the factory and closes it on
exit. No connection or cursor is stored on the store.

ERRORS:
Driver failures (connection refused, server gone, statement timeout,
missing tables) surface as PersistenceUnavailable. A unique violation on
the Pending-request index surfaces as DuplicateRequest.

Usage:
    store = PostgresForumStore(lambda: psycopg2.connect(config.to_dsn()))
    store.init_schema()
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator, Optional, Sequence
from uuid import UUID, uuid4

import psycopg2
import psycopg2.errors

from ..core.errors import DuplicateRequest, NotFound, PersistenceUnavailable
from ..schemas import (
    Answer,
    Question,
    RequestStatus,
    Review,
    ReviewerProfile,
    ReviewerRequest,
    Role,
    User,
)
from .store import ForumStore, utc_now

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_REQUEST_COLUMNS = (
    "request_id, student_id, status, requested_at, processed_at, processed_by"
)
_REVIEW_COLUMNS = (
    "review_id, answer_id, reviewer_id, content, parent_review_id, created_at"
)
_ANSWER_COLUMNS = (
    "answer_id, question_id, author_id, content, is_accepted, created_at"
)


class PostgresForumStore(ForumStore):
    """
    PostgreSQL implementation of ForumStore.

    Requirements:
    - PostgreSQL 12+
    - Tables created from schema.sql (see init_schema)
    - psycopg2 for connection
    """

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        statement_timeout_ms: Optional[int] = None,
    ):
        """
        Initialize PostgreSQL forum store.

        Args:
            connection_factory: Callable that returns a psycopg2 connection.
            statement_timeout_ms: Per-statement timeout. None keeps the
                server default (no timeout unless the server sets one).
        """
        self._connection_factory = connection_factory
        self._statement_timeout_ms = statement_timeout_ms

    # ================================================================
    # CONNECTION HANDLING
    # ================================================================

    @contextmanager
    def _transaction(self) -> Generator[Any, None, None]:
        """
        Open a connection, yield a cursor inside one transaction.

        Commits on clean exit, rolls back on any exception. psycopg2
        errors other than integrity errors become PersistenceUnavailable.
        """
        try:
            conn = self._connection_factory()
        except psycopg2.Error as e:
            logger.exception("Could not connect to forum database: %s", e)
            raise PersistenceUnavailable(f"Could not connect to forum database: {e}") from e

        conn.autocommit = False
        cursor = conn.cursor()
        try:
            if self._statement_timeout_ms is not None:
                cursor.execute(
                    "SET LOCAL statement_timeout = %s",
                    (f"{int(self._statement_timeout_ms)}ms",),
                )
            yield cursor
            conn.commit()
        except psycopg2.IntegrityError:
            self._rollback_quietly(conn)
            raise
        except psycopg2.Error as e:
            self._rollback_quietly(conn)
            logger.exception("Forum database call failed: %s", e)
            raise PersistenceUnavailable(f"Forum database call failed: {e}") from e
        except Exception:
            self._rollback_quietly(conn)
            raise
        finally:
            try:
                cursor.close()
            finally:
                conn.close()

    @staticmethod
    def _rollback_quietly(conn: Any) -> None:
        try:
            conn.rollback()
        except psycopg2.Error as e:
            # Connection is already broken
            logger.warning("Rollback failed: %s", e)

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ddl = SCHEMA_PATH.read_text(encoding="utf-8")
        with self._transaction() as cur:
            cur.execute(ddl)

    # ================================================================
    # TRUST
    # ================================================================

    def set_weight(self, student_id: str, reviewer_id: str, weight: float) -> None:
        with self._transaction() as cur:
            cur.execute("""
                INSERT INTO trusted_reviewers (student_id, reviewer_id, weight)
                VALUES (%s, %s, %s)
                ON CONFLICT (student_id, reviewer_id)
                DO UPDATE SET weight = EXCLUDED.weight
            """, (student_id, reviewer_id, float(weight)))

    def remove_weight(self, student_id: str, reviewer_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("""
                DELETE FROM trusted_reviewers
                WHERE student_id = %s AND reviewer_id = %s
            """, (student_id, reviewer_id))
            return cur.rowcount > 0

    def get_weights(self, student_id: str) -> dict[str, float]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT reviewer_id, weight
                FROM trusted_reviewers
                WHERE student_id = %s
            """, (student_id,))
            return {row[0]: float(row[1]) for row in cur.fetchall()}

    # ================================================================
    # ANSWERS / REVIEWS
    # ================================================================

    def answers_for_question(self, question_id: str) -> list[Answer]:
        with self._transaction() as cur:
            cur.execute(f"""
                SELECT {_ANSWER_COLUMNS}
                FROM answers
                WHERE question_id = %s
                ORDER BY created_at ASC, answer_id ASC
            """, (question_id,))
            return [self._row_to_answer(row) for row in cur.fetchall()]

    def reviews_for_answer(self, answer_id: str) -> list[Review]:
        with self._transaction() as cur:
            cur.execute(f"""
                SELECT {_REVIEW_COLUMNS}
                FROM answer_reviews
                WHERE answer_id = %s
                ORDER BY created_at ASC
            """, (answer_id,))
            return [self._row_to_review(row) for row in cur.fetchall()]

    def reviews_by_reviewer(self, reviewer_id: str) -> list[Review]:
        with self._transaction() as cur:
            cur.execute(f"""
                SELECT {_REVIEW_COLUMNS}
                FROM answer_reviews
                WHERE reviewer_id = %s
                ORDER BY created_at DESC
            """, (reviewer_id,))
            return [self._row_to_review(row) for row in cur.fetchall()]

    # ================================================================
    # USERS / ROLES
    # ================================================================

    def get_user(self, user_id: str) -> Optional[User]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT user_id, display_name, email, created_at
                FROM forum_users
                WHERE user_id = %s
            """, (user_id,))
            row = cur.fetchone()
            if row is None:
                return None
            roles = self._select_roles(cur, user_id)
            return User(
                user_id=row[0],
                display_name=row[1] or "",
                email=row[2],
                roles=roles,
                created_at=row[3],
            )

    def get_roles(self, user_id: str) -> list[Role]:
        with self._transaction() as cur:
            cur.execute("SELECT 1 FROM forum_users WHERE user_id = %s", (user_id,))
            if cur.fetchone() is None:
                raise NotFound(f"User {user_id} does not exist")
            return self._select_roles(cur, user_id)

    @staticmethod
    def _select_roles(cur: Any, user_id: str) -> list[Role]:
        cur.execute("""
            SELECT role FROM user_roles
            WHERE user_id = %s
            ORDER BY position ASC
        """, (user_id,))
        return [Role(row[0]) for row in cur.fetchall()]

    def current_role_count(self, role: Role) -> int:
        with self._transaction() as cur:
            cur.execute("""
                SELECT COUNT(DISTINCT user_id) FROM user_roles WHERE role = %s
            """, (role.value,))
            return int(cur.fetchone()[0])

    def replace_roles(self, user_id: str, roles: Sequence[Role]) -> list[Role]:
        new_roles = list(roles)
        with self._transaction() as cur:
            # Lock the user row so concurrent replacements serialize
            cur.execute("""
                SELECT user_id FROM forum_users WHERE user_id = %s FOR UPDATE
            """, (user_id,))
            if cur.fetchone() is None:
                raise NotFound(f"User {user_id} does not exist")

            cur.execute("DELETE FROM user_roles WHERE user_id = %s", (user_id,))
            for position, role in enumerate(new_roles):
                cur.execute("""
                    INSERT INTO user_roles (user_id, role, position)
                    VALUES (%s, %s, %s)
                """, (user_id, role.value, position))
            cur.execute("""
                UPDATE forum_users SET primary_role = %s WHERE user_id = %s
            """, (new_roles[0].value if new_roles else None, user_id))
        return new_roles

    def has_reviewer_profile(self, user_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("SELECT 1 FROM reviewer_profiles WHERE user_id = %s", (user_id,))
            return cur.fetchone() is not None

    def create_reviewer_profile(self, user_id: str) -> ReviewerProfile:
        with self._transaction() as cur:
            cur.execute("SELECT display_name FROM forum_users WHERE user_id = %s", (user_id,))
            row = cur.fetchone()
            if row is None:
                raise NotFound(f"User {user_id} does not exist")
            cur.execute("""
                INSERT INTO reviewer_profiles (user_id, display_name, experience, created_at)
                VALUES (%s, %s, '', %s)
                ON CONFLICT (user_id) DO NOTHING
            """, (user_id, row[0] or user_id, utc_now()))
            cur.execute("""
                SELECT user_id, display_name, experience, created_at
                FROM reviewer_profiles WHERE user_id = %s
            """, (user_id,))
            return self._row_to_profile(cur.fetchone())

    def get_reviewer_profile(self, user_id: str) -> Optional[ReviewerProfile]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT user_id, display_name, experience, created_at
                FROM reviewer_profiles WHERE user_id = %s
            """, (user_id,))
            row = cur.fetchone()
            return self._row_to_profile(row) if row else None

    def list_reviewer_profiles(self) -> list[ReviewerProfile]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT user_id, display_name, experience, created_at
                FROM reviewer_profiles ORDER BY user_id
            """)
            return [self._row_to_profile(row) for row in cur.fetchall()]

    def update_reviewer_experience(self, user_id: str, experience: str) -> bool:
        with self._transaction() as cur:
            cur.execute("""
                UPDATE reviewer_profiles SET experience = %s WHERE user_id = %s
            """, (experience, user_id))
            return cur.rowcount > 0

    # ================================================================
    # REVIEWER REQUESTS
    # ================================================================

    def find_pending_request(self, student_id: str) -> Optional[ReviewerRequest]:
        with self._transaction() as cur:
            cur.execute(f"""
                SELECT {_REQUEST_COLUMNS}
                FROM reviewer_requests
                WHERE student_id = %s AND status = 'Pending'
            """, (student_id,))
            row = cur.fetchone()
            return self._row_to_request(row) if row else None

    def create_request(self, student_id: str) -> ReviewerRequest:
        request_id = uuid4()
        try:
            with self._transaction() as cur:
                cur.execute(f"""
                    INSERT INTO reviewer_requests (request_id, student_id, status, requested_at)
                    VALUES (%s, %s, 'Pending', %s)
                    RETURNING {_REQUEST_COLUMNS}
                """, (str(request_id), student_id, utc_now()))
                return self._row_to_request(cur.fetchone())
        except psycopg2.errors.UniqueViolation as e:
            raise DuplicateRequest(
                f"Student {student_id} already has a pending reviewer request"
            ) from e
        except psycopg2.errors.ForeignKeyViolation as e:
            raise NotFound(f"User {student_id} does not exist") from e

    def update_request_status(
        self,
        request_id: UUID,
        status: RequestStatus,
        processed_by: Optional[str] = None,
    ) -> Optional[ReviewerRequest]:
        with self._transaction() as cur:
            cur.execute(f"""
                UPDATE reviewer_requests
                SET status = %s, processed_at = %s, processed_by = %s
                WHERE request_id = %s
                RETURNING {_REQUEST_COLUMNS}
            """, (status.value, utc_now(), processed_by, str(request_id)))
            row = cur.fetchone()
            return self._row_to_request(row) if row else None

    def list_pending_requests(self) -> list[ReviewerRequest]:
        with self._transaction() as cur:
            cur.execute(f"""
                SELECT {_REQUEST_COLUMNS}
                FROM reviewer_requests
                WHERE status = 'Pending'
                ORDER BY requested_at ASC
            """)
            return [self._row_to_request(row) for row in cur.fetchall()]

    # ================================================================
    # CONTENT WRITES
    # ================================================================

    def add_user(
        self,
        user_id: str,
        display_name: str = "",
        email: Optional[str] = None,
        roles: Sequence[Role] = (),
    ) -> User:
        role_list = list(roles)
        created_at = utc_now()
        with self._transaction() as cur:
            cur.execute("""
                INSERT INTO forum_users (user_id, display_name, email, primary_role, created_at)
                VALUES (%s, %s, %s, %s, %s)
            """, (
                user_id,
                display_name,
                email,
                role_list[0].value if role_list else None,
                created_at,
            ))
            for position, role in enumerate(role_list):
                cur.execute("""
                    INSERT INTO user_roles (user_id, role, position) VALUES (%s, %s, %s)
                """, (user_id, role.value, position))
        return User(
            user_id=user_id,
            display_name=display_name,
            email=email,
            roles=role_list,
            created_at=created_at,
        )

    def add_question(self, question: Question) -> Question:
        with self._transaction() as cur:
            cur.execute("""
                INSERT INTO questions (question_id, title, author_id, created_at)
                VALUES (%s, %s, %s, %s)
            """, (question.question_id, question.title, question.author_id, question.created_at))
        return question

    def add_answer(self, answer: Answer) -> Answer:
        with self._transaction() as cur:
            cur.execute("""
                INSERT INTO answers (answer_id, question_id, author_id, content, is_accepted, created_at)
                VALUES (%s, %s, %s, %s, %s, %s)
            """, (
                answer.answer_id,
                answer.question_id,
                answer.author_id,
                answer.content,
                answer.accepted,
                answer.created_at,
            ))
        return answer

    def add_review(self, review: Review) -> Review:
        try:
            with self._transaction() as cur:
                cur.execute("""
                    INSERT INTO answer_reviews (
                        review_id, answer_id, reviewer_id, content, parent_review_id, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s)
                """, (
                    review.review_id,
                    review.answer_id,
                    review.reviewer_id,
                    review.content,
                    review.parent_review_id,
                    review.created_at,
                ))
        except psycopg2.errors.ForeignKeyViolation as e:
            raise NotFound(f"Answer {review.answer_id} does not exist") from e
        return review

    def set_answer_accepted(self, answer_id: str, accepted: bool) -> bool:
        with self._transaction() as cur:
            cur.execute("""
                UPDATE answers SET is_accepted = %s WHERE answer_id = %s
            """, (accepted, answer_id))
            return cur.rowcount > 0

    def ping(self) -> dict:
        with self._transaction() as cur:
            cur.execute("""
                SELECT
                    (SELECT COUNT(*) FROM forum_users),
                    (SELECT COUNT(*) FROM answers),
                    (SELECT COUNT(*) FROM answer_reviews),
                    (SELECT COUNT(*) FROM reviewer_requests WHERE status = 'Pending')
            """)
            row = cur.fetchone()
            return {
                "users": row[0],
                "answers": row[1],
                "reviews": row[2],
                "pending_requests": row[3],
            }

    # ================================================================
    # ROW MAPPING
    # ================================================================

    @staticmethod
    def _row_to_answer(row: tuple) -> Answer:
        return Answer(
            answer_id=row[0],
            question_id=row[1],
            author_id=row[2] or "",
            content=row[3] or "",
            accepted=bool(row[4]),
            created_at=row[5],
        )

    @staticmethod
    def _row_to_review(row: tuple) -> Review:
        return Review(
            review_id=row[0],
            answer_id=row[1],
            reviewer_id=row[2],
            content=row[3] or "",
            parent_review_id=row[4] or None,
            created_at=row[5],
        )

    @staticmethod
    def _row_to_profile(row: tuple) -> ReviewerProfile:
        return ReviewerProfile(
            user_id=row[0],
            display_name=row[1] or "",
            experience=row[2] or "",
            created_at=row[3],
        )

    @staticmethod
    def _row_to_request(row: tuple) -> ReviewerRequest:
        return ReviewerRequest(
            request_id=UUID(str(row[0])),
            student_id=row[1],
            status=RequestStatus(row[2]),
            requested_at=row[3],
            processed_at=row[4],
            processed_by=row[5],
        )
