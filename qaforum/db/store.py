"""
Forum Store Abstraction

This module defines the provider interfaces the forum core reads and
writes through, and the in-memory implementation used for development
and tests. The PostgreSQL implementation lives in `postgres.py`.

Providers (one ABC each, so callers can depend on the narrowest one):
- TrustStore: per (student, reviewer) trust weights
- AnswerProvider: answers per question, reviews per answer / per reviewer
- UserRoleProvider: users, role sets, reviewer profiles
- RequestProvider: reviewer requests

ForumStore bundles all four plus the content-writing calls the rest of
the forum (and seeding) uses.

TRANSACTION CONTRACT:
replace_roles() is the only multi-step write. Implementations MUST make
the delete-old / insert-new / update-primary sequence atomic: either the
whole new role set is visible or the old one is. No reader may observe a
user with an empty or partial role set mid-operation.

Every other call is a single read or a single-row write.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Optional, Sequence
from uuid import UUID, uuid4

from ..core.errors import DuplicateRequest, NotFound
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


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# PROVIDER INTERFACES
# ============================================================

class TrustStore(ABC):
    """Per-student trust weights keyed by (student_id, reviewer_id)."""

    @abstractmethod
    def set_weight(self, student_id: str, reviewer_id: str, weight: float) -> None:
        """Insert or replace the weight for (student_id, reviewer_id)."""
        pass

    @abstractmethod
    def remove_weight(self, student_id: str, reviewer_id: str) -> bool:
        """
        Delete the weight for (student_id, reviewer_id).

        Returns:
            True if a row was deleted, False if there was nothing to delete
        """
        pass

    @abstractmethod
    def get_weights(self, student_id: str) -> dict[str, float]:
        """Return reviewer_id -> weight for every reviewer the student trusts."""
        pass


class AnswerProvider(ABC):
    """Read access to answers and the review index."""

    @abstractmethod
    def answers_for_question(self, question_id: str) -> list[Answer]:
        """All answers posted to a question, oldest first."""
        pass

    @abstractmethod
    def reviews_for_answer(self, answer_id: str) -> list[Review]:
        """All reviews of an answer, oldest first. Repeat reviews are all returned."""
        pass

    @abstractmethod
    def reviews_by_reviewer(self, reviewer_id: str) -> list[Review]:
        """All reviews written by a reviewer, newest first."""
        pass


class UserRoleProvider(ABC):
    """Users, their role sets and reviewer profiles."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_roles(self, user_id: str) -> list[Role]:
        """Roles in assignment order. Raises NotFound for unknown users."""
        pass

    @abstractmethod
    def current_role_count(self, role: Role) -> int:
        """Number of distinct users currently holding `role`."""
        pass

    @abstractmethod
    def replace_roles(self, user_id: str, roles: Sequence[Role]) -> list[Role]:
        """
        Atomically replace a user's role set.

        The first role becomes the primary role (None when roles is empty).

        Raises:
            NotFound: if the user does not exist (nothing changes)
        """
        pass

    @abstractmethod
    def has_reviewer_profile(self, user_id: str) -> bool:
        pass

    @abstractmethod
    def create_reviewer_profile(self, user_id: str) -> ReviewerProfile:
        pass

    @abstractmethod
    def get_reviewer_profile(self, user_id: str) -> Optional[ReviewerProfile]:
        pass

    @abstractmethod
    def list_reviewer_profiles(self) -> list[ReviewerProfile]:
        pass

    @abstractmethod
    def update_reviewer_experience(self, user_id: str, experience: str) -> bool:
        """Returns False when the user has no profile."""
        pass


class RequestProvider(ABC):
    """Reviewer request rows."""

    @abstractmethod
    def find_pending_request(self, student_id: str) -> Optional[ReviewerRequest]:
        pass

    @abstractmethod
    def create_request(self, student_id: str) -> ReviewerRequest:
        """
        Create a Pending request.

        Raises:
            DuplicateRequest: if the student already has a Pending request
        """
        pass

    @abstractmethod
    def update_request_status(
        self,
        request_id: UUID,
        status: RequestStatus,
        processed_by: Optional[str] = None,
    ) -> Optional[ReviewerRequest]:
        """Set the status of a request. Returns None if the request does not exist."""
        pass

    @abstractmethod
    def list_pending_requests(self) -> list[ReviewerRequest]:
        """Pending requests, oldest first."""
        pass


class ForumStore(TrustStore, AnswerProvider, UserRoleProvider, RequestProvider):
    """
    Everything the forum core persists, behind one object.

    The content-writing calls below are not used by curation itself;
    they exist for the forum pages, seeding and tests.
    """

    @abstractmethod
    def add_user(
        self,
        user_id: str,
        display_name: str = "",
        email: Optional[str] = None,
        roles: Sequence[Role] = (),
    ) -> User:
        pass

    @abstractmethod
    def add_question(self, question: Question) -> Question:
        pass

    @abstractmethod
    def add_answer(self, answer: Answer) -> Answer:
        pass

    @abstractmethod
    def add_review(self, review: Review) -> Review:
        pass

    @abstractmethod
    def set_answer_accepted(self, answer_id: str, accepted: bool) -> bool:
        """Returns False when the answer does not exist."""
        pass

    @abstractmethod
    def ping(self) -> dict:
        """Cheap connectivity check. Returns a few counters for health output."""
        pass


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryForumStore(ForumStore):
    """
    In-memory implementation of ForumStore.

    Suitable for:
    - Development
    - Testing

    NOT suitable for:
    - Production (no durability)
    - Multi-process deployments (no shared state)

    A single lock guards every map, so replace_roles swaps the whole
    role list in one step.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = Lock()
        self._users: dict[str, User] = {}
        self._questions: dict[str, Question] = {}
        self._answers: dict[str, Answer] = {}
        self._reviews: list[Review] = []
        self._trust: dict[tuple[str, str], float] = {}
        self._profiles: dict[str, ReviewerProfile] = {}
        self._requests: dict[UUID, ReviewerRequest] = {}

    # ---------------- trust ----------------

    def set_weight(self, student_id: str, reviewer_id: str, weight: float) -> None:
        with self._lock:
            self._trust[(student_id, reviewer_id)] = float(weight)

    def remove_weight(self, student_id: str, reviewer_id: str) -> bool:
        with self._lock:
            return self._trust.pop((student_id, reviewer_id), None) is not None

    def get_weights(self, student_id: str) -> dict[str, float]:
        with self._lock:
            return {
                reviewer_id: weight
                for (owner, reviewer_id), weight in self._trust.items()
                if owner == student_id
            }

    # ---------------- answers / reviews ----------------

    def answers_for_question(self, question_id: str) -> list[Answer]:
        with self._lock:
            answers = [a for a in self._answers.values() if a.question_id == question_id]
        return sorted(answers, key=lambda a: a.created_at)

    def reviews_for_answer(self, answer_id: str) -> list[Review]:
        with self._lock:
            reviews = [r for r in self._reviews if r.answer_id == answer_id]
        return sorted(reviews, key=lambda r: r.created_at)

    def reviews_by_reviewer(self, reviewer_id: str) -> list[Review]:
        with self._lock:
            reviews = [r for r in self._reviews if r.reviewer_id == reviewer_id]
        return sorted(reviews, key=lambda r: r.created_at, reverse=True)

    # ---------------- users / roles ----------------

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def get_roles(self, user_id: str) -> list[Role]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFound(f"User {user_id} does not exist")
            return list(user.roles)

    def current_role_count(self, role: Role) -> int:
        with self._lock:
            return sum(1 for u in self._users.values() if role in u.roles)

    def replace_roles(self, user_id: str, roles: Sequence[Role]) -> list[Role]:
        new_roles = list(roles)
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFound(f"User {user_id} does not exist")
            self._users[user_id] = user.model_copy(update={"roles": new_roles})
        return list(new_roles)

    def has_reviewer_profile(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._profiles

    def create_reviewer_profile(self, user_id: str) -> ReviewerProfile:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFound(f"User {user_id} does not exist")
            existing = self._profiles.get(user_id)
            if existing is not None:
                return existing
            profile = ReviewerProfile(
                user_id=user_id,
                display_name=user.display_name or user_id,
                experience="",
                created_at=self._clock(),
            )
            self._profiles[user_id] = profile
            return profile

    def get_reviewer_profile(self, user_id: str) -> Optional[ReviewerProfile]:
        with self._lock:
            return self._profiles.get(user_id)

    def list_reviewer_profiles(self) -> list[ReviewerProfile]:
        with self._lock:
            return sorted(self._profiles.values(), key=lambda p: p.user_id)

    def update_reviewer_experience(self, user_id: str, experience: str) -> bool:
        with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                return False
            self._profiles[user_id] = profile.model_copy(update={"experience": experience})
            return True

    # ---------------- reviewer requests ----------------

    def find_pending_request(self, student_id: str) -> Optional[ReviewerRequest]:
        with self._lock:
            return self._find_pending_locked(student_id)

    def _find_pending_locked(self, student_id: str) -> Optional[ReviewerRequest]:
        for request in self._requests.values():
            if request.student_id == student_id and request.status == RequestStatus.PENDING:
                return request
        return None

    def create_request(self, student_id: str) -> ReviewerRequest:
        with self._lock:
            if self._find_pending_locked(student_id) is not None:
                raise DuplicateRequest(
                    f"Student {student_id} already has a pending reviewer request"
                )
            request = ReviewerRequest(
                request_id=uuid4(),
                student_id=student_id,
                status=RequestStatus.PENDING,
                requested_at=self._clock(),
            )
            self._requests[request.request_id] = request
            return request

    def update_request_status(
        self,
        request_id: UUID,
        status: RequestStatus,
        processed_by: Optional[str] = None,
    ) -> Optional[ReviewerRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                return None
            updated = request.model_copy(update={
                "status": status,
                "processed_at": self._clock(),
                "processed_by": processed_by,
            })
            self._requests[request_id] = updated
            return updated

    def list_pending_requests(self) -> list[ReviewerRequest]:
        with self._lock:
            pending = [
                r for r in self._requests.values()
                if r.status == RequestStatus.PENDING
            ]
        return sorted(pending, key=lambda r: r.requested_at)

    # ---------------- content writes ----------------

    def add_user(
        self,
        user_id: str,
        display_name: str = "",
        email: Optional[str] = None,
        roles: Sequence[Role] = (),
    ) -> User:
        with self._lock:
            if user_id in self._users:
                raise ValueError(f"User {user_id} already exists")
            user = User(
                user_id=user_id,
                display_name=display_name,
                email=email,
                roles=list(roles),
                created_at=self._clock(),
            )
            self._users[user_id] = user
            return user

    def add_question(self, question: Question) -> Question:
        with self._lock:
            self._questions[question.question_id] = question
            return question

    def add_answer(self, answer: Answer) -> Answer:
        with self._lock:
            if answer.answer_id in self._answers:
                raise ValueError(f"Answer {answer.answer_id} already exists")
            self._answers[answer.answer_id] = answer
            return answer

    def add_review(self, review: Review) -> Review:
        with self._lock:
            if review.answer_id not in self._answers:
                raise NotFound(f"Answer {review.answer_id} does not exist")
            self._reviews.append(review)
            return review

    def set_answer_accepted(self, answer_id: str, accepted: bool) -> bool:
        with self._lock:
            answer = self._answers.get(answer_id)
            if answer is None:
                return False
            self._answers[answer_id] = answer.model_copy(update={"accepted": accepted})
            return True

    def ping(self) -> dict:
        with self._lock:
            return {
                "users": len(self._users),
                "answers": len(self._answers),
                "reviews": len(self._reviews),
                "pending_requests": sum(
                    1 for r in self._requests.values()
                    if r.status == RequestStatus.PENDING
                ),
            }

    def clear(self) -> None:
        """Clear all data (for testing only)."""
        with self._lock:
            self._users.clear()
            self._questions.clear()
            self._answers.clear()
            self._reviews.clear()
            self._trust.clear()
            self._profiles.clear()
            self._requests.clear()
