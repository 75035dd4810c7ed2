"""
Forum - the library entry point

Wires the trust, curation, role, request and profile services to one
store and keeps a curation engine per student.

ENGINE REGISTRY:
engine_for(student_id) creates the student's engine on first use and
loads its trust map once. After that the engine keeps its cached map
until reload_trust() or check_updates() is called for that student.
Trust edits made through this facade do NOT refresh the cache.
At most max_engines engines are kept; the oldest is dropped first and
simply reloads on its next use.
"""

from datetime import datetime
from threading import Lock
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Union

from ..observability import get_logger
from ..schemas import (
    CurationResult,
    ReviewerProfile,
    ReviewerProfileDetail,
    ReviewerRequest,
    Role,
    RoleSet,
    TrustWeight,
)
from .curation import CurationEngine
from .profiles import ReviewerProfileService
from .reviewer_requests import ReviewerRequestService
from .roles import RoleAssignmentService
from .trust import TrustService

if TYPE_CHECKING:
    from ..db.store import ForumStore

logger = get_logger(__name__)

DEFAULT_MAX_ENGINES = 1024


class Forum:
    """
    Caller-facing operations over one ForumStore.

    Usage:
        forum = Forum(store)
        forum.set_trust("studentX", "rev1", 2.0)
        result = forum.curate("studentX", "Q1")
    """

    def __init__(
        self,
        store: Optional["ForumStore"] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_engines: int = DEFAULT_MAX_ENGINES,
    ):
        """
        Args:
            store: Backing store. If None, creates an InMemoryForumStore.
            clock: Timestamp source for curation results
            max_engines: Cached engines kept before the oldest is dropped
        """
        # Import here to avoid circular imports
        if store is None:
            from ..db.store import InMemoryForumStore
            store = InMemoryForumStore()

        self._store = store
        self._clock = clock
        self._engines: dict[str, CurationEngine] = {}
        self._engines_lock = Lock()
        self._max_engines = max(1, int(max_engines))

        self.trust = TrustService(store)
        self.roles = RoleAssignmentService(store)
        self.requests = ReviewerRequestService(store, store, self.roles)
        self.profiles = ReviewerProfileService(store, store)

    @property
    def store(self) -> "ForumStore":
        return self._store

    # ================================================================
    # CURATION
    # ================================================================

    def engine_for(self, student_id: str, load: bool = True) -> CurationEngine:
        """
        Get the student's engine.

        With load=True an engine that has not loaded its trust map yet
        loads it now. Callers that reload straight away pass load=False.
        """
        student_id = (student_id or "").strip()
        with self._engines_lock:
            engine = self._engines.get(student_id)
            if engine is None:
                engine = CurationEngine(
                    student_id,
                    trust_store=self._store,
                    answers=self._store,
                    clock=self._clock,
                )
                self._engines[engine.student_id] = engine
                self._evict_oldest()

        if load and not engine.is_ready:
            engine.reload()
        return engine

    def _evict_oldest(self) -> None:
        # Caller holds _engines_lock. Dicts keep insertion order.
        while len(self._engines) > self._max_engines:
            student_id = next(iter(self._engines))
            del self._engines[student_id]
            logger.info("Evicted curation engine", student_id=student_id)

    def curate(self, student_id: str, question_id: str) -> CurationResult:
        return self.engine_for(student_id).curate(question_id)

    def reload_trust(self, student_id: str) -> dict[str, float]:
        """Refresh the student's cached trust map from the store."""
        return self.engine_for(student_id, load=False).reload()

    def check_updates(self, student_id: str) -> Optional[CurationResult]:
        return self.engine_for(student_id, load=False).check_updates()

    def forget_engine(self, student_id: str) -> bool:
        """Drop a student's engine (session ended)."""
        with self._engines_lock:
            return self._engines.pop((student_id or "").strip(), None) is not None

    @property
    def engine_count(self) -> int:
        with self._engines_lock:
            return len(self._engines)

    # ================================================================
    # TRUST
    # ================================================================

    def set_trust(self, student_id: str, reviewer_id: str, weight: float) -> TrustWeight:
        return self.trust.set_trust(student_id, reviewer_id, weight)

    def remove_trust(self, student_id: str, reviewer_id: str) -> None:
        self.trust.remove_trust(student_id, reviewer_id)

    def get_trust(self, student_id: str) -> dict[str, float]:
        return self.trust.get_trust(student_id)

    # ================================================================
    # ROLES AND REVIEWER REQUESTS
    # ================================================================

    def assign_roles(
        self,
        user_id: str,
        roles: Iterable[Union[Role, str]],
        acting_admin_id: str,
    ) -> RoleSet:
        return self.roles.assign_roles(user_id, roles, acting_admin_id)

    def get_role_set(self, user_id: str, active_role: Optional[Union[Role, str]] = None) -> RoleSet:
        return self.roles.get_role_set(user_id, active_role)

    def submit_reviewer_request(self, student_id: str) -> ReviewerRequest:
        return self.requests.submit(student_id)

    def process_reviewer_request(
        self,
        student_id: str,
        approve: bool,
        acting_instructor_id: str,
    ) -> ReviewerRequest:
        return self.requests.process(student_id, approve, acting_instructor_id)

    def list_pending_requests(self) -> list[ReviewerRequest]:
        return self.requests.list_pending()

    # ================================================================
    # REVIEWER PROFILES
    # ================================================================

    def get_reviewer_profile(self, user_id: str) -> ReviewerProfileDetail:
        return self.profiles.get_profile(user_id)

    def list_reviewer_profiles(self) -> list[ReviewerProfile]:
        return self.profiles.list_profiles()

    def update_reviewer_experience(self, user_id: str, experience: str) -> ReviewerProfile:
        return self.profiles.update_experience(user_id, experience)
