"""
Reviewer Request Lifecycle

    submit()            -> Pending
    process(approve)    -> Approved   (reviewer role granted first)
    process(reject)     -> Rejected

Pending is the only non-terminal state. A student may hold at most one
Pending request; once it is decided they may submit again.

On approval the reviewer role is granted BEFORE the request is marked
Approved. If the grant fails the request stays Pending and can be
processed again.
"""

from typing import TYPE_CHECKING

from ..observability import get_logger, get_metrics
from ..schemas import RequestStatus, ReviewerRequest, Role
from .errors import NotFound, PersistenceUnavailable, ValidationError

if TYPE_CHECKING:
    from ..db.store import RequestProvider, UserRoleProvider
    from .roles import RoleAssignmentService

logger = get_logger(__name__)


class ReviewerRequestService:
    """Submit, decide and list reviewer requests."""

    def __init__(
        self,
        requests: "RequestProvider",
        users: "UserRoleProvider",
        roles: "RoleAssignmentService",
    ):
        self._requests = requests
        self._users = users
        self._roles = roles

    def submit(self, student_id: str) -> ReviewerRequest:
        """
        Open a reviewer request for a student.

        Raises:
            NotFound: unknown student
            DuplicateRequest: the student already has a Pending request
        """
        if not student_id or not student_id.strip():
            raise ValidationError("Student ID is required")
        student_id = student_id.strip()

        try:
            if self._users.get_user(student_id) is None:
                raise NotFound(f"User {student_id} does not exist")
            request = self._requests.create_request(student_id)
        except PersistenceUnavailable:
            logger.exception("Reviewer request submission failed", student_id=student_id)
            raise

        get_metrics().reviewer_requests_submitted += 1
        logger.info(
            "Reviewer request submitted",
            student_id=student_id,
            request_id=str(request.request_id),
        )
        return request

    def process(
        self,
        student_id: str,
        approve: bool,
        acting_instructor_id: str,
    ) -> ReviewerRequest:
        """
        Approve or reject a student's Pending request.

        Raises:
            NotFound: the student has no Pending request
            PersistenceUnavailable: grant or status update failed
        """
        if not acting_instructor_id or not acting_instructor_id.strip():
            raise ValidationError("Acting instructor ID is required")
        student_id = (student_id or "").strip()
        acting_instructor_id = acting_instructor_id.strip()

        try:
            decided = self._decide(student_id, approve, acting_instructor_id)
        except PersistenceUnavailable:
            logger.exception(
                "Reviewer request decision failed",
                student_id=student_id,
                approve=approve,
                processed_by=acting_instructor_id,
            )
            raise

        get_metrics().reviewer_requests_decided += 1
        logger.info(
            "Reviewer request decided",
            student_id=student_id,
            request_id=str(decided.request_id),
            status=decided.status.value,
            processed_by=acting_instructor_id,
        )
        return decided

    def _decide(
        self, student_id: str, approve: bool, acting_instructor_id: str
    ) -> ReviewerRequest:
        pending = self._requests.find_pending_request(student_id)
        if pending is None:
            raise NotFound(f"No pending reviewer request for {student_id}")

        if approve:
            self._roles.grant_role(student_id, Role.REVIEWER, acting_instructor_id)
            status = RequestStatus.APPROVED
        else:
            status = RequestStatus.REJECTED

        decided = self._requests.update_request_status(
            pending.request_id, status, acting_instructor_id
        )
        if decided is None:
            raise NotFound(f"Reviewer request {pending.request_id} no longer exists")
        return decided

    def list_pending(self) -> list[ReviewerRequest]:
        """Pending requests, oldest first."""
        return self._requests.list_pending_requests()
