"""
Reviewer profiles: the public page of a reviewer plus the reviews they wrote.
"""

from typing import TYPE_CHECKING

from ..observability import get_logger
from ..schemas import ReviewerProfile, ReviewerProfileDetail
from .errors import NotFound, ValidationError

if TYPE_CHECKING:
    from ..db.store import AnswerProvider, UserRoleProvider

logger = get_logger(__name__)

MAX_EXPERIENCE_LENGTH = 2000


class ReviewerProfileService:

    def __init__(self, users: "UserRoleProvider", answers: "AnswerProvider"):
        self._users = users
        self._answers = answers

    def get_profile(self, user_id: str) -> ReviewerProfileDetail:
        """Profile with the reviewer's reviews, newest first."""
        profile = self._users.get_reviewer_profile(user_id)
        if profile is None:
            raise NotFound(f"No reviewer profile for {user_id}")
        return ReviewerProfileDetail(
            **profile.model_dump(),
            reviews=self._answers.reviews_by_reviewer(user_id),
        )

    def list_profiles(self) -> list[ReviewerProfile]:
        return self._users.list_reviewer_profiles()

    def update_experience(self, user_id: str, experience: str) -> ReviewerProfile:
        if experience is None:
            raise ValidationError("Experience text is required")
        experience = experience.strip()
        if len(experience) > MAX_EXPERIENCE_LENGTH:
            raise ValidationError(
                f"Experience text is limited to {MAX_EXPERIENCE_LENGTH} characters"
            )
        if not self._users.update_reviewer_experience(user_id, experience):
            raise NotFound(f"No reviewer profile for {user_id}")
        logger.info("Reviewer experience updated", user_id=user_id)
        return self._users.get_reviewer_profile(user_id)
