# Canonical schemas for the forum curation core.
# Persisted shapes plus the ephemeral curation result.

from .forum import Answer, Question, Review
from .trust import TrustWeight
from .roles import Role, RoleSet, User, ReviewerProfile, ReviewerProfileDetail
from .requests import RequestStatus, ReviewerRequest
from .curation import CurationOutcome, CurationResult, ScoredAnswer

__all__ = [
    # Forum content
    "Answer",
    "Question",
    "Review",
    # Trust
    "TrustWeight",
    # Roles
    "Role",
    "RoleSet",
    "User",
    "ReviewerProfile",
    "ReviewerProfileDetail",
    # Reviewer requests
    "RequestStatus",
    "ReviewerRequest",
    # Curation
    "CurationOutcome",
    "CurationResult",
    "ScoredAnswer",
]
