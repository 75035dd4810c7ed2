# Core forum services
from .errors import (
    ForumError,
    PersistenceUnavailable,
    InvariantViolation,
    DuplicateRequest,
    NotFound,
    ValidationError,
    EngineNotReady,
)
from .trust import TrustService
from .curation import (
    CurationEngine,
    EngineState,
    rank_answers,
    score_reviews,
)
from .roles import RoleAssignmentService, parse_roles
from .reviewer_requests import ReviewerRequestService
from .profiles import ReviewerProfileService
from .forum import Forum

__all__ = [
    "ForumError",
    "PersistenceUnavailable",
    "InvariantViolation",
    "DuplicateRequest",
    "NotFound",
    "ValidationError",
    "EngineNotReady",
    "TrustService",
    "CurationEngine",
    "EngineState",
    "rank_answers",
    "score_reviews",
    "RoleAssignmentService",
    "parse_roles",
    "ReviewerRequestService",
    "ReviewerProfileService",
    "Forum",
]
