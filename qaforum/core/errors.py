"""
Forum Core Errors

Every failure the core can report, rooted at ForumError.

Expected rejections (the caller shows them to the user):
- InvariantViolation: the last admin tried to drop their own admin role
- DuplicateRequest: a student already has a Pending reviewer request
- NotFound: trust entry, request, user or profile does not exist
- ValidationError: input the core cannot act on

Faults (logged with context before they surface):
- PersistenceUnavailable: the store could not be reached or failed mid-call
"""


class ForumError(Exception):
    """Base exception for forum core errors."""
    pass


class PersistenceUnavailable(ForumError):
    """Raised when the store is unreachable or a store call fails."""
    pass


class InvariantViolation(ForumError):
    """Raised when an operation would leave the forum without an admin."""
    pass


class DuplicateRequest(ForumError):
    """Raised when a student submits a second Pending reviewer request."""
    pass


class NotFound(ForumError):
    """Raised when the addressed trust entry, request, user or profile is missing."""
    pass


class ValidationError(ForumError):
    """Raised when input fails validation."""
    pass


class EngineNotReady(ForumError):
    """Raised when curate() runs before the trust cache was loaded."""
    pass
