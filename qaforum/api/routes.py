"""
API Routes for the Q&A forum curation core

Trust (per student):
- GET    /api/students/{id}/trust                  - Trust map, heaviest first
- PUT    /api/students/{id}/trust/{reviewer_id}    - Trust or re-weight a reviewer
- DELETE /api/students/{id}/trust/{reviewer_id}    - Untrust a reviewer

Curation (per student):
- POST /api/students/{id}/curation/reload          - Reload the cached trust map
- GET  /api/students/{id}/questions/{qid}/curated  - Curated answers for a question
- POST /api/students/{id}/curation/check-updates   - Reload and re-curate the last question
- DELETE /api/students/{id}/curation               - End the session, dropping the cached engine

Roles and reviewer requests:
- GET  /api/users/{id}/roles                       - Role set (optionally with active role)
- PUT  /api/users/{id}/roles                       - Replace the role set
- POST /api/reviewer-requests                      - Submit a request
- GET  /api/reviewer-requests/pending              - Pending requests, oldest first
- POST /api/reviewer-requests/{student_id}/decision - Approve or reject

Reviewer profiles:
- GET /api/reviewer-profiles
- GET /api/reviewer-profiles/{id}
- PUT /api/reviewer-profiles/{id}/experience

Acting user ids travel in the request body. When a body omits one, the
X-Actor-Id header is used instead.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..core import (
    DuplicateRequest,
    EngineNotReady,
    Forum,
    ForumError,
    InvariantViolation,
    NotFound,
    PersistenceUnavailable,
    ValidationError,
)
from ..observability import ACTOR_HEADER, actor_id_var
from ..schemas import (
    CurationOutcome,
    CurationResult,
    ReviewerProfile,
    ReviewerProfileDetail,
    ReviewerRequest,
    Role,
    RoleSet,
)


router = APIRouter(prefix="/api")

# ============================================================
# Dependency Injection
# ============================================================

def get_forum(request: Request) -> Forum:
    """Get the forum from app state."""
    return request.app.state.forum


_STATUS_BY_ERROR = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvariantViolation, status.HTTP_409_CONFLICT),
    (DuplicateRequest, status.HTTP_409_CONFLICT),
    (EngineNotReady, status.HTTP_409_CONFLICT),
    (PersistenceUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_error(error: ForumError) -> HTTPException:
    """Map a core error to the HTTP status the caller sees."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def _acting_user(explicit: Optional[str]) -> str:
    acting = explicit or actor_id_var.get()
    if not acting:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Acting user id is required (body field or {ACTOR_HEADER} header)",
        )
    return acting


# ============================================================
# Request/Response Models
# ============================================================

class SetTrustRequest(BaseModel):
    """Request to trust a reviewer."""
    weight: float = Field(default=1.0, description="Relative trust weight")


class TrustEntryResponse(BaseModel):
    reviewer_id: str
    weight: float


class TrustMapResponse(BaseModel):
    student_id: str
    reviewers: list[TrustEntryResponse]


class CuratedAnswerResponse(BaseModel):
    answer_id: str
    author_id: str
    content: str
    accepted: bool
    score: float
    created_at: datetime


class CurationResponse(BaseModel):
    """Curated answers plus a message telling empty results from failures."""
    student_id: str
    question_id: str
    outcome: CurationOutcome
    message: str
    trusted_reviewer_count: int
    answers: list[CuratedAnswerResponse]
    curated_at: datetime


class ReloadResponse(BaseModel):
    student_id: str
    trusted_reviewer_count: int
    loaded_at: Optional[datetime] = None


class CheckUpdatesResponse(BaseModel):
    student_id: str
    result: Optional[CurationResponse] = None
    message: str


class AssignRolesRequest(BaseModel):
    """Request to replace a user's roles. The first role becomes primary."""
    roles: list[str] = Field(..., description="Role labels in assignment order")
    acting_admin_id: Optional[str] = None


class SubmitReviewerRequest(BaseModel):
    student_id: str = Field(..., min_length=1)


class DecideReviewerRequest(BaseModel):
    approve: bool
    acting_instructor_id: Optional[str] = None


class UpdateExperienceRequest(BaseModel):
    experience: str


_OUTCOME_MESSAGES = {
    CurationOutcome.CURATED: "Answers ranked by trusted reviews.",
    CurationOutcome.NO_TRUSTED_REVIEWERS: "You do not trust any reviewers yet.",
    CurationOutcome.NO_TRUSTED_COVERAGE: "None of your trusted reviewers reviewed these answers.",
}


def _curation_response(result: CurationResult) -> CurationResponse:
    return CurationResponse(
        student_id=result.student_id,
        question_id=result.question_id,
        outcome=result.outcome,
        message=_OUTCOME_MESSAGES[result.outcome],
        trusted_reviewer_count=result.trusted_reviewer_count,
        answers=[
            CuratedAnswerResponse(
                answer_id=entry.answer.answer_id,
                author_id=entry.answer.author_id,
                content=entry.answer.content,
                accepted=entry.answer.accepted,
                score=entry.score,
                created_at=entry.answer.created_at,
            )
            for entry in result.entries
        ],
        curated_at=result.curated_at,
    )


# ============================================================
# Trust Endpoints
# ============================================================

@router.get(
    "/students/{student_id}/trust",
    response_model=TrustMapResponse,
    tags=["Trust"],
    summary="Get a student's trust map",
)
async def get_trust(student_id: str, forum: Forum = Depends(get_forum)):
    try:
        rows = forum.trust.list_trust(student_id)
    except ForumError as e:
        raise to_http_error(e)
    return TrustMapResponse(
        student_id=student_id,
        reviewers=[TrustEntryResponse(reviewer_id=r.reviewer_id, weight=r.weight) for r in rows],
    )


@router.put(
    "/students/{student_id}/trust/{reviewer_id}",
    response_model=TrustEntryResponse,
    tags=["Trust"],
    summary="Trust a reviewer",
)
async def set_trust(
    student_id: str,
    reviewer_id: str,
    request: SetTrustRequest,
    forum: Forum = Depends(get_forum),
):
    """
    Trust a reviewer or change their weight.

    The student's cached trust map is not refreshed. Call the reload or
    check-updates endpoint to see the new weight in curated results.
    """
    try:
        entry = forum.set_trust(student_id, reviewer_id, request.weight)
    except ForumError as e:
        raise to_http_error(e)
    return TrustEntryResponse(reviewer_id=entry.reviewer_id, weight=entry.weight)


@router.delete(
    "/students/{student_id}/trust/{reviewer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Trust"],
    summary="Untrust a reviewer",
)
async def remove_trust(student_id: str, reviewer_id: str, forum: Forum = Depends(get_forum)):
    try:
        forum.remove_trust(student_id, reviewer_id)
    except ForumError as e:
        raise to_http_error(e)


# ============================================================
# Curation Endpoints
# ============================================================

@router.post(
    "/students/{student_id}/curation/reload",
    response_model=ReloadResponse,
    tags=["Curation"],
    summary="Reload the cached trust map",
)
async def reload_trust(student_id: str, forum: Forum = Depends(get_forum)):
    try:
        engine = forum.engine_for(student_id, load=False)
        trusted = engine.reload()
    except ForumError as e:
        raise to_http_error(e)
    return ReloadResponse(
        student_id=engine.student_id,
        trusted_reviewer_count=len(trusted),
        loaded_at=engine.loaded_at,
    )


@router.get(
    "/students/{student_id}/questions/{question_id}/curated",
    response_model=CurationResponse,
    tags=["Curation"],
    summary="Curated answers for a question",
)
async def curate(student_id: str, question_id: str, forum: Forum = Depends(get_forum)):
    """
    Rank a question's answers by the student's trusted reviewers.

    An empty answer list is a valid result. The outcome field says whether
    the student trusts nobody or their reviewers simply did not review
    these answers. Store failures return 503.
    """
    try:
        result = forum.curate(student_id, question_id)
    except ForumError as e:
        raise to_http_error(e)
    return _curation_response(result)


@router.post(
    "/students/{student_id}/curation/check-updates",
    response_model=CheckUpdatesResponse,
    tags=["Curation"],
    summary="Reload trust and re-curate the last question",
)
async def check_updates(student_id: str, forum: Forum = Depends(get_forum)):
    try:
        result = forum.check_updates(student_id)
    except ForumError as e:
        raise to_http_error(e)
    if result is None:
        return CheckUpdatesResponse(
            student_id=student_id,
            message="Trust map reloaded. No question has been curated yet.",
        )
    return CheckUpdatesResponse(
        student_id=student_id,
        result=_curation_response(result),
        message="Trust map reloaded and answers re-curated.",
    )


@router.delete(
    "/students/{student_id}/curation",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Curation"],
    summary="End a student's curation session",
)
async def end_curation_session(student_id: str, forum: Forum = Depends(get_forum)):
    """Drop the student's cached engine. The next request loads a fresh one."""
    if not forum.forget_engine(student_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No curation session for {student_id}",
        )


# ============================================================
# Role Endpoints
# ============================================================

@router.get(
    "/users/{user_id}/roles",
    response_model=RoleSet,
    tags=["Roles"],
    summary="Get a user's roles",
)
async def get_roles(
    user_id: str,
    active_role: Optional[Role] = None,
    forum: Forum = Depends(get_forum),
):
    try:
        return forum.get_role_set(user_id, active_role)
    except ForumError as e:
        raise to_http_error(e)


@router.put(
    "/users/{user_id}/roles",
    response_model=RoleSet,
    tags=["Roles"],
    summary="Replace a user's roles",
)
async def assign_roles(
    user_id: str,
    request: AssignRolesRequest,
    forum: Forum = Depends(get_forum),
):
    """
    Replace the whole role set. The first role becomes the primary role.

    Returns 409 when the only admin tries to remove their own admin role.
    """
    acting_admin_id = _acting_user(request.acting_admin_id)
    try:
        return forum.assign_roles(user_id, request.roles, acting_admin_id)
    except ForumError as e:
        raise to_http_error(e)


# ============================================================
# Reviewer Request Endpoints
# ============================================================

@router.post(
    "/reviewer-requests",
    response_model=ReviewerRequest,
    status_code=status.HTTP_201_CREATED,
    tags=["Reviewer Requests"],
    summary="Ask to become a reviewer",
)
async def submit_reviewer_request(
    request: SubmitReviewerRequest,
    forum: Forum = Depends(get_forum),
):
    try:
        return forum.submit_reviewer_request(request.student_id)
    except ForumError as e:
        raise to_http_error(e)


@router.get(
    "/reviewer-requests/pending",
    response_model=list[ReviewerRequest],
    tags=["Reviewer Requests"],
    summary="Pending reviewer requests",
)
async def list_pending_requests(forum: Forum = Depends(get_forum)):
    try:
        return forum.list_pending_requests()
    except ForumError as e:
        raise to_http_error(e)


@router.post(
    "/reviewer-requests/{student_id}/decision",
    response_model=ReviewerRequest,
    tags=["Reviewer Requests"],
    summary="Approve or reject a reviewer request",
)
async def decide_reviewer_request(
    student_id: str,
    request: DecideReviewerRequest,
    forum: Forum = Depends(get_forum),
):
    """
    Decide a student's Pending request.

    Approval grants the reviewer role first. If that fails the request
    stays Pending and the call returns the failure.
    """
    acting_instructor_id = _acting_user(request.acting_instructor_id)
    try:
        return forum.process_reviewer_request(student_id, request.approve, acting_instructor_id)
    except ForumError as e:
        raise to_http_error(e)


# ============================================================
# Reviewer Profile Endpoints
# ============================================================

@router.get(
    "/reviewer-profiles",
    response_model=list[ReviewerProfile],
    tags=["Reviewer Profiles"],
)
async def list_reviewer_profiles(forum: Forum = Depends(get_forum)):
    try:
        return forum.list_reviewer_profiles()
    except ForumError as e:
        raise to_http_error(e)


@router.get(
    "/reviewer-profiles/{user_id}",
    response_model=ReviewerProfileDetail,
    tags=["Reviewer Profiles"],
)
async def get_reviewer_profile(user_id: str, forum: Forum = Depends(get_forum)):
    try:
        return forum.get_reviewer_profile(user_id)
    except ForumError as e:
        raise to_http_error(e)


@router.put(
    "/reviewer-profiles/{user_id}/experience",
    response_model=ReviewerProfile,
    tags=["Reviewer Profiles"],
)
async def update_reviewer_experience(
    user_id: str,
    request: UpdateExperienceRequest,
    forum: Forum = Depends(get_forum),
):
    try:
        return forum.update_reviewer_experience(user_id, request.experience)
    except ForumError as e:
        raise to_http_error(e)
