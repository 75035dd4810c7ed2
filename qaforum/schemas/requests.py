"""
Reviewer Request Schema

A student's request to become a reviewer.

    Pending -> Approved
    Pending -> Rejected

Terminal states are never reopened. A student who was rejected
submits a new request instead.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RequestStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class ReviewerRequest(BaseModel):
    """
    One reviewer request. At most one per student may be Pending.
    """
    request_id: UUID = Field(
        ...,
        description="Unique request identifier"
    )

    student_id: str = Field(
        ...,
        min_length=1,
        description="Student asking for the reviewer role"
    )

    status: RequestStatus = Field(
        default=RequestStatus.PENDING,
        description="Lifecycle state"
    )

    requested_at: datetime = Field(
        ...,
        description="When the request was submitted"
    )

    processed_at: Optional[datetime] = Field(
        default=None,
        description="When an instructor approved or rejected it"
    )

    processed_by: Optional[str] = Field(
        default=None,
        description="Instructor who decided the request"
    )
