"""
Trust Weight Schema

A student's confidence in a specific reviewer.
Owned by the student; reviewers never see who trusts them.
"""

from pydantic import BaseModel, Field


class TrustWeight(BaseModel):
    """
    One (student, reviewer) trust entry.

    The key is (student_id, reviewer_id). Writing the same key again
    replaces the weight. No upper bound is enforced.
    """
    student_id: str = Field(
        ...,
        min_length=1,
        description="Student who assigned the trust"
    )

    reviewer_id: str = Field(
        ...,
        min_length=1,
        description="Reviewer being trusted"
    )

    weight: float = Field(
        default=1.0,
        description="Weight added to an answer's score per review by this reviewer"
    )
