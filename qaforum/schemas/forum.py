"""
Forum Content Schema

Questions, answers and reviews as the curation engine sees them.
Content is written by the wider forum; the curation core only reads it.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("timestamps must be timezone-aware")
    return value


class Question(BaseModel):
    """
    A question thread. Answers hang off it by question_id.
    """
    question_id: str = Field(
        ...,
        min_length=1,
        description="Unique question identifier"
    )

    title: str = Field(
        ...,
        description="Question title"
    )

    author_id: str = Field(
        ...,
        description="User who asked the question"
    )

    created_at: datetime = Field(
        ...,
        description="When the question was posted"
    )

    @field_validator("created_at")
    @classmethod
    def created_at_is_aware(cls, value: datetime) -> datetime:
        return _require_aware(value)


class Answer(BaseModel):
    """
    An answer to a question.

    Identity is immutable once created. Only `accepted` changes,
    toggled by participants of the question thread.
    """
    answer_id: str = Field(
        ...,
        min_length=1,
        description="Unique answer identifier"
    )

    question_id: str = Field(
        ...,
        min_length=1,
        description="Question this answer belongs to"
    )

    author_id: str = Field(
        default="",
        description="User who wrote the answer"
    )

    content: str = Field(
        default="",
        description="Answer body"
    )

    accepted: bool = Field(
        default=False,
        description="Whether the thread marked this answer as accepted"
    )

    # Raw instant; recency ordering compares this, never a display string.
    created_at: datetime = Field(
        ...,
        description="When the answer was posted (timezone-aware)"
    )

    @field_validator("created_at")
    @classmethod
    def created_at_is_aware(cls, value: datetime) -> datetime:
        return _require_aware(value)


class Review(BaseModel):
    """
    A reviewer's review of an answer.

    Reviews are immutable. An edit creates a new review whose
    parent_review_id points at the one it replaces; both still count.
    """
    review_id: str = Field(
        ...,
        min_length=1,
        description="Unique review identifier"
    )

    answer_id: str = Field(
        ...,
        description="Answer under review"
    )

    reviewer_id: str = Field(
        ...,
        description="User who wrote the review"
    )

    content: str = Field(
        default="",
        description="Review text"
    )

    parent_review_id: Optional[str] = Field(
        default=None,
        description="Review this one revises, if any"
    )

    created_at: datetime = Field(
        ...,
        description="When the review was written"
    )

    @field_validator("created_at")
    @classmethod
    def created_at_is_aware(cls, value: datetime) -> datetime:
        return _require_aware(value)
