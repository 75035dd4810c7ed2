"""
Curation Result Schema

Ephemeral output of one curation pass. Never persisted.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .forum import Answer


class CurationOutcome(str, Enum):
    """
    Why a result looks the way it does.

    Every outcome is a valid result. Failures are raised, not returned.
    """
    CURATED = "curated"                             # At least one answer survived
    NO_TRUSTED_REVIEWERS = "no_trusted_reviewers"   # Student trusts nobody yet
    NO_TRUSTED_COVERAGE = "no_trusted_coverage"     # Trusted reviewers reviewed none of the answers


class ScoredAnswer(BaseModel):
    answer: Answer
    score: float = Field(..., gt=0, description="Sum of trusted reviewer weights")


class CurationResult(BaseModel):
    """
    Ordered answers for one (student, question) pair.

    Order: accepted first, then score descending, then most recent first.
    """
    student_id: str
    question_id: str
    entries: list[ScoredAnswer] = Field(default_factory=list)
    outcome: CurationOutcome
    trusted_reviewer_count: int = Field(default=0, ge=0)
    curated_at: datetime

    @property
    def answer_ids(self) -> list[str]:
        return [entry.answer.answer_id for entry in self.entries]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def score_of(self, answer_id: str) -> float:
        for entry in self.entries:
            if entry.answer.answer_id == answer_id:
                return entry.score
        return 0.0
