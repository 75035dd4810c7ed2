"""
Trust Service

Student-facing operations on the trust store: trust or re-weight a
reviewer, untrust a reviewer, read the whole trust map.

The store accepts any numeric weight. This layer only rejects input
that cannot take part in scoring at all (blank ids, NaN, infinities).
"""

import math
from typing import TYPE_CHECKING

from ..observability import get_logger, get_metrics
from ..schemas import TrustWeight
from .errors import NotFound, PersistenceUnavailable, ValidationError

if TYPE_CHECKING:
    from ..db.store import TrustStore

logger = get_logger(__name__)


def _require_id(value: str, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    return str(value).strip()


class TrustService:
    """Set, remove and read per-student reviewer trust weights."""

    def __init__(self, store: "TrustStore"):
        self._store = store

    def set_trust(self, student_id: str, reviewer_id: str, weight: float) -> TrustWeight:
        """
        Trust a reviewer, or replace the weight already assigned.

        Calling this twice with the same weight leaves the trust map
        exactly as one call would.
        """
        student_id = _require_id(student_id, "Student ID")
        reviewer_id = _require_id(reviewer_id, "Reviewer ID")
        try:
            weight = float(weight)
        except (TypeError, ValueError):
            raise ValidationError(f"Weight must be numeric, got {weight!r}") from None
        if not math.isfinite(weight):
            raise ValidationError(f"Weight must be a finite number, got {weight}")

        try:
            self._store.set_weight(student_id, reviewer_id, weight)
        except PersistenceUnavailable:
            logger.exception(
                "Trust update failed",
                student_id=student_id,
                reviewer_id=reviewer_id,
                weight=weight,
            )
            raise
        get_metrics().trust_updates += 1
        logger.info(
            "Trusted reviewer",
            student_id=student_id,
            reviewer_id=reviewer_id,
            weight=weight,
        )
        return TrustWeight(student_id=student_id, reviewer_id=reviewer_id, weight=weight)

    def remove_trust(self, student_id: str, reviewer_id: str) -> None:
        """
        Untrust a reviewer.

        Raises:
            NotFound: if the student did not trust this reviewer
        """
        student_id = _require_id(student_id, "Student ID")
        reviewer_id = _require_id(reviewer_id, "Reviewer ID")

        try:
            removed = self._store.remove_weight(student_id, reviewer_id)
        except PersistenceUnavailable:
            logger.exception(
                "Trust removal failed", student_id=student_id, reviewer_id=reviewer_id
            )
            raise

        if not removed:
            raise NotFound(
                f"Student {student_id} has no trust entry for reviewer {reviewer_id}"
            )
        get_metrics().trust_updates += 1
        logger.info("Untrusted reviewer", student_id=student_id, reviewer_id=reviewer_id)

    def get_trust(self, student_id: str) -> dict[str, float]:
        """reviewer_id -> weight for everyone the student trusts. Empty if nobody."""
        student_id = _require_id(student_id, "Student ID")
        return self._store.get_weights(student_id)

    def list_trust(self, student_id: str) -> list[TrustWeight]:
        """The trust map as rows, heaviest weight first."""
        weights = self.get_trust(student_id)
        return [
            TrustWeight(student_id=student_id, reviewer_id=reviewer_id, weight=weight)
            for reviewer_id, weight in sorted(
                weights.items(), key=lambda item: (-item[1], item[0])
            )
        ]
