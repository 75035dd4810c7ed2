"""
Curation Engine - Trust-Weighted Answer Ranking

One engine per student session. The engine holds a private copy of the
student's trust map and ranks the answers to a question by how much
trusted review coverage each one has.

STATES:
    Idle --reload()--> Ready

curate() is only legal in Ready and may be called any number of times.
It always reads live answers and reviews but NEVER re-reads the trust
map. Picking up new weights is the caller's decision: call reload(), or
check_updates() to reload and re-curate the last question in one step.

SCORING:
    score(answer) = sum of weight(reviewer) over every review of the answer
                    whose reviewer is in the trust map

- Reviewers missing from the trust map contribute 0.
- Repeat reviews by one reviewer each count (summed, not deduplicated).
- Answers with score <= 0 are dropped entirely, accepted or not.

ORDER:
    accepted first, then score descending, then created_at descending.
    created_at is compared as an instant, not as display text.
    Answers equal on all three keys keep the provider's order.

FAILURE:
A store failure while reading answers or reviews aborts the whole call.
No partial result is returned and the last-curated marker is untouched.
"""

import time
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from ..observability import get_logger, get_metrics
from ..schemas import CurationOutcome, CurationResult, Review, ScoredAnswer
from .errors import EngineNotReady, PersistenceUnavailable, ValidationError

if TYPE_CHECKING:
    from ..db.store import AnswerProvider, TrustStore

logger = get_logger(__name__)


class EngineState(str, Enum):
    IDLE = "idle"
    READY = "ready"


def score_reviews(reviews: Iterable[Review], trusted: dict[str, float]) -> float:
    """Sum the trust weight of every review written by a trusted reviewer."""
    total = 0.0
    for review in reviews:
        weight = trusted.get(review.reviewer_id)
        if weight is not None:
            total += weight
    return total


def rank_answers(scored: Iterable[ScoredAnswer]) -> list[ScoredAnswer]:
    """
    Order scored answers: accepted, then score, then recency, all descending.

    The sort is stable, so ties on every key keep their input order.
    """
    return sorted(
        scored,
        key=lambda entry: (entry.answer.accepted, entry.score, entry.answer.created_at),
        reverse=True,
    )


class CurationEngine:
    """
    Ranks a question's answers for one student.

    Usage:
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        result = engine.curate("Q1")
        result.answer_ids   # ['A2', 'A1']

    Thread-safety: not thread-safe. An engine belongs to one session.
    """

    def __init__(
        self,
        student_id: str,
        trust_store: "TrustStore",
        answers: "AnswerProvider",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not student_id or not student_id.strip():
            raise ValidationError("Student ID is required")
        if clock is None:
            from ..db.store import utc_now
            clock = utc_now

        self._student_id = student_id.strip()
        self._trust_store = trust_store
        self._answers = answers
        self._clock = clock

        self._state = EngineState.IDLE
        self._trusted: dict[str, float] = {}
        self._loaded_at: Optional[datetime] = None
        self._last_curated_question_id: Optional[str] = None

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == EngineState.READY

    @property
    def trusted(self) -> dict[str, float]:
        """Copy of the cached trust map."""
        return dict(self._trusted)

    @property
    def loaded_at(self) -> Optional[datetime]:
        return self._loaded_at

    @property
    def last_curated_question_id(self) -> Optional[str]:
        return self._last_curated_question_id

    # ================================================================
    # TRUST CACHE
    # ================================================================

    def reload(self) -> dict[str, float]:
        """
        Replace the cached trust map with the store's current one.

        Moves the engine to Ready. On failure the previous cache and
        state are kept.
        """
        try:
            weights = self._trust_store.get_weights(self._student_id)
        except (PersistenceUnavailable, OSError) as e:
            logger.exception(
                "Failed to load trust map",
                student_id=self._student_id,
                error=str(e),
            )
            if isinstance(e, PersistenceUnavailable):
                raise
            raise PersistenceUnavailable(f"Could not load trust map: {e}") from e

        self._trusted = dict(weights)
        self._loaded_at = self._clock()
        self._state = EngineState.READY
        logger.debug(
            "Trust map loaded",
            student_id=self._student_id,
            trusted_reviewers=len(self._trusted),
        )
        return dict(self._trusted)

    load_trust_cache = reload

    def _require_ready(self) -> None:
        if self._state != EngineState.READY:
            raise EngineNotReady(
                f"Trust map for {self._student_id} is not loaded. Call reload() first."
            )

    # ================================================================
    # CURATION
    # ================================================================

    def score_answer(self, answer_id: str) -> float:
        """Score one answer against the cached trust map."""
        self._require_ready()
        return score_reviews(self._answers.reviews_for_answer(answer_id), self._trusted)

    def curate(self, question_id: str) -> CurationResult:
        """
        Filter and rank the answers to a question.

        Raises:
            EngineNotReady: if reload() has not run yet
            ValidationError: if question_id is blank
            PersistenceUnavailable: if answers or reviews could not be read
        """
        self._require_ready()
        if not question_id or not str(question_id).strip():
            raise ValidationError("Question ID is required")
        question_id = str(question_id).strip()

        start = time.perf_counter()
        trusted = self._trusted

        try:
            scored = []
            for answer in self._answers.answers_for_question(question_id):
                score = score_reviews(
                    self._answers.reviews_for_answer(answer.answer_id), trusted
                )
                if score > 0:
                    scored.append(ScoredAnswer(answer=answer, score=score))
        except (PersistenceUnavailable, OSError) as e:
            get_metrics().record_curation_failure()
            logger.exception(
                "Curation aborted",
                student_id=self._student_id,
                question_id=question_id,
                error=str(e),
            )
            if isinstance(e, PersistenceUnavailable):
                raise
            raise PersistenceUnavailable(f"Could not read answers or reviews: {e}") from e

        entries = rank_answers(scored)

        if entries:
            outcome = CurationOutcome.CURATED
        elif not trusted:
            outcome = CurationOutcome.NO_TRUSTED_REVIEWERS
        else:
            outcome = CurationOutcome.NO_TRUSTED_COVERAGE

        self._last_curated_question_id = question_id

        duration_ms = (time.perf_counter() - start) * 1000
        get_metrics().record_curation(duration_ms, empty=not entries)
        logger.info(
            "Curated answers",
            student_id=self._student_id,
            question_id=question_id,
            outcome=outcome.value,
            kept=len(entries),
            duration_ms=round(duration_ms, 2),
        )

        return CurationResult(
            student_id=self._student_id,
            question_id=question_id,
            entries=entries,
            outcome=outcome,
            trusted_reviewer_count=len(trusted),
            curated_at=self._clock(),
        )

    def check_updates(self) -> Optional[CurationResult]:
        """
        Reload the trust map and re-curate the last curated question.

        Returns:
            The refreshed result, or None if nothing was curated yet
            (the cache is still reloaded in that case)
        """
        self.reload()
        if self._last_curated_question_id is None:
            return None
        return self.curate(self._last_curated_question_id)
