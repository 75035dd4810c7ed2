"""
Tests for the Curation Engine

Covers:
1. Scoring (trusted weights summed, untrusted reviewers ignored)
2. Filtering (score <= 0 never returned)
3. Ordering (accepted, score, recency; stable on full ties)
4. Trust cache lifecycle (Idle -> Ready, no implicit refresh)
5. Failure handling (no partial result, marker untouched)
"""

import pytest
from datetime import datetime, timedelta, timezone
from itertools import count

from qaforum.core import (
    CurationEngine,
    EngineNotReady,
    EngineState,
    Forum,
    PersistenceUnavailable,
    ValidationError,
    rank_answers,
)
from qaforum.db import InMemoryForumStore
from qaforum.observability import get_metrics
from qaforum.schemas import Answer, CurationOutcome, Review, ScoredAnswer


T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
_review_ids = count(1)


def add_answer(store, answer_id, minutes=0, accepted=False, question_id="Q1"):
    return store.add_answer(Answer(
        answer_id=answer_id,
        question_id=question_id,
        author_id="author",
        content=f"answer {answer_id}",
        accepted=accepted,
        created_at=T0 + timedelta(minutes=minutes),
    ))


def add_review(store, answer_id, reviewer_id, minutes=0):
    return store.add_review(Review(
        review_id=f"R{next(_review_ids)}",
        answer_id=answer_id,
        reviewer_id=reviewer_id,
        created_at=T0 + timedelta(hours=1, minutes=minutes),
    ))


class FlakyStore(InMemoryForumStore):
    """In-memory store whose review reads can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_reviews = False
        self.fail_with = PersistenceUnavailable("connection refused")

    def reviews_for_answer(self, answer_id):
        if self.fail_reviews:
            raise self.fail_with
        return super().reviews_for_answer(answer_id)


class CountingStore(InMemoryForumStore):
    """In-memory store that counts trust map reads."""

    def __init__(self):
        super().__init__()
        self.weight_reads = 0
        self.down = False

    def get_weights(self, student_id):
        self.weight_reads += 1
        if self.down:
            raise PersistenceUnavailable("connection refused")
        return super().get_weights(student_id)


class TestScoring:
    """Scores are sums of trusted weights."""

    @pytest.fixture
    def store(self):
        store = InMemoryForumStore()
        store.set_weight("studentX", "rev1", 1.0)
        store.set_weight("studentX", "rev2", 2.0)
        return store

    @pytest.fixture
    def engine(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        return engine

    def test_two_trusted_reviewers_rank_by_weight(self, store, engine):
        """rev2 (2.0) outranks rev1 (1.0)."""
        add_answer(store, "A1", minutes=0)
        add_answer(store, "A2", minutes=1)
        add_review(store, "A1", "rev1")
        add_review(store, "A2", "rev2")

        result = engine.curate("Q1")

        assert result.answer_ids == ["A2", "A1"]
        assert result.score_of("A2") == 2.0
        assert result.score_of("A1") == 1.0
        assert result.outcome == CurationOutcome.CURATED

    def test_untrusted_reviewer_contributes_nothing(self, store, engine):
        add_answer(store, "A1")
        add_review(store, "A1", "stranger")

        assert engine.score_answer("A1") == 0.0
        assert engine.curate("Q1").answer_ids == []

    def test_repeat_reviews_are_summed(self, store, engine):
        """Two reviews by rev1 count twice."""
        add_answer(store, "A1")
        add_review(store, "A1", "rev1", minutes=0)
        add_review(store, "A1", "rev1", minutes=5)

        assert engine.score_answer("A1") == 2.0

    def test_mixed_reviewers_sum_only_trusted(self, store, engine):
        add_answer(store, "A1")
        add_review(store, "A1", "rev1")
        add_review(store, "A1", "rev2")
        add_review(store, "A1", "stranger")

        assert engine.curate("Q1").score_of("A1") == 3.0

    def test_answers_of_other_questions_are_ignored(self, store, engine):
        add_answer(store, "A1", question_id="Q1")
        add_answer(store, "B1", question_id="Q2")
        add_review(store, "A1", "rev1")
        add_review(store, "B1", "rev2")

        assert engine.curate("Q1").answer_ids == ["A1"]
        assert engine.curate("Q2").answer_ids == ["B1"]


class TestFiltering:
    """Nothing with score <= 0 is ever returned."""

    @pytest.fixture
    def store(self):
        return InMemoryForumStore()

    def _engine(self, store, student_id="studentX"):
        engine = CurationEngine(student_id, trust_store=store, answers=store)
        engine.reload()
        return engine

    def test_accepted_answer_without_trusted_review_is_dropped(self, store):
        store.set_weight("studentX", "rev1", 1.0)
        add_answer(store, "A1", accepted=True)
        add_answer(store, "A2")
        add_review(store, "A2", "rev1")

        result = self._engine(store).curate("Q1")

        assert result.answer_ids == ["A2"]

    def test_negative_weight_drops_answer(self, store):
        store.set_weight("studentX", "troll", -1.0)
        add_answer(store, "A1")
        add_review(store, "A1", "troll")

        assert self._engine(store).curate("Q1").is_empty

    def test_weights_cancelling_to_zero_drop_answer(self, store):
        store.set_weight("studentX", "rev1", 2.0)
        store.set_weight("studentX", "rev2", -2.0)
        add_answer(store, "A1")
        add_review(store, "A1", "rev1")
        add_review(store, "A1", "rev2")

        assert self._engine(store).curate("Q1").is_empty

    def test_no_trusted_reviewers_outcome(self, store):
        add_answer(store, "A1")
        add_review(store, "A1", "rev1")

        result = self._engine(store).curate("Q1")

        assert result.is_empty
        assert result.outcome == CurationOutcome.NO_TRUSTED_REVIEWERS
        assert result.trusted_reviewer_count == 0

    def test_no_trusted_coverage_outcome(self, store):
        store.set_weight("studentX", "rev1", 1.0)
        add_answer(store, "A1")
        add_review(store, "A1", "someone-else")

        result = self._engine(store).curate("Q1")

        assert result.is_empty
        assert result.outcome == CurationOutcome.NO_TRUSTED_COVERAGE
        assert result.trusted_reviewer_count == 1

    def test_unknown_question_is_an_empty_result(self, store):
        store.set_weight("studentX", "rev1", 1.0)
        assert self._engine(store).curate("nope").is_empty

    def test_empty_results_are_counted(self, store):
        self._engine(store).curate("Q1")

        summary = get_metrics().get_summary()
        assert summary["curations_total"] == 1
        assert summary["curations_empty"] == 1
        assert summary["curations_failed"] == 0


class TestOrdering:
    """accepted desc, score desc, created_at desc."""

    @pytest.fixture
    def store(self):
        store = InMemoryForumStore()
        store.set_weight("studentX", "rev1", 1.0)
        store.set_weight("studentX", "rev5", 5.0)
        return store

    @pytest.fixture
    def engine(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        return engine

    def test_acceptance_dominates_score(self, store, engine):
        add_answer(store, "A1", minutes=0, accepted=True)
        add_answer(store, "A2", minutes=1)
        add_review(store, "A1", "rev1")
        add_review(store, "A2", "rev5")

        result = engine.curate("Q1")

        assert result.answer_ids == ["A1", "A2"]
        assert result.score_of("A1") == 1.0
        assert result.score_of("A2") == 5.0

    def test_equal_score_newer_first(self, store, engine):
        add_answer(store, "old", minutes=0)
        add_answer(store, "new", minutes=30)
        add_review(store, "old", "rev1")
        add_review(store, "new", "rev1")

        assert engine.curate("Q1").answer_ids == ["new", "old"]

    def test_recency_compares_instants_across_timezones(self, store, engine):
        """13:30+02:00 is earlier than 12:00Z even though it reads later."""
        plus2 = timezone(timedelta(hours=2))
        store.add_answer(Answer(
            answer_id="A_utc",
            question_id="Q1",
            created_at=datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
        ))
        store.add_answer(Answer(
            answer_id="A_plus2",
            question_id="Q1",
            created_at=datetime(2025, 3, 1, 13, 30, tzinfo=plus2),
        ))
        add_review(store, "A_utc", "rev1")
        add_review(store, "A_plus2", "rev1")

        assert engine.curate("Q1").answer_ids == ["A_utc", "A_plus2"]

    def test_full_ties_keep_provider_order(self, store, engine):
        for answer_id in ("first", "second", "third"):
            add_answer(store, answer_id, minutes=0)
            add_review(store, answer_id, "rev1")

        assert engine.curate("Q1").answer_ids == ["first", "second", "third"]

    def test_ordering_law_holds_for_mixed_set(self, store, engine):
        layout = [
            ("A1", 0, False, ["rev1"]),
            ("A2", 1, True, ["rev1"]),
            ("A3", 2, False, ["rev5", "rev1"]),
            ("A4", 3, True, ["rev5"]),
            ("A5", 4, False, ["rev1"]),
            ("A6", 5, False, []),
        ]
        for answer_id, minutes, accepted, reviewers in layout:
            add_answer(store, answer_id, minutes=minutes, accepted=accepted)
            for reviewer_id in reviewers:
                add_review(store, answer_id, reviewer_id)

        entries = engine.curate("Q1").entries

        assert [e.answer.answer_id for e in entries] == ["A4", "A2", "A3", "A5", "A1"]
        for a, b in zip(entries, entries[1:]):
            assert (
                a.answer.accepted > b.answer.accepted
                or (a.answer.accepted == b.answer.accepted and a.score > b.score)
                or (
                    a.answer.accepted == b.answer.accepted
                    and a.score == b.score
                    and a.answer.created_at >= b.answer.created_at
                )
            )

    def test_rank_answers_is_pure(self):
        answers = [
            ScoredAnswer(
                answer=Answer(answer_id=f"A{i}", question_id="Q", created_at=T0),
                score=1.0,
            )
            for i in range(3)
        ]
        ranked = rank_answers(answers)
        assert [e.answer.answer_id for e in ranked] == ["A0", "A1", "A2"]
        assert ranked is not answers


class TestTrustCache:
    """The engine never refreshes its cache on its own."""

    @pytest.fixture
    def store(self):
        store = InMemoryForumStore()
        store.set_weight("studentX", "rev1", 1.0)
        store.set_weight("studentX", "rev2", 2.0)
        add_answer(store, "A1", minutes=0)
        add_answer(store, "A2", minutes=1)
        add_review(store, "A1", "rev1")
        add_review(store, "A2", "rev2")
        return store

    def test_curate_before_reload_raises(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)

        assert engine.state == EngineState.IDLE
        with pytest.raises(EngineNotReady):
            engine.curate("Q1")

    def test_reload_moves_to_ready(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        trusted = engine.reload()

        assert engine.is_ready
        assert trusted == {"rev1": 1.0, "rev2": 2.0}
        assert engine.loaded_at is not None

    def test_untrusting_needs_reload(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        store.remove_weight("studentX", "rev1")

        assert engine.curate("Q1").answer_ids == ["A2", "A1"]

        engine.reload()
        assert engine.curate("Q1").answer_ids == ["A2"]

    def test_trusted_property_is_a_copy(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        engine.trusted["rev1"] = 100.0

        assert engine.trusted["rev1"] == 1.0

    def test_last_curated_marker(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        assert engine.last_curated_question_id is None

        engine.curate("Q1")
        assert engine.last_curated_question_id == "Q1"

    def test_check_updates_without_history_returns_none(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)

        assert engine.check_updates() is None
        assert engine.is_ready

    def test_check_updates_recurates_last_question(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        engine.curate("Q1")
        store.set_weight("studentX", "rev1", 10.0)

        result = engine.check_updates()

        assert result.question_id == "Q1"
        assert result.answer_ids == ["A1", "A2"]
        assert result.score_of("A1") == 10.0

    def test_blank_ids_rejected(self, store):
        with pytest.raises(ValidationError):
            CurationEngine("  ", trust_store=store, answers=store)

        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        with pytest.raises(ValidationError):
            engine.curate("")


class TestFailures:
    """A store failure aborts the call and changes nothing."""

    @pytest.fixture
    def store(self):
        store = FlakyStore()
        store.set_weight("studentX", "rev1", 1.0)
        add_answer(store, "A1")
        add_review(store, "A1", "rev1")
        add_answer(store, "B1", question_id="Q2")
        add_review(store, "B1", "rev1")
        return store

    @pytest.fixture
    def engine(self, store):
        engine = CurationEngine("studentX", trust_store=store, answers=store)
        engine.reload()
        return engine

    def test_review_failure_aborts_without_partial_result(self, store, engine):
        engine.curate("Q1")
        store.fail_reviews = True

        with pytest.raises(PersistenceUnavailable):
            engine.curate("Q2")

        assert engine.last_curated_question_id == "Q1"
        assert get_metrics().curations_failed == 1

    def test_os_errors_surface_as_persistence_unavailable(self, store, engine):
        store.fail_reviews = True
        store.fail_with = ConnectionResetError("peer reset")

        with pytest.raises(PersistenceUnavailable, match="peer reset"):
            engine.curate("Q1")

        assert engine.last_curated_question_id is None

    def test_failed_reload_keeps_previous_cache(self, store, engine):
        def broken(student_id):
            raise PersistenceUnavailable("timeout")

        store.get_weights = broken

        with pytest.raises(PersistenceUnavailable):
            engine.reload()

        assert engine.is_ready
        assert engine.trusted == {"rev1": 1.0}

    def test_failure_is_logged_with_context(self, store, engine, caplog):
        store.fail_reviews = True

        with caplog.at_level("ERROR", logger="qaforum.core.curation"):
            with pytest.raises(PersistenceUnavailable):
                engine.curate("Q1")

        record = caplog.records[-1]
        assert record.getMessage() == "Curation aborted"
        assert record.student_id == "studentX"
        assert record.question_id == "Q1"


class TestForumEngines:
    """The facade keeps one engine per student."""

    @pytest.fixture
    def forum(self):
        store = InMemoryForumStore()
        add_answer(store, "A1")
        add_review(store, "A1", "rev1")
        return Forum(store)

    def test_engine_is_reused(self, forum):
        assert forum.engine_for("studentX") is forum.engine_for("studentX")
        assert forum.engine_for("studentX") is not forum.engine_for("studentY")

    def test_set_trust_shows_after_reload(self, forum):
        assert forum.curate("studentX", "Q1").outcome == CurationOutcome.NO_TRUSTED_REVIEWERS

        forum.set_trust("studentX", "rev1", 1.5)
        assert forum.curate("studentX", "Q1").is_empty

        forum.reload_trust("studentX")
        assert forum.curate("studentX", "Q1").answer_ids == ["A1"]

    def test_check_updates_through_facade(self, forum):
        assert forum.check_updates("studentX") is None

        forum.curate("studentX", "Q1")
        forum.set_trust("studentX", "rev1", 1.0)

        assert forum.check_updates("studentX").answer_ids == ["A1"]

    def test_forget_engine(self, forum):
        engine = forum.engine_for("studentX")

        assert forum.forget_engine("studentX") is True
        assert forum.engine_for("studentX") is not engine
        assert forum.forget_engine("nobody") is False

    def test_first_reload_reads_trust_once(self):
        store = CountingStore()
        forum = Forum(store)

        forum.reload_trust("studentX")
        assert store.weight_reads == 1

        forum.check_updates("studentY")
        assert store.weight_reads == 2

        forum.curate("studentX", "Q1")
        assert store.weight_reads == 2

    def test_engine_left_idle_by_failed_load_retries(self):
        store = CountingStore()
        forum = Forum(store)
        store.down = True

        with pytest.raises(PersistenceUnavailable):
            forum.curate("studentX", "Q1")

        store.down = False
        assert forum.curate("studentX", "Q1").outcome == CurationOutcome.NO_TRUSTED_REVIEWERS

    def test_oldest_engine_is_evicted(self):
        forum = Forum(InMemoryForumStore(), max_engines=2)
        first = forum.engine_for("s1")
        forum.engine_for("s2")
        forum.engine_for("s3")

        assert forum.engine_count == 2
        assert forum.forget_engine("s1") is False
        assert forum.engine_for("s1") is not first
