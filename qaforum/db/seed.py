"""
Demo data for local development.

SAFETY RULES:
- Only seeds an empty store (no users yet)
- Auto-seeding at app startup is disabled by default; set FORUM_AUTO_SEED=1
- For PostgreSQL, prefer `python tools/manage.py seed-demo`
"""

import os
from datetime import datetime, timedelta, timezone

from ..observability import get_logger
from ..schemas import Answer, Question, Review, Role
from .store import ForumStore

logger = get_logger(__name__)

DEMO_EPOCH = datetime(2025, 2, 3, 9, 0, tzinfo=timezone.utc)


def auto_seed_enabled() -> bool:
    return os.getenv("FORUM_AUTO_SEED", "").lower() in ("1", "true", "yes")


def seed_demo_data(store: ForumStore) -> bool:
    """
    Load a small course forum: one admin, one instructor, two reviewers,
    two students and a question with three reviewed answers.

    studentX trusts rev1 (1.0) and rev2 (2.0), so curating Q1 for studentX
    puts the accepted A3 first, then A2 ahead of A1.

    Returns:
        True if data was written, False if the store already had users
    """
    if store.ping().get("users", 0) > 0:
        logger.info("Store already has users - skipping demo seed")
        return False

    store.add_user("admin1", "Ada Admin", "admin1@example.edu", [Role.ADMIN])
    store.add_user("instr1", "Ian Instructor", "instr1@example.edu", [Role.INSTRUCTOR])
    store.add_user("rev1", "Rita Reviewer", "rev1@example.edu", [Role.REVIEWER, Role.STUDENT])
    store.add_user("rev2", "Raj Reviewer", "rev2@example.edu", [Role.REVIEWER])
    store.add_user("studentX", "Sam Student", "studentx@example.edu", [Role.STUDENT])
    store.add_user("s1", "Sid Student", "s1@example.edu", [Role.STUDENT])
    for reviewer_id in ("rev1", "rev2"):
        store.create_reviewer_profile(reviewer_id)

    store.add_question(Question(
        question_id="Q1",
        title="Why does my recursive fibonacci blow the stack?",
        author_id="studentX",
        created_at=DEMO_EPOCH,
    ))
    answers = [
        ("A1", "s1", "Add a base case for n < 2.", False),
        ("A2", "rev1", "Memoize with functools.lru_cache, or iterate.", False),
        ("A3", "instr1", "See lecture 4: the base case is missing for n == 1.", True),
        ("A4", "s1", "Just raise the recursion limit.", False),
    ]
    for offset, (answer_id, author_id, content, accepted) in enumerate(answers, start=1):
        store.add_answer(Answer(
            answer_id=answer_id,
            question_id="Q1",
            author_id=author_id,
            content=content,
            accepted=accepted,
            created_at=DEMO_EPOCH + timedelta(hours=offset),
        ))

    reviews = [
        ("R1", "A1", "rev1", "Correct but incomplete."),
        ("R2", "A2", "rev2", "Best fix for large n."),
        ("R3", "A3", "rev1", "Matches the lecture."),
        ("R4", "A4", "s1", "Works for me."),
    ]
    for offset, (review_id, answer_id, reviewer_id, content) in enumerate(reviews, start=1):
        store.add_review(Review(
            review_id=review_id,
            answer_id=answer_id,
            reviewer_id=reviewer_id,
            content=content,
            created_at=DEMO_EPOCH + timedelta(days=1, hours=offset),
        ))

    store.set_weight("studentX", "rev1", 1.0)
    store.set_weight("studentX", "rev2", 2.0)

    logger.info("Seeded demo forum", users=6, answers=len(answers), reviews=len(reviews))
    return True
