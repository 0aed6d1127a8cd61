"""
Progress mutations with their XP and badge consequences.

Each operation runs, in order and inside one transaction: the progress
store mutation, the XP ledger update for the resulting delta, and badge
reconciliation. Mutations for the same user are serialised: in-process by
a per-user lock on the tenant handle, across processes by a row lock on the
user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from ednova.config import get_settings
from ednova.courses.service import get_quiz
from ednova.db.models import Badge, User
from ednova.errors import ValidationError
from ednova.gamification.badge_service import reconcile_badges
from ednova.gamification.xp_service import apply_delta, lecture_mark_delta, quiz_submission_delta
from ednova.payments.service import require_course_access
from ednova.progress import store

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from ednova.db.models import Quiz
    from ednova.tenancy.registry import TenantHandle

logger = structlog.get_logger()


@dataclass
class ProgressOutcome:
    xp_delta: int
    total_xp: int
    awarded: list[Badge] = field(default_factory=list)
    revoked: list[Badge] = field(default_factory=list)


@dataclass
class LectureMarkOutcome(ProgressOutcome):
    previous: bool | None = None
    marked: bool = False


@dataclass
class QuizOutcome(ProgressOutcome):
    score: int = 0
    total_points: int = 0
    previous_best: int | None = None
    best_score: int = 0


async def _lock_user(db: AsyncSession, user_id: int) -> User:
    """Reload the user under a row lock (a no-op on backends without FOR UPDATE)."""
    result = await db.execute(
        select(User).where(User.id == user_id).with_for_update().execution_options(populate_existing=True)
    )
    return result.scalar_one()


def grade_quiz(quiz: Quiz, answers: list[tuple[int, str]]) -> int:
    """Sum the points of correctly answered questions.

    Answers match case-insensitively after trimming; answers to unknown
    questions are ignored, and each question counts at most once.
    """
    questions = {q.id: q for q in quiz.questions}
    correct: set[int] = set()
    for question_id, submitted in answers:
        question = questions.get(question_id)
        if question is None or question_id in correct:
            continue
        if submitted.strip().lower() == question.correct_answer.strip().lower():
            correct.add(question_id)
    return sum(questions[qid].points for qid in correct)


async def mark_lecture(
    db: AsyncSession,
    tenant: TenantHandle,
    user: User,
    course_id: int,
    lecture_id: int,
    checked: bool,
    gain_xp: int,
) -> LectureMarkOutcome:
    settings = get_settings()
    if not 0 <= gain_xp <= settings.lecture_gain_xp_max:
        msg = f"gain_xp must be between 0 and {settings.lecture_gain_xp_max}"
        raise ValidationError(msg)
    await require_course_access(db, user, course_id)

    async with tenant.user_locks.hold(user.id):
        locked = await _lock_user(db, user.id)
        transition = await store.mark_lecture(db, locked.id, course_id, lecture_id, checked, gain_xp)
        delta = lecture_mark_delta(transition.previous, transition.new, gain_xp, transition.awarded)
        total = await apply_delta(
            db,
            locked,
            delta,
            source="lecture",
            source_id=f"{course_id}:{lecture_id}",
            description="Lecture completed" if checked else "Lecture unmarked",
        )
        changes = await reconcile_badges(db, locked, total)
        await db.commit()

    logger.info(
        "lecture_marked",
        user_id=locked.id,
        course_id=course_id,
        lecture_id=lecture_id,
        previous=transition.previous,
        marked=checked,
        xp_delta=delta,
    )
    return LectureMarkOutcome(
        xp_delta=delta,
        total_xp=total,
        awarded=changes.awarded,
        revoked=changes.revoked,
        previous=transition.previous,
        marked=transition.new,
    )


async def submit_quiz(
    db: AsyncSession,
    tenant: TenantHandle,
    user: User,
    course_id: int,
    quiz_id: int,
    answers: list[tuple[int, str]],
) -> QuizOutcome:
    if not answers:
        msg = "No answers submitted"
        raise ValidationError(msg)
    await require_course_access(db, user, course_id)
    quiz = await get_quiz(db, course_id, quiz_id)
    score = grade_quiz(quiz, answers)

    async with tenant.user_locks.hold(user.id):
        locked = await _lock_user(db, user.id)
        submission = await store.record_quiz_submission(db, locked.id, course_id, quiz_id, score, quiz.total_points)
        delta = quiz_submission_delta(submission.previous_best, submission.new_score)
        total = await apply_delta(
            db,
            locked,
            delta,
            source="quiz",
            source_id=f"{course_id}:{quiz_id}",
            description=f"Quiz score improved to {score}/{quiz.total_points}",
        )
        changes = await reconcile_badges(db, locked, total)
        await db.commit()

    logger.info("quiz_submitted", user_id=locked.id, quiz_id=quiz_id, score=score, xp_delta=delta)
    return QuizOutcome(
        xp_delta=delta,
        total_xp=total,
        awarded=changes.awarded,
        revoked=changes.revoked,
        score=score,
        total_points=quiz.total_points,
        previous_best=submission.previous_best,
        best_score=max(score, submission.previous_best or 0),
    )
