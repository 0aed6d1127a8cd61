"""
Progress store: per-user lecture marks, notes and quiz attempts.

One ProgressRecord per user holds one CourseProgress entry per course. A
lecture entry is created on first touch, so "never marked" (None) stays
distinguishable from "unmarked" (False). Quiz attempts are only ever
appended; the best score is derived from them.

Existence of the course, lecture or quiz is checked before anything is
written. Callers own the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select

from ednova.config import get_settings
from ednova.courses.service import get_course, get_lecture, get_quiz
from ednova.db.base import utcnow
from ednova.db.models import CourseProgress, LectureProgress, ProgressRecord, QuizAttempt
from ednova.errors import InvalidIndexError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class LectureTransition:
    previous: bool | None
    new: bool
    awarded: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.previous) != self.new


@dataclass(frozen=True)
class QuizSubmission:
    previous_best: int | None
    new_score: int
    total_points: int


async def get_record(db: AsyncSession, user_id: int) -> ProgressRecord | None:
    result = await db.execute(select(ProgressRecord).where(ProgressRecord.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_record(db: AsyncSession, user_id: int) -> ProgressRecord:
    record = await get_record(db, user_id)
    if record is None:
        record = ProgressRecord(user_id=user_id, created_at=utcnow(), courses=[])
        db.add(record)
        await db.flush()
    return record


def _find_course_entry(record: ProgressRecord | None, course_id: int) -> CourseProgress | None:
    if record is None:
        return None
    for entry in record.courses:
        if entry.course_id == course_id:
            return entry
    return None


async def get_progress(db: AsyncSession, user_id: int, course_id: int) -> CourseProgress:
    """The user's entry for ``course_id``. Raises NotFoundError if there is none."""
    entry = _find_course_entry(await get_record(db, user_id), course_id)
    if entry is None:
        msg = "No progress recorded for this course"
        raise NotFoundError(msg)
    return entry


async def ensure_course_entry(db: AsyncSession, user_id: int, course_id: int) -> CourseProgress:
    """Get or create the user's entry for ``course_id``. Idempotent."""
    await get_course(db, course_id)
    record = await get_or_create_record(db, user_id)
    entry = _find_course_entry(record, course_id)
    if entry is None:
        entry = CourseProgress(course_id=course_id, created_at=utcnow(), lectures=[], quiz_attempts=[])
        record.courses.append(entry)
        await db.flush()
    return entry


def _find_lecture_entry(entry: CourseProgress | None, lecture_id: int) -> LectureProgress | None:
    if entry is None:
        return None
    for lecture_entry in entry.lectures:
        if lecture_entry.lecture_id == lecture_id:
            return lecture_entry
    return None


async def _ensure_lecture_entry(db: AsyncSession, user_id: int, course_id: int, lecture_id: int) -> LectureProgress:
    entry = await ensure_course_entry(db, user_id, course_id)
    lecture_entry = _find_lecture_entry(entry, lecture_id)
    if lecture_entry is None:
        lecture_entry = LectureProgress(lecture_id=lecture_id, marked=False, xp_awarded=0, notes=[], updated_at=utcnow())
        entry.lectures.append(lecture_entry)
    return lecture_entry


# ---------------------------------------------------------------------------
# Lecture marks
# ---------------------------------------------------------------------------


async def mark_lecture(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    lecture_id: int,
    marked: bool,
    gain_xp: int = 0,
) -> LectureTransition:
    """Set the mark and report the transition. A repeated mark writes nothing.

    Marking stores ``gain_xp`` as the amount the mark earned; the transition
    of an unmark carries that stored amount in ``awarded``.
    """
    await get_lecture(db, course_id, lecture_id)

    existing = _find_lecture_entry(
        _find_course_entry(await get_record(db, user_id), course_id),
        lecture_id,
    )
    previous = existing.marked if existing is not None else None
    awarded = existing.xp_awarded if existing is not None else 0
    transition = LectureTransition(previous=previous, new=marked, awarded=awarded)
    if existing is not None and not transition.changed:
        return transition

    lecture_entry = existing or await _ensure_lecture_entry(db, user_id, course_id, lecture_id)
    lecture_entry.marked = marked
    lecture_entry.xp_awarded = gain_xp if marked else 0
    lecture_entry.updated_at = utcnow()
    await db.flush()
    return transition


# ---------------------------------------------------------------------------
# Quiz attempts
# ---------------------------------------------------------------------------


async def quiz_scores(db: AsyncSession, user_id: int, course_id: int, quiz_id: int) -> list[int]:
    entry = _find_course_entry(await get_record(db, user_id), course_id)
    if entry is None:
        return []
    return [attempt.score for attempt in entry.quiz_attempts if attempt.quiz_id == quiz_id]


async def record_quiz_submission(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    quiz_id: int,
    score: int,
    total_points: int,
) -> QuizSubmission:
    """Append an attempt and report the best score seen before it."""
    await get_quiz(db, course_id, quiz_id)
    if score < 0 or score > total_points:
        msg = "Score must be between 0 and the quiz's total points"
        raise ValidationError(msg)

    scores = await quiz_scores(db, user_id, course_id, quiz_id)
    entry = await ensure_course_entry(db, user_id, course_id)
    entry.quiz_attempts.append(
        QuizAttempt(quiz_id=quiz_id, score=score, total_points=total_points, submitted_at=utcnow())
    )
    await db.flush()
    return QuizSubmission(previous_best=max(scores) if scores else None, new_score=score, total_points=total_points)


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


async def list_notes(db: AsyncSession, user_id: int, course_id: int, lecture_id: int) -> list[str]:
    await get_lecture(db, course_id, lecture_id)
    lecture_entry = _find_lecture_entry(_find_course_entry(await get_record(db, user_id), course_id), lecture_id)
    return list(lecture_entry.notes) if lecture_entry is not None else []


async def add_note(db: AsyncSession, user_id: int, course_id: int, lecture_id: int, note: str) -> list[str]:
    note = note.strip()
    if not note:
        msg = "Note cannot be empty"
        raise ValidationError(msg)
    if len(note) > get_settings().note_max_length:
        msg = f"Note must not exceed {get_settings().note_max_length} characters"
        raise ValidationError(msg)
    await get_lecture(db, course_id, lecture_id)

    lecture_entry = await _ensure_lecture_entry(db, user_id, course_id, lecture_id)
    # JSON columns only track reassignment.
    lecture_entry.notes = [*lecture_entry.notes, note]
    lecture_entry.updated_at = utcnow()
    await db.flush()
    return list(lecture_entry.notes)


async def delete_note(db: AsyncSession, user_id: int, course_id: int, lecture_id: int, note_index: int) -> list[str]:
    """Remove the note at ``note_index``. Out of range raises InvalidIndexError and changes nothing."""
    await get_lecture(db, course_id, lecture_id)
    lecture_entry = _find_lecture_entry(_find_course_entry(await get_record(db, user_id), course_id), lecture_id)
    notes = list(lecture_entry.notes) if lecture_entry is not None else []
    if lecture_entry is None or not 0 <= note_index < len(notes):
        msg = f"Invalid note index {note_index}"
        raise InvalidIndexError(msg)

    del notes[note_index]
    lecture_entry.notes = notes
    lecture_entry.updated_at = utcnow()
    await db.flush()
    return notes
