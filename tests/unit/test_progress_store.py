"""Tests for the progress store against a real tenant schema."""

from __future__ import annotations

import pytest

from ednova.auth.service import register_user
from ednova.courses.service import create_quiz
from ednova.db.base import utcnow
from ednova.db.models import Course, Lecture
from ednova.errors import InvalidIndexError, NotFoundError, ValidationError
from ednova.progress import store


@pytest.fixture
async def seeded(db_session):
    """A user and a course with two lectures and a 20-point quiz."""
    user = await register_user(db_session, "alice", "alice@example.com", "SecureP4ss")
    now = utcnow()
    course = Course(
        title="Python 101",
        description="Basics",
        category="Programming",
        created_by="admin",
        price=1000,
        expiry_months=3,
        number_of_lectures=2,
        created_at=now,
        updated_at=now,
        lectures=[
            Lecture(name="Intro", description="", position=0, created_at=now),
            Lecture(name="Loops", description="", position=1, created_at=now),
        ],
        quizzes=[],
        sequence=[],
    )
    db_session.add(course)
    await db_session.flush()
    quiz = await create_quiz(
        db_session,
        course.id,
        title="Checkpoint",
        questions=[
            {"question_text": "Q1", "options": ["a", "b"], "correct_answer": "a", "points": 10},
            {"question_text": "Q2", "options": ["a", "b"], "correct_answer": "b", "points": 10},
        ],
    )
    await db_session.commit()
    return user, course, quiz


class TestLectureMarks:
    async def test_first_mark_reports_unset_previous(self, db_session, seeded):
        user, course, _ = seeded
        transition = await store.mark_lecture(db_session, user.id, course.id, course.lectures[0].id, True)
        assert transition.previous is None
        assert transition.new is True
        assert transition.changed

    async def test_repeat_mark_is_unchanged(self, db_session, seeded):
        user, course, _ = seeded
        lecture_id = course.lectures[0].id
        await store.mark_lecture(db_session, user.id, course.id, lecture_id, True)
        transition = await store.mark_lecture(db_session, user.id, course.id, lecture_id, True)
        assert transition.previous is True
        assert not transition.changed

    async def test_unmark_reports_previous_true(self, db_session, seeded):
        user, course, _ = seeded
        lecture_id = course.lectures[1].id
        await store.mark_lecture(db_session, user.id, course.id, lecture_id, True)
        transition = await store.mark_lecture(db_session, user.id, course.id, lecture_id, False)
        assert transition.previous is True
        assert transition.new is False

        entry = await store.get_progress(db_session, user.id, course.id)
        assert [lp.marked for lp in entry.lectures] == [False]

    async def test_unmark_carries_stored_award(self, db_session, seeded):
        user, course, _ = seeded
        lecture_id = course.lectures[0].id
        await store.mark_lecture(db_session, user.id, course.id, lecture_id, True, 30)
        transition = await store.mark_lecture(db_session, user.id, course.id, lecture_id, False, 0)
        assert transition.awarded == 30

        entry = await store.get_progress(db_session, user.id, course.id)
        assert [lp.xp_awarded for lp in entry.lectures] == [0]

    async def test_unknown_lecture_writes_nothing(self, db_session, seeded):
        user, course, _ = seeded
        with pytest.raises(NotFoundError):
            await store.mark_lecture(db_session, user.id, course.id, 9999, True)
        with pytest.raises(NotFoundError):
            await store.get_progress(db_session, user.id, course.id)

    async def test_ensure_course_entry_is_idempotent(self, db_session, seeded):
        user, course, _ = seeded
        first = await store.ensure_course_entry(db_session, user.id, course.id)
        second = await store.ensure_course_entry(db_session, user.id, course.id)
        assert first is second
        record = await store.get_record(db_session, user.id)
        assert len(record.courses) == 1


class TestNotes:
    async def test_add_and_list(self, db_session, seeded):
        user, course, _ = seeded
        lecture_id = course.lectures[0].id
        await store.add_note(db_session, user.id, course.id, lecture_id, "first")
        notes = await store.add_note(db_session, user.id, course.id, lecture_id, "  second  ")
        assert notes == ["first", "second"]
        assert await store.list_notes(db_session, user.id, course.id, lecture_id) == ["first", "second"]

    async def test_notes_do_not_mark_lecture(self, db_session, seeded):
        user, course, _ = seeded
        lecture_id = course.lectures[0].id
        await store.add_note(db_session, user.id, course.id, lecture_id, "remember this")
        transition = await store.mark_lecture(db_session, user.id, course.id, lecture_id, True)
        assert transition.previous is False

    async def test_delete_by_index(self, db_session, seeded):
        user, course, _ = seeded
        lecture_id = course.lectures[0].id
        for note in ("a", "b", "c"):
            await store.add_note(db_session, user.id, course.id, lecture_id, note)
        assert await store.delete_note(db_session, user.id, course.id, lecture_id, 1) == ["a", "c"]

    async def test_out_of_range_index_leaves_notes_unchanged(self, db_session, seeded):
        user, course, _ = seeded
        lecture_id = course.lectures[0].id
        await store.add_note(db_session, user.id, course.id, lecture_id, "one")
        await store.add_note(db_session, user.id, course.id, lecture_id, "two")

        with pytest.raises(InvalidIndexError):
            await store.delete_note(db_session, user.id, course.id, lecture_id, 5)
        with pytest.raises(InvalidIndexError):
            await store.delete_note(db_session, user.id, course.id, lecture_id, -1)
        assert await store.list_notes(db_session, user.id, course.id, lecture_id) == ["one", "two"]

    async def test_delete_without_notes(self, db_session, seeded):
        user, course, _ = seeded
        with pytest.raises(InvalidIndexError):
            await store.delete_note(db_session, user.id, course.id, course.lectures[0].id, 0)

    async def test_note_length_limit(self, db_session, seeded):
        user, course, _ = seeded
        with pytest.raises(ValidationError):
            await store.add_note(db_session, user.id, course.id, course.lectures[0].id, "x" * 201)
        with pytest.raises(ValidationError):
            await store.add_note(db_session, user.id, course.id, course.lectures[0].id, "   ")


class TestQuizAttempts:
    async def test_previous_best_tracks_history(self, db_session, seeded):
        user, course, quiz = seeded
        first = await store.record_quiz_submission(db_session, user.id, course.id, quiz.id, 12, 20)
        second = await store.record_quiz_submission(db_session, user.id, course.id, quiz.id, 8, 20)
        third = await store.record_quiz_submission(db_session, user.id, course.id, quiz.id, 20, 20)
        assert [first.previous_best, second.previous_best, third.previous_best] == [None, 12, 12]
        assert await store.quiz_scores(db_session, user.id, course.id, quiz.id) == [12, 8, 20]

    async def test_score_out_of_range(self, db_session, seeded):
        user, course, quiz = seeded
        with pytest.raises(ValidationError):
            await store.record_quiz_submission(db_session, user.id, course.id, quiz.id, 21, 20)

    async def test_unknown_quiz(self, db_session, seeded):
        user, course, _ = seeded
        with pytest.raises(NotFoundError):
            await store.record_quiz_submission(db_session, user.id, course.id, 9999, 1, 20)
