"""Learner progress endpoints: /{tenant}/api/v1/my-course/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.auth.dependencies import get_current_user
from ednova.db.models import Course, User
from ednova.gamification.schemas import badge_changes
from ednova.payments.service import active_course_ids, require_course_access
from ednova.progress import service, store
from ednova.progress.schemas import (
    CourseProgressResponse,
    LectureMarkRequest,
    LectureMarkResponse,
    LectureProgressResponse,
    MyCourseEntry,
    MyCoursesResponse,
    NoteRequest,
    NotesResponse,
    QuizAttemptResponse,
    QuizSubmitRequest,
    QuizSubmitResponse,
)
from ednova.tenancy.dependencies import get_db, get_tenant
from ednova.tenancy.registry import TenantHandle

router = APIRouter(prefix="/{tenant}/api/v1/my-course", tags=["Progress"])


@router.get("", response_model=MyCoursesResponse)
async def my_courses(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MyCoursesResponse:
    """Courses the caller currently has access to."""
    course_ids = await active_course_ids(db, user.id)
    if not course_ids:
        return MyCoursesResponse(courses=[])
    result = await db.execute(select(Course).where(Course.id.in_(course_ids)).order_by(Course.title))
    return MyCoursesResponse(
        courses=[MyCourseEntry(id=c.id, title=c.title, thumbnail_url=c.thumbnail_url) for c in result.scalars()]
    )


@router.get("/{course_id}", response_model=CourseProgressResponse)
async def course_progress(
    course_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CourseProgressResponse:
    course = await require_course_access(db, user, course_id)
    entry = await store.get_progress(db, user.id, course_id)
    return CourseProgressResponse(
        course_id=course_id,
        lectures=[LectureProgressResponse.model_validate(lp) for lp in entry.lectures],
        quiz_attempts=[QuizAttemptResponse.model_validate(a) for a in entry.quiz_attempts],
        completed_lectures=sum(1 for lp in entry.lectures if lp.marked),
        total_lectures=course.number_of_lectures,
    )


@router.put("/{course_id}/lectures/{lecture_id}", response_model=LectureMarkResponse)
async def mark_lecture(
    course_id: int,
    lecture_id: int,
    body: LectureMarkRequest,
    user: User = Depends(get_current_user),
    handle: TenantHandle = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
) -> LectureMarkResponse:
    """Mark or unmark a lecture; XP and badges follow the change."""
    outcome = await service.mark_lecture(db, handle, user, course_id, lecture_id, body.checked, body.gain_xp)
    return LectureMarkResponse(
        lecture_id=lecture_id,
        previous=outcome.previous,
        marked=outcome.marked,
        xp_delta=outcome.xp_delta,
        total_xp=outcome.total_xp,
        badges=badge_changes(outcome.awarded, outcome.revoked),
    )


@router.get("/{course_id}/lectures/{lecture_id}/notes", response_model=NotesResponse)
async def get_notes(
    course_id: int,
    lecture_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> NotesResponse:
    await require_course_access(db, user, course_id)
    return NotesResponse(notes=await store.list_notes(db, user.id, course_id, lecture_id))


@router.post("/{course_id}/lectures/{lecture_id}/notes", response_model=NotesResponse, status_code=201)
async def add_note(
    course_id: int,
    lecture_id: int,
    body: NoteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> NotesResponse:
    await require_course_access(db, user, course_id)
    notes = await store.add_note(db, user.id, course_id, lecture_id, body.note)
    await db.commit()
    return NotesResponse(notes=notes)


@router.delete("/{course_id}/lectures/{lecture_id}/notes/{note_index}", response_model=NotesResponse)
async def delete_note(
    course_id: int,
    lecture_id: int,
    note_index: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> NotesResponse:
    await require_course_access(db, user, course_id)
    notes = await store.delete_note(db, user.id, course_id, lecture_id, note_index)
    await db.commit()
    return NotesResponse(notes=notes)


@router.post("/{course_id}/quizzes/{quiz_id}/submit", response_model=QuizSubmitResponse)
async def submit_quiz(
    course_id: int,
    quiz_id: int,
    body: QuizSubmitRequest,
    user: User = Depends(get_current_user),
    handle: TenantHandle = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
) -> QuizSubmitResponse:
    """Grade the answers server side; only an improved best score earns XP."""
    answers = [(a.question_id, a.submitted_answer) for a in body.answers]
    outcome = await service.submit_quiz(db, handle, user, course_id, quiz_id, answers)
    return QuizSubmitResponse(
        quiz_id=quiz_id,
        score=outcome.score,
        total_points=outcome.total_points,
        previous_best=outcome.previous_best,
        best_score=outcome.best_score,
        xp_delta=outcome.xp_delta,
        total_xp=outcome.total_xp,
        badges=badge_changes(outcome.awarded, outcome.revoked),
    )
