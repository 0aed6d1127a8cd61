"""
Course content store.

Courses own their lectures, quizzes and the ordered course sequence. The
sequence only ever references content of the same course: adding content
appends it, removing content drops every entry pointing at it. Lecture and
question counters are recomputed from the collections on every change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, select

from ednova.db.base import utcnow
from ednova.db.models import (
    SEQUENCE_CONTENT_TYPES,
    Course,
    CoursePurchase,
    CourseProgress,
    CourseSequenceItem,
    Lecture,
    LectureProgress,
    Quiz,
    QuizAttempt,
    QuizQuestion,
)
from ednova.errors import ConflictError, NotFoundError, ValidationError
from ednova.storage.service import commit_or_discard, delete_quietly, store_upload

if TYPE_CHECKING:
    from fastapi import UploadFile
    from sqlalchemy.ext.asyncio import AsyncSession

    from ednova.storage.service import BaseAssetStorage

logger = structlog.get_logger()

CONTENT_NOT_FOUND = "Content Not Found"


# ---------------------------------------------------------------------------
# Read accessors
# ---------------------------------------------------------------------------


async def get_course(db: AsyncSession, course_id: int) -> Course:
    course = await db.get(Course, course_id)
    if course is None:
        msg = "Course not found"
        raise NotFoundError(msg)
    return course


async def get_lecture(db: AsyncSession, course_id: int, lecture_id: int) -> Lecture:
    """A lecture of ``course_id``. Raises NotFoundError for the course or the lecture."""
    course = await get_course(db, course_id)
    for lecture in course.lectures:
        if lecture.id == lecture_id:
            return lecture
    msg = "Lecture not found"
    raise NotFoundError(msg)


async def get_quiz(db: AsyncSession, course_id: int, quiz_id: int) -> Quiz:
    course = await get_course(db, course_id)
    for quiz in course.quizzes:
        if quiz.id == quiz_id:
            return quiz
    msg = "Quiz not found"
    raise NotFoundError(msg)


async def list_courses(
    db: AsyncSession,
    categories: list[str] | None = None,
    instructor: str | None = None,
) -> list[Course]:
    stmt = select(Course).order_by(Course.created_at.desc(), Course.id.desc())
    if categories:
        stmt = stmt.where(Course.category.in_(categories))
    if instructor:
        stmt = stmt.where(Course.created_by == instructor)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def course_filters(db: AsyncSession) -> tuple[list[str], list[str]]:
    """Distinct categories and instructors, sorted."""
    categories = (await db.execute(select(Course.category).distinct().order_by(Course.category))).scalars().all()
    instructors = (await db.execute(select(Course.created_by).distinct().order_by(Course.created_by))).scalars().all()
    return list(categories), list(instructors)


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


async def _ensure_unique_title(db: AsyncSession, title: str, exclude_id: int | None = None) -> None:
    stmt = select(Course.id).where(Course.title == title)
    if exclude_id is not None:
        stmt = stmt.where(Course.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        msg = "A course with this title already exists"
        raise ConflictError(msg)


async def create_course(
    db: AsyncSession,
    storage: BaseAssetStorage,
    tenant: str,
    *,
    title: str,
    description: str,
    category: str,
    created_by: str,
    price: int,
    expiry_months: int,
    thumbnail: UploadFile | None = None,
) -> Course:
    await _ensure_unique_title(db, title)
    asset = await store_upload(storage, thumbnail, tenant=tenant, folder="thumbnails") if thumbnail else None

    now = utcnow()
    course = Course(
        title=title,
        description=description,
        category=category,
        created_by=created_by,
        price=price,
        expiry_months=expiry_months,
        number_of_lectures=0,
        thumbnail_asset_id=asset.asset_id if asset else None,
        thumbnail_url=asset.public_url if asset else None,
        created_at=now,
        updated_at=now,
        lectures=[],
        quizzes=[],
        sequence=[],
    )
    db.add(course)
    await commit_or_discard(db, storage, asset)
    logger.info("course_created", course_id=course.id)
    return course


async def update_course(
    db: AsyncSession,
    storage: BaseAssetStorage,
    tenant: str,
    course_id: int,
    fields: dict[str, Any],
    thumbnail: UploadFile | None = None,
) -> Course:
    """Apply the given fields; a new thumbnail replaces the old one after the write commits."""
    course = await get_course(db, course_id)
    if "title" in fields and fields["title"] != course.title:
        await _ensure_unique_title(db, fields["title"], exclude_id=course.id)
    for key, value in fields.items():
        setattr(course, key, value)

    old_asset_id = course.thumbnail_asset_id
    asset = await store_upload(storage, thumbnail, tenant=tenant, folder="thumbnails") if thumbnail else None
    if asset is not None:
        course.thumbnail_asset_id = asset.asset_id
        course.thumbnail_url = asset.public_url
    course.updated_at = utcnow()
    await commit_or_discard(db, storage, asset)

    if asset is not None:
        await delete_quietly(storage, old_asset_id)
    return course


async def delete_course(db: AsyncSession, storage: BaseAssetStorage, course_id: int) -> None:
    """Delete a course with its content, progress entries and purchases."""
    course = await get_course(db, course_id)
    asset_ids = [course.thumbnail_asset_id] + [lecture.media_asset_id for lecture in course.lectures]

    lecture_ids = [lecture.id for lecture in course.lectures]
    quiz_ids = [quiz.id for quiz in course.quizzes]
    if lecture_ids:
        await db.execute(delete(LectureProgress).where(LectureProgress.lecture_id.in_(lecture_ids)))
    if quiz_ids:
        await db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id.in_(quiz_ids)))
    await db.execute(delete(CourseProgress).where(CourseProgress.course_id == course_id))
    await db.execute(delete(CoursePurchase).where(CoursePurchase.course_id == course_id))
    await db.delete(course)
    await db.commit()

    for asset_id in asset_ids:
        await delete_quietly(storage, asset_id)
    logger.info("course_deleted", course_id=course_id)


# ---------------------------------------------------------------------------
# Lectures
# ---------------------------------------------------------------------------


def _renumber(course: Course) -> None:
    for index, lecture in enumerate(course.lectures):
        lecture.position = index
    for index, item in enumerate(course.sequence):
        item.position = index
    course.number_of_lectures = len(course.lectures)
    course.updated_at = utcnow()


def _append_to_sequence(course: Course, content_type: str, content_id: int) -> None:
    course.sequence.append(
        CourseSequenceItem(
            course_id=course.id,
            position=len(course.sequence),
            content_type=content_type,
            content_id=content_id,
        )
    )


def _drop_from_sequence(course: Course, content_type: str, content_id: int) -> None:
    for item in [i for i in course.sequence if i.content_type == content_type and i.content_id == content_id]:
        course.sequence.remove(item)


async def add_lecture(
    db: AsyncSession,
    storage: BaseAssetStorage,
    tenant: str,
    course_id: int,
    *,
    name: str,
    description: str,
    media: UploadFile,
) -> Lecture:
    course = await get_course(db, course_id)
    asset = await store_upload(storage, media, tenant=tenant, folder="lectures")

    lecture = Lecture(
        name=name,
        description=description,
        position=len(course.lectures),
        media_asset_id=asset.asset_id,
        media_url=asset.public_url,
        created_at=utcnow(),
    )
    course.lectures.append(lecture)
    try:
        await db.flush()
    except Exception:
        await db.rollback()
        await delete_quietly(storage, asset.asset_id)
        raise
    _append_to_sequence(course, "video", lecture.id)
    _renumber(course)
    await commit_or_discard(db, storage, asset)
    logger.info("lecture_added", course_id=course_id, lecture_id=lecture.id)
    return lecture


async def update_lecture(
    db: AsyncSession,
    storage: BaseAssetStorage,
    tenant: str,
    course_id: int,
    lecture_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    media: UploadFile | None = None,
) -> Lecture:
    lecture = await get_lecture(db, course_id, lecture_id)
    if name is not None:
        lecture.name = name
    if description is not None:
        lecture.description = description

    old_asset_id = lecture.media_asset_id
    asset = await store_upload(storage, media, tenant=tenant, folder="lectures") if media else None
    if asset is not None:
        lecture.media_asset_id = asset.asset_id
        lecture.media_url = asset.public_url
    await commit_or_discard(db, storage, asset)

    if asset is not None:
        await delete_quietly(storage, old_asset_id)
    return lecture


async def remove_lecture(db: AsyncSession, storage: BaseAssetStorage, course_id: int, lecture_id: int) -> None:
    course = await get_course(db, course_id)
    lecture = await get_lecture(db, course_id, lecture_id)
    asset_id = lecture.media_asset_id

    await db.execute(delete(LectureProgress).where(LectureProgress.lecture_id == lecture_id))
    course.lectures.remove(lecture)
    _drop_from_sequence(course, "video", lecture_id)
    _renumber(course)
    await db.commit()

    await delete_quietly(storage, asset_id)
    logger.info("lecture_removed", course_id=course_id, lecture_id=lecture_id)


# ---------------------------------------------------------------------------
# Quizzes and questions
# ---------------------------------------------------------------------------


def recompute_total_points(quiz: Quiz) -> int:
    quiz.total_points = sum(q.points for q in quiz.questions)
    return quiz.total_points


def _question_from_input(data: dict[str, Any]) -> QuizQuestion:
    return QuizQuestion(
        question_text=data["question_text"],
        options=list(data["options"]),
        correct_answer=data["correct_answer"],
        points=data.get("points", 1),
    )


async def create_quiz(
    db: AsyncSession,
    course_id: int,
    *,
    title: str,
    description: str = "",
    questions: list[dict[str, Any]] | None = None,
) -> Quiz:
    course = await get_course(db, course_id)
    quiz = Quiz(
        title=title,
        description=description,
        created_at=utcnow(),
        questions=[_question_from_input(q) for q in questions or []],
    )
    recompute_total_points(quiz)
    course.quizzes.append(quiz)
    await db.flush()
    _append_to_sequence(course, "quiz", quiz.id)
    _renumber(course)
    await db.flush()
    logger.info("quiz_created", course_id=course_id, quiz_id=quiz.id)
    return quiz


async def update_quiz(db: AsyncSession, course_id: int, quiz_id: int, fields: dict[str, Any]) -> Quiz:
    quiz = await get_quiz(db, course_id, quiz_id)
    for key, value in fields.items():
        setattr(quiz, key, value)
    await db.flush()
    return quiz


async def delete_quiz(db: AsyncSession, course_id: int, quiz_id: int) -> None:
    course = await get_course(db, course_id)
    quiz = await get_quiz(db, course_id, quiz_id)
    await db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id == quiz_id))
    course.quizzes.remove(quiz)
    _drop_from_sequence(course, "quiz", quiz_id)
    _renumber(course)
    await db.flush()
    logger.info("quiz_deleted", course_id=course_id, quiz_id=quiz_id)


def _get_question(quiz: Quiz, question_id: int) -> QuizQuestion:
    for question in quiz.questions:
        if question.id == question_id:
            return question
    msg = "Question not found"
    raise NotFoundError(msg)


async def add_question(db: AsyncSession, course_id: int, quiz_id: int, data: dict[str, Any]) -> QuizQuestion:
    quiz = await get_quiz(db, course_id, quiz_id)
    question = _question_from_input(data)
    quiz.questions.append(question)
    recompute_total_points(quiz)
    await db.flush()
    return question


async def update_question(
    db: AsyncSession,
    course_id: int,
    quiz_id: int,
    question_id: int,
    fields: dict[str, Any],
) -> QuizQuestion:
    """Partial update; the merged question must still list its correct answer among its options."""
    quiz = await get_quiz(db, course_id, quiz_id)
    question = _get_question(quiz, question_id)
    options = list(fields.get("options", question.options))
    correct_answer = fields.get("correct_answer", question.correct_answer)
    if correct_answer not in options:
        msg = "Correct answer must be one of the options"
        raise ValidationError(msg)
    for key, value in fields.items():
        setattr(question, key, list(value) if key == "options" else value)
    recompute_total_points(quiz)
    await db.flush()
    return question


async def delete_question(db: AsyncSession, course_id: int, quiz_id: int, question_id: int) -> Quiz:
    quiz = await get_quiz(db, course_id, quiz_id)
    quiz.questions.remove(_get_question(quiz, question_id))
    recompute_total_points(quiz)
    await db.flush()
    return quiz


# ---------------------------------------------------------------------------
# Course sequence
# ---------------------------------------------------------------------------


@dataclass
class ResolvedSequenceItem:
    position: int
    content_type: str
    content_id: int
    lecture: Lecture | None = None
    quiz: Quiz | None = None

    @property
    def found(self) -> bool:
        return self.lecture is not None or self.quiz is not None

    @property
    def title(self) -> str:
        if self.lecture is not None:
            return self.lecture.name
        if self.quiz is not None:
            return self.quiz.title
        return CONTENT_NOT_FOUND


def resolve_sequence(course: Course) -> list[ResolvedSequenceItem]:
    """The sequence with each entry joined to its lecture or quiz."""
    lectures = {lecture.id: lecture for lecture in course.lectures}
    quizzes = {quiz.id: quiz for quiz in course.quizzes}
    items = []
    for item in course.sequence:
        resolved = ResolvedSequenceItem(item.position, item.content_type, item.content_id)
        if item.content_type == "video":
            resolved.lecture = lectures.get(item.content_id)
        elif item.content_type == "quiz":
            resolved.quiz = quizzes.get(item.content_id)
        items.append(resolved)
    return items


async def set_sequence(db: AsyncSession, course_id: int, items: list[tuple[str, int]]) -> Course:
    """Replace the sequence. Every entry must name existing content of its type in this course."""
    course = await get_course(db, course_id)
    valid = {
        "video": {lecture.id for lecture in course.lectures},
        "quiz": {quiz.id for quiz in course.quizzes},
    }
    seen: set[tuple[str, int]] = set()
    for content_type, content_id in items:
        if content_type not in SEQUENCE_CONTENT_TYPES:
            msg = f"Unknown content type: {content_type}"
            raise ValidationError(msg)
        if content_id not in valid[content_type]:
            label = "Lecture" if content_type == "video" else "Quiz"
            msg = f"{label} {content_id} does not belong to this course"
            raise ValidationError(msg)
        if (content_type, content_id) in seen:
            msg = f"Duplicate sequence entry: {content_type} {content_id}"
            raise ValidationError(msg)
        seen.add((content_type, content_id))

    course.sequence.clear()
    await db.flush()
    for position, (content_type, content_id) in enumerate(items):
        course.sequence.append(
            CourseSequenceItem(course_id=course.id, position=position, content_type=content_type, content_id=content_id)
        )
    course.updated_at = utcnow()
    await db.flush()
    return course
