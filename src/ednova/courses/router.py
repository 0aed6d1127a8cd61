"""Course content endpoints: /{tenant}/api/v1/course/*."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.auth.dependencies import get_current_user, require_admin
from ednova.courses import service
from ednova.courses.schemas import (
    CourseDetail,
    CourseFiltersResponse,
    CourseListResponse,
    CourseSummary,
    LectureResponse,
    QuestionInput,
    QuestionResponse,
    QuestionUpdate,
    QuizCreate,
    QuizListResponse,
    QuizPublicResponse,
    QuizResponse,
    QuizUpdate,
    SequenceItemResponse,
    SequenceResponse,
    SequenceUpdate,
)
from ednova.db.models import Course, User
from ednova.payments.service import require_course_access
from ednova.storage.service import BaseAssetStorage, get_asset_storage
from ednova.tenancy.dependencies import get_db, get_tenant
from ednova.tenancy.registry import TenantHandle

router = APIRouter(prefix="/{tenant}/api/v1/course", tags=["Courses"])


def _sequence_response(course: Course) -> SequenceResponse:
    return SequenceResponse(
        course_id=course.id,
        items=[
            SequenceItemResponse(
                position=item.position,
                type=item.content_type,
                content_id=item.content_id,
                title=item.title,
                found=item.found,
                lecture=LectureResponse.model_validate(item.lecture) if item.lecture else None,
                quiz=QuizPublicResponse.model_validate(item.quiz) if item.quiz else None,
            )
            for item in service.resolve_sequence(course)
        ],
    )


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


@router.get("", response_model=CourseListResponse)
async def list_courses(
    category: str | None = Query(None, description="Comma-separated categories"),
    instructor: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> CourseListResponse:
    categories = [c.strip() for c in category.split(",") if c.strip()] if category else None
    courses = await service.list_courses(db, categories=categories, instructor=instructor)
    return CourseListResponse(courses=[CourseSummary.model_validate(c) for c in courses])


@router.get("/filters", response_model=CourseFiltersResponse)
async def course_filters(db: AsyncSession = Depends(get_db)) -> CourseFiltersResponse:
    categories, instructors = await service.course_filters(db)
    return CourseFiltersResponse(categories=categories, instructors=instructors)


@router.post("", response_model=CourseSummary, status_code=201)
async def create_course(
    title: str = Form(..., min_length=1, max_length=100),
    description: str = Form(..., min_length=1),
    category: str = Form(..., min_length=1, max_length=60),
    price: int = Form(..., ge=0),
    expiry_months: int = Form(..., ge=1),
    thumbnail: UploadFile | None = File(None),
    admin: User = Depends(require_admin),
    handle: TenantHandle = Depends(get_tenant),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> CourseSummary:
    course = await service.create_course(
        db,
        storage,
        handle.name,
        title=title.strip(),
        description=description,
        category=category.strip(),
        created_by=admin.name,
        price=price,
        expiry_months=expiry_months,
        thumbnail=thumbnail,
    )
    return CourseSummary.model_validate(course)


@router.get("/{course_id}", response_model=CourseDetail)
async def get_course(
    course_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CourseDetail:
    """The course with its lectures. Requires an active purchase unless admin."""
    course = await require_course_access(db, user, course_id)
    return CourseDetail.model_validate(course)


@router.put("/{course_id}", response_model=CourseSummary)
async def update_course(
    course_id: int,
    title: str | None = Form(None, min_length=1, max_length=100),
    description: str | None = Form(None, min_length=1),
    category: str | None = Form(None, min_length=1, max_length=60),
    price: int | None = Form(None, ge=0),
    expiry_months: int | None = Form(None, ge=1),
    thumbnail: UploadFile | None = File(None),
    _admin: User = Depends(require_admin),
    handle: TenantHandle = Depends(get_tenant),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> CourseSummary:
    fields: dict[str, Any] = {
        key: value
        for key, value in {
            "title": title.strip() if title else None,
            "description": description,
            "category": category.strip() if category else None,
            "price": price,
            "expiry_months": expiry_months,
        }.items()
        if value is not None
    }
    course = await service.update_course(db, storage, handle.name, course_id, fields, thumbnail)
    return CourseSummary.model_validate(course)


@router.delete("/{course_id}", status_code=204)
async def delete_course(
    course_id: int,
    _admin: User = Depends(require_admin),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> None:
    await service.delete_course(db, storage, course_id)


# ---------------------------------------------------------------------------
# Lectures
# ---------------------------------------------------------------------------


@router.post("/{course_id}/lectures", response_model=LectureResponse, status_code=201)
async def add_lecture(
    course_id: int,
    name: str = Form(..., min_length=1, max_length=120),
    description: str = Form(""),
    media: UploadFile = File(...),
    _admin: User = Depends(require_admin),
    handle: TenantHandle = Depends(get_tenant),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> LectureResponse:
    lecture = await service.add_lecture(
        db, storage, handle.name, course_id, name=name.strip(), description=description, media=media
    )
    return LectureResponse.model_validate(lecture)


@router.put("/{course_id}/lectures/{lecture_id}", response_model=LectureResponse)
async def update_lecture(
    course_id: int,
    lecture_id: int,
    name: str | None = Form(None, min_length=1, max_length=120),
    description: str | None = Form(None),
    media: UploadFile | None = File(None),
    _admin: User = Depends(require_admin),
    handle: TenantHandle = Depends(get_tenant),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> LectureResponse:
    lecture = await service.update_lecture(
        db, storage, handle.name, course_id, lecture_id, name=name, description=description, media=media
    )
    return LectureResponse.model_validate(lecture)


@router.delete("/{course_id}/lectures/{lecture_id}", status_code=204)
async def remove_lecture(
    course_id: int,
    lecture_id: int,
    _admin: User = Depends(require_admin),
    storage: BaseAssetStorage = Depends(get_asset_storage),
    db: AsyncSession = Depends(get_db),
) -> None:
    await service.remove_lecture(db, storage, course_id, lecture_id)


# ---------------------------------------------------------------------------
# Quizzes (management view, answers included)
# ---------------------------------------------------------------------------


@router.post("/{course_id}/quizzes", response_model=QuizResponse, status_code=201)
async def create_quiz(
    course_id: int,
    body: QuizCreate,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QuizResponse:
    quiz = await service.create_quiz(
        db,
        course_id,
        title=body.title,
        description=body.description,
        questions=[q.model_dump() for q in body.questions],
    )
    await db.commit()
    return QuizResponse.model_validate(quiz)


@router.get("/{course_id}/quizzes", response_model=QuizListResponse)
async def list_quizzes(
    course_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QuizListResponse:
    course = await service.get_course(db, course_id)
    return QuizListResponse(quizzes=[QuizResponse.model_validate(q) for q in course.quizzes])


@router.get("/{course_id}/quizzes/{quiz_id}", response_model=QuizResponse)
async def get_quiz(
    course_id: int,
    quiz_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QuizResponse:
    return QuizResponse.model_validate(await service.get_quiz(db, course_id, quiz_id))


@router.put("/{course_id}/quizzes/{quiz_id}", response_model=QuizResponse)
async def update_quiz(
    course_id: int,
    quiz_id: int,
    body: QuizUpdate,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QuizResponse:
    quiz = await service.update_quiz(db, course_id, quiz_id, body.model_dump(exclude_none=True))
    await db.commit()
    return QuizResponse.model_validate(quiz)


@router.delete("/{course_id}/quizzes/{quiz_id}", status_code=204)
async def delete_quiz(
    course_id: int,
    quiz_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> None:
    await service.delete_quiz(db, course_id, quiz_id)
    await db.commit()


@router.post("/{course_id}/quizzes/{quiz_id}/questions", response_model=QuestionResponse, status_code=201)
async def add_question(
    course_id: int,
    quiz_id: int,
    body: QuestionInput,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QuestionResponse:
    question = await service.add_question(db, course_id, quiz_id, body.model_dump())
    await db.commit()
    return QuestionResponse.model_validate(question)


@router.get("/{course_id}/quizzes/{quiz_id}/questions", response_model=list[QuestionResponse])
async def list_questions(
    course_id: int,
    quiz_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[QuestionResponse]:
    quiz = await service.get_quiz(db, course_id, quiz_id)
    return [QuestionResponse.model_validate(q) for q in quiz.questions]


@router.put("/{course_id}/quizzes/{quiz_id}/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
    course_id: int,
    quiz_id: int,
    question_id: int,
    body: QuestionUpdate,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QuestionResponse:
    question = await service.update_question(db, course_id, quiz_id, question_id, body.model_dump(exclude_none=True))
    await db.commit()
    return QuestionResponse.model_validate(question)


@router.delete("/{course_id}/quizzes/{quiz_id}/questions/{question_id}", response_model=QuizResponse)
async def delete_question(
    course_id: int,
    quiz_id: int,
    question_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> QuizResponse:
    quiz = await service.delete_question(db, course_id, quiz_id, question_id)
    await db.commit()
    return QuizResponse.model_validate(quiz)


# ---------------------------------------------------------------------------
# Sequence
# ---------------------------------------------------------------------------


@router.get("/{course_id}/sequence", response_model=SequenceResponse)
async def get_sequence(
    course_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SequenceResponse:
    """Ordered lectures and quizzes; entries whose content is gone resolve to "Content Not Found"."""
    course = await require_course_access(db, user, course_id)
    return _sequence_response(course)


@router.put("/{course_id}/sequence", response_model=SequenceResponse)
async def set_sequence(
    course_id: int,
    body: SequenceUpdate,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SequenceResponse:
    course = await service.set_sequence(db, course_id, [(item.type, item.content_id) for item in body.items])
    await db.commit()
    return _sequence_response(course)
