"""Request/response schemas for the learner progress endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ednova.gamification.schemas import BadgeChange


class MyCourseEntry(BaseModel):
    id: int
    title: str
    thumbnail_url: str | None = None


class MyCoursesResponse(BaseModel):
    courses: list[MyCourseEntry]


class LectureProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lecture_id: int
    marked: bool
    notes: list[str] = []
    updated_at: datetime


class QuizAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quiz_id: int
    score: int
    total_points: int
    submitted_at: datetime


class CourseProgressResponse(BaseModel):
    course_id: int
    lectures: list[LectureProgressResponse]
    quiz_attempts: list[QuizAttemptResponse]
    completed_lectures: int
    total_lectures: int


class LectureMarkRequest(BaseModel):
    checked: bool
    gain_xp: int = Field(0, ge=0)


class LectureMarkResponse(BaseModel):
    lecture_id: int
    previous: bool | None
    marked: bool
    xp_delta: int
    total_xp: int
    badges: list[BadgeChange]


class NoteRequest(BaseModel):
    note: str = Field(..., min_length=1)


class NotesResponse(BaseModel):
    notes: list[str]


class AnswerInput(BaseModel):
    question_id: int
    submitted_answer: str


class QuizSubmitRequest(BaseModel):
    answers: list[AnswerInput]


class QuizSubmitResponse(BaseModel):
    quiz_id: int
    score: int
    total_points: int
    previous_best: int | None
    best_score: int
    xp_delta: int
    total_xp: int
    badges: list[BadgeChange]
