"""Request/response schemas for course content endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- Lectures ---


class LectureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    position: int
    media_url: str | None = None


# --- Courses ---


class CourseSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    category: str
    created_by: str
    price: int
    expiry_months: int
    number_of_lectures: int
    thumbnail_url: str | None = None
    created_at: datetime


class CourseDetail(CourseSummary):
    lectures: list[LectureResponse] = []


class CourseListResponse(BaseModel):
    courses: list[CourseSummary]


class CourseFiltersResponse(BaseModel):
    categories: list[str]
    instructors: list[str]


# --- Quizzes ---


class QuestionInput(BaseModel):
    question_text: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=2)
    correct_answer: str = Field(..., min_length=1)
    points: int = Field(1, ge=0)

    @model_validator(mode="after")
    def answer_is_an_option(self) -> QuestionInput:
        if self.correct_answer not in self.options:
            msg = "Correct answer must be one of the options"
            raise ValueError(msg)
        return self


class QuestionUpdate(BaseModel):
    question_text: str | None = Field(None, min_length=1)
    options: list[str] | None = Field(None, min_length=2)
    correct_answer: str | None = Field(None, min_length=1)
    points: int | None = Field(None, ge=0)


class QuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_text: str
    options: list[str]
    correct_answer: str
    points: int


class QuizCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    description: str = ""
    questions: list[QuestionInput] = []


class QuizUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=120)
    description: str | None = None


class QuizResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    title: str
    description: str
    total_points: int
    questions: list[QuestionResponse] = []


class QuestionPublic(BaseModel):
    """A question as shown to learners: no correct answer."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    question_text: str
    options: list[str]
    points: int


class QuizPublicResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    title: str
    description: str
    total_points: int
    questions: list[QuestionPublic] = []


class QuizListResponse(BaseModel):
    quizzes: list[QuizResponse]


# --- Sequence ---


class SequenceItemInput(BaseModel):
    type: Literal["video", "quiz"]
    content_id: int


class SequenceUpdate(BaseModel):
    items: list[SequenceItemInput]


class SequenceItemResponse(BaseModel):
    position: int
    type: str
    content_id: int
    title: str
    found: bool
    lecture: LectureResponse | None = None
    quiz: QuizPublicResponse | None = None


class SequenceResponse(BaseModel):
    course_id: int
    items: list[SequenceItemResponse]
