"""SQLModel models for the Entrance Pathway platform."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from entrance_pathway.utils import utcnow

USER_ROLES = ("student", "mentor", "admin")
QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer")
DIFFICULTY_LEVELS = ("easy", "medium", "hard")
EXAM_TYPES = ("full_model", "subject", "chapter", "practice", "previous_year")
NOTE_TYPES = ("notes", "question_paper", "solution", "syllabus", "formula_sheet")

ATTEMPT_IN_PROGRESS = "in_progress"
ATTEMPT_COMPLETED = "completed"


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on both sides of the database.

    Naive values are taken to be UTC. Values read back from backends that drop
    the offset (SQLite) get UTC attached again.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class User(SQLModel, table=True):
    """Local profile of an identity-provider account (id is the token subject)."""

    __tablename__ = "users"

    id: str = Field(primary_key=True)
    email: str
    full_name: str = Field(default="")
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    role: str = Field(default="student")  # student | mentor | admin
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ===================== CATALOG =====================


class Course(SQLModel, table=True):
    __tablename__ = "courses"
    __table_args__ = (UniqueConstraint("slug", name="uq_courses_slug"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    full_name: Optional[str] = None
    description: str = Field(default="")
    slug: str
    thumbnail_url: Optional[str] = None
    price: float = Field(default=0)
    discounted_price: Optional[float] = None
    duration_hours: Optional[int] = None
    features: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_bestseller: bool = Field(default=False)
    is_published: bool = Field(default=False)
    instructor_id: str = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Chapter(SQLModel, table=True):
    __tablename__ = "chapters"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    position: int = Field(default=0)
    is_published: bool = Field(default=False)
    course_id: int = Field(foreign_key="courses.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Lesson(SQLModel, table=True):
    __tablename__ = "lessons"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[int] = None  # seconds
    position: int = Field(default=0)
    is_published: bool = Field(default=False)
    is_free: bool = Field(default=False)
    chapter_id: int = Field(foreign_key="chapters.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Enrollment(SQLModel, table=True):
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id")
    course_id: int = Field(foreign_key="courses.id")
    enrolled_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    progress: int = Field(default=0)  # percent of lessons completed


class LessonProgress(SQLModel, table=True):
    __tablename__ = "lesson_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_lesson_progress_user_lesson"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id")
    lesson_id: int = Field(foreign_key="lessons.id")
    is_completed: bool = Field(default=False)
    watched_duration: int = Field(default=0)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)


class Subject(SQLModel, table=True):
    __tablename__ = "subjects"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Topic(SQLModel, table=True):
    __tablename__ = "topics"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    subject_id: int = Field(foreign_key="subjects.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class CourseSubject(SQLModel, table=True):
    __tablename__ = "course_subjects"
    __table_args__ = (
        UniqueConstraint("course_id", "subject_id", name="uq_course_subjects_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="courses.id")
    subject_id: int = Field(foreign_key="subjects.id")
    display_order: int = Field(default=0)


class Note(SQLModel, table=True):
    """Downloadable study material (notes, past papers, formula sheets...)."""

    __tablename__ = "notes"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    file_url: str
    file_name: str
    file_size: int
    file_type: str
    note_type: str
    subject_id: int = Field(foreign_key="subjects.id")
    topic_id: Optional[int] = Field(default=None, foreign_key="topics.id")
    year: Optional[int] = None
    is_premium: bool = Field(default=False)
    is_published: bool = Field(default=False)
    download_count: int = Field(default=0)
    uploaded_by: str = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class LiveClass(SQLModel, table=True):
    __tablename__ = "live_classes"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    scheduled_at: datetime = Field(sa_type=UTCDateTime)
    duration_minutes: int
    meeting_id: Optional[str] = None
    join_url: Optional[str] = None
    recording_url: Optional[str] = None
    instructor_id: str = Field(foreign_key="users.id")
    course_id: Optional[int] = Field(default=None, foreign_key="courses.id")
    is_completed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ===================== QUESTION BANK =====================


class Question(SQLModel, table=True):
    """Canonical question record, independent of any exam.

    ``options`` holds ``{"id", "text", "is_correct"}`` dicts for the choice
    types; ``correct_answer`` is the grading key for every type.
    """

    __tablename__ = "questions"

    id: Optional[int] = Field(default=None, primary_key=True)
    question_text: str
    question_type: str  # multiple_choice | true_false | short_answer
    options: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    correct_answer: str = Field(default="")
    explanation: Optional[str] = None
    difficulty: str = Field(default="medium")
    subject_id: int = Field(foreign_key="subjects.id")
    topic_id: Optional[int] = Field(default=None, foreign_key="topics.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ===================== EXAMS =====================


class Exam(SQLModel, table=True):
    __tablename__ = "exams"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    duration_minutes: int
    total_marks: int
    passing_marks: int
    exam_type: Optional[str] = None
    set_number: Optional[int] = None
    is_published: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ExamQuestion(SQLModel, table=True):
    """A question placed in an exam with its marks and display position."""

    __tablename__ = "exam_questions"
    __table_args__ = (
        UniqueConstraint("exam_id", "question_id", name="uq_exam_questions_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exams.id")
    question_id: int = Field(foreign_key="questions.id")
    marks: int
    position: int


class CourseExam(SQLModel, table=True):
    __tablename__ = "course_exams"
    __table_args__ = (
        UniqueConstraint("course_id", "exam_id", name="uq_course_exams_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="courses.id")
    exam_id: int = Field(foreign_key="exams.id")
    display_order: int = Field(default=0)
    is_required: bool = Field(default=False)


class ExamAttempt(SQLModel, table=True):
    """One user's run through an exam.

    The attempt is in progress while ``completed_at`` is null; completing it
    sets ``completed_at`` and ``score`` together.
    """

    __tablename__ = "exam_attempts"

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exams.id")
    user_id: str = Field(foreign_key="users.id")
    started_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    score: Optional[int] = None

    @property
    def status(self) -> str:
        return ATTEMPT_IN_PROGRESS if self.completed_at is None else ATTEMPT_COMPLETED


class ExamAnswer(SQLModel, table=True):
    __tablename__ = "exam_answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_exam_answers_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="exam_attempts.id")
    question_id: int = Field(foreign_key="questions.id")
    selected_answer: str
    is_correct: bool = Field(default=False)
    answered_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
