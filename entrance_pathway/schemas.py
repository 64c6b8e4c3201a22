"""Request and response bodies. Field names are camelCase on the wire."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(CamelModel):
    message: str


# ===================== USERS =====================


class UserRead(CamelModel):
    id: str
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    role: str
    created_at: datetime


class ProfileUpdate(CamelModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None


class RoleUpdate(CamelModel):
    role: str


# ===================== SUBJECTS & TOPICS =====================


class SubjectInput(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class SubjectRead(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    topics_count: int = 0
    questions_count: int = 0
    notes_count: int = 0


class TopicInput(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None


class TopicRead(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    subject_id: int
    questions_count: int = 0


# ===================== QUESTIONS =====================


class OptionInput(CamelModel):
    id: Optional[str] = None
    text: str = ""
    is_correct: bool = False


class OptionRead(CamelModel):
    id: str
    text: str
    is_correct: bool


class OptionPublic(CamelModel):
    id: str
    text: str


class QuestionInput(CamelModel):
    question_text: str = ""
    question_type: str = ""
    options: List[OptionInput] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    difficulty: str = "medium"
    subject_id: int
    topic_id: Optional[int] = None


class QuestionRead(CamelModel):
    """Full question including the answer key (staff only)."""

    id: int
    question_text: str
    question_type: str
    options: List[OptionRead]
    correct_answer: str
    explanation: Optional[str] = None
    difficulty: str
    subject_id: int
    topic_id: Optional[int] = None


class QuestionPublic(CamelModel):
    """Question as shown to a candidate taking the exam."""

    id: int
    question_text: str
    question_type: str
    options: List[OptionPublic]
    difficulty: str


# ===================== EXAMS =====================


class ExamCreate(CamelModel):
    title: str = ""
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    total_marks: Optional[int] = None
    passing_marks: Optional[int] = None
    exam_type: Optional[str] = None
    set_number: Optional[int] = None
    course_id: Optional[int] = None


class ExamUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    total_marks: Optional[int] = None
    passing_marks: Optional[int] = None
    exam_type: Optional[str] = None
    set_number: Optional[int] = None
    is_published: Optional[bool] = None


class ExamRead(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    duration_minutes: int
    total_marks: int
    passing_marks: int
    exam_type: Optional[str] = None
    set_number: Optional[int] = None
    is_published: bool
    questions_count: int = 0
    created_at: datetime


class ExamQuestionInput(CamelModel):
    question_id: int
    marks: int


class ExamQuestionRead(CamelModel):
    id: int
    exam_id: int
    question_id: int
    marks: int
    position: int


class ExamQuestionDetail(ExamQuestionRead):
    question: QuestionRead


class ExamQuestionPublic(ExamQuestionRead):
    question: QuestionPublic


class ExamDetail(ExamRead):
    questions: List[ExamQuestionDetail] = Field(default_factory=list)


class ExamDetailPublic(ExamRead):
    questions: List[ExamQuestionPublic] = Field(default_factory=list)


class ReorderQuestions(CamelModel):
    question_ids: List[int]


class CourseExamInput(CamelModel):
    course_id: int
    display_order: Optional[int] = None
    is_required: Optional[bool] = None


class CourseExamRead(CamelModel):
    id: int
    course_id: int
    exam_id: int
    display_order: int
    is_required: bool


class ReorderExams(CamelModel):
    exam_ids: List[int]


# ===================== ATTEMPTS =====================


class AnswerInput(CamelModel):
    question_id: int
    selected_answer: str


class AnswerRead(CamelModel):
    id: int
    attempt_id: int
    question_id: int
    selected_answer: str
    answered_at: datetime


class AttemptAnswerRead(AnswerRead):
    # Null while the attempt is still running, unless an admin is reading
    is_correct: Optional[bool] = None


class AttemptRead(CamelModel):
    id: int
    exam_id: int
    user_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    status: str
    expires_at: datetime
    passed: Optional[bool] = None


class AttemptDetail(AttemptRead):
    answers: List[AttemptAnswerRead] = Field(default_factory=list)


# ===================== CATALOG =====================


class CourseCreate(CamelModel):
    title: str = ""
    full_name: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    price: Optional[float] = None
    discounted_price: Optional[float] = None
    duration_hours: Optional[int] = None
    features: Optional[List[str]] = None
    is_bestseller: Optional[bool] = None


class CourseUpdate(CourseCreate):
    title: Optional[str] = None
    is_published: Optional[bool] = None


class CourseRead(CamelModel):
    id: int
    title: str
    full_name: Optional[str] = None
    description: str
    slug: str
    thumbnail_url: Optional[str] = None
    price: float
    discounted_price: Optional[float] = None
    duration_hours: Optional[int] = None
    features: List[str] = Field(default_factory=list)
    is_bestseller: bool
    is_published: bool
    instructor_id: str
    chapters_count: int = 0
    lessons_count: int = 0
    enrollments_count: int = 0
    exams_count: int = 0
    created_at: datetime


class ChapterInput(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_published: Optional[bool] = None


class LessonRead(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[int] = None
    position: int
    is_published: bool
    is_free: bool
    chapter_id: int


class ChapterRead(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    position: int
    is_published: bool
    course_id: int


class ChapterDetail(ChapterRead):
    lessons: List[LessonRead] = Field(default_factory=list)


class CourseDetail(CourseRead):
    chapters: List[ChapterDetail] = Field(default_factory=list)


class LessonInput(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[int] = None
    is_free: Optional[bool] = None
    is_published: Optional[bool] = None


class ReorderChapters(CamelModel):
    chapter_ids: List[int]


class ReorderLessons(CamelModel):
    lesson_ids: List[int]


class EnrollmentRead(CamelModel):
    id: int
    user_id: str
    course_id: int
    enrolled_at: datetime
    completed_at: Optional[datetime] = None
    progress: int


class EnrolledCourseRead(EnrollmentRead):
    course: CourseRead


class LessonProgressInput(CamelModel):
    watched_duration: int = 0
    is_completed: Optional[bool] = None


class LessonProgressRead(CamelModel):
    id: int
    user_id: str
    lesson_id: int
    is_completed: bool
    watched_duration: int
    completed_at: Optional[datetime] = None


class CourseSubjectInput(CamelModel):
    subject_id: int
    display_order: Optional[int] = None


class CourseSubjectRead(CamelModel):
    id: int
    course_id: int
    subject_id: int
    display_order: int


class ReorderSubjects(CamelModel):
    subject_ids: List[int]


# ===================== NOTES =====================


class NoteCreate(CamelModel):
    title: str = ""
    description: Optional[str] = None
    file_url: str = ""
    file_name: str = ""
    file_size: Optional[int] = None
    file_type: str = ""
    note_type: str = ""
    subject_id: Optional[int] = None
    topic_id: Optional[int] = None
    year: Optional[int] = None
    is_premium: Optional[bool] = None


class NoteUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    note_type: Optional[str] = None
    subject_id: Optional[int] = None
    topic_id: Optional[int] = None
    year: Optional[int] = None
    is_premium: Optional[bool] = None


class NoteRead(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    file_url: str
    file_name: str
    file_size: int
    file_type: str
    note_type: str
    subject_id: int
    topic_id: Optional[int] = None
    year: Optional[int] = None
    is_premium: bool
    is_published: bool
    download_count: int
    uploaded_by: str
    created_at: datetime


# ===================== LIVE CLASSES =====================


class LiveClassCreate(CamelModel):
    title: str = ""
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    meeting_id: Optional[str] = None
    join_url: Optional[str] = None
    course_id: Optional[int] = None


class LiveClassUpdate(LiveClassCreate):
    title: Optional[str] = None


class LiveClassComplete(CamelModel):
    recording_url: Optional[str] = None


class LiveClassRead(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    scheduled_at: datetime
    duration_minutes: int
    meeting_id: Optional[str] = None
    join_url: Optional[str] = None
    recording_url: Optional[str] = None
    instructor_id: str
    course_id: Optional[int] = None
    is_completed: bool
