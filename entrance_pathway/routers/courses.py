"""Course catalog routes: courses, chapters, lessons, enrollment and links."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from entrance_pathway import config
from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.database import get_session
from entrance_pathway.deps import get_current_user, require_login, require_staff
from entrance_pathway.errors import NotFoundError
from entrance_pathway.models import Course
from entrance_pathway.schemas import (
    ChapterInput,
    ChapterRead,
    CourseCreate,
    CourseDetail,
    CourseExamRead,
    CourseRead,
    CourseSubjectInput,
    CourseSubjectRead,
    CourseUpdate,
    EnrolledCourseRead,
    EnrollmentRead,
    LessonInput,
    LessonProgressInput,
    LessonProgressRead,
    LessonRead,
    MessageResponse,
    ReorderChapters,
    ReorderExams,
    ReorderLessons,
    ReorderSubjects,
)
from entrance_pathway.services import catalog
from entrance_pathway.services import exams as exam_service
from entrance_pathway.utils import clamp_page

router = APIRouter()


def _course_body(session: Session, course: Course) -> dict:
    return {**course.model_dump(), **catalog.course_counts(session, course.id)}


def _can_manage(user: Optional[AuthUser], course: Course) -> bool:
    return user is not None and (user.is_admin or (user.is_staff and course.instructor_id == user.id))


def _course_detail(session: Session, course: Course, user: Optional[AuthUser]) -> CourseDetail:
    """Course with chapters and lessons; drafts are only listed for those who manage the course."""
    if not course.is_published and not _can_manage(user, course):
        raise NotFoundError("Course")
    published_only = not _can_manage(user, course)
    chapters = []
    for chapter in catalog.list_chapters(session, course.id, published_only=published_only):
        lessons = catalog.list_lessons(session, chapter.id, published_only=published_only)
        chapters.append({**chapter.model_dump(), "lessons": [lesson.model_dump() for lesson in lessons]})
    return CourseDetail.model_validate({**_course_body(session, course), "chapters": chapters})


# ===================== COURSES =====================


@router.get("/courses", response_model=List[CourseRead])
def list_courses(
    is_published: Optional[bool] = Query(None, alias="isPublished"),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    current_user: Optional[AuthUser] = Depends(get_current_user),
):
    if current_user is None or not current_user.is_staff:
        is_published = True
    limit, offset = clamp_page(limit, offset, config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE)
    courses = catalog.list_courses(session, is_published=is_published, limit=limit, offset=offset)
    return [CourseRead.model_validate(_course_body(session, course)) for course in courses]


@router.get("/courses/slug/{slug}", response_model=CourseDetail)
def get_course_by_slug(
    slug: str,
    session: Session = Depends(get_session),
    current_user: Optional[AuthUser] = Depends(get_current_user),
):
    return _course_detail(session, catalog.get_course(session, slug=slug), current_user)


@router.get("/courses/{course_id}", response_model=CourseDetail)
def get_course(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: Optional[AuthUser] = Depends(get_current_user),
):
    return _course_detail(session, catalog.get_course(session, course_id), current_user)


@router.post("/courses", response_model=CourseRead, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    course = catalog.create_course(session, current_user, **payload.model_dump())
    return CourseRead.model_validate(_course_body(session, course))


@router.patch("/courses/{course_id}", response_model=CourseRead)
def update_course(
    course_id: int,
    payload: CourseUpdate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    course = catalog.update_course(session, current_user, course_id, **payload.model_dump())
    return CourseRead.model_validate(_course_body(session, course))


@router.post("/courses/{course_id}/publish", response_model=CourseRead)
def publish_course(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    course = catalog.publish_course(session, current_user, course_id)
    return CourseRead.model_validate(_course_body(session, course))


@router.delete("/courses/{course_id}", response_model=MessageResponse)
def delete_course(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    catalog.delete_course(session, current_user, course_id)
    return MessageResponse(message="Course deleted")


# ===================== CHAPTERS & LESSONS =====================


@router.post("/courses/{course_id}/chapters", response_model=ChapterRead, status_code=status.HTTP_201_CREATED)
def create_chapter(
    course_id: int,
    payload: ChapterInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.create_chapter(session, current_user, course_id, payload.title, payload.description)


@router.put("/courses/{course_id}/chapters/order", response_model=List[ChapterRead])
def reorder_chapters(
    course_id: int,
    payload: ReorderChapters,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.reorder_chapters(session, current_user, course_id, payload.chapter_ids)


@router.patch("/chapters/{chapter_id}", response_model=ChapterRead)
def update_chapter(
    chapter_id: int,
    payload: ChapterInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.update_chapter(
        session,
        current_user,
        chapter_id,
        title=payload.title,
        description=payload.description,
        is_published=payload.is_published,
    )


@router.delete("/chapters/{chapter_id}", response_model=MessageResponse)
def delete_chapter(
    chapter_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    catalog.delete_chapter(session, current_user, chapter_id)
    return MessageResponse(message="Chapter deleted")


@router.post("/chapters/{chapter_id}/lessons", response_model=LessonRead, status_code=status.HTTP_201_CREATED)
def create_lesson(
    chapter_id: int,
    payload: LessonInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.create_lesson(
        session,
        current_user,
        chapter_id,
        payload.title,
        description=payload.description,
        video_url=payload.video_url,
        duration=payload.duration,
        is_free=payload.is_free,
    )


@router.put("/chapters/{chapter_id}/lessons/order", response_model=List[LessonRead])
def reorder_lessons(
    chapter_id: int,
    payload: ReorderLessons,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.reorder_lessons(session, current_user, chapter_id, payload.lesson_ids)


@router.patch("/lessons/{lesson_id}", response_model=LessonRead)
def update_lesson(
    lesson_id: int,
    payload: LessonInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.update_lesson(session, current_user, lesson_id, **payload.model_dump())


@router.delete("/lessons/{lesson_id}", response_model=MessageResponse)
def delete_lesson(
    lesson_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    catalog.delete_lesson(session, current_user, lesson_id)
    return MessageResponse(message="Lesson deleted")


# ===================== ENROLLMENT =====================


@router.post("/courses/{course_id}/enroll", response_model=EnrollmentRead, status_code=status.HTTP_201_CREATED)
def enroll_in_course(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    return catalog.enroll_in_course(session, current_user, course_id)


@router.get("/users/{user_id}/enrollments", response_model=List[EnrolledCourseRead])
def enrolled_courses(
    user_id: str,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    results = []
    for enrollment in catalog.list_enrollments(session, current_user, user_id):
        course = catalog.get_course(session, enrollment.course_id)
        results.append({**enrollment.model_dump(), "course": _course_body(session, course)})
    return [EnrolledCourseRead.model_validate(item) for item in results]


@router.put("/lessons/{lesson_id}/progress", response_model=LessonProgressRead)
def update_lesson_progress(
    lesson_id: int,
    payload: LessonProgressInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    return catalog.update_lesson_progress(
        session, current_user, lesson_id, payload.watched_duration, is_completed=payload.is_completed
    )


# ===================== COURSE SUBJECTS & EXAMS =====================


@router.get("/courses/{course_id}/subjects", response_model=List[CourseSubjectRead])
def list_course_subjects(course_id: int, session: Session = Depends(get_session)):
    catalog.get_course(session, course_id)
    return catalog.list_course_subjects(session, course_id)


@router.post("/courses/{course_id}/subjects", response_model=CourseSubjectRead)
def link_subject_to_course(
    course_id: int,
    payload: CourseSubjectInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.link_subject_to_course(
        session, course_id, payload.subject_id, display_order=payload.display_order
    )


@router.delete("/courses/{course_id}/subjects/{subject_id}", response_model=MessageResponse)
def unlink_subject_from_course(
    course_id: int,
    subject_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    catalog.unlink_subject_from_course(session, course_id, subject_id)
    return MessageResponse(message="Subject unlinked from course")


@router.put("/courses/{course_id}/subjects/order", response_model=List[CourseSubjectRead])
def reorder_course_subjects(
    course_id: int,
    payload: ReorderSubjects,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return catalog.reorder_course_subjects(session, course_id, payload.subject_ids)


@router.get("/courses/{course_id}/exams", response_model=List[CourseExamRead])
def course_exams(course_id: int, session: Session = Depends(get_session)):
    catalog.get_course(session, course_id)
    return exam_service.list_course_exams(session, course_id)


@router.put("/courses/{course_id}/exams/order", response_model=List[CourseExamRead])
def reorder_course_exams(
    course_id: int,
    payload: ReorderExams,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return exam_service.reorder_course_exams(session, course_id, payload.exam_ids)
