"""Course catalog: courses, chapters, lessons, enrollment and lesson progress."""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from entrance_pathway.errors import InvalidInputError, InvalidStateError, NotFoundError, UnauthorizedError
from entrance_pathway.models import (
    Chapter,
    Course,
    CourseExam,
    CourseSubject,
    Enrollment,
    Lesson,
    LessonProgress,
    LiveClass,
    Subject,
)
from entrance_pathway.utils import generate_slug, sanitize_plain_text, utcnow

logger = logging.getLogger(__name__)

COURSE_TITLE_MAX_LENGTH = 120
COURSE_DESCRIPTION_MAX_LENGTH = 5000
CHAPTER_TITLE_MAX_LENGTH = 200

COURSE_FIELDS = (
    "title",
    "full_name",
    "description",
    "thumbnail_url",
    "price",
    "discounted_price",
    "duration_hours",
    "features",
    "is_bestseller",
    "is_published",
)


def _validate_course_inputs(values: dict) -> dict[str, str]:
    """Validate course fields and return error dictionary."""
    errors: dict[str, str] = {}

    title = values.get("title")
    if not title:
        errors["title"] = "Course title is required."
    elif len(title) > COURSE_TITLE_MAX_LENGTH:
        errors["title"] = f"Course title must be at most {COURSE_TITLE_MAX_LENGTH} characters."
    elif not generate_slug(title):
        errors["title"] = "Course title must contain letters or digits."

    description = values.get("description") or ""
    if len(description) > COURSE_DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"Description must be at most {COURSE_DESCRIPTION_MAX_LENGTH} characters."

    price = values.get("price")
    if price is None or price < 0:
        errors["price"] = "Price must be zero or more."
    discounted = values.get("discounted_price")
    if discounted is not None and price is not None and not 0 <= discounted <= price:
        errors["discountedPrice"] = "Discounted price must be between 0 and the price."

    duration = values.get("duration_hours")
    if duration is not None and duration < 0:
        errors["durationHours"] = "Duration cannot be negative."

    return errors


def _unique_slug(session: Session, title: str, course_id: Optional[int] = None) -> str:
    base = generate_slug(title)
    slug, suffix = base, 2
    while True:
        existing = session.exec(select(Course).where(Course.slug == slug)).first()
        if existing is None or existing.id == course_id:
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


def _check_course_owner(user, course: Course) -> None:
    if course.instructor_id != user.id and not user.is_admin:
        raise UnauthorizedError("Only the course instructor or an admin can modify this course")


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


def get_course(session: Session, course_id: Optional[int] = None, slug: Optional[str] = None) -> Course:
    if course_id is None and not slug:
        raise InvalidInputError({"id": "Either id or slug must be provided."})
    if course_id is not None:
        course = session.get(Course, course_id)
    else:
        course = session.exec(select(Course).where(Course.slug == slug)).first()
    if not course:
        raise NotFoundError("Course")
    return course


def list_courses(
    session: Session, is_published: Optional[bool] = None, limit: int = 10, offset: int = 0
) -> List[Course]:
    stmt = select(Course)
    if is_published is not None:
        stmt = stmt.where(Course.is_published == is_published)
    stmt = stmt.order_by(Course.created_at.desc(), Course.id.desc()).offset(offset).limit(limit)
    return session.exec(stmt).all()


def create_course(session: Session, user, **fields) -> Course:
    """Create an unpublished course owned by the calling mentor/admin."""
    values = {key: fields.get(key) for key in COURSE_FIELDS if key != "is_published"}
    values["title"] = sanitize_plain_text(values.get("title")) or ""
    values["description"] = sanitize_plain_text(values.get("description")) or ""
    if values.get("price") is None:
        values["price"] = 0
    errors = _validate_course_inputs(values)
    if errors:
        raise InvalidInputError(errors)

    course = Course(
        **{key: value for key, value in values.items() if value is not None},
        slug=_unique_slug(session, values["title"]),
        instructor_id=user.id,
        is_published=False,
    )
    session.add(course)
    session.commit()
    session.refresh(course)
    logger.info("User %s created course %s (%s)", user.id, course.id, course.slug)
    return course


def update_course(session: Session, user, course_id: int, **fields) -> Course:
    course = get_course(session, course_id)
    _check_course_owner(user, course)

    updates = {key: value for key, value in fields.items() if key in COURSE_FIELDS and value is not None}
    if "title" in updates:
        updates["title"] = sanitize_plain_text(updates["title"]) or ""
    if "description" in updates:
        updates["description"] = sanitize_plain_text(updates["description"]) or ""

    merged = {key: getattr(course, key) for key in COURSE_FIELDS}
    merged.update(updates)
    errors = _validate_course_inputs(merged)
    if errors:
        raise InvalidInputError(errors)

    if "title" in updates and updates["title"] != course.title:
        course.slug = _unique_slug(session, updates["title"], course.id)
    for key, value in updates.items():
        setattr(course, key, value)
    course.updated_at = utcnow()

    session.add(course)
    session.commit()
    session.refresh(course)
    return course


def publish_course(session: Session, user, course_id: int) -> Course:
    return update_course(session, user, course_id, is_published=True)


def delete_course(session: Session, user, course_id: int) -> None:
    """Delete a course together with its chapters, lessons and links.

    Live classes scheduled for the course are kept and detached from it.
    """
    course = get_course(session, course_id)
    _check_course_owner(user, course)

    chapters = session.exec(select(Chapter).where(Chapter.course_id == course_id)).all()
    for chapter in chapters:
        _delete_lessons(session, select(Lesson).where(Lesson.chapter_id == chapter.id))
    session.flush()
    for chapter in chapters:
        session.delete(chapter)
    for model in (CourseExam, CourseSubject, Enrollment):
        for row in session.exec(select(model).where(model.course_id == course_id)).all():
            session.delete(row)
    for live_class in session.exec(select(LiveClass).where(LiveClass.course_id == course_id)).all():
        live_class.course_id = None
        session.add(live_class)
    session.flush()
    session.delete(course)
    session.commit()
    logger.info("User %s deleted course %s", user.id, course_id)


def course_counts(session: Session, course_id: int) -> dict[str, int]:
    """Chapter, lesson, enrollment and exam counts for one course."""
    chapters = session.exec(select(func.count(Chapter.id)).where(Chapter.course_id == course_id)).one()
    lessons = session.exec(
        select(func.count(Lesson.id))
        .join(Chapter, Chapter.id == Lesson.chapter_id)
        .where(Chapter.course_id == course_id)
    ).one()
    enrollments = session.exec(
        select(func.count(Enrollment.id)).where(Enrollment.course_id == course_id)
    ).one()
    exams = session.exec(select(func.count(CourseExam.id)).where(CourseExam.course_id == course_id)).one()
    return {
        "chapters_count": chapters,
        "lessons_count": lessons,
        "enrollments_count": enrollments,
        "exams_count": exams,
    }


# ---------------------------------------------------------------------------
# Chapters & lessons
# ---------------------------------------------------------------------------


def _validate_title(title: Optional[str], errors: dict[str, str], required: bool = True) -> Optional[str]:
    cleaned = sanitize_plain_text(title)
    if cleaned is None:
        if required:
            errors["title"] = "Title is required."
        return None
    if not cleaned:
        errors["title"] = "Title is required."
    elif len(cleaned) > CHAPTER_TITLE_MAX_LENGTH:
        errors["title"] = f"Title must be at most {CHAPTER_TITLE_MAX_LENGTH} characters."
    return cleaned


def _renumber(session: Session, rows) -> None:
    for position, row in enumerate(rows):
        if row.position != position:
            row.position = position
            session.add(row)


def _reorder(session: Session, rows, ids: List[int], field: str) -> None:
    by_id = {row.id: row for row in rows}
    if len(ids) != len(rows) or set(ids) != set(by_id):
        raise InvalidInputError({field: "Must list every item exactly once."})
    _renumber(session, [by_id[row_id] for row_id in ids])
    session.commit()


def list_chapters(session: Session, course_id: int, published_only: bool = False) -> List[Chapter]:
    stmt = select(Chapter).where(Chapter.course_id == course_id)
    if published_only:
        stmt = stmt.where(Chapter.is_published.is_(True))
    return session.exec(stmt.order_by(Chapter.position)).all()


def get_chapter(session: Session, chapter_id: int) -> Chapter:
    chapter = session.get(Chapter, chapter_id)
    if not chapter:
        raise NotFoundError("Chapter")
    return chapter


def create_chapter(
    session: Session, user, course_id: int, title: str, description: Optional[str] = None
) -> Chapter:
    course = get_course(session, course_id)
    _check_course_owner(user, course)
    errors: dict[str, str] = {}
    cleaned = _validate_title(title, errors)
    if errors:
        raise InvalidInputError(errors)

    position = len(list_chapters(session, course_id))
    chapter = Chapter(
        course_id=course_id,
        title=cleaned,
        description=sanitize_plain_text(description),
        position=position,
    )
    session.add(chapter)
    session.commit()
    session.refresh(chapter)
    return chapter


def update_chapter(
    session: Session,
    user,
    chapter_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    is_published: Optional[bool] = None,
) -> Chapter:
    chapter = get_chapter(session, chapter_id)
    _check_course_owner(user, get_course(session, chapter.course_id))
    errors: dict[str, str] = {}
    cleaned = _validate_title(title, errors, required=False)
    if errors:
        raise InvalidInputError(errors)

    if cleaned is not None:
        chapter.title = cleaned
    if description is not None:
        chapter.description = sanitize_plain_text(description)
    if is_published is not None:
        chapter.is_published = is_published
    chapter.updated_at = utcnow()
    session.add(chapter)
    session.commit()
    session.refresh(chapter)
    return chapter


def delete_chapter(session: Session, user, chapter_id: int) -> None:
    chapter = get_chapter(session, chapter_id)
    _check_course_owner(user, get_course(session, chapter.course_id))

    _delete_lessons(session, select(Lesson).where(Lesson.chapter_id == chapter_id))
    session.delete(chapter)
    session.flush()
    _renumber(session, list_chapters(session, chapter.course_id))
    session.commit()


def reorder_chapters(session: Session, user, course_id: int, chapter_ids: List[int]) -> List[Chapter]:
    _check_course_owner(user, get_course(session, course_id))
    _reorder(session, list_chapters(session, course_id), chapter_ids, "chapterIds")
    return list_chapters(session, course_id)


def list_lessons(session: Session, chapter_id: int, published_only: bool = False) -> List[Lesson]:
    stmt = select(Lesson).where(Lesson.chapter_id == chapter_id)
    if published_only:
        stmt = stmt.where(Lesson.is_published.is_(True))
    return session.exec(stmt.order_by(Lesson.position)).all()


def get_lesson(session: Session, lesson_id: int) -> Lesson:
    lesson = session.get(Lesson, lesson_id)
    if not lesson:
        raise NotFoundError("Lesson")
    return lesson


def _lesson_owner_check(session: Session, user, chapter_id: int) -> Chapter:
    chapter = get_chapter(session, chapter_id)
    _check_course_owner(user, get_course(session, chapter.course_id))
    return chapter


def create_lesson(
    session: Session,
    user,
    chapter_id: int,
    title: str,
    description: Optional[str] = None,
    video_url: Optional[str] = None,
    duration: Optional[int] = None,
    is_free: Optional[bool] = None,
) -> Lesson:
    _lesson_owner_check(session, user, chapter_id)
    errors: dict[str, str] = {}
    cleaned = _validate_title(title, errors)
    if duration is not None and duration < 0:
        errors["duration"] = "Duration cannot be negative."
    if errors:
        raise InvalidInputError(errors)

    lesson = Lesson(
        chapter_id=chapter_id,
        title=cleaned,
        description=sanitize_plain_text(description),
        video_url=video_url,
        duration=duration,
        is_free=bool(is_free),
        position=len(list_lessons(session, chapter_id)),
    )
    session.add(lesson)
    session.commit()
    session.refresh(lesson)
    return lesson


def update_lesson(
    session: Session,
    user,
    lesson_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    video_url: Optional[str] = None,
    duration: Optional[int] = None,
    is_free: Optional[bool] = None,
    is_published: Optional[bool] = None,
) -> Lesson:
    lesson = get_lesson(session, lesson_id)
    _lesson_owner_check(session, user, lesson.chapter_id)
    errors: dict[str, str] = {}
    cleaned = _validate_title(title, errors, required=False)
    if duration is not None and duration < 0:
        errors["duration"] = "Duration cannot be negative."
    if errors:
        raise InvalidInputError(errors)

    if cleaned is not None:
        lesson.title = cleaned
    if description is not None:
        lesson.description = sanitize_plain_text(description)
    if video_url is not None:
        lesson.video_url = video_url or None
    if duration is not None:
        lesson.duration = duration
    if is_free is not None:
        lesson.is_free = is_free
    if is_published is not None:
        lesson.is_published = is_published
    lesson.updated_at = utcnow()
    session.add(lesson)
    session.commit()
    session.refresh(lesson)
    return lesson


def _delete_lessons(session: Session, stmt) -> None:
    for lesson in session.exec(stmt).all():
        for progress in session.exec(select(LessonProgress).where(LessonProgress.lesson_id == lesson.id)).all():
            session.delete(progress)
        session.flush()
        session.delete(lesson)


def delete_lesson(session: Session, user, lesson_id: int) -> None:
    lesson = get_lesson(session, lesson_id)
    _lesson_owner_check(session, user, lesson.chapter_id)
    _delete_lessons(session, select(Lesson).where(Lesson.id == lesson_id))
    session.flush()
    _renumber(session, list_lessons(session, lesson.chapter_id))
    session.commit()


def reorder_lessons(session: Session, user, chapter_id: int, lesson_ids: List[int]) -> List[Lesson]:
    _lesson_owner_check(session, user, chapter_id)
    _reorder(session, list_lessons(session, chapter_id), lesson_ids, "lessonIds")
    return list_lessons(session, chapter_id)


# ---------------------------------------------------------------------------
# Enrollment & progress
# ---------------------------------------------------------------------------


def enroll_in_course(session: Session, user, course_id: int) -> Enrollment:
    course = get_course(session, course_id)
    if not course.is_published and not user.is_staff:
        raise NotFoundError("Course")

    existing = session.exec(
        select(Enrollment).where(Enrollment.user_id == user.id, Enrollment.course_id == course_id)
    ).first()
    if existing:
        raise InvalidStateError("Already enrolled in this course")

    enrollment = Enrollment(user_id=user.id, course_id=course_id, progress=0)
    session.add(enrollment)
    session.commit()
    session.refresh(enrollment)
    logger.info("User %s enrolled in course %s", user.id, course_id)
    return enrollment


def list_enrollments(session: Session, user, user_id: str) -> List[Enrollment]:
    if user_id != user.id and not user.is_admin:
        raise UnauthorizedError("You can only view your own enrollments")
    return session.exec(
        select(Enrollment).where(Enrollment.user_id == user_id).order_by(Enrollment.enrolled_at.desc())
    ).all()


def _refresh_enrollment_progress(session: Session, user_id: str, course_id: int) -> None:
    enrollment = session.exec(
        select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
    ).first()
    if enrollment is None:
        return

    lesson_ids = session.exec(
        select(Lesson.id).join(Chapter, Chapter.id == Lesson.chapter_id).where(Chapter.course_id == course_id)
    ).all()
    if not lesson_ids:
        return
    completed = session.exec(
        select(func.count(LessonProgress.id)).where(
            LessonProgress.user_id == user_id,
            LessonProgress.lesson_id.in_(lesson_ids),
            LessonProgress.is_completed.is_(True),
        )
    ).one()

    enrollment.progress = round(100 * completed / len(lesson_ids))
    if enrollment.progress >= 100 and enrollment.completed_at is None:
        enrollment.completed_at = utcnow()
    session.add(enrollment)


def update_lesson_progress(
    session: Session, user, lesson_id: int, watched_duration: int, is_completed: Optional[bool] = None
) -> LessonProgress:
    """Upsert the caller's progress on a lesson and refresh course progress."""
    lesson = get_lesson(session, lesson_id)
    if watched_duration < 0:
        raise InvalidInputError({"watchedDuration": "Watched duration cannot be negative."})

    progress = session.exec(
        select(LessonProgress).where(LessonProgress.user_id == user.id, LessonProgress.lesson_id == lesson_id)
    ).first()
    if progress is None:
        progress = LessonProgress(user_id=user.id, lesson_id=lesson_id)

    progress.watched_duration = watched_duration
    if is_completed is not None:
        progress.is_completed = is_completed
        progress.completed_at = utcnow() if is_completed else None
    session.add(progress)
    session.flush()

    chapter = get_chapter(session, lesson.chapter_id)
    _refresh_enrollment_progress(session, user.id, chapter.course_id)
    session.commit()
    session.refresh(progress)
    return progress


# ---------------------------------------------------------------------------
# Course subjects
# ---------------------------------------------------------------------------


def list_course_subjects(session: Session, course_id: int) -> List[CourseSubject]:
    return session.exec(
        select(CourseSubject).where(CourseSubject.course_id == course_id).order_by(CourseSubject.display_order)
    ).all()


def link_subject_to_course(
    session: Session, course_id: int, subject_id: int, display_order: Optional[int] = None
) -> CourseSubject:
    get_course(session, course_id)
    if session.get(Subject, subject_id) is None:
        raise NotFoundError("Subject")
    if display_order is not None and display_order < 0:
        raise InvalidInputError({"displayOrder": "Display order cannot be negative."})

    links = list_course_subjects(session, course_id)
    link = next((row for row in links if row.subject_id == subject_id), None)
    if link is None:
        next_order = max((row.display_order for row in links), default=-1) + 1
        link = CourseSubject(course_id=course_id, subject_id=subject_id, display_order=next_order)
    if display_order is not None:
        link.display_order = display_order

    session.add(link)
    session.commit()
    session.refresh(link)
    return link


def unlink_subject_from_course(session: Session, course_id: int, subject_id: int) -> None:
    link = session.exec(
        select(CourseSubject).where(CourseSubject.course_id == course_id, CourseSubject.subject_id == subject_id)
    ).first()
    if link is None:
        raise NotFoundError("Course subject")
    session.delete(link)
    session.commit()


def reorder_course_subjects(session: Session, course_id: int, subject_ids: List[int]) -> List[CourseSubject]:
    get_course(session, course_id)
    links = list_course_subjects(session, course_id)
    by_subject = {link.subject_id: link for link in links}
    if len(subject_ids) != len(links) or set(subject_ids) != set(by_subject):
        raise InvalidInputError({"subjectIds": "Must list every subject of the course exactly once."})

    for order, subject_id in enumerate(subject_ids):
        by_subject[subject_id].display_order = order
        session.add(by_subject[subject_id])
    session.commit()
    return list_course_subjects(session, course_id)
