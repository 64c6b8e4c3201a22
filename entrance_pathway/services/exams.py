"""Exam assembly: exam records, their question line items and course links."""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from entrance_pathway.errors import InvalidInputError, InvalidStateError, NotFoundError
from entrance_pathway.models import (
    EXAM_TYPES,
    Course,
    CourseExam,
    Exam,
    ExamAttempt,
    ExamQuestion,
    Question,
)
from entrance_pathway.utils import sanitize_plain_text, utcnow, validate_marks

logger = logging.getLogger(__name__)

EXAM_TITLE_MAX_LENGTH = 200
EXAM_DESCRIPTION_MAX_LENGTH = 2000
EXAM_DURATION_MAX_MINUTES = 600


def _validate_exam_inputs(
    title: str,
    description: Optional[str],
    duration_minutes: Optional[int],
    total_marks: Optional[int],
    passing_marks: Optional[int],
    exam_type: Optional[str],
    set_number: Optional[int],
) -> dict[str, str]:
    """Validate exam fields and return error dictionary."""
    errors: dict[str, str] = {}

    if not title:
        errors["title"] = "Title is required."
    elif len(title) > EXAM_TITLE_MAX_LENGTH:
        errors["title"] = f"Title must be at most {EXAM_TITLE_MAX_LENGTH} characters."

    if description and len(description) > EXAM_DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"Description must be at most {EXAM_DESCRIPTION_MAX_LENGTH} characters."

    if duration_minutes is None:
        errors["durationMinutes"] = "Duration is required."
    elif duration_minutes < 1:
        errors["durationMinutes"] = "Duration must be at least 1 minute."
    elif duration_minutes > EXAM_DURATION_MAX_MINUTES:
        errors["durationMinutes"] = f"Duration cannot exceed {EXAM_DURATION_MAX_MINUTES} minutes."

    if total_marks is None:
        errors["totalMarks"] = "Total marks is required."
    elif total_marks < 1:
        errors["totalMarks"] = "Total marks must be at least 1."

    if passing_marks is None:
        errors["passingMarks"] = "Passing marks is required."
    elif passing_marks < 0:
        errors["passingMarks"] = "Passing marks cannot be negative."
    elif total_marks is not None and passing_marks > total_marks:
        errors["passingMarks"] = "Passing marks cannot exceed total marks."

    if exam_type is not None and exam_type not in EXAM_TYPES:
        errors["examType"] = f"Exam type must be one of: {', '.join(EXAM_TYPES)}."

    if set_number is not None and set_number < 1:
        errors["setNumber"] = "Set number must be at least 1."

    return errors


def get_exam(session: Session, exam_id: int) -> Exam:
    exam = session.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam")
    return exam


def _get_course(session: Session, course_id: int) -> Course:
    course = session.get(Course, course_id)
    if not course:
        raise NotFoundError("Course")
    return course


def create_exam(
    session: Session,
    title: str,
    duration_minutes: int,
    total_marks: int,
    passing_marks: int,
    description: Optional[str] = None,
    exam_type: Optional[str] = None,
    set_number: Optional[int] = None,
    course_id: Optional[int] = None,
) -> Exam:
    """Create an unpublished exam, optionally linked to a course."""
    title = sanitize_plain_text(title) or ""
    description = sanitize_plain_text(description)
    errors = _validate_exam_inputs(
        title, description, duration_minutes, total_marks, passing_marks, exam_type, set_number
    )
    if course_id is not None and session.get(Course, course_id) is None:
        errors["courseId"] = "Course does not exist."
    if errors:
        raise InvalidInputError(errors)

    exam = Exam(
        title=title,
        description=description or None,
        duration_minutes=duration_minutes,
        total_marks=total_marks,
        passing_marks=passing_marks,
        exam_type=exam_type,
        set_number=set_number,
        is_published=False,
    )
    session.add(exam)
    session.commit()
    session.refresh(exam)
    logger.info("Created exam %s (%s)", exam.id, exam.title)

    if course_id is not None:
        link_exam_to_course(session, exam.id, course_id)
    return exam


def update_exam(
    session: Session,
    exam_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    total_marks: Optional[int] = None,
    passing_marks: Optional[int] = None,
    exam_type: Optional[str] = None,
    set_number: Optional[int] = None,
    is_published: Optional[bool] = None,
) -> Exam:
    """Update the given fields; invariants are checked against the merged exam."""
    exam = get_exam(session, exam_id)

    merged_title = sanitize_plain_text(title) if title is not None else exam.title
    merged_description = sanitize_plain_text(description) if description is not None else exam.description
    merged = {
        "duration_minutes": duration_minutes if duration_minutes is not None else exam.duration_minutes,
        "total_marks": total_marks if total_marks is not None else exam.total_marks,
        "passing_marks": passing_marks if passing_marks is not None else exam.passing_marks,
        "exam_type": exam_type if exam_type is not None else exam.exam_type,
        "set_number": set_number if set_number is not None else exam.set_number,
    }
    errors = _validate_exam_inputs(merged_title or "", merged_description, **merged)
    if errors:
        raise InvalidInputError(errors)

    exam.title = merged_title
    exam.description = merged_description or None
    for key, value in merged.items():
        setattr(exam, key, value)
    if is_published is not None:
        exam.is_published = is_published
    exam.updated_at = utcnow()

    session.add(exam)
    session.commit()
    session.refresh(exam)
    return exam


def delete_exam(session: Session, exam_id: int) -> None:
    """Delete an exam and its assembly rows; refused once attempts exist."""
    exam = get_exam(session, exam_id)
    if session.exec(select(ExamAttempt.id).where(ExamAttempt.exam_id == exam_id)).first():
        raise InvalidStateError("Exam has attempts and cannot be deleted; unpublish it instead")

    for row in session.exec(select(ExamQuestion).where(ExamQuestion.exam_id == exam_id)).all():
        session.delete(row)
    for row in session.exec(select(CourseExam).where(CourseExam.exam_id == exam_id)).all():
        session.delete(row)
    session.delete(exam)
    session.commit()
    logger.info("Deleted exam %s", exam_id)


def list_exams(
    session: Session,
    is_published: Optional[bool] = None,
    course_id: Optional[int] = None,
    exam_type: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
) -> List[Exam]:
    """List exams; filtering by course returns them in the course's display order."""
    if course_id is not None:
        stmt = (
            select(Exam)
            .join(CourseExam, CourseExam.exam_id == Exam.id)
            .where(CourseExam.course_id == course_id)
            .order_by(CourseExam.display_order)
        )
    else:
        stmt = select(Exam).order_by(Exam.created_at.desc(), Exam.id.desc())

    if is_published is not None:
        stmt = stmt.where(Exam.is_published == is_published)
    if exam_type:
        stmt = stmt.where(Exam.exam_type == exam_type)
    return session.exec(stmt.offset(offset).limit(limit)).all()


# ---------------------------------------------------------------------------
# Exam questions
# ---------------------------------------------------------------------------


def list_exam_questions(session: Session, exam_id: int) -> List[Tuple[ExamQuestion, Question]]:
    """Line items of an exam with their questions, in position order."""
    stmt = (
        select(ExamQuestion, Question)
        .join(Question, Question.id == ExamQuestion.question_id)
        .where(ExamQuestion.exam_id == exam_id)
        .order_by(ExamQuestion.position)
    )
    return session.exec(stmt).all()


def exam_question_count(session: Session, exam_id: int) -> int:
    return session.exec(select(func.count(ExamQuestion.id)).where(ExamQuestion.exam_id == exam_id)).one()


def _exam_rows(session: Session, exam_id: int) -> List[ExamQuestion]:
    return session.exec(
        select(ExamQuestion).where(ExamQuestion.exam_id == exam_id).order_by(ExamQuestion.position)
    ).all()


def add_question_to_exam(session: Session, exam_id: int, question_id: int, marks: int) -> ExamQuestion:
    """Append a question to the end of an exam."""
    get_exam(session, exam_id)
    if session.get(Question, question_id) is None:
        raise NotFoundError("Question")

    try:
        validate_marks(marks)
    except ValueError as e:
        raise InvalidInputError({"marks": str(e)})

    rows = _exam_rows(session, exam_id)
    if any(row.question_id == question_id for row in rows):
        raise InvalidInputError({"questionId": "Question is already part of this exam."})

    item = ExamQuestion(exam_id=exam_id, question_id=question_id, marks=marks, position=len(rows))
    session.add(item)
    session.commit()
    session.refresh(item)
    logger.info("Added question %s to exam %s at position %s", question_id, exam_id, item.position)
    return item


def remove_question_from_exam(session: Session, exam_id: int, question_id: int) -> None:
    """Remove a question from an exam and close the gap in positions."""
    get_exam(session, exam_id)
    rows = _exam_rows(session, exam_id)
    target = next((row for row in rows if row.question_id == question_id), None)
    if target is None:
        raise NotFoundError("Exam question")

    session.delete(target)
    for position, row in enumerate(r for r in rows if r is not target):
        if row.position != position:
            row.position = position
            session.add(row)
    session.commit()
    logger.info("Removed question %s from exam %s", question_id, exam_id)


def reorder_exam_questions(session: Session, exam_id: int, question_ids: List[int]) -> List[ExamQuestion]:
    get_exam(session, exam_id)
    rows = _exam_rows(session, exam_id)
    by_question = {row.question_id: row for row in rows}
    if len(question_ids) != len(rows) or set(question_ids) != set(by_question):
        raise InvalidInputError({"questionIds": "Must list every question of the exam exactly once."})

    for position, question_id in enumerate(question_ids):
        row = by_question[question_id]
        row.position = position
        session.add(row)
    session.commit()
    return _exam_rows(session, exam_id)


# ---------------------------------------------------------------------------
# Course links
# ---------------------------------------------------------------------------


def _course_links(session: Session, course_id: int) -> List[CourseExam]:
    return session.exec(
        select(CourseExam).where(CourseExam.course_id == course_id).order_by(CourseExam.display_order)
    ).all()


def link_exam_to_course(
    session: Session,
    exam_id: int,
    course_id: int,
    display_order: Optional[int] = None,
    is_required: Optional[bool] = None,
) -> CourseExam:
    """Link an exam to a course, or update an existing link (upsert)."""
    get_exam(session, exam_id)
    _get_course(session, course_id)
    if display_order is not None and display_order < 0:
        raise InvalidInputError({"displayOrder": "Display order cannot be negative."})

    links = _course_links(session, course_id)
    link = next((row for row in links if row.exam_id == exam_id), None)
    if link is None:
        next_order = max((row.display_order for row in links), default=-1) + 1
        link = CourseExam(
            course_id=course_id,
            exam_id=exam_id,
            display_order=next_order if display_order is None else display_order,
            is_required=bool(is_required),
        )
    else:
        if display_order is not None:
            link.display_order = display_order
        if is_required is not None:
            link.is_required = is_required

    session.add(link)
    session.commit()
    session.refresh(link)
    return link


def unlink_exam_from_course(session: Session, exam_id: int, course_id: int) -> None:
    link = session.exec(
        select(CourseExam).where(CourseExam.course_id == course_id, CourseExam.exam_id == exam_id)
    ).first()
    if link is None:
        raise NotFoundError("Course exam")
    session.delete(link)
    session.commit()


def reorder_course_exams(session: Session, course_id: int, exam_ids: List[int]) -> List[CourseExam]:
    _get_course(session, course_id)
    links = _course_links(session, course_id)
    by_exam = {link.exam_id: link for link in links}
    if len(exam_ids) != len(links) or set(exam_ids) != set(by_exam):
        raise InvalidInputError({"examIds": "Must list every exam of the course exactly once."})

    for order, exam_id in enumerate(exam_ids):
        by_exam[exam_id].display_order = order
        session.add(by_exam[exam_id])
    session.commit()
    return _course_links(session, course_id)


def list_course_exams(session: Session, course_id: int) -> List[CourseExam]:
    return _course_links(session, course_id)


def exam_courses(session: Session, exam_id: int) -> List[Course]:
    stmt = (
        select(Course)
        .join(CourseExam, CourseExam.course_id == Course.id)
        .where(CourseExam.exam_id == exam_id)
        .order_by(Course.title)
    )
    return session.exec(stmt).all()
