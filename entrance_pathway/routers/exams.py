"""Exam management routes: exams, their questions and course links."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from entrance_pathway import config
from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.database import get_session
from entrance_pathway.deps import get_current_user, require_admin, require_staff
from entrance_pathway.errors import NotFoundError
from entrance_pathway.models import Exam
from entrance_pathway.schemas import (
    CourseExamInput,
    CourseExamRead,
    ExamCreate,
    ExamDetail,
    ExamDetailPublic,
    ExamQuestionInput,
    ExamQuestionRead,
    ExamRead,
    ExamUpdate,
    MessageResponse,
    ReorderQuestions,
)
from entrance_pathway.services import exams as exam_service
from entrance_pathway.utils import clamp_page

router = APIRouter()


def _exam_read(session: Session, exam: Exam) -> ExamRead:
    return ExamRead.model_validate(
        {**exam.model_dump(), "questions_count": exam_service.exam_question_count(session, exam.id)}
    )


@router.get("", response_model=List[ExamRead])
def list_exams(
    is_published: Optional[bool] = Query(None, alias="isPublished"),
    course_id: Optional[int] = Query(None, alias="courseId"),
    exam_type: Optional[str] = Query(None, alias="examType"),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    current_user: Optional[AuthUser] = Depends(get_current_user),
):
    """List exams. Students and anonymous callers only ever see published exams."""
    if current_user is None or not current_user.is_staff:
        is_published = True
    limit, offset = clamp_page(limit, offset, config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE)
    exams = exam_service.list_exams(
        session, is_published=is_published, course_id=course_id, exam_type=exam_type, limit=limit, offset=offset
    )
    return [_exam_read(session, exam) for exam in exams]


@router.get("/{exam_id}", response_model=ExamDetail | ExamDetailPublic)
def get_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: Optional[AuthUser] = Depends(get_current_user),
):
    """Exam with its questions in position order.

    Mentors and admins see the answer keys; everyone else gets the questions
    without them, and unpublished exams are hidden.
    """
    is_staff = current_user is not None and current_user.is_staff
    exam = session.get(Exam, exam_id)
    if exam is None or (not exam.is_published and not is_staff):
        raise NotFoundError("Exam")

    items = [
        {**item.model_dump(), "question": question.model_dump()}
        for item, question in exam_service.list_exam_questions(session, exam_id)
    ]
    body = {**exam.model_dump(), "questions_count": len(items), "questions": items}
    if is_staff:
        return ExamDetail.model_validate(body)
    return ExamDetailPublic.model_validate(body)


@router.post("", response_model=ExamRead, status_code=status.HTTP_201_CREATED)
def create_exam(
    payload: ExamCreate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    exam = exam_service.create_exam(
        session,
        title=payload.title,
        duration_minutes=payload.duration_minutes,
        total_marks=payload.total_marks,
        passing_marks=payload.passing_marks,
        description=payload.description,
        exam_type=payload.exam_type,
        set_number=payload.set_number,
        course_id=payload.course_id,
    )
    return _exam_read(session, exam)


@router.patch("/{exam_id}", response_model=ExamRead)
def update_exam(
    exam_id: int,
    payload: ExamUpdate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    exam = exam_service.update_exam(session, exam_id, **payload.model_dump())
    return _exam_read(session, exam)


@router.delete("/{exam_id}", response_model=MessageResponse)
def delete_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    exam_service.delete_exam(session, exam_id)
    return MessageResponse(message="Exam deleted")


# ===================== EXAM QUESTIONS =====================


@router.post("/{exam_id}/questions", response_model=ExamQuestionRead, status_code=status.HTTP_201_CREATED)
def add_question_to_exam(
    exam_id: int,
    payload: ExamQuestionInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return exam_service.add_question_to_exam(session, exam_id, payload.question_id, payload.marks)


@router.delete("/{exam_id}/questions/{question_id}", response_model=MessageResponse)
def remove_question_from_exam(
    exam_id: int,
    question_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    exam_service.remove_question_from_exam(session, exam_id, question_id)
    return MessageResponse(message="Question removed from exam")


@router.put("/{exam_id}/questions/order", response_model=List[ExamQuestionRead])
def reorder_exam_questions(
    exam_id: int,
    payload: ReorderQuestions,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return exam_service.reorder_exam_questions(session, exam_id, payload.question_ids)


# ===================== COURSE LINKS =====================


@router.post("/{exam_id}/courses", response_model=CourseExamRead)
def link_exam_to_course(
    exam_id: int,
    payload: CourseExamInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return exam_service.link_exam_to_course(
        session, exam_id, payload.course_id, display_order=payload.display_order, is_required=payload.is_required
    )


@router.delete("/{exam_id}/courses/{course_id}", response_model=MessageResponse)
def unlink_exam_from_course(
    exam_id: int,
    course_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    exam_service.unlink_exam_from_course(session, exam_id, course_id)
    return MessageResponse(message="Exam unlinked from course")
