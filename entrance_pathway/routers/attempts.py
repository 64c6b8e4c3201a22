"""Exam attempt routes: start, answer, complete and review."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.database import get_session
from entrance_pathway.deps import require_login
from entrance_pathway.models import Exam, ExamAttempt
from entrance_pathway.schemas import AnswerInput, AnswerRead, AttemptDetail, AttemptRead
from entrance_pathway.services import attempts as attempt_service

router = APIRouter()


def _attempt_body(session: Session, attempt: ExamAttempt) -> dict:
    exam = session.get(Exam, attempt.exam_id)
    passed = None if attempt.score is None else attempt.score >= exam.passing_marks
    return {
        **attempt.model_dump(),
        "status": attempt.status,
        "expires_at": attempt_service.attempt_deadline(attempt, exam),
        "passed": passed,
    }


@router.post("/exams/{exam_id}/attempts", response_model=AttemptRead)
def start_exam_attempt(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    """Start an attempt for the caller, or resume the one still in progress."""
    attempt = attempt_service.start_attempt(session, current_user, exam_id)
    return AttemptRead.model_validate(_attempt_body(session, attempt))


@router.post("/attempts/{attempt_id}/answers", response_model=AnswerRead)
def submit_exam_answer(
    attempt_id: int,
    payload: AnswerInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    """Record an answer. Correctness stays hidden until the attempt is completed."""
    answer = attempt_service.submit_answer(
        session, current_user, attempt_id, payload.question_id, payload.selected_answer
    )
    return AnswerRead.model_validate(answer)


@router.post("/attempts/{attempt_id}/complete", response_model=AttemptRead)
def complete_exam_attempt(
    attempt_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    attempt = attempt_service.complete_attempt(session, current_user, attempt_id)
    return AttemptRead.model_validate(_attempt_body(session, attempt))


@router.get("/attempts/{attempt_id}", response_model=AttemptDetail)
def get_exam_attempt(
    attempt_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    attempt = attempt_service.get_attempt(session, current_user, attempt_id)
    reveal = attempt.completed_at is not None or current_user.is_admin
    answers = [
        {**answer.model_dump(), "is_correct": answer.is_correct if reveal else None}
        for answer in attempt_service.list_answers(session, attempt_id)
    ]
    return AttemptDetail.model_validate({**_attempt_body(session, attempt), "answers": answers})


@router.get("/users/{user_id}/attempts", response_model=List[AttemptRead])
def user_exam_attempts(
    user_id: str,
    exam_id: Optional[int] = Query(None, alias="examId"),
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    """Attempts of a user, newest first. Students may only list their own."""
    attempts = attempt_service.list_user_attempts(session, current_user, user_id, exam_id=exam_id)
    return [AttemptRead.model_validate(_attempt_body(session, attempt)) for attempt in attempts]
