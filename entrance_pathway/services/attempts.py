"""Exam attempt engine: start, answer, complete and score.

An attempt is ``in_progress`` while ``completed_at`` is null and ``completed``
once it is set. Every mutation checks the current state first and rejects
invalid transitions with :class:`InvalidStateError`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from entrance_pathway import config
from entrance_pathway.errors import (
    InvalidInputError,
    InvalidReferenceError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from entrance_pathway.models import Exam, ExamAnswer, ExamAttempt, ExamQuestion, Question
from entrance_pathway.services.questions import is_correct_answer
from entrance_pathway.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

EXPIRY_OFF = "off"
EXPIRY_HARD = "hard"
EXPIRY_AUTO_COMPLETE = "auto_complete"
EXPIRY_MODES = (EXPIRY_OFF, EXPIRY_HARD, EXPIRY_AUTO_COMPLETE)

SELECTED_ANSWER_MAX_LENGTH = 1000


@dataclass(frozen=True)
class ExpiryPolicy:
    """How the exam duration is enforced once an attempt runs over time.

    ``off`` never expires attempts. ``hard`` rejects answers after the
    deadline but still lets the attempt be completed. ``auto_complete``
    closes the attempt with its recorded answers on the first late answer.
    """

    mode: str = EXPIRY_HARD
    grace_seconds: int = 0

    def __post_init__(self):
        if self.mode not in EXPIRY_MODES:
            raise ValueError(f"Unknown expiry policy {self.mode!r}")

    def is_expired(self, attempt: ExamAttempt, exam: Exam, now: datetime) -> bool:
        if self.mode == EXPIRY_OFF:
            return False
        return as_utc(now) > attempt_deadline(attempt, exam) + timedelta(seconds=self.grace_seconds)


def default_policy() -> ExpiryPolicy:
    return ExpiryPolicy(mode=config.EXAM_EXPIRY_POLICY, grace_seconds=config.EXAM_EXPIRY_GRACE_SECONDS)


def attempt_deadline(attempt: ExamAttempt, exam: Exam) -> datetime:
    return as_utc(attempt.started_at) + timedelta(minutes=exam.duration_minutes)


def _find_in_progress_attempt(session: Session, exam_id: int, user_id: str) -> Optional[ExamAttempt]:
    stmt = (
        select(ExamAttempt)
        .where(
            (ExamAttempt.exam_id == exam_id)
            & (ExamAttempt.user_id == user_id)
            & (ExamAttempt.completed_at.is_(None))
        )
        .order_by(ExamAttempt.started_at.desc())
    )
    return session.exec(stmt).first()


def _get_owned_attempt(session: Session, user, attempt_id: int) -> ExamAttempt:
    """Load an attempt for mutation, locking its row where the database supports it."""
    stmt = select(ExamAttempt).where(ExamAttempt.id == attempt_id).with_for_update()
    attempt = session.exec(stmt).first()
    if attempt is None:
        raise NotFoundError("Exam attempt")
    if attempt.user_id != user.id:
        raise UnauthorizedError("You can only modify your own exam attempts")
    return attempt


def compute_score(session: Session, attempt: ExamAttempt) -> int:
    """Sum the marks of the exam questions this attempt answered correctly."""
    stmt = (
        select(func.coalesce(func.sum(ExamQuestion.marks), 0))
        .select_from(ExamAnswer)
        .join(
            ExamQuestion,
            (ExamQuestion.question_id == ExamAnswer.question_id)
            & (ExamQuestion.exam_id == attempt.exam_id),
        )
        .where(ExamAnswer.attempt_id == attempt.id, ExamAnswer.is_correct.is_(True))
    )
    return int(session.exec(stmt).one())


def _close_attempt(session: Session, attempt: ExamAttempt, now: datetime) -> ExamAttempt:
    attempt.score = compute_score(session, attempt)
    attempt.completed_at = now
    session.add(attempt)
    session.commit()
    session.refresh(attempt)
    logger.info(
        "Completed attempt %s on exam %s for user %s with score %s",
        attempt.id,
        attempt.exam_id,
        attempt.user_id,
        attempt.score,
    )
    return attempt


def start_attempt(
    session: Session,
    user,
    exam_id: int,
    now: Optional[datetime] = None,
    policy: Optional[ExpiryPolicy] = None,
) -> ExamAttempt:
    """Start an attempt for the calling user, or resume the one already open.

    Unpublished exams are only visible to mentors and admins. An open attempt
    that has run past its deadline is completed first and a new one started.
    """
    now = as_utc(now) if now else utcnow()
    policy = policy or default_policy()

    exam = session.get(Exam, exam_id)
    if exam is None or (not exam.is_published and not user.is_staff):
        raise NotFoundError("Exam")

    attempt = _find_in_progress_attempt(session, exam_id, user.id)
    if attempt:
        if not policy.is_expired(attempt, exam, now):
            return attempt
        logger.info("Closing expired attempt %s before starting a new one", attempt.id)
        _close_attempt(session, attempt, now)

    attempt = ExamAttempt(exam_id=exam_id, user_id=user.id, started_at=now)
    session.add(attempt)
    session.commit()
    session.refresh(attempt)
    logger.info("Started attempt %s on exam %s for user %s", attempt.id, exam_id, user.id)
    return attempt


def submit_answer(
    session: Session,
    user,
    attempt_id: int,
    question_id: int,
    selected_answer: str,
    now: Optional[datetime] = None,
    policy: Optional[ExpiryPolicy] = None,
) -> ExamAnswer:
    """Record (or overwrite) the caller's answer to one question of the attempt.

    Correctness is graded now and stored on the row; resubmitting regrades.
    """
    now = as_utc(now) if now else utcnow()
    policy = policy or default_policy()

    if selected_answer is None or not selected_answer.strip():
        raise InvalidInputError({"selectedAnswer": "An answer is required."})
    if len(selected_answer) > SELECTED_ANSWER_MAX_LENGTH:
        raise InvalidInputError(
            {"selectedAnswer": f"Answer must be at most {SELECTED_ANSWER_MAX_LENGTH} characters."}
        )

    attempt = _get_owned_attempt(session, user, attempt_id)
    if attempt.completed_at is not None:
        logger.warning("Rejected answer for completed attempt %s", attempt_id)
        raise InvalidStateError("Exam attempt is already completed")

    exam = session.get(Exam, attempt.exam_id)
    if policy.is_expired(attempt, exam, now):
        logger.warning("Rejected late answer for attempt %s (policy %s)", attempt_id, policy.mode)
        if policy.mode == EXPIRY_AUTO_COMPLETE:
            _close_attempt(session, attempt, now)
            raise InvalidStateError("Time is up; the attempt has been completed")
        raise InvalidStateError("Time is up for this exam attempt")

    exam_question = session.exec(
        select(ExamQuestion).where(
            ExamQuestion.exam_id == attempt.exam_id, ExamQuestion.question_id == question_id
        )
    ).first()
    if exam_question is None:
        raise InvalidReferenceError(f"Question {question_id} is not part of this exam")

    question = session.get(Question, question_id)
    is_correct = is_correct_answer(question, selected_answer)

    stmt = select(ExamAnswer).where(
        (ExamAnswer.attempt_id == attempt_id) & (ExamAnswer.question_id == question_id)
    )
    answer = session.exec(stmt).first()
    if answer is None:
        answer = ExamAnswer(attempt_id=attempt_id, question_id=question_id, selected_answer=selected_answer)
    answer.selected_answer = selected_answer
    answer.is_correct = is_correct
    answer.answered_at = now
    session.add(answer)
    try:
        session.commit()
    except IntegrityError:
        # A concurrent submission created the row first; last write wins
        # unless the attempt was completed in the meantime.
        session.rollback()
        attempt = _get_owned_attempt(session, user, attempt_id)
        if attempt.completed_at is not None:
            logger.warning("Rejected answer for attempt %s completed during submission", attempt_id)
            raise InvalidStateError("Exam attempt is already completed")
        answer = session.exec(stmt).one()
        answer.selected_answer = selected_answer
        answer.is_correct = is_correct
        answer.answered_at = now
        session.add(answer)
        session.commit()
    session.refresh(answer)
    return answer


def complete_attempt(session: Session, user, attempt_id: int, now: Optional[datetime] = None) -> ExamAttempt:
    """Close the caller's attempt and write its score. Not repeatable."""
    attempt = _get_owned_attempt(session, user, attempt_id)
    if attempt.completed_at is not None:
        logger.warning("Rejected second completion of attempt %s", attempt_id)
        raise InvalidStateError("Exam attempt is already completed")
    return _close_attempt(session, attempt, as_utc(now) if now else utcnow())


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


def get_attempt(session: Session, user, attempt_id: int) -> ExamAttempt:
    """Return an attempt visible to the caller (its owner or an admin)."""
    attempt = session.get(ExamAttempt, attempt_id)
    if attempt is None:
        raise NotFoundError("Exam attempt")
    if attempt.user_id != user.id and not user.is_admin:
        raise UnauthorizedError("You can only view your own exam attempts")
    return attempt


def list_answers(session: Session, attempt_id: int) -> List[ExamAnswer]:
    return session.exec(
        select(ExamAnswer).where(ExamAnswer.attempt_id == attempt_id).order_by(ExamAnswer.id)
    ).all()


def list_user_attempts(session: Session, user, user_id: str, exam_id: Optional[int] = None) -> List[ExamAttempt]:
    """Attempts of ``user_id``, newest first; callers may only list their own unless admin."""
    if user_id != user.id and not user.is_admin:
        raise UnauthorizedError("You can only view your own exam attempts")

    stmt = select(ExamAttempt).where(ExamAttempt.user_id == user_id)
    if exam_id is not None:
        stmt = stmt.where(ExamAttempt.exam_id == exam_id)
    stmt = stmt.order_by(ExamAttempt.started_at.desc(), ExamAttempt.id.desc())
    return session.exec(stmt).all()
