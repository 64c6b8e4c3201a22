from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from conftest import as_auth_user
from entrance_pathway.errors import (
    InvalidInputError,
    InvalidReferenceError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from entrance_pathway.models import ExamAnswer, ExamAttempt
from entrance_pathway.services import attempts as attempt_service
from entrance_pathway.services.attempts import ExpiryPolicy
from entrance_pathway.utils import utcnow

NO_EXPIRY = ExpiryPolicy(mode="off")


def test_scenario_mixed_answers_scores_only_correct_marks(
    session, student_user, exam, choice_question, true_false_question
):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    assert attempt.status == "in_progress"
    assert attempt.score is None

    first = attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "A", policy=NO_EXPIRY)
    second = attempt_service.submit_answer(
        session, user, attempt.id, true_false_question.id, "False", policy=NO_EXPIRY
    )
    assert first.is_correct is True
    assert second.is_correct is False

    completed = attempt_service.complete_attempt(session, user, attempt.id)
    assert completed.score == 5
    assert completed.completed_at is not None
    assert completed.status == "completed"


def test_resubmitting_overwrites_answer_and_regrades(session, student_user, exam, choice_question):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)

    attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "A", policy=NO_EXPIRY)
    latest = attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "B", policy=NO_EXPIRY)
    assert latest.is_correct is False

    rows = session.exec(select(ExamAnswer).where(ExamAnswer.attempt_id == attempt.id)).all()
    assert len(rows) == 1
    assert rows[0].selected_answer == "B"

    completed = attempt_service.complete_attempt(session, user, attempt.id)
    assert completed.score == 0


def test_choice_answer_is_graded_by_option_text_not_id(session, student_user, exam, choice_question):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)

    answer = attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "opt-a", policy=NO_EXPIRY)
    assert answer.is_correct is False


def test_timestamps_are_timezone_aware_utc(session, student_user, exam):
    user = as_auth_user(student_user)
    naive_start = datetime(2030, 1, 1, 9, 0)
    attempt = attempt_service.start_attempt(session, user, exam.id, now=naive_start, policy=NO_EXPIRY)

    session.expire_all()
    stored = session.get(ExamAttempt, attempt.id)
    assert stored.started_at == datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)
    assert attempt_service.attempt_deadline(stored, exam) == datetime(2030, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_unanswered_exam_scores_zero(session, student_user, exam):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)

    completed = attempt_service.complete_attempt(session, user, attempt.id)
    assert completed.score == 0


def test_completing_twice_is_rejected_and_keeps_first_result(session, student_user, exam, choice_question):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "A", policy=NO_EXPIRY)
    first = attempt_service.complete_attempt(session, user, attempt.id)
    first_completed_at = first.completed_at

    with pytest.raises(InvalidStateError):
        attempt_service.complete_attempt(session, user, attempt.id, now=utcnow() + timedelta(minutes=5))

    session.expire_all()
    stored = session.get(ExamAttempt, attempt.id)
    assert stored.score == 5
    assert stored.completed_at == first_completed_at


def test_start_on_missing_exam_creates_nothing(session, student_user):
    with pytest.raises(NotFoundError):
        attempt_service.start_attempt(session, as_auth_user(student_user), 9999)

    assert session.exec(select(ExamAttempt)).all() == []


def test_students_cannot_start_unpublished_exam(session, student_user, mentor_user, draft_exam):
    with pytest.raises(NotFoundError):
        attempt_service.start_attempt(session, as_auth_user(student_user), draft_exam.id)

    preview = attempt_service.start_attempt(session, as_auth_user(mentor_user), draft_exam.id)
    assert preview.user_id == mentor_user.id


def test_start_resumes_open_attempt_and_allows_retake_after_completion(session, student_user, exam):
    user = as_auth_user(student_user)
    first = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    again = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    assert again.id == first.id

    attempt_service.complete_attempt(session, user, first.id)
    retake = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    assert retake.id != first.id
    assert retake.status == "in_progress"


def test_question_outside_exam_is_invalid_reference(session, student_user, exam, short_answer_question):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)

    with pytest.raises(InvalidReferenceError):
        attempt_service.submit_answer(
            session, user, attempt.id, short_answer_question.id, "Newton", policy=NO_EXPIRY
        )
    assert session.exec(select(ExamAnswer)).all() == []


def test_submit_after_completion_is_rejected(session, student_user, exam, choice_question):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    attempt_service.complete_attempt(session, user, attempt.id)

    with pytest.raises(InvalidStateError):
        attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "A", policy=NO_EXPIRY)


def test_other_users_cannot_touch_an_attempt(session, student_user, other_student, exam, choice_question):
    attempt = attempt_service.start_attempt(session, as_auth_user(student_user), exam.id, policy=NO_EXPIRY)
    intruder = as_auth_user(other_student)

    with pytest.raises(UnauthorizedError):
        attempt_service.submit_answer(session, intruder, attempt.id, choice_question.id, "A", policy=NO_EXPIRY)
    with pytest.raises(UnauthorizedError):
        attempt_service.complete_attempt(session, intruder, attempt.id)
    with pytest.raises(UnauthorizedError):
        attempt_service.get_attempt(session, intruder, attempt.id)


def test_submit_to_missing_attempt_is_not_found(session, student_user, choice_question):
    with pytest.raises(NotFoundError):
        attempt_service.submit_answer(
            session, as_auth_user(student_user), 424242, choice_question.id, "A", policy=NO_EXPIRY
        )


def test_blank_answer_is_invalid_input(session, student_user, exam, choice_question):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)

    with pytest.raises(InvalidInputError) as exc_info:
        attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "   ", policy=NO_EXPIRY)
    assert "selectedAnswer" in exc_info.value.errors


def _lose_insert_race(session, monkeypatch, attempt_id, question_id, complete_attempt=False):
    """Make the next commit fail as if another request had inserted the same answer first."""
    real_commit = session.commit
    calls = []

    def racing_commit():
        if calls:
            return real_commit()
        calls.append(True)
        for obj in [obj for obj in session.new if isinstance(obj, ExamAnswer)]:
            session.expunge(obj)
        session.add(ExamAnswer(attempt_id=attempt_id, question_id=question_id, selected_answer="C"))
        if complete_attempt:
            attempt = session.get(ExamAttempt, attempt_id)
            attempt.completed_at = utcnow()
            attempt.score = 0
            session.add(attempt)
        real_commit()
        raise IntegrityError("INSERT INTO exam_answers", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(session, "commit", racing_commit)


def test_concurrent_insert_is_overwritten_by_last_write(
    session, monkeypatch, student_user, exam, choice_question
):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    _lose_insert_race(session, monkeypatch, attempt.id, choice_question.id)

    answer = attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "A", policy=NO_EXPIRY)
    assert answer.selected_answer == "A"
    assert answer.is_correct is True

    rows = session.exec(select(ExamAnswer).where(ExamAnswer.attempt_id == attempt.id)).all()
    assert [(row.selected_answer, row.is_correct) for row in rows] == [("A", True)]


def test_concurrent_insert_after_completion_is_rejected(
    session, monkeypatch, student_user, exam, choice_question
):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)
    _lose_insert_race(session, monkeypatch, attempt.id, choice_question.id, complete_attempt=True)

    with pytest.raises(InvalidStateError):
        attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "A", policy=NO_EXPIRY)

    session.expire_all()
    rows = session.exec(select(ExamAnswer).where(ExamAnswer.attempt_id == attempt.id)).all()
    assert [row.selected_answer for row in rows] == ["C"]


# ---------------------------------------------------------------------------
# Expiry policies
# ---------------------------------------------------------------------------


def test_hard_expiry_rejects_late_answers_but_allows_completion(session, student_user, exam, choice_question):
    user = as_auth_user(student_user)
    policy = ExpiryPolicy(mode="hard", grace_seconds=30)
    started = utcnow()
    attempt = attempt_service.start_attempt(session, user, exam.id, now=started, policy=policy)
    attempt_service.submit_answer(
        session, user, attempt.id, choice_question.id, "A", now=started + timedelta(minutes=10), policy=policy
    )

    # Inside the grace period the answer is still accepted
    attempt_service.submit_answer(
        session,
        user,
        attempt.id,
        choice_question.id,
        "A",
        now=started + timedelta(minutes=60, seconds=20),
        policy=policy,
    )

    with pytest.raises(InvalidStateError):
        attempt_service.submit_answer(
            session, user, attempt.id, choice_question.id, "B", now=started + timedelta(minutes=61), policy=policy
        )

    completed = attempt_service.complete_attempt(session, user, attempt.id, now=started + timedelta(minutes=90))
    assert completed.score == 5


def test_auto_complete_expiry_closes_attempt_on_late_answer(session, student_user, exam, choice_question):
    user = as_auth_user(student_user)
    policy = ExpiryPolicy(mode="auto_complete", grace_seconds=0)
    started = utcnow()
    attempt = attempt_service.start_attempt(session, user, exam.id, now=started, policy=policy)
    attempt_service.submit_answer(
        session, user, attempt.id, choice_question.id, "A", now=started + timedelta(minutes=5), policy=policy
    )

    with pytest.raises(InvalidStateError):
        attempt_service.submit_answer(
            session, user, attempt.id, choice_question.id, "B", now=started + timedelta(minutes=61), policy=policy
        )

    session.expire_all()
    stored = session.get(ExamAttempt, attempt.id)
    assert stored.status == "completed"
    assert stored.score == 5


def test_expired_open_attempt_is_closed_before_a_new_start(session, student_user, exam):
    user = as_auth_user(student_user)
    policy = ExpiryPolicy(mode="hard")
    started = utcnow() - timedelta(hours=3)
    stale = attempt_service.start_attempt(session, user, exam.id, now=started, policy=policy)

    fresh = attempt_service.start_attempt(session, user, exam.id, policy=policy)
    assert fresh.id != stale.id

    session.expire_all()
    assert session.get(ExamAttempt, stale.id).status == "completed"


def test_unknown_expiry_mode_is_rejected():
    with pytest.raises(ValueError):
        ExpiryPolicy(mode="sometimes")


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


def test_user_attempts_are_listed_newest_first(session, student_user, exam):
    user = as_auth_user(student_user)
    first = attempt_service.start_attempt(session, user, exam.id, now=utcnow() - timedelta(hours=2), policy=NO_EXPIRY)
    attempt_service.complete_attempt(session, user, first.id)
    second = attempt_service.start_attempt(session, user, exam.id, policy=NO_EXPIRY)

    attempts = attempt_service.list_user_attempts(session, user, student_user.id, exam_id=exam.id)
    assert [a.id for a in attempts] == [second.id, first.id]


def test_students_cannot_list_other_users_attempts(session, student_user, other_student, admin_user):
    with pytest.raises(UnauthorizedError):
        attempt_service.list_user_attempts(session, as_auth_user(other_student), student_user.id)

    assert attempt_service.list_user_attempts(session, as_auth_user(admin_user), student_user.id) == []
