import pytest

from conftest import as_auth_user, auth_headers
from entrance_pathway.errors import InvalidInputError, InvalidStateError, NotFoundError
from entrance_pathway.models import Note, Question
from entrance_pathway.services import attempts as attempt_service
from entrance_pathway.services import exams as exam_service
from entrance_pathway.services import questions as question_service


def _options(*texts, correct=0):
    return [{"text": text, "is_correct": index == correct} for index, text in enumerate(texts)]


def test_create_multiple_choice_sets_canonical_answer(session, subject, topic):
    question = question_service.create_question(
        session,
        question_text="<p>Speed of light?</p><script>alert(1)</script>",
        question_type="multiple_choice",
        options=_options("3e8 m/s", "3e6 m/s", "340 m/s"),
        difficulty="Medium",
        subject_id=subject.id,
        topic_id=topic.id,
    )
    assert question.correct_answer == "3e8 m/s"
    assert question.difficulty == "medium"
    assert "<script>" not in question.question_text
    assert all(option["id"] for option in question.options)
    assert len({option["id"] for option in question.options}) == 3


@pytest.mark.parametrize(
    "options, field_message",
    [
        (_options("Only one"), "at least 2"),
        (_options("Same", "same"), "unique"),
        ([{"text": "A", "is_correct": True}, {"text": "B", "is_correct": True}], "Exactly one"),
        ([{"text": "A", "is_correct": False}, {"text": "B", "is_correct": False}], "Exactly one"),
        (_options("A", ""), "non-empty"),
        (
            [{"id": "x", "text": "A", "is_correct": True}, {"id": "x", "text": "B", "is_correct": False}],
            "ids must be unique",
        ),
        (
            [{"id": "B", "text": "A", "is_correct": True}, {"id": "A", "text": "B", "is_correct": False}],
            "cannot match the text",
        ),
    ],
)
def test_multiple_choice_option_rules(session, subject, options, field_message):
    with pytest.raises(InvalidInputError) as exc_info:
        question_service.create_question(
            session,
            question_text="Pick one",
            question_type="multiple_choice",
            options=options,
            difficulty="easy",
            subject_id=subject.id,
        )
    assert field_message in exc_info.value.errors["options"]


def test_invalid_difficulty_and_type(session, subject):
    with pytest.raises(InvalidInputError) as exc_info:
        question_service.create_question(
            session,
            question_text="Pick one",
            question_type="essay",
            options=[],
            difficulty="brutal",
            subject_id=subject.id,
        )
    assert {"questionType", "difficulty"} <= set(exc_info.value.errors)


def test_true_false_built_from_correct_answer(session, subject):
    question = question_service.create_question(
        session,
        question_text="Sound travels faster in water than in air.",
        question_type="true_false",
        options=[],
        difficulty="easy",
        subject_id=subject.id,
        correct_answer="true",
    )
    assert [option["text"] for option in question.options] == ["True", "False"]
    assert question.correct_answer == "True"
    assert question_service.is_correct_answer(question, "True") is True
    assert question_service.is_correct_answer(question, "False") is False


def test_short_answer_is_exact_match(session, subject):
    question = question_service.create_question(
        session,
        question_text="SI unit of charge?",
        question_type="short_answer",
        options=None,
        difficulty="easy",
        subject_id=subject.id,
        correct_answer="Coulomb",
    )
    assert question.options == []
    assert question_service.is_correct_answer(question, "Coulomb") is True
    assert question_service.is_correct_answer(question, "coulomb") is False


def test_topic_must_belong_to_subject(session, subject, topic):
    other = question_service.create_subject(session, name="Chemistry")
    with pytest.raises(InvalidInputError) as exc_info:
        question_service.create_question(
            session,
            question_text="Q",
            question_type="short_answer",
            options=[],
            difficulty="easy",
            subject_id=other.id,
            topic_id=topic.id,
            correct_answer="x",
        )
    assert "topicId" in exc_info.value.errors


def test_update_question_replaces_answer_key(session, exam, choice_question):
    updated = question_service.update_question(
        session,
        choice_question.id,
        question_text="Which option is correct now?",
        question_type="multiple_choice",
        options=_options("A", "B", correct=1),
        difficulty="hard",
        subject_id=choice_question.subject_id,
    )
    assert updated.correct_answer == "B"
    assert question_service.is_correct_answer(updated, "B") is True


def test_question_in_use_cannot_be_deleted(session, exam, choice_question, short_answer_question):
    with pytest.raises(InvalidStateError):
        question_service.delete_question(session, choice_question.id)

    question_service.delete_question(session, short_answer_question.id)
    with pytest.raises(NotFoundError):
        question_service.get_question(session, short_answer_question.id)

    exam_service.remove_question_from_exam(session, exam.id, choice_question.id)
    question_service.delete_question(session, choice_question.id)


def test_answered_question_cannot_be_deleted(
    session, enforce_foreign_keys, exam, student_user, choice_question
):
    user = as_auth_user(student_user)
    attempt = attempt_service.start_attempt(session, user, exam.id)
    attempt_service.submit_answer(session, user, attempt.id, choice_question.id, "A")
    attempt_service.complete_attempt(session, user, attempt.id)
    exam_service.remove_question_from_exam(session, exam.id, choice_question.id)

    with pytest.raises(InvalidStateError):
        question_service.delete_question(session, choice_question.id)
    assert question_service.get_question(session, choice_question.id).id == choice_question.id


def test_choice_grading_uses_the_flagged_option_text_only(session, subject):
    # Stored directly: option ids that collide with option texts
    question = Question(
        question_text="Crossed labels",
        question_type="multiple_choice",
        options=[
            {"id": "B", "text": "A", "is_correct": True},
            {"id": "A", "text": "B", "is_correct": False},
        ],
        correct_answer="A",
        difficulty="easy",
        subject_id=subject.id,
    )
    assert question_service.is_correct_answer(question, "A") is True
    assert question_service.is_correct_answer(question, "B") is False


def test_list_questions_filters(session, choice_question, true_false_question, short_answer_question):
    easy = question_service.list_questions(session, difficulty="easy")
    assert {q.id for q in easy} == {choice_question.id, short_answer_question.id}

    page = question_service.list_questions(session, limit=1, offset=0)
    assert len(page) == 1


def test_subject_delete_rules(session, subject, topic, choice_question, mentor_user):
    with pytest.raises(InvalidStateError):
        question_service.delete_subject(session, subject.id)

    empty = question_service.create_subject(session, name="Biology")
    question_service.create_topic(session, empty.id, name="Cells")
    question_service.delete_subject(session, empty.id)
    assert question_service.list_topics(session, empty.id) == []


def test_topic_delete_detaches_notes(session, subject, mentor_user):
    topic = question_service.create_topic(session, subject.id, name="Optics")
    note = Note(
        title="Optics summary",
        file_url="https://files.example.com/optics.pdf",
        file_name="optics.pdf",
        file_size=2048,
        file_type="application/pdf",
        note_type="notes",
        subject_id=subject.id,
        topic_id=topic.id,
        uploaded_by=mentor_user.id,
    )
    session.add(note)
    session.commit()

    question_service.delete_topic(session, topic.id)
    session.refresh(note)
    assert note.topic_id is None


def test_subject_counts(session, subject, topic, choice_question, true_false_question):
    counts = question_service.subject_counts(session, subject.id)
    assert counts == {"topics_count": 1, "questions_count": 2, "notes_count": 0}


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def test_create_question_over_http(client, mentor_user, subject):
    resp = client.post(
        "/questions",
        json={
            "questionText": "2 + 2 = ?",
            "questionType": "multiple_choice",
            "options": [
                {"text": "3", "isCorrect": False},
                {"text": "4", "isCorrect": True},
            ],
            "difficulty": "easy",
            "subjectId": subject.id,
        },
        headers=auth_headers(mentor_user),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["correctAnswer"] == "4"
    assert [option["isCorrect"] for option in body["options"]] == [False, True]


def test_invalid_question_returns_field_errors(client, mentor_user, subject):
    resp = client.post(
        "/questions",
        json={
            "questionText": "",
            "questionType": "multiple_choice",
            "options": [{"text": "Only", "isCorrect": True}],
            "difficulty": "easy",
            "subjectId": subject.id,
        },
        headers=auth_headers(mentor_user),
    )
    assert resp.status_code == 422
    errors = resp.json()["errors"]
    assert "questionText" in errors
    assert "options" in errors


def test_subject_admin_routes(client, admin_user, mentor_user):
    resp = client.post("/subjects", json={"name": "Mathematics"}, headers=auth_headers(mentor_user))
    assert resp.status_code == 403

    resp = client.post("/subjects", json={"name": "Mathematics"}, headers=auth_headers(admin_user))
    assert resp.status_code == 201
    subject_id = resp.json()["id"]

    resp = client.post(f"/subjects/{subject_id}/topics", json={"name": "Calculus"}, headers=auth_headers(admin_user))
    assert resp.status_code == 201

    resp = client.get(f"/subjects/{subject_id}")
    assert resp.json()["topicsCount"] == 1
