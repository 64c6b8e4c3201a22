"""Question bank: subjects, topics and canonical questions."""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from entrance_pathway.errors import InvalidInputError, InvalidStateError, NotFoundError
from entrance_pathway.models import (
    DIFFICULTY_LEVELS,
    QUESTION_TYPES,
    CourseSubject,
    ExamAnswer,
    ExamQuestion,
    Note,
    Question,
    Subject,
    Topic,
)
from entrance_pathway.utils import sanitize_plain_text, sanitize_question_text, utcnow

logger = logging.getLogger(__name__)

# Validation constraints
QUESTION_TEXT_MAX_LENGTH = 5000
OPTION_TEXT_MAX_LENGTH = 1000
ANSWER_MAX_LENGTH = 1000
NAME_MAX_LENGTH = 120
MIN_CHOICE_OPTIONS = 2
TRUE_FALSE_LABELS = ("True", "False")


# ---------------------------------------------------------------------------
# Subjects & topics
# ---------------------------------------------------------------------------


def _validate_name(name: Optional[str], errors: dict[str, str], required: bool = True) -> Optional[str]:
    cleaned = sanitize_plain_text(name)
    if cleaned is None:
        if required:
            errors["name"] = "Name is required."
        return None
    if not cleaned:
        errors["name"] = "Name is required."
    elif len(cleaned) > NAME_MAX_LENGTH:
        errors["name"] = f"Name must be at most {NAME_MAX_LENGTH} characters."
    return cleaned


def list_subjects(session: Session) -> List[Subject]:
    return session.exec(select(Subject).order_by(Subject.name)).all()


def get_subject(session: Session, subject_id: int) -> Subject:
    subject = session.get(Subject, subject_id)
    if not subject:
        raise NotFoundError("Subject")
    return subject


def subject_counts(session: Session, subject_id: int) -> dict[str, int]:
    """Topic, question and published-note counts for one subject."""
    topics = session.exec(select(func.count(Topic.id)).where(Topic.subject_id == subject_id)).one()
    questions = session.exec(
        select(func.count(Question.id)).where(Question.subject_id == subject_id)
    ).one()
    notes = session.exec(
        select(func.count(Note.id)).where(Note.subject_id == subject_id, Note.is_published.is_(True))
    ).one()
    return {"topics_count": topics, "questions_count": questions, "notes_count": notes}


def create_subject(
    session: Session, name: str, description: Optional[str] = None, icon: Optional[str] = None
) -> Subject:
    errors: dict[str, str] = {}
    cleaned = _validate_name(name, errors)
    if errors:
        raise InvalidInputError(errors)

    subject = Subject(name=cleaned, description=sanitize_plain_text(description), icon=icon)
    session.add(subject)
    session.commit()
    session.refresh(subject)
    return subject


def update_subject(
    session: Session,
    subject_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    icon: Optional[str] = None,
) -> Subject:
    subject = get_subject(session, subject_id)
    errors: dict[str, str] = {}
    cleaned = _validate_name(name, errors, required=False)
    if errors:
        raise InvalidInputError(errors)

    if cleaned is not None:
        subject.name = cleaned
    if description is not None:
        subject.description = sanitize_plain_text(description)
    if icon is not None:
        subject.icon = icon
    subject.updated_at = utcnow()
    session.add(subject)
    session.commit()
    session.refresh(subject)
    return subject


def delete_subject(session: Session, subject_id: int) -> None:
    """Delete a subject with its topics; refused while questions or notes use it."""
    subject = get_subject(session, subject_id)
    in_use = session.exec(select(Question.id).where(Question.subject_id == subject_id)).first()
    in_use = in_use or session.exec(select(Note.id).where(Note.subject_id == subject_id)).first()
    if in_use:
        raise InvalidStateError("Subject still has questions or notes")

    for topic in session.exec(select(Topic).where(Topic.subject_id == subject_id)).all():
        session.delete(topic)
    for link in session.exec(select(CourseSubject).where(CourseSubject.subject_id == subject_id)).all():
        session.delete(link)
    session.delete(subject)
    session.commit()


def list_topics(session: Session, subject_id: int) -> List[Topic]:
    return session.exec(select(Topic).where(Topic.subject_id == subject_id).order_by(Topic.name)).all()


def get_topic(session: Session, topic_id: int) -> Topic:
    topic = session.get(Topic, topic_id)
    if not topic:
        raise NotFoundError("Topic")
    return topic


def topic_question_count(session: Session, topic_id: int) -> int:
    return session.exec(select(func.count(Question.id)).where(Question.topic_id == topic_id)).one()


def create_topic(session: Session, subject_id: int, name: str, description: Optional[str] = None) -> Topic:
    get_subject(session, subject_id)
    errors: dict[str, str] = {}
    cleaned = _validate_name(name, errors)
    if errors:
        raise InvalidInputError(errors)

    topic = Topic(subject_id=subject_id, name=cleaned, description=sanitize_plain_text(description))
    session.add(topic)
    session.commit()
    session.refresh(topic)
    return topic


def update_topic(
    session: Session, topic_id: int, name: Optional[str] = None, description: Optional[str] = None
) -> Topic:
    topic = get_topic(session, topic_id)
    errors: dict[str, str] = {}
    cleaned = _validate_name(name, errors, required=False)
    if errors:
        raise InvalidInputError(errors)

    if cleaned is not None:
        topic.name = cleaned
    if description is not None:
        topic.description = sanitize_plain_text(description)
    topic.updated_at = utcnow()
    session.add(topic)
    session.commit()
    session.refresh(topic)
    return topic


def delete_topic(session: Session, topic_id: int) -> None:
    topic = get_topic(session, topic_id)
    if session.exec(select(Question.id).where(Question.topic_id == topic_id)).first():
        raise InvalidStateError("Topic still has questions")

    for note in session.exec(select(Note).where(Note.topic_id == topic_id)).all():
        note.topic_id = None
        session.add(note)
    session.delete(topic)
    session.commit()


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


def _clean_options(options: Optional[List[dict]]) -> List[dict]:
    cleaned = []
    for option in options or []:
        cleaned.append(
            {
                "id": str(option.get("id") or uuid.uuid4().hex[:12]),
                "text": (option.get("text") or "").strip(),
                "is_correct": bool(option.get("is_correct")),
            }
        )
    return cleaned


def _validate_question_inputs(
    question_text: str,
    question_type: str,
    options: List[dict],
    correct_answer: str,
    difficulty: str,
) -> dict[str, str]:
    """Validate question inputs and return error dictionary."""
    errors: dict[str, str] = {}

    if not question_text:
        errors["questionText"] = "Question text is required."
    elif len(question_text) > QUESTION_TEXT_MAX_LENGTH:
        errors["questionText"] = f"Question text must be at most {QUESTION_TEXT_MAX_LENGTH} characters."

    if question_type not in QUESTION_TYPES:
        errors["questionType"] = f"Question type must be one of: {', '.join(QUESTION_TYPES)}."

    if difficulty not in DIFFICULTY_LEVELS:
        errors["difficulty"] = f"Difficulty must be one of: {', '.join(DIFFICULTY_LEVELS)}."

    if question_type in ("multiple_choice", "true_false"):
        if any(not option["text"] for option in options):
            errors["options"] = "All options must be provided and non-empty."
        elif any(len(option["text"]) > OPTION_TEXT_MAX_LENGTH for option in options):
            errors["options"] = f"Options must be at most {OPTION_TEXT_MAX_LENGTH} characters."
        elif question_type == "multiple_choice" and len(options) < MIN_CHOICE_OPTIONS:
            errors["options"] = f"Multiple choice questions need at least {MIN_CHOICE_OPTIONS} options."
        elif question_type == "true_false" and len(options) != 2:
            errors["options"] = "True/false questions need exactly 2 options."
        elif len({option["text"].lower() for option in options}) != len(options):
            errors["options"] = "All options must be unique."
        elif len({option["id"] for option in options}) != len(options):
            errors["options"] = "Option ids must be unique."
        elif any(
            option["id"] == other["text"] for option in options for other in options if other is not option
        ):
            errors["options"] = "An option id cannot match the text of another option."
        elif sum(1 for option in options if option["is_correct"]) != 1:
            errors["options"] = "Exactly one option must be marked correct."
    elif question_type == "short_answer":
        if not correct_answer:
            errors["correctAnswer"] = "Short answer questions need a correct answer."
        elif len(correct_answer) > ANSWER_MAX_LENGTH:
            errors["correctAnswer"] = f"Correct answer must be at most {ANSWER_MAX_LENGTH} characters."

    return errors


def _prepare_question(
    session: Session,
    question_text: str,
    question_type: str,
    options: Optional[List[dict]],
    difficulty: str,
    subject_id: int,
    topic_id: Optional[int],
    explanation: Optional[str],
    correct_answer: Optional[str],
) -> dict:
    """Clean and validate question input, returning the column values to store."""
    text = sanitize_question_text(question_text or "")
    question_type = (question_type or "").strip()
    difficulty = (difficulty or "").strip().lower()
    cleaned_options = _clean_options(options)
    answer = (correct_answer or "").strip()

    if question_type == "true_false" and not cleaned_options and answer.capitalize() in TRUE_FALSE_LABELS:
        cleaned_options = _clean_options(
            [{"text": label, "is_correct": label == answer.capitalize()} for label in TRUE_FALSE_LABELS]
        )
    if question_type == "short_answer":
        if not answer:
            correct = [option for option in cleaned_options if option["is_correct"]]
            if len(correct) == 1:
                answer = correct[0]["text"]
        cleaned_options = []

    errors = _validate_question_inputs(text, question_type, cleaned_options, answer, difficulty)

    if session.get(Subject, subject_id) is None:
        errors["subjectId"] = "Subject does not exist."
    elif topic_id is not None:
        topic = session.get(Topic, topic_id)
        if topic is None:
            errors["topicId"] = "Topic does not exist."
        elif topic.subject_id != subject_id:
            errors["topicId"] = "Topic does not belong to the selected subject."

    if errors:
        raise InvalidInputError(errors)

    if question_type != "short_answer":
        answer = next(option["text"] for option in cleaned_options if option["is_correct"])

    return {
        "question_text": text,
        "question_type": question_type,
        "options": cleaned_options,
        "correct_answer": answer,
        "explanation": sanitize_question_text(explanation) if explanation else None,
        "difficulty": difficulty,
        "subject_id": subject_id,
        "topic_id": topic_id,
    }


def create_question(
    session: Session,
    question_text: str,
    question_type: str,
    options: Optional[List[dict]],
    difficulty: str,
    subject_id: int,
    topic_id: Optional[int] = None,
    explanation: Optional[str] = None,
    correct_answer: Optional[str] = None,
) -> Question:
    values = _prepare_question(
        session, question_text, question_type, options, difficulty, subject_id, topic_id, explanation, correct_answer
    )
    question = Question(**values)
    session.add(question)
    session.commit()
    session.refresh(question)
    return question


def update_question(
    session: Session,
    question_id: int,
    question_text: str,
    question_type: str,
    options: Optional[List[dict]],
    difficulty: str,
    subject_id: int,
    topic_id: Optional[int] = None,
    explanation: Optional[str] = None,
    correct_answer: Optional[str] = None,
) -> Question:
    """Replace a question's content.

    Answers already recorded keep the correctness computed when they were
    submitted; only later submissions are graded against the new key.
    """
    question = get_question(session, question_id)
    values = _prepare_question(
        session, question_text, question_type, options, difficulty, subject_id, topic_id, explanation, correct_answer
    )
    for key, value in values.items():
        setattr(question, key, value)
    question.updated_at = utcnow()
    session.add(question)
    session.commit()
    session.refresh(question)
    return question


def delete_question(session: Session, question_id: int) -> None:
    """Delete a question; refused while any exam uses it or any attempt answered it."""
    question = get_question(session, question_id)
    used = session.exec(select(ExamQuestion.exam_id).where(ExamQuestion.question_id == question_id)).all()
    if used:
        raise InvalidStateError(
            f"Question is used by {len(used)} exam(s); remove it from those exams first"
        )
    if session.exec(select(ExamAnswer.id).where(ExamAnswer.question_id == question_id)).first():
        raise InvalidStateError("Question has recorded exam answers and cannot be deleted")
    session.delete(question)
    session.commit()
    logger.info("Deleted question %s", question_id)


def get_question(session: Session, question_id: int) -> Question:
    question = session.get(Question, question_id)
    if not question:
        raise NotFoundError("Question")
    return question


def list_questions(
    session: Session,
    subject_id: Optional[int] = None,
    topic_id: Optional[int] = None,
    difficulty: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Question]:
    stmt = select(Question)
    if subject_id is not None:
        stmt = stmt.where(Question.subject_id == subject_id)
    if topic_id is not None:
        stmt = stmt.where(Question.topic_id == topic_id)
    if difficulty:
        stmt = stmt.where(Question.difficulty == difficulty)
    stmt = stmt.order_by(Question.created_at.desc(), Question.id.desc()).offset(offset).limit(limit)
    return session.exec(stmt).all()


def is_correct_answer(question: Question, selected_answer: str) -> bool:
    """Grade a submitted answer against the question's canonical key.

    Short answers must match the stored answer exactly. Choice answers must
    equal the text of the option flagged correct, which is also what
    ``correct_answer`` holds for those types.
    """
    if question.question_type == "short_answer":
        return selected_answer == question.correct_answer
    for option in question.options or []:
        if option.get("is_correct"):
            return selected_answer == option.get("text")
    return False
