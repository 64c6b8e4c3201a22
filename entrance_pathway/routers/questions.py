"""Question bank routes: subjects, topics and questions."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from entrance_pathway import config
from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.database import get_session
from entrance_pathway.deps import require_admin, require_staff
from entrance_pathway.models import Subject, Topic
from entrance_pathway.schemas import (
    MessageResponse,
    QuestionInput,
    QuestionRead,
    SubjectInput,
    SubjectRead,
    TopicInput,
    TopicRead,
)
from entrance_pathway.services import questions as question_service
from entrance_pathway.utils import clamp_page

router = APIRouter()


def _subject_read(session: Session, subject: Subject) -> SubjectRead:
    counts = question_service.subject_counts(session, subject.id)
    return SubjectRead.model_validate({**subject.model_dump(), **counts})


def _topic_read(session: Session, topic: Topic) -> TopicRead:
    return TopicRead.model_validate(
        {**topic.model_dump(), "questions_count": question_service.topic_question_count(session, topic.id)}
    )


# ===================== SUBJECTS =====================


@router.get("/subjects", response_model=List[SubjectRead])
def list_subjects(session: Session = Depends(get_session)):
    return [_subject_read(session, subject) for subject in question_service.list_subjects(session)]


@router.get("/subjects/{subject_id}", response_model=SubjectRead)
def get_subject(subject_id: int, session: Session = Depends(get_session)):
    return _subject_read(session, question_service.get_subject(session, subject_id))


@router.post("/subjects", response_model=SubjectRead, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    subject = question_service.create_subject(
        session, name=payload.name, description=payload.description, icon=payload.icon
    )
    return _subject_read(session, subject)


@router.patch("/subjects/{subject_id}", response_model=SubjectRead)
def update_subject(
    subject_id: int,
    payload: SubjectInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    subject = question_service.update_subject(
        session, subject_id, name=payload.name, description=payload.description, icon=payload.icon
    )
    return _subject_read(session, subject)


@router.delete("/subjects/{subject_id}", response_model=MessageResponse)
def delete_subject(
    subject_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    question_service.delete_subject(session, subject_id)
    return MessageResponse(message="Subject deleted")


# ===================== TOPICS =====================


@router.get("/subjects/{subject_id}/topics", response_model=List[TopicRead])
def list_topics(subject_id: int, session: Session = Depends(get_session)):
    question_service.get_subject(session, subject_id)
    return [_topic_read(session, topic) for topic in question_service.list_topics(session, subject_id)]


@router.post("/subjects/{subject_id}/topics", response_model=TopicRead, status_code=status.HTTP_201_CREATED)
def create_topic(
    subject_id: int,
    payload: TopicInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    topic = question_service.create_topic(session, subject_id, name=payload.name, description=payload.description)
    return _topic_read(session, topic)


@router.get("/topics/{topic_id}", response_model=TopicRead)
def get_topic(topic_id: int, session: Session = Depends(get_session)):
    return _topic_read(session, question_service.get_topic(session, topic_id))


@router.patch("/topics/{topic_id}", response_model=TopicRead)
def update_topic(
    topic_id: int,
    payload: TopicInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    topic = question_service.update_topic(session, topic_id, name=payload.name, description=payload.description)
    return _topic_read(session, topic)


@router.delete("/topics/{topic_id}", response_model=MessageResponse)
def delete_topic(
    topic_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    question_service.delete_topic(session, topic_id)
    return MessageResponse(message="Topic deleted")


# ===================== QUESTIONS =====================


@router.get("/questions", response_model=List[QuestionRead])
def list_questions(
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    topic_id: Optional[int] = Query(None, alias="topicId"),
    difficulty: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    limit, offset = clamp_page(limit, offset, config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE)
    return question_service.list_questions(
        session, subject_id=subject_id, topic_id=topic_id, difficulty=difficulty, limit=limit, offset=offset
    )


@router.get("/questions/{question_id}", response_model=QuestionRead)
def get_question(
    question_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return question_service.get_question(session, question_id)


def _question_fields(payload: QuestionInput) -> dict:
    return {
        "question_text": payload.question_text,
        "question_type": payload.question_type,
        "options": [option.model_dump() for option in payload.options],
        "difficulty": payload.difficulty,
        "subject_id": payload.subject_id,
        "topic_id": payload.topic_id,
        "explanation": payload.explanation,
        "correct_answer": payload.correct_answer,
    }


@router.post("/questions", response_model=QuestionRead, status_code=status.HTTP_201_CREATED)
def create_question(
    payload: QuestionInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return question_service.create_question(session, **_question_fields(payload))


@router.put("/questions/{question_id}", response_model=QuestionRead)
def update_question(
    question_id: int,
    payload: QuestionInput,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return question_service.update_question(session, question_id, **_question_fields(payload))


@router.delete("/questions/{question_id}", response_model=MessageResponse)
def delete_question(
    question_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    question_service.delete_question(session, question_id)
    return MessageResponse(message="Question deleted")
