"""Study notes and past papers attached to subjects, with a download counter."""

import logging
from typing import List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from entrance_pathway.errors import InvalidInputError, NotFoundError, UnauthorizedError
from entrance_pathway.models import NOTE_TYPES, Note, Subject, Topic
from entrance_pathway.utils import sanitize_plain_text, utcnow

logger = logging.getLogger(__name__)

NOTE_TITLE_MAX_LENGTH = 200

NOTE_FIELDS = (
    "title",
    "description",
    "file_url",
    "file_name",
    "file_size",
    "file_type",
    "note_type",
    "subject_id",
    "topic_id",
    "year",
    "is_premium",
)


def _validate_note_inputs(session: Session, values: dict) -> dict[str, str]:
    """Validate note fields and return error dictionary."""
    errors: dict[str, str] = {}

    title = values.get("title")
    if not title:
        errors["title"] = "Title is required."
    elif len(title) > NOTE_TITLE_MAX_LENGTH:
        errors["title"] = f"Title must be at most {NOTE_TITLE_MAX_LENGTH} characters."

    if not values.get("file_url"):
        errors["fileUrl"] = "File URL is required."
    if not values.get("file_name"):
        errors["fileName"] = "File name is required."
    if not values.get("file_type"):
        errors["fileType"] = "File type is required."
    file_size = values.get("file_size")
    if file_size is None or file_size < 0:
        errors["fileSize"] = "File size must be zero or more."

    if values.get("note_type") not in NOTE_TYPES:
        errors["noteType"] = f"Note type must be one of: {', '.join(NOTE_TYPES)}."

    subject_id = values.get("subject_id")
    if subject_id is None or session.get(Subject, subject_id) is None:
        errors["subjectId"] = "Subject does not exist."
    topic_id = values.get("topic_id")
    if topic_id is not None:
        topic = session.get(Topic, topic_id)
        if topic is None:
            errors["topicId"] = "Topic does not exist."
        elif subject_id is not None and topic.subject_id != subject_id:
            errors["topicId"] = "Topic does not belong to the selected subject."

    year = values.get("year")
    if year is not None and not 1900 <= year <= 2100:
        errors["year"] = "Year must be between 1900 and 2100."

    return errors


def get_note(session: Session, note_id: int) -> Note:
    note = session.get(Note, note_id)
    if not note:
        raise NotFoundError("Note")
    return note


def list_notes(
    session: Session,
    subject_id: Optional[int] = None,
    topic_id: Optional[int] = None,
    note_type: Optional[str] = None,
    is_published: Optional[bool] = None,
    is_premium: Optional[bool] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Note]:
    stmt = select(Note)
    if subject_id is not None:
        stmt = stmt.where(Note.subject_id == subject_id)
    if topic_id is not None:
        stmt = stmt.where(Note.topic_id == topic_id)
    if note_type:
        stmt = stmt.where(Note.note_type == note_type)
    if is_published is not None:
        stmt = stmt.where(Note.is_published == is_published)
    if is_premium is not None:
        stmt = stmt.where(Note.is_premium == is_premium)
    stmt = stmt.order_by(Note.created_at.desc(), Note.id.desc()).offset(offset).limit(limit)
    return session.exec(stmt).all()


def notes_by_subject(session: Session, subject_id: int) -> List[Note]:
    """Published notes of a subject, newest first."""
    if session.get(Subject, subject_id) is None:
        raise NotFoundError("Subject")
    return session.exec(
        select(Note)
        .where(Note.subject_id == subject_id, Note.is_published.is_(True))
        .order_by(Note.created_at.desc(), Note.id.desc())
    ).all()


def create_note(session: Session, user, **fields) -> Note:
    values = {key: fields.get(key) for key in NOTE_FIELDS}
    values["title"] = sanitize_plain_text(values.get("title")) or ""
    values["description"] = sanitize_plain_text(values.get("description"))
    errors = _validate_note_inputs(session, values)
    if errors:
        raise InvalidInputError(errors)

    values["is_premium"] = bool(values.get("is_premium"))
    note = Note(**values, uploaded_by=user.id, is_published=False)
    session.add(note)
    session.commit()
    session.refresh(note)
    logger.info("User %s uploaded note %s for subject %s", user.id, note.id, note.subject_id)
    return note


def update_note(session: Session, user, note_id: int, **fields) -> Note:
    note = get_note(session, note_id)
    if note.uploaded_by != user.id and not user.is_admin:
        raise UnauthorizedError("Only the uploader or an admin can modify this note")

    updates = {key: value for key, value in fields.items() if key in NOTE_FIELDS and value is not None}
    if "title" in updates:
        updates["title"] = sanitize_plain_text(updates["title"]) or ""
    if "description" in updates:
        updates["description"] = sanitize_plain_text(updates["description"])

    merged = {key: getattr(note, key) for key in NOTE_FIELDS}
    merged.update(updates)
    if "subject_id" in updates and "topic_id" not in updates:
        merged["topic_id"] = None if note.subject_id != updates["subject_id"] else note.topic_id
    errors = _validate_note_inputs(session, merged)
    if errors:
        raise InvalidInputError(errors)

    for key, value in merged.items():
        setattr(note, key, value)
    note.updated_at = utcnow()
    session.add(note)
    session.commit()
    session.refresh(note)
    return note


def publish_note(session: Session, user, note_id: int) -> Note:
    note = get_note(session, note_id)
    if note.uploaded_by != user.id and not user.is_admin:
        raise UnauthorizedError("Only the uploader or an admin can publish this note")
    note.is_published = True
    note.updated_at = utcnow()
    session.add(note)
    session.commit()
    session.refresh(note)
    logger.info("Note %s published by %s", note_id, user.id)
    return note


def delete_note(session: Session, note_id: int) -> None:
    note = get_note(session, note_id)
    session.delete(note)
    session.commit()
    logger.info("Deleted note %s", note_id)


def increment_download(session: Session, note_id: int) -> Note:
    """Bump the download counter in one UPDATE so concurrent downloads all count."""
    note = get_note(session, note_id)
    if not note.is_published:
        raise NotFoundError("Note")
    session.execute(
        update(Note).where(Note.id == note_id).values(download_count=Note.download_count + 1)
    )
    session.commit()
    session.refresh(note)
    return note
