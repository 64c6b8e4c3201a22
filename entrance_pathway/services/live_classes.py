"""Scheduled live classes and their recordings."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from entrance_pathway.errors import InvalidInputError, InvalidStateError, NotFoundError, UnauthorizedError
from entrance_pathway.models import Course, LiveClass
from entrance_pathway.utils import as_utc, sanitize_plain_text, utcnow

logger = logging.getLogger(__name__)

LIVE_CLASS_FIELDS = (
    "title",
    "description",
    "scheduled_at",
    "duration_minutes",
    "meeting_id",
    "join_url",
    "course_id",
)


def _validate_live_class_inputs(session: Session, values: dict) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not values.get("title"):
        errors["title"] = "Title is required."
    if values.get("scheduled_at") is None:
        errors["scheduledAt"] = "Scheduled time is required."
    duration = values.get("duration_minutes")
    if duration is None or duration < 1:
        errors["durationMinutes"] = "Duration must be at least 1 minute."
    course_id = values.get("course_id")
    if course_id is not None and session.get(Course, course_id) is None:
        errors["courseId"] = "Course does not exist."
    return errors


def get_live_class(session: Session, live_class_id: int) -> LiveClass:
    live_class = session.get(LiveClass, live_class_id)
    if not live_class:
        raise NotFoundError("Live class")
    return live_class


def list_live_classes(
    session: Session,
    course_id: Optional[int] = None,
    upcoming: bool = False,
    limit: int = 20,
    offset: int = 0,
    now: Optional[datetime] = None,
) -> List[LiveClass]:
    """Live classes ordered by schedule; ``upcoming`` keeps future, not completed ones."""
    stmt = select(LiveClass)
    if course_id is not None:
        stmt = stmt.where(LiveClass.course_id == course_id)
    if upcoming:
        stmt = stmt.where(LiveClass.scheduled_at >= (now or utcnow()), LiveClass.is_completed.is_(False))
    stmt = stmt.order_by(LiveClass.scheduled_at, LiveClass.id).offset(offset).limit(limit)
    return session.exec(stmt).all()


def create_live_class(session: Session, user, **fields) -> LiveClass:
    values = {key: fields.get(key) for key in LIVE_CLASS_FIELDS}
    values["title"] = sanitize_plain_text(values.get("title")) or ""
    values["description"] = sanitize_plain_text(values.get("description"))
    values["scheduled_at"] = as_utc(values.get("scheduled_at"))
    errors = _validate_live_class_inputs(session, values)
    if errors:
        raise InvalidInputError(errors)

    live_class = LiveClass(**values, instructor_id=user.id)
    session.add(live_class)
    session.commit()
    session.refresh(live_class)
    logger.info("User %s scheduled live class %s at %s", user.id, live_class.id, live_class.scheduled_at)
    return live_class


def update_live_class(session: Session, user, live_class_id: int, **fields) -> LiveClass:
    live_class = get_live_class(session, live_class_id)
    if live_class.instructor_id != user.id and not user.is_admin:
        raise UnauthorizedError("Only the instructor or an admin can modify this live class")

    updates = {key: value for key, value in fields.items() if key in LIVE_CLASS_FIELDS and value is not None}
    if "title" in updates:
        updates["title"] = sanitize_plain_text(updates["title"]) or ""
    if "description" in updates:
        updates["description"] = sanitize_plain_text(updates["description"])
    if "scheduled_at" in updates:
        updates["scheduled_at"] = as_utc(updates["scheduled_at"])

    merged = {key: getattr(live_class, key) for key in LIVE_CLASS_FIELDS}
    merged.update(updates)
    errors = _validate_live_class_inputs(session, merged)
    if errors:
        raise InvalidInputError(errors)

    for key, value in updates.items():
        setattr(live_class, key, value)
    live_class.updated_at = utcnow()
    session.add(live_class)
    session.commit()
    session.refresh(live_class)
    return live_class


def complete_live_class(
    session: Session, user, live_class_id: int, recording_url: Optional[str] = None
) -> LiveClass:
    live_class = get_live_class(session, live_class_id)
    if live_class.instructor_id != user.id and not user.is_admin:
        raise UnauthorizedError("Only the instructor or an admin can complete this live class")
    if live_class.is_completed:
        raise InvalidStateError("Live class is already completed")

    live_class.is_completed = True
    if recording_url:
        live_class.recording_url = recording_url.strip()
    live_class.updated_at = utcnow()
    session.add(live_class)
    session.commit()
    session.refresh(live_class)
    logger.info("Live class %s marked completed", live_class_id)
    return live_class
