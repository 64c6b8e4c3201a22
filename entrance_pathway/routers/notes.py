"""Study note routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from entrance_pathway import config
from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.database import get_session
from entrance_pathway.deps import get_current_user, require_admin, require_staff
from entrance_pathway.errors import NotFoundError
from entrance_pathway.schemas import MessageResponse, NoteCreate, NoteRead, NoteUpdate
from entrance_pathway.services import notes as note_service
from entrance_pathway.utils import clamp_page

router = APIRouter()


@router.get("/notes", response_model=List[NoteRead])
def list_notes(
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    topic_id: Optional[int] = Query(None, alias="topicId"),
    note_type: Optional[str] = Query(None, alias="noteType"),
    is_published: Optional[bool] = Query(None, alias="isPublished"),
    is_premium: Optional[bool] = Query(None, alias="isPremium"),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    current_user: Optional[AuthUser] = Depends(get_current_user),
):
    if current_user is None or not current_user.is_staff:
        is_published = True
    limit, offset = clamp_page(limit, offset, config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE)
    return note_service.list_notes(
        session,
        subject_id=subject_id,
        topic_id=topic_id,
        note_type=note_type,
        is_published=is_published,
        is_premium=is_premium,
        limit=limit,
        offset=offset,
    )


@router.get("/subjects/{subject_id}/notes", response_model=List[NoteRead])
def notes_by_subject(subject_id: int, session: Session = Depends(get_session)):
    return note_service.notes_by_subject(session, subject_id)


@router.get("/notes/{note_id}", response_model=NoteRead)
def get_note(
    note_id: int,
    session: Session = Depends(get_session),
    current_user: Optional[AuthUser] = Depends(get_current_user),
):
    note = note_service.get_note(session, note_id)
    if not note.is_published and (current_user is None or not current_user.is_staff):
        raise NotFoundError("Note")
    return note


@router.post("/notes", response_model=NoteRead, status_code=status.HTTP_201_CREATED)
def create_note(
    payload: NoteCreate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return note_service.create_note(session, current_user, **payload.model_dump())


@router.patch("/notes/{note_id}", response_model=NoteRead)
def update_note(
    note_id: int,
    payload: NoteUpdate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return note_service.update_note(session, current_user, note_id, **payload.model_dump())


@router.post("/notes/{note_id}/publish", response_model=NoteRead)
def publish_note(
    note_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return note_service.publish_note(session, current_user, note_id)


@router.delete("/notes/{note_id}", response_model=MessageResponse)
def delete_note(
    note_id: int,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    note_service.delete_note(session, note_id)
    return MessageResponse(message="Note deleted")


@router.post("/notes/{note_id}/download", response_model=NoteRead)
def increment_note_download(note_id: int, session: Session = Depends(get_session)):
    return note_service.increment_download(session, note_id)
