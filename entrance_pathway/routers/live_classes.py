from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from entrance_pathway import config
from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.database import get_session
from entrance_pathway.deps import require_staff
from entrance_pathway.schemas import LiveClassComplete, LiveClassCreate, LiveClassRead, LiveClassUpdate
from entrance_pathway.services import live_classes as live_class_service
from entrance_pathway.utils import clamp_page

router = APIRouter()


@router.get("", response_model=List[LiveClassRead])
def list_live_classes(
    course_id: Optional[int] = Query(None, alias="courseId"),
    upcoming: bool = Query(False),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    limit, offset = clamp_page(limit, offset, config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE)
    return live_class_service.list_live_classes(
        session, course_id=course_id, upcoming=upcoming, limit=limit, offset=offset
    )


@router.get("/{live_class_id}", response_model=LiveClassRead)
def get_live_class(live_class_id: int, session: Session = Depends(get_session)):
    return live_class_service.get_live_class(session, live_class_id)


@router.post("", response_model=LiveClassRead, status_code=status.HTTP_201_CREATED)
def create_live_class(
    payload: LiveClassCreate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return live_class_service.create_live_class(session, current_user, **payload.model_dump())


@router.patch("/{live_class_id}", response_model=LiveClassRead)
def update_live_class(
    live_class_id: int,
    payload: LiveClassUpdate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return live_class_service.update_live_class(session, current_user, live_class_id, **payload.model_dump())


@router.post("/{live_class_id}/complete", response_model=LiveClassRead)
def complete_live_class(
    live_class_id: int,
    payload: LiveClassComplete,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_staff),
):
    return live_class_service.complete_live_class(
        session, current_user, live_class_id, recording_url=payload.recording_url
    )
