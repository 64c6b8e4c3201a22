"""User profile and role administration routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from entrance_pathway import config
from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.database import get_session
from entrance_pathway.deps import require_admin, require_login
from entrance_pathway.errors import UnauthorizedError
from entrance_pathway.schemas import ProfileUpdate, RoleUpdate, UserRead
from entrance_pathway.services import users as user_service
from entrance_pathway.utils import clamp_page

router = APIRouter()


@router.get("/me", response_model=UserRead)
def me(session: Session = Depends(get_session), current_user: AuthUser = Depends(require_login)):
    return user_service.get_user(session, current_user.id)


@router.patch("/me", response_model=UserRead)
def update_profile(
    payload: ProfileUpdate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    return user_service.update_profile(
        session,
        current_user.id,
        full_name=payload.full_name,
        avatar_url=payload.avatar_url,
        phone=payload.phone,
    )


@router.get("/users", response_model=List[UserRead])
def list_users(
    role: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    limit, offset = clamp_page(limit, offset, config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE)
    return user_service.list_users(session, role, limit, offset)


@router.get("/users/{user_id}", response_model=UserRead)
def get_user(
    user_id: str,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_login),
):
    if user_id != current_user.id and not current_user.is_admin:
        raise UnauthorizedError("You can only view your own profile")
    return user_service.get_user(session, user_id)


@router.put("/users/{user_id}/role", response_model=UserRead)
def update_user_role(
    user_id: str,
    payload: RoleUpdate,
    session: Session = Depends(get_session),
    current_user: AuthUser = Depends(require_admin),
):
    return user_service.update_user_role(session, current_user, user_id, payload.role)
