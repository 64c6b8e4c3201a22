"""Shared FastAPI dependencies for database access and authentication."""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from entrance_pathway.auth_utils import AuthUser, decode_token
from entrance_pathway.database import get_session
from entrance_pathway.errors import AuthenticationError, UnauthorizedError
from entrance_pathway.services.users import sync_profile

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Optional[AuthUser]:
    """Return the caller resolved from the bearer token, or None when anonymous.

    The local profile is created on first sight; afterwards its stored role is
    authoritative so that role changes made by an admin take effect.
    """
    if credentials is None:
        return None

    claimed = decode_token(credentials.credentials)
    profile = sync_profile(session, claimed)
    return AuthUser(
        id=profile.id,
        email=profile.email,
        role=profile.role,
        full_name=profile.full_name,
    )


def require_login(current_user: Optional[AuthUser] = Depends(get_current_user)) -> AuthUser:
    """Ensure that the request carries a valid bearer token."""
    if current_user is None:
        raise AuthenticationError()
    return current_user


def require_role(required_roles: list[str]):
    """Dependency factory that enforces one of the given roles."""

    def wrapper(current_user: AuthUser = Depends(require_login)) -> AuthUser:
        if current_user.role not in required_roles:
            raise UnauthorizedError(
                f"This action requires one of the following roles: {', '.join(required_roles)}"
            )
        return current_user

    return wrapper


require_staff = require_role(["mentor", "admin"])
require_admin = require_role(["admin"])
