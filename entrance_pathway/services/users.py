"""Local user profiles synced from identity tokens, and role administration."""

import logging
from typing import List, Optional

from sqlmodel import Session, select

from entrance_pathway.errors import InvalidInputError, NotFoundError, UnauthorizedError
from entrance_pathway.models import USER_ROLES, User
from entrance_pathway.utils import sanitize_plain_text, utcnow

logger = logging.getLogger(__name__)

FULL_NAME_MAX_LENGTH = 120
PHONE_MAX_LENGTH = 30


def sync_profile(session: Session, claimed) -> User:
    """Create the local profile for a token subject on first sight.

    Existing profiles keep their stored role; only the email is refreshed.
    """
    user = session.get(User, claimed.id)
    if user is None:
        user = User(
            id=claimed.id,
            email=claimed.email,
            full_name=claimed.full_name,
            role=claimed.role,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("Created profile for user %s with role %s", user.id, user.role)
        return user

    if claimed.email and user.email != claimed.email:
        user.email = claimed.email
        user.updated_at = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
    return user


def get_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User")
    return user


def list_users(session: Session, role: Optional[str], limit: int, offset: int) -> List[User]:
    stmt = select(User)
    if role:
        if role not in USER_ROLES:
            raise InvalidInputError({"role": f"Role must be one of: {', '.join(USER_ROLES)}."})
        stmt = stmt.where(User.role == role)
    stmt = stmt.order_by(User.created_at.desc()).offset(offset).limit(limit)
    return session.exec(stmt).all()


def update_profile(
    session: Session,
    user_id: str,
    full_name: Optional[str] = None,
    avatar_url: Optional[str] = None,
    phone: Optional[str] = None,
) -> User:
    user = get_user(session, user_id)

    errors: dict[str, str] = {}
    if full_name is not None:
        full_name = sanitize_plain_text(full_name)
        if not full_name:
            errors["fullName"] = "Full name cannot be empty."
        elif len(full_name) > FULL_NAME_MAX_LENGTH:
            errors["fullName"] = f"Full name must be at most {FULL_NAME_MAX_LENGTH} characters."
    if phone is not None and len(phone.strip()) > PHONE_MAX_LENGTH:
        errors["phone"] = f"Phone must be at most {PHONE_MAX_LENGTH} characters."
    if errors:
        raise InvalidInputError(errors)

    if full_name is not None:
        user.full_name = full_name
    if avatar_url is not None:
        user.avatar_url = avatar_url.strip() or None
    if phone is not None:
        user.phone = phone.strip() or None
    user.updated_at = utcnow()

    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def update_user_role(session: Session, acting_user, user_id: str, role: str) -> User:
    """Change another user's role. Admins cannot change their own role."""
    if role not in USER_ROLES:
        raise InvalidInputError({"role": f"Role must be one of: {', '.join(USER_ROLES)}."})
    if user_id == acting_user.id:
        raise UnauthorizedError("Cannot change your own role")

    user = get_user(session, user_id)
    previous = user.role
    user.role = role
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s changed role of %s from %s to %s", acting_user.id, user_id, previous, role)
    return user
