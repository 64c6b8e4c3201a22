"""Bearer token verification against the identity provider's signing secret."""

from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt

from entrance_pathway import config
from entrance_pathway.errors import AuthenticationError
from entrance_pathway.models import USER_ROLES


@dataclass(frozen=True)
class AuthUser:
    """Identity resolved from a verified token, injected into each request."""

    id: str
    email: str
    role: str
    full_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_staff(self) -> bool:
        return self.role in ("mentor", "admin")


def _role_from_claims(claims: dict) -> str:
    # user_metadata is editable by the account holder, so it can never grant admin
    candidates = [
        claims.get("role"),
        (claims.get("app_metadata") or {}).get("role"),
    ]
    user_role = (claims.get("user_metadata") or {}).get("role")
    if user_role != "admin":
        candidates.append(user_role)
    for role in candidates:
        if role in USER_ROLES:
            return role
    return "student"


def decode_token(token: str) -> AuthUser:
    """Verify a signed token and map its claims to an :class:`AuthUser`.

    Raises:
        AuthenticationError: If the signature, expiry or subject is invalid
    """
    if not config.JWT_SECRET:
        raise AuthenticationError("Token verification is not configured")

    options = {"verify_aud": config.JWT_AUDIENCE is not None}
    try:
        claims = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
            options=options,
        )
    except JWTError:
        raise AuthenticationError("Token is invalid or expired")

    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError("Token has no subject")

    metadata = claims.get("user_metadata") or {}
    return AuthUser(
        id=str(subject),
        email=claims.get("email") or "",
        role=_role_from_claims(claims),
        full_name=metadata.get("full_name") or "",
    )


def create_access_token(claims: dict, secret: Optional[str] = None) -> str:
    """Sign claims with the shared secret."""
    return jwt.encode(claims, secret or config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
