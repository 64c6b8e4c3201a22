"""Utility functions for sanitization, validation and small shared helpers."""

import re
from datetime import datetime, timezone
from typing import Optional

import bleach

_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_DASHES = re.compile(r"-{2,}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to UTC; naive values are read as UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def sanitize_question_text(text: str) -> str:
    """Sanitize question text and explanations to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    allowed_tags = ['b', 'i', 'u', 'em', 'strong', 'p', 'br', 'code', 'pre', 'ul', 'ol', 'li', 'sub', 'sup']
    allowed_attributes = {}

    sanitized = bleach.clean(text, tags=allowed_tags, attributes=allowed_attributes, strip=True)
    return sanitized.strip()


def sanitize_plain_text(text: Optional[str]) -> Optional[str]:
    """Strip all HTML from short free-text fields (titles, descriptions)."""
    if text is None:
        return None
    return bleach.clean(text, tags=[], strip=True).strip()


def validate_marks(marks: int) -> bool:
    """Validate that marks for an exam question are a positive integer.

    Raises:
        ValueError: If marks is not a positive integer
    """
    if isinstance(marks, bool) or not isinstance(marks, int) or marks < 1:
        raise ValueError(f"Marks must be a positive integer, got {marks!r}")

    return True


def generate_slug(text: str) -> str:
    """URL-friendly slug: lowercase, punctuation dropped, spaces to dashes."""
    slug = _SLUG_STRIP.sub("", text.lower())
    slug = _SLUG_SPACES.sub("-", slug.strip())
    return _SLUG_DASHES.sub("-", slug).strip("-")


def clamp_page(limit: Optional[int], offset: Optional[int], default: int, maximum: int) -> tuple[int, int]:
    """Normalise limit/offset query arguments."""
    limit = default if limit is None else max(1, min(limit, maximum))
    offset = 0 if offset is None else max(0, offset)
    return limit, offset
