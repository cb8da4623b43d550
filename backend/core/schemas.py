"""Shared pydantic bases for request and response bodies."""

import math
import re
from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    current: int
    pages: int
    total: int


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(current=page, pages=math.ceil(total / limit) if limit else 0, total=total)


class MessageResponse(CamelModel):
    message: str


USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_]+$')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{0,15}$')
MIN_PASSWORD_LENGTH = 6


def validate_username(value: str) -> str:
    normalized = value.strip()
    if not 3 <= len(normalized) <= 30:
        raise ValueError('Username must be between 3 and 30 characters')
    if not USERNAME_PATTERN.match(normalized):
        raise ValueError('Username can only contain letters, numbers, and underscores')
    return normalized


def normalize_email(value: str) -> str:
    return value.strip().lower()


def validate_phone(value: str) -> str:
    normalized = value.strip()
    if not PHONE_PATTERN.match(normalized):
        raise ValueError('Please enter a valid phone number')
    return normalized


def to_naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; offset-aware input is converted first."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


Username = Annotated[str, AfterValidator(validate_username)]
Email = Annotated[EmailStr, AfterValidator(normalize_email)]
Phone = Annotated[str, AfterValidator(validate_phone)]
Password = Annotated[str, Field(min_length=MIN_PASSWORD_LENGTH)]
UtcDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]


def bounded_text(max_length: int, *, required: bool = False):
    """A stripped string type capped at ``max_length``; ``required`` also rejects blanks."""
    return Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=1 if required else 0, max_length=max_length),
    ]
