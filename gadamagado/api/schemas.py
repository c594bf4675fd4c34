from __future__ import annotations

import re
import unicodedata
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Maximum string length for free-text fields
MAX_STRING_LENGTH = 256

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_text(value: Optional[str]) -> Optional[str]:
    """NFKC-normalize and strip; blank strings become None."""
    if value is None:
        return None
    value = unicodedata.normalize("NFKC", value).strip()
    return value or None


def _validate_email(value: Optional[str]) -> Optional[str]:
    value = _normalize_text(value)
    if value is None:
        return None
    if not _EMAIL_RE.match(value):
        raise ValueError("Please provide a valid email")
    return value.lower()


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RegisterRequest(_CamelModel):
    # Required fields are checked by the account service so a missing one
    # gets the same message whichever field it is
    full_name: Optional[str] = Field(default=None, alias="fullName", max_length=MAX_STRING_LENGTH)
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber", max_length=32)
    email: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    password: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    region: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    district: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)

    @field_validator("full_name", "phone_number", "region", "district")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_text(value)

    @field_validator("email")
    @classmethod
    def _validate_register_email(cls, value: Optional[str]) -> Optional[str]:
        return _validate_email(value)


class LoginRequest(_CamelModel):
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber", max_length=32)
    password: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)

    @field_validator("phone_number")
    @classmethod
    def _normalize_phone(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_text(value)


class ProfileUpdateRequest(_CamelModel):
    full_name: Optional[str] = Field(default=None, alias="fullName", max_length=MAX_STRING_LENGTH)
    email: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    region: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    district: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)

    @field_validator("full_name", "region", "district")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_text(value)

    @field_validator("email")
    @classmethod
    def _validate_profile_email(cls, value: Optional[str]) -> Optional[str]:
        return _validate_email(value)


class AdReferenceRequest(_CamelModel):
    ad_id: Optional[str] = Field(default=None, alias="adId", max_length=64)
