from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import Gender, OnboardingStatus, Role


class APIModel(BaseModel):
    """Base for request/response bodies exchanged with the frontend in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, from_attributes=True, populate_by_name=True)


class MessageResponse(APIModel):
    status_code: int = 200
    message: str


class SignUpRequest(APIModel):
    user_name: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    date_of_birth: date
    email: EmailStr
    phone_number: Optional[str] = Field(default=None, pattern=r"^\+?[0-9][0-9 ()\-]{5,19}$")
    gender: Gender
    password: str = Field(min_length=6)
    role: Role
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country_code: Optional[str] = Field(default=None, max_length=4)
    zip: Optional[str] = None


class SignInRequest(APIModel):
    user_name_or_email: str = Field(min_length=1)
    password: str = Field(min_length=6)


class RefreshTokenRequest(APIModel):
    refresh_token: str


class ForgotPasswordRequest(APIModel):
    email: EmailStr


class ResetPasswordRequest(APIModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class ChangePasswordRequest(APIModel):
    old_password: str = Field(min_length=6)
    new_password: str = Field(min_length=6)


class ResendVerificationRequest(APIModel):
    email: EmailStr


class UserRead(APIModel):
    """Public projection of a user: no password, tokens or token expiries."""

    id: str
    user_name: str
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    role: Role
    profile_pic: Optional[str] = None
    banner_image: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country_code: Optional[str] = None
    coc_nr: Optional[str] = None
    is_active: bool
    is_email_verified: bool
    onboarding: Optional[OnboardingStatus] = None
    opp_verification: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class LoginResponse(APIModel):
    status_code: int = 200
    message: str
    user: UserRead
    access_token: str
    refresh_token: str


class RefreshTokenResponse(APIModel):
    status_code: int = 200
    message: str
    access_token: str
    refresh_token: Optional[str] = None


class UserSearchResult(APIModel):
    id: str
    user_name: str
    first_name: str
    last_name: str
    profile_pic: Optional[str] = None


class UserSummary(APIModel):
    id: str
    user_name: str
    first_name: str
    last_name: str
    email: str
    role: Role
    created_at: datetime


class UserPage(APIModel):
    total: int
    items: List[UserRead]


class UserUpdate(APIModel):
    user_name: Optional[str] = Field(default=None, min_length=3, max_length=30)
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    profile_pic: Optional[str] = None
    banner_image: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country_code: Optional[str] = Field(default=None, max_length=4)
    zip: Optional[str] = None

    @field_validator("user_name", "email", mode="before")
    @classmethod
    def _normalize_identifier(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class DeactivateRequest(APIModel):
    password: str = Field(min_length=5)


class OnboardCreatorRequest(APIModel):
    coc_nr: Optional[str] = None


class OnboardResponse(APIModel):
    success: bool
    status: Optional[OnboardingStatus] = None
    message: str
    next_step: Optional[str] = None
    redirect_url: Optional[str] = None


class WebhookNotification(BaseModel):
    """Notification body posted by the payment provider (snake_case on the wire)."""

    uid: str = Field(min_length=1)
    type: str = Field(min_length=1)
    created: int
    object_uid: str = Field(min_length=1)
    object_type: str = Field(min_length=1)
    object_url: str = Field(min_length=1)
    verification_hash: Optional[str] = None
    parent_uid: Optional[str] = None
    parent_type: Optional[str] = None
    parent_url: Optional[str] = None
