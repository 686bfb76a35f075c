from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import Column, Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp stored in UTC.

    SQLite drops the offset on storage, so values read back are re-tagged
    as UTC and every comparison in the services stays aware-vs-aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Role(str, Enum):
    user = "user"
    creator = "creator"
    super_admin = "superAdmin"


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"


class OnboardingStatus(str, Enum):
    PENDING = "PENDING"
    CREATE_MERCHANT_PENDING = "CREATE_MERCHANT_PENDING"
    CREATE_MERCHANT_FAILED = "CREATE_MERCHANT_FAILED"
    CREATE_BANK_ACCOUNT_PENDING = "CREATE_BANK_ACCOUNT_PENDING"
    CREATE_BANK_ACCOUNT_FAILED = "CREATE_BANK_ACCOUNT_FAILED"
    BANK_VERIFICATION_PENDING = "BANK_VERIFICATION_PENDING"
    BANK_VERIFICATION_IN_PROGRESS = "BANK_VERIFICATION_IN_PROGRESS"
    BANK_VERIFICATION_FAILED = "BANK_VERIFICATION_FAILED"
    IDENTITY_VERIFICATION_PENDING = "IDENTITY_VERIFICATION_PENDING"
    IDENTITY_VERIFICATION_IN_PROGRESS = "IDENTITY_VERIFICATION_IN_PROGRESS"
    IDENTITY_VERIFICATION_FAILED = "IDENTITY_VERIFICATION_FAILED"
    ADDITIONAL_REQUIREMENT_PENDING = "ADDITIONAL_REQUIREMENT_PENDING"
    ADDITIONAL_REQUIREMENT_IN_PROGRESS = "ADDITIONAL_REQUIREMENT_IN_PROGRESS"
    ADDITIONAL_REQUIREMENT_FAILED = "ADDITIONAL_REQUIREMENT_FAILED"
    SUCCESS = "SUCCESS"


def default_opp_verification() -> Dict[str, Any]:
    return {
        "create_merchant_and_bank": False,
        "bank_verification": False,
        "identity_verification": False,
        "additional_verification": False,
        "merchant_status": "",
    }


class User(SQLModel, table=True):
    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_name: str = Field(index=True, unique=True)
    first_name: str
    last_name: str
    email: str = Field(index=True, unique=True)
    password: str
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    role: Role = Field(default=Role.user)
    phone_number: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country_code: Optional[str] = Field(default=None, max_length=4)
    coc_nr: Optional[str] = None
    profile_pic: Optional[str] = None
    banner_image: Optional[str] = None

    is_active: bool = Field(default=True)
    is_email_verified: bool = Field(default=False)
    email_verification_expiry: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    reset_token: Optional[str] = Field(default=None, index=True)
    reset_token_expiry: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    refresh_token: Optional[str] = None
    refresh_token_expiry: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    merchant_uid: Optional[str] = Field(default=None, index=True)
    bank_account_uid: Optional[str] = None
    overview_url: Optional[str] = None
    onboarding: Optional[OnboardingStatus] = None
    opp_verification: Dict[str, Any] = Field(
        default_factory=default_opp_verification,
        sa_column=Column(JSON, nullable=False, default={}),
    )

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class WebhookEvent(SQLModel, table=True):
    uid: str = Field(primary_key=True)
    event_type: str
    object_uid: Optional[str] = None
    received_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
