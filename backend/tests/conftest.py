import os
import tempfile
from datetime import timedelta
from itertools import count
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="creator-platform-tests-"))
os.environ["CREATOR_PLATFORM_DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["CREATOR_PLATFORM_JWT_SECRET_KEY"] = "test-secret-key-with-enough-length"
os.environ["CREATOR_PLATFORM_COOKIE_SECURE"] = "false"
os.environ["CREATOR_PLATFORM_FRONTEND_URL"] = "https://app.example.test"
os.environ["CREATOR_PLATFORM_BACKEND_URL"] = "https://api.example.test"
os.environ["CREATOR_PLATFORM_SPACES_BUCKET"] = "creator-bucket"
os.environ["CREATOR_PLATFORM_SPACES_ENDPOINT"] = "https://ams3.digitaloceanspaces.com"

import pytest  # noqa: E402
from fastapi import HTTPException  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from creator_platform import models  # noqa: E402,F401
from creator_platform.database import engine  # noqa: E402
from creator_platform.main import app  # noqa: E402
from creator_platform.models import OnboardingStatus, Role, User, default_opp_verification, utcnow  # noqa: E402
from creator_platform.services import processor, storage  # noqa: E402
from creator_platform.services.mail import get_mailer  # noqa: E402
from creator_platform.services.opp import BankAccount, Merchant, get_opp_client  # noqa: E402
from creator_platform.services.security import create_access_token, hash_password  # noqa: E402

PASSWORD = "password123"
OVERVIEW_URL = "https://sandbox.onlinebetaalplatform.nl/en/overview/mer_123"
_PASSWORD_HASH = hash_password(PASSWORD)
_sequence = count(1)


class FakeMailer:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.error = None

    def _record(self, kind, email, **data):
        if self.error is not None:
            raise self.error
        self.sent.append({"kind": kind, "email": email, **data})

    def send_verification_email(self, email, code, frontend_url, name):
        self._record("verification", email, code=code, frontend_url=frontend_url, name=name)

    def send_password_reset_email(self, email, reset_token):
        self._record("reset", email, token=reset_token)

    def send_step_notification(self, name, email, subject, success, overview_url, step_notify=None):
        self._record(
            "step",
            email,
            name=name,
            subject=subject,
            success=success,
            overview_url=overview_url,
            step_notify=step_notify,
        )

    def of_kind(self, kind):
        return [message for message in self.sent if message["kind"] == kind]


class FakeOppClient:
    """In-memory OPP API double with per-operation failure injection."""

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.overview_url = OVERVIEW_URL
        self.bank_account = BankAccount(uid="ban_123", status="new", verification_url="https://sandbox.example/verify")
        self.set_merchant()

    def set_merchant(self, status="pending", compliance_status="unverified", requirements=(), uid="mer_123"):
        self.merchant = Merchant.model_validate(
            {
                "uid": uid,
                "object": "merchant",
                "status": status,
                "type": "business",
                "coc_nr": "12345678",
                "compliance": {
                    "level": 100,
                    "status": compliance_status,
                    "overview_url": self.overview_url,
                    "requirements": list(requirements),
                },
            }
        )

    def fail(self, operation, detail="OPP API Error: rejected", status_code=400):
        self.errors[operation] = HTTPException(status_code=status_code, detail=detail)

    def _call(self, name, *args):
        self.calls.append((name, *args))
        if name in self.errors:
            raise self.errors[name]

    def names(self):
        return [call[0] for call in self.calls]

    def create_merchant(self, request):
        self._call("create_merchant", request)
        return self.merchant

    def create_bank_account(self, merchant_uid, request):
        self._call("create_bank_account", merchant_uid, request)
        return self.bank_account

    def get_merchant(self, merchant_uid):
        self._call("get_merchant", merchant_uid)
        return self.merchant

    def update_merchant(self, merchant_uid, data):
        self._call("update_merchant", merchant_uid, data)
        return self.merchant


class FakeS3Client:
    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.put_error = None
        self.delete_error = None

    def put_object(self, Bucket, Key, Body, ACL, ContentType):
        if self.put_error is not None:
            raise self.put_error
        self.objects[Key] = {"bucket": Bucket, "body": Body, "acl": ACL, "content_type": ContentType}

    def delete_object(self, Bucket, Key):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(Key)
        self.objects.pop(Key, None)


@pytest.fixture(autouse=True)
def reset_database():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def session():
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def opp():
    return FakeOppClient()


@pytest.fixture
def s3(monkeypatch):
    fake = FakeS3Client()
    monkeypatch.setattr(storage, "get_s3_client", lambda: fake)
    return fake


@pytest.fixture
def client(mailer, opp, s3):
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_opp_client] = lambda: opp
    original_factories = (processor.opp_factory, processor.mailer_factory)
    processor.opp_factory = lambda: opp
    processor.mailer_factory = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    processor.opp_factory, processor.mailer_factory = original_factories
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    def _make_user(**fields):
        number = next(_sequence)
        values = {
            "user_name": f"creator{number}",
            "first_name": "Casey",
            "last_name": "Maker",
            "email": f"creator{number}@example.com",
            "password": _PASSWORD_HASH,
            "role": Role.creator,
            "onboarding": OnboardingStatus.PENDING,
            "phone_number": "+31612345678",
            "country_code": "NLD",
            "is_active": True,
            "is_email_verified": True,
            "opp_verification": default_opp_verification(),
        }
        values.update(fields)
        user = User(**values)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def onboarded_user(make_user):
    """Creator waiting on provider-side verification."""

    def _onboarded_user(onboarding=OnboardingStatus.BANK_VERIFICATION_IN_PROGRESS, **fields):
        values = {
            "onboarding": onboarding,
            "coc_nr": "12345678",
            "merchant_uid": "mer_123",
            "bank_account_uid": "ban_123",
            "overview_url": OVERVIEW_URL,
            "opp_verification": {**default_opp_verification(), "create_merchant_and_bank": True},
        }
        values.update(fields)
        return make_user(**values)

    return _onboarded_user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def expired():
    return utcnow() - timedelta(minutes=1)


@pytest.fixture
def password():
    return PASSWORD
