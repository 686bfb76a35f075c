import importlib.util
import json
import sys
from pathlib import Path

import pytest
from sqlmodel import select

from creator_platform.models import Role, User
from creator_platform.services.security import verify_password

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "create_superadmin.py"


@pytest.fixture
def create_superadmin():
    spec = importlib.util.spec_from_file_location("create_superadmin", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _run(module, monkeypatch, capsys, *args):
    monkeypatch.setattr(sys, "argv", ["create_superadmin.py", *args])
    module.main()
    return json.loads(capsys.readouterr().out)


def test_creates_verified_super_admin(session, create_superadmin, monkeypatch, capsys):
    output = _run(
        create_superadmin,
        monkeypatch,
        capsys,
        "--email", " Root@Example.com ",
        "--user-name", "root",
        "--password", "secret123",
    )
    assert output["status"] == "ok"
    assert output["action"] == "created"
    assert output["email"] == "root@example.com"

    user = session.exec(select(User).where(User.email == "root@example.com")).one()
    assert user.id == output["id"]
    assert user.role == Role.super_admin
    assert user.is_email_verified is True
    assert user.is_active is True
    assert user.first_name == "Super"
    assert verify_password("secret123", user.password)


def test_promotes_existing_account(session, make_user, create_superadmin, monkeypatch, capsys):
    user = make_user(role=Role.user, onboarding=None, is_email_verified=False, email="casey@example.com")
    output = _run(
        create_superadmin,
        monkeypatch,
        capsys,
        "--email", "casey@example.com",
        "--user-name", "ignored",
        "--password", "secret123",
    )
    assert output["action"] == "promoted"
    assert output["id"] == user.id

    session.refresh(user)
    assert user.role == Role.super_admin
    assert user.is_email_verified is True
    assert user.user_name != "ignored"


def test_rejects_short_password_and_taken_user_name(make_user, create_superadmin, monkeypatch, capsys):
    with pytest.raises(SystemExit):
        _run(
            create_superadmin, monkeypatch, capsys,
            "--email", "a@example.com", "--user-name", "a", "--password", "123",
        )
    assert json.loads(capsys.readouterr().out)["status"] == "failed"

    make_user(user_name="taken")
    with pytest.raises(SystemExit):
        _run(
            create_superadmin, monkeypatch, capsys,
            "--email", "new@example.com", "--user-name", "taken", "--password", "secret123",
        )
    assert json.loads(capsys.readouterr().out)["error"] == "user name already exists"
