import jwt
import pytest

from creator_platform.models import Role, User
from creator_platform.services import security


def test_password_hash_round_trip():
    hashed = security.hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert security.verify_password("s3cret-pass", hashed)
    assert not security.verify_password("other-pass", hashed)
    assert not security.verify_password("s3cret-pass", None)
    assert not security.verify_password("s3cret-pass", "not-a-known-hash")


def test_access_token_carries_identity_claims():
    user = User(
        id="user-1",
        user_name="admin",
        first_name="A",
        last_name="B",
        email="admin@example.com",
        password="x",
        role=Role.super_admin,
    )
    claims = security.decode_token(security.create_access_token(user))
    assert claims["sub"] == "user-1"
    assert claims["userName"] == "admin"
    assert claims["email"] == "admin@example.com"
    assert claims["role"] == "superAdmin"
    assert claims["type"] == security.ACCESS_TOKEN_TYPE
    assert claims["exp"] - claims["iat"] == 24 * 60 * 60


def test_refresh_tokens_are_typed_and_unique():
    first = security.create_refresh_token("user-1")
    second = security.create_refresh_token("user-1")
    assert first != second
    claims = security.decode_token(first)
    assert claims["type"] == security.REFRESH_TOKEN_TYPE
    assert claims["exp"] - claims["iat"] == 7 * 24 * 60 * 60


def test_decode_rejects_tampered_and_blank_tokens():
    forged = jwt.encode({"sub": "user-1", "type": "access"}, "some-other-secret-key-of-enough-length", algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        security.decode_token(forged)
    with pytest.raises(jwt.InvalidTokenError):
        security.decode_token("")


def test_email_verification_code_matches_only_its_address():
    code = security.make_email_verification_code("Casey@Example.com")
    assert "$" not in code
    assert security.email_matches_code("casey@example.com", code)
    assert not security.email_matches_code("someone@example.com", code)


def test_reset_token_is_64_hex_chars():
    token = security.generate_reset_token()
    assert len(token) == 64
    int(token, 16)
