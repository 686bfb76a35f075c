from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Tuple

import jwt
from fastapi import HTTPException, UploadFile, status
from sqlmodel import Session, or_, select

from .. import schemas
from ..config import get_settings
from ..models import OnboardingStatus, Role, User, default_opp_verification, utcnow
from . import security, storage
from .mail import Mailer

logger = logging.getLogger(__name__)

SIGNUP_IMAGE_QUALITY = 85


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"}
    )


def _send_verification(session: Session, user: User, mailer: Mailer) -> None:
    """Refresh the verification window and e-mail a new code."""
    settings = get_settings()
    user.email_verification_expiry = utcnow() + timedelta(
        minutes=settings.email_verification_expire_minutes
    )
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    code = security.make_email_verification_code(user.email)
    mailer.send_verification_email(user.email, code, settings.frontend_url, user.user_name)


def signup(
    session: Session,
    payload: schemas.SignUpRequest,
    mailer: Mailer,
    profile_pic: Optional[UploadFile] = None,
    banner_image: Optional[UploadFile] = None,
) -> User:
    settings = get_settings()
    email = payload.email.lower()
    existing = session.exec(
        select(User).where(or_(User.email == email, User.user_name == payload.user_name))
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email or username already exists",
        )
    for upload in (profile_pic, banner_image):
        if upload is not None:
            storage.validate_file(upload, "image")

    user = User(
        user_name=payload.user_name,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=email,
        password=security.hash_password(payload.password),
        date_of_birth=payload.date_of_birth,
        gender=payload.gender,
        role=payload.role,
        phone_number=payload.phone_number,
        street=payload.street,
        city=payload.city,
        state=payload.state,
        country_code=payload.country_code,
        zip=payload.zip,
        email_verification_expiry=utcnow()
        + timedelta(minutes=settings.email_verification_expire_minutes),
        onboarding=OnboardingStatus.PENDING if payload.role == Role.creator else None,
        opp_verification=default_opp_verification(),
    )

    # Nothing is persisted when the verification mail cannot be delivered.
    code = security.make_email_verification_code(user.email)
    mailer.send_verification_email(user.email, code, settings.frontend_url, user.user_name)

    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.role.value)

    if profile_pic is not None or banner_image is not None:
        if profile_pic is not None:
            user.profile_pic = storage.upload_file(
                profile_pic,
                f"{user.id}/profile/{profile_pic.filename}",
                resize=storage.PROFILE_PIC_SIZE,
                quality=SIGNUP_IMAGE_QUALITY,
            )
        if banner_image is not None:
            user.banner_image = storage.upload_file(
                banner_image,
                f"{user.id}/banner/{banner_image.filename}",
                resize=storage.BANNER_IMAGE_SIZE,
                quality=SIGNUP_IMAGE_QUALITY,
            )
        user.updated_at = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
    return user


def login(session: Session, payload: schemas.SignInRequest, mailer: Mailer) -> Tuple[User, str, str]:
    """Authenticate and return ``(user, access_token, refresh_token)``."""
    settings = get_settings()
    identifier = payload.user_name_or_email.strip()
    user = session.exec(
        select(User).where(
            or_(User.email == identifier.lower(), User.user_name == identifier),
            User.is_active == True,  # noqa: E712
        )
    ).first()
    if not user or not security.verify_password(payload.password, user.password):
        raise _unauthorized("Invalid credentials")

    if not user.is_email_verified:
        _send_verification(session, user, mailer)
        raise _unauthorized("Please verify your email address before logging in")

    access_token = security.create_access_token(user)
    refresh_token = security.create_refresh_token(user.id)
    user.refresh_token = refresh_token
    user.refresh_token_expiry = utcnow() + timedelta(days=settings.refresh_token_expire_days)
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s logged in", user.id)
    return user, access_token, refresh_token


def refresh_tokens(session: Session, refresh_token: str) -> Tuple[str, Optional[str]]:
    """Return a new access token and, when the refresh token was rotated, its replacement."""
    settings = get_settings()
    try:
        claims = security.decode_token(refresh_token)
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid refresh token format")
    if claims.get("type") != security.REFRESH_TOKEN_TYPE or not claims.get("sub"):
        raise _unauthorized("Invalid refresh token format")

    now = utcnow()
    user = session.exec(
        select(User).where(
            User.id == claims["sub"],
            User.refresh_token == refresh_token,
            User.is_active == True,  # noqa: E712
        )
    ).first()
    if not user or (user.refresh_token_expiry is not None and user.refresh_token_expiry <= now):
        raise _unauthorized("Invalid or expired refresh token")

    access_token = security.create_access_token(user)
    rotated: Optional[str] = None
    rotate_before = now + timedelta(days=settings.refresh_token_rotate_days)
    if user.refresh_token_expiry is None or user.refresh_token_expiry < rotate_before:
        rotated = security.create_refresh_token(user.id)
        user.refresh_token = rotated
        user.refresh_token_expiry = now + timedelta(days=settings.refresh_token_expire_days)
        user.updated_at = now
        session.add(user)
        session.commit()
        logger.info("Rotated refresh token for user %s", user.id)
    return access_token, rotated


def logout(session: Session, user: User) -> None:
    user.refresh_token = None
    user.refresh_token_expiry = None
    user.reset_token = None
    user.reset_token_expiry = None
    user.updated_at = utcnow()
    session.add(user)
    session.commit()


def forgot_password(session: Session, email: str, mailer: Mailer) -> None:
    settings = get_settings()
    user = session.exec(
        select(User).where(User.email == email.lower(), User.is_active == True)  # noqa: E712
    ).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User with this email does not exist")

    user.reset_token = security.generate_reset_token()
    user.reset_token_expiry = utcnow() + timedelta(minutes=settings.reset_token_expire_minutes)
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    mailer.send_password_reset_email(user.email, user.reset_token)


def reset_password(session: Session, payload: schemas.ResetPasswordRequest) -> None:
    user = session.exec(
        select(User).where(
            User.reset_token == payload.token,
            User.reset_token_expiry > utcnow(),
            User.is_active == True,  # noqa: E712
        )
    ).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    user.password = security.hash_password(payload.new_password)
    user.reset_token = None
    user.reset_token_expiry = None
    user.updated_at = utcnow()
    session.add(user)
    session.commit()


def change_password(session: Session, user_id: str, payload: schemas.ChangePasswordRequest) -> None:
    if payload.old_password == payload.new_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="New password must be different from old password",
        )
    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not security.verify_password(payload.old_password, user.password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    user.password = security.hash_password(payload.new_password)
    user.refresh_token = None
    user.refresh_token_expiry = None
    user.reset_token = None
    user.reset_token_expiry = None
    user.updated_at = utcnow()
    session.add(user)
    session.commit()


def verify_email(session: Session, code: str) -> User:
    candidates = session.exec(
        select(User).where(
            User.is_email_verified == False,  # noqa: E712
            User.email_verification_expiry > utcnow(),
        )
    ).all()
    for user in candidates:
        if security.email_matches_code(user.email, code):
            user.is_email_verified = True
            user.email_verification_expiry = None
            user.updated_at = utcnow()
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info("Verified e-mail for user %s", user.id)
            return user
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")


def resend_verification_email(session: Session, email: str, mailer: Mailer) -> None:
    user = session.exec(select(User).where(User.email == email.lower())).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.is_email_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is already verified")
    _send_verification(session, user, mailer)
