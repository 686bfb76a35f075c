from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .. import schemas
from ..models import Role, User, utcnow
from . import security, storage
from .opp import OppClient, opp_country

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
SEARCH_MAX_LENGTH = 50


def _not_found(user_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User with ID {user_id} not found")


def get_user_by_id(session: Session, user_id: str) -> User:
    """Return an active user with a verified e-mail address."""
    user = session.get(User, user_id)
    if not user or not user.is_active or not user.is_email_verified:
        raise _not_found(user_id)
    return user


def get_all_users(session: Session, limit: int, offset: int) -> Tuple[int, List[User]]:
    active = User.is_active == True  # noqa: E712
    total = session.exec(select(func.count()).select_from(User).where(active)).one()
    items = session.exec(
        select(User).where(active).order_by(User.created_at.desc()).offset(offset).limit(limit)
    ).all()
    return total, list(items)


def get_users_by_role(session: Session, role: Role) -> List[User]:
    statement = (
        select(User)
        .where(User.role == role, User.is_active == True)  # noqa: E712
        .order_by(User.created_at.desc())
    )
    return list(session.exec(statement).all())


def search_users_by_username(session: Session, user_name: Optional[str]) -> List[User]:
    term = (user_name or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userName is required")
    if len(term) > SEARCH_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"userName must be at most {SEARCH_MAX_LENGTH} characters",
        )
    statement = (
        select(User)
        .where(
            func.lower(User.user_name).contains(term.lower(), autoescape=True),
            User.is_active == True,  # noqa: E712
            User.is_email_verified == True,  # noqa: E712
        )
        .order_by(User.user_name)
        .limit(SEARCH_LIMIT)
    )
    return list(session.exec(statement).all())


def build_opp_update(user: User, payload: schemas.UserUpdate) -> Dict[str, Any]:
    """Merchant fields that change with this profile update."""
    data: Dict[str, Any] = {}
    if payload.email is not None and payload.email != user.email:
        data["emailaddress"] = payload.email
    if payload.phone_number is not None and payload.phone_number != user.phone_number:
        data["phone"] = payload.phone_number
    if payload.country_code is not None and payload.country_code != user.country_code:
        data["country"] = opp_country(payload.country_code)
    return data


def update_user_profile(
    session: Session, user_id: str, payload: schemas.UserUpdate, opp: OppClient
) -> User:
    user = session.get(User, user_id)
    if not user or not user.is_email_verified:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User account is deactivated")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "user_name" in changes and changes["user_name"] != user.user_name:
        taken = session.exec(
            select(User).where(User.user_name == changes["user_name"], User.id != user.id)
        ).first()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")
    if "email" in changes and changes["email"] != user.email:
        taken = session.exec(select(User).where(User.email == changes["email"], User.id != user.id)).first()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")

    opp_update = build_opp_update(user, payload) if user.merchant_uid else {}

    for field, value in changes.items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Username or email already exists"
        ) from exc
    session.refresh(user)

    if opp_update:
        opp.update_merchant(user.merchant_uid, opp_update)
        logger.info("Synced %s to OPP merchant %s", sorted(opp_update), user.merchant_uid)
    return user


def replace_profile_images(
    session: Session,
    user: User,
    profile_pic: Optional[UploadFile] = None,
    banner_image: Optional[UploadFile] = None,
) -> User:
    if profile_pic is None and banner_image is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No image provided")
    for upload in (profile_pic, banner_image):
        if upload is not None:
            storage.validate_file(upload, "image")

    stale: List[str] = []
    if profile_pic is not None:
        url = storage.upload_file(
            profile_pic, f"{user.id}/profile/{profile_pic.filename}", resize=storage.PROFILE_PIC_SIZE, quality=85
        )
        if user.profile_pic and user.profile_pic != url:
            stale.append(user.profile_pic)
        user.profile_pic = url
    if banner_image is not None:
        url = storage.upload_file(
            banner_image, f"{user.id}/banner/{banner_image.filename}", resize=storage.BANNER_IMAGE_SIZE, quality=85
        )
        if user.banner_image and user.banner_image != url:
            stale.append(user.banner_image)
        user.banner_image = url

    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    for url in stale:
        storage.delete_file(url)
    return user


def deactivate_user(session: Session, user_id: str, password: str, opp: OppClient) -> None:
    user = session.get(User, user_id)
    if not user or not user.is_email_verified:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User account is already deactivated")
    if not security.verify_password(password, user.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password provided")

    user.is_active = False
    user.refresh_token = None
    user.refresh_token_expiry = None
    user.reset_token = None
    user.reset_token_expiry = None
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    logger.info("Deactivated user %s", user.id)

    if user.merchant_uid:
        opp.update_merchant(user.merchant_uid, {"status": "terminated"})
        logger.info("Terminated OPP merchant %s", user.merchant_uid)
