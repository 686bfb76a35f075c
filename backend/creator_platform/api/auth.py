import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from .. import schemas
from ..config import get_settings
from ..database import get_session
from ..models import User
from ..services import auth
from ..services.mail import Mailer, get_mailer
from .deps import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_auth_cookies(response: Response, access_token: str, refresh_token: Optional[str] = None) -> None:
    settings = get_settings()
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )
    if refresh_token:
        response.set_cookie(
            key=REFRESH_TOKEN_COOKIE,
            value=refresh_token,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
            max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        )


def _clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(key=ACCESS_TOKEN_COOKIE)
    response.delete_cookie(key=REFRESH_TOKEN_COOKIE)


def _provided(upload: Optional[UploadFile]) -> Optional[UploadFile]:
    # Browsers post an empty part when no file is chosen.
    if upload is None or not upload.filename:
        return None
    return upload


@router.post("/signup", response_model=schemas.MessageResponse, status_code=status.HTTP_201_CREATED)
def signup_route(
    user_name: str = Form(..., alias="userName"),
    first_name: str = Form(..., alias="firstName"),
    last_name: str = Form(..., alias="lastName"),
    date_of_birth: str = Form(..., alias="dateOfBirth"),
    email: str = Form(...),
    password: str = Form(...),
    gender: str = Form(...),
    role: str = Form(...),
    phone_number: Optional[str] = Form(default=None, alias="phoneNumber"),
    street: Optional[str] = Form(default=None),
    city: Optional[str] = Form(default=None),
    state: Optional[str] = Form(default=None),
    country_code: Optional[str] = Form(default=None, alias="countryCode"),
    zip: Optional[str] = Form(default=None),
    profile_pic: Optional[UploadFile] = File(default=None, alias="profilePic"),
    banner_image: Optional[UploadFile] = File(default=None, alias="bannerImage"),
    session=Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    try:
        payload = schemas.SignUpRequest(
            user_name=user_name,
            first_name=first_name,
            last_name=last_name,
            date_of_birth=date_of_birth,
            email=email,
            password=password,
            gender=gender,
            role=role,
            phone_number=phone_number or None,
            street=street,
            city=city,
            state=state,
            country_code=country_code or None,
            zip=zip,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc

    try:
        auth.signup(
            session,
            payload,
            mailer,
            profile_pic=_provided(profile_pic),
            banner_image=_provided(banner_image),
        )
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Registration failed for %s", payload.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Something went wrong during registration",
        ) from exc
    return schemas.MessageResponse(status_code=status.HTTP_201_CREATED, message="User registered successfully")


@router.post("/login", response_model=schemas.LoginResponse)
def login_route(
    payload: schemas.SignInRequest,
    response: Response,
    session=Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    user, access_token, refresh_token = auth.login(session, payload, mailer)
    _set_auth_cookies(response, access_token, refresh_token)
    return schemas.LoginResponse(
        message="Login successful",
        user=schemas.UserRead.model_validate(user),
        access_token=access_token,
        refresh_token=refresh_token,
    )


@router.post("/refresh-token", response_model=schemas.RefreshTokenResponse)
def refresh_token_route(payload: schemas.RefreshTokenRequest, response: Response, session=Depends(get_session)):
    access_token, rotated = auth.refresh_tokens(session, payload.refresh_token)
    _set_auth_cookies(response, access_token, rotated)
    return schemas.RefreshTokenResponse(
        message="Token refreshed successfully", access_token=access_token, refresh_token=rotated
    )


@router.post("/logout", response_model=schemas.MessageResponse)
def logout_route(response: Response, user: User = Depends(get_current_user), session=Depends(get_session)):
    auth.logout(session, user)
    _clear_auth_cookies(response)
    return schemas.MessageResponse(message="Logged out successfully")


@router.post("/forgot-password", response_model=schemas.MessageResponse)
def forgot_password_route(
    payload: schemas.ForgotPasswordRequest,
    session=Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    auth.forgot_password(session, payload.email, mailer)
    return schemas.MessageResponse(message="Password reset email sent")


@router.post("/reset-password", response_model=schemas.MessageResponse)
def reset_password_route(payload: schemas.ResetPasswordRequest, session=Depends(get_session)):
    auth.reset_password(session, payload)
    return schemas.MessageResponse(message="Password reset successfully")


@router.post("/change-password", response_model=schemas.MessageResponse)
def change_password_route(
    payload: schemas.ChangePasswordRequest,
    response: Response,
    user: User = Depends(get_current_user),
    session=Depends(get_session),
):
    auth.change_password(session, user.id, payload)
    _clear_auth_cookies(response)
    return schemas.MessageResponse(message="Password changed successfully. Please login again.")


@router.get("/verify-email", response_model=schemas.MessageResponse)
def verify_email_route(code: str = Query(..., min_length=1), session=Depends(get_session)):
    auth.verify_email(session, code)
    return schemas.MessageResponse(message="Email verified successfully")


@router.post("/resend-email-verification", response_model=schemas.MessageResponse)
def resend_verification_route(
    payload: schemas.ResendVerificationRequest,
    session=Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    auth.resend_verification_email(session, payload.email, mailer)
    return schemas.MessageResponse(message="Verification email sent")
