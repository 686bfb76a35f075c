"""Creator onboarding against the Online Payment Platform (OPP).

A creator moves through merchant creation, bank-account linkage and
three provider-hosted verification steps (bank, identity/contact and
additional/UBO). ``onboard_creator`` performs whatever step the stored
``OnboardingStatus`` calls for; provider notifications posted to
``/creator/onboard/notify`` advance the status once OPP has reviewed a
step.

Status flow::

    PENDING -> CREATE_MERCHANT_PENDING -> CREATE_BANK_ACCOUNT_PENDING
      -> BANK_VERIFICATION_PENDING -> BANK_VERIFICATION_IN_PROGRESS
      -> IDENTITY_VERIFICATION_PENDING -> IDENTITY_VERIFICATION_IN_PROGRESS
      -> ADDITIONAL_REQUIREMENT_PENDING -> ADDITIONAL_REQUIREMENT_IN_PROGRESS
      -> SUCCESS

Every step has a ``*_FAILED`` status from which ``onboard_creator``
retries that step.
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple, Optional

from fastapi import HTTPException, status
from sqlmodel import Session, select

from .. import schemas
from ..config import get_settings
from ..logging_utils import StepTimer, log_event
from ..models import OnboardingStatus, User, WebhookEvent, utcnow
from .mail import Mailer
from .opp import CreateBankAccountRequest, CreateMerchantRequest, OppClient, opp_country
from .users import get_user_by_id

logger = logging.getLogger(__name__)

S = OnboardingStatus

ALREADY_COMPLETED_MESSAGE = "Onboarding already completed successfully"
IN_PROGRESS_MESSAGE = "Onboarding is in progress. Please wait for verification to complete."
BANK_ACCOUNT_CREATED_MESSAGE = "First two steps completed successfully. Redirect to bank verification."


class RedirectStep(NamedTuple):
    in_progress: OnboardingStatus
    failed: OnboardingStatus
    message: str
    next_step: str


_BANK_STEP = RedirectStep(
    S.BANK_VERIFICATION_IN_PROGRESS,
    S.BANK_VERIFICATION_FAILED,
    "Please complete bank verification",
    "bank_verification",
)
_IDENTITY_STEP = RedirectStep(
    S.IDENTITY_VERIFICATION_IN_PROGRESS,
    S.IDENTITY_VERIFICATION_FAILED,
    "Please complete identity verification",
    "identity_verification",
)
_ADDITIONAL_STEP = RedirectStep(
    S.ADDITIONAL_REQUIREMENT_IN_PROGRESS,
    S.ADDITIONAL_REQUIREMENT_FAILED,
    "Please complete additional requirements",
    "additional_requirements",
)

REDIRECT_STEPS = {
    S.BANK_VERIFICATION_PENDING: _BANK_STEP,
    S.BANK_VERIFICATION_FAILED: _BANK_STEP,
    S.IDENTITY_VERIFICATION_PENDING: _IDENTITY_STEP,
    S.IDENTITY_VERIFICATION_FAILED: _IDENTITY_STEP,
    S.ADDITIONAL_REQUIREMENT_PENDING: _ADDITIONAL_STEP,
    S.ADDITIONAL_REQUIREMENT_FAILED: _ADDITIONAL_STEP,
}


class RequirementStep(NamedTuple):
    label: str
    flag: str
    object_type: Optional[str]
    requirement_type: Optional[str]
    verified_status: OnboardingStatus
    rejected_status: OnboardingStatus


REQUIREMENT_EVENTS = {
    "bank_account.status.changed": RequirementStep(
        "Bank",
        "bank_verification",
        "bank_account",
        None,
        S.IDENTITY_VERIFICATION_PENDING,
        S.BANK_VERIFICATION_FAILED,
    ),
    "contact.status.changed": RequirementStep(
        "Identity",
        "identity_verification",
        "contact",
        None,
        S.ADDITIONAL_REQUIREMENT_PENDING,
        S.IDENTITY_VERIFICATION_FAILED,
    ),
    "ubo.status.updated": RequirementStep(
        "Additional",
        "additional_verification",
        None,
        "ubo.verification.required",
        S.SUCCESS,
        S.ADDITIONAL_REQUIREMENT_FAILED,
    ),
}

MERCHANT_EVENTS = {"merchant.status.changed", "merchant.compliance_status.changed"}


def _set_status(session: Session, user: User, new_status: OnboardingStatus, **fields: Any) -> User:
    user.onboarding = new_status
    for name, value in fields.items():
        setattr(user, name, value)
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    log_event(user.id, new_status.value, "onboarding status updated")
    return user


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def create_merchant(session: Session, user: User, coc_nr: str, opp: OppClient) -> schemas.OnboardResponse:
    """Register the creator as a business merchant, then link a bank account."""
    settings = get_settings()
    _set_status(session, user, S.CREATE_MERCHANT_PENDING)
    try:
        if not settings.backend_url:
            raise _bad_request("Notification URL is not configured")
        if not user.country_code:
            raise _bad_request("Country not found")
        if not user.phone_number:
            raise _bad_request("Phone number not found")
        request = CreateMerchantRequest(
            coc_nr=coc_nr,
            country=opp_country(user.country_code),
            emailaddress=user.email,
            phone=user.phone_number,
            notify_url=settings.opp_notify_url,
        )
        with StepTimer(user.id, "create_merchant", "OPP create merchant"):
            merchant = opp.create_merchant(request)
    except Exception:
        _set_status(session, user, S.CREATE_MERCHANT_FAILED)
        raise

    # From here on a retry must not create a second merchant.
    _set_status(
        session,
        user,
        S.CREATE_BANK_ACCOUNT_PENDING,
        merchant_uid=merchant.uid,
        overview_url=merchant.compliance.overview_url,
        coc_nr=merchant.coc_nr or coc_nr,
    )
    return create_bank_account(session, user, opp, overview_url=merchant.compliance.overview_url)


def create_bank_account(
    session: Session, user: User, opp: OppClient, overview_url: Optional[str] = None
) -> schemas.OnboardResponse:
    settings = get_settings()
    try:
        if not user.merchant_uid:
            raise _bad_request("Merchant UID not found")
        with StepTimer(user.id, "create_bank_account", "OPP get merchant"):
            merchant = opp.get_merchant(user.merchant_uid)
        final_overview_url = overview_url or merchant.compliance.overview_url
        _set_status(session, user, S.CREATE_BANK_ACCOUNT_PENDING)
        request = CreateBankAccountRequest(
            return_url=f"{settings.opp_return_url}?userId={user.id}",
            notify_url=settings.opp_notify_url,
        )
        with StepTimer(user.id, "create_bank_account", "OPP create bank account"):
            bank_account = opp.create_bank_account(user.merchant_uid, request)
    except Exception:
        _set_status(session, user, S.CREATE_BANK_ACCOUNT_FAILED)
        raise

    _set_status(
        session,
        user,
        S.BANK_VERIFICATION_PENDING,
        bank_account_uid=bank_account.uid,
        overview_url=final_overview_url,
        opp_verification={
            "create_merchant_and_bank": True,
            "bank_verification": False,
            "identity_verification": False,
            "additional_verification": False,
            "merchant_status": merchant.status,
        },
    )
    return schemas.OnboardResponse(
        success=True,
        status=S.BANK_VERIFICATION_PENDING,
        message=BANK_ACCOUNT_CREATED_MESSAGE,
        next_step="bank_verification",
        redirect_url=final_overview_url,
    )


def redirect_to_verification(session: Session, user: User, step: RedirectStep) -> schemas.OnboardResponse:
    """Send the creator to the provider-hosted overview page for ``step``."""
    if not user.merchant_uid or not user.overview_url:
        _set_status(session, user, step.failed)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Merchant not found")
    _set_status(session, user, step.in_progress)
    return schemas.OnboardResponse(
        success=True,
        status=step.in_progress,
        message=step.message,
        next_step=step.next_step,
        redirect_url=user.overview_url,
    )


def onboard_creator(
    session: Session, user_id: str, payload: schemas.OnboardCreatorRequest, opp: OppClient
) -> schemas.OnboardResponse:
    user = get_user_by_id(session, user_id)
    coc_nr = (payload.coc_nr or "").strip() or user.coc_nr
    if not coc_nr:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="coc nr not found")

    current = user.onboarding
    log_event(user.id, "onboard", "onboarding requested", status=current.value if current else None)
    try:
        if current in (S.PENDING, S.CREATE_MERCHANT_FAILED):
            return create_merchant(session, user, coc_nr, opp)
        if current in (S.CREATE_BANK_ACCOUNT_PENDING, S.CREATE_BANK_ACCOUNT_FAILED):
            return create_bank_account(session, user, opp)
        if current in REDIRECT_STEPS:
            return redirect_to_verification(session, user, REDIRECT_STEPS[current])
        if current == S.SUCCESS:
            return schemas.OnboardResponse(success=True, status=current, message=ALREADY_COMPLETED_MESSAGE)
        return schemas.OnboardResponse(success=True, status=current or S.PENDING, message=IN_PROGRESS_MESSAGE)
    except Exception as exc:
        logger.warning("Onboarding step failed for user %s at %s: %s", user_id, current, exc)
        session.rollback()
        session.refresh(user)
        detail = exc.detail if isinstance(exc, HTTPException) else str(exc)
        return schemas.OnboardResponse(success=False, status=user.onboarding or S.PENDING, message=str(detail))


def _find_user_by_merchant(session: Session, merchant_uid: Optional[str]) -> Optional[User]:
    if not merchant_uid:
        return None
    return session.exec(
        select(User).where(
            User.merchant_uid == merchant_uid,
            User.is_active == True,  # noqa: E712
            User.is_email_verified == True,  # noqa: E712
        )
    ).first()


def handle_requirement_update(
    session: Session,
    notification: schemas.WebhookNotification,
    step: RequirementStep,
    opp: OppClient,
    mailer: Mailer,
) -> None:
    user = _find_user_by_merchant(session, notification.parent_uid)
    if not user or not user.overview_url:
        logger.warning("No onboarding creator for merchant %s (%s)", notification.parent_uid, notification.type)
        return

    merchant = opp.get_merchant(user.merchant_uid)
    requirement = merchant.find_requirement(object_type=step.object_type, requirement_type=step.requirement_type)
    if requirement is not None and requirement.status == "pending":
        log_event(user.id, step.flag, "requirement still pending at provider")
        return

    verified = requirement is None or requirement.status != "unverified"
    _set_status(
        session,
        user,
        step.verified_status if verified else step.rejected_status,
        opp_verification={
            **(user.opp_verification or {}),
            step.flag: verified,
            "merchant_status": merchant.status,
        },
    )
    if not user.email:
        return
    if verified:
        subject = f"{step.label} verification step completed successfully"
        note = f"{step.label} verification steps completed successfully"
    else:
        subject = f"{step.label} verification incomplete"
        note = f"but unfortunately, {step.label} verification steps could not be completed successfully"
    mailer.send_step_notification(user.first_name or "", user.email, subject, verified, user.overview_url, note)


def handle_merchant_update(
    session: Session, notification: schemas.WebhookNotification, opp: OppClient, mailer: Mailer
) -> None:
    settings = get_settings()
    user = _find_user_by_merchant(session, notification.object_uid)
    if not user:
        logger.warning("No onboarding creator for merchant %s (%s)", notification.object_uid, notification.type)
        return

    merchant = opp.get_merchant(user.merchant_uid)
    live = merchant.compliance.status == "verified" and merchant.status == "live"
    previous_status = user.onboarding
    previous_merchant_status = (user.opp_verification or {}).get("merchant_status")
    verification = {**(user.opp_verification or {}), "merchant_status": merchant.status}
    if live:
        _set_status(session, user, S.SUCCESS, opp_verification=verification)
    else:
        user.opp_verification = verification
        user.updated_at = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
        log_event(user.id, "merchant_status", "merchant not live yet", merchant_status=merchant.status)

    if live and previous_status == S.SUCCESS and previous_merchant_status == merchant.status:
        return
    if not user.email:
        return
    subject = "Your account is now verified" if live else "Verification incomplete – Action required"
    mailer.send_step_notification(user.first_name or "", user.email, subject, live, settings.frontend_url)


def handle_webhook_notification(
    session: Session, notification: schemas.WebhookNotification, opp: OppClient, mailer: Mailer
) -> None:
    """Apply a provider notification once; a failed attempt can be redelivered."""
    if session.get(WebhookEvent, notification.uid):
        logger.info("Skipping duplicate OPP notification %s", notification.uid)
        return
    session.add(
        WebhookEvent(uid=notification.uid, event_type=notification.type, object_uid=notification.object_uid)
    )
    session.commit()

    try:
        step = REQUIREMENT_EVENTS.get(notification.type)
        if step is not None:
            handle_requirement_update(session, notification, step, opp, mailer)
        elif notification.type in MERCHANT_EVENTS:
            handle_merchant_update(session, notification, opp, mailer)
        else:
            logger.info("Unhandled OPP notification type %s (%s)", notification.type, notification.uid)
    except Exception:
        session.rollback()
        event = session.get(WebhookEvent, notification.uid)
        if event:
            session.delete(event)
            session.commit()
        raise
