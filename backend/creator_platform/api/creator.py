import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from .. import schemas
from ..config import get_settings
from ..database import get_session
from ..models import Role, User
from ..services import creator, processor
from ..services.opp import OppClient, get_opp_client
from .deps import require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/creator", tags=["creator"])


@router.post("/onboard-creator", response_model=schemas.OnboardResponse)
def onboard_creator_route(
    payload: schemas.OnboardCreatorRequest,
    user: User = Depends(require_roles(Role.creator, Role.super_admin)),
    session=Depends(get_session),
    opp: OppClient = Depends(get_opp_client),
):
    return creator.onboard_creator(session, user.id, payload, opp)


@router.post("/onboard/notify", status_code=status.HTTP_200_OK)
def onboard_notify_route(notification: schemas.WebhookNotification):
    processor.enqueue(notification)
    return {"received": True}


@router.get("/onboard/return")
def onboard_return_route(user_id: Optional[str] = Query(default=None, alias="userId")):
    settings = get_settings()
    logger.info("Creator %s returned from OPP verification", user_id)
    return RedirectResponse(
        url=f"{settings.frontend_url.rstrip('/')}/creator/verification", status_code=status.HTTP_302_FOUND
    )
