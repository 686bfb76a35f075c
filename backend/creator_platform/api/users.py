from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from .. import schemas
from ..config import PaginationParams
from ..database import get_session
from ..models import Role, User
from ..services import users
from ..services.opp import OppClient, get_opp_client
from .deps import get_current_user, require_roles

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=schemas.UserRead)
def read_profile(user: User = Depends(get_current_user)):
    return schemas.UserRead.model_validate(user)


@router.get("/current-user", response_model=schemas.UserRead)
def read_current_user(user: User = Depends(get_current_user), session=Depends(get_session)):
    return schemas.UserRead.model_validate(users.get_user_by_id(session, user.id))


@router.get("", response_model=schemas.UserPage)
def list_users(
    pagination: PaginationParams = Depends(),
    _: User = Depends(require_roles(Role.super_admin)),
    session=Depends(get_session),
):
    total, items = users.get_all_users(session, pagination.limit, pagination.offset)
    return schemas.UserPage(total=total, items=[schemas.UserRead.model_validate(item) for item in items])


@router.get("/search", response_model=List[schemas.UserSearchResult])
def search_users(
    user_name: Optional[str] = Query(default=None, alias="userName"),
    _: User = Depends(get_current_user),
    session=Depends(get_session),
):
    matches = users.search_users_by_username(session, user_name)
    return [schemas.UserSearchResult.model_validate(item) for item in matches]


@router.get("/creators/list", response_model=List[schemas.UserSummary])
def list_creators(
    _: User = Depends(require_roles(Role.super_admin, Role.creator)),
    session=Depends(get_session),
):
    creators = users.get_users_by_role(session, Role.creator)
    return [schemas.UserSummary.model_validate(item) for item in creators]


@router.post("/me/images", response_model=schemas.UserRead)
def replace_images(
    profile_pic: Optional[UploadFile] = File(default=None, alias="profilePic"),
    banner_image: Optional[UploadFile] = File(default=None, alias="bannerImage"),
    user: User = Depends(get_current_user),
    session=Depends(get_session),
):
    profile_pic = profile_pic if profile_pic is not None and profile_pic.filename else None
    banner_image = banner_image if banner_image is not None and banner_image.filename else None
    updated = users.replace_profile_images(session, user, profile_pic=profile_pic, banner_image=banner_image)
    return schemas.UserRead.model_validate(updated)


@router.post("/deactivate", response_model=schemas.MessageResponse)
def deactivate_account(
    payload: schemas.DeactivateRequest,
    user: User = Depends(get_current_user),
    session=Depends(get_session),
    opp: OppClient = Depends(get_opp_client),
):
    users.deactivate_user(session, user.id, payload.password, opp)
    return schemas.MessageResponse(message="User account deactivated successfully")


@router.get("/{user_id}", response_model=schemas.UserRead)
def read_user(user_id: str, _: User = Depends(get_current_user), session=Depends(get_session)):
    return schemas.UserRead.model_validate(users.get_user_by_id(session, user_id))


@router.put("/{user_id}", response_model=schemas.UserRead)
def update_user(
    user_id: str,
    payload: schemas.UserUpdate,
    user: User = Depends(get_current_user),
    session=Depends(get_session),
    opp: OppClient = Depends(get_opp_client),
):
    if user.id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only update your own profile")
    updated = users.update_user_profile(session, user_id, payload, opp)
    return schemas.UserRead.model_validate(updated)
