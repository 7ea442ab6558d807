from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, get_optional_user
from ..models.models import Association, AssociationMembership, User
from ..schemas.schemas import (
    AssociationCreate,
    AssociationRead,
    AssociationUpdate,
    AssociationWithRole,
    CurrentUserRead,
    MembershipRead,
    SelectAssociationRequest,
)
from ..services import associations as association_service
from ..services.access import get_platform_admin

router = APIRouter(prefix="/associations", tags=["associations"])
me_router = APIRouter(prefix="/me", tags=["me"])


def _with_role(association: Association, membership: AssociationMembership) -> AssociationWithRole:
    return AssociationWithRole(
        association=AssociationRead.model_validate(association),
        role=membership.role,
        membership_id=membership.id,
    )


def membership_read(membership: AssociationMembership) -> MembershipRead:
    user = membership.user
    return MembershipRead(
        id=membership.id,
        association_id=membership.association_id,
        user_id=membership.user_id,
        role=membership.role,
        status=membership.status,
        invited_at=membership.invited_at,
        joined_at=membership.joined_at,
        created_at=membership.created_at,
        user_email=user.email if user else None,
        user_name=user.display_name if user else None,
    )


@router.get("/", response_model=list[AssociationWithRole])
def list_associations(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[AssociationWithRole]:
    return [_with_role(association, membership) for association, membership in association_service.list_user_associations(db, user)]


@router.post("/", response_model=AssociationWithRole, status_code=201)
def create_association(
    payload: AssociationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AssociationWithRole:
    association, membership = association_service.create_association(db, user, payload)
    return _with_role(association, membership)


@router.get("/{association_id}", response_model=AssociationWithRole)
def get_association(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AssociationWithRole:
    association, membership = association_service.get_association_for_member(db, user, association_id)
    return _with_role(association, membership)


@router.patch("/{association_id}", response_model=AssociationRead)
def update_association(
    association_id: int,
    payload: AssociationUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Association:
    return association_service.update_association(db, user, association_id, payload)


@router.post("/{association_id}/accept-invitation", response_model=MembershipRead)
def accept_invitation(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MembershipRead:
    return membership_read(association_service.accept_invitation(db, user, association_id))


@router.get("/{association_id}/memberships", response_model=list[MembershipRead])
def list_memberships(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[MembershipRead]:
    return [membership_read(item) for item in association_service.list_memberships(db, user, association_id)]


@router.delete("/{association_id}/memberships/{membership_id}", status_code=204)
def remove_membership(
    association_id: int,
    membership_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    association_service.remove_membership(db, user, association_id, membership_id)
    return Response(status_code=204)


@me_router.get("", response_model=CurrentUserRead)
def read_current_user(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> CurrentUserRead:
    return CurrentUserRead(
        id=user.id,
        email=user.email,
        name=user.name,
        image_url=user.image_url,
        is_platform_admin=get_platform_admin(db, user) is not None,
    )


@me_router.get("/current-association", response_model=Optional[AssociationWithRole])
def read_current_association(
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> Optional[AssociationWithRole]:
    current = association_service.get_current_association(db, user)
    if current is None:
        return None
    return _with_role(*current)


@me_router.put("/selected-association", response_model=AssociationWithRole)
def select_association(
    payload: SelectAssociationRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AssociationWithRole:
    association_service.set_selected_association(db, user, payload.association_id)
    association, membership = association_service.get_association_for_member(db, user, payload.association_id)
    return _with_role(association, membership)
