from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.associations import membership_read
from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, get_optional_user
from ..constants import SubscriptionStatus
from ..models.models import Association, User
from ..schemas.schemas import (
    AssociationAdminAdd,
    AssociationRead,
    MembershipRead,
    MembershipRoleUpdate,
    PlatformAdminCreate,
    PlatformAdminRead,
    PlatformAssociationCreate,
    PlatformAssociationRead,
    PlatformStats,
    SubscriptionUpdate,
    SuspendRequest,
)
from ..services import platform_admin as platform_service

router = APIRouter(prefix="/platform", tags=["platform"])


@router.get("/is-admin")
def read_is_platform_admin(
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> dict[str, bool]:
    return {"is_platform_admin": platform_service.is_platform_admin(db, user)}


@router.get("/me", response_model=Optional[PlatformAdminRead])
def read_current_platform_admin(
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> Optional[PlatformAdminRead]:
    admin = platform_service.get_current_platform_admin(db, user)
    if admin is None:
        return None
    return PlatformAdminRead(**platform_service.admin_read(admin))


@router.get("/setup-status")
def read_setup_status(db: Session = Depends(get_db)) -> dict[str, bool]:
    return {"admins_exist": platform_service.any_platform_admins(db)}


@router.post("/setup", response_model=PlatformAdminRead, status_code=201)
def setup_initial_platform_admin(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> PlatformAdminRead:
    return PlatformAdminRead(**platform_service.admin_read(platform_service.setup_initial_platform_admin(db, user)))


@router.post("/admins", response_model=PlatformAdminRead, status_code=201)
def create_platform_admin(
    payload: PlatformAdminCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> PlatformAdminRead:
    return PlatformAdminRead(**platform_service.admin_read(platform_service.create_platform_admin(db, user, payload)))


@router.get("/stats", response_model=PlatformStats)
def read_platform_stats(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> PlatformStats:
    return PlatformStats(**platform_service.platform_stats(db, user))


@router.get("/associations", response_model=list[PlatformAssociationRead])
def list_all_associations(
    status: Optional[SubscriptionStatus] = None,
    tier: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[PlatformAssociationRead]:
    return [
        PlatformAssociationRead(
            association=AssociationRead.model_validate(item["association"]),
            member_count=item["member_count"],
            owner_email=item["owner_email"],
            owner_name=item["owner_name"],
        )
        for item in platform_service.list_all_associations(db, user, status, tier)
    ]


@router.post("/associations", response_model=AssociationRead, status_code=201)
def create_association(
    payload: PlatformAssociationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Association:
    return platform_service.create_association_as_admin(db, user, payload)


@router.post("/associations/{association_id}/suspend", response_model=AssociationRead)
def suspend_association(
    association_id: int,
    payload: SuspendRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Association:
    return platform_service.suspend_association(db, user, association_id, payload.reason)


@router.post("/associations/{association_id}/reactivate", response_model=AssociationRead)
def reactivate_association(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Association:
    return platform_service.reactivate_association(db, user, association_id)


@router.put("/associations/{association_id}/subscription", response_model=AssociationRead)
def update_association_subscription(
    association_id: int,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Association:
    return platform_service.update_association_subscription(db, user, association_id, payload)


@router.get("/associations/{association_id}/memberships", response_model=list[MembershipRead])
def list_association_memberships(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[MembershipRead]:
    return [
        membership_read(item)
        for item in platform_service.list_association_memberships(db, user, association_id)
    ]


@router.post("/associations/{association_id}/memberships", response_model=MembershipRead, status_code=201)
def add_association_admin(
    association_id: int,
    payload: AssociationAdminAdd,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MembershipRead:
    return membership_read(platform_service.add_association_admin(db, user, association_id, payload))


@router.patch("/associations/{association_id}/memberships/{membership_id}", response_model=MembershipRead)
def update_association_member_role(
    association_id: int,
    membership_id: int,
    payload: MembershipRoleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MembershipRead:
    membership = platform_service.update_association_member_role(db, user, association_id, membership_id, payload.role)
    return membership_read(membership)


@router.delete("/associations/{association_id}/memberships/{membership_id}", status_code=204)
def remove_association_admin(
    association_id: int,
    membership_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    platform_service.remove_association_admin(db, user, association_id, membership_id)
    return Response(status_code=204)
