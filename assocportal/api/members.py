from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..constants import MemberStatus
from ..models.models import Member, MemberUnit, User
from ..schemas.schemas import (
    MemberInvite,
    MemberRead,
    MemberRoleUpdate,
    MemberStatusUpdate,
    MemberUnitRead,
    UnitAssignmentRequest,
)
from ..services import members as member_service

router = APIRouter(prefix="/associations/{association_id}/members", tags=["members"])


def _serialize_assignment(assignment: MemberUnit) -> MemberUnitRead:
    return MemberUnitRead(
        id=assignment.id,
        member_id=assignment.member_id,
        unit_id=assignment.unit_id,
        unit_name=assignment.unit.name,
        building=assignment.unit.building,
        assigned_at=assignment.assigned_at,
    )


@router.get("", response_model=list[MemberRead])
def list_members(
    association_id: int,
    status: Optional[MemberStatus] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[Member]:
    return member_service.list_members(db, user, association_id, status)


@router.get("/me", response_model=Optional[MemberRead])
def read_my_member_profile(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Optional[Member]:
    return member_service.get_current_member(db, user, association_id)


@router.post("", response_model=MemberRead, status_code=201)
def invite_member(
    association_id: int,
    payload: MemberInvite,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Member:
    return member_service.invite_member(db, user, association_id, payload, background_tasks)


@router.patch("/{member_id}/role", response_model=MemberRead)
def update_member_role(
    association_id: int,
    member_id: int,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Member:
    return member_service.update_member_role(db, user, association_id, member_id, payload.role)


@router.patch("/{member_id}/status", response_model=MemberRead)
def update_member_status(
    association_id: int,
    member_id: int,
    payload: MemberStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Member:
    return member_service.update_member_status(
        db, user, association_id, member_id, MemberStatus(payload.status), payload.reason
    )


@router.get("/{member_id}/units", response_model=list[MemberUnitRead])
def list_member_units(
    association_id: int,
    member_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[MemberUnitRead]:
    return [
        _serialize_assignment(assignment)
        for assignment in member_service.list_member_units(db, user, association_id, member_id)
    ]


@router.post("/{member_id}/units", response_model=MemberUnitRead, status_code=201)
def assign_unit(
    association_id: int,
    member_id: int,
    payload: UnitAssignmentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MemberUnitRead:
    assignment = member_service.assign_unit(db, user, association_id, member_id, payload.unit_id)
    return _serialize_assignment(assignment)


@router.delete("/{member_id}/units/{unit_id}", status_code=204)
def unassign_unit(
    association_id: int,
    member_id: int,
    unit_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    member_service.unassign_unit(db, user, association_id, member_id, unit_id)
    return Response(status_code=204)
