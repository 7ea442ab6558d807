import logging
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..constants import MemberRole, MemberStatus, MembershipRole, MembershipStatus
from ..core.errors import NotFound, ValidationFailure
from ..models.models import AssociationMembership, Member, MemberUnit, Unit, User, utcnow
from ..schemas.schemas import MemberInvite
from . import email as email_service
from .access import get_association, get_member_for_user, require_admin, require_membership
from .audit import record_audit_best_effort

logger = logging.getLogger(__name__)


def _get_member(db: Session, association_id: int, member_id: int) -> Member:
    member = db.get(Member, member_id)
    if not member or member.association_id != association_id:
        raise NotFound("Member not found")
    return member


def _get_unit(db: Session, association_id: int, unit_id: int) -> Unit:
    unit = db.get(Unit, unit_id)
    if not unit or unit.association_id != association_id:
        raise NotFound("Unit not found")
    return unit


def _actor_member_id(db: Session, association_id: int, user: User) -> Optional[int]:
    member = get_member_for_user(db, association_id, user)
    return member.id if member else None


def list_members(db: Session, user: User, association_id: int, status: Optional[MemberStatus] = None) -> list[Member]:
    require_admin(db, user, association_id)
    query = db.query(Member).filter(Member.association_id == association_id)
    if status:
        query = query.filter(Member.status == status)
    return query.order_by(Member.name.asc(), Member.id.asc()).all()


def get_current_member(db: Session, user: User, association_id: int) -> Optional[Member]:
    require_membership(db, user, association_id)
    return get_member_for_user(db, association_id, user)


def count_seated_members(db: Session, association_id: int) -> int:
    return (
        db.query(func.count(Member.id))
        .filter(Member.association_id == association_id, Member.status != MemberStatus.INACTIVE)
        .scalar()
    ) or 0


def invite_member(
    db: Session,
    user: User,
    association_id: int,
    payload: MemberInvite,
    background: Optional[BackgroundTasks] = None,
) -> Member:
    require_admin(db, user, association_id)
    association = get_association(db, association_id)
    email = payload.email.lower()

    existing = (
        db.query(Member)
        .filter(Member.association_id == association_id, func.lower(Member.email) == email)
        .first()
    )
    if existing:
        raise ValidationFailure("A member with this email already exists")

    if association.max_members is not None and count_seated_members(db, association_id) >= association.max_members:
        raise ValidationFailure(
            f"Member limit reached ({association.max_members}). Upgrade your subscription to add more members."
        )

    units = [_get_unit(db, association_id, unit_id) for unit_id in payload.unit_ids]
    for unit in units:
        if unit.assignment is not None:
            raise ValidationFailure(f"Unit {unit.name} is already assigned to another member")

    now = utcnow()
    member = Member(
        association_id=association_id,
        email=email,
        name=payload.name.strip(),
        phone=payload.phone,
        role=payload.role,
        status=MemberStatus.INVITED,
        invited_by_user_id=user.id,
        invited_at=now,
    )
    db.add(member)
    db.flush()
    for unit in units:
        db.add(MemberUnit(association_id=association_id, member_id=member.id, unit_id=unit.id, assigned_by_user_id=user.id))

    invitee = db.query(User).filter(func.lower(User.email) == email).first()
    if invitee is not None:
        member.user_id = invitee.id
        has_membership = (
            db.query(AssociationMembership)
            .filter(
                AssociationMembership.association_id == association_id,
                AssociationMembership.user_id == invitee.id,
            )
            .first()
        )
        if not has_membership:
            db.add(
                AssociationMembership(
                    association_id=association_id,
                    user_id=invitee.id,
                    role=MembershipRole.ADMIN if payload.role == MemberRole.ADMIN else MembershipRole.MEMBER,
                    status=MembershipStatus.INVITED,
                    invited_by_user_id=user.id,
                    invited_at=now,
                )
            )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailure("A member with this email already exists")
    db.refresh(member)

    unit_names = [unit.name for unit in units]
    subject, body = email_service.invitation_email(association.name, member.name, user.display_name)
    email_service.queue_email(background, subject, body, [member.email])

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=_actor_member_id(db, association_id, user),
        action="member_invited",
        entity_type="member",
        entity_id=member.id,
        description=f"Invited {member.name} ({member.email})" + (f" to units {', '.join(unit_names)}" if unit_names else ""),
        metadata={"invited_email": member.email, "invited_name": member.name, "assigned_units": unit_names},
    )
    return member


def update_member_role(db: Session, user: User, association_id: int, member_id: int, role: MemberRole) -> Member:
    require_admin(db, user, association_id)
    member = _get_member(db, association_id, member_id)
    old_role = member.role
    member.role = role
    member.updated_at = utcnow()
    db.commit()
    db.refresh(member)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=_actor_member_id(db, association_id, user),
        action="member_role_updated",
        entity_type="member",
        entity_id=member.id,
        description=f"Changed {member.name}'s role from {old_role.value} to {role.value}",
        metadata={"target_email": member.email, "old_role": old_role.value, "new_role": role.value},
    )
    return member


def update_member_status(
    db: Session,
    user: User,
    association_id: int,
    member_id: int,
    status: MemberStatus,
    reason: Optional[str] = None,
) -> Member:
    require_admin(db, user, association_id)
    if status not in (MemberStatus.ACTIVE, MemberStatus.INACTIVE):
        raise ValidationFailure("Members can only be set to active or inactive")
    member = _get_member(db, association_id, member_id)
    old_status = member.status
    now = utcnow()
    member.status = status
    if status == MemberStatus.INACTIVE:
        member.deactivated_at = now
        member.deactivated_by_user_id = user.id
        member.deactivation_reason = reason
    elif old_status == MemberStatus.INACTIVE:
        member.reactivated_at = now
        member.reactivated_by_user_id = user.id
        member.deactivated_at = None
        member.deactivation_reason = None
    member.updated_at = now
    db.commit()
    db.refresh(member)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=_actor_member_id(db, association_id, user),
        action="member_status_updated",
        entity_type="member",
        entity_id=member.id,
        description=f"Changed {member.name}'s status from {old_status.value} to {status.value}",
        metadata={"target_email": member.email, "old_status": old_status.value, "new_status": status.value, "reason": reason},
    )
    return member


def list_member_units(db: Session, user: User, association_id: int, member_id: int) -> list[MemberUnit]:
    require_admin(db, user, association_id)
    member = _get_member(db, association_id, member_id)
    return (
        db.query(MemberUnit)
        .join(Unit, Unit.id == MemberUnit.unit_id)
        .filter(MemberUnit.member_id == member.id)
        .order_by(Unit.name.asc())
        .all()
    )


def assign_unit(db: Session, user: User, association_id: int, member_id: int, unit_id: int) -> MemberUnit:
    """Link a unit to a member. A unit already held by someone else is refused."""
    require_admin(db, user, association_id)
    member = _get_member(db, association_id, member_id)
    unit = _get_unit(db, association_id, unit_id)

    existing = db.query(MemberUnit).filter(MemberUnit.unit_id == unit.id).first()
    if existing is not None:
        if existing.member_id == member.id:
            return existing
        raise ValidationFailure("Unit is already assigned to another member")

    assignment = MemberUnit(
        association_id=association_id,
        member_id=member.id,
        unit_id=unit.id,
        assigned_by_user_id=user.id,
    )
    db.add(assignment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailure("Unit is already assigned to another member")
    db.refresh(assignment)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=_actor_member_id(db, association_id, user),
        action="unit_assigned",
        entity_type="unit",
        entity_id=unit.id,
        description=f"Assigned unit {unit.name} to {member.name}",
        metadata={"member_id": member.id, "unit": unit.name},
    )
    return assignment


def unassign_unit(db: Session, user: User, association_id: int, member_id: int, unit_id: int) -> None:
    require_admin(db, user, association_id)
    member = _get_member(db, association_id, member_id)
    unit = _get_unit(db, association_id, unit_id)
    assignment = (
        db.query(MemberUnit)
        .filter(MemberUnit.member_id == member.id, MemberUnit.unit_id == unit.id)
        .first()
    )
    if assignment is None:
        raise NotFound("Unit is not assigned to this member")
    db.delete(assignment)
    db.commit()

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=_actor_member_id(db, association_id, user),
        action="unit_unassigned",
        entity_type="unit",
        entity_id=unit.id,
        description=f"Removed unit {unit.name} from {member.name}",
        metadata={"member_id": member.id, "unit": unit.name},
    )
