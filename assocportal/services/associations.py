import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..constants import (
    DEFAULT_ASSOCIATION_SETTINGS,
    MemberRole,
    MemberStatus,
    MembershipRole,
    MembershipStatus,
    SubscriptionStatus,
    SubscriptionTierName,
)
from ..core.errors import AuthenticationRequired, AuthorizationDenied, NotFound, ValidationFailure
from ..models.models import Association, AssociationMembership, Member, User, UserPreference, utcnow
from ..schemas.schemas import AssociationCreate, AssociationUpdate
from .access import get_association, require_admin, require_membership
from .audit import record_audit_best_effort

logger = logging.getLogger(__name__)


def list_user_associations(db: Session, user: User) -> list[tuple[Association, AssociationMembership]]:
    rows = (
        db.query(Association, AssociationMembership)
        .join(AssociationMembership, AssociationMembership.association_id == Association.id)
        .filter(
            AssociationMembership.user_id == user.id,
            AssociationMembership.status == MembershipStatus.ACTIVE,
        )
        .order_by(Association.name.asc())
        .all()
    )
    return [(association, membership) for association, membership in rows]


def get_association_for_member(db: Session, user: User, association_id: int) -> tuple[Association, AssociationMembership]:
    membership = require_membership(db, user, association_id)
    return get_association(db, association_id), membership


def ensure_member_profile(
    db: Session,
    association: Association,
    user: User,
    role: MemberRole,
) -> Optional[Member]:
    if not user.email:
        return None
    member = (
        db.query(Member)
        .filter(Member.association_id == association.id, func.lower(Member.email) == user.email.lower())
        .first()
    )
    now = utcnow()
    if member is None:
        member = Member(
            association_id=association.id,
            user_id=user.id,
            email=user.email.lower(),
            name=user.display_name,
            role=role,
            status=MemberStatus.ACTIVE,
            joined_at=now,
        )
        db.add(member)
    else:
        member.user_id = user.id
        member.status = MemberStatus.ACTIVE
        member.joined_at = member.joined_at or now
        if role == MemberRole.ADMIN:
            member.role = MemberRole.ADMIN
    return member


def create_association(db: Session, user: User, payload: AssociationCreate) -> tuple[Association, AssociationMembership]:
    """Create a tenant on a free trial with the caller as owner."""
    if user is None:
        raise AuthenticationRequired()
    now = utcnow()
    association = Association(
        **payload.model_dump(),
        subscription_tier=SubscriptionTierName.FREE.value,
        subscription_status=SubscriptionStatus.TRIAL,
        trial_ends_at=now + timedelta(days=settings.trial_days),
        is_active=True,
        created_by_user_id=user.id,
        **DEFAULT_ASSOCIATION_SETTINGS,
    )
    db.add(association)
    db.flush()

    membership = AssociationMembership(
        association_id=association.id,
        user_id=user.id,
        role=MembershipRole.OWNER,
        status=MembershipStatus.ACTIVE,
        joined_at=now,
    )
    db.add(membership)
    ensure_member_profile(db, association, user, MemberRole.ADMIN)
    db.commit()
    db.refresh(association)
    db.refresh(membership)
    logger.info("Association %s created by user %s.", association.id, user.id)

    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=user.id,
        action="association_created",
        entity_type="association",
        entity_id=association.id,
        description=f"Created association {association.name}",
        metadata={"tier": association.subscription_tier},
    )
    return association, membership


def update_association(db: Session, user: User, association_id: int, payload: AssociationUpdate) -> Association:
    require_admin(db, user, association_id)
    association = get_association(db, association_id)
    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates and updates["name"] is not None:
        updates["name"] = updates["name"].strip()
        if not updates["name"]:
            raise ValidationFailure("Association name is required")
    before = {field: getattr(association, field) for field in updates}
    for field, value in updates.items():
        setattr(association, field, value)
    association.updated_at = utcnow()
    db.commit()
    db.refresh(association)

    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=user.id,
        action="association_updated",
        entity_type="association",
        entity_id=association.id,
        description="Updated association details",
        metadata={"before": before, "after": updates},
    )
    return association


def accept_invitation(db: Session, user: User, association_id: int) -> AssociationMembership:
    """Turn a pending invitation into an active membership."""
    if user is None:
        raise AuthenticationRequired()
    get_association(db, association_id)
    membership = (
        db.query(AssociationMembership)
        .filter(
            AssociationMembership.association_id == association_id,
            AssociationMembership.user_id == user.id,
        )
        .first()
    )
    invited_member = None
    if user.email:
        invited_member = (
            db.query(Member)
            .filter(
                Member.association_id == association_id,
                func.lower(Member.email) == user.email.lower(),
                Member.status == MemberStatus.INVITED,
            )
            .first()
        )

    if membership is None:
        if invited_member is None:
            raise NotFound("No invitation found")
        membership = AssociationMembership(
            association_id=association_id,
            user_id=user.id,
            role=MembershipRole.ADMIN if invited_member.role == MemberRole.ADMIN else MembershipRole.MEMBER,
            invited_by_user_id=invited_member.invited_by_user_id,
            invited_at=invited_member.invited_at,
        )
        db.add(membership)
    elif membership.status != MembershipStatus.INVITED:
        raise NotFound("No invitation found")

    now = utcnow()
    membership.status = MembershipStatus.ACTIVE
    membership.joined_at = now
    if invited_member is not None:
        invited_member.status = MemberStatus.ACTIVE
        invited_member.user_id = user.id
        invited_member.joined_at = now
    db.commit()
    db.refresh(membership)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=invited_member.id if invited_member else None,
        action="invitation_accepted",
        entity_type="membership",
        entity_id=membership.id,
        description=f"{user.display_name} joined the association",
    )
    return membership


def list_memberships(db: Session, user: User, association_id: int) -> list[AssociationMembership]:
    require_membership(db, user, association_id)
    return (
        db.query(AssociationMembership)
        .filter(AssociationMembership.association_id == association_id)
        .order_by(AssociationMembership.created_at.asc(), AssociationMembership.id.asc())
        .all()
    )


def remove_membership(db: Session, user: User, association_id: int, membership_id: int) -> None:
    require_admin(db, user, association_id)
    target = db.get(AssociationMembership, membership_id)
    if not target or target.association_id != association_id:
        raise NotFound("Membership not found")
    if target.role == MembershipRole.OWNER:
        raise AuthorizationDenied("Cannot remove the association owner")
    removed_user_id = target.user_id
    db.delete(target)
    db.commit()

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action="membership_removed",
        entity_type="membership",
        entity_id=membership_id,
        description="Removed a user from the association",
        metadata={"removed_user_id": removed_user_id},
    )


def get_current_association(db: Session, user: Optional[User]) -> Optional[tuple[Association, AssociationMembership]]:
    """Selected association if still valid, else the first active one, else None."""
    if user is None:
        return None
    preference = db.query(UserPreference).filter(UserPreference.user_id == user.id).first()
    if preference and preference.selected_association_id:
        membership = (
            db.query(AssociationMembership)
            .filter(
                AssociationMembership.association_id == preference.selected_association_id,
                AssociationMembership.user_id == user.id,
                AssociationMembership.status == MembershipStatus.ACTIVE,
            )
            .first()
        )
        if membership:
            return get_association(db, membership.association_id), membership

    memberships = list_user_associations(db, user)
    if not memberships:
        return None
    return memberships[0]


def set_selected_association(db: Session, user: User, association_id: int) -> UserPreference:
    require_membership(db, user, association_id)
    preference = db.query(UserPreference).filter(UserPreference.user_id == user.id).first()
    if preference is None:
        preference = UserPreference(user_id=user.id)
        db.add(preference)
    preference.selected_association_id = association_id
    preference.updated_at = utcnow()
    db.commit()
    db.refresh(preference)
    return preference
