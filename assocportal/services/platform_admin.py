"""Cross-tenant operator actions.

Platform admins are independent of association memberships; nothing here
consults the caller's role inside the association being acted on.
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..constants import (
    DEFAULT_ASSOCIATION_SETTINGS,
    MemberRole,
    MembershipRole,
    MembershipStatus,
    PLATFORM_ADMIN_PERMISSIONS,
    PlatformAdminRole,
    SubscriptionStatus,
)
from ..core.errors import AuthenticationRequired, AuthorizationDenied, NotFound, ValidationFailure
from ..models.models import Association, AssociationMembership, PlatformAdmin, User, utcnow
from ..schemas.schemas import AssociationAdminAdd, PlatformAdminCreate, PlatformAssociationCreate, SubscriptionUpdate
from .access import get_association, get_platform_admin, require_platform_admin
from .associations import ensure_member_profile
from .audit import record_audit_best_effort
from .billing import apply_tier, get_tier

logger = logging.getLogger(__name__)


def is_platform_admin(db: Session, user: Optional[User]) -> bool:
    return get_platform_admin(db, user) is not None


def get_current_platform_admin(db: Session, user: Optional[User]) -> Optional[PlatformAdmin]:
    return get_platform_admin(db, user)


def any_platform_admins(db: Session) -> bool:
    return db.query(PlatformAdmin.id).first() is not None


def admin_read(admin: PlatformAdmin) -> dict[str, Any]:
    return {
        "id": admin.id,
        "user_id": admin.user_id,
        "role": admin.role,
        "permissions": list(admin.permissions or []),
        "is_active": admin.is_active,
        "created_at": admin.created_at,
        "user_email": admin.user.email if admin.user else None,
        "user_name": admin.user.display_name if admin.user else None,
    }


def _find_user_by_email(db: Session, email: str) -> User:
    user = db.query(User).filter(func.lower(User.email) == email.lower()).first()
    if not user:
        raise NotFound("User not found. The user must sign up with this email first.")
    return user


def setup_initial_platform_admin(db: Session, user: Optional[User]) -> PlatformAdmin:
    """Bootstrap: the first caller becomes a super admin, once."""
    if user is None:
        raise AuthenticationRequired()
    if any_platform_admins(db):
        raise AuthorizationDenied("Platform admins already exist. Use the regular admin creation process.")
    admin = PlatformAdmin(
        user_id=user.id,
        role=PlatformAdminRole.SUPER_ADMIN,
        permissions=list(PLATFORM_ADMIN_PERMISSIONS),
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("User %s bootstrapped as the first platform admin.", user.id)
    return admin


def create_platform_admin(db: Session, user: User, payload: PlatformAdminCreate) -> PlatformAdmin:
    caller = require_platform_admin(db, user)
    if caller.role != PlatformAdminRole.SUPER_ADMIN:
        raise AuthorizationDenied("Only super admins can create platform admins")
    target = _find_user_by_email(db, payload.email)
    existing = db.query(PlatformAdmin).filter(PlatformAdmin.user_id == target.id).first()
    if existing:
        raise ValidationFailure("User is already a platform admin")

    permissions = payload.permissions
    if permissions is None:
        permissions = list(PLATFORM_ADMIN_PERMISSIONS)
    unknown = sorted(set(permissions) - set(PLATFORM_ADMIN_PERMISSIONS))
    if unknown:
        raise ValidationFailure(f"Unknown permissions: {', '.join(unknown)}")

    admin = PlatformAdmin(
        user_id=target.id,
        role=payload.role,
        permissions=permissions,
        is_active=True,
        created_by_user_id=user.id,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    record_audit_best_effort(
        db,
        association_id=None,
        user_id=user.id,
        action="platform_admin_created",
        entity_type="platform_admin",
        entity_id=admin.id,
        description=f"Granted {payload.role.value} to {target.email}",
        metadata={"target_user_id": target.id, "permissions": permissions},
    )
    return admin


def _association_summary(db: Session, association: Association) -> dict[str, Any]:
    member_count = (
        db.query(func.count(AssociationMembership.id))
        .filter(
            AssociationMembership.association_id == association.id,
            AssociationMembership.status == MembershipStatus.ACTIVE,
        )
        .scalar()
    ) or 0
    owner = (
        db.query(User)
        .join(AssociationMembership, AssociationMembership.user_id == User.id)
        .filter(
            AssociationMembership.association_id == association.id,
            AssociationMembership.role == MembershipRole.OWNER,
        )
        .first()
    )
    return {
        "association": association,
        "member_count": member_count,
        "owner_email": owner.email if owner else None,
        "owner_name": owner.display_name if owner else None,
    }


def list_all_associations(
    db: Session,
    user: User,
    status: Optional[SubscriptionStatus] = None,
    tier: Optional[str] = None,
) -> list[dict[str, Any]]:
    require_platform_admin(db, user)
    query = db.query(Association)
    if status:
        query = query.filter(Association.subscription_status == status)
    if tier:
        query = query.filter(Association.subscription_tier == tier)
    associations = query.order_by(Association.created_at.desc(), Association.id.desc()).all()
    return [_association_summary(db, association) for association in associations]


def create_association_as_admin(db: Session, user: User, payload: PlatformAssociationCreate) -> Association:
    require_platform_admin(db, user)
    owner = _find_user_by_email(db, payload.owner_email)
    if get_tier(db, payload.subscription_tier) is None:
        raise ValidationFailure(f"Unknown subscription tier: {payload.subscription_tier}")

    now = utcnow()
    fields = payload.model_dump(exclude={"owner_email", "subscription_tier"})
    association = Association(
        **fields,
        subscription_status=SubscriptionStatus.TRIAL,
        trial_ends_at=now + timedelta(days=settings.trial_days),
        is_active=True,
        created_by_user_id=user.id,
        allow_self_registration=DEFAULT_ASSOCIATION_SETTINGS["allow_self_registration"],
        require_admin_approval=DEFAULT_ASSOCIATION_SETTINGS["require_admin_approval"],
    )
    apply_tier(db, association, payload.subscription_tier)
    db.add(association)
    db.flush()
    db.add(
        AssociationMembership(
            association_id=association.id,
            user_id=owner.id,
            role=MembershipRole.OWNER,
            status=MembershipStatus.ACTIVE,
            joined_at=now,
        )
    )
    ensure_member_profile(db, association, owner, MemberRole.ADMIN)
    db.commit()
    db.refresh(association)

    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=user.id,
        action="association_created_by_platform",
        entity_type="association",
        entity_id=association.id,
        description=f"Platform admin created {association.name} for {owner.email}",
        metadata={"owner_user_id": owner.id, "tier": association.subscription_tier},
    )
    return association


def suspend_association(db: Session, user: User, association_id: int, reason: str) -> Association:
    require_platform_admin(db, user)
    association = get_association(db, association_id)
    now = utcnow()
    association.is_active = False
    association.subscription_status = SubscriptionStatus.SUSPENDED
    association.suspended_at = now
    association.suspended_by_user_id = user.id
    association.suspension_reason = reason
    association.updated_at = now
    db.commit()
    db.refresh(association)
    logger.warning("Association %s suspended by user %s.", association.id, user.id)
    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=user.id,
        action="association_suspended",
        entity_type="association",
        entity_id=association.id,
        description=f"Suspended association: {reason}",
        metadata={"reason": reason},
    )
    return association


def reactivate_association(db: Session, user: User, association_id: int) -> Association:
    require_platform_admin(db, user)
    association = get_association(db, association_id)
    association.is_active = True
    association.subscription_status = SubscriptionStatus.ACTIVE
    association.suspended_at = None
    association.suspended_by_user_id = None
    association.suspension_reason = None
    association.updated_at = utcnow()
    db.commit()
    db.refresh(association)
    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=user.id,
        action="association_reactivated",
        entity_type="association",
        entity_id=association.id,
        description="Reactivated association",
    )
    return association


def update_association_subscription(db: Session, user: User, association_id: int, payload: SubscriptionUpdate) -> Association:
    require_platform_admin(db, user)
    association = get_association(db, association_id)
    if get_tier(db, payload.tier) is None:
        raise ValidationFailure(f"Unknown subscription tier: {payload.tier}")
    previous = {"tier": association.subscription_tier, "status": association.subscription_status.value}
    apply_tier(db, association, payload.tier)
    association.subscription_status = payload.status
    association.updated_at = utcnow()
    db.commit()
    db.refresh(association)
    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=user.id,
        action="subscription_changed",
        entity_type="association",
        entity_id=association.id,
        description=f"Subscription set to {payload.tier} ({payload.status.value})",
        metadata={"before": previous, "after": {"tier": payload.tier, "status": payload.status.value}},
    )
    return association


def platform_stats(db: Session, user: User) -> dict[str, Any]:
    require_platform_admin(db, user)
    associations = db.query(Association.subscription_status, Association.subscription_tier).all()
    statuses = Counter(row.subscription_status for row in associations)
    memberships = db.query(AssociationMembership.status).all()
    return {
        "total_associations": len(associations),
        "active_associations": statuses.get(SubscriptionStatus.ACTIVE, 0),
        "trial_associations": statuses.get(SubscriptionStatus.TRIAL, 0),
        "suspended_associations": statuses.get(SubscriptionStatus.SUSPENDED, 0),
        "total_users": len(memberships),
        "active_users": sum(1 for row in memberships if row.status == MembershipStatus.ACTIVE),
        "tier_counts": dict(Counter(row.subscription_tier for row in associations)),
    }


def list_association_memberships(db: Session, user: User, association_id: int) -> list[AssociationMembership]:
    require_platform_admin(db, user)
    get_association(db, association_id)
    return (
        db.query(AssociationMembership)
        .filter(AssociationMembership.association_id == association_id)
        .order_by(AssociationMembership.created_at.asc(), AssociationMembership.id.asc())
        .all()
    )


def _get_membership(db: Session, association_id: int, membership_id: int) -> AssociationMembership:
    membership = db.get(AssociationMembership, membership_id)
    if not membership or membership.association_id != association_id:
        raise NotFound("Membership not found")
    return membership


def add_association_admin(db: Session, user: User, association_id: int, payload: AssociationAdminAdd) -> AssociationMembership:
    require_platform_admin(db, user)
    association = get_association(db, association_id)
    target = _find_user_by_email(db, payload.user_email)
    role = MembershipRole(payload.role)

    membership = (
        db.query(AssociationMembership)
        .filter(
            AssociationMembership.association_id == association_id,
            AssociationMembership.user_id == target.id,
        )
        .first()
    )
    now = utcnow()
    if membership is None:
        membership = AssociationMembership(
            association_id=association_id,
            user_id=target.id,
            invited_by_user_id=user.id,
            invited_at=now,
        )
        db.add(membership)
    if membership.role != MembershipRole.OWNER:
        membership.role = role
    membership.status = MembershipStatus.ACTIVE
    membership.joined_at = membership.joined_at or now
    ensure_member_profile(db, association, target, MemberRole.ADMIN if role == MembershipRole.ADMIN else MemberRole.MEMBER)
    db.commit()
    db.refresh(membership)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action="association_admin_added",
        entity_type="membership",
        entity_id=membership.id,
        description=f"Platform admin added {target.email} as {membership.role.value}",
        metadata={"target_user_id": target.id},
    )
    return membership


def remove_association_admin(db: Session, user: User, association_id: int, membership_id: int) -> None:
    require_platform_admin(db, user)
    get_association(db, association_id)
    membership = _get_membership(db, association_id, membership_id)
    if membership.role == MembershipRole.OWNER:
        raise AuthorizationDenied("Cannot remove the association owner")
    removed_user_id = membership.user_id
    db.delete(membership)
    db.commit()
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action="association_member_removed",
        entity_type="membership",
        entity_id=membership_id,
        description="Platform admin removed a user from the association",
        metadata={"removed_user_id": removed_user_id},
    )


def update_association_member_role(
    db: Session,
    user: User,
    association_id: int,
    membership_id: int,
    role: str,
) -> AssociationMembership:
    require_platform_admin(db, user)
    get_association(db, association_id)
    membership = _get_membership(db, association_id, membership_id)
    if membership.role == MembershipRole.OWNER:
        raise AuthorizationDenied("Cannot change the owner's role")
    old_role = membership.role
    membership.role = MembershipRole(role)
    membership.updated_at = utcnow()
    db.commit()
    db.refresh(membership)
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action="association_member_role_changed",
        entity_type="membership",
        entity_id=membership.id,
        description=f"Changed membership role from {old_role.value} to {membership.role.value}",
    )
    return membership
