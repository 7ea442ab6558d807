"""Per-request authorization helpers shared by every association-scoped service.

Nothing here is cached: each call re-reads the caller's membership so a role
change or removal takes effect on the very next request.
"""

from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..constants import ADMIN_MEMBERSHIP_ROLES, MembershipStatus, VisibilityKind
from ..core.errors import AuthenticationRequired, AuthorizationDenied, NotFound
from ..models.models import Association, AssociationMembership, Member, MemberUnit, PlatformAdmin, Unit, User


def require_membership(db: Session, user: Optional[User], association_id: int) -> AssociationMembership:
    if user is None:
        raise AuthenticationRequired()
    membership = (
        db.query(AssociationMembership)
        .filter(
            AssociationMembership.association_id == association_id,
            AssociationMembership.user_id == user.id,
            AssociationMembership.status == MembershipStatus.ACTIVE,
        )
        .first()
    )
    if not membership:
        raise AuthorizationDenied("Not authorized for this association")
    return membership


def is_admin_membership(membership: Optional[AssociationMembership]) -> bool:
    return membership is not None and membership.role in ADMIN_MEMBERSHIP_ROLES


def require_admin(db: Session, user: Optional[User], association_id: int) -> AssociationMembership:
    membership = require_membership(db, user, association_id)
    if not is_admin_membership(membership):
        raise AuthorizationDenied("Admin access required")
    return membership


def get_association(db: Session, association_id: int) -> Association:
    association = db.get(Association, association_id)
    if not association:
        raise NotFound("Association not found")
    return association


def get_member_for_user(db: Session, association_id: int, user: User) -> Optional[Member]:
    """Resolve the caller's association profile by their verified email."""
    if not user.email:
        return None
    member = (
        db.query(Member)
        .filter(
            Member.association_id == association_id,
            func.lower(Member.email) == user.email.lower(),
        )
        .first()
    )
    if member and member.user_id is None:
        member.user_id = user.id
        db.commit()
    return member


def require_member_record(db: Session, association_id: int, user: User) -> Member:
    member = get_member_for_user(db, association_id, user)
    if not member:
        raise NotFound("Member record not found")
    return member


def member_unit_names(db: Session, member: Optional[Member]) -> list[str]:
    if member is None:
        return []
    rows = (
        db.query(Unit.name)
        .join(MemberUnit, MemberUnit.unit_id == Unit.id)
        .filter(MemberUnit.member_id == member.id)
        .order_by(Unit.name.asc())
        .all()
    )
    return [row.name for row in rows]


def visibility_allows(
    kind: Optional[VisibilityKind],
    allowed_units: Optional[Sequence[str]],
    *,
    is_admin: bool,
    unit_names: Iterable[str],
) -> bool:
    if is_admin:
        return True
    # Records written before visibility existed carry no kind and stay open.
    if kind is None or kind == VisibilityKind.ALL:
        return True
    if kind == VisibilityKind.ADMIN:
        return False
    return bool(set(allowed_units or []) & set(unit_names))


def get_platform_admin(db: Session, user: Optional[User]) -> Optional[PlatformAdmin]:
    if user is None:
        return None
    return (
        db.query(PlatformAdmin)
        .filter(PlatformAdmin.user_id == user.id, PlatformAdmin.is_active.is_(True))
        .first()
    )


def require_platform_admin(db: Session, user: Optional[User]) -> PlatformAdmin:
    if user is None:
        raise AuthenticationRequired()
    admin = get_platform_admin(db, user)
    if not admin:
        raise AuthorizationDenied("Access denied: platform admin privileges required")
    return admin


def visibility_columns(visibility: Any) -> tuple[VisibilityKind, list[str]]:
    """Flatten a visibility descriptor into the (kind, allowed_units) column pair."""
    kind = VisibilityKind(visibility.kind)
    units = list(getattr(visibility, "units", []) or []) if kind == VisibilityKind.UNITS else []
    return kind, units


def visibility_descriptor(kind: Optional[VisibilityKind], allowed_units: Optional[Sequence[str]]) -> dict[str, Any]:
    if kind == VisibilityKind.UNITS:
        return {"kind": "units", "units": list(allowed_units or [])}
    if kind == VisibilityKind.ADMIN:
        return {"kind": "admin"}
    return {"kind": "all"}
