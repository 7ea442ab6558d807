import pytest

from assocportal.constants import MembershipRole, PlatformAdminRole, SubscriptionStatus
from assocportal.core.errors import AuthorizationDenied, NotFound, ValidationFailure
from assocportal.models.models import AssociationMembership, PlatformAdmin
from assocportal.schemas.schemas import (
    AssociationAdminAdd,
    PlatformAdminCreate,
    PlatformAssociationCreate,
    SubscriptionUpdate,
)
from assocportal.services import platform_admin as platform_service


@pytest.fixture
def super_admin(db_session, create_user):
    user = create_user(email="ops@example.com", name="Ops")
    platform_service.setup_initial_platform_admin(db_session, user)
    return user


def test_setup_only_once(db_session, create_user, client_as):
    first = create_user(email="first@example.com")
    second = create_user(email="second@example.com")

    assert client_as(None).get("/platform/setup-status").json() == {"admins_exist": False}
    created = client_as(first).post("/platform/setup")
    assert created.status_code == 201
    assert created.json()["role"] == "super_admin"
    assert client_as(first).get("/platform/is-admin").json() == {"is_platform_admin": True}

    again = client_as(second).post("/platform/setup")
    assert again.status_code == 403
    assert again.json()["detail"] == "Platform admins already exist. Use the regular admin creation process."


def test_only_super_admins_create_admins(db_session, create_user, super_admin):
    support_user = create_user(email="support@example.com")
    platform_service.create_platform_admin(
        db_session, super_admin, PlatformAdminCreate(email="support@example.com", role=PlatformAdminRole.SUPPORT)
    )
    create_user(email="later@example.com")

    with pytest.raises(AuthorizationDenied, match="Only super admins can create platform admins"):
        platform_service.create_platform_admin(db_session, support_user, PlatformAdminCreate(email="later@example.com"))
    with pytest.raises(ValidationFailure, match="User is already a platform admin"):
        platform_service.create_platform_admin(db_session, super_admin, PlatformAdminCreate(email="support@example.com"))
    with pytest.raises(NotFound, match="must sign up"):
        platform_service.create_platform_admin(db_session, super_admin, PlatformAdminCreate(email="nobody@example.com"))
    with pytest.raises(ValidationFailure, match="Unknown permissions"):
        platform_service.create_platform_admin(
            db_session, super_admin, PlatformAdminCreate(email="later@example.com", permissions=["launch_rockets"])
        )


def test_platform_routes_require_admin(create_association, client_as):
    _, owner = create_association()

    response = client_as(owner).get("/platform/associations")

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied: platform admin privileges required"


def test_create_association_for_owner(db_session, create_user, super_admin, client_as):
    owner = create_user(email="chair@example.com", name="Chair")
    association = platform_service.create_association_as_admin(
        db_session,
        super_admin,
        PlatformAssociationCreate(name="Maple Court", owner_email="chair@example.com", subscription_tier="pro"),
    )

    assert association.subscription_tier == "pro"
    assert association.max_members == 50
    assert association.max_units == 100

    listed = client_as(super_admin).get("/platform/associations").json()
    assert listed[0]["association"]["name"] == "Maple Court"
    assert listed[0]["member_count"] == 1
    assert listed[0]["owner_email"] == owner.email

    with pytest.raises(ValidationFailure, match="Unknown subscription tier"):
        platform_service.create_association_as_admin(
            db_session,
            super_admin,
            PlatformAssociationCreate(name="Nope", owner_email="chair@example.com", subscription_tier="platinum"),
        )


def test_suspend_and_reactivate(db_session, create_association, super_admin):
    association, _ = create_association()

    suspended = platform_service.suspend_association(db_session, super_admin, association.id, "Unpaid invoices")
    assert suspended.is_active is False
    assert suspended.subscription_status == SubscriptionStatus.SUSPENDED
    assert suspended.suspension_reason == "Unpaid invoices"
    assert platform_service.platform_stats(db_session, super_admin)["suspended_associations"] == 1

    reactivated = platform_service.reactivate_association(db_session, super_admin, association.id)
    assert reactivated.is_active is True
    assert reactivated.subscription_status == SubscriptionStatus.ACTIVE
    assert reactivated.suspended_at is None


def test_subscription_override_applies_tier_limits(db_session, create_association, super_admin):
    association, _ = create_association()

    updated = platform_service.update_association_subscription(
        db_session, super_admin, association.id, SubscriptionUpdate(tier="enterprise", status=SubscriptionStatus.ACTIVE)
    )

    assert updated.subscription_tier == "enterprise"
    assert updated.max_members is None
    assert updated.max_units is None


def test_owner_membership_is_protected(db_session, create_association, create_user, super_admin):
    association, owner = create_association()
    create_user(email="helper@example.com")
    owner_membership = (
        db_session.query(AssociationMembership)
        .filter(AssociationMembership.association_id == association.id, AssociationMembership.user_id == owner.id)
        .one()
    )

    promoted = platform_service.add_association_admin(
        db_session, super_admin, association.id, AssociationAdminAdd(user_email=owner.email, role="member")
    )
    assert promoted.role == MembershipRole.OWNER

    helper = platform_service.add_association_admin(
        db_session, super_admin, association.id, AssociationAdminAdd(user_email="helper@example.com")
    )
    assert helper.role == MembershipRole.ADMIN

    demoted = platform_service.update_association_member_role(db_session, super_admin, association.id, helper.id, "member")
    assert demoted.role == MembershipRole.MEMBER

    with pytest.raises(AuthorizationDenied, match="Cannot change the owner's role"):
        platform_service.update_association_member_role(
            db_session, super_admin, association.id, owner_membership.id, "admin"
        )
    with pytest.raises(AuthorizationDenied, match="Cannot remove the association owner"):
        platform_service.remove_association_admin(db_session, super_admin, association.id, owner_membership.id)

    platform_service.remove_association_admin(db_session, super_admin, association.id, helper.id)
    assert db_session.query(PlatformAdmin).count() == 1
    assert (
        db_session.query(AssociationMembership)
        .filter(AssociationMembership.association_id == association.id)
        .count()
        == 1
    )
