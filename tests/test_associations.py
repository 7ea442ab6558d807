import pytest

from assocportal.constants import MemberStatus, MembershipRole, MembershipStatus, SubscriptionStatus
from assocportal.core.errors import AuthorizationDenied, NotFound
from assocportal.models.models import AssociationMembership, Member
from assocportal.schemas.schemas import MemberInvite
from assocportal.services import associations as association_service
from assocportal.services import members as member_service


def test_create_association_starts_trial_with_owner(create_user, client_as, db_session):
    founder = create_user(email="founder@example.com", name="Founder")

    response = client_as(founder).post("/associations/", json={"name": "  Riverside Lofts "})

    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "owner"
    assert body["association"]["name"] == "Riverside Lofts"
    assert body["association"]["subscription_tier"] == "free"
    assert body["association"]["subscription_status"] == SubscriptionStatus.TRIAL.value
    assert body["association"]["trial_ends_at"] is not None

    profile = db_session.query(Member).filter(Member.email == "founder@example.com").one()
    assert profile.status == MemberStatus.ACTIVE


def test_list_only_active_memberships(create_association, add_member, client_as):
    first, owner = create_association(name="Alpha House")
    create_association(name="Beta House", owner_email="beta@example.com")

    listed = client_as(owner).get("/associations/").json()

    assert [item["association"]["name"] for item in listed] == ["Alpha House"]
    assert listed[0]["association"]["id"] == first.id


def test_update_requires_admin(create_association, add_member, client_as):
    association, owner = create_association()
    resident = add_member(association, "resident@example.com")
    url = f"/associations/{association.id}"

    assert client_as(resident).patch(url, json={"city": "Leeds"}).status_code == 403
    updated = client_as(owner).patch(url, json={"city": "Leeds"})
    assert updated.status_code == 200
    assert updated.json()["city"] == "Leeds"
    assert updated.json()["name"] == "Harbour View"


def test_accept_invitation(db_session, create_association, create_user):
    association, owner = create_association()
    member_service.invite_member(db_session, owner, association.id, MemberInvite(email="late@example.com", name="Late"))
    newcomer = create_user(email="late@example.com")

    membership = association_service.accept_invitation(db_session, newcomer, association.id)

    assert membership.status == MembershipStatus.ACTIVE
    assert membership.role == MembershipRole.MEMBER
    member = db_session.query(Member).filter(Member.email == "late@example.com").one()
    assert member.status == MemberStatus.ACTIVE
    assert member.user_id == newcomer.id

    with pytest.raises(NotFound, match="No invitation found"):
        association_service.accept_invitation(db_session, newcomer, association.id)


def test_current_association_follows_selection(create_association, client_as):
    first, owner = create_association(name="Aardvark Court")
    second, _ = create_association(name="Zebra Court", owner_email="zebra@example.com")
    client = client_as(owner)

    assert client.get("/me/current-association").json()["association"]["id"] == first.id
    assert client_as(None).get("/me/current-association").json() is None

    client = client_as(owner)
    denied = client.put("/me/selected-association", json={"association_id": second.id})
    assert denied.status_code == 403


def test_selected_association_is_remembered(db_session, create_association):
    _, owner = create_association(name="Aardvark Court")
    second, _ = create_association(name="Zebra Court", owner_email="zebra@example.com")
    db_session.add(
        AssociationMembership(
            association_id=second.id, user_id=owner.id, role=MembershipRole.MEMBER, status=MembershipStatus.ACTIVE
        )
    )
    db_session.commit()

    association_service.set_selected_association(db_session, owner, second.id)

    current, membership = association_service.get_current_association(db_session, owner)
    assert current.id == second.id
    assert membership.role == MembershipRole.MEMBER


def test_owner_cannot_be_removed(db_session, create_association, add_member):
    association, owner = create_association()
    resident = add_member(association, "removable@example.com")
    memberships = {
        item.user_id: item for item in association_service.list_memberships(db_session, owner, association.id)
    }

    with pytest.raises(AuthorizationDenied, match="Cannot remove the association owner"):
        association_service.remove_membership(db_session, owner, association.id, memberships[owner.id].id)
    association_service.remove_membership(db_session, owner, association.id, memberships[resident.id].id)

    with pytest.raises(AuthorizationDenied):
        association_service.list_memberships(db_session, resident, association.id)


def test_me_reports_platform_admin_flag(create_user, client_as):
    user = create_user(email="me@example.com", name="Me")

    body = client_as(user).get("/me").json()

    assert body["email"] == "me@example.com"
    assert body["is_platform_admin"] is False


def test_unauthenticated_requests_are_rejected(create_association, client_as):
    association, _ = create_association()

    response = client_as(None).get(f"/associations/{association.id}")

    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"
