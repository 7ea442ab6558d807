import pytest

from assocportal.constants import MemberRole, MemberStatus, MembershipRole, MembershipStatus
from assocportal.core.errors import AuthorizationDenied, NotFound, ValidationFailure
from assocportal.models.models import AssociationMembership, AuditLog, MemberUnit
from assocportal.schemas.schemas import MemberInvite, UnitCreate, UnitUpdate
from assocportal.services import members as member_service
from assocportal.services import units as unit_service


def test_unit_assignment_is_exclusive(db_session, create_association, add_member, create_unit, member_of):
    association, owner = create_association()
    holder = member_of(association, add_member(association, "holder@example.com"))
    rival = member_of(association, add_member(association, "rival@example.com"))
    unit = create_unit(association, "Flat 4", building="North")

    first = member_service.assign_unit(db_session, owner, association.id, holder.id, unit.id)
    again = member_service.assign_unit(db_session, owner, association.id, holder.id, unit.id)
    assert again.id == first.id

    with pytest.raises(ValidationFailure, match="Unit is already assigned to another member"):
        member_service.assign_unit(db_session, owner, association.id, rival.id, unit.id)

    assignment = db_session.query(MemberUnit).filter(MemberUnit.unit_id == unit.id).one()
    assert assignment.member_id == holder.id


def test_unassign_unit(db_session, create_association, add_member, member_of):
    association, owner = create_association()
    user = add_member(association, "leaving@example.com", units=["Flat 9"])
    member = member_of(association, user)
    unit_id = member.unit_assignments[0].unit_id

    member_service.unassign_unit(db_session, owner, association.id, member.id, unit_id)
    assert db_session.query(MemberUnit).count() == 0

    with pytest.raises(NotFound, match="Unit is not assigned to this member"):
        member_service.unassign_unit(db_session, owner, association.id, member.id, unit_id)


def test_invite_member_assigns_units_and_queues_email(db_session, create_association, create_unit, tmp_path):
    association, owner = create_association()
    unit = create_unit(association, "Flat 1")

    member = member_service.invite_member(
        db_session,
        owner,
        association.id,
        MemberInvite(email="New.Person@Example.com", name="New Person", unit_ids=[unit.id]),
    )

    assert member.email == "new.person@example.com"
    assert member.status == MemberStatus.INVITED
    assert member.unit_names == ["Flat 1"]
    assert len(list((tmp_path / "emails").glob("*.txt"))) == 1
    entry = db_session.query(AuditLog).filter(AuditLog.action == "member_invited").one()
    assert entry.details["assigned_units"] == ["Flat 1"]

    with pytest.raises(ValidationFailure, match="A member with this email already exists"):
        member_service.invite_member(
            db_session, owner, association.id, MemberInvite(email="new.person@example.com", name="Again")
        )


def test_invite_with_repeated_unit_id_assigns_once(db_session, create_association, create_unit, create_user):
    association, owner = create_association()
    unit = create_unit(association, "Flat 2")
    create_user(email="twice@example.com")

    assert MemberInvite(email="a@example.com", name="A", unit_ids=[3, 1, 3]).unit_ids == [3, 1]
    member = member_service.invite_member(
        db_session,
        owner,
        association.id,
        MemberInvite(email="twice@example.com", name="Twice", unit_ids=[unit.id, unit.id]),
    )

    assert member.unit_names == ["Flat 2"]
    assert db_session.query(MemberUnit).filter(MemberUnit.unit_id == unit.id).count() == 1


def test_invite_existing_user_creates_pending_membership(db_session, create_association, create_user):
    association, owner = create_association()
    invitee = create_user(email="known@example.com")

    member_service.invite_member(
        db_session, owner, association.id, MemberInvite(email="known@example.com", name="Known", role=MemberRole.ADMIN)
    )

    membership = (
        db_session.query(AssociationMembership)
        .filter(AssociationMembership.user_id == invitee.id, AssociationMembership.association_id == association.id)
        .one()
    )
    assert membership.status == MembershipStatus.INVITED
    assert membership.role == MembershipRole.ADMIN


def test_member_limit(db_session, create_association):
    association, owner = create_association()
    association.max_members = 1
    db_session.commit()

    with pytest.raises(ValidationFailure, match=r"Member limit reached \(1\)"):
        member_service.invite_member(
            db_session, owner, association.id, MemberInvite(email="extra@example.com", name="Extra")
        )


def test_deactivate_and_reactivate_member(db_session, create_association, add_member, member_of):
    association, owner = create_association()
    member = member_of(association, add_member(association, "status@example.com"))

    inactive = member_service.update_member_status(
        db_session, owner, association.id, member.id, MemberStatus.INACTIVE, reason="Moved out"
    )
    assert inactive.deactivation_reason == "Moved out"
    assert inactive.deactivated_by_user_id == owner.id

    active = member_service.update_member_status(db_session, owner, association.id, member.id, MemberStatus.ACTIVE)
    assert active.deactivated_at is None
    assert active.reactivated_by_user_id == owner.id


def test_members_cannot_manage_members(db_session, create_association, add_member):
    association, _ = create_association()
    plain = add_member(association, "plain@example.com")

    with pytest.raises(AuthorizationDenied):
        member_service.list_members(db_session, plain, association.id)


def test_unit_names_are_unique_per_association(db_session, create_association):
    association, owner = create_association()
    unit_service.create_unit(db_session, owner, association.id, UnitCreate(name="Flat 2"))

    with pytest.raises(ValidationFailure, match="Unit with this name already exists"):
        unit_service.create_unit(db_session, owner, association.id, UnitCreate(name="flat 2"))

    other, other_owner = create_association(name="Elm Court", owner_email="elm@example.com")
    unit_service.create_unit(db_session, other_owner, other.id, UnitCreate(name="Flat 2"))


def test_unit_limit(db_session, create_association):
    association, owner = create_association()
    association.max_units = 1
    db_session.commit()
    unit_service.create_unit(db_session, owner, association.id, UnitCreate(name="Only"))

    with pytest.raises(ValidationFailure, match=r"Unit limit reached \(1\)"):
        unit_service.create_unit(db_session, owner, association.id, UnitCreate(name="Second"))


def test_delete_unit_drops_assignment(db_session, create_association, add_member, member_of):
    association, owner = create_association()
    member = member_of(association, add_member(association, "tenant@example.com", units=["Flat 5"]))
    unit_id = member.unit_assignments[0].unit_id

    unit_service.delete_unit(db_session, owner, association.id, unit_id)

    assert db_session.query(MemberUnit).count() == 0


def test_unit_stats_and_lookups(db_session, create_association, add_member, create_unit, client_as):
    association, owner = create_association()
    create_unit(association, "N1", building="North")
    create_unit(association, "S1", building="South")
    create_unit(association, "Loose")
    add_member(association, "north@example.com", units=["N1"])
    unit_service.update_unit(
        db_session,
        owner,
        association.id,
        db_session.query(MemberUnit).one().unit_id,
        UnitUpdate(unit_type="Flat"),
    )

    stats = unit_service.unit_stats(db_session, owner, association.id)
    assert stats["total"] == 3
    assert stats["assigned"] == 1
    assert stats["unassigned"] == 2
    assert stats["by_building"] == {"North": 1, "South": 1, "Unspecified": 1}
    assert stats["by_status"] == {"active": 3}

    client = client_as(owner)
    assert client.get(f"/associations/{association.id}/units/buildings").json() == ["North", "South"]
    assert client.get(f"/associations/{association.id}/units/types").json() == ["Flat"]
    listed = client.get(f"/associations/{association.id}/units", params={"building": "North"}).json()
    assert [item["name"] for item in listed] == ["N1"]
    assert listed[0]["assigned_member_name"] == "North"
