import pytest

from assocportal.constants import MembershipRole, VisibilityKind
from assocportal.core.errors import AuthenticationRequired, AuthorizationDenied
from assocportal.schemas.schemas import VisibilityAll, VisibilityUnits
from assocportal.services import access


@pytest.mark.parametrize(
    "kind, units, is_admin, caller_units, expected",
    [
        (None, None, False, [], True),
        (VisibilityKind.ALL, [], False, [], True),
        (VisibilityKind.ADMIN, [], False, ["A1"], False),
        (VisibilityKind.ADMIN, [], True, [], True),
        (VisibilityKind.UNITS, ["A1", "A2"], False, ["A2"], True),
        (VisibilityKind.UNITS, ["A1"], False, ["B1"], False),
        (VisibilityKind.UNITS, ["A1"], True, [], True),
    ],
)
def test_visibility_allows(kind, units, is_admin, caller_units, expected):
    assert access.visibility_allows(kind, units, is_admin=is_admin, unit_names=caller_units) is expected


def test_visibility_columns_and_descriptor():
    kind, units = access.visibility_columns(VisibilityUnits(units=["A1"]))
    assert (kind, units) == (VisibilityKind.UNITS, ["A1"])
    assert access.visibility_columns(VisibilityAll()) == (VisibilityKind.ALL, [])

    assert access.visibility_descriptor(VisibilityKind.UNITS, ["A1"]) == {"kind": "units", "units": ["A1"]}
    assert access.visibility_descriptor(VisibilityKind.ADMIN, ["A1"]) == {"kind": "admin"}
    assert access.visibility_descriptor(None, None) == {"kind": "all"}


def test_membership_checks(db_session, create_association, add_member, create_user):
    association, owner = create_association()
    admin = add_member(association, "board@example.com", role=MembershipRole.ADMIN)
    resident = add_member(association, "resident@example.com")
    stranger = create_user(email="stranger@example.com")

    assert access.require_admin(db_session, owner, association.id).role == MembershipRole.OWNER
    assert access.require_admin(db_session, admin, association.id).role == MembershipRole.ADMIN
    with pytest.raises(AuthorizationDenied, match="Admin access required"):
        access.require_admin(db_session, resident, association.id)
    with pytest.raises(AuthorizationDenied, match="Not authorized for this association"):
        access.require_membership(db_session, stranger, association.id)
    with pytest.raises(AuthenticationRequired):
        access.require_membership(db_session, None, association.id)


def test_member_profile_links_user_by_email(db_session, create_association, add_member):
    association, _ = create_association()
    resident = add_member(association, "Linked@Example.com", units=["B2", "A1"])

    member = access.require_member_record(db_session, association.id, resident)

    assert member.user_id == resident.id
    assert access.member_unit_names(db_session, member) == ["A1", "B2"]
    assert access.member_unit_names(db_session, None) == []
