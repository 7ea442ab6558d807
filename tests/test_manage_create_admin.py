import pytest

from assocportal import manage_create_admin
from assocportal.constants import PlatformAdminRole


def test_grant_creates_and_reactivates(db_session, create_user):
    create_user(email="Ops@Example.com")

    admin, created = manage_create_admin.grant_platform_admin(db_session, "ops@example.com", PlatformAdminRole.SUPPORT)
    assert created is True
    assert admin.role == PlatformAdminRole.SUPPORT

    admin.is_active = False
    db_session.flush()
    again, created_again = manage_create_admin.grant_platform_admin(
        db_session, "ops@example.com", PlatformAdminRole.SUPER_ADMIN
    )
    assert created_again is False
    assert again.id == admin.id
    assert again.is_active is True
    assert again.role == PlatformAdminRole.SUPPORT


def test_grant_requires_existing_user(db_session):
    with pytest.raises(LookupError, match="must sign in once first"):
        manage_create_admin.grant_platform_admin(db_session, "ghost@example.com", PlatformAdminRole.SUPER_ADMIN)
