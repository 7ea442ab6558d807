"""Grant platform-admin rights to an existing user.

Run: `assocportal-create-admin --email admin@example.com`

The user must have signed in through the identity provider at least once so a
local user record exists.
"""

import argparse
from contextlib import contextmanager

from sqlalchemy import func

from assocportal.config import SessionLocal
from assocportal.constants import PLATFORM_ADMIN_PERMISSIONS, PlatformAdminRole
from assocportal.models.models import PlatformAdmin, User


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def grant_platform_admin(db, email: str, role: PlatformAdminRole) -> tuple[PlatformAdmin, bool]:
    """Return the admin row and whether it was newly created."""
    user = db.query(User).filter(func.lower(User.email) == email.lower()).first()
    if user is None:
        raise LookupError(f"No user with email {email}. They must sign in once first.")

    admin = db.query(PlatformAdmin).filter(PlatformAdmin.user_id == user.id).first()
    if admin:
        if not admin.is_active:
            admin.is_active = True
            db.flush()
        return admin, False

    admin = PlatformAdmin(
        user_id=user.id,
        role=role,
        permissions=list(PLATFORM_ADMIN_PERMISSIONS),
        is_active=True,
    )
    db.add(admin)
    db.flush()
    return admin, True


def main():
    parser = argparse.ArgumentParser(description="Grant platform admin rights to a user")
    parser.add_argument("--email", required=True)
    parser.add_argument(
        "--role",
        default=PlatformAdminRole.SUPER_ADMIN.value,
        choices=[role.value for role in PlatformAdminRole],
    )
    args = parser.parse_args()

    with session_scope() as db:
        try:
            admin, created = grant_platform_admin(db, args.email, PlatformAdminRole(args.role))
        except LookupError as exc:
            print(str(exc))
            raise SystemExit(1)
        if created:
            print(f"Created {admin.role.value} platform admin with id {admin.id}")
        else:
            print("User is already a platform admin.")


if __name__ == "__main__":
    main()
