import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Iterable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from assocportal.config import Base, settings  # noqa: E402
import assocportal.config as app_config  # noqa: E402
import assocportal.main as app_main  # noqa: E402
from assocportal.api.dependencies import get_db  # noqa: E402
from assocportal.auth.jwt import get_current_user, get_optional_user  # noqa: E402
from assocportal.constants import MemberRole, MemberStatus, MembershipRole, MembershipStatus  # noqa: E402
from assocportal.core.rate_limit import limiter  # noqa: E402
# Import the full models module so every table registers with Base metadata.
from assocportal.models import models as _all_models  # noqa: E402,F401
from assocportal.models.models import (  # noqa: E402
    Association,
    AssociationMembership,
    Member,
    MemberUnit,
    Unit,
    User,
    utcnow,
)
from assocportal.schemas.schemas import AssociationCreate  # noqa: E402
from assocportal.services import associations as association_service  # noqa: E402
from assocportal.services.billing import ensure_subscription_tiers  # noqa: E402


def _sqlite_engine(db_path: Path):
    return create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Point the app-wide SessionLocal/engine at a throwaway database with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    engine = _sqlite_engine(db_dir / "app.db")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def _isolate_side_effects(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "email_backend", "local")
    monkeypatch.setattr(settings, "email_output_dir", str(tmp_path / "emails"))
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    engine = _sqlite_engine(tmp_path / "test.db")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    ensure_subscription_tiers(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    counter = {"value": 0}

    def _create(email: str = "user@example.com", name: Optional[str] = None) -> User:
        counter["value"] += 1
        user = User(external_id=f"idp|{counter['value']}", email=email.lower(), name=name)
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def create_association(db_session: Session, create_user) -> Callable[..., tuple[Association, User]]:
    """New association on the free trial; returns it with its owner."""

    def _create(name: str = "Harbour View", owner_email: str = "owner@example.com") -> tuple[Association, User]:
        owner = create_user(email=owner_email, name="Olive Owner")
        association, _ = association_service.create_association(db_session, owner, AssociationCreate(name=name))
        return association, owner

    return _create


@pytest.fixture
def create_unit(db_session: Session) -> Callable[..., Unit]:
    def _create(association: Association, name: str, building: Optional[str] = None) -> Unit:
        unit = Unit(association_id=association.id, name=name, building=building)
        db_session.add(unit)
        db_session.commit()
        return unit

    return _create


@pytest.fixture
def add_member(db_session: Session, create_user, create_unit) -> Callable[..., User]:
    """Active member with a signed-in user, optionally holding units by name."""

    def _create(
        association: Association,
        email: str,
        role: MembershipRole = MembershipRole.MEMBER,
        units: Iterable[str] = (),
    ) -> User:
        user = create_user(email=email, name=email.split("@", 1)[0].title())
        now = utcnow()
        db_session.add(
            AssociationMembership(
                association_id=association.id,
                user_id=user.id,
                role=role,
                status=MembershipStatus.ACTIVE,
                joined_at=now,
            )
        )
        member = Member(
            association_id=association.id,
            user_id=user.id,
            email=user.email,
            name=user.name,
            role=MemberRole.ADMIN if role != MembershipRole.MEMBER else MemberRole.MEMBER,
            status=MemberStatus.ACTIVE,
            joined_at=now,
        )
        db_session.add(member)
        db_session.flush()
        for unit_name in units:
            unit = (
                db_session.query(Unit)
                .filter(Unit.association_id == association.id, Unit.name == unit_name)
                .first()
            ) or create_unit(association, unit_name)
            db_session.add(MemberUnit(association_id=association.id, member_id=member.id, unit_id=unit.id))
        db_session.commit()
        return user

    return _create


@pytest.fixture
def member_of(db_session: Session) -> Callable[[Association, User], Member]:
    def _lookup(association: Association, user: User) -> Member:
        return (
            db_session.query(Member)
            .filter(Member.association_id == association.id, Member.email == user.email)
            .one()
        )

    return _lookup


@pytest.fixture
def client_as(db_session: Session) -> Generator[Callable[[Optional[User]], TestClient], None, None]:
    """TestClient whose requests run as the given user against the test session."""

    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    app = app_main.app
    app.dependency_overrides[get_db] = _override_get_db

    def _as(user: Optional[User]) -> TestClient:
        app.dependency_overrides[get_optional_user] = lambda: user
        if user is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = lambda: user
        return TestClient(app)

    try:
        yield _as
    finally:
        app.dependency_overrides.clear()
