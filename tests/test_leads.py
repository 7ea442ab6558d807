import pytest

from assocportal.config import settings
from assocportal.constants import LeadStatus
from assocportal.core.errors import AuthorizationDenied, ValidationFailure
from assocportal.models.models import AuditLog
from assocportal.schemas.schemas import LeadCreate
from assocportal.services import leads as lead_service
from assocportal.services import platform_admin as platform_service

LEAD = {
    "name": "Dana Prospect",
    "email": "Dana@Example.com",
    "company_name": "Oak Terrace HOA",
    "phone_number": "555-0100",
    "message": "We manage 40 units and want a demo.",
}


@pytest.fixture
def platform_admin(db_session, create_user):
    user = create_user(email="sales@example.com", name="Sales")
    admin = platform_service.setup_initial_platform_admin(db_session, user)
    return user, admin


def test_public_submission(db_session, client_as):
    response = client_as(None).post("/leads", json=LEAD)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "new"
    assert body["email"] == "dana@example.com"
    assert body["assigned_to_admin_id"] is None


def test_submission_requires_every_field(db_session, client_as):
    response = client_as(None).post("/leads", json={**LEAD, "message": ""})

    assert response.status_code == 422


def test_submissions_are_rate_limited(db_session, client_as):
    client = client_as(None)

    for _ in range(settings.lead_rate_limit):
        assert client.post("/leads", json=LEAD).status_code == 201
    blocked = client.post("/leads", json=LEAD)

    assert blocked.status_code == 429
    assert "Retry-After" in blocked.headers


def test_listing_requires_platform_admin(db_session, create_association, client_as):
    _, owner = create_association()
    lead_service.submit_lead(db_session, LeadCreate(**LEAD))

    assert client_as(owner).get("/leads").status_code == 403
    with pytest.raises(AuthorizationDenied):
        lead_service.lead_stats(db_session, owner)


def test_stats_cover_every_status(db_session, platform_admin, client_as):
    user, _ = platform_admin
    lead_service.submit_lead(db_session, LeadCreate(**LEAD))

    stats = client_as(user).get("/leads/stats").json()

    assert stats["total"] == 1
    assert stats["unassigned"] == 1
    assert stats["by_status"] == {status.value: int(status == LeadStatus.NEW) for status in LeadStatus}


def test_status_workflow_and_assignment(db_session, platform_admin, client_as):
    user, admin = platform_admin
    lead = lead_service.submit_lead(db_session, LeadCreate(**LEAD))
    client = client_as(user)

    moved = client.patch(f"/leads/{lead.id}/status", json={"status": "contacted", "notes": "Called Tuesday"})
    assert moved.status_code == 200
    assert moved.json()["status"] == "contacted"
    assert moved.json()["notes"] == "Called Tuesday"

    assigned = client.put(f"/leads/{lead.id}/assignee", json={"admin_id": admin.id})
    assert assigned.status_code == 200
    assert assigned.json()["assigned_to_admin_id"] == admin.id

    filtered = client.get("/leads", params={"status": "contacted"}).json()
    assert [item["id"] for item in filtered] == [lead.id]
    assert client.get("/leads", params={"status": "new"}).json() == []

    actions = {entry.action for entry in db_session.query(AuditLog).filter(AuditLog.entity_type == "lead")}
    assert actions == {"lead_status_updated", "lead_assigned"}


def test_assignee_must_be_active_admin(db_session, platform_admin, client_as):
    user, admin = platform_admin
    lead = lead_service.submit_lead(db_session, LeadCreate(**LEAD))

    with pytest.raises(ValidationFailure, match="active platform admin"):
        lead_service.assign_lead(db_session, user, lead.id, admin.id + 100)

    missing = client_as(user).patch("/leads/9999/status", json={"status": "lost"})
    assert missing.status_code == 404
