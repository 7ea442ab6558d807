import itertools
from datetime import datetime, timedelta, timezone

import pytest

from assocportal.constants import AttendanceStatus, MeetingStatus
from assocportal.core.errors import InvalidStateTransition, ValidationFailure
from assocportal.models.models import Document, MeetingAttendance, VotingTopic
from assocportal.schemas.schemas import MeetingCancel, MeetingComplete, MeetingCreate, MeetingUpdate, RSVPRequest
from assocportal.services import meetings as meeting_service


def _meeting(db_session, owner, association, **overrides):
    data = {
        "title": "Annual General Meeting",
        "meeting_type": "agm",
        "scheduled_date": datetime.now(timezone.utc) + timedelta(days=14),
        "location": "Community hall",
    }
    data.update(overrides)
    return meeting_service.create_meeting(db_session, owner, association.id, MeetingCreate(**data))


def test_complete_requires_schedule_first(create_association, client_as):
    association, owner = create_association()
    client = client_as(owner)
    base = f"/associations/{association.id}/meetings"

    created = client.post(
        base,
        json={
            "title": "Spring AGM",
            "scheduled_date": (datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
            "location": "Hall",
        },
    )
    assert created.status_code == 201
    meeting_id = created.json()["id"]
    assert created.json()["status"] == "draft"

    premature = client.post(f"{base}/{meeting_id}/complete", json={"attendance_count": 25})
    assert premature.status_code == 409
    assert premature.json()["detail"] == "Only scheduled meetings can be completed"

    scheduled = client.post(f"{base}/{meeting_id}/schedule")
    assert scheduled.status_code == 200
    assert scheduled.json()["status"] == "scheduled"
    assert scheduled.json()["scheduled_by_user_id"] == owner.id

    completed = client.post(f"{base}/{meeting_id}/complete", json={"attendance_count": 25})
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["attendance_count"] == 25


def test_cancel_rejected_after_completion(db_session, create_association):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association)
    meeting_service.schedule_meeting(db_session, owner, association.id, meeting.id)
    meeting_service.complete_meeting(db_session, owner, association.id, meeting.id, MeetingComplete(notes="Quorum met"))

    with pytest.raises(InvalidStateTransition) as excinfo:
        meeting_service.cancel_meeting(db_session, owner, association.id, meeting.id, MeetingCancel(reason="Late"))
    assert excinfo.value.message == "Cannot cancel completed or archived meetings"

    archived = meeting_service.archive_meeting(db_session, owner, association.id, meeting.id)
    assert archived.status == MeetingStatus.ARCHIVED
    with pytest.raises(InvalidStateTransition, match="Cannot cancel completed or archived meetings"):
        meeting_service.cancel_meeting(db_session, owner, association.id, meeting.id)


PATH_TO_STATUS = {
    MeetingStatus.DRAFT: [],
    MeetingStatus.SCHEDULED: ["schedule"],
    MeetingStatus.COMPLETED: ["schedule", "complete"],
    MeetingStatus.ARCHIVED: ["schedule", "complete", "archive"],
    MeetingStatus.CANCELLED: ["cancel"],
}

LEGAL_MOVES = {
    (MeetingStatus.DRAFT, "schedule"): MeetingStatus.SCHEDULED,
    (MeetingStatus.DRAFT, "cancel"): MeetingStatus.CANCELLED,
    (MeetingStatus.SCHEDULED, "complete"): MeetingStatus.COMPLETED,
    (MeetingStatus.SCHEDULED, "cancel"): MeetingStatus.CANCELLED,
    (MeetingStatus.COMPLETED, "archive"): MeetingStatus.ARCHIVED,
}


@pytest.mark.parametrize(
    "start, action",
    list(itertools.product(PATH_TO_STATUS, ["schedule", "complete", "archive", "cancel"])),
)
def test_transition_table(db_session, create_association, start, action):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association)
    for step in PATH_TO_STATUS[start]:
        getattr(meeting_service, f"{step}_meeting")(db_session, owner, association.id, meeting.id)
    db_session.refresh(meeting)
    assert meeting.status == start
    handler = getattr(meeting_service, f"{action}_meeting")

    if (start, action) in LEGAL_MOVES:
        moved = handler(db_session, owner, association.id, meeting.id)
        assert moved.status == LEGAL_MOVES[(start, action)]
        return

    before = meeting.updated_at
    with pytest.raises(InvalidStateTransition):
        handler(db_session, owner, association.id, meeting.id)
    db_session.refresh(meeting)
    assert meeting.status == start
    assert meeting.updated_at == before


def test_cancel_records_reason_and_is_terminal(db_session, create_association):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association)

    cancelled = meeting_service.cancel_meeting(
        db_session, owner, association.id, meeting.id, MeetingCancel(reason="Venue flooded")
    )
    assert cancelled.status == MeetingStatus.CANCELLED
    assert cancelled.notes == "Cancelled: Venue flooded"

    with pytest.raises(InvalidStateTransition, match="Only draft meetings can be scheduled"):
        meeting_service.schedule_meeting(db_session, owner, association.id, meeting.id)
    with pytest.raises(InvalidStateTransition, match="Meeting is already cancelled"):
        meeting_service.cancel_meeting(db_session, owner, association.id, meeting.id)


def test_schedule_notifies_invitees(db_session, create_association, add_member, tmp_path):
    association, owner = create_association()
    add_member(association, "resident@example.com", units=["A1"])
    meeting = _meeting(db_session, owner, association)

    scheduled = meeting_service.schedule_meeting(db_session, owner, association.id, meeting.id)

    assert scheduled.notifications_sent is True
    written = list((tmp_path / "emails").glob("*.txt"))
    assert len(written) == 1
    assert "resident@example.com" in written[0].read_text()


def test_unit_scoped_invitations(db_session, create_association, add_member):
    association, owner = create_association()
    add_member(association, "a1@example.com", units=["A1"])
    add_member(association, "b2@example.com", units=["B2"])
    meeting = _meeting(db_session, owner, association, invite_all_members=False, invited_units=["B2"])

    assert meeting_service.invitee_emails(db_session, meeting) == ["b2@example.com"]


def test_invite_scope_needs_units(db_session, create_association):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association)

    with pytest.raises(ValueError):
        MeetingCreate(
            title="Board",
            scheduled_date=datetime.now(timezone.utc),
            invite_all_members=False,
        )
    with pytest.raises(ValidationFailure):
        meeting_service.update_meeting(
            db_session, owner, association.id, meeting.id, MeetingUpdate(invite_all_members=False)
        )


def test_update_is_partial(db_session, create_association):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association, description="Original agenda")

    updated = meeting_service.update_meeting(
        db_session, owner, association.id, meeting.id, MeetingUpdate(location="Roof terrace")
    )

    assert updated.location == "Roof terrace"
    assert updated.description == "Original agenda"
    assert updated.title == "Annual General Meeting"


def test_update_clears_optional_text_but_keeps_required_fields(db_session, create_association):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association, description="Original agenda")

    updated = meeting_service.update_meeting(
        db_session,
        owner,
        association.id,
        meeting.id,
        MeetingUpdate(description=None, location=None, title=None, scheduled_date=None),
    )

    assert updated.description == ""
    assert updated.location == ""
    assert updated.title == "Annual General Meeting"
    assert updated.scheduled_date is not None


def test_rsvp_upserts_single_record(create_association, add_member, client_as, db_session):
    association, owner = create_association()
    resident = add_member(association, "rsvp@example.com")
    meeting = _meeting(db_session, owner, association)
    url = f"/associations/{association.id}/meetings/{meeting.id}/rsvp"
    client = client_as(resident)

    first = client.put(url, json={"status": "maybe"})
    assert first.status_code == 200
    second = client.put(url, json={"status": "attending", "notes": "Bringing a plus one"})
    assert second.status_code == 200

    assert first.json()["id"] == second.json()["id"]
    rows = db_session.query(MeetingAttendance).filter(MeetingAttendance.meeting_id == meeting.id).all()
    assert len(rows) == 1
    assert rows[0].status == AttendanceStatus.ATTENDING
    assert rows[0].notes == "Bringing a plus one"


def test_attendance_stats(db_session, create_association, add_member):
    association, owner = create_association()
    residents = [add_member(association, f"resident{index}@example.com") for index in range(4)]
    meeting = _meeting(db_session, owner, association)
    answers = [AttendanceStatus.ATTENDING, AttendanceStatus.ATTENDING, AttendanceStatus.NOT_ATTENDING, AttendanceStatus.MAYBE]
    for resident, answer in zip(residents, answers):
        meeting_service.rsvp(db_session, resident, association.id, meeting.id, RSVPRequest(status=answer))

    # The owner's own profile makes five active members.
    stats = meeting_service.attendance_stats(db_session, owner, association.id, meeting.id)

    assert stats == {"total": 4, "attending": 2, "not_attending": 1, "maybe": 1, "no_response": 1}


def test_delete_unlinks_documents_and_topics(db_session, create_association):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association)
    now = datetime.now(timezone.utc)
    document = Document(
        association_id=association.id,
        title="Agenda pack",
        category="Meetings",
        file_reference=f"associations/{association.id}/documents/agenda.pdf",
        file_name="agenda.pdf",
        meeting_id=meeting.id,
    )
    topic = VotingTopic(
        association_id=association.id,
        title="Budget",
        options=["Yes", "No"],
        start_date=now,
        end_date=now + timedelta(days=1),
        meeting_id=meeting.id,
    )
    db_session.add_all([document, topic])
    db_session.commit()

    meeting_service.delete_meeting(db_session, owner, association.id, meeting.id)

    db_session.refresh(document)
    db_session.refresh(topic)
    assert document.meeting_id is None
    assert topic.meeting_id is None


def test_reminders_only_for_scheduled(db_session, create_association):
    association, owner = create_association()
    meeting = _meeting(db_session, owner, association)

    with pytest.raises(InvalidStateTransition, match="Reminders can only be sent for scheduled meetings"):
        meeting_service.send_reminders(db_session, owner, association.id, meeting.id)

    meeting_service.schedule_meeting(db_session, owner, association.id, meeting.id)
    reminded = meeting_service.send_reminders(db_session, owner, association.id, meeting.id)
    assert reminded.reminders_sent is True


def test_members_cannot_drive_transitions(create_association, add_member, client_as, db_session):
    association, owner = create_association()
    resident = add_member(association, "plain@example.com")
    meeting = _meeting(db_session, owner, association)

    response = client_as(resident).post(f"/associations/{association.id}/meetings/{meeting.id}/schedule")
    assert response.status_code == 403
