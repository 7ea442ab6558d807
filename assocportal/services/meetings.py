import logging
from typing import Any, Optional

from fastapi import BackgroundTasks
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..constants import AttendanceStatus, MeetingStatus, MemberStatus
from ..core.errors import InvalidStateTransition, NotFound, ValidationFailure
from ..models.models import Document, Meeting, MeetingAttendance, Member, MemberUnit, Unit, User, VotingTopic, utcnow
from ..schemas.schemas import MeetingCancel, MeetingComplete, MeetingCreate, MeetingUpdate, RSVPRequest
from . import email as email_service
from .access import get_association, get_member_for_user, require_admin, require_member_record, require_membership
from .audit import record_audit_best_effort

logger = logging.getLogger(__name__)

# action -> (allowed source states, target state, rejection message)
MEETING_TRANSITIONS = {
    "schedule": ({MeetingStatus.DRAFT}, MeetingStatus.SCHEDULED, "Only draft meetings can be scheduled"),
    "complete": ({MeetingStatus.SCHEDULED}, MeetingStatus.COMPLETED, "Only scheduled meetings can be completed"),
    "archive": ({MeetingStatus.COMPLETED}, MeetingStatus.ARCHIVED, "Only completed meetings can be archived"),
    "cancel": (
        {MeetingStatus.DRAFT, MeetingStatus.SCHEDULED},
        MeetingStatus.CANCELLED,
        "Cannot cancel completed or archived meetings",
    ),
}


def _get_meeting(db: Session, association_id: int, meeting_id: int) -> Meeting:
    meeting = db.get(Meeting, meeting_id)
    if not meeting or meeting.association_id != association_id:
        raise NotFound("Meeting not found")
    return meeting


def _check_transition(meeting: Meeting, action: str) -> MeetingStatus:
    sources, target, message = MEETING_TRANSITIONS[action]
    if meeting.status not in sources:
        if action == "cancel" and meeting.status == MeetingStatus.CANCELLED:
            raise InvalidStateTransition("Meeting is already cancelled")
        raise InvalidStateTransition(message)
    return target


def _audit(db: Session, user: User, meeting: Meeting, action: str, description: str, metadata=None) -> None:
    member = get_member_for_user(db, meeting.association_id, user)
    record_audit_best_effort(
        db,
        association_id=meeting.association_id,
        user_id=user.id,
        member_id=member.id if member else None,
        action=action,
        entity_type="meeting",
        entity_id=meeting.id,
        description=description,
        metadata=metadata,
    )


def _agenda_payload(items) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


def _check_agenda_links(db: Session, association_id: int, agenda: list[dict[str, Any]]) -> None:
    topic_ids = {item["voting_topic_id"] for item in agenda if item.get("voting_topic_id") is not None}
    if topic_ids:
        found = (
            db.query(func.count(VotingTopic.id))
            .filter(VotingTopic.association_id == association_id, VotingTopic.id.in_(topic_ids))
            .scalar()
        )
        if found != len(topic_ids):
            raise ValidationFailure("Agenda references a voting topic outside this association")
    document_ids = {doc_id for item in agenda for doc_id in item.get("document_ids") or []}
    if document_ids:
        found = (
            db.query(func.count(Document.id))
            .filter(Document.association_id == association_id, Document.id.in_(document_ids))
            .scalar()
        )
        if found != len(document_ids):
            raise ValidationFailure("Agenda references a document outside this association")


def list_meetings(
    db: Session,
    user: User,
    association_id: int,
    status: Optional[MeetingStatus] = None,
) -> list[Meeting]:
    require_membership(db, user, association_id)
    query = db.query(Meeting).filter(Meeting.association_id == association_id)
    if status:
        query = query.filter(Meeting.status == status)
    return query.order_by(Meeting.scheduled_date.desc(), Meeting.id.desc()).all()


def get_meeting(db: Session, user: User, association_id: int, meeting_id: int) -> Meeting:
    require_membership(db, user, association_id)
    return _get_meeting(db, association_id, meeting_id)


def create_meeting(db: Session, user: User, association_id: int, payload: MeetingCreate) -> Meeting:
    require_admin(db, user, association_id)
    agenda = _agenda_payload(payload.agenda)
    _check_agenda_links(db, association_id, agenda)
    meeting = Meeting(
        association_id=association_id,
        title=payload.title.strip(),
        description=payload.description,
        meeting_type=payload.meeting_type,
        scheduled_date=payload.scheduled_date,
        location=payload.location,
        status=MeetingStatus.DRAFT,
        agenda=agenda,
        invite_all_members=payload.invite_all_members,
        invited_units=[] if payload.invite_all_members else list(payload.invited_units),
        notifications_sent=False,
        reminders_sent=False,
        created_by_user_id=user.id,
    )
    db.add(meeting)
    db.commit()
    db.refresh(meeting)
    _audit(
        db,
        user,
        meeting,
        "meeting_created",
        f"Created meeting {meeting.title}",
        {"meeting_type": meeting.meeting_type.value, "scheduled_date": meeting.scheduled_date},
    )
    return meeting


def update_meeting(db: Session, user: User, association_id: int, meeting_id: int, payload: MeetingUpdate) -> Meeting:
    require_admin(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    updates = payload.model_dump(exclude_unset=True)
    for field in ("title", "meeting_type", "scheduled_date", "invite_all_members"):
        if field in updates and updates[field] is None:
            updates.pop(field)
    for field, empty in (("description", ""), ("location", ""), ("agenda", []), ("invited_units", [])):
        if field in updates and updates[field] is None:
            updates[field] = empty
    if "agenda" in updates:
        updates["agenda"] = _agenda_payload(payload.agenda or [])
        _check_agenda_links(db, association_id, updates["agenda"])
    if "title" in updates:
        updates["title"] = updates["title"].strip()

    invite_all = updates.get("invite_all_members", meeting.invite_all_members)
    invited_units = updates.get("invited_units", meeting.invited_units or [])
    if not invite_all and not invited_units:
        raise ValidationFailure("Select at least one unit or invite all members")
    if invite_all:
        updates["invited_units"] = []

    for field, value in updates.items():
        setattr(meeting, field, value)
    meeting.updated_at = utcnow()
    db.commit()
    db.refresh(meeting)
    _audit(db, user, meeting, "meeting_updated", f"Updated meeting {meeting.title}", {"fields": sorted(updates)})
    return meeting


def delete_meeting(db: Session, user: User, association_id: int, meeting_id: int) -> None:
    """Remove a meeting with its RSVPs. Linked documents and topics are kept and unlinked."""
    require_admin(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    title = meeting.title
    for document in meeting.documents:
        document.meeting_id = None
    for topic in meeting.voting_topics:
        topic.meeting_id = None
    db.delete(meeting)
    db.commit()
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action="meeting_deleted",
        entity_type="meeting",
        entity_id=meeting_id,
        description=f"Deleted meeting {title}",
    )


def invitee_emails(db: Session, meeting: Meeting) -> list[str]:
    query = db.query(Member.email).filter(
        Member.association_id == meeting.association_id,
        Member.status == MemberStatus.ACTIVE,
    )
    if not meeting.invite_all_members:
        query = (
            query.join(MemberUnit, MemberUnit.member_id == Member.id)
            .join(Unit, Unit.id == MemberUnit.unit_id)
            .filter(Unit.name.in_(meeting.invited_units or []))
        )
    return sorted({row.email for row in query.all()})


def schedule_meeting(
    db: Session,
    user: User,
    association_id: int,
    meeting_id: int,
    background: Optional[BackgroundTasks] = None,
) -> Meeting:
    require_admin(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    target = _check_transition(meeting, "schedule")
    now = utcnow()
    meeting.status = target
    meeting.scheduled_at = now
    meeting.scheduled_by_user_id = user.id
    meeting.updated_at = now
    db.commit()

    association = get_association(db, association_id)
    subject, body = email_service.meeting_scheduled_email(
        association.name, meeting.title, meeting.scheduled_date, meeting.location
    )
    if email_service.queue_email(background, subject, body, invitee_emails(db, meeting)):
        meeting.notifications_sent = True
        db.commit()
    db.refresh(meeting)
    _audit(db, user, meeting, "meeting_scheduled", f"Scheduled meeting {meeting.title}")
    return meeting


def complete_meeting(
    db: Session,
    user: User,
    association_id: int,
    meeting_id: int,
    payload: Optional[MeetingComplete] = None,
) -> Meeting:
    require_admin(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    target = _check_transition(meeting, "complete")
    payload = payload or MeetingComplete()
    if payload.minutes_document_id is not None:
        document = db.get(Document, payload.minutes_document_id)
        if not document or document.association_id != association_id:
            raise NotFound("Document not found")

    now = utcnow()
    meeting.status = target
    meeting.completed_at = now
    meeting.completed_by_user_id = user.id
    if payload.attendance_count is not None:
        meeting.attendance_count = payload.attendance_count
    if payload.notes is not None:
        meeting.notes = payload.notes
    if payload.minutes_document_id is not None:
        meeting.minutes_document_id = payload.minutes_document_id
    meeting.updated_at = now
    db.commit()
    db.refresh(meeting)
    _audit(
        db,
        user,
        meeting,
        "meeting_completed",
        f"Completed meeting {meeting.title}",
        {"attendance_count": meeting.attendance_count},
    )
    return meeting


def archive_meeting(db: Session, user: User, association_id: int, meeting_id: int) -> Meeting:
    require_admin(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    meeting.status = _check_transition(meeting, "archive")
    meeting.updated_at = utcnow()
    db.commit()
    db.refresh(meeting)
    _audit(db, user, meeting, "meeting_archived", f"Archived meeting {meeting.title}")
    return meeting


def cancel_meeting(
    db: Session,
    user: User,
    association_id: int,
    meeting_id: int,
    payload: Optional[MeetingCancel] = None,
) -> Meeting:
    require_admin(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    meeting.status = _check_transition(meeting, "cancel")
    reason = (payload.reason or "").strip() if payload else ""
    meeting.notes = f"Cancelled: {reason}" if reason else "Meeting cancelled"
    meeting.updated_at = utcnow()
    db.commit()
    db.refresh(meeting)
    _audit(db, user, meeting, "meeting_cancelled", f"Cancelled meeting {meeting.title}", {"reason": reason or None})
    return meeting


def rsvp(db: Session, user: User, association_id: int, meeting_id: int, payload: RSVPRequest) -> MeetingAttendance:
    """Create or overwrite the caller's single RSVP for the meeting."""
    require_membership(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    member = require_member_record(db, association_id, user)

    attendance = (
        db.query(MeetingAttendance)
        .filter(MeetingAttendance.meeting_id == meeting.id, MeetingAttendance.member_id == member.id)
        .first()
    )
    if attendance is None:
        attendance = MeetingAttendance(association_id=association_id, meeting_id=meeting.id, member_id=member.id)
        db.add(attendance)
    attendance.status = payload.status
    attendance.notes = payload.notes
    attendance.responded_at = utcnow()
    try:
        db.commit()
    except IntegrityError:
        # A concurrent first RSVP won the insert; overwrite it instead.
        db.rollback()
        attendance = (
            db.query(MeetingAttendance)
            .filter(MeetingAttendance.meeting_id == meeting.id, MeetingAttendance.member_id == member.id)
            .one()
        )
        attendance.status = payload.status
        attendance.notes = payload.notes
        attendance.responded_at = utcnow()
        db.commit()
    db.refresh(attendance)
    return attendance


def attendance_read(attendance: MeetingAttendance) -> dict[str, Any]:
    member = attendance.member
    return {
        "id": attendance.id,
        "meeting_id": attendance.meeting_id,
        "member_id": attendance.member_id,
        "member_name": member.name if member else None,
        "member_email": member.email if member else None,
        "status": attendance.status,
        "notes": attendance.notes,
        "responded_at": attendance.responded_at,
    }


def list_attendance(db: Session, user: User, association_id: int, meeting_id: int) -> list[MeetingAttendance]:
    require_membership(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    return (
        db.query(MeetingAttendance)
        .filter(MeetingAttendance.meeting_id == meeting.id)
        .order_by(MeetingAttendance.responded_at.asc(), MeetingAttendance.id.asc())
        .all()
    )


def attendance_stats(db: Session, user: User, association_id: int, meeting_id: int) -> dict[str, int]:
    require_membership(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    counts = dict(
        db.query(MeetingAttendance.status, func.count(MeetingAttendance.id))
        .filter(MeetingAttendance.meeting_id == meeting.id)
        .group_by(MeetingAttendance.status)
        .all()
    )
    total = sum(counts.values())
    active_members = (
        db.query(func.count(Member.id))
        .filter(Member.association_id == association_id, Member.status == MemberStatus.ACTIVE)
        .scalar()
    ) or 0
    return {
        "total": total,
        "attending": counts.get(AttendanceStatus.ATTENDING, 0),
        "not_attending": counts.get(AttendanceStatus.NOT_ATTENDING, 0),
        "maybe": counts.get(AttendanceStatus.MAYBE, 0),
        # Not clamped: RSVPs from since-removed members can push this below zero.
        "no_response": active_members - total,
    }


def send_reminders(
    db: Session,
    user: User,
    association_id: int,
    meeting_id: int,
    background: Optional[BackgroundTasks] = None,
) -> Meeting:
    require_admin(db, user, association_id)
    meeting = _get_meeting(db, association_id, meeting_id)
    if meeting.status != MeetingStatus.SCHEDULED:
        raise InvalidStateTransition("Reminders can only be sent for scheduled meetings")

    association = get_association(db, association_id)
    recipients = invitee_emails(db, meeting)
    subject, body = email_service.meeting_reminder_email(
        association.name, meeting.title, meeting.scheduled_date, meeting.location
    )
    if email_service.queue_email(background, subject, body, recipients):
        meeting.reminders_sent = True
        meeting.updated_at = utcnow()
        db.commit()
        db.refresh(meeting)
    _audit(db, user, meeting, "meeting_reminders_sent", f"Sent reminders for {meeting.title}", {"recipients": len(recipients)})
    return meeting
