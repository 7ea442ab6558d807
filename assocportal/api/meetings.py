from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..constants import MeetingStatus
from ..models.models import Meeting, User
from ..schemas.schemas import (
    AttendanceRead,
    AttendanceStats,
    MeetingCancel,
    MeetingComplete,
    MeetingCreate,
    MeetingRead,
    MeetingUpdate,
    RSVPRequest,
)
from ..services import meetings as meeting_service

router = APIRouter(prefix="/associations/{association_id}/meetings", tags=["meetings"])


@router.get("", response_model=list[MeetingRead])
def list_meetings(
    association_id: int,
    status: Optional[MeetingStatus] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[Meeting]:
    return meeting_service.list_meetings(db, user, association_id, status)


@router.post("", response_model=MeetingRead, status_code=201)
def create_meeting(
    association_id: int,
    payload: MeetingCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.create_meeting(db, user, association_id, payload)


@router.get("/{meeting_id}", response_model=MeetingRead)
def get_meeting(
    association_id: int,
    meeting_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.get_meeting(db, user, association_id, meeting_id)


@router.patch("/{meeting_id}", response_model=MeetingRead)
def update_meeting(
    association_id: int,
    meeting_id: int,
    payload: MeetingUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.update_meeting(db, user, association_id, meeting_id, payload)


@router.delete("/{meeting_id}", status_code=204)
def delete_meeting(
    association_id: int,
    meeting_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    meeting_service.delete_meeting(db, user, association_id, meeting_id)
    return Response(status_code=204)


@router.post("/{meeting_id}/schedule", response_model=MeetingRead)
def schedule_meeting(
    association_id: int,
    meeting_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.schedule_meeting(db, user, association_id, meeting_id, background_tasks)


@router.post("/{meeting_id}/complete", response_model=MeetingRead)
def complete_meeting(
    association_id: int,
    meeting_id: int,
    payload: Optional[MeetingComplete] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.complete_meeting(db, user, association_id, meeting_id, payload)


@router.post("/{meeting_id}/archive", response_model=MeetingRead)
def archive_meeting(
    association_id: int,
    meeting_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.archive_meeting(db, user, association_id, meeting_id)


@router.post("/{meeting_id}/cancel", response_model=MeetingRead)
def cancel_meeting(
    association_id: int,
    meeting_id: int,
    payload: Optional[MeetingCancel] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.cancel_meeting(db, user, association_id, meeting_id, payload)


@router.post("/{meeting_id}/reminders", response_model=MeetingRead)
def send_reminders(
    association_id: int,
    meeting_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Meeting:
    return meeting_service.send_reminders(db, user, association_id, meeting_id, background_tasks)


@router.put("/{meeting_id}/rsvp", response_model=AttendanceRead)
def rsvp(
    association_id: int,
    meeting_id: int,
    payload: RSVPRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AttendanceRead:
    attendance = meeting_service.rsvp(db, user, association_id, meeting_id, payload)
    return AttendanceRead(**meeting_service.attendance_read(attendance))


@router.get("/{meeting_id}/attendance", response_model=list[AttendanceRead])
def list_attendance(
    association_id: int,
    meeting_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[AttendanceRead]:
    return [
        AttendanceRead(**meeting_service.attendance_read(item))
        for item in meeting_service.list_attendance(db, user, association_id, meeting_id)
    ]


@router.get("/{meeting_id}/attendance/stats", response_model=AttendanceStats)
def read_attendance_stats(
    association_id: int,
    meeting_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AttendanceStats:
    return AttendanceStats(**meeting_service.attendance_stats(db, user, association_id, meeting_id))
