from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..config import settings
from ..constants import LeadStatus
from ..core.rate_limit import rate_limit_dependency
from ..models.models import Lead, User
from ..schemas.schemas import LeadAssign, LeadCreate, LeadRead, LeadStats, LeadStatusUpdate
from ..services import leads as lead_service

router = APIRouter(prefix="/leads", tags=["leads"])

lead_rate_limit = rate_limit_dependency("leads", settings.lead_rate_limit, settings.lead_rate_window_seconds)


@router.post("", response_model=LeadRead, status_code=201, dependencies=[Depends(lead_rate_limit)])
def submit_lead(payload: LeadCreate, db: Session = Depends(get_db)) -> Lead:
    return lead_service.submit_lead(db, payload)


@router.get("", response_model=list[LeadRead])
def list_leads(
    status: Optional[LeadStatus] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[Lead]:
    return lead_service.list_leads(db, user, status)


@router.get("/stats", response_model=LeadStats)
def read_lead_stats(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> LeadStats:
    return LeadStats(**lead_service.lead_stats(db, user))


@router.patch("/{lead_id}/status", response_model=LeadRead)
def update_lead_status(
    lead_id: int,
    payload: LeadStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Lead:
    return lead_service.update_lead_status(db, user, lead_id, payload)


@router.put("/{lead_id}/assignee", response_model=LeadRead)
def assign_lead(
    lead_id: int,
    payload: LeadAssign,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Lead:
    return lead_service.assign_lead(db, user, lead_id, payload.admin_id)
