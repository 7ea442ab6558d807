import logging
from collections import Counter
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..constants import LeadStatus
from ..core.errors import NotFound, ValidationFailure
from ..models.models import Lead, PlatformAdmin, User, utcnow
from ..schemas.schemas import LeadCreate, LeadStatusUpdate
from .access import require_platform_admin
from .audit import record_audit_best_effort

logger = logging.getLogger(__name__)


def submit_lead(db: Session, payload: LeadCreate) -> Lead:
    lead = Lead(
        name=payload.name.strip(),
        email=payload.email.lower(),
        company_name=payload.company_name.strip(),
        phone_number=payload.phone_number.strip(),
        message=payload.message.strip(),
        status=LeadStatus.NEW,
    )
    db.add(lead)
    db.commit()
    db.refresh(lead)
    logger.info("Lead %s submitted.", lead.id)
    return lead


def _get_lead(db: Session, lead_id: int) -> Lead:
    lead = db.get(Lead, lead_id)
    if not lead:
        raise NotFound("Lead not found")
    return lead


def list_leads(db: Session, user: User, status: Optional[LeadStatus] = None) -> list[Lead]:
    require_platform_admin(db, user)
    query = db.query(Lead)
    if status:
        query = query.filter(Lead.status == status)
    return query.order_by(Lead.created_at.desc(), Lead.id.desc()).all()


def update_lead_status(db: Session, user: User, lead_id: int, payload: LeadStatusUpdate) -> Lead:
    require_platform_admin(db, user)
    lead = _get_lead(db, lead_id)
    previous = lead.status
    lead.status = payload.status
    if payload.notes is not None:
        lead.notes = payload.notes
    lead.updated_at = utcnow()
    db.commit()
    db.refresh(lead)
    record_audit_best_effort(
        db,
        association_id=None,
        user_id=user.id,
        action="lead_status_updated",
        entity_type="lead",
        entity_id=lead.id,
        description=f"Lead moved from {previous.value} to {lead.status.value}",
    )
    return lead


def assign_lead(db: Session, user: User, lead_id: int, admin_id: int) -> Lead:
    require_platform_admin(db, user)
    lead = _get_lead(db, lead_id)
    assignee = db.get(PlatformAdmin, admin_id)
    if not assignee or not assignee.is_active:
        raise ValidationFailure("Assignee must be an active platform admin")
    lead.assigned_to_admin_id = assignee.id
    lead.updated_at = utcnow()
    db.commit()
    db.refresh(lead)
    record_audit_best_effort(
        db,
        association_id=None,
        user_id=user.id,
        action="lead_assigned",
        entity_type="lead",
        entity_id=lead.id,
        description=f"Lead assigned to platform admin {assignee.id}",
    )
    return lead


def lead_stats(db: Session, user: User) -> dict[str, Any]:
    require_platform_admin(db, user)
    rows = db.query(Lead.status, Lead.assigned_to_admin_id).all()
    by_status = {status.value: 0 for status in LeadStatus}
    by_status.update({status.value: count for status, count in Counter(row.status for row in rows).items()})
    return {
        "total": len(rows),
        "by_status": by_status,
        "unassigned": sum(1 for row in rows if row.assigned_to_admin_id is None),
    }
