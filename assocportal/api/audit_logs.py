from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..constants import AUDIT_LOG_MAX_LIMIT
from ..models.models import AuditLog, User
from ..schemas.schemas import AuditLogRead, AuditStats, ClientAuditEvent
from ..services import audit as audit_service

router = APIRouter(prefix="/associations/{association_id}/audit-logs", tags=["audit"])


@router.get("", response_model=list[AuditLogRead])
def list_audit_logs(
    association_id: int,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=AUDIT_LOG_MAX_LIMIT),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[AuditLog]:
    return audit_service.list_audit_logs(
        db,
        user,
        association_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        limit=limit,
    )


@router.get("/stats", response_model=AuditStats)
def read_audit_stats(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AuditStats:
    return AuditStats(**audit_service.audit_stats(db, user, association_id))


@router.get("/me", response_model=list[AuditLogRead])
def read_my_activity(
    association_id: int,
    limit: Optional[int] = Query(None, ge=1, le=AUDIT_LOG_MAX_LIMIT),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[AuditLog]:
    return audit_service.my_activity(db, user, association_id, limit)


@router.post("", response_model=AuditLogRead, status_code=201)
def log_client_event(
    association_id: int,
    payload: ClientAuditEvent,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AuditLog:
    return audit_service.log_client_event(db, user, association_id, payload)
