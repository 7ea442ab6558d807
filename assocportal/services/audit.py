import json
import logging
from collections import Counter
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..constants import AUDIT_LOG_DEFAULT_LIMIT, AUDIT_LOG_MAX_LIMIT, MY_ACTIVITY_DEFAULT_LIMIT
from ..models.models import AuditLog, User, utcnow
from ..schemas.schemas import ClientAuditEvent
from .access import get_member_for_user, is_admin_membership, require_membership

logger = logging.getLogger(__name__)


def _serialize(data: Any) -> Optional[dict]:
    if data is None:
        return None
    try:
        return json.loads(json.dumps(data, default=str))
    except (TypeError, ValueError):
        return {"value": str(data)}


def record_audit(
    db_session: Session,
    *,
    association_id: Optional[int],
    user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Any = None,
    description: str = "",
    metadata: Any = None,
    member_id: Optional[int] = None,
) -> AuditLog:
    """Append an audit entry. Entries are never updated or removed."""
    entry = AuditLog(
        timestamp=utcnow(),
        association_id=association_id,
        user_id=user_id,
        member_id=member_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        description=description,
        details=_serialize(metadata),
    )
    db_session.add(entry)
    db_session.commit()
    return entry


def record_audit_best_effort(db_session: Session, **kwargs: Any) -> Optional[AuditLog]:
    """Same as record_audit, but a failing store never fails the caller."""
    try:
        return record_audit(db_session, **kwargs)
    except Exception:
        db_session.rollback()
        logger.exception("Failed to write audit entry action=%s.", kwargs.get("action"))
        return None


def _clamp_limit(limit: Optional[int], default: int) -> int:
    if not limit or limit <= 0:
        return default
    return min(limit, AUDIT_LOG_MAX_LIMIT)


def list_audit_logs(
    db: Session,
    user: User,
    association_id: int,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[AuditLog]:
    membership = require_membership(db, user, association_id)
    query = db.query(AuditLog).filter(AuditLog.association_id == association_id)
    if is_admin_membership(membership):
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
            if entity_id:
                query = query.filter(AuditLog.entity_id == str(entity_id))
        if action:
            query = query.filter(AuditLog.action == action)
    else:
        query = query.filter(AuditLog.user_id == user.id)
    return (
        query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(_clamp_limit(limit, AUDIT_LOG_DEFAULT_LIMIT))
        .all()
    )


def audit_stats(db: Session, user: User, association_id: int) -> dict[str, Any]:
    membership = require_membership(db, user, association_id)
    query = db.query(AuditLog.action, AuditLog.entity_type).filter(AuditLog.association_id == association_id)
    if not is_admin_membership(membership):
        query = query.filter(AuditLog.user_id == user.id)
    rows = query.all()
    return {
        "total_logs": len(rows),
        "action_counts": dict(Counter(row.action for row in rows)),
        "entity_counts": dict(Counter(row.entity_type for row in rows)),
    }


def my_activity(db: Session, user: User, association_id: int, limit: Optional[int] = None) -> list[AuditLog]:
    require_membership(db, user, association_id)
    return (
        db.query(AuditLog)
        .filter(AuditLog.association_id == association_id, AuditLog.user_id == user.id)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(_clamp_limit(limit, MY_ACTIVITY_DEFAULT_LIMIT))
        .all()
    )


def log_client_event(db: Session, user: User, association_id: int, event: ClientAuditEvent) -> AuditLog:
    require_membership(db, user, association_id)
    member = get_member_for_user(db, association_id, user)
    return record_audit(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=member.id if member else None,
        action=event.action,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        description=event.description,
        metadata=event.metadata,
    )
