from collections import Counter
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import NotFound, ValidationFailure
from ..models.models import Member, MemberUnit, Unit, User, utcnow
from ..schemas.schemas import UnitCreate, UnitUpdate
from .access import get_association, get_member_for_user, require_admin, require_membership
from .audit import record_audit_best_effort


def unit_read(unit: Unit) -> dict[str, Any]:
    assignment = unit.assignment
    member: Optional[Member] = assignment.member if assignment else None
    return {
        "id": unit.id,
        "association_id": unit.association_id,
        "name": unit.name,
        "building": unit.building,
        "floor": unit.floor,
        "unit_type": unit.unit_type,
        "size": unit.size,
        "description": unit.description,
        "status": unit.status,
        "created_at": unit.created_at,
        "assigned_member_id": member.id if member else None,
        "assigned_member_name": member.name if member else None,
    }


def _get_unit(db: Session, association_id: int, unit_id: int) -> Unit:
    unit = db.get(Unit, unit_id)
    if not unit or unit.association_id != association_id:
        raise NotFound("Unit not found")
    return unit


def _name_taken(db: Session, association_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Unit.id).filter(
        Unit.association_id == association_id,
        func.lower(Unit.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Unit.id != exclude_id)
    return query.first() is not None


def _audit(db: Session, user: User, association_id: int, action: str, unit: Unit, description: str, metadata=None) -> None:
    member = get_member_for_user(db, association_id, user)
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=member.id if member else None,
        action=action,
        entity_type="unit",
        entity_id=unit.id,
        description=description,
        metadata=metadata,
    )


def list_units(db: Session, user: User, association_id: int, building: Optional[str] = None) -> list[Unit]:
    require_admin(db, user, association_id)
    query = db.query(Unit).filter(Unit.association_id == association_id)
    if building:
        query = query.filter(Unit.building == building)
    return query.order_by(Unit.name.asc()).all()


def create_unit(db: Session, user: User, association_id: int, payload: UnitCreate) -> Unit:
    require_admin(db, user, association_id)
    association = get_association(db, association_id)

    if _name_taken(db, association_id, payload.name):
        raise ValidationFailure("Unit with this name already exists")
    if association.max_units is not None:
        current = db.query(func.count(Unit.id)).filter(Unit.association_id == association_id).scalar() or 0
        if current >= association.max_units:
            raise ValidationFailure(
                f"Unit limit reached ({association.max_units}). Upgrade your subscription to add more units."
            )

    unit = Unit(association_id=association_id, created_by_user_id=user.id, **payload.model_dump())
    db.add(unit)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailure("Unit with this name already exists")
    db.refresh(unit)
    _audit(db, user, association_id, "unit_created", unit, f"Created unit {unit.name}", {"building": unit.building})
    return unit


def update_unit(db: Session, user: User, association_id: int, unit_id: int, payload: UnitUpdate) -> Unit:
    require_admin(db, user, association_id)
    unit = _get_unit(db, association_id, unit_id)
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("name") is not None:
        updates["name"] = updates["name"].strip()
        if not updates["name"]:
            raise ValidationFailure("Unit name is required")
        if updates["name"] != unit.name and _name_taken(db, association_id, updates["name"], exclude_id=unit.id):
            raise ValidationFailure("Unit with this name already exists")
    elif "name" in updates:
        updates.pop("name")
    if "status" in updates and updates["status"] is None:
        updates.pop("status")

    for field, value in updates.items():
        setattr(unit, field, value)
    unit.updated_at = utcnow()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailure("Unit with this name already exists")
    db.refresh(unit)
    _audit(db, user, association_id, "unit_updated", unit, f"Updated unit {unit.name}", {"fields": sorted(updates)})
    return unit


def delete_unit(db: Session, user: User, association_id: int, unit_id: int) -> None:
    require_admin(db, user, association_id)
    unit = _get_unit(db, association_id, unit_id)
    name = unit.name
    # The assignment row goes with the unit via the relationship cascade.
    db.delete(unit)
    db.commit()
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action="unit_deleted",
        entity_type="unit",
        entity_id=unit_id,
        description=f"Deleted unit {name}",
    )


def _distinct_values(db: Session, association_id: int, column) -> list[str]:
    rows = (
        db.query(column)
        .filter(Unit.association_id == association_id, column.isnot(None), column != "")
        .distinct()
        .order_by(column.asc())
        .all()
    )
    return [row[0] for row in rows]


def list_buildings(db: Session, user: User, association_id: int) -> list[str]:
    require_membership(db, user, association_id)
    return _distinct_values(db, association_id, Unit.building)


def list_unit_types(db: Session, user: User, association_id: int) -> list[str]:
    require_membership(db, user, association_id)
    return _distinct_values(db, association_id, Unit.unit_type)


def unit_stats(db: Session, user: User, association_id: int) -> dict[str, Any]:
    require_admin(db, user, association_id)
    units = db.query(Unit).filter(Unit.association_id == association_id).all()
    assigned_ids = {
        row.unit_id
        for row in db.query(MemberUnit.unit_id).filter(MemberUnit.association_id == association_id).all()
    }
    assigned = sum(1 for unit in units if unit.id in assigned_ids)
    return {
        "total": len(units),
        "by_status": dict(Counter(unit.status.value for unit in units)),
        "assigned": assigned,
        "unassigned": len(units) - assigned,
        "by_building": dict(Counter(unit.building or "Unspecified" for unit in units)),
    }
