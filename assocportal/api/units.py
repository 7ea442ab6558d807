from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..models.models import User
from ..schemas.schemas import UnitCreate, UnitRead, UnitStats, UnitUpdate
from ..services import units as unit_service

router = APIRouter(prefix="/associations/{association_id}/units", tags=["units"])


@router.get("", response_model=list[UnitRead])
def list_units(
    association_id: int,
    building: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[UnitRead]:
    units = unit_service.list_units(db, user, association_id, building)
    return [UnitRead(**unit_service.unit_read(unit)) for unit in units]


@router.post("", response_model=UnitRead, status_code=201)
def create_unit(
    association_id: int,
    payload: UnitCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UnitRead:
    return UnitRead(**unit_service.unit_read(unit_service.create_unit(db, user, association_id, payload)))


@router.get("/buildings", response_model=list[str])
def list_buildings(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[str]:
    return unit_service.list_buildings(db, user, association_id)


@router.get("/types", response_model=list[str])
def list_unit_types(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[str]:
    return unit_service.list_unit_types(db, user, association_id)


@router.get("/stats", response_model=UnitStats)
def read_unit_stats(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UnitStats:
    return UnitStats(**unit_service.unit_stats(db, user, association_id))


@router.patch("/{unit_id}", response_model=UnitRead)
def update_unit(
    association_id: int,
    unit_id: int,
    payload: UnitUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UnitRead:
    return UnitRead(**unit_service.unit_read(unit_service.update_unit(db, user, association_id, unit_id, payload)))


@router.delete("/{unit_id}", status_code=204)
def delete_unit(
    association_id: int,
    unit_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    unit_service.delete_unit(db, user, association_id, unit_id)
    return Response(status_code=204)
