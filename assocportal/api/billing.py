from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..models.models import SubscriptionTier, User
from ..schemas.schemas import CheckoutRequest, SessionUrlRead, SubscriptionTierRead
from ..services import billing as billing_service

router = APIRouter(tags=["billing"])


@router.get("/billing/tiers", response_model=list[SubscriptionTierRead])
def list_tiers(db: Session = Depends(get_db)) -> list[SubscriptionTier]:
    return billing_service.list_tiers(db)


@router.post("/associations/{association_id}/billing/checkout", response_model=SessionUrlRead)
def create_checkout_session(
    association_id: int,
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> SessionUrlRead:
    return SessionUrlRead(**billing_service.create_checkout_session(db, user, association_id, payload))


@router.post("/associations/{association_id}/billing/portal", response_model=SessionUrlRead)
def create_portal_session(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> SessionUrlRead:
    return SessionUrlRead(**billing_service.create_portal_session(db, user, association_id))
