import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..core.errors import AppError
from ..services import billing as billing_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = billing_service.verify_webhook(payload, sig_header)
    except AppError as exc:
        logger.warning("Rejected Stripe webhook: %s", exc.message)
        raise HTTPException(status_code=400, detail=exc.message)

    try:
        billing_service.process_webhook_event(db, event)
    except Exception as exc:
        db.rollback()
        logger.exception("Failed to process Stripe event %s.", event.get("type"))
        raise HTTPException(status_code=400, detail=str(exc) or "Webhook processing failed")
    return {"received": True}
