import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import stripe
from sqlalchemy.orm import Session

from ..config import settings
from ..constants import (
    DEFAULT_SUBSCRIPTION_TIERS,
    FALLBACK_TIER_LIMITS,
    STRIPE_PRICE_LOOKUP_KEYS,
    STRIPE_SUBSCRIPTION_STATUS_MAP,
    SubscriptionStatus,
)
from ..core.errors import NotFound, UpstreamFailure, ValidationFailure
from ..models.models import Association, SubscriptionTier, User, utcnow
from ..schemas.schemas import CheckoutRequest
from .access import get_association, require_admin
from .audit import record_audit_best_effort

logger = logging.getLogger(__name__)

TIER_SEED_FIELDS = (
    "display_name",
    "description",
    "max_members",
    "max_units",
    "price",
    "yearly_price",
    "currency",
    "billing_interval",
    "features",
    "sort_order",
)


def ensure_subscription_tiers(session: Session) -> None:
    existing = {tier.name: tier for tier in session.query(SubscriptionTier).all()}
    updated = False
    for entry in DEFAULT_SUBSCRIPTION_TIERS:
        tier = existing.get(entry["name"])
        if not tier:
            session.add(SubscriptionTier(is_active=True, **entry))
            updated = True
            continue
        for field in TIER_SEED_FIELDS:
            if getattr(tier, field) != entry[field]:
                setattr(tier, field, entry[field])
                updated = True
    if updated:
        session.commit()


def list_tiers(db: Session) -> list[SubscriptionTier]:
    return (
        db.query(SubscriptionTier)
        .filter(SubscriptionTier.is_active.is_(True))
        .order_by(SubscriptionTier.sort_order.asc())
        .all()
    )


def get_tier(db: Session, name: str) -> Optional[SubscriptionTier]:
    return (
        db.query(SubscriptionTier)
        .filter(SubscriptionTier.name == name, SubscriptionTier.is_active.is_(True))
        .first()
    )


def tier_limits(db: Session, name: str) -> dict[str, Optional[int]]:
    tier = get_tier(db, name)
    if tier:
        return {"max_members": tier.max_members, "max_units": tier.max_units}
    fallback = FALLBACK_TIER_LIMITS.get(name)
    if fallback:
        return dict(fallback)
    return {"max_members": None, "max_units": None}


def apply_tier(db: Session, association: Association, tier_name: str) -> None:
    limits = tier_limits(db, tier_name)
    association.subscription_tier = tier_name
    association.max_members = limits["max_members"]
    association.max_units = limits["max_units"]


def _configure_stripe() -> None:
    if not settings.stripe_api_key:
        raise UpstreamFailure("Stripe is not configured")
    stripe.api_key = settings.stripe_api_key


def _price_id_for(tier: str, interval: str) -> str:
    lookup_key = STRIPE_PRICE_LOOKUP_KEYS.get((tier, interval))
    if not lookup_key:
        raise ValidationFailure(f"Unsupported subscription tier: {tier}")
    try:
        prices = stripe.Price.list(lookup_keys=[lookup_key], active=True, limit=1)
    except stripe.StripeError as exc:
        logger.exception("Failed to fetch Stripe price for lookup key %s.", lookup_key)
        raise UpstreamFailure(f"Failed to fetch price for lookup key: {lookup_key}") from exc
    if not prices.data:
        raise UpstreamFailure(f"No active price found for lookup key: {lookup_key}")
    return prices.data[0].id


def create_checkout_session(db: Session, user: User, association_id: int, payload: CheckoutRequest) -> dict[str, Any]:
    require_admin(db, user, association_id)
    association = get_association(db, association_id)
    _configure_stripe()
    interval = payload.interval.value
    price_id = _price_id_for(payload.tier, interval)

    metadata = {
        "userId": str(user.id),
        "associationId": str(association.id),
        "associationName": association.name,
        "tier": payload.tier,
    }
    subscription_data: dict[str, Any] = {"metadata": metadata}
    if payload.tier == "pro" and settings.stripe_pro_trial_days:
        subscription_data["trial_period_days"] = settings.stripe_pro_trial_days

    base_url = settings.frontend_url.rstrip("/")
    params: dict[str, Any] = {
        "mode": "subscription",
        "payment_method_types": ["card"],
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": f"{base_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{base_url}/billing/cancelled",
        "metadata": metadata,
        "subscription_data": subscription_data,
    }
    if association.stripe_customer_id:
        params["customer"] = association.stripe_customer_id
    elif user.email:
        params["customer_email"] = user.email

    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as exc:
        logger.exception("Stripe checkout session failed for association %s.", association.id)
        raise UpstreamFailure("Unable to start checkout") from exc

    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=user.id,
        action="checkout_started",
        entity_type="association",
        entity_id=association.id,
        description=f"Started {payload.tier} checkout ({interval})",
        metadata={"tier": payload.tier, "interval": interval, "session_id": session.id},
    )
    return {"url": session.url, "session_id": session.id}


def create_portal_session(db: Session, user: User, association_id: int) -> dict[str, Any]:
    require_admin(db, user, association_id)
    association = get_association(db, association_id)
    if not association.stripe_customer_id:
        raise ValidationFailure("No Stripe customer found for this association")
    _configure_stripe()
    try:
        session = stripe.billing_portal.Session.create(
            customer=association.stripe_customer_id,
            return_url=f"{settings.frontend_url.rstrip('/')}/dashboard",
        )
    except stripe.StripeError as exc:
        logger.exception("Stripe portal session failed for association %s.", association.id)
        raise UpstreamFailure("Unable to open billing portal") from exc
    return {"url": session.url, "session_id": getattr(session, "id", None)}


def verify_webhook(payload: bytes, sig_header: Optional[str]) -> dict[str, Any]:
    """Check the processor's signature and return the decoded event."""
    if not settings.stripe_webhook_secret:
        raise UpstreamFailure("Stripe webhook secret is not configured")
    if not sig_header:
        raise UpstreamFailure("Missing signature header")
    try:
        stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=settings.stripe_webhook_secret,
        )
    except ValueError as exc:
        raise UpstreamFailure("Invalid payload") from exc
    except stripe.SignatureVerificationError as exc:
        raise UpstreamFailure("Invalid signature") from exc
    return json.loads(payload)


def _association_from_metadata(db: Session, data: dict[str, Any]) -> Optional[Association]:
    metadata = data.get("metadata") or {}
    raw_id = metadata.get("associationId")
    if not raw_id:
        logger.error("Stripe object %s is missing associationId metadata.", data.get("id"))
        return None
    try:
        association_id = int(raw_id)
    except (TypeError, ValueError):
        logger.error("Stripe object %s has malformed associationId %r.", data.get("id"), raw_id)
        return None
    association = db.get(Association, association_id)
    if not association:
        raise NotFound("Association not found")
    return association


def _period_end(data: dict[str, Any]) -> datetime:
    raw = data.get("current_period_end")
    if raw is None:
        items = (data.get("items") or {}).get("data") or []
        if items:
            raw = items[0].get("current_period_end")
    if raw:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    return utcnow() + timedelta(days=30)


def map_subscription_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    return STRIPE_SUBSCRIPTION_STATUS_MAP.get(stripe_status or "", SubscriptionStatus.INACTIVE)


def _handle_checkout_completed(db: Session, data: dict[str, Any]) -> None:
    association = _association_from_metadata(db, data)
    if not association:
        return
    tier = (data.get("metadata") or {}).get("tier") or "pro"
    association.stripe_customer_id = data.get("customer")
    association.stripe_subscription_id = data.get("subscription")
    association.subscription_status = SubscriptionStatus.ACTIVE
    apply_tier(db, association, tier)
    db.commit()
    logger.info("Checkout completed for association %s (tier=%s).", association.id, tier)
    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=None,
        action="subscription_completed",
        entity_type="association",
        entity_id=association.id,
        description=f"Subscription checkout completed ({tier})",
        metadata={"customer": association.stripe_customer_id, "subscription": association.stripe_subscription_id},
    )


def _handle_subscription_change(db: Session, data: dict[str, Any], deleted: bool = False) -> None:
    association = _association_from_metadata(db, data)
    if not association:
        return
    status = map_subscription_status("canceled" if deleted else data.get("status"))
    association.stripe_subscription_id = data.get("id")
    association.subscription_status = status
    association.current_period_end = _period_end(data)
    db.commit()
    logger.info("Subscription %s for association %s is now %s.", data.get("id"), association.id, status.value)
    record_audit_best_effort(
        db,
        association_id=association.id,
        user_id=None,
        action="subscription_updated",
        entity_type="association",
        entity_id=association.id,
        description=f"Subscription status changed to {status.value}",
        metadata={"stripe_status": data.get("status"), "deleted": deleted},
    )


def process_webhook_event(db: Session, event: dict[str, Any]) -> None:
    event_type = event.get("type")
    data = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        _handle_checkout_completed(db, data)
    elif event_type in {"customer.subscription.created", "customer.subscription.updated"}:
        _handle_subscription_change(db, data)
    elif event_type == "customer.subscription.deleted":
        _handle_subscription_change(db, data, deleted=True)
    elif event_type == "customer.subscription.trial_will_end":
        metadata = data.get("metadata") or {}
        logger.info(
            "Trial will end for subscription %s in association %s.",
            data.get("id"),
            metadata.get("associationId"),
        )
    else:
        logger.info("Unhandled Stripe event type: %s", event_type)
