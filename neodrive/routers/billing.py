# Filename: neodrive/routers/billing.py
from datetime import timedelta
from typing import Any, Dict, Optional
import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session as DBSession, select

from ..auth import get_session_store, get_settings_dep, optional_session
from ..billing import PaymentGateway
from ..config import Settings
from ..db import get_session
from ..models import PaymentHistory, SubscriptionPlan, User, utcnow
from ..quota import DEFAULT_TIER
from ..schemas import CheckoutOut, CheckoutRequest, MessageOut
from ..sessions import Session, SessionStore
from ..utils import ensure_owner

logger = logging.getLogger(__name__)

SUBSCRIPTION_PERIOD = timedelta(days=30)

router = APIRouter(tags=["billing"])


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payments


def _plan_by_name(db: DBSession, name: str) -> Optional[SubscriptionPlan]:
    return db.exec(select(SubscriptionPlan).where(SubscriptionPlan.name == name.lower())).first()


def _user_by_customer(db: DBSession, customer_id: Optional[str]) -> Optional[User]:
    if not customer_id:
        return None
    return db.exec(select(User).where(User.stripe_customer_id == customer_id)).first()


@router.post("/api/stripe/checkout", response_model=CheckoutOut)
def create_checkout(
    data: CheckoutRequest,
    session: Optional[Session] = Depends(optional_session),
    db: DBSession = Depends(get_session),
    payments: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings_dep),
):
    session = ensure_owner(session, data.user_id)
    user = db.get(User, session.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    plan = _plan_by_name(db, data.product)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription plan not found")
    if user.subscription == plan.name:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already subscribed to this plan")

    checkout = payments.create_checkout_session(
        price_id=plan.stripe_price_id,
        customer_email=user.email,
        success_url=settings.checkout_success_url,
        cancel_url=settings.checkout_cancel_url,
        metadata={"userId": user.id, "product": plan.name},
    )
    db.add(PaymentHistory(user_id=user.id, plan_id=plan.id, stripe_session_id=checkout.id, amount=plan.price))
    db.commit()
    return CheckoutOut(url=checkout.url)


# --- webhook ---

def _checkout_completed(db: DBSession, store: SessionStore, obj: Dict[str, Any]) -> None:
    metadata = obj.get("metadata") or {}
    user = db.get(User, metadata.get("userId", ""))
    plan = _plan_by_name(db, metadata.get("product", ""))
    if user is None or plan is None:
        logger.warning("Checkout %s completed for unknown user or plan: %s", obj.get("id"), metadata)
        return

    user.subscription = plan.name
    user.stripe_subscription_id = obj.get("subscription")
    user.subscription_end_date = utcnow() + SUBSCRIPTION_PERIOD
    user.updated_at = utcnow()
    db.add(user)

    payment = db.exec(select(PaymentHistory).where(PaymentHistory.stripe_session_id == obj.get("id"))).first()
    if payment is not None:
        payment.status = "paid"
        payment.stripe_subscription_id = obj.get("subscription")
        payment.payment_date = utcnow()
        db.add(payment)
    db.commit()

    store.update_identity(user.id, subscription_tier=plan.name)
    logger.info("User %s subscribed to %s", user.id, plan.name)


def _invoice_paid(db: DBSession, store: SessionStore, obj: Dict[str, Any]) -> None:
    user = _user_by_customer(db, obj.get("customer"))
    if user is None or user.subscription == DEFAULT_TIER:
        logger.info("Ignoring invoice %s with no subscribed user", obj.get("id"))
        return
    plan = _plan_by_name(db, user.subscription)
    if plan is None:
        logger.warning("User %s is on unknown plan %s", user.id, user.subscription)
        return

    user.subscription_end_date = utcnow() + SUBSCRIPTION_PERIOD
    db.add(user)
    db.add(PaymentHistory(
        user_id=user.id,
        plan_id=plan.id,
        stripe_subscription_id=obj.get("subscription"),
        amount=(obj.get("amount_paid") or 0) / 100,
        status="paid",
    ))
    db.commit()


def _subscription_deleted(db: DBSession, store: SessionStore, obj: Dict[str, Any]) -> None:
    user = _user_by_customer(db, obj.get("customer"))
    if user is None:
        logger.warning("Subscription %s deleted for unknown customer", obj.get("id"))
        return

    user.subscription = DEFAULT_TIER
    user.stripe_subscription_id = None
    user.subscription_end_date = None
    user.updated_at = utcnow()
    db.add(user)
    db.commit()

    store.update_identity(user.id, subscription_tier=DEFAULT_TIER)
    logger.info("User %s downgraded to %s", user.id, DEFAULT_TIER)


EVENT_HANDLERS = {
    "checkout.session.completed": _checkout_completed,
    "invoice.payment_succeeded": _invoice_paid,
    "customer.subscription.deleted": _subscription_deleted,
}


def apply_event(db: DBSession, store: SessionStore, event: Dict[str, Any]) -> bool:
    """Apply a verified event. Returns False for event types we don't handle."""
    handler = EVENT_HANDLERS.get(event.get("type"))
    if handler is None:
        logger.debug("Unhandled webhook event type %s", event.get("type"))
        return False
    handler(db, store, event["data"]["object"])
    return True


@router.post("/api/webhook", response_model=MessageOut)
async def webhook(
    request: Request,
    db: DBSession = Depends(get_session),
    payments: PaymentGateway = Depends(get_payment_gateway),
    store: SessionStore = Depends(get_session_store),
):
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature")

    payload = await request.body()
    try:
        event = payments.construct_event(payload, signature)
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("Rejected webhook with invalid signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    await run_in_threadpool(apply_event, db, store, event)
    return MessageOut(message="Webhook received")
