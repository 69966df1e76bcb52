import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from pymongo.database import Database

from storefront.api.deps import get_current_user
from storefront.core.errors import BadRequestError, ForbiddenError, PaymentServiceError
from storefront.db.documents import serialize
from storefront.db.mongo import get_db
from storefront.models.schemas import CreateIntentIn, IntentRef, RefundFeeIn, UpdateIntentIn, VerifyPaymentIn
from storefront.services import coupons, orders_service, payments
from storefront.services.pricing import amount_to_cents

logger = logging.getLogger(__name__)

router = APIRouter()


def _gateway_error(e: "stripe.StripeError") -> PaymentServiceError:
    logger.error("Stripe request failed: %s", e)
    return PaymentServiceError(getattr(e, "user_message", None) or str(e) or "Payment gateway error",
                               code="payments.gateway_error", status_code=502)


@router.post("/create-intent")
def create_intent(payload: CreateIntentIn, user=Depends(get_current_user), db: Database = Depends(get_db)):
    if payload.verification_discount and payload.verification_discount > 0 \
            and coupons.has_used_verification_discount(db, user["_id"]):
        raise BadRequestError(
            "Verification discount has already been used for this account. It cannot be applied again.",
            code="verification_discount.already_used",
        )
    body = payload.model_dump()
    client = payments.get_stripe()
    try:
        return payments.create_intent(client, str(user["_id"]), body)
    except stripe.StripeError as e:
        raise _gateway_error(e)


@router.post("/update-intent")
def update_intent(payload: UpdateIntentIn, user=Depends(get_current_user)):
    if not payload.payment_intent_id or not payload.amount or payload.amount <= 0:
        raise HTTPException(status_code=400, detail="Payment Intent ID and valid amount are required")
    # amount arrives in cents
    cents = int(round(payload.amount))
    client = payments.get_stripe()
    try:
        intent = payments.retrieve_intent(client, payload.payment_intent_id)
        if (intent.get("metadata") or {}).get("user_id") != str(user["_id"]):
            raise ForbiddenError("Unauthorized - payment intent belongs to different user")
        if intent.get("status") in ("succeeded", "canceled"):
            raise BadRequestError(f"Cannot update payment intent with status: {intent['status']}",
                                  code="payments.intent_locked")
        logger.info("Updating intent %s amount %s -> %s cents", intent.get("id"), intent.get("amount"), cents)
        updated = payments.as_dict(client.PaymentIntent.modify(payload.payment_intent_id, amount=cents))
    except stripe.StripeError as e:
        raise _gateway_error(e)
    return {
        "success": True,
        "payment_intent_id": updated.get("id"),
        "amount": updated.get("amount"),
        "status": updated.get("status"),
    }


@router.post("/get-intent")
def get_intent(payload: IntentRef, user=Depends(get_current_user)):
    client = payments.get_stripe()
    try:
        intent = payments.retrieve_intent(client, payload.payment_intent_id, expand_charge=True)
    except stripe.StripeError as e:
        raise _gateway_error(e)
    if (intent.get("metadata") or {}).get("user_id") != str(user["_id"]):
        raise ForbiddenError("Unauthorized - payment intent belongs to different user")
    charge = intent.get("latest_charge")
    return {
        "id": intent.get("id"),
        "status": intent.get("status"),
        "metadata": intent.get("metadata") or {},
        "charges": [charge] if isinstance(charge, dict) else [],
    }


@router.post("/verify")
def verify_payment(payload: VerifyPaymentIn, user=Depends(get_current_user), db: Database = Depends(get_db)):
    client = payments.get_stripe()
    try:
        intent = payments.retrieve_intent(client, payload.payment_intent_id)
    except stripe.StripeError as e:
        raise _gateway_error(e)
    order = orders_service.sync_payment_status(db, intent, user["_id"], payload.order_id)
    return {
        "success": intent.get("status") == "succeeded",
        "payment_status": intent.get("status"),
        "order": serialize(order) if order else None,
    }


@router.post("/refund-bnpl-fee")
def refund_bnpl_fee(payload: RefundFeeIn, user=Depends(get_current_user)):
    if not payload.payment_intent_id or payload.refund_amount is None:
        raise HTTPException(status_code=400, detail="Payment Intent ID and refund amount are required")
    if payload.refund_amount <= 0:
        raise HTTPException(status_code=400, detail="Refund amount must be greater than 0")
    client = payments.get_stripe()
    try:
        intent = payments.retrieve_intent(client, payload.payment_intent_id)
        if (intent.get("metadata") or {}).get("user_id") != str(user["_id"]):
            raise ForbiddenError("Unauthorized - payment intent belongs to different user")
        if intent.get("status") != "succeeded":
            raise BadRequestError("Payment intent must be succeeded to create a refund", code="payments.not_succeeded")
        charges = payments.list_charges(client, payload.payment_intent_id, limit=1)
        if not charges:
            raise HTTPException(status_code=404, detail="No charge found for this payment intent")
        refund = payments.as_dict(client.Refund.create(
            charge=charges[0]["id"],
            amount=amount_to_cents(payload.refund_amount),
            reason="requested_by_customer",
            metadata={"reason": "BNPL fee refund - card payment", "payment_intent_id": payload.payment_intent_id},
        ))
    except stripe.StripeError as e:
        raise _gateway_error(e)
    logger.info("Refunded %s on intent %s (refund %s)", payload.refund_amount, payload.payment_intent_id, refund.get("id"))
    return {
        "success": True,
        "refund_id": refund.get("id"),
        "amount": (refund.get("amount") or 0) / 100,
        "status": refund.get("status"),
    }


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Database = Depends(get_db)):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="No signature provided")
    event = payments.construct_event(payments.get_stripe(), payload, signature)

    event_type = event.get("type")
    obj = payments.as_dict((event.get("data") or {}).get("object"))
    logger.info("Stripe webhook %s for %s", event_type, obj.get("id"))
    if event_type == "payment_intent.succeeded":
        orders_service.mark_intent_succeeded(db, obj)
    elif event_type == "payment_intent.payment_failed":
        orders_service.mark_intent_failed(db, obj.get("id"))
    elif event_type == "charge.refunded":
        if obj.get("payment_intent"):
            orders_service.mark_refunded(db, obj["payment_intent"])
    else:
        logger.debug("Ignoring webhook event %s", event_type)
    return {"received": True}
