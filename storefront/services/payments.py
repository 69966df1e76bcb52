"""Stripe wrapper used by the checkout, order and webhook handlers."""

import json
import logging
from typing import Any, Dict, List, Optional

import stripe

from storefront.core import config
from storefront.core.errors import BadRequestError, PaymentServiceError
from storefront.services.pricing import amount_to_cents, normalize_payment_method

logger = logging.getLogger(__name__)

MIN_CHARGE_CENTS = 50
JSON_METADATA_KEYS = ("shipping_address", "billing_address", "item_ids")


def get_stripe():
    """Configured stripe module; raises when no secret key is set."""
    if not config.STRIPE_SECRET_KEY:
        raise PaymentServiceError(
            "Payment service is not configured. Please contact support.",
            code="payments.not_configured",
        )
    stripe.api_key = config.STRIPE_SECRET_KEY
    return stripe


def as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def detect_payment_method(intent: Dict[str, Any]) -> str:
    """card / afterpay / klarna / affirm, preferring what Stripe actually used."""
    charge = intent.get("latest_charge")
    if isinstance(charge, dict):
        used = (charge.get("payment_method_details") or {}).get("type")
        if used:
            return normalize_payment_method(used)
    metadata = intent.get("metadata") or {}
    if metadata.get("payment_method"):
        return normalize_payment_method(metadata["payment_method"])
    types = intent.get("payment_method_types") or []
    return normalize_payment_method(types[0] if types else None)


def build_metadata(user_id: str, body: Dict[str, Any]) -> Dict[str, str]:
    # Stripe metadata values must be strings
    metadata = {"user_id": str(user_id)}
    if body.get("shipping_address"):
        metadata["shipping_address"] = json.dumps(body["shipping_address"])
    if body.get("billing_address"):
        metadata["billing_address"] = json.dumps(body["billing_address"])
    if body.get("payment_method"):
        metadata["payment_method"] = body["payment_method"]
    if body.get("item_ids"):
        metadata["item_ids"] = json.dumps(body["item_ids"])
    if body.get("shipping_fee"):
        metadata["shipping_fee"] = str(body["shipping_fee"])
    if body.get("coupon_code"):
        metadata["coupon_code"] = body["coupon_code"]
    if body.get("coupon_discount"):
        metadata["coupon_discount"] = str(body["coupon_discount"])
    if body.get("coupon_type"):
        metadata["coupon_type"] = body["coupon_type"]
    if body.get("verification_discount") and float(body["verification_discount"]) > 0:
        metadata["verification_discount"] = str(body["verification_discount"])
        metadata["verification_discount_source"] = body.get("verification_discount_source") or ""
    return metadata


def parse_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    parsed = dict(metadata or {})
    for key in JSON_METADATA_KEYS:
        raw = parsed.get(key)
        if isinstance(raw, str) and raw:
            try:
                parsed[key] = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring malformed %s in intent metadata", key)
                parsed[key] = None
    try:
        parsed["shipping_fee"] = float(parsed.get("shipping_fee") or 0)
    except (TypeError, ValueError):
        parsed["shipping_fee"] = 0.0
    return parsed


def shipping_block(address: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": address.get("full_name"),
        "address": {
            "line1": address.get("address"),
            "city": address.get("city"),
            "state": address.get("state"),
            "postal_code": address.get("zip_code"),
            "country": address.get("country"),
        },
        "phone": address.get("phone"),
    }


def build_intent_params(user_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    amount = body.get("amount")
    if not isinstance(amount, (int, float)) or amount <= 0:
        raise BadRequestError("Valid amount is required", code="payments.invalid_amount")
    cents = amount_to_cents(amount)
    if cents < MIN_CHARGE_CENTS:
        raise BadRequestError("Amount must be at least $0.50", code="payments.amount_too_small")

    currency = (body.get("currency") or "usd").lower()
    params: Dict[str, Any] = {
        "amount": cents,
        "currency": currency,
        "metadata": build_metadata(user_id, body),
    }
    if body.get("payment_method") == "afterpay":
        params["payment_method_types"] = ["afterpay_clearpay"]
        params["payment_method_options"] = {"afterpay_clearpay": {"capture_method": "manual"}}
    else:
        # redirects are required by the Affirm and Klarna flows
        params["automatic_payment_methods"] = {"enabled": True, "allow_redirects": "always"}
    if body.get("shipping_address"):
        params["shipping"] = shipping_block(body["shipping_address"])
    return params


def create_intent(client, user_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    params = build_intent_params(user_id, body)
    intent = as_dict(client.PaymentIntent.create(**params))
    logger.info("Created payment intent %s for user %s: %s cents %s via %s",
                intent.get("id"), user_id, params["amount"], params["currency"],
                body.get("payment_method") or "card")
    return {"client_secret": intent.get("client_secret"), "payment_intent_id": intent.get("id")}


def retrieve_intent(client, intent_id: str, expand_charge: bool = False) -> Dict[str, Any]:
    if not intent_id:
        raise BadRequestError("Payment intent ID is required", code="payments.intent_required")
    if expand_charge:
        return as_dict(client.PaymentIntent.retrieve(intent_id, expand=["latest_charge"]))
    return as_dict(client.PaymentIntent.retrieve(intent_id))


def list_charges(client, intent_id: str, limit: int = 1) -> List[Dict[str, Any]]:
    charges = as_dict(client.Charge.list(payment_intent=intent_id, limit=limit))
    return [as_dict(c) for c in charges.get("data") or []]


def billing_from_charge(intent: Dict[str, Any], shipping: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Billing address taken from the charge Stripe attached to the intent."""
    charge = intent.get("latest_charge")
    if not isinstance(charge, dict):
        charges = (intent.get("charges") or {}).get("data") or []
        charge = charges[0] if charges else None
    if not isinstance(charge, dict):
        return None
    details = charge.get("billing_details") or {}
    address = details.get("address")
    if not address:
        return None
    return {
        "full_name": details.get("name") or shipping.get("full_name", ""),
        "address": address.get("line1") or "",
        "city": address.get("city") or "",
        "state": address.get("state") or "",
        "zip_code": address.get("postal_code") or "",
        "country": address.get("country") or shipping.get("country", ""),
    }


def construct_event(client, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    if not signature:
        raise BadRequestError("No signature", code="payments.webhook_signature_missing")
    if not config.STRIPE_WEBHOOK_SECRET:
        raise PaymentServiceError("Webhook secret not configured", code="payments.webhook_not_configured")
    try:
        event = client.Webhook.construct_event(payload, signature, config.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise BadRequestError(f"Webhook Error: {e}", code="payments.webhook_signature_invalid")
    return as_dict(event)
