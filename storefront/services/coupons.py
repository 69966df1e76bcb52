import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from storefront.core.errors import BadRequestError
from storefront.db.documents import utcnow

logger = logging.getLogger(__name__)

COUPON_CODES: Dict[str, Dict[str, Any]] = {
    "SAVE10": {"discount": 10, "type": "fixed"},
    "FLASH10": {"discount": 10, "type": "fixed"},
    "NEWUSER10": {"discount": 10, "type": "fixed"},
    "SAVE50": {"discount": 50, "type": "fixed"},
    "WELCOME10": {"discount": 10, "type": "fixed"},
}

VERIFICATION_DISCOUNT_AMOUNT = 5.0
VERIFICATION_SOURCES = ("phone", "email", "both")


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def lookup_coupon(code: Optional[str]) -> Dict[str, Any]:
    normalized = normalize_code(code)
    if not normalized:
        raise BadRequestError("Coupon code is required", code="coupon.required")
    coupon = COUPON_CODES.get(normalized)
    if coupon is None:
        raise BadRequestError("Invalid coupon code", code="coupon.invalid")
    return {"code": normalized, "discount": coupon["discount"], "type": coupon["type"]}


def has_used_coupon(db: Database, user_id: ObjectId, code: str) -> bool:
    return db.used_coupons.find_one({"user": user_id, "coupon_code": normalize_code(code)}) is not None


def validate_coupon(db: Database, user_id: ObjectId, code: Optional[str]) -> Dict[str, Any]:
    coupon = lookup_coupon(code)
    if has_used_coupon(db, user_id, coupon["code"]):
        raise BadRequestError(
            "This coupon has already been used. Each coupon can only be used once per customer.",
            code="coupon.already_used",
            meta={"already_used": True},
        )
    return coupon


def redeem_coupon(db: Database, user_id: ObjectId, code: str, discount: float, discount_type: str,
                  order_id: Optional[ObjectId] = None) -> Dict[str, Any]:
    """Record a redemption; a second one for the same user and code is rejected."""
    doc = {
        "user": user_id,
        "coupon_code": normalize_code(code),
        "discount": float(discount),
        "discount_type": discount_type,
        "order_id": order_id,
        "used_at": utcnow(),
    }
    if has_used_coupon(db, user_id, code):
        raise BadRequestError("This coupon has already been used", code="coupon.already_used",
                              meta={"already_used": True})
    try:
        res = db.used_coupons.insert_one(doc)
    except DuplicateKeyError:
        raise BadRequestError("This coupon has already been used", code="coupon.already_used",
                              meta={"already_used": True})
    doc["_id"] = res.inserted_id
    return doc


def record_coupon_from_metadata(db: Database, user_id: ObjectId, metadata: Dict[str, Any],
                                order_id: ObjectId) -> bool:
    """Best-effort redemption for an order paid through an intent; never raises for duplicates."""
    code = metadata.get("coupon_code")
    discount = _float(metadata.get("coupon_discount"))
    discount_type = metadata.get("coupon_type")
    if not code or not discount or discount_type not in ("percentage", "fixed"):
        return False
    try:
        redeem_coupon(db, user_id, code, discount, discount_type, order_id)
    except BadRequestError:
        logger.warning("Coupon %s was already used by user %s", normalize_code(code), user_id)
        return False
    logger.info("Saved used coupon %s for user %s", normalize_code(code), user_id)
    return True


def has_used_verification_discount(db: Database, user_id: ObjectId) -> bool:
    return db.used_verification_discounts.find_one({"user": user_id}) is not None


def verification_eligibility(db: Database, user: Dict[str, Any]) -> Dict[str, Any]:
    if has_used_verification_discount(db, user["_id"]):
        return {
            "eligible": False,
            "discount": 0,
            "source": None,
            "can_become_eligible": False,
            "message": "You have already used your one-time verification discount.",
        }
    if user.get("email_verified") and user.get("phone_verified"):
        return {
            "eligible": True,
            "discount": VERIFICATION_DISCOUNT_AMOUNT,
            "source": "both",
            "can_become_eligible": False,
            "message": "Get $5 off for verifying both your phone number and email.",
        }
    return {
        "eligible": False,
        "discount": 0,
        "source": None,
        "can_become_eligible": True,
        "message": "Verify both your phone number and email address to get $5 off your first order! "
                   "One-time discount only.",
    }


def record_verification_discount(db: Database, user_id: ObjectId, metadata: Dict[str, Any],
                                 order_id: ObjectId) -> bool:
    discount = _float(metadata.get("verification_discount"))
    source = metadata.get("verification_discount_source") or ""
    if discount <= 0 or source not in VERIFICATION_SOURCES:
        return False
    if has_used_verification_discount(db, user_id):
        logger.warning("Verification discount already used by user %s, skipping record", user_id)
        return False
    try:
        db.used_verification_discounts.insert_one({
            "user": user_id,
            "verification_type": source,
            "discount": discount,
            "order_id": order_id,
            "used_at": utcnow(),
        })
    except DuplicateKeyError:
        logger.warning("Verification discount was already used by user %s", user_id)
        return False
    logger.info("Saved used verification discount (%s) for user %s", source, user_id)
    return True


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
