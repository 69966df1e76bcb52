"""Order creation, payment reconciliation and the admin status audit trail."""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import stripe
from bson import ObjectId
from pymongo.database import Database

from storefront.core.errors import BadRequestError, ForbiddenError, NotFoundError
from storefront.db.documents import ref_id, serialize, to_object_id, utcnow
from storefront.services import carts, coupons, payments, stock
from storefront.services.pricing import (
    coupon_discount_amount,
    corrected_total,
    is_bnpl,
    items_total,
    money,
    reconcile_total,
    cents_to_amount,
)
from storefront.services.variants import size_and_color

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


def _line_image(product: Dict[str, Any]) -> str:
    return product.get("cover_image") or (product.get("images") or [""])[0] or ""


def select_cart_lines(cart: Dict[str, Any], item_ids: Optional[List[str]]) -> List[Dict[str, Any]]:
    lines = cart.get("items") or []
    if not lines:
        raise BadRequestError("Cart is empty", code="orders.cart_empty")
    if item_ids:
        wanted = {str(i) for i in item_ids}
        lines = [line for line in lines if ref_id(line.get("product")) in wanted]
        if not lines:
            raise BadRequestError("No matching items found in cart", code="orders.no_matching_items")
    return lines


def build_order_items(lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    items = []
    for line in lines:
        product = line.get("product")
        if not isinstance(product, dict):
            continue
        item = {
            "product": product["_id"],
            "name": product.get("name", ""),
            "quantity": int(line["quantity"]),
            "price": float(product.get("price", 0)),
            "image": _line_image(product),
        }
        if line.get("selected_attributes"):
            item["selected_attributes"] = line["selected_attributes"]
            item.update({k: v for k, v in size_and_color(line["selected_attributes"]).items() if v})
        items.append(item)
    return items


def _insert_order(db: Database, doc: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    doc.setdefault("status", "pending")
    doc.setdefault("history", [])
    doc.update({"stock_deducted": False, "stock_restored": False, "created_at": now, "updated_at": now})
    doc["_id"] = db.orders.insert_one(doc).inserted_id
    return doc


def _initial_payment_status(intent: Dict[str, Any], requested: Optional[str]) -> str:
    # without a verified intent the order stays unpaid until verify or the webhook
    if not intent:
        return "pending"
    return requested or ("paid" if intent.get("status") == "succeeded" else "pending")


def create_order(db: Database, user: Dict[str, Any], body: Dict[str, Any]) -> Dict[str, Any]:
    """Create an order from the user's cart (all lines or those in `item_ids`)."""
    shipping = body.get("shipping_address")
    method = body.get("payment_method")
    if not shipping or not method:
        raise BadRequestError("Shipping address and payment method are required", code="orders.missing_fields")

    cart = carts.load_cart(db, user["_id"])
    item_ids = body.get("item_ids") or None
    lines = select_cart_lines(cart, item_ids)
    items = build_order_items(lines)
    subtotal = items_total(items)
    intent_id = body.get("payment_intent_id")

    intent: Dict[str, Any] = {}
    if intent_id:
        try:
            intent = payments.retrieve_intent(payments.get_stripe(), intent_id)
        except stripe.StripeError as e:
            logger.error("Could not retrieve intent %s, using computed subtotal: %s", intent_id, e)
    metadata = payments.parse_metadata(intent.get("metadata")) if intent else {}
    if intent and metadata.get("user_id") != str(user["_id"]):
        raise ForbiddenError("Unauthorized: payment intent does not belong to this user")

    if is_bnpl(method) or not intent:
        # the provider fee is charged upstream and never part of the order value
        total = subtotal
    else:
        total = cents_to_amount(intent.get("amount"))

    doc = {
        "user": user["_id"],
        "items": items,
        "total_amount": money(total),
        "shipping_fee": float(body.get("shipping_fee") or 0),
        "shipping_address": shipping,
        "payment_method": method,
        "payment_id": intent_id or "",
        "payment_status": _initial_payment_status(intent, body.get("payment_status")),
    }
    if body.get("billing_address"):
        doc["billing_address"] = body["billing_address"]
    order = _insert_order(db, doc)
    logger.info("Created order %s for user %s via %s: total %s (subtotal %s)",
                order["_id"], user["_id"], method, doc["total_amount"], subtotal)

    if order["payment_status"] == "paid":
        stock.deduct_order_stock(db, order)
    if intent_id and metadata:
        coupons.record_coupon_from_metadata(db, user["_id"], metadata, order["_id"])

    if item_ids:
        carts.remove_products(db, cart["_id"], [item["product"] for item in items])
    else:
        carts.clear(db, cart["_id"])
    return order


def create_from_intent(db: Database, user: Dict[str, Any], intent_id: Optional[str]):
    """Create the order for a confirmed payment intent.

    Returns ``(order, created)``; an order already recorded for the intent is
    returned unchanged.
    """
    if not intent_id:
        raise BadRequestError("Payment intent ID is required", code="payments.intent_required")
    existing = db.orders.find_one({"payment_id": intent_id})
    if existing:
        return existing, False

    intent = payments.retrieve_intent(payments.get_stripe(), intent_id, expand_charge=True)
    metadata = payments.parse_metadata(intent.get("metadata"))
    owner = metadata.get("user_id")
    shipping = metadata.get("shipping_address")
    if not owner or not shipping:
        raise BadRequestError("Payment intent metadata is incomplete", code="orders.intent_metadata_incomplete")
    if owner != str(user["_id"]):
        raise ForbiddenError("Unauthorized: payment intent does not belong to this user")

    order = build_order_from_intent(db, user["_id"], intent, metadata)
    logger.info("Created order %s from intent %s", order["_id"], intent_id)
    return order, True


def build_order_from_intent(db: Database, user_id: ObjectId, intent: Dict[str, Any],
                            metadata: Dict[str, Any], status: str = "pending") -> Dict[str, Any]:
    cart = carts.load_cart(db, user_id)
    lines = select_cart_lines(cart, metadata.get("item_ids"))
    items = build_order_items(lines)
    if not items:
        raise BadRequestError("No matching items found in cart", code="orders.no_matching_items")

    method = payments.detect_payment_method(intent)
    charged = cents_to_amount(intent.get("amount"))
    total = reconcile_total(method, charged)
    shipping = metadata["shipping_address"]
    logger.info("Intent %s charged %s via %s, storing total %s", intent.get("id"), charged, method, total)

    doc = {
        "user": user_id,
        "items": items,
        "total_amount": money(total),
        "shipping_fee": metadata.get("shipping_fee") or 0.0,
        "shipping_address": shipping,
        "payment_method": method,
        "payment_id": intent.get("id"),
        "payment_status": "paid" if intent.get("status") == "succeeded" else "pending",
        "status": status,
    }
    billing = metadata.get("billing_address") or payments.billing_from_charge(intent, shipping)
    if billing:
        doc["billing_address"] = billing
    order = _insert_order(db, doc)

    if order["payment_status"] == "paid":
        stock.deduct_order_stock(db, order)
    coupons.record_coupon_from_metadata(db, user_id, metadata, order["_id"])
    coupons.record_verification_discount(db, user_id, metadata, order["_id"])
    carts.remove_products(db, cart["_id"], [item["product"] for item in items])
    return order


def mark_intent_succeeded(db: Database, intent: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Webhook path: mark the intent's order paid, or create it from the metadata."""
    order = db.orders.find_one({"payment_id": intent.get("id")})
    if order:
        update = {"payment_status": "paid", "updated_at": utcnow()}
        if order.get("status") == "pending":
            update["status"] = "processing"
        db.orders.update_one({"_id": order["_id"]}, {"$set": update})
        order.update(update)
        if order.get("status") != "cancelled":
            stock.deduct_order_stock(db, order)
        logger.info("Order %s marked paid from webhook", order["_id"])
        return order

    metadata = payments.parse_metadata(intent.get("metadata"))
    owner = metadata.get("user_id")
    if not owner or not metadata.get("shipping_address"):
        logger.warning("Intent %s succeeded without order metadata", intent.get("id"))
        return None
    try:
        return build_order_from_intent(db, to_object_id(owner, "user ID"), intent, metadata, status="processing")
    except BadRequestError as e:
        logger.warning("Could not create order for intent %s: %s", intent.get("id"), e.message)
        return None


def mark_intent_failed(db: Database, intent_id: str) -> bool:
    res = db.orders.update_one({"payment_id": intent_id},
                               {"$set": {"payment_status": "failed", "updated_at": utcnow()}})
    return res.modified_count > 0


def mark_refunded(db: Database, intent_id: str) -> bool:
    order = db.orders.find_one({"payment_id": intent_id})
    if not order:
        return False
    db.orders.update_one({"_id": order["_id"]}, {"$set": {"payment_status": "refunded", "updated_at": utcnow()}})
    stock.restore_order_stock(db, order)
    return True


def sync_payment_status(db: Database, intent: Dict[str, Any], user_id: ObjectId,
                        order_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Bring the user's order in line with the intent (succeeded -> paid, canceled -> failed)."""
    if order_id:
        order = db.orders.find_one({"_id": to_object_id(order_id, "order ID"), "user": user_id})
        if not order:
            raise NotFoundError("Order not found")
    else:
        order = db.orders.find_one({"payment_id": intent.get("id"), "user": user_id})
        if not order:
            return None

    status = intent.get("status")
    update: Dict[str, Any] = {}
    if status == "succeeded":
        update = {"payment_status": "paid", "payment_id": intent.get("id")}
    elif status == "canceled":
        update = {"payment_status": "failed"}
    if update:
        update["updated_at"] = utcnow()
        db.orders.update_one({"_id": order["_id"]}, {"$set": update})
        order.update(update)
        if order["payment_status"] == "paid" and order.get("status") != "cancelled":
            stock.deduct_order_stock(db, order)
    return order


def update_status(db: Database, order_id: str, admin: Dict[str, Any], status: Optional[str],
                  payment_status: Optional[str], note: Optional[str]) -> Dict[str, Any]:
    """Admin status change with a mandatory note and a history record.

    Reopening a cancelled order whose stock was already returned clears both
    stock flags, so a paid reopened order takes its stock again.
    """
    oid = to_object_id(order_id, "order ID")
    if status and status not in ORDER_STATUSES:
        raise BadRequestError("Invalid order status", code="orders.invalid_status")
    if payment_status and payment_status not in PAYMENT_STATUSES:
        raise BadRequestError("Invalid payment status", code="orders.invalid_payment_status")
    if not status and not payment_status:
        raise BadRequestError("No valid fields to update", code="orders.nothing_to_update")
    note = (note or "").strip()
    if not note:
        raise BadRequestError("A note is required when changing an order", code="orders.note_required")

    order = db.orders.find_one({"_id": oid})
    if not order:
        raise NotFoundError("Order not found")

    changes = []
    update: Dict[str, Any] = {}
    if status and status != order.get("status"):
        changes.append({"field": "status", "from": order.get("status"), "to": status})
        update["status"] = status
    if payment_status and payment_status != order.get("payment_status"):
        changes.append({"field": "payment_status", "from": order.get("payment_status"), "to": payment_status})
        update["payment_status"] = payment_status
    reopened = order.get("status") == "cancelled" and update.get("status") not in (None, "cancelled")
    if reopened and order.get("stock_restored"):
        update.update({"stock_deducted": False, "stock_restored": False})

    if changes:
        entry = {
            "modified_by": admin["_id"],
            "modified_by_name": display_name(admin),
            "changes": changes,
            "note": note,
            "changed_at": utcnow(),
        }
        update["updated_at"] = entry["changed_at"]
        db.orders.update_one({"_id": oid}, {"$set": update, "$push": {"history": entry}})
        order.update(update)
        order.setdefault("history", []).append(entry)
        logger.info("Order %s updated by %s: %s", oid, admin["_id"],
                    ", ".join(f"{c['field']} {c['from']} -> {c['to']}" for c in changes))

        if order.get("payment_status") == "paid" and order.get("status") != "cancelled":
            stock.deduct_order_stock(db, order)
        if order.get("status") == "cancelled" or order.get("payment_status") == "refunded":
            stock.restore_order_stock(db, order)
    return order


def display_name(user: Dict[str, Any]) -> str:
    name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
    return name or user.get("email", "")


def get_user_order(db: Database, user: Dict[str, Any], order_id: str) -> Dict[str, Any]:
    order = db.orders.find_one({"_id": to_object_id(order_id, "order ID")})
    if not order:
        raise NotFoundError("Order not found")
    if order.get("user") != user["_id"]:
        raise ForbiddenError("Unauthorized")
    return order


def discount_info(db: Database, order: Dict[str, Any]) -> Dict[str, Any]:
    info: Dict[str, Any] = {}
    used = db.used_coupons.find_one({"order_id": order["_id"]})
    if used:
        subtotal = items_total(order.get("items") or [])
        info["coupon"] = {
            "code": used["coupon_code"],
            "discount": used["discount"],
            "discount_type": used["discount_type"],
            "discount_amount": float(coupon_discount_amount(subtotal, used["discount"], used["discount_type"])),
        }
    verification = db.used_verification_discounts.find_one({"order_id": order["_id"]})
    if verification and verification.get("discount"):
        info["verification_discount"] = verification["discount"]
    return info


def present_order(order: Dict[str, Any], correct_total: bool = False) -> Dict[str, Any]:
    out = serialize(order)
    out["shipping_fee"] = order.get("shipping_fee") or 0
    if correct_total:
        fixed = corrected_total(order)
        if Decimal(str(fixed)) != Decimal(str(order.get("total_amount") or 0)):
            logger.info("Corrected total of order %s from %s to %s", order["_id"], order.get("total_amount"), fixed)
        out["total_amount"] = fixed
    return out
