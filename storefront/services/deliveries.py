"""Undelivered orders grouped by customer for the dispatch view."""

import re
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from storefront.db.documents import serialize
from storefront.services.orders_service import display_name
from storefront.services.pricing import coupon_discount_amount, items_total

OPEN_STATUSES = ["pending", "processing", "shipped"]
USER_FIELDS = {"first_name": 1, "last_name": 1, "email": 1, "contact_number": 1}


def deleted_customer_key(shipping: Dict[str, Any]) -> str:
    name = re.sub(r"\s+", "_", (shipping.get("full_name") or "unknown").lower())
    return f"deleted_{name}_{shipping.get('phone') or ''}"


def _discounts_by_order(db: Database, orders: List[Dict[str, Any]]) -> Dict[Any, Dict[str, Any]]:
    by_id = {o["_id"]: o for o in orders}
    extras: Dict[Any, Dict[str, Any]] = {}
    for used in db.used_coupons.find({"order_id": {"$in": list(by_id)}}):
        order = by_id[used["order_id"]]
        subtotal = items_total(order.get("items") or [])
        extras.setdefault(used["order_id"], {})["coupon"] = {
            "code": used["coupon_code"],
            "discount": used["discount"],
            "discount_type": used["discount_type"],
            "discount_amount": float(coupon_discount_amount(subtotal, used["discount"], used["discount_type"])),
        }
    for used in db.used_verification_discounts.find({"order_id": {"$in": list(by_id)}}):
        if used.get("discount"):
            extras.setdefault(used["order_id"], {})["verification_discount"] = used["discount"]
    return extras


def grouped_deliveries(db: Database, status: Optional[str] = None) -> Dict[str, Any]:
    query = {"status": status if status else {"$in": OPEN_STATUSES}}
    orders = list(db.orders.find(query).sort([
        ("shipping_address.city", ASCENDING),
        ("shipping_address.address", ASCENDING),
        ("created_at", DESCENDING),
    ]))
    user_ids = list({o["user"] for o in orders if o.get("user")})
    users = {u["_id"]: u for u in db.users.find({"_id": {"$in": user_ids}}, USER_FIELDS)} if user_ids else {}
    extras = _discounts_by_order(db, orders)

    groups: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        shipping = order.get("shipping_address") or {}
        customer = users.get(order.get("user"))
        key = str(customer["_id"]) if customer else deleted_customer_key(shipping)
        group = groups.get(key)
        if group is None:
            name = display_name(customer) if customer else ""
            name = name or shipping.get("full_name") or "Unknown Customer"
            group = groups[key] = {
                "customer_id": key,
                "customer_name": name if customer else f"{name} (Deleted User)",
                "customer_email": (customer or {}).get("email") or shipping.get("phone") or "N/A",
                "shipping_address": shipping,
                "orders": [],
                "is_deleted_user": customer is None,
            }
        entry = serialize(order)
        entry["user"] = serialize(customer) if customer else None
        entry.update(extras.get(order["_id"], {}))
        group["orders"].append(entry)

    deliveries = []
    for group in groups.values():
        group_orders = group["orders"]
        group["total_orders"] = len(group_orders)
        group["pending_orders"] = sum(1 for o in group_orders if o.get("status") in ("pending", "processing"))
        group["shipped_orders"] = sum(1 for o in group_orders if o.get("status") == "shipped")
        group["total_amount"] = round(sum(o.get("total_amount") or 0 for o in group_orders), 2)
        deliveries.append(group)
    deliveries.sort(key=lambda d: d["customer_name"].lower())
    return {"deliveries": deliveries, "total": len(deliveries), "total_orders": len(orders)}
