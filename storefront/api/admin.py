import logging
import math
import re
from datetime import timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import DESCENDING
from pymongo.database import Database

from storefront.api.deps import get_admin_user
from storefront.db.documents import serialize, to_object_id
from storefront.db.mongo import get_db
from storefront.models.schemas import OrderStatusUpdate, SiteSettingsUpdate
from storefront.services import analytics, deliveries, orders_service, site_settings

logger = logging.getLogger(__name__)

router = APIRouter()

USER_FIELDS = {"first_name": 1, "last_name": 1, "email": 1, "contact_number": 1}
DELETED_USER = {"first_name": "Deleted", "last_name": "User", "email": "N/A"}


def _with_customer(order: dict, customer: Optional[dict]) -> dict:
    out = orders_service.present_order(order, correct_total=True)
    out["user"] = serialize(customer) if customer else {**DELETED_USER, "_id": None}
    return out


# --- Orders ---

@router.get("/orders")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    search: Optional[str] = None,
    admin=Depends(get_admin_user),
    db: Database = Depends(get_db),
):
    query = {}
    if status:
        query["status"] = status
    if payment_status:
        query["payment_status"] = payment_status
    if search:
        rx = {"$regex": re.escape(search), "$options": "i"}
        user_ids = [u["_id"] for u in db.users.find(
            {"$or": [{"first_name": rx}, {"last_name": rx}, {"email": rx}]}, {"_id": 1})]
        query["$or"] = [
            {"shipping_address.full_name": rx},
            {"shipping_address.address": rx},
            {"shipping_address.city": rx},
        ]
        if user_ids:
            query["$or"].append({"user": {"$in": user_ids}})

    total = db.orders.count_documents(query)
    orders = list(db.orders.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit))
    ids = list({o["user"] for o in orders if o.get("user")})
    users = {u["_id"]: u for u in db.users.find({"_id": {"$in": ids}}, USER_FIELDS)} if ids else {}
    return {
        "orders": [_with_customer(o, users.get(o.get("user"))) for o in orders],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


@router.get("/orders/{order_id}")
def get_order(order_id: str, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    order = db.orders.find_one({"_id": to_object_id(order_id, "order ID")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    customer = db.users.find_one({"_id": order.get("user")}, USER_FIELDS)
    out = _with_customer(order, customer)
    out.update(orders_service.discount_info(db, order))
    return {"order": out}


@router.put("/orders/{order_id}")
def update_order(order_id: str, payload: OrderStatusUpdate, admin=Depends(get_admin_user),
                 db: Database = Depends(get_db)):
    order = orders_service.update_status(db, order_id, admin, payload.status, payload.payment_status, payload.note)
    return {"message": "Order updated successfully", "order": orders_service.present_order(order)}


@router.get("/deliveries")
def list_deliveries(status: Optional[str] = None, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    return deliveries.grouped_deliveries(db, status)


@router.get("/dashboard/stats")
def dashboard_stats(admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    return analytics.dashboard_stats(db)


# --- Site settings ---

@router.get("/site-settings")
def get_site_settings(admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    return site_settings.admin_view(site_settings.get_settings(db))


@router.put("/site-settings")
def update_site_settings(payload: SiteSettingsUpdate, admin=Depends(get_admin_user),
                         db: Database = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True)
    ends_at = changes.get("maintenance_ends_at")
    if ends_at is not None and ends_at.tzinfo is not None:
        changes["maintenance_ends_at"] = ends_at.astimezone(timezone.utc).replace(tzinfo=None)
    settings = site_settings.update_settings(db, changes)
    logger.info("Site settings updated by %s: %s", admin["_id"], sorted(changes))
    return {"message": "Settings updated successfully", "settings": site_settings.admin_view(settings)}
