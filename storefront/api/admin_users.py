import logging
import math
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pymongo import DESCENDING
from pymongo.database import Database

from storefront.api.deps import get_admin_user
from storefront.db.documents import serialize, to_object_id
from storefront.db.mongo import get_db
from storefront.models.schemas import AdminUserCreate
from storefront.services import accounts

logger = logging.getLogger(__name__)

router = APIRouter()

ROLES = ("admin", "customer")
# secrets never leave the users collection
HIDDEN_FIELDS = {
    "password": 0,
    "email_verification_code": 0,
    "email_verification_code_expires": 0,
    "phone_verification_code": 0,
    "phone_verification_code_expires": 0,
    "reset_password_code": 0,
    "reset_password_code_expires": 0,
    "password_reset_timestamps": 0,
}


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = None,
    search: Optional[str] = None,
    admin=Depends(get_admin_user),
    db: Database = Depends(get_db),
):
    query = {}
    if role:
        query["role"] = role
    if search:
        rx = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"first_name": rx}, {"last_name": rx}, {"email": rx}, {"contact_number": rx}]

    total = db.users.count_documents(query)
    users = db.users.find(query, HIDDEN_FIELDS).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "users": serialize(list(users)),
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(payload: AdminUserCreate, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    role = payload.role or "customer"
    if role not in ROLES:
        raise HTTPException(status_code=400, detail='Invalid role. Must be either "admin" or "customer"')
    user = accounts.create_user(db, payload, role=role)
    logger.info("User %s (%s) created by %s", user["_id"], role, admin["_id"])
    shown = {k: v for k, v in user.items() if k not in HIDDEN_FIELDS}
    return {"message": "User created successfully", "user": serialize(shown)}


@router.delete("/{user_id}")
def delete_user(user_id: str, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    oid = to_object_id(user_id, "user ID")
    if oid == admin["_id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    user = db.users.find_one({"_id": oid}, {"email": 1})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    # orders keep their reference and show up as "Deleted User" in the admin lists
    order_count = db.orders.count_documents({"user": oid})
    db.users.delete_one({"_id": oid})
    logger.info("User %s deleted by %s (%d orders kept)", oid, admin["_id"], order_count)
    return {
        "message": "User deleted successfully",
        "deleted_user": {"_id": str(oid), "email": user.get("email"), "order_count": order_count},
    }
