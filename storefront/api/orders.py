from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pymongo import DESCENDING
from pymongo.database import Database

from storefront.api.deps import get_current_user
from storefront.db.mongo import get_db
from storefront.models.schemas import IntentRef, OrderCreate
from storefront.services import orders_service

router = APIRouter()

NO_CACHE = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("")
def list_orders(response: Response, status: Optional[str] = None, user=Depends(get_current_user),
                db: Database = Depends(get_db)):
    query = {"user": user["_id"]}
    if status:
        query["status"] = status
    orders = db.orders.find(query).sort("created_at", DESCENDING)
    response.headers.update(NO_CACHE)
    return {"orders": [orders_service.present_order(o, correct_total=True) for o in orders]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderCreate, user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = orders_service.create_order(db, user, payload.model_dump())
    return orders_service.present_order(order)


@router.post("/create-from-intent", status_code=status.HTTP_201_CREATED)
def create_from_intent(payload: IntentRef, response: Response, user=Depends(get_current_user),
                       db: Database = Depends(get_db)):
    order, created = orders_service.create_from_intent(db, user, payload.payment_intent_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return orders_service.present_order(order)


@router.get("/{order_id}")
def get_order(order_id: str, response: Response, user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = orders_service.get_user_order(db, user, order_id)
    out = orders_service.present_order(order)
    out.update(orders_service.discount_info(db, order))
    response.headers.update(NO_CACHE)
    return {"order": out}
