from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from storefront.api.deps import get_current_user
from storefront.db.documents import serialize, to_object_id
from storefront.db.mongo import get_db
from storefront.models.schemas import CouponUseIn, CouponValidateIn
from storefront.services import coupons

router = APIRouter()


@router.post("/validate")
def validate_coupon(payload: CouponValidateIn, user=Depends(get_current_user), db: Database = Depends(get_db)):
    coupon = coupons.validate_coupon(db, user["_id"], payload.coupon_code)
    return {"valid": True, "coupon": coupon}


@router.post("/use")
def use_coupon(payload: CouponUseIn, user=Depends(get_current_user), db: Database = Depends(get_db)):
    if not payload.coupon_code or not payload.discount or not payload.discount_type:
        raise HTTPException(status_code=400, detail="Missing required fields")
    order_id = to_object_id(payload.order_id, "order ID") if payload.order_id else None
    used = coupons.redeem_coupon(db, user["_id"], payload.coupon_code, payload.discount,
                                 payload.discount_type, order_id)
    return {
        "success": True,
        "used_coupon": serialize({
            "id": used["_id"],
            "coupon_code": used["coupon_code"],
            "discount": used["discount"],
            "discount_type": used["discount_type"],
            "used_at": used["used_at"],
        }),
    }
