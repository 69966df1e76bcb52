from fastapi import APIRouter, Depends
from pymongo.database import Database

from storefront.api.deps import get_current_user
from storefront.db.mongo import get_db
from storefront.services.coupons import verification_eligibility

router = APIRouter()


@router.get("/eligibility")
def eligibility(user=Depends(get_current_user), db: Database = Depends(get_db)):
    return verification_eligibility(db, user)
