from fastapi import APIRouter, Depends
from pymongo.database import Database

from storefront.api.deps import get_current_user
from storefront.db.mongo import get_db
from storefront.services import analytics

router = APIRouter()


@router.get("/stats")
def my_stats(user=Depends(get_current_user), db: Database = Depends(get_db)):
    return analytics.customer_stats(db, user["_id"])
