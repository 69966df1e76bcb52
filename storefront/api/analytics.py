from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from storefront.api.deps import get_admin_user
from storefront.db.mongo import get_db
from storefront.services import analytics

router = APIRouter()


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.get("/sales")
def sales(start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
          admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    return analytics.sales_analytics(db, _naive(start_date), _naive(end_date))


@router.get("/best-selling")
def best_selling(
    limit: int = Query(50, ge=1, le=200),
    min_quantity: int = Query(0, ge=0),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin=Depends(get_admin_user),
    db: Database = Depends(get_db),
):
    products = analytics.best_selling(db, limit=limit, min_quantity=min_quantity,
                                      start=_naive(start_date), end=_naive(end_date))
    return {"products": products, "total": len(products)}


@router.get("/worst-selling")
def worst_selling(
    limit: int = Query(50, ge=1, le=200),
    max_quantity: int = Query(10, ge=0),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin=Depends(get_admin_user),
    db: Database = Depends(get_db),
):
    products = analytics.worst_selling(db, limit=limit, max_quantity=max_quantity,
                                       start=_naive(start_date), end=_naive(end_date))
    return {"products": products, "total": len(products)}
