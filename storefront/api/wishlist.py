from fastapi import APIRouter, Depends, HTTPException, status
from pymongo import ReturnDocument
from pymongo.database import Database

from storefront.api.deps import get_current_user
from storefront.db.documents import serialize, to_object_id, utcnow
from storefront.db.mongo import get_db
from storefront.models.schemas import ProductRef

router = APIRouter()

WISHLIST_FIELDS = {"name": 1, "description": 1, "price": 1, "images": 1, "cover_image": 1, "stock": 1,
                   "rating": 1, "num_reviews": 1, "category": 1, "attributes": 1}


def _wishlist_out(db: Database, wishlist: dict) -> dict:
    ids = wishlist.get("products") or []
    found = {p["_id"]: p for p in db.products.find({"_id": {"$in": ids}}, WISHLIST_FIELDS)} if ids else {}
    out = serialize(wishlist)
    # deleted products drop out of the listing
    out["products"] = [serialize(found[pid]) for pid in ids if pid in found]
    return out


@router.get("")
def get_wishlist(user=Depends(get_current_user), db: Database = Depends(get_db)):
    now = utcnow()
    wishlist = db.wishlists.find_one_and_update(
        {"user": user["_id"]},
        {"$setOnInsert": {"user": user["_id"], "products": [], "created_at": now, "updated_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return _wishlist_out(db, wishlist)


def _add(db: Database, user, product_id):
    if not product_id:
        raise HTTPException(status_code=400, detail="Product ID is required")
    pid = to_object_id(product_id, "product ID")
    if not db.products.find_one({"_id": pid}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Product not found")
    wishlist = db.wishlists.find_one({"user": user["_id"]})
    if wishlist and pid in (wishlist.get("products") or []):
        raise HTTPException(status_code=400, detail="Product already in wishlist")
    now = utcnow()
    wishlist = db.wishlists.find_one_and_update(
        {"user": user["_id"]},
        {"$push": {"products": pid}, "$set": {"updated_at": now},
         "$setOnInsert": {"user": user["_id"], "created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return _wishlist_out(db, wishlist)


def _remove(db: Database, user, product_id):
    if not product_id:
        raise HTTPException(status_code=400, detail="Product ID is required")
    pid = to_object_id(product_id, "product ID")
    wishlist = db.wishlists.find_one({"user": user["_id"]})
    if not wishlist:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    if pid not in (wishlist.get("products") or []):
        raise HTTPException(status_code=404, detail="Product not found in wishlist")
    wishlist = db.wishlists.find_one_and_update(
        {"_id": wishlist["_id"]},
        {"$pull": {"products": pid}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return _wishlist_out(db, wishlist)


@router.post("", status_code=status.HTTP_201_CREATED)
def add_to_wishlist(payload: ProductRef, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return _add(db, user, payload.product_id)


@router.post("/{product_id}", status_code=status.HTTP_201_CREATED)
def add_to_wishlist_by_id(product_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return _add(db, user, product_id)


@router.delete("")
def remove_from_wishlist(payload: ProductRef, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return _remove(db, user, payload.product_id)


@router.delete("/{product_id}")
def remove_from_wishlist_by_id(product_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return _remove(db, user, product_id)
