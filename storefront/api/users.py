from fastapi import APIRouter, Depends, HTTPException, status
from pymongo.database import Database

from storefront.api.auth import user_out
from storefront.api.deps import get_current_user
from storefront.db.documents import serialize, to_object_id, utcnow
from storefront.db.mongo import get_db
from storefront.models.schemas import AddressIn, AddressUpdate, ProfileUpdate, UserOut

router = APIRouter()


@router.get("/profile", response_model=UserOut)
def get_profile(user=Depends(get_current_user)):
    return user_out(user)


@router.put("/profile", response_model=UserOut)
def update_profile(payload: ProfileUpdate, user=Depends(get_current_user), db: Database = Depends(get_db)):
    changes = payload.model_dump(exclude_none=True)
    if changes:
        changes["updated_at"] = utcnow()
        db.users.update_one({"_id": user["_id"]}, {"$set": changes})
        user.update(changes)
    return user_out(user)


# --- Addresses ---

def _clear_default(db: Database, user_id, keep=None):
    query = {"user": user_id, "is_default": True}
    if keep is not None:
        query["_id"] = {"$ne": keep}
    db.addresses.update_many(query, {"$set": {"is_default": False}})


@router.get("/addresses")
def list_addresses(user=Depends(get_current_user), db: Database = Depends(get_db)):
    cursor = db.addresses.find({"user": user["_id"]}).sort([("is_default", -1), ("created_at", -1)])
    return {"addresses": serialize(list(cursor))}


@router.post("/addresses", status_code=status.HTTP_201_CREATED)
def add_address(payload: AddressIn, user=Depends(get_current_user), db: Database = Depends(get_db)):
    now = utcnow()
    doc = {**payload.model_dump(), "user": user["_id"], "created_at": now, "updated_at": now}
    if doc["is_default"]:
        _clear_default(db, user["_id"])
    elif not db.addresses.find_one({"user": user["_id"]}):
        # first saved address becomes the default
        doc["is_default"] = True
    doc["_id"] = db.addresses.insert_one(doc).inserted_id
    return {"address": serialize(doc)}


def _own_address(db: Database, user, address_id: str):
    address = db.addresses.find_one({"_id": to_object_id(address_id, "address ID"), "user": user["_id"]})
    if not address:
        raise HTTPException(status_code=404, detail="Address not found")
    return address


@router.put("/addresses/{address_id}")
def update_address(address_id: str, payload: AddressUpdate, user=Depends(get_current_user),
                   db: Database = Depends(get_db)):
    address = _own_address(db, user, address_id)
    changes = payload.model_dump(exclude_none=True)
    if changes.get("is_default"):
        _clear_default(db, user["_id"], keep=address["_id"])
    changes["updated_at"] = utcnow()
    db.addresses.update_one({"_id": address["_id"]}, {"$set": changes})
    address.update(changes)
    return {"address": serialize(address)}


@router.delete("/addresses/{address_id}")
def delete_address(address_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    address = _own_address(db, user, address_id)
    db.addresses.delete_one({"_id": address["_id"]})
    return {"message": "Address deleted successfully"}
