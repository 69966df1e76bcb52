from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from storefront.api.deps import get_current_user
from storefront.db.documents import serialize
from storefront.db.mongo import get_db
from storefront.models.schemas import CartItemIn, CartQuantityIn, ProductRef
from storefront.services import carts

router = APIRouter()


def cart_out(cart: dict) -> dict:
    return serialize(cart)


@router.get("")
def get_cart(user=Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_out(carts.load_cart(db, user["_id"]))


@router.post("", status_code=status.HTTP_201_CREATED)
def add_to_cart(item: CartItemIn, user=Depends(get_current_user), db: Database = Depends(get_db)):
    cart = carts.add_item(db, user["_id"], item.product_id, item.quantity, item.selected_attributes)
    return cart_out(cart)


@router.put("")
def update_cart_item(item: CartItemIn, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_out(carts.set_quantity(db, user["_id"], item.product_id, item.quantity))


@router.delete("")
def remove_cart_item(payload: ProductRef, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_out(carts.remove_item(db, user["_id"], payload.product_id))


@router.put("/{product_id}")
def update_cart_item_by_id(product_id: str, payload: CartQuantityIn, user=Depends(get_current_user),
                           db: Database = Depends(get_db)):
    return cart_out(carts.set_quantity(db, user["_id"], product_id, payload.quantity))


@router.delete("/{product_id}")
def remove_cart_item_by_id(product_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_out(carts.remove_item(db, user["_id"], product_id))
