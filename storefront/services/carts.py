import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from storefront.core.errors import BadRequestError, NotFoundError
from storefront.db.documents import ref_id, to_object_id, utcnow
from storefront.services.variants import resolve_variant_id

logger = logging.getLogger(__name__)


def get_or_create_cart(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    now = utcnow()
    return db.carts.find_one_and_update(
        {"user": user_id},
        {"$setOnInsert": {"user": user_id, "items": [], "created_at": now, "updated_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def populate_items(db: Database, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Attach product documents to cart lines; lines whose product is gone get product None."""
    ids = [item["product"] for item in items if isinstance(item.get("product"), ObjectId)]
    products = {p["_id"]: p for p in db.products.find({"_id": {"$in": ids}})} if ids else {}
    populated = []
    for item in items:
        line = dict(item)
        line["product"] = products.get(item.get("product"))
        populated.append(line)
    return populated


def load_cart(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    """The user's cart with products populated, pruning lines for deleted products."""
    cart = get_or_create_cart(db, user_id)
    items = populate_items(db, cart.get("items") or [])
    alive = [line for line in items if line["product"] is not None]
    if len(alive) != len(items):
        kept = [line["product"]["_id"] for line in alive]
        db.carts.update_one(
            {"_id": cart["_id"]},
            {"$pull": {"items": {"product": {"$nin": kept}}}, "$set": {"updated_at": utcnow()}},
        )
        logger.info("Pruned %d deleted products from cart %s", len(items) - len(alive), cart["_id"])
    cart["items"] = alive
    return cart


def _find_line(cart: Dict[str, Any], product_id: ObjectId) -> Optional[Dict[str, Any]]:
    for line in cart.get("items") or []:
        if ref_id(line.get("product")) == str(product_id):
            return line
    return None


def add_item(db: Database, user_id: ObjectId, product_id: Optional[str], quantity: Optional[int],
             selected_attributes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if not product_id or quantity is None or quantity < 1:
        raise BadRequestError("Product ID and valid quantity are required", code="cart.invalid_item")
    product = db.products.find_one({"_id": to_object_id(product_id, "product ID")})
    if not product:
        raise NotFoundError("Product not found")

    variant_id = resolve_variant_id(db, product, selected_attributes)
    if variant_id != product["_id"]:
        product = db.products.find_one({"_id": variant_id}) or product

    if product.get("stock", 0) < quantity:
        raise BadRequestError("Insufficient stock available", code="cart.insufficient_stock")

    cart = get_or_create_cart(db, user_id)
    line = _find_line(cart, product["_id"])
    if line is not None:
        merged = line["quantity"] + quantity
        if product.get("stock", 0) < merged:
            raise BadRequestError("Insufficient stock available", code="cart.insufficient_stock")
        update = {"items.$.quantity": merged, "updated_at": utcnow()}
        if selected_attributes:
            update["items.$.selected_attributes"] = selected_attributes
        db.carts.update_one({"_id": cart["_id"], "items.product": product["_id"]}, {"$set": update})
    else:
        new_line = {"product": product["_id"], "quantity": quantity}
        if selected_attributes:
            new_line["selected_attributes"] = selected_attributes
        db.carts.update_one(
            {"_id": cart["_id"]},
            {"$push": {"items": new_line}, "$set": {"updated_at": utcnow()}},
        )
    return load_cart(db, user_id)


def set_quantity(db: Database, user_id: ObjectId, product_id: Optional[str], quantity: Optional[int]) -> Dict[str, Any]:
    if not product_id or quantity is None:
        raise BadRequestError("Product ID and quantity are required", code="cart.invalid_item")
    if quantity < 0:
        raise BadRequestError("Quantity cannot be negative", code="cart.negative_quantity")
    pid = to_object_id(product_id, "product ID")

    cart = db.carts.find_one({"user": user_id})
    if not cart:
        raise NotFoundError("Cart not found")
    if _find_line(cart, pid) is None:
        raise NotFoundError("Item not found in cart")

    if quantity == 0:
        return remove_item(db, user_id, product_id)

    product = db.products.find_one({"_id": pid}, {"stock": 1})
    if not product:
        raise NotFoundError("Product not found")
    if product.get("stock", 0) < quantity:
        raise BadRequestError("Insufficient stock available", code="cart.insufficient_stock")
    db.carts.update_one(
        {"_id": cart["_id"], "items.product": pid},
        {"$set": {"items.$.quantity": quantity, "updated_at": utcnow()}},
    )
    return load_cart(db, user_id)


def remove_item(db: Database, user_id: ObjectId, product_id: Optional[str]) -> Dict[str, Any]:
    if not product_id:
        raise BadRequestError("Product ID is required", code="cart.invalid_item")
    pid = to_object_id(product_id, "product ID")
    cart = db.carts.find_one({"user": user_id})
    if not cart:
        raise NotFoundError("Cart not found")
    db.carts.update_one({"_id": cart["_id"]}, {"$pull": {"items": {"product": pid}}, "$set": {"updated_at": utcnow()}})
    return load_cart(db, user_id)


def remove_products(db: Database, cart_id: ObjectId, product_ids: List[ObjectId]) -> None:
    db.carts.update_one(
        {"_id": cart_id},
        {"$pull": {"items": {"product": {"$in": product_ids}}}, "$set": {"updated_at": utcnow()}},
    )


def clear(db: Database, cart_id: ObjectId) -> None:
    db.carts.update_one({"_id": cart_id}, {"$set": {"items": [], "updated_at": utcnow()}})
