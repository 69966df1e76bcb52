"""Inventory moves tied to the order lifecycle.

Stock leaves the shelf when an order is paid and comes back when a paid
order is cancelled or refunded. The `stock_deducted` / `stock_restored`
flags on the order make each move happen at most once.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId
from pymongo.database import Database

from storefront.db.documents import is_object_id, ref_id, utcnow

logger = logging.getLogger(__name__)


def _item_quantity(item: Dict[str, Any]) -> int:
    try:
        qty = int(item.get("quantity") or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, qty)


def _item_product_id(item: Dict[str, Any]) -> Optional[ObjectId]:
    pid = ref_id(item.get("product"))
    if not pid or not is_object_id(pid):
        return None
    return ObjectId(pid)


def _move_stock(db: Database, items: Iterable[Dict[str, Any]], sign: int) -> int:
    moved = 0
    for item in items or []:
        pid = _item_product_id(item)
        qty = _item_quantity(item)
        if pid is None or qty == 0:
            continue
        db.products.update_one({"_id": pid}, {"$inc": {"stock": sign * qty}})
        moved += 1
    return moved


def deduct_stock_for_items(db: Database, items: Iterable[Dict[str, Any]]) -> int:
    return _move_stock(db, items, -1)


def restore_stock_for_items(db: Database, items: Iterable[Dict[str, Any]]) -> int:
    return _move_stock(db, items, 1)


def deduct_order_stock(db: Database, order: Dict[str, Any]) -> bool:
    """Deduct stock for a paid order once. Returns True when stock moved."""
    if order.get("stock_deducted"):
        return False
    # claim the flag first so a concurrent webhook cannot deduct twice
    claimed = db.orders.update_one(
        {"_id": order["_id"], "stock_deducted": {"$ne": True}},
        {"$set": {"stock_deducted": True, "updated_at": utcnow()}},
    )
    if claimed.modified_count == 0:
        return False
    deduct_stock_for_items(db, order.get("items") or [])
    order["stock_deducted"] = True
    logger.info("Deducted stock for order %s", order["_id"])
    return True


def restore_order_stock(db: Database, order: Dict[str, Any]) -> bool:
    """Put stock back for a cancelled or refunded order, once, if it was taken."""
    if not order.get("stock_deducted") or order.get("stock_restored"):
        return False
    claimed = db.orders.update_one(
        {"_id": order["_id"], "stock_restored": {"$ne": True}},
        {"$set": {"stock_restored": True, "updated_at": utcnow()}},
    )
    if claimed.modified_count == 0:
        return False
    restore_stock_for_items(db, order.get("items") or [])
    order["stock_restored"] = True
    logger.info("Restored stock for order %s", order["_id"])
    return True
