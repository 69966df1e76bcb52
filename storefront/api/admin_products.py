import logging
import math
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from slugify import slugify

from storefront.api.deps import get_admin_user
from storefront.db.documents import is_object_id, serialize, to_object_id, utcnow
from storefront.db.mongo import get_db
from storefront.models.schemas import (
    BulkProductIds,
    BulkProductUpdate,
    CategoryIn,
    CategoryUpdate,
    ProductIn,
    ProductUpdate,
)
from storefront.services import analytics
from storefront.services.product_codes import next_product_code

logger = logging.getLogger(__name__)

router = APIRouter()

LOW_STOCK_LIMIT = 10


def _cover(images, cover: Optional[str]) -> str:
    if cover and cover in images:
        return cover
    return images[0] if images else ""


# --- Products ---

@router.get("/products")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_stock: Optional[int] = None,
    max_stock: Optional[int] = None,
    stock_status: Optional[str] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    admin=Depends(get_admin_user),
    db: Database = Depends(get_db),
):
    query = {}
    if category:
        query["category"] = category
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if stock_status == "out-of-stock":
        query["stock"] = 0
    elif stock_status == "in-stock":
        query["stock"] = {"$gt": 0}
    elif stock_status == "low-stock":
        query["stock"] = {"$gte": 0, "$lt": LOW_STOCK_LIMIT}
    elif min_stock is not None or max_stock is not None:
        query["stock"] = {}
        if min_stock is not None:
            query["stock"]["$gte"] = min_stock
        if max_stock is not None:
            query["stock"]["$lte"] = max_stock
    if featured:
        query["featured"] = True
    if search:
        rx = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": rx}, {"description": rx}]

    total = db.products.count_documents(query)
    products = db.products.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "products": serialize(list(products)),
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


@router.post("/products", status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductIn, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    if not payload.images:
        raise HTTPException(status_code=400, detail="Please provide at least one product image")
    now = utcnow()
    doc = payload.model_dump()
    doc.update({
        "cover_image": _cover(payload.images, payload.cover_image),
        "rating": 0,
        "num_reviews": 0,
        "views": 0,
        "is_flash_sale": False,
        "flash_sale_discount": 0,
        "flash_sale_discount_type": "percentage",
        "created_at": now,
        "updated_at": now,
    })
    if not doc.get("product_code"):
        doc.pop("product_code", None)
    try:
        doc["_id"] = db.products.insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Product code already in use")
    logger.info("Product %s created by %s", doc["_id"], admin["_id"])
    return {"message": "Product created successfully", "product": serialize(doc)}


@router.get("/products/most-viewed")
def most_viewed(limit: int = Query(50, ge=1, le=200), min_views: int = Query(0, ge=0),
                admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    products = analytics.most_viewed(db, limit=limit, min_views=min_views)
    return {"products": products, "total": len(products)}


def _bulk_ids(product_ids) -> list:
    if not product_ids:
        raise HTTPException(status_code=400, detail="Please provide at least one product ID")
    if not all(is_object_id(pid) for pid in product_ids):
        raise HTTPException(status_code=400, detail="Invalid product ID format")
    return [to_object_id(pid) for pid in product_ids]


@router.put("/products/bulk")
def bulk_update_products(payload: BulkProductUpdate, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    ids = _bulk_ids(payload.product_ids)
    if payload.updates is None:
        raise HTTPException(status_code=400, detail="Please provide at least one field to update")
    updates = payload.updates
    if updates.price is not None and updates.price < 0:
        raise HTTPException(status_code=400, detail="Invalid price value")
    if updates.stock is not None and updates.stock < 0:
        raise HTTPException(status_code=400, detail="Invalid stock value")
    changes = {k: v for k, v in updates.model_dump().items() if v is not None and v != ""}
    if not changes:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    changes["updated_at"] = utcnow()
    res = db.products.update_many({"_id": {"$in": ids}}, {"$set": changes})
    logger.info("Bulk update of %d product(s) by %s: %s", res.modified_count, admin["_id"], sorted(changes))
    return {
        "message": f"Successfully updated {res.modified_count} product(s)",
        "modified_count": res.modified_count,
        "products": serialize(list(db.products.find({"_id": {"$in": ids}}))),
    }


@router.delete("/products/bulk")
def bulk_delete_products(payload: BulkProductIds, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    ids = _bulk_ids(payload.product_ids)
    res = db.products.delete_many({"_id": {"$in": ids}})
    logger.info("Bulk delete of %d product(s) by %s", res.deleted_count, admin["_id"])
    return {"message": f"Successfully deleted {res.deleted_count} product(s)", "deleted_count": res.deleted_count}


@router.get("/products/{product_id}")
def get_product(product_id: str, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    product = db.products.find_one({"_id": to_object_id(product_id, "product ID")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"product": serialize(product)}


@router.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin=Depends(get_admin_user),
                   db: Database = Depends(get_db)):
    oid = to_object_id(product_id, "product ID")
    product = db.products.find_one({"_id": oid})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    sent = payload.model_fields_set
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items()
               if k not in ("product_code", "cover_image") and v is not None}

    if "product_code" in sent:
        code = (payload.product_code or "").strip()
        if code:
            changes["product_code"] = code
        elif not product.get("product_code"):
            changes["product_code"] = next_product_code(db, changes.get("category") or product.get("category", ""))

    images = changes.get("images", product.get("images") or [])
    if "cover_image" in sent:
        changes["cover_image"] = _cover(images, payload.cover_image)
    elif "images" in changes and product.get("cover_image") not in images:
        changes["cover_image"] = _cover(images, None)

    if changes.get("is_flash_sale") is False:
        changes["flash_sale_discount"] = 0
        changes["flash_sale_discount_type"] = "percentage"

    changes["updated_at"] = utcnow()
    try:
        db.products.update_one({"_id": oid}, {"$set": changes})
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Product code already in use")
    product.update(changes)
    return {"message": "Product updated successfully", "product": serialize(product)}


@router.delete("/products/{product_id}")
def delete_product(product_id: str, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    res = db.products.delete_one({"_id": to_object_id(product_id, "product ID")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Product %s deleted by %s", product_id, admin["_id"])
    return {"message": "Product deleted successfully"}


# --- Categories ---

@router.get("/categories")
def list_categories(admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    return {"categories": serialize(list(db.categories.find({}).sort("name", 1)))}


@router.post("/categories", status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryIn, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    name = payload.name.strip()
    slug = slugify(payload.slug or name)
    if db.categories.find_one({"$or": [{"name": name}, {"slug": slug}]}):
        raise HTTPException(status_code=400, detail="Category with this name already exists")
    now = utcnow()
    doc = {
        "name": name,
        "description": payload.description.strip(),
        "slug": slug,
        "attributes": [a.model_dump() for a in payload.attributes],
        "created_at": now,
        "updated_at": now,
    }
    try:
        doc["_id"] = db.categories.insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Category with this name already exists")
    return {"message": "Category created successfully", "category": serialize(doc)}


@router.put("/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, admin=Depends(get_admin_user),
                    db: Database = Depends(get_db)):
    oid = to_object_id(category_id, "category ID")
    category = db.categories.find_one({"_id": oid})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    changes = payload.model_dump(exclude_none=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        changes.setdefault("slug", changes["name"])
    if "slug" in changes:
        changes["slug"] = slugify(changes["slug"])
    clash = {k: changes[k] for k in ("name", "slug") if k in changes}
    if clash and db.categories.find_one({"_id": {"$ne": oid}, "$or": [{k: v} for k, v in clash.items()]}):
        raise HTTPException(status_code=400, detail="Category with this name already exists")
    changes["updated_at"] = utcnow()
    db.categories.update_one({"_id": oid}, {"$set": changes})
    category.update(changes)
    return {"message": "Category updated successfully", "category": serialize(category)}


@router.delete("/categories/{category_id}")
def delete_category(category_id: str, admin=Depends(get_admin_user), db: Database = Depends(get_db)):
    res = db.categories.delete_one({"_id": to_object_id(category_id, "category ID")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"message": "Category deleted successfully"}
