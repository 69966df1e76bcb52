import math
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from storefront.db.documents import is_object_id, serialize, to_object_id, utcnow
from storefront.db.mongo import get_db
from storefront.services.variants import VARIANT_FIELDS, group_products_by_name

router = APIRouter()

SORT_FIELDS = {"created_at", "price", "name", "views", "rating", "stock"}


def _icontains(text: str):
    return {"$regex": re.escape(text), "$options": "i"}


def _category_name_map(db: Database, products):
    ids = {p.get("category") for p in products if is_object_id(p.get("category"))}
    if not ids:
        return {}
    cats = db.categories.find({"_id": {"$in": [to_object_id(i) for i in ids]}}, {"name": 1})
    return {str(c["_id"]): c["name"] for c in cats}


@router.get("")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    featured: Optional[bool] = None,
    is_flash_sale: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Database = Depends(get_db),
):
    query = {}
    category = (category or "").strip()
    if category:
        if is_object_id(category):
            query["category"] = category
        else:
            cat = db.categories.find_one({"name": {"$regex": f"^{re.escape(category)}$", "$options": "i"}}, {"_id": 1})
            if not cat:
                return {"products": [], "total": 0, "total_unique_names": 0, "page": 1, "limit": limit, "total_pages": 0}
            query["category"] = str(cat["_id"])
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if featured:
        query["featured"] = True
    if is_flash_sale:
        query["is_flash_sale"] = True
    if search:
        query["$or"] = [{"name": _icontains(search)}, {"description": _icontains(search)}]
    # customers only see what can be bought
    query["stock"] = {"$gt": 0}

    direction = ASCENDING if sort_order == "asc" else DESCENDING
    sort_field = sort_by if sort_by in SORT_FIELDS else "created_at"
    sort = [(sort_field, direction)]
    if sort_field == "views":
        sort.append(("created_at", direction))

    total = db.products.count_documents(query)
    unique_names = len(list(db.products.aggregate([{"$match": query}, {"$group": {"_id": "$name"}}])))
    products = list(db.products.find(query).sort(sort).skip((page - 1) * limit).limit(limit))
    names = _category_name_map(db, products)
    for p in products:
        p["category"] = names.get(p.get("category"), p.get("category"))
    return {
        "products": serialize(products),
        "total": total,
        "total_unique_names": unique_names,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


@router.get("/search")
def search_products(q: str = "", limit: int = Query(10, ge=1, le=50), db: Database = Depends(get_db)):
    if not q:
        return {"products": []}
    query = {
        "$or": [{"name": _icontains(q)}, {"description": _icontains(q)}, {"category": _icontains(q)}],
        "stock": {"$gt": 0},
    }
    fields = {"name": 1, "price": 1, "images": 1, "cover_image": 1, "category": 1}
    return {"products": serialize(list(db.products.find(query, fields).limit(limit)))}


@router.get("/grouped")
def grouped_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    query = {"stock": {"$gt": 0}}
    if category:
        query["category"] = category
    groups = group_products_by_name(db.products.find(query).sort("name", ASCENDING))
    return {"products": groups, "total": len(groups)}


@router.get("/categories")
def list_categories(db: Database = Depends(get_db)):
    return {"categories": serialize(list(db.categories.find({}).sort("name", ASCENDING)))}


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    oid = to_object_id(product_id, "product ID")
    product = db.products.find_one({"_id": oid})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    variants = list(db.products.find({"name": product["name"]}, VARIANT_FIELDS))
    category_id = product.get("category") or ""
    category_name = category_id
    category_attributes = []
    if is_object_id(category_id):
        cat = db.categories.find_one({"_id": to_object_id(category_id)}, {"name": 1, "attributes": 1})
        if cat:
            category_name = cat["name"]
            category_attributes = cat.get("attributes") or []
    db.products.update_one({"_id": oid}, {"$inc": {"views": 1}, "$set": {"last_viewed": utcnow()}})

    out = serialize(product)
    out.update({
        "category": category_name,
        "category_id": str(category_id),
        "category_attributes": category_attributes,
        "variants": [{
            "id": str(v["_id"]),
            "attributes": v.get("attributes") or {},
            "stock": v.get("stock", 0),
            "price": v.get("price", 0),
            "images": v.get("images") or [],
            "cover_image": v.get("cover_image") or "",
        } for v in variants],
    })
    return out


@router.post("/{product_id}/view")
def record_view(product_id: str, db: Database = Depends(get_db)):
    if len(product_id) != 24:
        raise HTTPException(status_code=400, detail="Invalid product ID")
    product = db.products.find_one_and_update(
        {"_id": to_object_id(product_id, "product ID")},
        {"$inc": {"views": 1}, "$set": {"last_viewed": utcnow()}},
        projection={"views": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "views": product.get("views", 0)}


@router.get("/{product_id}/availability")
def availability(product_id: str, db: Database = Depends(get_db)):
    oid = to_object_id(product_id, "product ID")
    product = db.products.find_one({"_id": oid}, {"stock": 1})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    ordered = 0
    paid = db.orders.find({"items.product": oid, "payment_status": "paid", "status": {"$ne": "cancelled"}},
                          {"items": 1})
    for order in paid:
        ordered += sum(i.get("quantity", 0) for i in order.get("items") or [] if i.get("product") == oid)
    total_stock = product.get("stock", 0)
    available = max(0, total_stock - ordered)
    return {
        "product_id": product_id,
        "total_stock": total_stock,
        "ordered_quantity": ordered,
        "available_stock": available,
        "is_out_of_stock": available == 0,
    }
