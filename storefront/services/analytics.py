"""Reporting over orders and products for the back office and the customer dashboard."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from storefront.db.documents import serialize, utcnow
from storefront.services.orders_service import display_name
from storefront.services.pricing import corrected_total

LOW_STOCK_THRESHOLD = 10
FULFILLED_STATUSES = ["processing", "shipped", "delivered"]


def category_names(db: Database) -> Dict[str, str]:
    """Map both category ids and names to the display name."""
    names = {}
    for cat in db.categories.find({}, {"name": 1}):
        names[str(cat["_id"])] = cat["name"]
        names[cat["name"]] = cat["name"]
    return names


def category_label(names: Dict[str, str], category: Any) -> str:
    if category is None:
        return "Unknown"
    return names.get(str(category), str(category))


def date_filter(start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    if not start and not end:
        return {}
    created: Dict[str, Any] = {}
    if start:
        created["$gte"] = start
    if end:
        created["$lte"] = end
    return {"created_at": created}


def _line_revenue():
    return {"$sum": {"$multiply": ["$items.quantity", "$items.price"]}}


def dashboard_stats(db: Database) -> Dict[str, Any]:
    products = list(db.products.find({}, {"name": 1, "stock": 1, "featured": 1}))
    orders = list(db.orders.find({}, {"status": 1, "payment_status": 1, "total_amount": 1, "items.quantity": 1}))
    roles = [u.get("role") for u in db.users.find({}, {"role": 1})]

    def revenue(pred):
        return round(sum(o.get("total_amount", 0) for o in orders if pred(o)), 2)

    def count_status(status):
        return sum(1 for o in orders if o.get("status") == status)

    low_stock = [p for p in products if 0 < p.get("stock", 0) < LOW_STOCK_THRESHOLD]
    total_orders = len(orders)
    stats = {
        "total_products": len(products),
        "out_of_stock_products": sum(1 for p in products if p.get("stock", 0) == 0),
        "low_stock_products": len(low_stock),
        "in_stock_products": sum(1 for p in products if p.get("stock", 0) > 0),
        "featured_products": sum(1 for p in products if p.get("featured")),
        "total_orders": total_orders,
        "pending_orders": count_status("pending"),
        "processing_orders": count_status("processing"),
        "shipped_orders": count_status("shipped"),
        "delivered_orders": count_status("delivered"),
        "cancelled_orders": count_status("cancelled"),
        "total_revenue": revenue(lambda o: o.get("payment_status") == "paid" and o.get("status") != "cancelled"),
        "delivered_revenue": revenue(lambda o: o.get("payment_status") == "paid" and o.get("status") == "delivered"),
        "pending_revenue": revenue(lambda o: o.get("payment_status") == "paid"
                                   and o.get("status") not in ("delivered", "cancelled")),
        "total_users": len(roles),
        "admin_users": roles.count("admin"),
        "customer_users": roles.count("customer"),
        "average_order_value": round(sum(o.get("total_amount", 0) for o in orders) / total_orders, 2) if total_orders else 0,
        "total_items_sold": sum(i.get("quantity", 0) for o in orders for i in o.get("items") or []),
    }

    recent = []
    for order in db.orders.find({}).sort("created_at", DESCENDING).limit(5):
        customer = db.users.find_one({"_id": order.get("user")}, {"first_name": 1, "last_name": 1, "email": 1}) or {}
        recent.append({
            "id": str(order["_id"]),
            "total_amount": order.get("total_amount", 0),
            "status": order.get("status"),
            "payment_status": order.get("payment_status"),
            "created_at": serialize(order.get("created_at")),
            "items_count": len(order.get("items") or []),
            "customer_name": display_name(customer) if customer else "N/A",
            "customer_email": customer.get("email", "N/A"),
        })
    return {
        "stats": stats,
        "recent_orders": recent,
        "low_stock_products": [{"id": str(p["_id"]), "name": p.get("name"), "stock": p.get("stock", 0)}
                               for p in low_stock[:5]],
    }


def customer_stats(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    """Order counts and spend for one customer's dashboard."""
    orders = list(db.orders.find({"user": user_id}).sort("created_at", DESCENDING))
    for order in orders:
        order["total_amount"] = corrected_total(order)

    def count_status(*statuses):
        return sum(1 for o in orders if o.get("status") in statuses)

    def spent(pred):
        return round(sum(o["total_amount"] for o in orders if o.get("payment_status") == "paid" and pred(o)), 2)

    cart = db.carts.find_one({"user": user_id}, {"items": 1}) or {}
    wishlist = db.wishlists.find_one({"user": user_id}, {"products": 1}) or {}
    total_orders = len(orders)
    stats = {
        "total_orders": total_orders,
        "completed_orders": count_status("delivered"),
        "pending_orders": count_status("pending", "processing"),
        "processing_orders": count_status("processing"),
        "shipped_orders": count_status("shipped"),
        "cancelled_orders": count_status("cancelled"),
        "total_spent": spent(lambda o: o.get("status") != "cancelled"),
        "pending_amount": spent(lambda o: o.get("status") in ("pending", "processing", "shipped")),
        "cart_items_count": len(cart.get("items") or []),
        "wishlist_items_count": len(wishlist.get("products") or []),
        "average_order_value": round(sum(o["total_amount"] for o in orders) / total_orders, 2) if total_orders else 0,
    }
    recent = [{
        "id": str(o["_id"]),
        "total_amount": o["total_amount"],
        "status": o.get("status"),
        "payment_status": o.get("payment_status"),
        "created_at": serialize(o.get("created_at")),
        "items_count": len(o.get("items") or []),
        "first_item": (o.get("items") or [{}])[0].get("name") or "N/A",
    } for o in orders[:5]]
    return {"stats": stats, "recent_orders": recent}


def sales_analytics(db: Database, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    dates = date_filter(start, end)
    order_filter = {**dates, "status": {"$nin": ["cancelled"]}}
    revenue_filter = {**order_filter, "payment_status": "paid"}
    names = category_names(db)

    total_orders = db.orders.count_documents(order_filter)
    revenue_rows = list(db.orders.aggregate([
        {"$match": revenue_filter},
        {"$group": {"_id": None, "total_revenue": {"$sum": "$total_amount"}}},
    ]))
    total_revenue = revenue_rows[0]["total_revenue"] if revenue_rows else 0

    since = utcnow() - timedelta(days=30)
    recent_filter = {**revenue_filter, "created_at": {**revenue_filter.get("created_at", {}), "$gte": since}}
    by_date: Dict[str, Dict[str, Any]] = {}
    for order in db.orders.find(recent_filter, {"created_at": 1, "total_amount": 1}):
        day = order["created_at"].strftime("%Y-%m-%d")
        row = by_date.setdefault(day, {"date": day, "revenue": 0, "orders": 0})
        row["revenue"] = round(row["revenue"] + order.get("total_amount", 0), 2)
        row["orders"] += 1

    top = list(db.orders.aggregate([
        {"$match": revenue_filter},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product",
            "total_quantity": {"$sum": "$items.quantity"},
            "total_revenue": _line_revenue(),
            "product_name": {"$first": "$items.name"},
        }},
        {"$sort": {"total_quantity": -1}},
        {"$limit": 10},
    ]))
    top_products = []
    for row in top:
        product = db.products.find_one({"_id": row["_id"]}) or {}
        top_products.append({
            "product_id": str(row["_id"]),
            "product_name": row["product_name"],
            "total_quantity": row["total_quantity"],
            "total_revenue": row["total_revenue"],
            "image": product.get("cover_image") or (product.get("images") or [""])[0],
        })

    distribution: Dict[str, int] = {}
    stock_summary = {"total_stock": 0, "in_stock": 0, "out_of_stock": 0, "low_stock": 0}
    views = {"total_views": 0, "average_views": 0, "max_views": 0, "products_with_views": 0}
    products = list(db.products.find({}, {"category": 1, "stock": 1, "views": 1}))
    for p in products:
        label = category_label(names, p.get("category"))
        distribution[label] = distribution.get(label, 0) + 1
        qty = p.get("stock", 0)
        stock_summary["total_stock"] += qty
        stock_summary["in_stock"] += qty > 0
        stock_summary["out_of_stock"] += qty == 0
        stock_summary["low_stock"] += 0 < qty <= LOW_STOCK_THRESHOLD
        v = p.get("views") or 0
        views["total_views"] += v
        views["max_views"] = max(views["max_views"], v)
        views["products_with_views"] += v > 0
    if products:
        views["average_views"] = round(views["total_views"] / len(products), 2)

    return {
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "total_products": len(products),
        "average_order_value": round(total_revenue / total_orders, 2) if total_orders else 0,
        "revenue_by_date": [by_date[k] for k in sorted(by_date)],
        "top_products": top_products,
        "category_distribution": sorted(
            ({"category": k, "count": v} for k, v in distribution.items()), key=lambda r: -r["count"]),
        "stock_summary": stock_summary,
        "views_metrics": views,
        "sales_by_category": sales_by_category(db, revenue_filter, names),
    }


def sales_by_category(db: Database, revenue_filter: Dict[str, Any], names: Dict[str, str]) -> List[Dict[str, Any]]:
    rows = db.orders.aggregate([
        {"$match": revenue_filter},
        {"$unwind": "$items"},
        {"$lookup": {"from": "products", "localField": "items.product", "foreignField": "_id", "as": "product_info"}},
        {"$unwind": {"path": "$product_info", "preserveNullAndEmptyArrays": True}},
        {"$group": {
            "_id": "$product_info.category",
            "total_revenue": _line_revenue(),
            "total_quantity": {"$sum": "$items.quantity"},
        }},
        {"$sort": {"total_revenue": -1}},
    ])
    return [{
        "category": category_label(names, row["_id"]),
        "total_revenue": row.get("total_revenue") or 0,
        "total_quantity": row.get("total_quantity") or 0,
    } for row in rows]


def _product_sales(db: Database, dates: Dict[str, Any]) -> List[Dict[str, Any]]:
    return list(db.orders.aggregate([
        {"$match": {**dates, "status": {"$in": FULFILLED_STATUSES}, "payment_status": "paid"}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product",
            "total_quantity": {"$sum": "$items.quantity"},
            "total_revenue": _line_revenue(),
            "order_count": {"$sum": 1},
            "product_name": {"$first": "$items.name"},
        }},
    ]))


def _sales_row(product_id, name, sales, product, names) -> Dict[str, Any]:
    product = product or {}
    return {
        "product_id": str(product_id),
        "product_name": name,
        "category": category_label(names, product.get("category")) if product.get("category") else "N/A",
        "total_quantity": sales.get("total_quantity", 0),
        "total_revenue": sales.get("total_revenue", 0),
        "order_count": sales.get("order_count", 0),
        "current_price": product.get("price", 0),
        "stock": product.get("stock", 0),
        "image": product.get("cover_image") or (product.get("images") or [""])[0],
    }


def best_selling(db: Database, limit: int = 50, min_quantity: int = 0,
                 start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Dict[str, Any]]:
    names = category_names(db)
    rows = [r for r in _product_sales(db, date_filter(start, end)) if r["total_quantity"] >= min_quantity]
    rows.sort(key=lambda r: -r["total_quantity"])
    return [_sales_row(r["_id"], r["product_name"], r, db.products.find_one({"_id": r["_id"]}), names)
            for r in rows[:limit]]


def worst_selling(db: Database, limit: int = 50, max_quantity: int = 10,
                  start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Dict[str, Any]]:
    names = category_names(db)
    sales = {r["_id"]: r for r in _product_sales(db, date_filter(start, end))}
    rows = [_sales_row(p["_id"], p.get("name"), sales.get(p["_id"], {}), p, names) for p in db.products.find({})]
    rows = [r for r in rows if r["total_quantity"] <= max_quantity]
    rows.sort(key=lambda r: (r["total_quantity"], r["order_count"]))
    return rows[:limit]


def most_viewed(db: Database, limit: int = 50, min_views: int = 0) -> List[Dict[str, Any]]:
    names = category_names(db)
    query = {"views": {"$gte": min_views}} if min_views > 0 else {}
    cursor = db.products.find(query).sort([("views", DESCENDING), ("created_at", DESCENDING)]).limit(limit)
    out = []
    for p in cursor:
        row = serialize(p)
        row["views"] = p.get("views") or 0
        row["category"] = category_label(names, p.get("category"))
        out.append(row)
    return out
