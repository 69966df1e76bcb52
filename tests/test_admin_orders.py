import pytest

from storefront.db.documents import utcnow


@pytest.fixture
def paid_order(db, customer, make_product):
    ring = make_product(price=40.0, stock=8)
    now = utcnow()
    order = {
        "user": customer["_id"],
        "items": [{"product": ring["_id"], "name": ring["name"], "price": 40.0, "quantity": 3, "image": ""}],
        "total_amount": 120.0,
        "shipping_fee": 0.0,
        "shipping_address": {"full_name": "Ada Lovelace", "address": "12 Regina Ave", "city": "Victoria",
                             "state": "BC", "zip_code": "V8Z 1J6", "country": "CA", "phone": "250-555-0101"},
        "payment_method": "card",
        "payment_id": "pi_1",
        "payment_status": "paid",
        "status": "processing",
        "history": [],
        "stock_deducted": True,
        "stock_restored": False,
        "created_at": now,
        "updated_at": now,
    }
    order["_id"] = db.orders.insert_one(order).inserted_id
    db.products.update_one({"_id": ring["_id"]}, {"$inc": {"stock": -3}})
    return order, ring


def test_admin_routes_require_admin_role(client, customer_headers):
    resp = client.get("/api/admin/orders", headers=customer_headers)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Admin role required"


@pytest.mark.parametrize("note", [None, "", "   "])
def test_status_change_requires_note(client, db, admin_headers, paid_order, note):
    order, _ = paid_order
    body = {"status": "shipped"}
    if note is not None:
        body["note"] = note
    resp = client.put(f"/api/admin/orders/{order['_id']}", headers=admin_headers, json=body)
    assert resp.status_code == 400
    assert resp.json()["code"] == "orders.note_required"
    assert db.orders.find_one({"_id": order["_id"]})["status"] == "processing"


def test_status_change_records_history(client, db, admin, admin_headers, paid_order):
    order, _ = paid_order
    resp = client.put(f"/api/admin/orders/{order['_id']}", headers=admin_headers,
                      json={"status": "shipped", "payment_status": "paid", "note": "Handed to courier"})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Order updated successfully"

    stored = db.orders.find_one({"_id": order["_id"]})
    assert stored["status"] == "shipped"
    assert len(stored["history"]) == 1
    entry = stored["history"][0]
    assert entry["changes"] == [{"field": "status", "from": "processing", "to": "shipped"}]
    assert entry["note"] == "Handed to courier"
    assert entry["modified_by"] == admin["_id"]
    assert entry["modified_by_name"] == "Store Admin"


def test_unchanged_values_write_no_history(client, db, admin_headers, paid_order):
    order, _ = paid_order
    resp = client.put(f"/api/admin/orders/{order['_id']}", headers=admin_headers,
                      json={"status": "processing", "note": "no-op"})
    assert resp.status_code == 200
    assert db.orders.find_one({"_id": order["_id"]})["history"] == []


def test_invalid_status_values(client, admin_headers, paid_order):
    order, _ = paid_order
    url = f"/api/admin/orders/{order['_id']}"
    assert client.put(url, headers=admin_headers, json={"status": "lost", "note": "x"}).json()["detail"] \
        == "Invalid order status"
    assert client.put(url, headers=admin_headers, json={"payment_status": "maybe", "note": "x"}).json()["detail"] \
        == "Invalid payment status"
    assert client.put(url, headers=admin_headers, json={"note": "x"}).json()["detail"] == "No valid fields to update"


def test_cancel_restores_stock_once(client, db, admin_headers, paid_order):
    order, ring = paid_order
    url = f"/api/admin/orders/{order['_id']}"
    assert db.products.find_one({"_id": ring["_id"]})["stock"] == 5

    client.put(url, headers=admin_headers, json={"status": "cancelled", "note": "Customer asked"})
    assert db.products.find_one({"_id": ring["_id"]})["stock"] == 8

    client.put(url, headers=admin_headers, json={"payment_status": "refunded", "note": "Refund issued"})
    assert db.products.find_one({"_id": ring["_id"]})["stock"] == 8
    assert len(db.orders.find_one({"_id": order["_id"]})["history"]) == 2


def test_reopening_cancelled_order_takes_stock_again(client, db, admin_headers, paid_order):
    order, ring = paid_order
    url = f"/api/admin/orders/{order['_id']}"
    client.put(url, headers=admin_headers, json={"status": "cancelled", "note": "Customer asked"})
    assert db.products.find_one({"_id": ring["_id"]})["stock"] == 8

    resp = client.put(url, headers=admin_headers, json={"status": "processing", "note": "Customer changed mind"})
    assert resp.status_code == 200
    stored = db.orders.find_one({"_id": order["_id"]})
    assert (stored["stock_deducted"], stored["stock_restored"]) == (True, False)
    assert db.products.find_one({"_id": ring["_id"]})["stock"] == 5

    client.put(url, headers=admin_headers, json={"status": "cancelled", "note": "Cancelled for good"})
    assert db.products.find_one({"_id": ring["_id"]})["stock"] == 8


def test_marking_pending_order_paid_deducts_stock(client, db, customer, admin_headers, make_product):
    ring = make_product(stock=4)
    oid = db.orders.insert_one({
        "user": customer["_id"],
        "items": [{"product": ring["_id"], "name": ring["name"], "price": 20.0, "quantity": 1}],
        "total_amount": 20.0,
        "status": "pending",
        "payment_status": "pending",
        "history": [],
        "stock_deducted": False,
        "stock_restored": False,
        "created_at": utcnow(),
    }).inserted_id
    resp = client.put(f"/api/admin/orders/{oid}", headers=admin_headers,
                      json={"payment_status": "paid", "note": "Paid by e-transfer"})
    assert resp.status_code == 200
    assert db.products.find_one({"_id": ring["_id"]})["stock"] == 3


def test_list_orders_search_and_deleted_user(client, db, admin_headers, paid_order):
    order, _ = paid_order
    db.orders.insert_one({"user": None, "items": [], "total_amount": 9.0, "status": "pending",
                          "payment_status": "pending",
                          "shipping_address": {"full_name": "Ghost", "city": "Nanaimo"},
                          "created_at": utcnow()})

    resp = client.get("/api/admin/orders", headers=admin_headers, params={"search": "ada"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["orders"][0]["_id"] == str(order["_id"])
    assert data["orders"][0]["user"]["email"] == "ada@example.com"

    resp = client.get("/api/admin/orders", headers=admin_headers, params={"search": "nanaimo"})
    assert resp.json()["orders"][0]["user"]["first_name"] == "Deleted"


def test_deliveries_grouped_by_customer(client, db, admin_headers, paid_order):
    resp = client.get("/api/admin/deliveries", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["total_orders"] == 1
    group = data["deliveries"][0]
    assert group["customer_name"] == "Ada Lovelace"
    assert group["pending_orders"] == 1
    assert group["total_amount"] == 120.0


def test_dashboard_stats(client, admin_headers, paid_order):
    resp = client.get("/api/admin/dashboard/stats", headers=admin_headers)
    assert resp.status_code == 200
    stats = resp.json()["stats"]
    assert stats["total_orders"] == 1
    assert stats["processing_orders"] == 1
    assert stats["total_revenue"] == 120.0
    assert stats["low_stock_products"] == 1


def test_best_and_worst_selling(client, db, admin_headers, paid_order, make_product):
    order, ring = paid_order
    idle = make_product(name="Idle Bangle")

    resp = client.get("/api/admin/analytics/best-selling", headers=admin_headers)
    assert resp.status_code == 200
    best = resp.json()["products"]
    assert [(p["product_name"], p["total_quantity"], p["total_revenue"]) for p in best] == [(ring["name"], 3, 120.0)]

    resp = client.get("/api/admin/analytics/worst-selling", headers=admin_headers, params={"max_quantity": 1})
    assert [p["product_id"] for p in resp.json()["products"]] == [str(idle["_id"])]
