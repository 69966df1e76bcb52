from storefront.services.product_codes import category_prefix, next_product_code

PRODUCT = {
    "name": "Gold Hoops",
    "description": "14k hoops",
    "price": 89.0,
    "category": "Earrings",
    "images": ["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"],
    "stock": 4,
}


def test_category_prefix():
    assert category_prefix("Rings") == "RING"
    assert category_prefix("Tea") == "TEAX"
    assert category_prefix("3-D Art") == "DART"
    assert category_prefix("") == "PROD"


def test_product_codes_increment_per_prefix(db):
    assert next_product_code(db, "Rings") == "RING-00001"
    assert next_product_code(db, "Rings") == "RING-00002"
    assert next_product_code(db, "Tea") == "TEAX-00001"


def test_create_product_cover_image_rules(client, admin_headers):
    resp = client.post("/api/admin/products", headers=admin_headers,
                       json={**PRODUCT, "cover_image": "https://elsewhere.example.com/x.jpg"})
    assert resp.status_code == 201
    product = resp.json()["product"]
    assert product["cover_image"] == PRODUCT["images"][0]
    assert product["views"] == 0

    resp = client.post("/api/admin/products", headers=admin_headers, json={**PRODUCT, "images": []})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please provide at least one product image"


def test_update_product_generates_code_and_resets_flash_sale(client, db, admin_headers, make_product):
    ring = make_product(is_flash_sale=True, flash_sale_discount=20, flash_sale_discount_type="fixed")
    url = f"/api/admin/products/{ring['_id']}"

    resp = client.put(url, headers=admin_headers, json={"product_code": "", "is_flash_sale": False})
    assert resp.status_code == 200
    product = resp.json()["product"]
    assert product["product_code"] == "RING-00001"
    assert product["flash_sale_discount"] == 0
    assert product["flash_sale_discount_type"] == "percentage"

    resp = client.put(url, headers=admin_headers, json={"product_code": "  CUSTOM-1 ", "price": 25})
    assert resp.json()["product"]["product_code"] == "CUSTOM-1"
    assert db.products.find_one({"_id": ring["_id"]})["price"] == 25


def test_update_images_keeps_cover_valid(client, admin_headers, make_product):
    ring = make_product()
    resp = client.put(f"/api/admin/products/{ring['_id']}", headers=admin_headers,
                      json={"images": ["https://img.example.com/new.jpg"]})
    assert resp.json()["product"]["cover_image"] == "https://img.example.com/new.jpg"


def test_list_products_stock_filters(client, admin_headers, make_product):
    make_product(name="Empty", stock=0)
    make_product(name="Few", stock=3)
    make_product(name="Plenty", stock=40)

    def names(params):
        resp = client.get("/api/admin/products", headers=admin_headers, params=params)
        return sorted(p["name"] for p in resp.json()["products"])

    assert names({"stock_status": "out-of-stock"}) == ["Empty"]
    assert names({"stock_status": "low-stock"}) == ["Empty", "Few"]
    assert names({"stock_status": "in-stock"}) == ["Few", "Plenty"]
    assert names({"search": "plen"}) == ["Plenty"]


def test_delete_product(client, db, admin_headers, make_product):
    ring = make_product()
    assert client.delete(f"/api/admin/products/{ring['_id']}", headers=admin_headers).status_code == 200
    assert db.products.count_documents({}) == 0
    assert client.delete(f"/api/admin/products/{ring['_id']}", headers=admin_headers).status_code == 404
    assert client.delete("/api/admin/products/123", headers=admin_headers).status_code == 400


def test_most_viewed(client, admin_headers, make_product):
    make_product(name="Quiet", views=1)
    make_product(name="Popular", views=30)
    resp = client.get("/api/admin/products/most-viewed", headers=admin_headers, params={"min_views": 5})
    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()["products"]] == ["Popular"]


def test_categories_crud(client, admin_headers):
    body = {"name": "Fine Rings", "description": "Rings", "attributes": [
        {"name": "size", "label": "Size", "type": "select", "options": ["6", "7"]}]}
    resp = client.post("/api/admin/categories", headers=admin_headers, json=body)
    assert resp.status_code == 201
    category = resp.json()["category"]
    assert category["slug"] == "fine-rings"

    resp = client.post("/api/admin/categories", headers=admin_headers, json=body)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Category with this name already exists"

    resp = client.put(f"/api/admin/categories/{category['_id']}", headers=admin_headers, json={"name": "Rings"})
    assert resp.json()["category"]["slug"] == "rings"

    names = [c["name"] for c in client.get("/api/products/categories").json()["categories"]]
    assert names == ["Rings"]
    assert client.delete(f"/api/admin/categories/{category['_id']}", headers=admin_headers).status_code == 200


def test_bulk_update_products(client, db, admin_headers, make_product):
    ring = make_product(price=20.0, stock=3)
    cuff = make_product(name="Cuff", price=35.0, stock=1)
    ids = [str(ring["_id"]), str(cuff["_id"])]

    resp = client.put("/api/admin/products/bulk", headers=admin_headers,
                      json={"product_ids": ids, "updates": {"stock": 12, "featured": True}})
    assert resp.status_code == 200
    assert resp.json()["modified_count"] == 2
    assert {(p["stock"], p["featured"]) for p in resp.json()["products"]} == {(12, True)}
    assert db.products.find_one({"_id": cuff["_id"]})["price"] == 35.0

    def error(body):
        return client.put("/api/admin/products/bulk", headers=admin_headers, json=body).json()["detail"]

    assert error({"product_ids": [], "updates": {"stock": 1}}) == "Please provide at least one product ID"
    assert error({"product_ids": ids}) == "Please provide at least one field to update"
    assert error({"product_ids": ["abc"], "updates": {"stock": 1}}) == "Invalid product ID format"
    assert error({"product_ids": ids, "updates": {"price": -1}}) == "Invalid price value"
    assert error({"product_ids": ids, "updates": {"stock": -1}}) == "Invalid stock value"
    assert error({"product_ids": ids, "updates": {"category": ""}}) == "No valid fields to update"


def test_bulk_delete_products(client, db, admin_headers, make_product):
    ring = make_product()
    cuff = make_product(name="Cuff")
    keep = make_product(name="Keeper")

    resp = client.request("DELETE", "/api/admin/products/bulk", headers=admin_headers,
                          json={"product_ids": [str(ring["_id"]), str(cuff["_id"])]})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Successfully deleted 2 product(s)", "deleted_count": 2}
    assert [p["_id"] for p in db.products.find({})] == [keep["_id"]]
