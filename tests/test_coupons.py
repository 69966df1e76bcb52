from bson import ObjectId


def test_validate_known_coupon_is_case_insensitive(client, customer_headers):
    resp = client.post("/api/coupons/validate", headers=customer_headers, json={"coupon_code": " save10 "})
    assert resp.status_code == 200
    assert resp.json() == {"valid": True, "coupon": {"code": "SAVE10", "discount": 10, "type": "fixed"}}


def test_validate_unknown_or_missing_coupon(client, customer_headers):
    resp = client.post("/api/coupons/validate", headers=customer_headers, json={"coupon_code": "BOGUS"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid coupon code"

    resp = client.post("/api/coupons/validate", headers=customer_headers, json={})
    assert resp.status_code == 400
    assert resp.json()["code"] == "coupon.required"


def test_coupon_can_only_be_used_once_per_customer(client, db, customer, customer_headers, other_customer):
    order_id = str(ObjectId())
    body = {"coupon_code": "WELCOME10", "discount": 10, "discount_type": "fixed", "order_id": order_id}
    resp = client.post("/api/coupons/use", headers=customer_headers, json=body)
    assert resp.status_code == 200
    assert resp.json()["used_coupon"]["coupon_code"] == "WELCOME10"

    resp = client.post("/api/coupons/use", headers=customer_headers, json=body)
    assert resp.status_code == 400
    assert resp.json()["already_used"] is True

    resp = client.post("/api/coupons/validate", headers=customer_headers, json={"coupon_code": "welcome10"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "coupon.already_used"
    assert db.used_coupons.count_documents({"user": customer["_id"]}) == 1


def test_use_coupon_missing_fields(client, customer_headers):
    resp = client.post("/api/coupons/use", headers=customer_headers, json={"coupon_code": "SAVE10"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing required fields"


def test_verification_eligibility(client, db, customer, customer_headers):
    resp = client.get("/api/verification-discount/eligibility", headers=customer_headers)
    assert resp.json()["eligible"] is False
    assert resp.json()["can_become_eligible"] is True

    db.users.update_one({"_id": customer["_id"]}, {"$set": {"email_verified": True, "phone_verified": True}})
    resp = client.get("/api/verification-discount/eligibility", headers=customer_headers)
    assert resp.json()["eligible"] is True
    assert resp.json()["discount"] == 5.0
    assert resp.json()["source"] == "both"

    db.used_verification_discounts.insert_one({"user": customer["_id"], "discount": 5.0})
    resp = client.get("/api/verification-discount/eligibility", headers=customer_headers)
    assert resp.json()["eligible"] is False
    assert resp.json()["can_become_eligible"] is False
