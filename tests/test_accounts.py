from datetime import timedelta

import pytest

from storefront.core.security import hash_password, verify_password
from storefront.core import config
from storefront.db.documents import utcnow
from storefront.services import accounts, notifications


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def recorder(kind):
        def send(to, code):
            sent.append((kind, to, code))
            return True
        return send

    monkeypatch.setattr(notifications, "send_verification_email", recorder("email"))
    monkeypatch.setattr(notifications, "send_verification_sms", recorder("sms"))
    monkeypatch.setattr(notifications, "send_password_reset_email", recorder("reset"))
    return sent


def test_normalize_phone():
    assert accounts.normalize_phone("+1 (250) 555-0101") == "+12505550101"
    assert accounts.normalize_phone("250.555.0101") == "2505550101"
    assert accounts.normalize_phone(None) == ""


def test_verifying_email_and_phone_unlocks_discount(client, db, customer, customer_headers, outbox):
    eligibility = client.get("/api/verification-discount/eligibility", headers=customer_headers).json()
    assert eligibility["eligible"] is False
    assert eligibility["can_become_eligible"] is True

    resp = client.post("/api/auth/send-verification-code", json={"type": "email", "email": "ADA@example.com"})
    assert resp.json() == {"success": True, "message": "Verification code sent to your email"}
    kind, to, code = outbox[-1]
    assert (kind, to) == ("email", "ada@example.com")
    resp = client.post("/api/auth/verify-code", json={"type": "email", "email": "ada@example.com", "code": code})
    assert resp.json()["message"] == "Email verified successfully"

    # the fixture stores the number as typed; lookup normalizes it
    resp = client.post("/api/auth/send-verification-code", json={"type": "phone", "phone_number": "250-555-0101"})
    assert resp.status_code == 200
    assert db.users.find_one({"_id": customer["_id"]})["contact_number"] == "2505550101"
    code = outbox[-1][2]
    resp = client.post("/api/auth/verify-code", json={"type": "phone", "phone_number": "(250) 555-0101", "code": code})
    assert resp.json()["message"] == "Phone number verified successfully"

    stored = db.users.find_one({"_id": customer["_id"]})
    assert stored["email_verified"] is True
    assert stored["phone_verified"] is True
    assert "phone_verification_code" not in stored
    eligibility = client.get("/api/verification-discount/eligibility", headers=customer_headers).json()
    assert (eligibility["eligible"], eligibility["discount"], eligibility["source"]) == (True, 5.0, "both")


def test_send_code_validation(client, outbox):
    resp = client.post("/api/auth/send-verification-code", json={"type": "fax"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "auth.invalid_verification_type"
    resp = client.post("/api/auth/send-verification-code", json={"type": "phone"})
    assert resp.json()["detail"] == "Phone number is required"
    resp = client.post("/api/auth/send-verification-code", json={"type": "email", "email": "nobody@example.com"})
    assert resp.status_code == 404
    assert outbox == []


def test_send_code_reports_delivery_failure(client, customer, monkeypatch):
    monkeypatch.setattr(notifications, "send_verification_email", lambda to, code: False)
    resp = client.post("/api/auth/send-verification-code", json={"type": "email", "email": "ada@example.com"})
    assert resp.status_code == 503
    assert resp.json()["detail"] == "Failed to send verification email"


def test_wrong_and_expired_codes(client, db, customer):
    db.users.update_one({"_id": customer["_id"]}, {"$set": {
        "email_verification_code": "123456",
        "email_verification_code_expires": utcnow() - timedelta(minutes=1),
    }})
    body = {"type": "email", "email": "ada@example.com"}

    resp = client.post("/api/auth/verify-code", json={**body, "code": "654321"})
    assert resp.json()["detail"] == "Invalid verification code"
    resp = client.post("/api/auth/verify-code", json={**body, "code": "123456"})
    assert resp.json()["detail"] == "Verification code has expired. Please request a new one."
    resp = client.post("/api/auth/verify-code", json=body)
    assert resp.json()["detail"] == "Invalid verification data"
    assert db.users.find_one({"_id": customer["_id"]})["email_verified"] is False


def test_forgot_and_reset_password(client, db, customer, outbox):
    db.users.update_one({"_id": customer["_id"]}, {"$set": {"password": hash_password("old-secret")}})

    resp = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert resp.status_code == 200
    assert resp.json()["message"] == accounts.RESET_SENT_MESSAGE
    assert outbox == []

    resp = client.post("/api/auth/forgot-password", json={"email": "ada@example.com"})
    assert resp.json()["message"] == accounts.RESET_SENT_MESSAGE
    kind, to, code = outbox[-1]
    assert (kind, to) == ("reset", "ada@example.com")

    resp = client.post("/api/auth/reset-password", json={"email": "ada@example.com", "code": code, "password": "abc"})
    assert resp.json()["detail"] == "Password must be at least 6 characters"
    resp = client.post("/api/auth/reset-password",
                       json={"email": "ada@example.com", "code": "not-the-code",
                             "password": "new-secret"})
    assert resp.status_code == 400

    resp = client.post("/api/auth/reset-password", json={"email": "ada@example.com", "code": code, "password": "new-secret"})
    assert resp.status_code == 200
    stored = db.users.find_one({"_id": customer["_id"]})
    assert verify_password("new-secret", stored["password"])
    assert "reset_password_code" not in stored

    # codes are single use
    resp = client.post("/api/auth/reset-password", json={"email": "ada@example.com", "code": code, "password": "again-1"})
    assert resp.status_code == 400


def test_forgot_password_rate_limit(client, db, customer, outbox):
    db.users.update_one({"_id": customer["_id"]}, {"$set": {"password": "hashed"}})
    for _ in range(3):
        assert client.post("/api/auth/forgot-password", json={"email": "ada@example.com"}).status_code == 200
    resp = client.post("/api/auth/forgot-password", json={"email": "ada@example.com"})
    assert resp.status_code == 429
    assert resp.json()["code"] == "auth.reset_rate_limited"
    assert len(outbox) == 3


def test_email_without_smtp_is_logged(monkeypatch, caplog):
    monkeypatch.setattr(config, "SMTP_HOST", "")
    with caplog.at_level("INFO", logger="storefront.services.notifications"):
        assert notifications.send_verification_email("ada@example.com", "424242") is True
    assert "424242" in caplog.text


def test_email_smtp_failure_returns_false(monkeypatch):
    def refuse(host, port):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(config, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(notifications.smtplib, "SMTP", refuse)
    assert notifications.send_email("ada@example.com", "Hello", "text") is False
