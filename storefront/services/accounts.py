"""Account creation, email/phone verification codes and code-based password resets."""

import logging
import re
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from storefront.core import config
from storefront.core.errors import BadRequestError, NotFoundError, ServiceUnavailableError, StoreError
from storefront.core.security import hash_password
from storefront.db.documents import utcnow
from storefront.models.schemas import UserCreate
from storefront.services import notifications

logger = logging.getLogger(__name__)

# type -> (code field, expiry field, verified flag)
CODE_FIELDS = {
    "email": ("email_verification_code", "email_verification_code_expires", "email_verified"),
    "phone": ("phone_verification_code", "phone_verification_code_expires", "phone_verified"),
}
RESET_SENT_MESSAGE = "If an account with that email exists, a password reset code has been sent."
MIN_PASSWORD_LENGTH = 6


def create_user(db: Database, payload: UserCreate, role: str = "customer") -> Dict[str, Any]:
    email = payload.email.strip().lower()
    if db.users.find_one({"email": email}):
        raise BadRequestError("User already exists with this email", code="auth.email_taken")
    now = utcnow()
    user = {
        "first_name": payload.first_name.strip(),
        "last_name": payload.last_name.strip(),
        "contact_number": payload.contact_number.strip(),
        "email": email,
        "password": hash_password(payload.password),
        "role": role,
        "image": "",
        "email_verified": False,
        "phone_verified": False,
        "created_at": now,
        "updated_at": now,
    }
    try:
        user["_id"] = db.users.insert_one(user).inserted_id
    except DuplicateKeyError:
        raise BadRequestError("User already exists with this email", code="auth.email_taken")
    logger.info("Registered %s %s", role, user["_id"])
    return user


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def normalize_phone(number: Optional[str]) -> str:
    return re.sub(r"[^\d+]", "", number or "")


def _check_target(kind: Optional[str], email: Optional[str], phone: Optional[str]) -> None:
    if kind not in CODE_FIELDS:
        raise BadRequestError('Invalid verification type. Must be "email" or "phone"',
                              code="auth.invalid_verification_type")
    if kind == "email" and not email:
        raise BadRequestError("Email is required", code="auth.email_required")
    if kind == "phone" and not phone:
        raise BadRequestError("Phone number is required", code="auth.phone_required")


def find_user(db: Database, kind: str, email: Optional[str], phone: Optional[str]) -> Optional[Dict[str, Any]]:
    """Look the user up by email, or by phone number in normalized then raw form."""
    if kind == "email":
        return db.users.find_one({"email": email.strip().lower()})
    normalized = normalize_phone(phone)
    user = db.users.find_one({"contact_number": normalized})
    if user is None:
        user = db.users.find_one({"contact_number": phone})
        if user is not None:
            # older accounts keep the number as typed; store it normalized from now on
            db.users.update_one({"_id": user["_id"]}, {"$set": {"contact_number": normalized}})
            user["contact_number"] = normalized
    return user


def send_verification_code(db: Database, kind: Optional[str], email: Optional[str] = None,
                           phone: Optional[str] = None) -> str:
    _check_target(kind, email, phone)
    user = find_user(db, kind, email, phone)
    if not user:
        raise NotFoundError("User not found. Please register first.", code="auth.user_not_found")

    code_field, expires_field, _ = CODE_FIELDS[kind]
    now = utcnow()
    code = generate_code()
    db.users.update_one({"_id": user["_id"]}, {"$set": {
        code_field: code,
        expires_field: now + timedelta(minutes=config.VERIFICATION_CODE_TTL_MINUTES),
        "updated_at": now,
    }})

    if kind == "email":
        sent = notifications.send_verification_email(user["email"], code)
    else:
        sent = notifications.send_verification_sms(user["contact_number"], code)
    if not sent:
        raise ServiceUnavailableError(f"Failed to send verification {'email' if kind == 'email' else 'SMS'}",
                                      code="auth.code_not_sent")
    logger.info("Sent %s verification code to user %s", kind, user["_id"])
    return f"Verification code sent to your {kind}"


def verify_code(db: Database, kind: Optional[str], code: Optional[str], email: Optional[str] = None,
                phone: Optional[str] = None) -> str:
    """Check a verification code and mark the email or phone verified."""
    if not code or kind not in CODE_FIELDS:
        raise BadRequestError("Invalid verification data", code="auth.invalid_verification_data")
    _check_target(kind, email, phone)
    user = find_user(db, kind, email, phone)
    if not user:
        raise NotFoundError("User not found", code="auth.user_not_found")

    code_field, expires_field, flag = CODE_FIELDS[kind]
    if not user.get(code_field) or user[code_field] != str(code).strip():
        raise BadRequestError("Invalid verification code", code="auth.invalid_code")
    expires = user.get(expires_field)
    if not expires or expires < utcnow():
        raise BadRequestError("Verification code has expired. Please request a new one.", code="auth.code_expired")

    db.users.update_one({"_id": user["_id"]}, {
        "$set": {flag: True, "updated_at": utcnow()},
        "$unset": {code_field: "", expires_field: ""},
    })
    logger.info("User %s verified their %s", user["_id"], kind)
    return "Email verified successfully" if kind == "email" else "Phone number verified successfully"


def request_password_reset(db: Database, email: Optional[str]) -> str:
    """Email a reset code. The answer is the same whether or not the account exists."""
    if not email:
        raise BadRequestError("Email is required", code="auth.email_required")
    user = db.users.find_one({"email": email.strip().lower()})
    if not user or not user.get("password"):
        return RESET_SENT_MESSAGE

    now = utcnow()
    window = timedelta(hours=1)
    recent = [ts for ts in user.get("password_reset_timestamps") or [] if now - ts < window]
    if len(recent) >= config.RESET_REQUESTS_PER_HOUR:
        raise StoreError(
            f"You have reached the limit of {config.RESET_REQUESTS_PER_HOUR} requests per hour. "
            "Please try again later.",
            code="auth.reset_rate_limited",
            status_code=429,
        )

    code = generate_code()
    recent.append(now)
    db.users.update_one({"_id": user["_id"]}, {"$set": {
        "reset_password_code": code,
        "reset_password_code_expires": now + timedelta(minutes=config.RESET_CODE_TTL_MINUTES),
        "password_reset_timestamps": recent,
        "updated_at": now,
    }})
    if not notifications.send_password_reset_email(user["email"], code):
        logger.error("Password reset email for user %s could not be sent", user["_id"])
    return RESET_SENT_MESSAGE


def reset_password(db: Database, email: Optional[str], code: Optional[str], password: Optional[str]) -> None:
    if not email or not code or not password:
        raise BadRequestError("Email, code, and password are required", code="auth.reset_fields_required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                              code="auth.password_too_short")
    user = db.users.find_one({
        "email": email.strip().lower(),
        "reset_password_code": str(code).strip(),
        "reset_password_code_expires": {"$gt": utcnow()},
    })
    if not user:
        raise BadRequestError("Invalid or expired reset code. Please request a new one.", code="auth.invalid_reset_code")

    db.users.update_one({"_id": user["_id"]}, {
        "$set": {"password": hash_password(password), "updated_at": utcnow()},
        "$unset": {"reset_password_code": "", "reset_password_code_expires": ""},
    })
    logger.info("Password reset for user %s", user["_id"])
