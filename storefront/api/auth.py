from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pymongo.database import Database

from storefront.core.security import create_token, verify_password
from storefront.db.mongo import get_db
from storefront.models.schemas import (
    ForgotPasswordIn,
    ResetPasswordIn,
    Token,
    UserCreate,
    UserOut,
    VerificationCodeRequest,
    VerifyCodeIn,
)
from storefront.services import accounts

router = APIRouter()


def user_out(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "first_name": user.get("first_name", ""),
        "last_name": user.get("last_name", ""),
        "contact_number": user.get("contact_number", ""),
        "email": user["email"],
        "role": user.get("role", "customer"),
        "image": user.get("image", ""),
        "email_verified": bool(user.get("email_verified")),
        "phone_verified": bool(user.get("phone_verified")),
    }


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, db: Database = Depends(get_db)):
    return user_out(accounts.create_user(db, payload))


@router.post("/token", response_model=Token)
def token(form_data: OAuth2PasswordRequestForm = Depends(), db: Database = Depends(get_db)):
    user = db.users.find_one({"email": form_data.username.strip().lower()})
    if not user or not user.get("password") or not verify_password(form_data.password, user["password"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    access = create_token(str(user["_id"]), role=user.get("role", "customer"))
    return {"access_token": access, "token_type": "bearer"}


# --- Verification codes and password reset ---

@router.post("/send-verification-code")
def send_verification_code(payload: VerificationCodeRequest, db: Database = Depends(get_db)):
    message = accounts.send_verification_code(db, payload.type, payload.email, payload.phone_number)
    return {"success": True, "message": message}


@router.post("/verify-code")
def verify_code(payload: VerifyCodeIn, db: Database = Depends(get_db)):
    message = accounts.verify_code(db, payload.type, payload.code, payload.email, payload.phone_number)
    return {"success": True, "message": message}


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordIn, db: Database = Depends(get_db)):
    return {"success": True, "message": accounts.request_password_reset(db, payload.email)}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordIn, db: Database = Depends(get_db)):
    accounts.reset_password(db, payload.email, payload.code, payload.password)
    return {"success": True,
            "message": "Password has been reset successfully. You can now log in with your new password."}
