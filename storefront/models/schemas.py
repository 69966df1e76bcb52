from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
DiscountType = Literal["percentage", "fixed"]

# Accounts

class UserCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    contact_number: str = Field(..., pattern=r"^[\d\s\-\+\(\)]+$")
    email: EmailStr
    password: str = Field(..., min_length=6)

class UserOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    contact_number: str
    email: EmailStr
    role: str = "customer"
    image: str = ""
    email_verified: bool = False
    phone_verified: bool = False

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    contact_number: Optional[str] = Field(None, pattern=r"^[\d\s\-\+\(\)]+$")
    image: Optional[str] = None

class AdminUserCreate(UserCreate):
    role: Optional[str] = None

class VerificationCodeRequest(BaseModel):
    type: Optional[str] = None
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None

class VerifyCodeIn(VerificationCodeRequest):
    code: Optional[str] = None

class ForgotPasswordIn(BaseModel):
    email: Optional[EmailStr] = None

class ResetPasswordIn(BaseModel):
    email: Optional[EmailStr] = None
    code: Optional[str] = None
    password: Optional[str] = None

# Addresses

class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)

class BillingAddress(BaseModel):
    full_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

class AddressIn(ShippingAddress):
    is_default: bool = False

class AddressUpdate(BaseModel):
    full_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None

class ShippingQuoteRequest(BaseModel):
    shipping_address: Optional[Dict[str, Any]] = None

# Catalog

class ProductIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    category: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    cover_image: Optional[str] = None
    stock: int = Field(0, ge=0)
    featured: bool = False
    product_code: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    product_code: Optional[str] = None
    images: Optional[List[str]] = None
    cover_image: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None
    is_flash_sale: Optional[bool] = None
    flash_sale_discount: Optional[float] = Field(None, ge=0)
    flash_sale_discount_type: Optional[DiscountType] = None
    attributes: Optional[Dict[str, Any]] = None

class BulkProductChanges(BaseModel):
    price: Optional[float] = None
    category: Optional[str] = None
    stock: Optional[int] = None
    featured: Optional[bool] = None

class BulkProductIds(BaseModel):
    product_ids: Optional[List[str]] = None

class BulkProductUpdate(BulkProductIds):
    updates: Optional[BulkProductChanges] = None

class CategoryAttribute(BaseModel):
    name: str
    label: str
    type: Literal["text", "number", "textarea", "select", "boolean", "date"]
    required: bool = False
    options: List[str] = Field(default_factory=list)
    placeholder: Optional[str] = None

class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    slug: Optional[str] = None
    attributes: List[CategoryAttribute] = Field(default_factory=list)

class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    slug: Optional[str] = None
    attributes: Optional[List[CategoryAttribute]] = None

# Cart & wishlist

class CartItemIn(BaseModel):
    product_id: Optional[str] = None
    quantity: Optional[int] = None
    selected_attributes: Optional[Dict[str, Any]] = None

class CartQuantityIn(BaseModel):
    quantity: Optional[int] = None

class ProductRef(BaseModel):
    product_id: Optional[str] = None

# Coupons

class CouponValidateIn(BaseModel):
    coupon_code: Optional[str] = None

class CouponUseIn(BaseModel):
    coupon_code: Optional[str] = None
    order_id: Optional[str] = None
    discount: Optional[float] = None
    discount_type: Optional[DiscountType] = None

# Payments

class CreateIntentIn(BaseModel):
    amount: Optional[float] = None
    currency: str = "usd"
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    item_ids: Optional[List[str]] = None
    shipping_fee: Optional[float] = None
    coupon_code: Optional[str] = None
    coupon_discount: Optional[float] = None
    coupon_type: Optional[DiscountType] = None
    verification_discount: Optional[float] = None
    verification_discount_source: Optional[str] = None

class UpdateIntentIn(BaseModel):
    payment_intent_id: Optional[str] = None
    amount: Optional[float] = None

class IntentRef(BaseModel):
    payment_intent_id: Optional[str] = None

class VerifyPaymentIn(BaseModel):
    payment_intent_id: Optional[str] = None
    order_id: Optional[str] = None

class RefundFeeIn(BaseModel):
    payment_intent_id: Optional[str] = None
    refund_amount: Optional[float] = None

# Orders

class OrderCreate(BaseModel):
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    payment_intent_id: Optional[str] = None
    item_ids: Optional[List[str]] = None
    shipping_fee: Optional[float] = None
    payment_status: Optional[PaymentStatus] = None

class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None
    note: Optional[str] = None

# Site settings

class SiteSettingsUpdate(BaseModel):
    maintenance_mode: Optional[bool] = None
    maintenance_message: Optional[str] = None
    maintenance_ends_at: Optional[datetime] = None
    announcement: Optional[str] = None
    announcement_active: Optional[bool] = None
