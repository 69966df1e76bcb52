import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from storefront.api import (
    admin,
    admin_products,
    admin_users,
    analytics,
    auth,
    cart,
    coupons,
    dashboard,
    orders,
    payments,
    products,
    shipping,
    site_settings,
    users,
    verification,
    wishlist,
)
from storefront.core.config import APP_NAME, CORS_ORIGINS, LOG_LEVEL
from storefront.core.errors import register_exception_handlers
from storefront.db.mongo import ensure_indexes, get_db, ping

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_db())
    except (PyMongoError, RuntimeError) as e:
        logger.error("Could not ensure MongoDB indexes: %s", e)
    yield


app = FastAPI(title=APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(cart.router, prefix="/api/cart", tags=["cart"])
app.include_router(wishlist.router, prefix="/api/wishlist", tags=["wishlist"])
app.include_router(coupons.router, prefix="/api/coupons", tags=["coupons"])
app.include_router(verification.router, prefix="/api/verification-discount", tags=["coupons"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["dashboard"])
app.include_router(shipping.router, prefix="/api/shipping", tags=["shipping"])
app.include_router(site_settings.router, prefix="/api/site-settings", tags=["site-settings"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(admin_products.router, prefix="/api/admin", tags=["admin"])
app.include_router(admin_users.router, prefix="/api/admin/users", tags=["admin"])
app.include_router(analytics.router, prefix="/api/admin/analytics", tags=["admin"])


@app.get("/")
def root():
    return {"status": "ok", "app": APP_NAME, "database": "connected" if ping() else "unreachable"}
