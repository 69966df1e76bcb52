import logging

from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.server_api import ServerApi
from pymongo.errors import PyMongoError

from storefront.core.config import MONGO_URI, MONGO_DB_NAME

logger = logging.getLogger(__name__)

client = None


def get_client() -> MongoClient:
    global client
    if client is None:
        if not MONGO_URI:
            raise RuntimeError("MONGO_URI not configured. See .env")
        client = MongoClient(MONGO_URI, server_api=ServerApi("1"))
    return client


def get_db() -> Database:
    """FastAPI dependency returning the storefront database."""
    return get_client()[MONGO_DB_NAME]


def ensure_indexes(db: Database) -> None:
    # unique indexes back the duplicate-redemption and one-cart-per-user rules
    db.users.create_index("email", unique=True)

    db.products.create_index("name")
    db.products.create_index("category")
    db.products.create_index("price")
    db.products.create_index("featured")
    db.products.create_index([("views", DESCENDING)])
    db.products.create_index([("created_at", DESCENDING)])
    db.products.create_index("product_code", unique=True, sparse=True)

    db.categories.create_index("name", unique=True)
    db.categories.create_index("slug", unique=True)
    db.product_code_sequences.create_index("category_prefix", unique=True)

    db.carts.create_index("user", unique=True)
    db.wishlists.create_index("user", unique=True)

    db.orders.create_index([("user", ASCENDING), ("created_at", DESCENDING)])
    db.orders.create_index("status")
    db.orders.create_index("payment_status")
    db.orders.create_index("payment_id")
    db.orders.create_index([("created_at", DESCENDING)])

    db.used_coupons.create_index([("user", ASCENDING), ("coupon_code", ASCENDING)], unique=True)
    db.used_verification_discounts.create_index("user", unique=True)
    db.addresses.create_index([("user", ASCENDING), ("is_default", ASCENDING)])
    logger.info("MongoDB indexes ensured on %s", db.name)


def ping() -> bool:
    try:
        get_client().admin.command("ping")
        return True
    except (PyMongoError, RuntimeError) as e:
        logger.error("Could not connect to MongoDB: %s", e)
        return False
