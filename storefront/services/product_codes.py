import re

from pymongo import ReturnDocument
from pymongo.database import Database

from storefront.db.documents import is_object_id, to_object_id

PAD_LENGTH = 5
DEFAULT_PREFIX = "PROD"


def category_prefix(category_name: str) -> str:
    """Four letter code for a category name, e.g. Rings -> RING, Tea -> TEAX."""
    letters = re.sub(r"[^a-zA-Z]", "", category_name or "").upper()[:4]
    if not letters:
        return DEFAULT_PREFIX
    return letters.ljust(4, "X")


def resolve_category_name(db: Database, category: str) -> str:
    category = (category or "").strip()
    if not category:
        return "Product"
    if is_object_id(category):
        doc = db.categories.find_one({"_id": to_object_id(category)}, {"name": 1})
        if doc and doc.get("name"):
            return doc["name"]
    return category


def next_product_code(db: Database, category: str) -> str:
    prefix = category_prefix(resolve_category_name(db, category))
    seq = db.product_code_sequences.find_one_and_update(
        {"category_prefix": prefix},
        {"$inc": {"last_number": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    number = (seq or {}).get("last_number", 1)
    return f"{prefix}-{str(number).zfill(PAD_LENGTH)}"
