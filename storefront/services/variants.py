"""Variant grouping and resolution.

Products that share a name are variants of one another; each document
carries its own `attributes` mapping (for example ``{"color": "Yellow, Green",
"size(inch)": "7"}``). A shopper picks attribute values and the cart needs
the id of the document that actually holds them.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database

logger = logging.getLogger(__name__)

VARIANT_FIELDS = {"_id": 1, "attributes": 1, "stock": 1, "price": 1, "images": 1, "cover_image": 1}


def normalize_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _explode(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if value is None or value == "":
        return []
    if isinstance(value, str) and "," in value:
        return [v.strip() for v in value.split(",") if v.strip()]
    return [value]


def attribute_matches(variant_value: Any, selected: Any) -> bool:
    if variant_value is None:
        return False
    wanted = normalize_value(selected)
    if normalize_value(variant_value) == wanted:
        return True
    if isinstance(variant_value, (list, tuple)):
        return any(normalize_value(v) == wanted for v in variant_value)
    if isinstance(variant_value, str) and "," in variant_value:
        return wanted in [normalize_value(v) for v in variant_value.split(",")]
    return False


def find_matching_variant(variants: Iterable[Dict[str, Any]], selected: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First variant satisfying every selected attribute, or None.

    An empty selection never matches.
    """
    if not selected:
        return None
    for variant in variants:
        attrs = variant.get("attributes") or {}
        if all(attribute_matches(attrs.get(key), value) for key, value in selected.items()):
            return variant
    return None


def resolve_variant_id(db: Database, product: Dict[str, Any], selected: Optional[Dict[str, Any]]) -> ObjectId:
    """Id of the sibling document matching `selected`, defaulting to `product`."""
    if not selected:
        return product["_id"]
    siblings = list(db.products.find({"name": product["name"]}, VARIANT_FIELDS))
    match = find_matching_variant(siblings, selected)
    if match is None:
        logger.info("No variant of %r matches %s; keeping %s", product["name"], selected, product["_id"])
        return product["_id"]
    if match["_id"] != product["_id"]:
        logger.debug("Resolved %s to variant %s for %s", product["_id"], match["_id"], selected)
    return match["_id"]


def group_products_by_name(products: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    grouped: Dict[str, Dict[str, Any]] = {}
    for product in products:
        name = (product.get("name") or "").strip()
        group = grouped.get(name)
        if group is None:
            group = {
                "name": name,
                "description": product.get("description", ""),
                "base_price": product.get("price", 0),
                "variants": [],
                "all_attributes": {},
                "rating": product.get("rating"),
                "num_reviews": product.get("num_reviews"),
                "featured": product.get("featured"),
            }
            grouped[name] = group
        if product.get("price", 0) < group["base_price"]:
            group["base_price"] = product["price"]

        attributes = product.get("attributes") or {}
        group["variants"].append({
            "product_id": str(product["_id"]),
            "attributes": attributes,
            "stock": product.get("stock", 0),
            "price": product.get("price", 0),
            "images": product.get("images") or [],
            "cover_image": product.get("cover_image"),
        })
        for key, value in attributes.items():
            values = group["all_attributes"].setdefault(key, [])
            for v in _explode(value):
                if v not in values:
                    values.append(v)
    return list(grouped.values())


def size_and_color(selected: Optional[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """Display size and colour derived from a selected-attributes mapping."""
    out: Dict[str, Optional[str]] = {"size": None, "color": None}
    if not selected:
        return out
    for key, value in selected.items():
        if value is None or value == "":
            continue
        first = value[0] if isinstance(value, (list, tuple)) and value else value
        lowered = key.lower()
        if out["size"] is None and "size" in lowered:
            out["size"] = str(first)
        elif out["color"] is None and lowered in ("color", "colour"):
            out["color"] = str(first)
    return out
