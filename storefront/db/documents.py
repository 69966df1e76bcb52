# Helpers shared by every collection: id parsing, timestamps, JSON shaping.
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId

from storefront.core.errors import BadRequestError


def utcnow() -> datetime:
    # naive UTC, matching what pymongo hands back without tz_aware
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_object_id(value: Any) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and ObjectId.is_valid(value) and len(value) == 24


def to_object_id(value: Any, label: str = "ID") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not is_object_id(value):
        raise BadRequestError(f"Invalid {label} format", code="request.invalid_id")
    return ObjectId(value)


def ref_id(value: Any) -> Optional[str]:
    """String id of a reference that may be an ObjectId, a str or a populated document."""
    if value is None:
        return None
    if isinstance(value, dict):
        inner = value.get("_id")
        return str(inner) if inner is not None else None
    return str(value)


def serialize(value: Any) -> Any:
    """Recursively turn ObjectIds into strings and datetimes into ISO strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value
