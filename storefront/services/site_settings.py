from typing import Any, Dict

from pymongo import ReturnDocument
from pymongo.database import Database

from storefront.db.documents import serialize, utcnow

SETTINGS_KEY = "site"

DEFAULT_SETTINGS = {
    "maintenance_mode": False,
    "maintenance_message": "",
    "maintenance_ends_at": None,
    "announcement": "",
    "announcement_active": False,
}


def get_settings(db: Database) -> Dict[str, Any]:
    """The singleton settings document, created with defaults on first read."""
    now = utcnow()
    return db.site_settings.find_one_and_update(
        {"key": SETTINGS_KEY},
        {"$setOnInsert": {"key": SETTINGS_KEY, **DEFAULT_SETTINGS, "created_at": now, "updated_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def update_settings(db: Database, changes: Dict[str, Any]) -> Dict[str, Any]:
    get_settings(db)
    update = {}
    for key, value in changes.items():
        if key not in DEFAULT_SETTINGS:
            continue
        if isinstance(value, str):
            value = value.strip()
        update[key] = value
    if update:
        update["updated_at"] = utcnow()
        db.site_settings.update_one({"key": SETTINGS_KEY}, {"$set": update})
    return get_settings(db)


def public_view(settings: Dict[str, Any]) -> Dict[str, Any]:
    active = bool(settings.get("announcement_active"))
    return {
        "maintenance_mode": bool(settings.get("maintenance_mode")),
        "maintenance_message": settings.get("maintenance_message") or "",
        "maintenance_ends_at": serialize(settings.get("maintenance_ends_at")),
        "announcement": settings.get("announcement", "") if active else "",
        "announcement_active": active,
    }


def admin_view(settings: Dict[str, Any]) -> Dict[str, Any]:
    out = public_view(settings)
    out["announcement"] = settings.get("announcement") or ""
    out["updated_at"] = serialize(settings.get("updated_at"))
    return out
