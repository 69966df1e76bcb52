import logging
from typing import Any, Dict, Optional

import httpx

from storefront.core import config

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
STORE_ADDRESS = "Regina Avenue, Victoria, British Columbia, Canada"


def format_address(address: Dict[str, Any]) -> str:
    return (f"{address.get('address', '')}, {address.get('city', '')}, "
            f"{address.get('state', '')} {address.get('zip_code', '')}, {address.get('country', '')}")


def geocode(address: Dict[str, Any], timeout: float = 10.0) -> Optional[Dict[str, float]]:
    """Coordinates for a shipping address, or None when they cannot be looked up."""
    if not config.GOOGLE_MAPS_API_KEY:
        logger.warning("GOOGLE_MAPS_API_KEY not configured, using fallback shipping fee")
        return None
    try:
        resp = httpx.get(GEOCODE_URL, params={"address": format_address(address), "key": config.GOOGLE_MAPS_API_KEY},
                         timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Geocoding request failed: %s", e)
        return None
    if data.get("status") != "OK" or not data.get("results"):
        logger.warning("Geocoding failed: %s", data.get("status"))
        return None
    location = data["results"][0]["geometry"]["location"]
    return {"lat": location["lat"], "lng": location["lng"]}
