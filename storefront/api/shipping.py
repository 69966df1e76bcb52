from fastapi import APIRouter, HTTPException

from storefront.models.schemas import ShippingQuoteRequest
from storefront.services import geocoding
from storefront.services.pricing import (
    STORE_LOCATION,
    bc_tax,
    format_currency,
    fallback_shipping_fee,
    haversine_km,
    is_victoria_bc,
    shipping_fee_for_distance,
)

router = APIRouter()

REQUIRED_FIELDS = ("address", "city", "state", "zip_code", "country")


@router.post("/calculate")
def calculate_shipping(payload: ShippingQuoteRequest):
    address = payload.shipping_address
    if not address:
        raise HTTPException(status_code=400, detail="Shipping address is required")
    if any(not address.get(field) for field in REQUIRED_FIELDS):
        raise HTTPException(status_code=400, detail="Complete shipping address is required")

    location = geocoding.geocode(address)
    if location is None:
        fee = fallback_shipping_fee(address["city"], address["state"])
        if is_victoria_bc(address["city"], address["state"]):
            return {"distance": 0, "shipping_fee": fee, "message": "Free shipping within Victoria area"}
        return {"distance": None, "shipping_fee": fee,
                "message": "Unable to calculate exact distance. Standard shipping fee applied."}

    distance = haversine_km(STORE_LOCATION["lat"], STORE_LOCATION["lng"], location["lat"], location["lng"])
    rounded = round(distance, 1)
    return {
        "distance": rounded,
        "shipping_fee": shipping_fee_for_distance(distance),
        "store_location": geocoding.STORE_ADDRESS,
        "customer_location": location,
        "message": "Free shipping within Victoria area" if distance <= 10
        else f"Shipping calculated based on {rounded}km distance",
    }


@router.get("/tax")
def estimate_tax(subtotal: float):
    if subtotal < 0:
        raise HTTPException(status_code=400, detail="Subtotal cannot be negative")
    tax = bc_tax(subtotal)
    return {"subtotal": subtotal, **tax, "formatted_total_tax": format_currency(tax["total_tax"])}
