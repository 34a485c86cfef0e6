"""Turn the marketplace form payload into a ListingDescription."""
import re
from typing import Any, Mapping

from ..core.errors import ValidationError
from ..core.utils import clean_text, lenient_number
from ..data.base import ListingDescription, PropertyDetails, VehicleDetails

# Form keys we understand; anything else lands in `attributes`
_KNOWN_KEYS = {
    "category", "subCategory", "sellerType", "brand", "model", "title",
    "state", "city", "area", "price", "askingPrice", "descPlain",
    "kmDriven", "yearOfPurchase", "ownership", "tyreCondition", "accidentStatus",
    "allPapersAvail", "pollutionExpiry", "taxExpiry", "insuranceExpiry",
    "propertyType", "bhk", "furnishing", "facing", "propertyArea", "bedrooms", "bathrooms",
}

_DOMAIN_KEYWORDS = (
    ("property", re.compile(r"\b(?:propert(?:y|ies)|real ?estate|flats?|apartments?|houses?|villas?|plots?|rent(?:al)?s?)\b", re.I)),
    ("vehicle", re.compile(r"\b(?:cars?|bikes?|motor\w*|scooters?|vehicles?|trucks?|auto\w*|tractors?|bicycles?|cycles?)\b", re.I)),
    ("electronics", re.compile(r"\b(?:mobiles?|(?:smart)?phones?|electronics?|laptops?|computers?|tablets?|tvs?|televisions?|cameras?|appliances?|consoles?)\b", re.I)),
)

def _int_or_none(value: Any) -> int | None:
    num = lenient_number(value)
    if num is None or num < 0:
        return None
    return int(num)

def _non_negative(value: Any) -> float | None:
    num = lenient_number(value)
    if num is None or num < 0:
        return None
    return num

def _match_domain(text: str) -> str | None:
    for domain, pattern in _DOMAIN_KEYWORDS:
        if pattern.search(text):
            return domain
    return None

def detect_domain(category: str, sub_category: str = "", has_property_fields: bool = False) -> str:
    """Category decides; the subcategory is only consulted when the category says nothing."""
    if has_property_fields:
        return "property"
    return _match_domain(category) or _match_domain(sub_category) or "general"

def normalize_listing(
    raw: Mapping[str, Any] | None,
    required: tuple[str, ...] = ("category",),
) -> ListingDescription:
    """
    Coerce a raw attribute bag into a ListingDescription.

    Strings are trimmed (missing -> ""), numbers parsed leniently (junk or
    negative -> None). Raises ValidationError when a field named in
    `required` is blank; `category` is always required.
    """
    data = dict(raw or {})
    text = {k: clean_text(data.get(k)) for k in _KNOWN_KEYS}

    vehicle = VehicleDetails(
        year_of_purchase=_int_or_none(data.get("yearOfPurchase")),
        km_driven=_int_or_none(data.get("kmDriven")),
        ownership=text["ownership"],
        tyre_condition=text["tyreCondition"],
        accident_status=text["accidentStatus"],
        all_papers_available=text["allPapersAvail"],
        pollution_expiry=text["pollutionExpiry"],
        tax_expiry=text["taxExpiry"],
        insurance_expiry=text["insuranceExpiry"],
    )
    prop = PropertyDetails(
        property_type=text["propertyType"],
        bhk=text["bhk"],
        furnishing=text["furnishing"],
        facing=text["facing"],
        area_sqft=_non_negative(data.get("propertyArea")),
        bedrooms=_int_or_none(data.get("bedrooms")),
        bathrooms=_int_or_none(data.get("bathrooms")),
    )
    price = data.get("price")
    if price in (None, ""):
        price = data.get("askingPrice")

    listing = ListingDescription(
        category=text["category"],
        domain=detect_domain(text["category"], text["subCategory"], bool(prop.property_type or prop.bhk)),
        sub_category=text["subCategory"],
        seller_type=text["sellerType"],
        brand=text["brand"],
        model=text["model"],
        title=text["title"],
        city=text["city"],
        state=text["state"],
        area=text["area"],
        asking_price=_non_negative(price),
        description=text["descPlain"],
        vehicle_info=vehicle,
        property_info=prop,
        attributes={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
    )

    missing = [f for f in dict.fromkeys(("category",) + tuple(required)) if _is_blank(getattr(listing, f, None))]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", missing=missing)
    return listing

def _is_blank(value: Any) -> bool:
    # A zero asking price counts as not given
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (int, float)):
        return value <= 0
    return False
