"""Prompt templates for the price advisor.

Each former handler variant lives on as a named template. Both templates ask
for the same output schema so the reconciler only has one shape to trust.
"""
import json
from dataclasses import asdict, dataclass
from typing import Callable, Sequence

from ..data.base import EvidenceItem, ListingDescription

OUTPUT_SCHEMA = """{
  "market_price_low": number,                     // INR, plain number, no commas
  "market_price_high": number,                    // >= market_price_low
  "suggested_price": number,                      // inside the band, quick-sale listing price
  "confidence": "low" | "medium" | "high",
  "why": string,                                  // short reasoning (<= 2 lines)
  "old_vs_new": { "launch_mrp": number | null, "typical_used": number | null },
  "sources": [ { "title": string, "url": string } ]
}"""

DOMAIN_HEURISTICS = {
    "vehicle": (
        "- Vehicles: new/good tyres + no accidents + all papers + 1st owner => +5-10%;\n"
        "  minor accidents, worn tyres, 2nd/3rd owner, expiring/expired PUC/insurance => -5-15%.\n"
        "- Higher km driven for the age lowers the price; very low km raises it slightly."
    ),
    "electronics": (
        "- Mobiles/Electronics: age > 2y or heavy wear => -10-20%; mint/boxed with bill => +5-10%.\n"
        "- Compare against the current launch/MRP price of the same model and storage variant."
    ),
    "property": (
        "- Properties: reason in INR per sqft from locality comparables, then adjust for BHK,\n"
        "  furnishing, facing, floor and amenities. Rentals are priced per month."
    ),
    "general": (
        "- Used goods: start from the new price, discount for age, wear and missing accessories."
    ),
}

@dataclass(frozen=True)
class ComposedPrompt:
    system: str
    user: str
    search_intent: str
    reference_price: float | None = None   # asking price, if the seller gave one

def _heuristics(listing: ListingDescription) -> str:
    return DOMAIN_HEURISTICS.get(listing.domain, DOMAIN_HEURISTICS["general"])

def _evidence_payload(evidence: Sequence[EvidenceItem]) -> list[dict]:
    return [{"title": e.title, "url": e.url, "snippet": e.snippet} for e in evidence]

def search_intent(listing: ListingDescription) -> str:
    """Compact one-line description of what comparables we are after."""
    v, p = listing.vehicle_info, listing.property_info
    bits = [
        listing.item_name, listing.category, listing.sub_category, p.property_type, p.bhk,
        listing.city, listing.state, listing.area,
        f"year {v.year_of_purchase}" if v.year_of_purchase else "",
        f"{v.km_driven} km" if v.km_driven else "",
        v.ownership, v.tyre_condition, v.accident_status, v.all_papers_available,
    ]
    return " • ".join(b for b in bits if b)

def _fmt(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

def _filled(details) -> dict:
    return {k: v for k, v in asdict(details).items() if v not in (None, "")}

def _other_details(listing: ListingDescription) -> str:
    return ", ".join(
        f"{k}={_fmt(v)}" for k, v in listing.attributes.items() if v not in (None, "", [], {})
    )

def comparables_template(listing: ListingDescription, evidence: Sequence[EvidenceItem]) -> ComposedPrompt:
    intent = search_intent(listing)
    system = f"""
You are a price advisor for a classifieds marketplace in India.

Derive 5-10 recent comparable listings (prioritize same city/state; else nearby/statewide) and any recent SOLD prices.
If web search is unavailable, use domain knowledge + heuristics, use a wider band and lower confidence.
Always output ONLY valid JSON, no markdown:

{OUTPUT_SCHEMA}

Adjustments guideline:
{_heuristics(listing)}

Currency is INR. Numbers are plain integers without thousands separators. Return JSON only.""".strip()

    v, p = listing.vehicle_info, listing.property_info
    lines = [
        f"Item: {listing.item_name}",
        f"Category: {listing.category}",
        f"Subcategory: {listing.sub_category}",
        f"Brand: {listing.brand}",
        f"Model: {listing.model}",
        f"Seller Type: {listing.seller_type}",
    ]
    if listing.domain == "vehicle":
        lines.append(
            f"Vehicle: year={_fmt(v.year_of_purchase)}, km={_fmt(v.km_driven)}, owner={v.ownership}, "
            f"tyre={v.tyre_condition}, accident={v.accident_status}, papers={v.all_papers_available}, "
            f"PUC={v.pollution_expiry}, tax={v.tax_expiry}, insurance={v.insurance_expiry}"
        )
    if listing.domain == "property":
        lines.append(
            f"Property: type={p.property_type}, bhk={p.bhk}, area_sqft={_fmt(p.area_sqft)}, facing={p.facing}, "
            f"furnishing={p.furnishing}, beds={_fmt(p.bedrooms)}, baths={_fmt(p.bathrooms)}"
        )
    other = _other_details(listing)
    if other:
        lines.append(f"Other details: {other}")
    location = ", ".join(x for x in (listing.area, listing.city, listing.state) if x)
    lines += [
        f"Location: {location}",
        f"Asking price: {_fmt(listing.asking_price)}",
        f"Short description: {listing.description[:240]}",
        f'Search intent: Find comparable & sold in/near {listing.locality} for "{intent}".',
    ]
    if evidence:
        lines.append("Web snippets (supporting context, may be noisy):")
        lines.append(json.dumps(_evidence_payload(evidence), ensure_ascii=False))
    return ComposedPrompt(
        system=system,
        user="\n".join(lines),
        search_intent=intent,
        reference_price=listing.asking_price,
    )

def quick_sale_template(listing: ListingDescription, evidence: Sequence[EvidenceItem]) -> ComposedPrompt:
    system = "\n".join([
        "You are a pricing analyst for a classifieds app in India.",
        "Return ONLY valid JSON. No markdown. Shape:",
        OUTPUT_SCHEMA,
        "Logic:",
        "- Use Indian market context and INR, plain numbers without thousands separators.",
        "- If brand/model present, bias to India (Flipkart/Amazon/OLX/Quikr references are fine).",
        "- If no web sources provided, still estimate with wider band and set confidence lower.",
        "- Suggested price should be inside the band and biased towards quick sale (10-15% below median if needed).",
        _heuristics(listing),
    ])
    item = {
        "category": listing.category,
        "subCategory": listing.sub_category,
        "brand": listing.brand,
        "model": listing.model,
        "title": listing.title,
        "city": listing.city,
        "state": listing.state,
        "area": listing.area,
        "price": listing.asking_price,
        "description": listing.description,
    }
    for key, details in (("vehicle", listing.vehicle_info), ("property", listing.property_info)):
        filled = _filled(details)
        if filled:
            item[key] = filled
    if listing.attributes:
        item["attributes"] = dict(listing.attributes)
    payload = {
        "input": item,
        "web_snippets": _evidence_payload(evidence),
    }
    return ComposedPrompt(
        system=system,
        user=json.dumps(payload, ensure_ascii=False, default=str),
        search_intent=search_intent(listing),
        reference_price=listing.asking_price,
    )

TEMPLATES: dict[str, Callable[[ListingDescription, Sequence[EvidenceItem]], ComposedPrompt]] = {
    "comparables": comparables_template,
    "quick_sale": quick_sale_template,
}

def compose_prompt(
    listing: ListingDescription,
    evidence: Sequence[EvidenceItem],
    template: str = "comparables",
) -> ComposedPrompt:
    """Build system + user text; unknown template names fall back to `comparables`."""
    return TEMPLATES.get(template, comparables_template)(listing, evidence)
