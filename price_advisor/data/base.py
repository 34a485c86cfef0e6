from typing import Any, Dict, List, Optional, Protocol
from dataclasses import dataclass, field

# ----- Data shapes (thin & explicit) -----

@dataclass(frozen=True)
class VehicleDetails:
    year_of_purchase: Optional[int] = None
    km_driven: Optional[int] = None
    ownership: str = ""            # e.g. "1st owner"
    tyre_condition: str = ""
    accident_status: str = ""
    all_papers_available: str = ""
    pollution_expiry: str = ""
    tax_expiry: str = ""
    insurance_expiry: str = ""

@dataclass(frozen=True)
class PropertyDetails:
    property_type: str = ""        # e.g. "Apartment", "Plot"
    bhk: str = ""
    furnishing: str = ""
    facing: str = ""
    area_sqft: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None

@dataclass(frozen=True)
class ListingDescription:
    category: str
    domain: str = "general"        # vehicle | electronics | property | general
    sub_category: str = ""
    seller_type: str = ""
    brand: str = ""
    model: str = ""
    title: str = ""
    city: str = ""
    state: str = ""
    area: str = ""
    asking_price: Optional[float] = None
    description: str = ""
    vehicle_info: VehicleDetails = field(default_factory=VehicleDetails)
    property_info: PropertyDetails = field(default_factory=PropertyDetails)
    # Unrecognised keys from the form, kept as-is
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def item_name(self) -> str:
        return self.title or f"{self.brand} {self.model}".strip()

    @property
    def locality(self) -> str:
        return self.city or self.state or "India"

@dataclass(frozen=True)
class EvidenceItem:
    title: str
    url: str                       # unique within an evidence set
    snippet: str = ""

# ----- Protocols (interfaces) -----

class SearchClient(Protocol):
    async def search(self, query: str, max_results: int) -> List[EvidenceItem]: ...
