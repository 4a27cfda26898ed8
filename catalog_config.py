import os
import re
from typing import Dict, List, Tuple

QWEN_BASE_URL = os.environ.get("QWEN_BASE_URL", "http://127.0.0.1:8000/v1")
QWEN_MODEL = os.environ.get("QWEN_MODEL", "./Qwen3-14B")
QWEN_API_KEY = os.environ.get("OPENAI_API_KEY", "dummy")

EXTRACT_FILTERS_SYSTEM = """You output STRICT JSON only (no markdown, no explanation).
You turn one customer message into property search filters for the tool described in the briefing.
Schema:
{
  "transaction_type": "rent"|"sale"|null,
  "property_type": string|string[]|null,
  "beds": int|int[]|{"min": int|null, "max": int|null}|null,
  "baths": int|int[]|{"min": int|null, "max": int|null}|null,
  "price": {"filter": "under"|"over"|"between", "value": number, "max_value": number|null}|null,
  "location": string|string[]|null,
  "furnished_type": "furnished"|"unfurnished"|"part-furnished"|null,
  "has_nearby_station": boolean|null,
  "include_all": boolean|null,
  "_replace_all": boolean|null
}
Rules:
- Only use values listed in the briefing's Available Filters section.
- price values are whole pounds; monthly for rentals.
- location must be one of the cities, districts or streets named in the briefing when possible.
- "at least N bedrooms" -> beds {"min": N, "max": null}. Studios are beds 0.
- "1 or 2 bed" -> beds [1, 2].
- Set _replace_all=true only when the customer explicitly starts a new search ("start over", "new search").
- Omit or null anything the customer did not mention.
"""

TRANSACTION_TYPE_ALIASES: Dict[str, str] = {
    "rent": "rent",
    "rental": "rent",
    "rentals": "rent",
    "to rent": "rent",
    "to-rent": "rent",
    "let": "rent",
    "lettings": "rent",
    "letting": "rent",
    "sale": "sale",
    "sales": "sale",
    "for sale": "sale",
    "for-sale": "sale",
    "buy": "sale",
    "buying": "sale",
}

PROPERTY_TYPE_FLAT_NAMES = {
    "flat",
    "flats",
    "apartment",
    "apartments",
    "studio",
    "flats / apartments",
    "ground flat",
    "maisonette",
    "duplex",
    "penthouse",
    "serviced apartments",
    "serviced apartment",
    "block of apartments",
    "block of apartment",
}
PROPERTY_TYPE_HOUSE_NAMES = {
    "house",
    "houses",
    "terraced",
    "terraced house",
    "detached",
    "detached house",
    "semi detached",
    "semi detached house",
    "town house",
    "mews",
    "cottage",
    "bungalow",
    "bungalows",
    "detached bungalow",
    "end of terrace",
    "link detached house",
    "country house",
}
PROPERTY_TYPE_OTHER_NAMES = {
    "house share",
    "flat share",
    "house / flat share",
    "house of multiple occupation",
    "retirement property",
    "parking",
    "land",
    "private halls",
    "barn conversion",
    "barn",
    "garages",
    "hotel room",
    "off plan",
    "park home",
    "retail property (high street)",
    "office",
}
PROPERTY_TYPE_UNKNOWN_NAMES = {"ask agent", "ask the agent", "unknown", "not specified", "not provided", "n/a", "na"}

FURNISH_UNKNOWN_NAMES = {"ask agent", "ask the agent", "unknown", "not specified", "not provided", "not known", "n/a", "na"}

# Outward code (1-2 letters, 1-2 digits, optional letter) plus optional inward code,
# anchored at the end of an address.
POSTCODE_TAIL_RE = re.compile(r"(?:^|[\s,])([A-Z]{1,2}\d{1,2}[A-Z]?)(?:\s*(\d[A-Z]{2}))?\s*$", re.I)
POSTCODE_OUTWARD_RE = re.compile(r"^([A-Z]{1,2}\d{1,2}[A-Z]?)(?:\s*\d[A-Z]{2})?$", re.I)

UNIT_PREFIX_RE = re.compile(
    r"^(?:flat|apartment|apt|unit|suite|studio|room|floor|plot)\s*[0-9]+[a-z]?\b\.?\s*",
    re.I,
)
HOUSE_NUMBER_RE = re.compile(r"^(?:no\.?\s*)?\d+[a-z]?(?:\s*[-/]\s*\d+[a-z]?)?\b[\s,]*", re.I)

PRICE_PCW_RE = re.compile(r"(?:\bpcw\b|\bp/?w\b|per\s*week|/\s*week|\bweekly\b)", re.I)
PRICE_NUMBER_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)")

# Location aliases accepted from tool payloads, most specific first.
LOCATION_PARAM_ALIASES: List[str] = [
    "street",
    "postcode",
    "postcode_district",
    "sub_district",
    "district",
    "county",
    "city",
]

PRICE_FILTER_SHAPES: List[Tuple[str, str]] = [
    ("under", '{"filter": "under", "value": 2000}'),
    ("over", '{"filter": "over", "value": 500000}'),
    ("between", '{"filter": "between", "value": 1000, "max_value": 2000}'),
]
