"""
Tool-call boundary between the language model and the refinement engine.

Tool payloads use pounds and the agent-facing parameter names
(`beds`, `baths`, `price` as {"filter": "under"|"over"|"between", ...});
the engine works in pence on FilterState dimensions.
"""
from typing import Any, Dict, List, Optional, Tuple

from catalog_config import LOCATION_PARAM_ALIASES
from filters import FilterState, FilterStateError, RangeFilter
from helpers import (
    _canon_for_compare,
    _norm_furnish_value,
    _norm_property_type_value,
    _norm_transaction_type,
    _safe_text,
    _to_bool,
    _to_float,
    format_money,
    major_to_minor,
    minor_to_major,
)
from listing_normalizer import ListingRecord
from location_keywords import extract_postcode_district
from refine_engine import QueryResult, RefinementEntry
from settings import SAMPLE_SIZE

DIMENSION_PARAMS = {
    "transaction_type": "transaction_type",
    "property_type": "property_type",
    "bedrooms": "beds",
    "bathrooms": "baths",
    "price": "price",
    "location": "location",
    "furnished_type": "furnished_type",
    "has_nearby_station": "has_nearby_station",
}
PARAM_SYNONYMS = {"bedrooms": "beds", "bathrooms": "baths"}
LOCATION_KEYS = ["location"] + LOCATION_PARAM_ALIASES
KNOWN_PARAMS = set(DIMENSION_PARAMS.values()) | set(PARAM_SYNONYMS) | set(LOCATION_KEYS) | {"include_all"}

PROPERTY_SEARCH_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "search_properties",
        "description": (
            "Search the property catalog. Returns total_count, refinements (filter values still available "
            f"with their result counts) and the matching properties when there are {SAMPLE_SIZE} or fewer, "
            "when nothing narrows further, or when include_all is true."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "transaction_type": {"type": "string", "enum": ["rent", "sale"]},
                "property_type": {
                    "description": "e.g. flat, house",
                    "anyOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
                },
                "beds": {
                    "description": "number of bedrooms, a list of options, or {min, max}",
                    "anyOf": [
                        {"type": "integer"},
                        {"type": "array", "items": {"type": "integer"}},
                        {
                            "type": "object",
                            "properties": {"min": {"type": "integer"}, "max": {"type": "integer"}},
                        },
                    ],
                },
                "baths": {
                    "anyOf": [
                        {"type": "integer"},
                        {"type": "array", "items": {"type": "integer"}},
                        {
                            "type": "object",
                            "properties": {"min": {"type": "integer"}, "max": {"type": "integer"}},
                        },
                    ],
                },
                "price": {
                    "type": "object",
                    "description": "whole pounds; monthly for rentals",
                    "properties": {
                        "filter": {"type": "string", "enum": ["under", "over", "between"]},
                        "value": {"type": "number"},
                        "max_value": {"type": "number", "description": "only for 'between'"},
                    },
                    "required": ["filter", "value"],
                },
                "location": {
                    "description": "city, district, neighbourhood, postcode district or street",
                    "anyOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
                },
                "city": {"type": "string"},
                "district": {"type": "string"},
                "sub_district": {"type": "string"},
                "county": {"type": "string"},
                "street": {"type": "string"},
                "postcode": {"type": "string"},
                "postcode_district": {"type": "string", "description": "outward code, e.g. NW6"},
                "furnished_type": {"type": "string", "enum": ["furnished", "unfurnished", "part-furnished", "flexible"]},
                "has_nearby_station": {"type": "boolean"},
                "include_all": {"type": "boolean"},
            },
        },
    },
}


def _many(v: Any) -> List[Any]:
    return list(v) if isinstance(v, (list, tuple, set)) else [v]


def _normalized_text(dimension: str, v: Any, norm) -> Any:
    out = []
    for x in _many(v):
        n = norm(x)
        if n is None:
            raise FilterStateError(dimension, f"invalid value for '{dimension}': {x!r}")
        out.append(n)
    if not out:
        raise FilterStateError(dimension, f"empty value set for '{dimension}'")
    return out if isinstance(v, (list, tuple, set)) else out[0]


def _count(dimension: str, x: Any) -> Optional[int]:
    if x is None:
        return None
    if isinstance(x, bool):
        raise FilterStateError(dimension, f"invalid value for '{dimension}': {x!r}")
    if isinstance(x, str):
        f = _to_float(x)
        if f is None:
            raise FilterStateError(dimension, f"invalid value for '{dimension}': {x!r}")
        x = f
    if isinstance(x, float) and x.is_integer():
        x = int(x)
    return x


def _count_param(dimension: str, v: Any) -> Any:
    if isinstance(v, dict):
        return {"min": _count(dimension, v.get("min")), "max": _count(dimension, v.get("max"))}
    if isinstance(v, (list, tuple, set)):
        return [_count(dimension, x) for x in v]
    return _count(dimension, v)


def _pounds(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    return major_to_minor(v)


def _price_param(v: Any) -> RangeFilter:
    if not isinstance(v, dict):
        raise FilterStateError("price", f"invalid value for 'price': expected an object, got {v!r}")
    kind = _safe_text(v.get("filter")).lower()
    if not kind:
        lo, hi = _pounds(v.get("min")), _pounds(v.get("max"))
        return RangeFilter(lo, hi)
    value = _pounds(v.get("value"))
    if value is None:
        raise FilterStateError("price", f"invalid value for 'price': missing value in {v!r}")
    if kind == "under":
        return RangeFilter(None, value - 1)
    if kind == "over":
        return RangeFilter(value + 1, None)
    if kind == "between":
        hi = _pounds(v.get("max_value"))
        if hi is None:
            raise FilterStateError("price", "invalid range for 'price': max_value is required for 'between'")
        return RangeFilter(value, hi)
    raise FilterStateError("price", f"invalid value for 'price': unknown filter '{kind}'")


def _location_param(params: Dict[str, Any]) -> Any:
    for key in LOCATION_KEYS:
        v = params.get(key)
        if v is None or (isinstance(v, (list, str)) and not v):
            continue
        values = []
        for x in _many(v):
            s = _safe_text(x)
            if key == "postcode":
                s = extract_postcode_district(s) or s
            if not s:
                raise FilterStateError("location", f"invalid value for '{key}': {x!r}")
            values.append(s)
        return values if isinstance(v, (list, tuple, set)) else values[0]
    return None


def parse_tool_params(params: Optional[Dict[str, Any]]) -> Tuple[FilterState, bool]:
    params = dict(params or {})
    for key in params:
        if key.startswith("_"):
            continue
        if key not in KNOWN_PARAMS:
            raise FilterStateError(key, f"unknown filter '{key}'")
    for syn, canon in PARAM_SYNONYMS.items():
        if params.get(canon) is None and params.get(syn) is not None:
            params[canon] = params[syn]

    filters: Dict[str, Any] = {}
    if params.get("transaction_type") is not None:
        filters["transaction_type"] = _normalized_text("transaction_type", params["transaction_type"], _norm_transaction_type)
    if params.get("property_type") is not None:
        filters["property_type"] = _normalized_text("property_type", params["property_type"], _norm_property_type_value)
    if params.get("furnished_type") is not None:
        filters["furnished_type"] = _normalized_text("furnished_type", params["furnished_type"], _norm_furnish_value)
    if params.get("beds") is not None:
        filters["bedrooms"] = _count_param("bedrooms", params["beds"])
    if params.get("baths") is not None:
        filters["bathrooms"] = _count_param("bathrooms", params["baths"])
    if params.get("price") is not None:
        filters["price"] = _price_param(params["price"])
    location = _location_param(params)
    if location is not None:
        filters["location"] = location
    if params.get("has_nearby_station") is not None:
        b = _to_bool(params["has_nearby_station"])
        if b is None:
            raise FilterStateError("has_nearby_station", f"invalid value for 'has_nearby_station': {params['has_nearby_station']!r}")
        filters["has_nearby_station"] = b

    include_all = bool(_to_bool(params.get("include_all")))
    return FilterState(filters), include_all


def price_filter_payload(band: RangeFilter) -> Dict[str, Any]:
    """Engine price range (pence) -> tool price shape (pounds)."""
    if band.min is None:
        return {"filter": "under", "value": minor_to_major(band.max + 1)}
    if band.max is None:
        return {"filter": "over", "value": minor_to_major(band.min - 1)}
    return {"filter": "between", "value": minor_to_major(band.min), "max_value": minor_to_major(band.max)}


def refinement_payload(entry: RefinementEntry) -> Dict[str, Any]:
    v = entry.filter_value
    if isinstance(v, RangeFilter):
        v = price_filter_payload(v)
    return {"filter": DIMENSION_PARAMS.get(entry.filter_name, entry.filter_name), "value": v, "count": entry.result_count}


def listing_payload(rec: ListingRecord) -> Dict[str, Any]:
    return {
        "id": rec.listing_id,
        "url": rec.url,
        "title": rec.title,
        "transaction_type": rec.transaction_type,
        "price": minor_to_major(rec.price),
        "price_display": format_money(rec.price, per_month=rec.transaction_type == "rent") if rec.price is not None else None,
        "beds": rec.bedrooms,
        "baths": rec.bathrooms,
        "property_type": rec.property_type,
        "property_subtype": rec.property_subtype,
        "address": rec.address,
        "city": rec.location.city,
        "district": rec.location.district,
        "postcode_district": rec.location.postcode_district,
        "furnished_type": rec.furnished_type,
        "has_nearby_station": rec.has_nearby_station,
    }


def build_tool_response(result: QueryResult, include_all: bool = False) -> Dict[str, Any]:
    total = int(result.total_count)
    narrows = any(0 < r.result_count < total for r in result.refinements)
    show = include_all or total <= SAMPLE_SIZE or not narrows
    if total == 0:
        message = "No properties match these filters. Offer the refinements as alternatives."
    elif show:
        message = f"Returning all {total} matching properties."
    else:
        message = f"{total} properties match. Ask the customer to narrow down using the refinements."
    return {
        "total_count": total,
        "properties": [listing_payload(m) for m in result.matches] if show else [],
        "refinements": [refinement_payload(r) for r in result.refinements],
        "message": message,
    }


def _canonical_param_key(key: str) -> str:
    return PARAM_SYNONYMS.get(key, key)


def merge_filter_params(old: Optional[dict], new: Optional[dict]) -> dict:
    """
    Turn-over-turn patch: non-null values in `new` override, `_clear` drops
    the named keys (or everything when true), `_replace_all` starts over.
    A new location replaces any earlier location alias; include_all never
    carries over to the next turn.
    """
    new = new or {}
    out = {} if bool(new.get("_replace_all")) else {_canonical_param_key(k): v for k, v in (old or {}).items()}
    out.pop("include_all", None)

    clear = new.get("_clear")
    if clear is True:
        out = {}
    elif clear:
        for k in _many(clear):
            key = _canonical_param_key(str(k))
            if key == "location":
                for lk in LOCATION_KEYS:
                    out.pop(lk, None)
            out.pop(key, None)

    incoming = {_canonical_param_key(k): v for k, v in new.items() if not k.startswith("_")}
    if any(incoming.get(k) not in (None, "", []) for k in LOCATION_KEYS):
        for lk in LOCATION_KEYS:
            out.pop(lk, None)
    for k, v in incoming.items():
        if v is None:
            continue
        if isinstance(v, (list, dict, str)) and len(v) == 0:
            continue
        out[k] = v
    return out


def summarize_filter_changes(old_p: Optional[dict], new_p: Optional[dict]) -> str:
    old_p = old_p or {}
    new_p = new_p or {}
    changes = []
    keys = sorted(set(old_p) | set(new_p), key=lambda k: (k not in DIMENSION_PARAMS.values(), k))
    for k in keys:
        if k.startswith("_"):
            continue
        old_v = _canon_for_compare(old_p.get(k))
        new_v = _canon_for_compare(new_p.get(k))
        if old_v == new_v:
            continue
        if old_v is None and new_v is not None:
            changes.append(f"added {k}={new_p.get(k)}")
        elif old_v is not None and new_v is None:
            changes.append(f"removed {k}")
        else:
            changes.append(f"updated {k}: {old_p.get(k)} -> {new_p.get(k)}")
    return "; ".join(changes) if changes else "no filter changes"
