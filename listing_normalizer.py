import hashlib
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from helpers import (
    _norm_furnish_value,
    _norm_property_type_value,
    _norm_transaction_type,
    _safe_text,
    _to_bool,
    _to_count,
    parse_price_to_minor,
)
from location_keywords import AddressLayers, parse_address_layers
from log import log_message
from settings import ADDRESS_UNAVAILABLE

ID_KEYS = ("listing_id", "id", "property_id", "external_id", "uprn")
ADDRESS_KEYS = ("address", "full_address", "displayAddress", "display_address")
POSTCODE_KEYS = ("postcode", "postalCode", "postal_code", "outcode")


@dataclass(frozen=True)
class ListingRecord:
    listing_id: str
    transaction_type: Optional[str] = None  # rent / sale
    price: Optional[int] = None  # minor units (pence), monthly for rentals
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    property_type: Optional[str] = None
    property_subtype: Optional[str] = None
    address: str = ADDRESS_UNAVAILABLE
    location: AddressLayers = field(default_factory=AddressLayers)
    location_tokens: Tuple[str, ...] = ()
    furnished_type: Optional[str] = None
    has_nearby_station: Optional[bool] = None
    url: Optional[str] = None
    title: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.pop("raw", None)
        d["location"] = self.location.to_dict()
        d["location_tokens"] = list(self.location_tokens)
        return d


@dataclass
class NormalizeResult:
    listings: List[ListingRecord] = field(default_factory=list)
    skipped: int = 0
    skipped_reasons: Dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.skipped_reasons[reason] = self.skipped_reasons.get(reason, 0) + 1


def _first(raw: Dict[str, Any], keys: Iterable[str]) -> Any:
    for k in keys:
        v = raw.get(k)
        if v is None or isinstance(v, (dict, list)):
            continue
        if not _safe_text(v):
            continue
        return v
    return None


def _synth_id(address: str) -> str:
    h = hashlib.sha1(address.casefold().encode("utf-8")).hexdigest()[:16]
    return f"addr-{h}"


def _pick_transaction_type(raw: Dict[str, Any]) -> Optional[str]:
    for k in ("transaction_type", "transactionType", "channel", "type"):
        t = _norm_transaction_type(raw.get(k))
        if t:
            return t
    if isinstance(raw.get("lettings"), dict):
        return "rent"
    return None


def _pick_price(raw: Dict[str, Any]) -> Optional[int]:
    v = raw.get("price")
    if v is None:
        for k in ("price_pcm", "rent_pcm", "amount"):
            if raw.get(k) is not None:
                return parse_price_to_minor(raw.get(k))
        if raw.get("price_pw") is not None:
            return parse_price_to_minor({"amount": raw.get("price_pw"), "frequency": "weekly"})
        return None
    if isinstance(v, dict) and "amount" not in v and "value" not in v:
        # {"displayPrices": [...], "primaryPrice": "£1,250 pcm"} style blocks
        for k in ("primaryPrice", "displayPrice", "display"):
            if v.get(k) is not None:
                return parse_price_to_minor(v.get(k))
        return None
    if isinstance(v, (int, float)) and raw.get("frequency") is not None:
        return parse_price_to_minor({"amount": v, "frequency": raw.get("frequency")})
    return parse_price_to_minor(v)


def _pick_furnishing(raw: Dict[str, Any]) -> Optional[str]:
    v = raw.get("furnished_type", raw.get("furnishedType", raw.get("furnish_type")))
    if v is None and isinstance(raw.get("lettings"), dict):
        v = raw["lettings"].get("furnishType")
    return _norm_furnish_value(v)


def _pick_station(raw: Dict[str, Any]) -> Optional[bool]:
    if raw.get("has_nearby_station") is not None:
        return _to_bool(raw.get("has_nearby_station"))
    stations = raw.get("nearestStations", raw.get("nearest_stations"))
    if isinstance(stations, list):
        return len(stations) > 0
    return None


def normalize_record(raw: Dict[str, Any]) -> Tuple[Optional[ListingRecord], Optional[str]]:
    """One raw record -> (record, None) or (None, skip reason)."""
    if not isinstance(raw, dict):
        return None, "not_a_mapping"

    address = _safe_text(_first(raw, ADDRESS_KEYS))
    listing_id = _safe_text(_first(raw, ID_KEYS))
    if not listing_id and not address:
        return None, "no_id_or_address"
    if not listing_id:
        listing_id = _synth_id(address)

    postcode = _first(raw, POSTCODE_KEYS)
    layers = parse_address_layers(address, postcode)

    subtype = raw.get("property_subtype", raw.get("propertySubType"))
    raw_type = raw.get("property_type", raw.get("propertyType"))
    if raw_type is None and raw.get("type") is not None and _norm_transaction_type(raw.get("type")) is None:
        raw_type = raw.get("type")

    rec = ListingRecord(
        listing_id=listing_id,
        transaction_type=_pick_transaction_type(raw),
        price=_pick_price(raw),
        bedrooms=_to_count(raw.get("bedrooms", raw.get("beds"))),
        bathrooms=_to_count(raw.get("bathrooms", raw.get("baths"))),
        property_type=_norm_property_type_value(raw_type),
        property_subtype=_safe_text(subtype or raw_type) or None,
        address=address or ADDRESS_UNAVAILABLE,
        location=layers,
        location_tokens=layers.tokens(),
        furnished_type=_pick_furnishing(raw),
        has_nearby_station=_pick_station(raw),
        url=_safe_text(raw.get("url")) or None,
        title=_safe_text(raw.get("title")) or None,
        raw=dict(raw),
    )
    return rec, None


def normalize(raw_listings: Optional[Iterable[Any]]) -> NormalizeResult:
    result = NormalizeResult()
    seen_ids = set()
    total = 0
    for raw in raw_listings or []:
        total += 1
        rec, reason = normalize_record(raw)
        if rec is None:
            result.skip(reason or "unparseable")
            continue
        if rec.listing_id in seen_ids:
            result.skip("duplicate_id")
            continue
        seen_ids.add(rec.listing_id)
        result.listings.append(rec)

    if result.skipped:
        log_message(
            "WARN",
            f"normalize skipped {result.skipped}/{total} records reasons={result.skipped_reasons}",
        )
    else:
        log_message("DEBUG", f"normalize kept {len(result.listings)}/{total} records")
    return result


FRAME_COLUMNS = [
    "listing_id",
    "transaction_type",
    "price",
    "bedrooms",
    "bathrooms",
    "property_type",
    "furnished_type",
    "has_nearby_station",
    "location_keys",
    "city",
    "district",
    "sub_district",
    "postcode_district",
    "street",
]


def listings_to_frame(listings: List[ListingRecord]) -> pd.DataFrame:
    """
    Columnar view used by the engine. Counts and prices are float columns
    (NaN for unknown) so range comparisons never match a missing value.
    """
    rows = []
    for r in listings or []:
        rows.append(
            {
                "listing_id": r.listing_id,
                "transaction_type": r.transaction_type,
                "price": float(r.price) if r.price is not None else float("nan"),
                "bedrooms": float(r.bedrooms) if r.bedrooms is not None else float("nan"),
                "bathrooms": float(r.bathrooms) if r.bathrooms is not None else float("nan"),
                "property_type": r.property_type,
                "furnished_type": r.furnished_type,
                "has_nearby_station": r.has_nearby_station,
                "location_keys": frozenset(t.casefold() for t in r.location_tokens),
                **r.location.to_dict(),
            }
        )
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    for c in ("price", "bedrooms", "bathrooms"):
        df[c] = df[c].astype("float64")
    df["has_nearby_station"] = df["has_nearby_station"].astype(object)
    return df.reset_index(drop=True)
