"""
Location gazetteer for a catalog snapshot.

Addresses are comma-separated, least specific part last:

    "123 High Street, Chelsea, Kensington and Chelsea, London, SW3 4AB"

    street            High Street
    sub-district      Chelsea
    district          Kensington and Chelsea
    city              London
    postcode district SW3

The gazetteer is the per-layer, case-insensitively deduplicated union of
those parts across a catalog. Building it is a full pass over the catalog,
so callers cache it per catalog version (see catalog_service).
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from catalog_config import HOUSE_NUMBER_RE, POSTCODE_OUTWARD_RE, POSTCODE_TAIL_RE, UNIT_PREFIX_RE
from helpers import _clean_display, _safe_text, dedupe_casefold, sort_casefold
from log import log_message
from settings import ADDRESS_UNAVAILABLE, POSTCODE_DISTRICT_MIN_SHARE

LAYERS = ("city", "district", "sub_district", "postcode_district", "street")


@dataclass(frozen=True)
class AddressLayers:
    city: Optional[str] = None
    district: Optional[str] = None
    sub_district: Optional[str] = None
    postcode_district: Optional[str] = None
    street: Optional[str] = None

    def tokens(self) -> Tuple[str, ...]:
        # most specific last
        return tuple(getattr(self, name) for name in LAYERS if getattr(self, name))

    def is_empty(self) -> bool:
        return not self.tokens()

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in LAYERS}


@dataclass
class LocationGazetteer:
    cities: List[str] = field(default_factory=list)
    districts: List[str] = field(default_factory=list)
    sub_districts: List[str] = field(default_factory=list)
    postcode_districts: List[str] = field(default_factory=list)
    streets: List[str] = field(default_factory=list)
    all_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "cities": list(self.cities),
            "districts": list(self.districts),
            "sub_districts": list(self.sub_districts),
            "postcode_districts": list(self.postcode_districts),
            "streets": list(self.streets),
            "all_keywords": list(self.all_keywords),
        }

    @classmethod
    def from_dict(cls, obj: Optional[Dict[str, Any]]) -> "LocationGazetteer":
        obj = obj or {}

        def _list(*keys: str) -> List[str]:
            for k in keys:
                if obj.get(k) is not None:
                    return [str(x) for x in obj.get(k) or []]
            return []

        return cls(
            cities=_list("cities"),
            districts=_list("districts"),
            sub_districts=_list("sub_districts", "subDistricts"),
            postcode_districts=_list("postcode_districts", "postcodeDistricts"),
            streets=_list("streets"),
            all_keywords=_list("all_keywords", "allKeywords"),
        )


def _has_letters(s: str) -> bool:
    return any(ch.isalpha() for ch in s)


def extract_postcode_district(value: Any) -> Optional[str]:
    """Outward code of a bare postcode value ("SW3 4AB" -> "SW3")."""
    s = _safe_text(value).upper()
    if not s:
        return None
    m = POSTCODE_OUTWARD_RE.match(s.replace("  ", " "))
    return m.group(1) if m else None


def _split_postcode(address: str) -> Tuple[str, Optional[str]]:
    m = POSTCODE_TAIL_RE.search(address)
    if not m:
        return address, None
    outward = m.group(1).upper()
    # A bare trailing token like "A1" with no inward code is only trusted
    # when it sits in its own comma segment.
    if m.group(2) is None:
        tail = address[m.start(1):].strip()
        head = address[: m.start(1)].rstrip()
        if head and not head.endswith(","):
            return address, None
        if not tail:
            return address, None
    rest = address[: m.start(1)].rstrip(" ,")
    return rest, outward


def _is_street_like(segment: str) -> bool:
    return segment[:1].isdigit() or bool(UNIT_PREFIX_RE.match(segment)) or bool(HOUSE_NUMBER_RE.match(segment))


def _clean_street(segment: str) -> str:
    s = _clean_display(segment)
    prev = None
    while s and s != prev:
        prev = s
        s = UNIT_PREFIX_RE.sub("", s).strip(" ,.;")
        s = HOUSE_NUMBER_RE.sub("", s).strip(" ,.;")
    return s if _has_letters(s) else ""


def parse_address_layers(address: Any, postcode: Any = None) -> AddressLayers:
    """
    Split a free-text address into location layers. Addresses with fewer
    segments fill only the layers they can; malformed input gives an empty
    AddressLayers rather than an error.
    """
    text = _safe_text(address)
    if not text or text.casefold() == ADDRESS_UNAVAILABLE.casefold():
        return AddressLayers(postcode_district=extract_postcode_district(postcode))

    rest, outward = _split_postcode(text)
    if outward is None:
        outward = extract_postcode_district(postcode)

    segments = [_clean_display(p) for p in rest.split(",")]
    segments = [p for p in segments if p]
    # Trailing segments with no letters ("", "12") carry no place name.
    while segments and not _has_letters(segments[-1]):
        segments.pop()

    city = district = sub_district = street = None
    n = len(segments)
    if n == 1:
        only = segments[0]
        if _is_street_like(only):
            street = _clean_street(only) or None
        elif _has_letters(only):
            city = only
    elif n >= 2:
        city = segments[-1]
        # Areas sit between the last numbered/unit segment and the city.
        numbered = [i for i, seg in enumerate(segments[:-1]) if _is_street_like(seg)]
        if numbered:
            idx = numbered[-1]
            # "12, High Street" or "Flat 3, Oak Court": the name follows the number
            while not _clean_street(segments[idx]) and idx + 1 < n - 1:
                idx += 1
            areas = segments[idx + 1 : -1]
            leading = segments[: idx + 1]
        else:
            area_count = min(2, n - 2)
            areas = segments[n - 1 - area_count : -1]
            leading = segments[: n - 1 - area_count]
        if len(areas) >= 1:
            district = areas[-1]
        if len(areas) >= 2:
            sub_district = areas[-2]
        for seg in reversed(leading):
            cleaned = _clean_street(seg)
            if cleaned:
                street = cleaned
                break

    def _place(v: Optional[str]) -> Optional[str]:
        if not v or not _has_letters(v):
            return None
        return v

    return AddressLayers(
        city=_place(city),
        district=_place(district),
        sub_district=_place(sub_district),
        postcode_district=outward,
        street=_place(street),
    )


def _layers_of(listing: Any) -> AddressLayers:
    layers = getattr(listing, "location", None)
    if isinstance(layers, AddressLayers):
        return layers
    if isinstance(listing, dict):
        return parse_address_layers(listing.get("address"), listing.get("postcode"))
    return parse_address_layers(getattr(listing, "address", None))


def extract_location_keywords(listings: Iterable[Any]) -> LocationGazetteer:
    listings = list(listings or [])
    if not listings:
        return LocationGazetteer()

    seen: Dict[str, List[str]] = {name: [] for name in LAYERS}
    postcode_counts: Dict[str, int] = {}
    empty = 0
    for listing in listings:
        layers = _layers_of(listing)
        if layers.is_empty():
            empty += 1
            continue
        for name in LAYERS:
            v = getattr(layers, name)
            if v:
                seen[name].append(v)
        if layers.postcode_district:
            key = layers.postcode_district.casefold()
            postcode_counts[key] = postcode_counts.get(key, 0) + 1

    per_layer = {name: sort_casefold(dedupe_casefold(values)) for name, values in seen.items()}

    if POSTCODE_DISTRICT_MIN_SHARE > 0:
        threshold = math.ceil(len(listings) * POSTCODE_DISTRICT_MIN_SHARE)
        per_layer["postcode_district"] = [
            p for p in per_layer["postcode_district"] if postcode_counts.get(p.casefold(), 0) >= threshold
        ]

    all_keywords = dedupe_casefold(v for name in LAYERS for v in per_layer[name])

    if empty:
        log_message("DEBUG", f"location keywords: {empty}/{len(listings)} addresses contributed nothing")
    log_message(
        "INFO",
        "location keywords extracted "
        f"cities={len(per_layer['city'])} districts={len(per_layer['district'])} "
        f"sub_districts={len(per_layer['sub_district'])} postcode_districts={len(per_layer['postcode_district'])} "
        f"streets={len(per_layer['street'])}",
    )
    return LocationGazetteer(
        cities=per_layer["city"],
        districts=per_layer["district"],
        sub_districts=per_layer["sub_district"],
        postcode_districts=per_layer["postcode_district"],
        streets=per_layer["street"],
        all_keywords=all_keywords,
    )
