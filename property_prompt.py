from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from catalog_config import PRICE_FILTER_SHAPES
from filters import FilterState, RangeFilter
from helpers import format_money, sort_casefold
from listing_normalizer import ListingRecord, listings_to_frame
from location_keywords import LocationGazetteer, extract_location_keywords
from log import log_message
from refine_engine import QueryResult, query_properties
from settings import PROMPT_MAX_DISTRICTS, PROMPT_MAX_EXAMPLES, SAMPLE_SIZE


@dataclass
class CatalogStats:
    total: int = 0
    by_transaction_type: Dict[str, int] = field(default_factory=dict)
    price_ranges: Dict[str, Tuple[int, int]] = field(default_factory=dict)  # minor units
    bedrooms: Dict[int, int] = field(default_factory=dict)
    bathrooms: Dict[int, int] = field(default_factory=dict)
    property_types: Dict[str, int] = field(default_factory=dict)
    furnished_types: Dict[str, int] = field(default_factory=dict)
    near_station: int = 0

    @property
    def rent_count(self) -> int:
        return self.by_transaction_type.get("rent", 0)

    @property
    def sale_count(self) -> int:
        return self.by_transaction_type.get("sale", 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_transaction_type": dict(self.by_transaction_type),
            "price_ranges": {k: [lo, hi] for k, (lo, hi) in self.price_ranges.items()},
            "bedrooms": {str(k): v for k, v in self.bedrooms.items()},
            "bathrooms": {str(k): v for k, v in self.bathrooms.items()},
            "property_types": dict(self.property_types),
            "furnished_types": dict(self.furnished_types),
            "near_station": self.near_station,
        }


@dataclass
class QueryPrompt:
    prompt: str
    keywords: LocationGazetteer
    stats: CatalogStats

    def to_payload(self) -> Dict[str, Any]:
        return {"prompt": self.prompt, "keywords": self.keywords.to_dict(), "stats": self.stats.to_dict()}


def _value_counts(col: pd.Series) -> Dict[Any, int]:
    vc = col.dropna().value_counts()
    return {k: int(v) for k, v in sorted(vc.items(), key=lambda kv: (str(kv[0]).casefold(), str(kv[0])))}


def compute_catalog_stats(listings: Iterable[ListingRecord]) -> CatalogStats:
    listings = list(listings or [])
    if not listings:
        return CatalogStats()
    df = listings_to_frame(listings)

    by_tt = {str(k): v for k, v in _value_counts(df["transaction_type"]).items()}
    unknown_tt = int(df["transaction_type"].isna().sum())
    if unknown_tt:
        by_tt["unknown"] = unknown_tt

    price_ranges: Dict[str, Tuple[int, int]] = {}
    priced = df[df["price"].notna()].copy()
    priced["transaction_type"] = priced["transaction_type"].fillna("unknown")
    for tt, grp in priced.groupby("transaction_type", sort=True):
        price_ranges[str(tt)] = (int(grp["price"].min()), int(grp["price"].max()))

    def _int_counts(col: str) -> Dict[int, int]:
        s = df[col].dropna().astype("int64")
        return {int(k): int(v) for k, v in sorted(s.value_counts().items())}

    return CatalogStats(
        total=len(df),
        by_transaction_type=by_tt,
        price_ranges=price_ranges,
        bedrooms=_int_counts("bedrooms"),
        bathrooms=_int_counts("bathrooms"),
        property_types=_value_counts(df["property_type"]),
        furnished_types=_value_counts(df["furnished_type"]),
        near_station=sum(1 for r in listings if r.has_nearby_station is True),
    )


def _bed_label(n: int) -> str:
    if n == 0:
        return "studio"
    return f"{n} bed" + ("s" if n != 1 else "")


def _price_range_text(stats: CatalogStats, tt: str) -> Optional[str]:
    rng = stats.price_ranges.get(tt)
    if not rng:
        return None
    per_month = tt == "rent"
    return f"{format_money(rng[0], per_month)} to {format_money(rng[1], per_month)}"


def _join_capped(values: List[str], cap: int) -> str:
    if len(values) <= cap:
        return ", ".join(values)
    return ", ".join(values[:cap]) + f" (and {len(values) - cap} more)"


def _band_text(band: RangeFilter, per_month: bool) -> str:
    if band.min is None:
        return f"under {format_money(band.max + 1, per_month)}"
    if band.max is None:
        return f"over {format_money(band.min - 1, per_month)}"
    return f"{format_money(band.min, per_month)} to {format_money(band.max, per_month)}"


def _vocabulary(result: QueryResult) -> Dict[str, List[Any]]:
    vocab: Dict[str, List[Any]] = {}
    for r in result.refinements:
        vocab.setdefault(r.filter_name, []).append(r.filter_value)
    return vocab


def _inventory_section(stats: CatalogStats, parts: List[str]) -> None:
    rent, sale = stats.rent_count, stats.sale_count
    parts.append("## Inventory")
    parts.append(f"- {stats.total} properties in total")
    if rent and not sale:
        parts.append(f"- ALL PROPERTIES ARE FOR RENT ({rent} rentals). Do not ask whether the customer wants to rent or buy.")
        if _price_range_text(stats, "rent"):
            parts.append(f"  - Price range: {_price_range_text(stats, 'rent')}")
    elif sale and not rent:
        parts.append(f"- ALL PROPERTIES ARE FOR SALE ({sale} sales). Do not ask whether the customer wants to rent or buy.")
        if _price_range_text(stats, "sale"):
            parts.append(f"  - Price range: {_price_range_text(stats, 'sale')}")
    elif rent and sale:
        parts.append("- Mixed inventory: both rentals and sales are available")
        parts.append(f"  - Rentals: {rent} properties")
        if _price_range_text(stats, "rent"):
            parts.append(f"    - Price range: {_price_range_text(stats, 'rent')}")
        parts.append(f"  - Sales: {sale} properties")
        if _price_range_text(stats, "sale"):
            parts.append(f"    - Price range: {_price_range_text(stats, 'sale')}")
        parts.append("  - Always ask whether the customer wants to rent or buy first")
    if stats.by_transaction_type.get("unknown"):
        parts.append(f"- {stats.by_transaction_type['unknown']} properties have no rent/sale marker")

    if stats.bedrooms:
        parts.append("")
        parts.append("### Bedrooms")
        for beds, count in stats.bedrooms.items():
            parts.append(f"- {_bed_label(beds)}: {count} properties")
    if stats.property_types:
        parts.append("")
        parts.append("### Property types")
        parts.append(", ".join(f"{k} ({v})" for k, v in stats.property_types.items()))
    if stats.furnished_types:
        parts.append("")
        parts.append("### Furnishing")
        parts.append(", ".join(f"{k} ({v})" for k, v in stats.furnished_types.items()))
    if stats.near_station:
        parts.append("")
        parts.append(f"{stats.near_station} properties are near a train or tube station.")


def _locations_section(gazetteer: LocationGazetteer, parts: List[str]) -> None:
    parts.append("## Locations")
    if not (gazetteer.cities or gazetteer.districts):
        parts.append("No city or district information is available; search by street or postcode instead.")
        return
    if gazetteer.cities:
        parts.append(f"- Cities: {_join_capped(gazetteer.cities, PROMPT_MAX_DISTRICTS)}")
    if gazetteer.districts:
        parts.append(f"- Districts: {_join_capped(gazetteer.districts, PROMPT_MAX_DISTRICTS)}")
    if gazetteer.sub_districts:
        parts.append(f"- Neighbourhoods: {_join_capped(gazetteer.sub_districts, PROMPT_MAX_DISTRICTS)}")
    if gazetteer.postcode_districts:
        parts.append(f"- Postcode districts: {_join_capped(gazetteer.postcode_districts, PROMPT_MAX_DISTRICTS)}")


def _filters_section(stats: CatalogStats, vocab: Dict[str, List[Any]], parts: List[str]) -> None:
    rent, sale = stats.rent_count, stats.sale_count
    parts.append("## Available filters")
    if rent and sale:
        parts.append('- `transaction_type`: "rent" or "sale" (ask and set this first, inventory is mixed)')
    elif rent:
        parts.append('- `transaction_type`: always "rent" (all properties are rentals)')
    elif sale:
        parts.append('- `transaction_type`: always "sale" (all properties are for sale)')
    if vocab.get("bedrooms"):
        beds = sorted(vocab["bedrooms"])
        parts.append(f"- `beds`: {', '.join(str(b) for b in beds)} (a number, a list, or {{\"min\": N}})")
    if vocab.get("bathrooms"):
        baths = sorted(vocab["bathrooms"])
        parts.append(f"- `baths`: {', '.join(str(b) for b in baths)}")
    parts.append("- `location`: any city, district, neighbourhood, postcode district or street named in this briefing")
    parts.append("- `price`: whole pounds" + (", monthly for rentals" if rent else "") + ", in one of these shapes:")
    for _, example in PRICE_FILTER_SHAPES:
        parts.append(f"  - `{example}`")
    if vocab.get("property_type"):
        types = sort_casefold(str(v) for v in vocab["property_type"])
        parts.append(f"- `property_type`: {', '.join(types)}")
    if vocab.get("furnished_type"):
        furn = sort_casefold(str(v) for v in vocab["furnished_type"])
        parts.append(f"- `furnished_type`: {', '.join(furn)}")
    if True in vocab.get("has_nearby_station", []):
        parts.append("- `has_nearby_station`: true for properties near a train or tube station")
    parts.append(
        f"- `include_all`: true returns every match with full details. Only use it when there are {SAMPLE_SIZE} "
        "or fewer matches or the customer refuses to narrow further."
    )


def _example_questions(stats: CatalogStats, gazetteer: LocationGazetteer, vocab: Dict[str, List[Any]]) -> List[str]:
    out: List[str] = []
    if stats.rent_count and stats.sale_count:
        out.append("Are you looking to rent or to buy?")
    beds = sorted(vocab.get("bedrooms", []))
    if len(beds) > 1:
        out.append(f"How many bedrooms do you need? We have {_bed_label(beds[0])} to {_bed_label(beds[-1])} homes.")
    areas = (gazetteer.districts or gazetteer.cities)[:2]
    if len(areas) == 2:
        out.append(f"Which area do you prefer, for example {areas[0]} or {areas[1]}?")
    elif len(areas) == 1:
        out.append(f"Would {areas[0]} work for you?")
    bands = [b for b in vocab.get("price", []) if isinstance(b, RangeFilter)]
    if bands:
        per_month = bool(stats.rent_count) and not stats.sale_count
        options = " or ".join(_band_text(b, per_month) for b in bands[:2])
        out.append(f"What is your budget, {options}?")
    types = sort_casefold(str(v) for v in vocab.get("property_type", []))
    if len(types) > 1:
        out.append(f"Would you prefer a {types[0]} or a {types[1]}?")
    if len(vocab.get("furnished_type", [])) > 1:
        out.append("Do you need it furnished or unfurnished?")
    return out[:PROMPT_MAX_EXAMPLES]


def _results_section(parts: List[str]) -> None:
    parts.append("## Handling results")
    parts.append("The search tool returns `total_count`, `refinements`, and the listings themselves when:")
    parts.append(f"- there are {SAMPLE_SIZE} or fewer matches, or")
    parts.append("- no refinement can narrow the results any further, or")
    parts.append("- `include_all` is true.")
    parts.append("")
    parts.append("Response strategy:")
    parts.append("- Many matches: ask one narrowing question at a time, using the values in `refinements` with the highest counts.")
    parts.append("- Zero matches: tell the customer, then offer the alternatives listed in `refinements` for the filter they could relax.")
    parts.append("- Location not recognised: present the available cities and districts from this briefing.")
    parts.append("- Never invent properties, prices or addresses that the tool did not return.")


def generate_property_query_prompt(
    catalog_id: str,
    listings: Iterable[ListingRecord],
    gazetteer: Optional[LocationGazetteer] = None,
    catalog_name: Optional[str] = None,
) -> QueryPrompt:
    """
    Briefing for the language model that drives the search tool: inventory,
    location coverage, legal filter values and how to use the results.
    Output depends only on the catalog contents.
    """
    listings = list(listings or [])
    name = catalog_name or catalog_id
    if not listings:
        log_message("INFO", f"prompt catalog={catalog_id} has no listings")
        return QueryPrompt(prompt=f"No properties available for {name}.", keywords=LocationGazetteer(), stats=CatalogStats())

    if gazetteer is None:
        gazetteer = extract_location_keywords(listings)
    stats = compute_catalog_stats(listings)
    vocab = _vocabulary(query_properties(listings, FilterState.empty()))

    parts: List[str] = [f"# Property search briefing: {name}", ""]
    _inventory_section(stats, parts)
    parts.append("")
    _locations_section(gazetteer, parts)
    parts.append("")
    _filters_section(stats, vocab, parts)

    examples = _example_questions(stats, gazetteer, vocab)
    if examples:
        parts.append("")
        parts.append("## Example narrowing questions")
        for q in examples:
            parts.append(f'- "{q}"')
    parts.append("")
    _results_section(parts)

    prompt = "\n".join(parts).strip() + "\n"
    log_message("INFO", f"prompt catalog={catalog_id} listings={stats.total} chars={len(prompt)}")
    return QueryPrompt(prompt=prompt, keywords=gazetteer, stats=stats)
