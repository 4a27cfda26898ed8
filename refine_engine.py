"""
Matching and leave-one-out refinements over a catalog snapshot.

    matches      listings satisfying every present dimension (AND), any value
                 of a set (OR), inclusive ranges; catalog order is kept
    refinements  for every dimension not pinned by an ExactFilter, the values
                 found among listings matching all *other* filters, each with
                 the count the query would return if that value were applied

Computing refinements from the leave-one-out subset keeps alternatives visible
when the current filters match nothing.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from filters import (
    BOOLEAN,
    CATEGORICAL,
    DIMENSIONS,
    LOCATION,
    NUMERIC,
    ExactFilter,
    Filter,
    FilterState,
    RangeFilter,
    SetFilter,
    filter_to_value,
    filter_value_sort_key,
)
from helpers import dedupe_casefold
from listing_normalizer import ListingRecord, listings_to_frame
from log import format_query_summary, log_message
from settings import (
    MINOR_UNITS_PER_MAJOR,
    PRICE_LOWER_QUANTILE,
    PRICE_UPPER_QUANTILE,
    REFINEMENT_PRIORITY,
    STREET_FALLBACK,
)

AREA_LAYERS = ("city", "district", "sub_district")
FINE_LAYERS = ("postcode_district", "street")

# (upper bound in major units, rounding step)
RENT_STEPS = [(1000, 50), (5000, 100), (math.inf, 500)]
SALE_STEPS = [(100000, 10000), (1000000, 50000), (math.inf, 100000)]
# Without a transaction type, prices below this (major units) are treated as rents.
RENT_SCALE_CEILING = 20000


@dataclass(frozen=True)
class RefinementEntry:
    filter_name: str
    filter_value: Any
    result_count: int

    def to_payload(self) -> Dict[str, Any]:
        v = self.filter_value
        if isinstance(v, RangeFilter):
            v = filter_to_value(v)
        return {"filter_name": self.filter_name, "filter_value": v, "result_count": int(self.result_count)}


@dataclass
class QueryResult:
    matches: List[ListingRecord] = field(default_factory=list)
    refinements: List[RefinementEntry] = field(default_factory=list)
    total_count: int = 0

    def refinements_for(self, dimension: str) -> List[RefinementEntry]:
        return [r for r in self.refinements if r.filter_name == dimension]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "total_count": int(self.total_count),
            "matches": [m.to_dict() for m in self.matches],
            "refinements": [r.to_payload() for r in self.refinements],
        }


def _bool_or_none(x: Any) -> Optional[bool]:
    if x is None or (isinstance(x, float) and math.isnan(x)):
        return None
    return bool(x)


def _key_or_none(x: Any) -> Optional[str]:
    if not isinstance(x, str) or not x.strip():
        return None
    return x.strip().casefold()


def _values_of(flt: Filter) -> List[Any]:
    if isinstance(flt, ExactFilter):
        return [flt.value]
    if isinstance(flt, SetFilter):
        return list(flt.values)
    return []


def _dimension_mask(frame: pd.DataFrame, dimension: str, flt: Filter) -> np.ndarray:
    kind = DIMENSIONS[dimension]

    if kind == NUMERIC:
        col = frame[dimension].to_numpy(dtype="float64")
        known = ~np.isnan(col)
        if isinstance(flt, RangeFilter):
            m = known.copy()
            if flt.min is not None:
                m &= col >= flt.min
            if flt.max is not None:
                m &= col <= flt.max
            return m
        return known & np.isin(col, [float(v) for v in _values_of(flt)])

    if kind == BOOLEAN:
        wanted = set(_values_of(flt))
        return np.array([_bool_or_none(x) in wanted for x in frame[dimension]], dtype=bool)

    wanted_keys = {str(v).casefold() for v in _values_of(flt)}
    if kind == LOCATION:
        return np.array([not wanted_keys.isdisjoint(ks) for ks in frame["location_keys"]], dtype=bool)
    return np.array([_key_or_none(x) in wanted_keys for x in frame[dimension]], dtype=bool)


def _all_of(masks: Iterable[np.ndarray], n: int) -> np.ndarray:
    out = np.ones(n, dtype=bool)
    for m in masks:
        out &= m
    return out


def round_to_nice(value: float, scale: str) -> int:
    steps = RENT_STEPS if scale == "rent" else SALE_STEPS
    step = next(s for upper, s in steps if value < upper)
    return int(math.floor(value / step + 0.5) * step)


def _price_scale(subset: pd.DataFrame, state: FilterState, prices_major: np.ndarray) -> Optional[str]:
    """rent / sale for the bands, or None when the subset mixes both."""
    tf = state.get("transaction_type")
    if isinstance(tf, ExactFilter):
        return str(tf.value).casefold()
    priced = subset[subset["price"].notna()]
    kinds = {k for k in (_key_or_none(x) for x in priced["transaction_type"]) if k}
    if len(kinds) > 1:
        return None
    if len(kinds) == 1:
        return kinds.pop()
    return "rent" if float(prices_major.max()) < RENT_SCALE_CEILING else "sale"


def price_bands(prices_minor: Iterable[float], scale: str) -> List[RangeFilter]:
    """
    Up to three inclusive bands cut at the configured quantiles of the
    observed prices, rounded to nice numbers for the scale. Two bands when
    the rounded cut points collide; none when every price is the same.
    """
    prices = np.sort(np.asarray(list(prices_minor), dtype="float64"))
    if prices.size == 0 or prices[0] == prices[-1]:
        return []
    major = prices / MINOR_UNITS_PER_MAJOR
    n = major.size
    t1 = float(major[min(int(math.floor(n * PRICE_LOWER_QUANTILE)), n - 1)])
    t2 = float(major[min(int(math.floor(n * PRICE_UPPER_QUANTILE)), n - 1)])
    r1 = round_to_nice(t1, scale)
    r2 = round_to_nice(t2, scale)
    if r2 <= r1:
        r2 = int(math.ceil(t2))

    c1 = r1 * MINOR_UNITS_PER_MAJOR
    c2 = r2 * MINOR_UNITS_PER_MAJOR
    if r2 > r1:
        bands = [RangeFilter(None, c1 - 1), RangeFilter(c1, c2), RangeFilter(c2 + 1, None)]
    else:
        bands = [RangeFilter(None, c1 - 1), RangeFilter(c1, None)]
    return [b for b in bands if b.max is None or b.max >= 0]


def _sorted_entries(dimension: str, counts: List[tuple]) -> List[RefinementEntry]:
    entries = [RefinementEntry(dimension, v, int(c)) for v, c in counts if int(c) > 0]
    entries.sort(key=lambda e: (-e.result_count, filter_value_sort_key(e.filter_value)))
    return entries


def _refine_categorical(dimension: str, subset: pd.DataFrame) -> List[RefinementEntry]:
    display: Dict[str, str] = {}
    counts: Dict[str, int] = {}
    for x in subset[dimension]:
        k = _key_or_none(x)
        if k is None:
            continue
        display.setdefault(k, x.strip())
        counts[k] = counts.get(k, 0) + 1
    return _sorted_entries(dimension, [(display[k], c) for k, c in counts.items()])


def _refine_counts(dimension: str, subset: pd.DataFrame) -> List[RefinementEntry]:
    col = subset[dimension].dropna()
    if col.empty:
        return []
    vc = col.astype("int64").value_counts()
    return _sorted_entries(dimension, [(int(v), int(c)) for v, c in vc.items()])


def _refine_boolean(dimension: str, subset: pd.DataFrame) -> List[RefinementEntry]:
    counts = {True: 0, False: 0}
    for x in subset[dimension]:
        b = _bool_or_none(x)
        if b is not None:
            counts[b] += 1
    return _sorted_entries(dimension, list(counts.items()))


def _refine_location(subset: pd.DataFrame, layers: Iterable[str]) -> List[RefinementEntry]:
    values = dedupe_casefold(v for layer in layers for v in subset[layer] if isinstance(v, str))
    keysets = list(subset["location_keys"])
    counts = []
    for v in values:
        k = v.casefold()
        counts.append((v, sum(1 for ks in keysets if k in ks)))
    return _sorted_entries("location", counts)


def _refine_price(subset: pd.DataFrame, state: FilterState) -> List[RefinementEntry]:
    col = subset["price"].to_numpy(dtype="float64")
    known = col[~np.isnan(col)]
    if known.size == 0:
        return []
    scale = _price_scale(subset, state, known / MINOR_UNITS_PER_MAJOR)
    if scale is None:
        return []
    counts = []
    for band in price_bands(known, scale):
        m = np.ones(known.size, dtype=bool)
        if band.min is not None:
            m &= known >= band.min
        if band.max is not None:
            m &= known <= band.max
        c = int(m.sum())
        # a band holding the whole subset does not narrow
        if c < len(subset):
            counts.append((band, c))
    return _sorted_entries("price", counts)


def _refine_dimension(dimension: str, subset: pd.DataFrame, state: FilterState) -> List[RefinementEntry]:
    if subset.empty:
        return []
    kind = DIMENSIONS[dimension]
    if dimension == "price":
        return _refine_price(subset, state)
    if kind == NUMERIC:
        return _refine_counts(dimension, subset)
    if kind == BOOLEAN:
        return _refine_boolean(dimension, subset)
    if kind == LOCATION:
        return _refine_location(subset, AREA_LAYERS)
    if kind == CATEGORICAL:
        return _refine_categorical(dimension, subset)
    return []


def query_properties(listings: Iterable[ListingRecord], filter_state: Optional[Any] = None) -> QueryResult:
    listings = list(listings or [])
    if filter_state is None:
        state = FilterState.empty()
    elif isinstance(filter_state, FilterState):
        state = filter_state
    else:
        state = FilterState(filter_state)

    if not listings:
        return QueryResult()

    frame = listings_to_frame(listings)
    n = len(frame)
    masks = {dim: _dimension_mask(frame, dim, flt) for dim, flt in state.items()}
    matched = _all_of(masks.values(), n)
    matches = [listings[i] for i in np.flatnonzero(matched)]
    total = len(matches)

    subsets: Dict[str, pd.DataFrame] = {}
    refinements: List[RefinementEntry] = []
    for dim in REFINEMENT_PRIORITY:
        if state.is_pinned(dim):
            continue
        others = _all_of((m for d, m in masks.items() if d != dim), n)
        subsets[dim] = frame[others]
        refinements.extend(_refine_dimension(dim, subsets[dim], state))

    narrows = any(0 < r.result_count < total for r in refinements)
    if STREET_FALLBACK and total > 1 and not narrows and "location" in subsets:
        fine = _refine_location(subsets["location"], AREA_LAYERS + FINE_LAYERS)
        rest = [r for r in refinements if r.filter_name != "location"]
        refinements = []
        for dim in REFINEMENT_PRIORITY:
            refinements.extend(fine if dim == "location" else [r for r in rest if r.filter_name == dim])

    log_message("DEBUG", format_query_summary(state.to_dict(), total, refinements))
    return QueryResult(matches=matches, refinements=refinements, total_count=total)
