"""
Filter-state for catalog queries.

Each dimension holds one tagged filter:

    ExactFilter(value)          a single value ("pins" the dimension)
    RangeFilter(min, max)       inclusive bounds, either side open
    SetFilter(values)           any of the values

Shapes are checked when a FilterState is built, so a malformed constraint is
rejected with a FilterStateError instead of being silently dropped.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from helpers import _norm_transaction_type, _safe_text

CATEGORICAL = "categorical"
NUMERIC = "numeric"
LOCATION = "location"
BOOLEAN = "boolean"

DIMENSIONS: Dict[str, str] = {
    "transaction_type": CATEGORICAL,
    "property_type": CATEGORICAL,
    "price": NUMERIC,
    "bedrooms": NUMERIC,
    "bathrooms": NUMERIC,
    "location": LOCATION,
    "furnished_type": CATEGORICAL,
    "has_nearby_station": BOOLEAN,
}


class FilterStateError(ValueError):
    def __init__(self, dimension: Optional[str], message: str):
        super().__init__(message)
        self.dimension = dimension


@dataclass(frozen=True)
class ExactFilter:
    value: Any


@dataclass(frozen=True)
class RangeFilter:
    min: Optional[int] = None
    max: Optional[int] = None

    def contains(self, v: Optional[float]) -> bool:
        if v is None or (isinstance(v, float) and math.isnan(v)):
            return False
        if self.min is not None and v < self.min:
            return False
        if self.max is not None and v > self.max:
            return False
        return True


@dataclass(frozen=True)
class SetFilter:
    values: Tuple[Any, ...]


Filter = Union[ExactFilter, RangeFilter, SetFilter]


def _kind(dimension: str) -> str:
    kind = DIMENSIONS.get(dimension)
    if kind is None:
        raise FilterStateError(dimension, f"unknown filter dimension '{dimension}'")
    return kind


def _check_scalar(dimension: str, kind: str, v: Any) -> Any:
    if kind == NUMERIC:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise FilterStateError(dimension, f"invalid value for '{dimension}': expected a number, got {v!r}")
        if isinstance(v, float):
            if math.isnan(v) or not v.is_integer():
                raise FilterStateError(dimension, f"invalid value for '{dimension}': expected a whole number, got {v!r}")
            v = int(v)
        if v < 0:
            raise FilterStateError(dimension, f"invalid value for '{dimension}': {v} is negative")
        return v
    if kind == BOOLEAN:
        if not isinstance(v, bool):
            raise FilterStateError(dimension, f"invalid value for '{dimension}': expected true/false, got {v!r}")
        return v
    if not isinstance(v, str) or not _safe_text(v):
        raise FilterStateError(dimension, f"invalid value for '{dimension}': expected a non-empty string, got {v!r}")
    if dimension == "transaction_type":
        canon = _norm_transaction_type(v)
        if canon is None:
            raise FilterStateError(dimension, f"invalid value for '{dimension}': expected rent or sale, got {v!r}")
        return canon
    return v.strip()


def validate_filter(dimension: str, flt: Any) -> Filter:
    kind = _kind(dimension)
    if isinstance(flt, ExactFilter):
        return ExactFilter(_check_scalar(dimension, kind, flt.value))
    if isinstance(flt, SetFilter):
        values = tuple(flt.values or ())
        if not values:
            raise FilterStateError(dimension, f"empty value set for '{dimension}'")
        return SetFilter(tuple(_check_scalar(dimension, kind, v) for v in values))
    if isinstance(flt, RangeFilter):
        if kind != NUMERIC:
            raise FilterStateError(dimension, f"range filter not supported for '{dimension}'")
        lo = None if flt.min is None else _check_scalar(dimension, kind, flt.min)
        hi = None if flt.max is None else _check_scalar(dimension, kind, flt.max)
        if lo is None and hi is None:
            raise FilterStateError(dimension, f"invalid range for '{dimension}': no bounds given")
        if lo is not None and hi is not None and lo > hi:
            raise FilterStateError(dimension, f"invalid range for '{dimension}': min {lo} > max {hi}")
        return RangeFilter(lo, hi)
    raise FilterStateError(dimension, f"invalid filter for '{dimension}': {flt!r}")


def filter_from_value(dimension: str, v: Any) -> Filter:
    """Plain value -> tagged filter: scalar is exact, list is a set, {"min","max"} is a range."""
    if isinstance(v, (ExactFilter, RangeFilter, SetFilter)):
        return validate_filter(dimension, v)
    if isinstance(v, dict):
        unknown = set(v.keys()) - {"min", "max"}
        if unknown:
            raise FilterStateError(dimension, f"invalid range for '{dimension}': unexpected keys {sorted(unknown)}")
        return validate_filter(dimension, RangeFilter(v.get("min"), v.get("max")))
    if isinstance(v, (list, tuple, set, frozenset)):
        return validate_filter(dimension, SetFilter(tuple(v)))
    return validate_filter(dimension, ExactFilter(v))


def filter_to_value(flt: Filter) -> Any:
    if isinstance(flt, ExactFilter):
        return flt.value
    if isinstance(flt, RangeFilter):
        return {"min": flt.min, "max": flt.max}
    return list(flt.values)


def filter_value_sort_key(v: Any) -> Tuple:
    if isinstance(v, RangeFilter):
        lo = -math.inf if v.min is None else v.min
        hi = math.inf if v.max is None else v.max
        return (0, lo, hi, "")
    if isinstance(v, bool):
        return (1, int(v), 0, "")
    if isinstance(v, (int, float)):
        return (2, float(v), 0, "")
    s = str(v)
    return (3, 0, 0, s.casefold() + "\x00" + s)


class FilterState:
    """Immutable mapping dimension -> Filter."""

    def __init__(self, filters: Optional[Dict[str, Any]] = None):
        checked: Dict[str, Filter] = {}
        for dim, flt in (filters or {}).items():
            if flt is None:
                continue
            checked[dim] = filter_from_value(dim, flt)
        self._filters = checked

    @classmethod
    def empty(cls) -> "FilterState":
        return cls()

    def get(self, dimension: str) -> Optional[Filter]:
        return self._filters.get(dimension)

    def is_pinned(self, dimension: str) -> bool:
        return isinstance(self._filters.get(dimension), ExactFilter)

    def with_filter(self, dimension: str, flt: Any) -> "FilterState":
        d = dict(self._filters)
        d[dimension] = flt
        return FilterState(d)

    def without(self, dimension: str) -> "FilterState":
        d = dict(self._filters)
        d.pop(dimension, None)
        return FilterState(d)

    def dimensions(self) -> List[str]:
        return list(self._filters.keys())

    def items(self) -> Iterable[Tuple[str, Filter]]:
        return self._filters.items()

    def to_dict(self) -> Dict[str, Any]:
        return {dim: filter_to_value(flt) for dim, flt in self._filters.items()}

    def __iter__(self) -> Iterator[str]:
        return iter(self._filters)

    def __len__(self) -> int:
        return len(self._filters)

    def __contains__(self, dimension: object) -> bool:
        return dimension in self._filters

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FilterState) and self._filters == other._filters

    def __repr__(self) -> str:
        return f"FilterState({self._filters!r})"
