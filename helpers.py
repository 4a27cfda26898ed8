import re
import json
import math
from typing import Any, Dict, Iterable, List, Optional

from catalog_config import (
    FURNISH_UNKNOWN_NAMES,
    PRICE_NUMBER_RE,
    PRICE_PCW_RE,
    PROPERTY_TYPE_FLAT_NAMES,
    PROPERTY_TYPE_HOUSE_NAMES,
    PROPERTY_TYPE_OTHER_NAMES,
    PROPERTY_TYPE_UNKNOWN_NAMES,
    TRANSACTION_TYPE_ALIASES,
)
from settings import CURRENCY_SYMBOL, MINOR_UNITS_PER_MAJOR, WEEKS_PER_MONTH


def _safe_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and math.isnan(v):
        return ""
    s = str(v).strip()
    if s.lower() in ("", "nan", "none", "null"):
        return ""
    return s


def _to_float(v: Any) -> Optional[float]:
    try:
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            f = float(v)
            return None if math.isnan(f) else f
        s = re.sub(r"[^\d\.\-]", "", str(v))
        if not s:
            return None
        return float(s)
    except Exception:
        return None


def _to_count(v: Any) -> Optional[int]:
    """Bedroom/bathroom style counts: non-negative ints or None."""
    f = _to_float(v)
    if f is None or f < 0:
        return None
    return int(f)


def _to_bool(v: Any) -> Optional[bool]:
    if isinstance(v, bool):
        return v
    s = _safe_text(v).lower()
    if s in {"true", "yes", "y", "1"}:
        return True
    if s in {"false", "no", "n", "0"}:
        return False
    return None


def _norm_key(v: Any) -> str:
    s = _safe_text(v)
    s = re.sub(r"\s+", " ", s)
    return s.casefold()


def _clean_display(v: Any) -> str:
    s = _safe_text(v)
    s = re.sub(r"\s+", " ", s)
    return s.strip(" ,.;")


def dedupe_casefold(items: Iterable[Any]) -> List[str]:
    out: List[str] = []
    seen = set()
    for x in items or []:
        s = _clean_display(x)
        if not s:
            continue
        k = s.casefold()
        if k in seen:
            continue
        seen.add(k)
        out.append(s)
    return out


def sort_casefold(items: Iterable[str]) -> List[str]:
    return sorted(items, key=lambda x: (x.casefold(), x))


def _norm_transaction_type(v: Any) -> Optional[str]:
    s = _norm_key(v).replace("_", " ")
    if not s:
        return None
    return TRANSACTION_TYPE_ALIASES.get(s) or TRANSACTION_TYPE_ALIASES.get(s.replace(" ", "-"))


def _norm_property_type_value(v: Any) -> Optional[str]:
    s = _norm_key(v)
    if not s:
        return None
    s = s.replace("_", " ").replace("-", " ")
    s = re.sub(r"\s+", " ", s).strip()
    if not s or s in PROPERTY_TYPE_UNKNOWN_NAMES:
        return None
    if s in PROPERTY_TYPE_OTHER_NAMES:
        return "other"
    if s in PROPERTY_TYPE_FLAT_NAMES:
        return "flat"
    if s in PROPERTY_TYPE_HOUSE_NAMES:
        return "house"
    return s


def _norm_furnish_value(v: Any) -> Optional[str]:
    s = _norm_key(v)
    if not s:
        return None
    s = s.replace("_", " ").replace("-", " ")
    s = re.sub(r"\s+", " ", s).strip()
    if not s or s in FURNISH_UNKNOWN_NAMES:
        return None
    if "furnished or unfurnished" in s or ("landlord" in s and "flexible" in s) or s == "flexible":
        return "flexible"
    if "unfurn" in s:
        return "unfurnished"
    if "part" in s and "furnish" in s:
        return "part-furnished"
    if "furnish" in s:
        return "furnished"
    return s


def parse_price_to_minor(v: Any) -> Optional[int]:
    """
    Coerce a provider price into integer minor units (pence).
    Accepts numbers in major units, strings like "£1,250 pcm" / "£350 pw",
    and nested {"amount": ..., "frequency": ...} objects. Weekly prices are
    converted to monthly.
    """
    if v is None or isinstance(v, bool):
        return None
    weekly = False
    if isinstance(v, dict):
        freq = _safe_text(v.get("frequency")).lower()
        weekly = freq in {"weekly", "week", "pw", "pcw", "per week"}
        v = v.get("amount", v.get("value"))
        if v is None or isinstance(v, (dict, bool)):
            return None
    if isinstance(v, (int, float)):
        amount = float(v)
        if math.isnan(amount):
            return None
    else:
        s = _safe_text(v)
        if not s:
            return None
        m = PRICE_NUMBER_RE.search(s)
        if not m:
            return None
        try:
            amount = float(m.group(1).replace(",", ""))
        except ValueError:
            return None
        if s.lstrip().startswith("-"):
            amount = -amount
        weekly = weekly or bool(PRICE_PCW_RE.search(s))
    if amount < 0:
        return None
    if weekly:
        amount = amount * WEEKS_PER_MONTH
    return int(round(amount * MINOR_UNITS_PER_MAJOR))


def major_to_minor(v: Any) -> Optional[int]:
    f = _to_float(v)
    if f is None:
        return None
    return int(round(f * MINOR_UNITS_PER_MAJOR))


def minor_to_major(v: Optional[int]) -> Optional[float]:
    if v is None:
        return None
    major = v / MINOR_UNITS_PER_MAJOR
    return int(major) if float(major).is_integer() else round(major, 2)


def format_money(minor: Optional[int], per_month: bool = False) -> str:
    if minor is None:
        return "n/a"
    major = minor / MINOR_UNITS_PER_MAJOR
    return f"{CURRENCY_SYMBOL}{major:,.0f}" + ("/month" if per_month else "")


def _extract_json_obj(txt: str) -> dict:
    m = re.search(r"\{.*\}", txt, flags=re.S)
    if not m:
        raise ValueError("No JSON found. Got:\n" + txt)
    return json.loads(m.group(0))


def _canon_for_compare(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, float):
        if math.isnan(v):
            return None
        return round(float(v), 6)
    if isinstance(v, (bool, int)):
        return v
    if isinstance(v, dict):
        return {str(k): _canon_for_compare(x) for k, x in sorted(v.items()) if x is not None}
    if isinstance(v, (list, tuple, set)):
        items = [_canon_for_compare(x) for x in v]
        return sorted(items, key=lambda x: json.dumps(x, sort_keys=True, default=str))
    s = str(v).strip()
    return s.casefold() if s else None


def compact_params_view(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    out = {}
    for k, v in (params or {}).items():
        if k.startswith("_") or v is None:
            continue
        if isinstance(v, (list, dict)) and len(v) == 0:
            continue
        out[k] = v
    return out
