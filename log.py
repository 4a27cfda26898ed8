import os
from typing import Any, Dict, List

LOG_LEVEL = os.environ.get("REFINE_LOG_LEVEL", "INFO").strip().upper()
LOG_TEXT_LIMIT = int(os.environ.get("REFINE_LOG_TEXT_LIMIT", "320"))

_LOG_LEVEL_ORDER = {"ERROR": 40, "WARN": 30, "INFO": 20, "DEBUG": 10}


def _should_log(level: str) -> bool:
    current = _LOG_LEVEL_ORDER.get(LOG_LEVEL, 20)
    target = _LOG_LEVEL_ORDER.get(level.upper(), 20)
    return target >= current


def log_message(level: str, msg: str) -> None:
    lvl = level.upper()
    if _should_log(lvl):
        print(f"[{lvl}] {_truncate_text(msg, LOG_TEXT_LIMIT)}")


def _truncate_text(v: Any, limit: int) -> str:
    s = str(v or "")
    if len(s) <= limit:
        return s
    return s[:limit] + "...(truncated)"


def compact_refinement_counts(refinements: List[Any]) -> Dict[str, int]:
    """Number of refinement entries per dimension, in first-seen order."""
    out: Dict[str, int] = {}
    for r in refinements or []:
        name = getattr(r, "filter_name", None)
        if name is None and isinstance(r, dict):
            name = r.get("filter_name")
        if not name:
            continue
        out[name] = out.get(name, 0) + 1
    return out


def format_query_summary(filter_view: Dict[str, Any], total: int, refinements: List[Any]) -> str:
    counts = compact_refinement_counts(refinements)
    per_dim = ",".join(f"{k}={v}" for k, v in counts.items()) or "none"
    return f"query filters={filter_view} total={int(total)} refinements[{per_dim}]"
