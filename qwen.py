import json
import os
from typing import Any, Dict, Optional

from openai import OpenAI

from agent_tools import KNOWN_PARAMS, PARAM_SYNONYMS
from catalog_config import EXTRACT_FILTERS_SYSTEM, QWEN_API_KEY, QWEN_BASE_URL, QWEN_MODEL
from helpers import _extract_json_obj, compact_params_view
from log import log_message

qwen_client = OpenAI(base_url=QWEN_BASE_URL, api_key=QWEN_API_KEY)


def _structured_debug_enabled() -> bool:
    return str(os.environ.get("REFINE_STRUCTURED_DEBUG_PRINT", "0")).strip().lower() in {"1", "true", "yes", "on"}


def qwen_chat(messages, temperature=0.0) -> str:
    r = qwen_client.chat.completions.create(
        model=QWEN_MODEL,
        messages=messages,
        temperature=temperature,
    )
    return r.choices[0].message.content.strip()


def _normalize_filter_extract(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Keep known tool params (plus _replace_all / _clear), drop nulls and empties."""
    out: Dict[str, Any] = {}
    for k, v in (obj or {}).items():
        key = PARAM_SYNONYMS.get(k, k)
        if key not in KNOWN_PARAMS and key not in ("_replace_all", "_clear"):
            continue
        if v is None:
            continue
        if isinstance(v, (list, dict, str)) and len(v) == 0:
            continue
        if key == "price" and isinstance(v, dict) and v.get("value") is None and v.get("min") is None and v.get("max") is None:
            continue
        out[key] = v
    if out.get("_replace_all") is not True:
        out.pop("_replace_all", None)
    return out


def llm_extract_filters(user_text: str, briefing: str, existing_params: Optional[dict]) -> dict:
    prefix = ""
    if existing_params:
        prefix = "Existing filters (JSON):\n" + json.dumps(compact_params_view(existing_params), ensure_ascii=False) + "\n\n"

    txt = qwen_chat(
        [
            {"role": "system", "content": EXTRACT_FILTERS_SYSTEM + "\n\nBriefing:\n" + (briefing or "")},
            {"role": "user", "content": prefix + "Customer says:\n" + user_text},
        ],
        temperature=0.0,
    )
    if _structured_debug_enabled():
        log_message("INFO", "llm_extract_filters_raw " + txt)
    obj = _extract_json_obj(txt)
    return _normalize_filter_extract(obj)
