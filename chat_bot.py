import argparse
import json
import os
from typing import Any, Dict, List, Optional, Tuple

from agent_tools import build_tool_response, merge_filter_params, parse_tool_params, summarize_filter_changes
from catalog_config import QWEN_BASE_URL, QWEN_MODEL
from catalog_service import CatalogService, read_raw_listings
from filters import FilterStateError
from helpers import compact_params_view
from log import LOG_LEVEL, log_message
from qwen import llm_extract_filters


def format_listing_row(p: Dict[str, Any], i: int) -> str:
    beds = p.get("beds")
    beds_txt = "studio" if beds == 0 else (f"{beds} bed" if beds is not None else "? bed")
    kind = p.get("property_type") or p.get("property_subtype") or "property"
    price = p.get("price_display") or "price n/a"
    parts = [f"{i}. {price} | {beds_txt} {kind} | {p.get('address')}"]
    extras = []
    if p.get("furnished_type"):
        extras.append(str(p["furnished_type"]))
    if p.get("has_nearby_station"):
        extras.append("near station")
    if extras:
        parts.append("   " + ", ".join(extras))
    if p.get("url"):
        parts.append(f"   {p['url']}")
    return "\n".join(parts)


def format_refinements(refinements: List[Dict[str, Any]], per_filter: int = 4) -> List[str]:
    grouped: Dict[str, List[str]] = {}
    for r in refinements:
        v = r.get("value")
        if isinstance(v, dict):
            v = json.dumps(v, ensure_ascii=False)
        grouped.setdefault(r.get("filter"), []).append(f"{v} ({r.get('count')})")
    lines = []
    for name, values in grouped.items():
        more = f" +{len(values) - per_filter} more" if len(values) > per_filter else ""
        lines.append(f"  {name}: " + ", ".join(values[:per_filter]) + more)
    return lines


def format_tool_response(resp: Dict[str, Any]) -> str:
    lines = [f"{resp['total_count']} matching properties. {resp.get('message', '')}".strip()]
    for i, p in enumerate(resp.get("properties") or [], start=1):
        lines.append(format_listing_row(p, i))
    ref_lines = format_refinements(resp.get("refinements") or [])
    if ref_lines:
        lines.append("Refine by:")
        lines.extend(ref_lines)
    return "\n".join(lines)


def run_filters(service: CatalogService, catalog_id: str, params: Optional[dict]) -> Dict[str, Any]:
    filter_state, include_all = parse_tool_params(params)
    result = service.query(catalog_id, filter_state)
    return build_tool_response(result, include_all=include_all)


def handle_user_text(service: CatalogService, catalog_id: str, state: Dict[str, Any], user_in: str) -> str:
    prev_params = dict(state.get("params") or {})
    try:
        extracted = llm_extract_filters(user_in, state.get("briefing") or "", prev_params)
    except ValueError as e:
        log_message("WARN", f"filter extraction failed: {e}")
        return "Sorry, I could not understand that. Your previous filters are unchanged."

    new_params = merge_filter_params(prev_params, extracted)
    try:
        resp = run_filters(service, catalog_id, new_params)
    except FilterStateError as e:
        log_message("WARN", f"rejected filters dimension={e.dimension}: {e}")
        return f"I could not apply that filter ({e}). Your previous filters are unchanged."

    log_message("INFO", f"state changes: {summarize_filter_changes(prev_params, new_params)}")
    log_message("INFO", f"state active_filters: {json.dumps(compact_params_view(new_params), ensure_ascii=False)}")
    state["params"] = new_params
    state["last_response"] = resp
    return format_tool_response(resp)


# ----------------------------
# Interactive CLI
# ----------------------------
def parse_command(s: str) -> Tuple[Optional[str], str]:
    s = s.strip()
    if not s.startswith("/"):
        return None, ""
    parts = s.split(maxsplit=1)
    cmd = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""
    return cmd, arg


def run_chat(service: CatalogService, catalog_id: str):
    state: Dict[str, Any] = {
        "params": {},
        "last_response": None,
        "briefing": service.prompt(catalog_id).prompt,
    }
    snap = service.snapshot(catalog_id)

    print(f"PropertyBot ({snap.name or catalog_id})")
    print("Commands: /exit /reset /prompt /keywords /filters /set JSON /all")
    print(f"Listings: {len(snap.listings)} (skipped {snap.skipped})")
    print(f"Model   : {QWEN_MODEL} @ {QWEN_BASE_URL}")
    print(f"Log     : {LOG_LEVEL}")
    print("----")

    while True:
        try:
            user_in = input("\nYou> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye.")
            break

        if not user_in:
            continue

        cmd, arg = parse_command(user_in)

        if cmd == "/exit":
            print("Bye.")
            break

        if cmd == "/reset":
            state["params"] = {}
            state["last_response"] = None
            print("State reset.")
            continue

        if cmd == "/prompt":
            print(state["briefing"])
            continue

        if cmd == "/keywords":
            print(json.dumps(service.gazetteer(catalog_id).to_dict(), ensure_ascii=False, indent=2))
            continue

        if cmd == "/filters":
            print(json.dumps(state.get("params") or {}, ensure_ascii=False, indent=2))
            continue

        if cmd == "/set":
            try:
                patch = json.loads(arg)
                if not isinstance(patch, dict):
                    raise ValueError("expected a JSON object")
                new_params = merge_filter_params(state["params"], patch)
                resp = run_filters(service, catalog_id, new_params)
            except ValueError as e:
                # FilterStateError and json.JSONDecodeError are both ValueErrors
                print(f"Usage: /set {{\"beds\": 2, \"price\": {{\"filter\": \"under\", \"value\": 2000}}}}  ({e})")
                continue
            log_message("INFO", f"state changes: {summarize_filter_changes(state['params'], new_params)}")
            state["params"] = new_params
            state["last_response"] = resp
            print("\nBot> " + format_tool_response(resp))
            continue

        if cmd == "/all":
            params = dict(state.get("params") or {})
            params["include_all"] = True
            resp = run_filters(service, catalog_id, params)
            print("\nBot> " + format_tool_response(resp))
            continue

        if cmd is not None:
            print(f"Unknown command {cmd}")
            continue

        print("\nBot> " + handle_user_text(service, catalog_id, state, user_in))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query a property catalog with conversational refinements.")
    parser.add_argument("--catalog", required=True, help="Listings file (.jsonl, .json or .csv).")
    parser.add_argument("--name", default=None, help="Display name used in the briefing.")
    parser.add_argument("--once", default=None, help="Answer a single customer message and exit.")
    parser.add_argument("--filters", default=None, help="Run one search with tool params given as JSON and exit.")
    parser.add_argument("--prompt", action="store_true", help="Print the generated briefing and exit.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    catalog_id = os.path.splitext(os.path.basename(args.catalog))[0]
    service = CatalogService()
    service.load_catalog(catalog_id, read_raw_listings(args.catalog), name=args.name)

    if args.prompt:
        print(service.prompt(catalog_id).prompt)
        return 0
    if args.filters is not None:
        resp = run_filters(service, catalog_id, json.loads(args.filters))
        print(json.dumps(resp, ensure_ascii=False, indent=2))
        return 0
    if args.once is not None:
        state = {"params": {}, "briefing": service.prompt(catalog_id).prompt}
        print(handle_user_text(service, catalog_id, state, args.once))
        return 0
    run_chat(service, catalog_id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
