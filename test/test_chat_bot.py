import json

import chat_bot
import log
from catalog_service import CatalogService
from conftest import RENTALS_RAW


def _service():
    svc = CatalogService()
    svc.load_catalog("acme", RENTALS_RAW, name="Acme Lettings")
    return svc


def test_parse_command():
    assert chat_bot.parse_command("/set {\"beds\": 2}") == ("/set", '{"beds": 2}')
    assert chat_bot.parse_command("  /EXIT ") == ("/exit", "")
    assert chat_bot.parse_command("two beds please") == (None, "")


def test_handle_user_text_updates_state(monkeypatch):
    svc = _service()
    monkeypatch.setattr(chat_bot, "llm_extract_filters", lambda text, briefing, params: {"district": "Camden"})
    state = {"params": {"beds": 3}, "briefing": "b"}
    reply = chat_bot.handle_user_text(svc, "acme", state, "somewhere in Camden")
    assert state["params"] == {"beds": 3, "district": "Camden"}
    assert reply.startswith("1 matching properties.")
    assert "9 Fortune Green Road" in reply


def test_handle_user_text_keeps_state_on_bad_filter(monkeypatch):
    svc = _service()
    monkeypatch.setattr(
        chat_bot,
        "llm_extract_filters",
        lambda text, briefing, params: {"price": {"filter": "between", "value": 3000, "max_value": 1000}},
    )
    state = {"params": {"beds": 2}}
    reply = chat_bot.handle_user_text(svc, "acme", state, "between 3000 and 1000")
    assert "invalid range" in reply
    assert state["params"] == {"beds": 2}


def test_handle_user_text_keeps_state_when_extraction_fails(monkeypatch):
    svc = _service()

    def broken(text, briefing, params):
        raise ValueError("No JSON found")

    monkeypatch.setattr(chat_bot, "llm_extract_filters", broken)
    state = {"params": {"beds": 2}}
    reply = chat_bot.handle_user_text(svc, "acme", state, "???")
    assert reply.startswith("Sorry")
    assert state["params"] == {"beds": 2}


def test_format_tool_response_lists_refinements():
    resp = chat_bot.run_filters(_service(), "acme", {})
    text = chat_bot.format_tool_response(resp)
    assert text.startswith("6 matching properties.")
    assert "Refine by:" in text
    assert "  beds: 2 (2), 3 (2), 0 (1), 1 (1)" in text


def test_main_prompt(tmp_path, capsys):
    path = tmp_path / "acme.jsonl"
    path.write_text("\n".join(json.dumps(r) for r in RENTALS_RAW), encoding="utf-8")
    assert chat_bot.main(["--catalog", str(path), "--name", "Acme Lettings", "--prompt"]) == 0
    out = capsys.readouterr().out
    assert "# Property search briefing: Acme Lettings" in out


def test_main_filters(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(log, "LOG_LEVEL", "ERROR")
    path = tmp_path / "acme.json"
    path.write_text(json.dumps(RENTALS_RAW), encoding="utf-8")
    rc = chat_bot.main(["--catalog", str(path), "--filters", '{"location": "Manchester", "beds": {"min": 3}}'])
    assert rc == 0
    resp = json.loads(capsys.readouterr().out)
    assert resp["total_count"] == 1
    assert resp["properties"][0]["id"] == "r5"
