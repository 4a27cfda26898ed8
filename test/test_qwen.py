import pytest

import qwen


def test_extract_filters_normalizes_model_output(monkeypatch):
    seen = {}

    def fake_chat(messages, temperature=0.0):
        seen["messages"] = messages
        return (
            "Sure, here you go:\n"
            '{"bedrooms": 2, "city": "London", "price": {"filter": null, "value": null}, '
            '"garden": true, "property_type": [], "_replace_all": false, "_clear": ["district"]}'
        )

    monkeypatch.setattr(qwen, "qwen_chat", fake_chat)
    out = qwen.llm_extract_filters("two beds in London please", "BRIEFING TEXT", {"baths": 1})
    assert out == {"beds": 2, "city": "London", "_clear": ["district"]}

    system, user = seen["messages"]
    assert system["role"] == "system"
    assert system["content"].endswith("Briefing:\nBRIEFING TEXT")
    assert '"baths": 1' in user["content"]
    assert user["content"].endswith("Customer says:\ntwo beds in London please")


def test_replace_all_is_kept_only_when_true(monkeypatch):
    monkeypatch.setattr(qwen, "qwen_chat", lambda messages, temperature=0.0: '{"_replace_all": true, "beds": 1}')
    assert qwen.llm_extract_filters("start over, one bed", "", None) == {"_replace_all": True, "beds": 1}


def test_no_json_in_reply_raises(monkeypatch):
    monkeypatch.setattr(qwen, "qwen_chat", lambda messages, temperature=0.0: "I am not sure what you mean.")
    with pytest.raises(ValueError, match="No JSON"):
        qwen.llm_extract_filters("hmm", "", None)
