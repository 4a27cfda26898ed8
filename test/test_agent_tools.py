import json

import pytest

from agent_tools import (
    KNOWN_PARAMS,
    PARAM_SYNONYMS,
    PROPERTY_SEARCH_TOOL,
    build_tool_response,
    listing_payload,
    merge_filter_params,
    parse_tool_params,
    price_filter_payload,
    summarize_filter_changes,
)
from filters import ExactFilter, FilterState, FilterStateError, RangeFilter, SetFilter
from listing_normalizer import normalize
from refine_engine import query_properties


# ----------------------------
# parse_tool_params
# ----------------------------
def test_count_shapes():
    state, include_all = parse_tool_params({"beds": 2, "baths": [1, 2]})
    assert state.get("bedrooms") == ExactFilter(2)
    assert state.get("bathrooms") == SetFilter((1, 2))
    assert include_all is False

    state, _ = parse_tool_params({"beds": {"min": 2}})
    assert state.get("bedrooms") == RangeFilter(2, None)

    state, _ = parse_tool_params({"bedrooms": "3"})
    assert state.get("bedrooms") == ExactFilter(3)


@pytest.mark.parametrize(
    "price,expected",
    [
        ({"filter": "under", "value": 2000}, RangeFilter(None, 199999)),
        ({"filter": "over", "value": 500000}, RangeFilter(50000001, None)),
        ({"filter": "between", "value": 1000, "max_value": 2000}, RangeFilter(100000, 200000)),
        ({"min": 1000}, RangeFilter(100000, None)),
    ],
)
def test_price_shapes_are_converted_to_pence(price, expected):
    state, _ = parse_tool_params({"price": price})
    assert state.get("price") == expected


@pytest.mark.parametrize(
    "price",
    [
        1500,
        {"filter": "between", "value": 2000, "max_value": 1000},
        {"filter": "between", "value": 1000},
        {"filter": "around", "value": 1000},
        {"filter": "under"},
    ],
)
def test_bad_price_shapes_are_rejected(price):
    with pytest.raises(FilterStateError) as exc:
        parse_tool_params({"price": price})
    assert exc.value.dimension == "price"


def test_inverted_between_reports_invalid_range():
    with pytest.raises(FilterStateError, match="invalid range"):
        parse_tool_params({"price": {"filter": "between", "value": 2000, "max_value": 1000}})


def test_text_values_are_normalized():
    state, _ = parse_tool_params(
        {
            "transaction_type": "to rent",
            "property_type": ["Apartment", "Terraced house"],
            "furnished_type": "Part furnished",
            "has_nearby_station": "yes",
            "include_all": "true",
        }
    )
    assert state.get("transaction_type") == ExactFilter("rent")
    assert state.get("property_type") == SetFilter(("flat", "house"))
    assert state.get("furnished_type") == ExactFilter("part-furnished")
    assert state.get("has_nearby_station") == ExactFilter(True)


def test_include_all_flag():
    _, include_all = parse_tool_params({"include_all": "true"})
    assert include_all is True


def test_most_specific_location_alias_wins():
    state, _ = parse_tool_params({"city": "London", "district": "Camden"})
    assert state.get("location") == ExactFilter("Camden")
    state, _ = parse_tool_params({"location": "W6", "city": "London"})
    assert state.get("location") == ExactFilter("W6")
    state, _ = parse_tool_params({"postcode": "nw6 1nt"})
    assert state.get("location") == ExactFilter("NW6")
    state, _ = parse_tool_params({"location": ["Camden", "Hammersmith"]})
    assert state.get("location") == SetFilter(("Camden", "Hammersmith"))


@pytest.mark.parametrize(
    "params,dimension",
    [
        ({"garden": True}, "garden"),
        ({"beds": "two"}, "bedrooms"),
        ({"beds": -1}, "bedrooms"),
        ({"has_nearby_station": "maybe"}, "has_nearby_station"),
        ({"transaction_type": "auction"}, "transaction_type"),
    ],
)
def test_invalid_params(params, dimension):
    with pytest.raises(FilterStateError) as exc:
        parse_tool_params(params)
    assert exc.value.dimension == dimension


def test_private_keys_and_empty_params_are_ignored():
    state, include_all = parse_tool_params({"_replace_all": True})
    assert state == FilterState.empty()
    assert parse_tool_params(None) == (FilterState.empty(), False)


# ----------------------------
# Responses
# ----------------------------
def test_large_result_asks_to_narrow(rental_listings):
    resp = build_tool_response(query_properties(rental_listings))
    assert resp["total_count"] == 6
    assert resp["properties"] == []
    assert "narrow" in resp["message"]
    assert {"filter": "beds", "value": 2, "count": 2} in resp["refinements"]
    json.dumps(resp)


def test_include_all_returns_every_match(rental_listings):
    resp = build_tool_response(query_properties(rental_listings), include_all=True)
    assert [p["id"] for p in resp["properties"]] == ["r1", "r2", "r3", "r4", "r5", "r6"]


def test_small_result_returns_matches(rental_listings):
    state, _ = parse_tool_params({"location": "Camden"})
    resp = build_tool_response(query_properties(rental_listings, state))
    assert [p["id"] for p in resp["properties"]] == ["r3", "r4"]


def test_matches_shown_when_nothing_narrows():
    listings = normalize([{"id": str(i), "beds": 2} for i in range(5)]).listings
    resp = build_tool_response(query_properties(listings))
    assert resp["total_count"] == 5
    assert len(resp["properties"]) == 5
    assert resp["refinements"] == [{"filter": "beds", "value": 2, "count": 5}]


def test_no_matches_message(rental_listings):
    state, _ = parse_tool_params({"beds": 9})
    resp = build_tool_response(query_properties(rental_listings, state))
    assert resp["total_count"] == 0
    assert resp["properties"] == []
    assert resp["message"].startswith("No properties match")


def test_price_refinements_round_trip(rental_listings):
    result = query_properties(rental_listings)
    bands = [r.filter_value for r in result.refinements_for("price")]
    payloads = [price_filter_payload(b) for b in bands]
    assert {"filter": "under", "value": 1000} in payloads
    assert {"filter": "between", "value": 1000, "max_value": 2000} in payloads
    assert {"filter": "over", "value": 2000} in payloads
    for band, payload in zip(bands, payloads):
        state, _ = parse_tool_params({"price": payload})
        assert state.get("price") == band


def test_listing_payload_uses_pounds(rental_listings):
    p = listing_payload(rental_listings[0])
    assert p["id"] == "r1"
    assert p["price"] == 1000
    assert p["price_display"] == "£1,000/month"
    assert p["beds"] == 1
    assert p["district"] == "Hammersmith"
    assert p["postcode_district"] == "W6"


# ----------------------------
# Turn-over-turn state
# ----------------------------
def test_merge_overrides_and_replaces_location():
    merged = merge_filter_params({"beds": 2, "city": "London"}, {"district": "Camden"})
    assert merged == {"beds": 2, "district": "Camden"}


def test_merge_drops_include_all_and_canonicalizes():
    merged = merge_filter_params({"bedrooms": 2, "include_all": True}, {"price": {"filter": "under", "value": 2000}})
    assert merged == {"beds": 2, "price": {"filter": "under", "value": 2000}}


def test_merge_replace_all_and_clear():
    assert merge_filter_params({"beds": 2}, {"_replace_all": True, "baths": 1}) == {"baths": 1}
    old = {"beds": 2, "location": "W6", "city": "London", "baths": 1}
    assert merge_filter_params(old, {"_clear": ["location", "bedrooms"]}) == {"baths": 1}
    assert merge_filter_params(old, {"_clear": True, "beds": 3}) == {"beds": 3}


def test_merge_skips_null_and_empty_values():
    assert merge_filter_params({"beds": 2, "city": "Leeds"}, {"beds": None, "location": ""}) == {"beds": 2, "city": "Leeds"}


def test_summarize_filter_changes():
    text = summarize_filter_changes({"beds": 2, "city": "London"}, {"beds": 3, "baths": 1})
    assert text == "added baths=1; updated beds: 2 -> 3; removed city"
    assert summarize_filter_changes({"city": "London"}, {"city": "london"}) == "no filter changes"


def test_tool_schema_covers_accepted_params():
    schema = PROPERTY_SEARCH_TOOL["function"]["parameters"]["properties"]
    assert PROPERTY_SEARCH_TOOL["function"]["name"] == "search_properties"
    for key in KNOWN_PARAMS - set(PARAM_SYNONYMS):
        assert key in schema, key
    assert schema["price"]["properties"]["filter"]["enum"] == ["under", "over", "between"]
