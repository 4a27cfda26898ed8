import pytest

from filters import (
    ExactFilter,
    FilterState,
    FilterStateError,
    RangeFilter,
    SetFilter,
    filter_from_value,
    filter_value_sort_key,
)


def test_plain_values_become_tagged_filters():
    state = FilterState({"bedrooms": 2, "property_type": ["flat", "house"], "price": {"min": 100000, "max": None}})
    assert state.get("bedrooms") == ExactFilter(2)
    assert state.get("property_type") == SetFilter(("flat", "house"))
    assert state.get("price") == RangeFilter(100000, None)
    assert state.is_pinned("bedrooms")
    assert not state.is_pinned("property_type")
    assert state.to_dict() == {"bedrooms": 2, "property_type": ["flat", "house"], "price": {"min": 100000, "max": None}}


def test_inverted_range_is_rejected():
    with pytest.raises(FilterStateError, match="invalid range") as exc:
        FilterState({"price": RangeFilter(500000, 100000)})
    assert exc.value.dimension == "price"
    assert "min 500000 > max 100000" in str(exc.value)


def test_unknown_dimension_is_rejected():
    with pytest.raises(FilterStateError) as exc:
        FilterState({"garden": True})
    assert exc.value.dimension == "garden"
    assert isinstance(exc.value, ValueError)


@pytest.mark.parametrize(
    "dimension,flt",
    [
        ("bedrooms", ExactFilter(-1)),
        ("bedrooms", ExactFilter("two")),
        ("bedrooms", ExactFilter(True)),
        ("bathrooms", ExactFilter(1.5)),
        ("property_type", SetFilter(())),
        ("property_type", RangeFilter(1, 2)),
        ("location", ExactFilter("")),
        ("has_nearby_station", ExactFilter("yes")),
        ("price", RangeFilter(None, None)),
    ],
)
def test_malformed_filters(dimension, flt):
    with pytest.raises(FilterStateError) as exc:
        FilterState({dimension: flt})
    assert exc.value.dimension == dimension


def test_none_means_absent():
    state = FilterState({"bedrooms": None})
    assert len(state) == 0
    assert state == FilterState.empty()


def test_with_filter_and_without_return_new_states():
    base = FilterState({"bedrooms": 2})
    wider = base.with_filter("location", "Camden")
    assert "location" in wider
    assert "location" not in base
    assert wider.without("bedrooms").dimensions() == ["location"]


def test_whole_float_counts_are_accepted():
    assert filter_from_value("bedrooms", 2.0) == ExactFilter(2)


def test_value_sort_key_orders_mixed_kinds():
    assert filter_value_sort_key(False) < filter_value_sort_key(True)
    assert filter_value_sort_key(1) < filter_value_sort_key(2)
    assert filter_value_sort_key("camden") < filter_value_sort_key("Hammersmith")
    assert filter_value_sort_key(RangeFilter(None, 99)) < filter_value_sort_key(RangeFilter(100, 200))


def test_transaction_type_aliases_are_canonical():
    assert FilterState({"transaction_type": "rental"}).get("transaction_type") == ExactFilter("rent")
    assert FilterState({"transaction_type": ["To Rent", "for sale"]}).get("transaction_type") == SetFilter(("rent", "sale"))


def test_unknown_transaction_type_is_rejected():
    with pytest.raises(FilterStateError) as exc:
        FilterState({"transaction_type": "auction"})
    assert exc.value.dimension == "transaction_type"
