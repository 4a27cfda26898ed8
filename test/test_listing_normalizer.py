from conftest import RENTALS_RAW
from listing_normalizer import listings_to_frame, normalize, normalize_record
from settings import ADDRESS_UNAVAILABLE


def test_rental_record_fields():
    rec = normalize(RENTALS_RAW).listings[0]
    assert rec.listing_id == "r1"
    assert rec.transaction_type == "rent"
    assert rec.price == 100000
    assert rec.bedrooms == 1
    assert rec.bathrooms == 1
    assert rec.property_type == "flat"
    assert rec.property_subtype == "Flat"
    assert rec.furnished_type == "furnished"
    assert rec.has_nearby_station is True
    assert rec.location_tokens == ("London", "Hammersmith", "W6", "King Street")
    assert rec.raw["id"] == "r1"


def test_price_encodings():
    raw = [
        {"id": "a", "price": "£1,250 pcm", "transaction_type": "to-rent"},
        {"id": "b", "price": "£300 pw", "transaction_type": "rental"},
        {"id": "c", "price": {"amount": 450, "frequency": "weekly"}},
        {"id": "d", "price": 325000, "transaction_type": "for sale"},
        {"id": "e", "price": "POA"},
        {"id": "f", "price": -5},
    ]
    out = {r.listing_id: r for r in normalize(raw).listings}
    assert out["a"].price == 125000
    assert out["a"].transaction_type == "rent"
    assert out["b"].price == 130000
    assert out["c"].price == 195000
    assert out["d"].price == 32500000
    assert out["d"].transaction_type == "sale"
    assert out["e"].price is None
    assert out["f"].price is None


def test_counts_and_negative_values():
    rec, reason = normalize_record({"id": "x", "bedrooms": "3", "bathrooms": -1, "address": "1 A Road, York"})
    assert reason is None
    assert rec.bedrooms == 3
    assert rec.bathrooms is None


def test_provider_specific_keys():
    raw = {
        "property_id": "zp-1",
        "displayAddress": "8 Quay Street, Bristol",
        "propertyType": "Semi-detached",
        "propertySubType": "Semi-Detached House",
        "lettings": {"furnishType": "Landlord flexible"},
        "postalCode": "BS1 4DJ",
    }
    rec, _ = normalize_record(raw)
    assert rec.listing_id == "zp-1"
    assert rec.transaction_type == "rent"
    assert rec.property_type == "house"
    assert rec.property_subtype == "Semi-Detached House"
    assert rec.furnished_type == "flexible"
    assert rec.location.postcode_district == "BS1"
    assert rec.address == "8 Quay Street, Bristol"


def test_missing_address_uses_sentinel_and_keeps_record():
    rec, reason = normalize_record({"id": "n1", "price": 900})
    assert reason is None
    assert rec.address == ADDRESS_UNAVAILABLE
    assert rec.location_tokens == ()


def test_missing_id_is_synthesized_from_address():
    a, _ = normalize_record({"address": "2 Mill Lane, Camden, London"})
    b, _ = normalize_record({"address": "2 mill lane, camden, london"})
    assert a.listing_id.startswith("addr-")
    assert a.listing_id == b.listing_id


def test_unparseable_records_are_tallied():
    raw = [
        {"id": "ok", "address": "1 High Street, Leeds"},
        "not a record",
        {"price": 1000},
        {"id": "ok", "address": "duplicate"},
        None,
    ]
    result = normalize(raw)
    assert [r.listing_id for r in result.listings] == ["ok"]
    assert result.skipped == 4
    assert result.skipped_reasons == {"not_a_mapping": 2, "no_id_or_address": 1, "duplicate_id": 1}


def test_unknown_property_and_furnishing_values():
    rec, _ = normalize_record({"id": "u", "property_type": "Ask agent", "furnished_type": "ask agent"})
    assert rec.property_type is None
    assert rec.furnished_type is None


def test_empty_input():
    result = normalize(None)
    assert result.listings == []
    assert result.skipped == 0


def test_frame_view():
    listings = normalize(RENTALS_RAW).listings
    df = listings_to_frame(listings)
    assert len(df) == len(listings)
    assert df["price"].dtype == "float64"
    assert df.loc[0, "district"] == "Hammersmith"
    assert "hammersmith" in df.loc[0, "location_keys"]
    assert df["bedrooms"].isna().sum() == 0
