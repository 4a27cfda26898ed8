import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from listing_normalizer import normalize


SCENARIO_RAW = [
    {
        "id": "1",
        "price": 300000,
        "beds": 2,
        "type": "flat",
        "address": "12 High St, Chelsea, Kensington and Chelsea, London, SW3 4AB",
    },
    {
        "id": "2",
        "price": 450000,
        "beds": 3,
        "type": "house",
        "address": "5 Oak Rd, Richmond, London, TW9 1AA",
    },
]

RENTALS_RAW = [
    {
        "id": "r1",
        "transaction_type": "rent",
        "price": "£1,000 pcm",
        "beds": 1,
        "baths": 1,
        "property_type": "Flat",
        "address": "Flat 3, 10 King Street, Hammersmith, London, W6 9HR",
        "furnished_type": "Furnished",
        "nearestStations": [{"name": "Hammersmith"}],
    },
    {
        "id": "r2",
        "transaction_type": "rent",
        "price": "£1,500 pcm",
        "beds": 2,
        "baths": 1,
        "property_type": "Apartment",
        "address": "22 Fulham Palace Road, Hammersmith, London, W6 8AA",
        "furnished_type": "Unfurnished",
        "nearestStations": [],
    },
    {
        "id": "r3",
        "transaction_type": "rent",
        "price": "£2,000 pcm",
        "beds": 2,
        "baths": 2,
        "property_type": "Terraced house",
        "address": "4 Mill Lane, West Hampstead, Camden, London, NW6 1NT",
        "furnished_type": "Furnished",
        "nearestStations": [{"name": "West Hampstead"}],
    },
    {
        "id": "r4",
        "transaction_type": "rent",
        "price": "£2,500 pcm",
        "beds": 3,
        "baths": 2,
        "property_type": "House",
        "address": "9 Fortune Green Road, West Hampstead, Camden, London, NW6 1DT",
        "furnished_type": "Furnished",
    },
    {
        "id": "r5",
        "transaction_type": "rent",
        "price": "£3,000 pcm",
        "beds": 3,
        "baths": 2,
        "property_type": "Flat",
        "address": "Apartment 7, 1 Deansgate, Manchester, M3 1AZ",
        "furnished_type": "Part furnished",
        "nearestStations": [{"name": "Deansgate"}],
    },
    {
        "id": "r6",
        "transaction_type": "rent",
        "price": "£900 pcm",
        "beds": 0,
        "baths": 1,
        "property_type": "Studio",
        "address": "31 Oxford Road, Manchester, M1 5QA",
    },
]


@pytest.fixture
def scenario_listings():
    return normalize(SCENARIO_RAW).listings


@pytest.fixture
def rental_listings():
    return normalize(RENTALS_RAW).listings
