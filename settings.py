import os

# Tool responses: listings are only returned inline at or below this count
# unless the caller asks for everything.
SAMPLE_SIZE = int(os.environ.get("REFINE_SAMPLE_SIZE", "3"))

# Price bands are cut at these quantiles of the leave-one-out subset.
PRICE_LOWER_QUANTILE = float(os.environ.get("REFINE_PRICE_LOWER_QUANTILE", "0.33"))
PRICE_UPPER_QUANTILE = float(os.environ.get("REFINE_PRICE_UPPER_QUANTILE", "0.66"))
if not (0.0 < PRICE_LOWER_QUANTILE < PRICE_UPPER_QUANTILE < 1.0):
    PRICE_LOWER_QUANTILE, PRICE_UPPER_QUANTILE = 0.33, 0.66

# Offer postcode-district / street values when nothing else narrows.
STREET_FALLBACK = os.environ.get("REFINE_STREET_FALLBACK", "1") != "0"

# Minimum share of listings a postcode district needs to enter the gazetteer.
POSTCODE_DISTRICT_MIN_SHARE = float(os.environ.get("REFINE_POSTCODE_MIN_SHARE", "0.0"))

ADDRESS_UNAVAILABLE = os.environ.get("REFINE_ADDRESS_UNAVAILABLE", "Address unavailable")

CURRENCY_SYMBOL = os.environ.get("REFINE_CURRENCY_SYMBOL", "£")
MINOR_UNITS_PER_MAJOR = 100
WEEKS_PER_MONTH = 52.0 / 12.0

PROMPT_MAX_DISTRICTS = int(os.environ.get("REFINE_PROMPT_MAX_DISTRICTS", "40"))
PROMPT_MAX_EXAMPLES = int(os.environ.get("REFINE_PROMPT_MAX_EXAMPLES", "4"))

# Dimension order used when listing refinements and filter vocabularies.
REFINEMENT_PRIORITY = [
    "transaction_type",
    "bedrooms",
    "bathrooms",
    "location",
    "price",
    "property_type",
    "furnished_type",
    "has_nearby_station",
]
