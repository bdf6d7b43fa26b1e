"""
Heuristic text extraction from product and listing names.

Every pattern-based guess the pipeline makes (capacity, units, subscription
terms, bulk discount tiers, serving size, daily intake) lives here so a more
robust parser can replace any of them without touching matching or costing.
"""
import re
from typing import Iterable, List, Optional

from pricing_core.models import BulkDiscount, Capacity, SubscriptionInfo, UnitType

COUNT_UNIT = "ct"
PACK_UNIT = "pack"

# Localized and long-form spellings mapped to canonical units
UNIT_SYNONYMS = {
    "ミリグラム": "mg",
    "グラム": "g",
    "キログラム": "kg",
    "ミリリットル": "ml",
    "リットル": "l",
    "milligram": "mg",
    "milligrams": "mg",
    "gram": "g",
    "grams": "g",
    "kilogram": "kg",
    "kilograms": "kg",
    "milliliter": "ml",
    "milliliters": "ml",
    "liter": "l",
    "liters": "l",
    "粒": COUNT_UNIT,
    "錠": COUNT_UNIT,
    "カプセル": COUNT_UNIT,
    "count": COUNT_UNIT,
    "cap": COUNT_UNIT,
    "caps": COUNT_UNIT,
    "tab": COUNT_UNIT,
    "tabs": COUNT_UNIT,
    "tablet": COUNT_UNIT,
    "tablets": COUNT_UNIT,
    "capsule": COUNT_UNIT,
    "capsules": COUNT_UNIT,
    "softgel": COUNT_UNIT,
    "softgels": COUNT_UNIT,
    "包": PACK_UNIT,
    "袋": PACK_UNIT,
    "packet": PACK_UNIT,
    "packets": PACK_UNIT,
    "sachet": PACK_UNIT,
    "sachets": PACK_UNIT,
}

WEIGHT_UNITS = {"mg", "g", "kg"}
VOLUME_UNITS = {"ml", "l"}
COUNT_UNITS = {COUNT_UNIT, PACK_UNIT}

_AMOUNT = r"(\d+(?:\.\d+)?)"
# Latin units must not run into further letters ("5 large" is not 5 l)
CAPACITY_PATTERNS = [
    re.compile(
        _AMOUNT
        + r"\s*(mg|kg|g|ml|l|ct|count|softgels?|capsules?|caps?|tablets?|tabs?|packets?|sachets?)(?![a-z])",
        re.IGNORECASE,
    ),
    re.compile(_AMOUNT + r"\s*(粒|錠|カプセル|包|袋)"),
    re.compile(
        _AMOUNT
        + r"\s*(ミリグラム|キログラム|グラム|ミリリットル|リットル"
        + r"|milligrams?|kilograms?|grams?|milliliters?|liters?)",
        re.IGNORECASE,
    ),
]

DISCOUNT_PATTERN = re.compile(r"(\d+)[%％]\s*(?:off|オフ|割引)", re.IGNORECASE)

BULK_DISCOUNT_PATTERNS = [
    re.compile(r"(\d+)個以上で(\d+)[%％]\s*(?:off|オフ|割引)", re.IGNORECASE),
    re.compile(r"(\d+)個セットで(\d+)[%％]\s*(?:off|オフ|割引)", re.IGNORECASE),
    re.compile(r"まとめ買い(\d+)個で(\d+)[%％]\s*(?:off|オフ|割引)", re.IGNORECASE),
    re.compile(r"buy\s+(\d+)\+?\s*(?:or more\s*)?(?:units?|items?|pcs)?,?\s*(?:get|save)\s+(\d+)[%％]\s*off", re.IGNORECASE),
]

INTERVAL_KEYWORDS = [
    ("weekly", ("毎週", "weekly")),
    ("monthly", ("毎月", "monthly")),
    ("quarterly", ("3ヶ月", "3か月", "quarterly")),
]

SERVING_SIZE_PATTERNS = [
    re.compile(r"1回(\d+(?:\.\d+)?)\s*(?:mg|g|ml|粒|錠|カプセル)", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:mg|g|ml|粒|錠|カプセル)/回", re.IGNORECASE),
    re.compile(r"take\s+(\d+(?:\.\d+)?)\s*(?:\w+\s+)?per\s+(?:dose|serving)", re.IGNORECASE),
]

DAILY_INTAKE_PATTERNS = [
    re.compile(r"1日(\d+)回"),
    re.compile(r"(\d+)回/日"),
    re.compile(r"(\d+)\s*times?\s+(?:a|per)\s+day", re.IGNORECASE),
]


def normalize_unit(unit: str) -> str:
    """Lower-case a unit and fold synonyms onto their canonical form."""
    key = (unit or "").strip().lower()
    return UNIT_SYNONYMS.get(key, key)


def determine_unit_type(unit: str) -> UnitType:
    """Classify a unit as weight, volume or count (count for anything unknown)."""
    canonical = normalize_unit(unit)
    if canonical in WEIGHT_UNITS:
        return UnitType.WEIGHT
    if canonical in VOLUME_UNITS:
        return UnitType.VOLUME
    return UnitType.COUNT


def extract_capacities_from_name(name: str) -> List[Capacity]:
    """All amount+unit pairs in a name, in the order they appear."""
    found = []
    for pattern in CAPACITY_PATTERNS:
        for match in pattern.finditer(name or ""):
            found.append((match.start(), Capacity(amount=float(match.group(1)), unit=normalize_unit(match.group(2)))))
    return [capacity for _, capacity in sorted(found, key=lambda item: item[0])]


def extract_capacity_from_name(name: str, preferred_unit: Optional[str] = None) -> Optional[Capacity]:
    """
    Guess the container capacity advertised in a listing name.

    Names often carry more than one quantity ("Fish Oil 1000mg 120粒"), so
    when a preferred unit is given the first capacity in that unit wins.

    Args:
        name (str): Listing display name, e.g. "Vitamin D 1000IU 90ct".
        preferred_unit (Optional[str]): Unit of the capacity we expect to find.

    Returns:
        Optional[Capacity]: Capacity with a canonical unit, or None if nothing was found.
    """
    candidates = extract_capacities_from_name(name)
    if not candidates:
        return None
    if preferred_unit:
        wanted = normalize_unit(preferred_unit)
        for capacity in candidates:
            if capacity.unit == wanted:
                return capacity
    return candidates[0]


def detect_subscription(name: str, keywords: Iterable[str]) -> SubscriptionInfo:
    """
    Detect recurring-delivery offers in a listing name.

    A discount rate is taken from the first "<N>% off"-style phrase and the
    interval from interval keywords; a subscription with no interval keyword
    is assumed to be monthly.
    """
    lowered = (name or "").lower()
    if not any(k.lower() in lowered for k in keywords if k):
        return SubscriptionInfo()

    discount = None
    match = DISCOUNT_PATTERN.search(name)
    if match:
        discount = int(match.group(1)) / 100

    interval = "monthly"
    for candidate, words in INTERVAL_KEYWORDS:
        if any(w in lowered for w in words):
            interval = candidate
            break

    return SubscriptionInfo(is_subscription=True, discount=discount, interval=interval)


def detect_bulk_discounts(name: str) -> List[BulkDiscount]:
    """Return advertised quantity discount tiers, sorted ascending by quantity."""
    tiers = []
    for pattern in BULK_DISCOUNT_PATTERNS:
        for match in pattern.finditer(name or ""):
            tiers.append(BulkDiscount(quantity=int(match.group(1)), discount_rate=int(match.group(2)) / 100))
    return sorted(tiers, key=lambda t: t.quantity)


def extract_serving_size(name: str) -> Optional[float]:
    """Amount taken per dose, e.g. "1回2粒" or "take 2 capsules per serving"."""
    for pattern in SERVING_SIZE_PATTERNS:
        match = pattern.search(name or "")
        if match:
            return float(match.group(1))
    return None


def extract_daily_intake(name: str) -> Optional[float]:
    """Doses per day, e.g. "1日2回" or "3 times a day"."""
    for pattern in DAILY_INTAKE_PATTERNS:
        match = pattern.search(name or "")
        if match:
            return float(match.group(1))
    return None
