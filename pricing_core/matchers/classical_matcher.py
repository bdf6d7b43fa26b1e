import re
from typing import Optional

from rapidfuzz.distance import Levenshtein

from pricing_core.config import MatchWeights
from pricing_core.extraction import normalize_unit
from pricing_core.models import Capacity, MatchDetails

_BRACKETS = re.compile(r"[【】\[\]（）()]")
_WHITESPACE = re.compile(r"\s+")
_MIDDLE_DOTS = re.compile(r"[・･]")


def normalize_product_name(name: str) -> str:
    """Lower-case a name and strip brackets, whitespace and middle dots."""
    normalized = (name or "").lower()
    normalized = _BRACKETS.sub("", normalized)
    normalized = _WHITESPACE.sub("", normalized)
    normalized = _MIDDLE_DOTS.sub("", normalized)
    return normalized.strip()


def calculate_name_similarity(name1: str, name2: str) -> float:
    """
    Edit-distance similarity between two product names.

    Args:
        name1 (str): First name.
        name2 (str): Second name.

    Returns:
        float: 1 - levenshtein / max(len1, len2) over the normalized names; 1.0 when both are empty.
    """
    a = normalize_product_name(name1)
    b = normalize_product_name(name2)
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1 - Levenshtein.distance(a, b) / max_len


def is_brand_match(brand: str, seller: str) -> bool:
    """Case-insensitive containment in either direction. Blank values never match."""
    b = (brand or "").lower().strip()
    s = (seller or "").lower().strip()
    if not b or not s:
        return False
    return b in s or s in b


def is_capacity_match(target: Capacity, candidate: Optional[Capacity], tolerance: float = 0.1) -> bool:
    """
    Check that a listing's capacity is the product's capacity within a relative tolerance.

    Args:
        target (Capacity): Capacity of the canonical product.
        candidate (Optional[Capacity]): Capacity extracted from the listing, if any.
        tolerance (float): Allowed relative deviation from target.amount (default=0.1).

    Returns:
        bool: True if units agree and the amounts are within tolerance.
    """
    if candidate is None:
        return False
    if normalize_unit(target.unit) != normalize_unit(candidate.unit):
        return False
    if not target.amount or target.amount <= 0:
        return False
    diff = abs(target.amount - candidate.amount) / target.amount
    # Absorb float noise at the exact boundary (99 vs 90 is 10%)
    return diff <= tolerance + 1e-9


def calculate_overall_confidence(details: MatchDetails, weights: MatchWeights) -> float:
    """
    Weighted mean over the signals that were actually evaluated.

    Signals left as None contribute to neither the score nor the total weight.
    """
    score = 0.0
    total_weight = 0.0

    if details.gtin_match is not None:
        score += weights.gtin * (1 if details.gtin_match else 0)
        total_weight += weights.gtin
    if details.jan_match is not None:
        score += weights.jan * (1 if details.jan_match else 0)
        total_weight += weights.jan
    if details.name_match is not None:
        score += weights.name * details.name_match
        total_weight += weights.name
    if details.brand_match is not None:
        score += weights.brand * (1 if details.brand_match else 0)
        total_weight += weights.brand
    if details.capacity_match is not None:
        score += weights.capacity * (1 if details.capacity_match else 0)
        total_weight += weights.capacity
    if details.category_match is not None:
        score += weights.category * (1 if details.category_match else 0)
        total_weight += weights.category

    return score / total_weight if total_weight > 0 else 0.0
