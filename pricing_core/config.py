# pricing_core/config.py
from dataclasses import dataclass, field
from typing import Dict, List
import os

from dotenv import load_dotenv

load_dotenv()

# Runtime parameters
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "15"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# Pricing defaults (JPY market)
BASE_CURRENCY = os.getenv("BASE_CURRENCY", "JPY")
DEFAULT_TAX_RATE = float(os.getenv("DEFAULT_TAX_RATE", "0.1"))
DEFAULT_SHIPPING_COST = int(os.getenv("DEFAULT_SHIPPING_COST", "500"))
FREE_SHIPPING_THRESHOLD = int(os.getenv("FREE_SHIPPING_THRESHOLD", "3000"))

# File names
PRODUCTS_CSV = os.getenv("PRODUCTS_CSV", "products.csv")
LISTINGS_CSV = os.getenv("LISTINGS_CSV", "listings.csv")
OUTPUT_CSV = os.getenv("OUTPUT_CSV", "cost_comparison.csv")

SUBSCRIPTION_KEYWORDS = [
    "定期",
    "毎月",
    "毎週",
    "ヶ月ごと",
    "サブスク",
    "subscription",
    "継続",
    "自動配送",
    "auto delivery",
    "定期便",
]


@dataclass
class NormalizerConfig:
    default_tax_rate: float = DEFAULT_TAX_RATE
    default_shipping_cost: int = DEFAULT_SHIPPING_COST
    free_shipping_threshold: int = FREE_SHIPPING_THRESHOLD
    base_currency: str = BASE_CURRENCY
    subscription_keywords: List[str] = field(default_factory=lambda: list(SUBSCRIPTION_KEYWORDS))
    # 1 unit of the key currency expressed in the base currency
    currency_rates: Dict[str, float] = field(default_factory=lambda: {"USD": 150.0, "EUR": 165.0})
    # Fixed per-source policy, keyed by Source value
    tax_inclusive_sources: Dict[str, bool] = field(default_factory=lambda: {"rakuten": True, "yahoo": True})


@dataclass
class MatchWeights:
    gtin: float = 1.0
    jan: float = 1.0
    name: float = 0.4
    brand: float = 0.3
    capacity: float = 0.2
    category: float = 0.1


@dataclass
class MatcherConfig:
    min_name_similarity: float = 0.5
    min_confidence: float = 0.6
    # Matches below this still count, but are reported in warnings
    medium_confidence: float = 0.9
    capacity_tolerance: float = 0.1
    weights: MatchWeights = field(default_factory=MatchWeights)


@dataclass
class CostCalculatorConfig:
    default_serving_size: float = 1
    default_daily_intake: float = 1
    quality_weight_factor: float = 0.2
    premium_quality_threshold: float = 0.8
