"""Price normalization and cost-per-day calculation."""
from pricing_core.pricing.price_normalizer import PriceNormalizer, UnsupportedCurrencyError
from pricing_core.pricing.cost_calculator import CostCalculator

__all__ = ["PriceNormalizer", "UnsupportedCurrencyError", "CostCalculator"]
