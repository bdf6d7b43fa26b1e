"""
Normalizes raw source listings into comparable, tax-included prices.
"""
import math
import copy
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from loguru import logger

from pricing_core.config import NormalizerConfig
from pricing_core.extraction import detect_bulk_discounts, detect_subscription
from pricing_core.models import (
    BulkDiscount,
    Listing,
    NormalizedPrice,
    PriceHistoryComparison,
    PriceMetadata,
    RakutenListing,
    StockStatus,
    SubscriptionInfo,
    ValidationReport,
    YahooListing,
)

MAX_PLAUSIBLE_BASE_PRICE = 1_000_000
MAX_PLAUSIBLE_SHIPPING = 10_000
TREND_THRESHOLD_PCT = 5


class UnsupportedCurrencyError(ValueError):
    """No conversion rate is configured for the requested currency pair."""


def round_half_up(value: float) -> int:
    """Round to the smallest currency unit, halves going up."""
    return int(math.floor(value + 0.5))


class PriceNormalizer:
    """
    Converts one listing at a time into a NormalizedPrice.

    Args:
        config (Optional[NormalizerConfig]): Tax, shipping, keyword and currency settings.
    """

    def __init__(self, config: Optional[NormalizerConfig] = None):
        self.config = config or NormalizerConfig()

    def update_config(self, **changes) -> None:
        """Replace configuration fields; unknown names raise TypeError."""
        self.config = replace(self.config, **changes)

    def get_config(self) -> NormalizerConfig:
        return copy.deepcopy(self.config)

    def normalize(self, listing: Listing, product_id: str) -> NormalizedPrice:
        """
        Normalize one listing's price, shipping and offer metadata.

        Args:
            listing (Listing): Rakuten or Yahoo listing.
            product_id (str): Canonical product the listing was matched to.

        Returns:
            NormalizedPrice: Tax-included base price, shipping and total in the base currency.
        """
        if not isinstance(listing, (RakutenListing, YahooListing)):
            raise TypeError(f"Unsupported listing type: {type(listing).__name__}")

        cfg = self.config
        tax_inclusive = cfg.tax_inclusive_sources.get(listing.source.value, True)
        base_price = self.ensure_tax_included(listing.listed_price or 0, tax_inclusive)
        shipping_cost = self.calculate_shipping(listing, base_price)
        subscription = self.detect_subscription(listing.display_name)

        return NormalizedPrice(
            product_id=product_id,
            source=listing.source,
            source_product_id=listing.local_id,
            base_price=base_price,
            shipping_cost=shipping_cost,
            total_price=base_price + shipping_cost,
            in_stock=listing.in_stock,
            is_subscription=subscription.is_subscription,
            subscription_discount=subscription.discount,
            subscription_interval=subscription.interval,
            last_updated=datetime.now(timezone.utc).isoformat(),
            source_url=listing.url,
            shop_name=listing.seller_name,
            currency=cfg.base_currency,
            tax_included=True,
            metadata=PriceMetadata(
                original_price=listing.listed_price,
                tax_rate=cfg.default_tax_rate,
                free_shipping_threshold=cfg.free_shipping_threshold,
                bulk_discounts=self.detect_bulk_discounts(listing.display_name),
            ),
        )

    def ensure_tax_included(self, price: float, is_tax_included: bool) -> int:
        if is_tax_included:
            return round_half_up(price)
        return round_half_up(price * (1 + self.config.default_tax_rate))

    def calculate_shipping(self, listing: Listing, base_price: int) -> int:
        """
        Shipping rule, first hit wins: included → 0, over the free-shipping
        threshold → 0, declared shipping price, configured default.
        """
        if listing.shipping_included:
            return 0
        if base_price >= self.config.free_shipping_threshold:
            return 0
        if listing.declared_shipping is not None:
            return round_half_up(listing.declared_shipping)
        return self.config.default_shipping_cost

    def detect_subscription(self, name: str) -> SubscriptionInfo:
        return detect_subscription(name, self.config.subscription_keywords)

    def detect_bulk_discounts(self, name: str) -> List[BulkDiscount]:
        return detect_bulk_discounts(name)

    def normalize_stock_status(self, listing: Listing) -> StockStatus:
        """Collapse a source's stock indicator into an in-stock flag and level."""
        in_stock = bool(listing.in_stock)
        return StockStatus(in_stock=in_stock, stock_level="high" if in_stock else "out_of_stock")

    def normalize_for_comparison(self, prices: Sequence[NormalizedPrice]) -> List[NormalizedPrice]:
        """
        Copies of the prices with subscription discounts applied to total_price.

        Non-subscription prices pass through unchanged; the inputs are not modified.
        """
        normalized = []
        for price in prices:
            if price.is_subscription and price.subscription_discount:
                discounted = round_half_up(price.total_price * (1 - price.subscription_discount))
                normalized.append(replace(price, total_price=discounted))
            else:
                normalized.append(replace(price))
        return normalized

    def convert_currency(self, amount: float, from_currency: str, to_currency: Optional[str] = None) -> float:
        """
        Convert an amount using the static rate table.

        Rates are expressed as the base-currency value of one unit of each
        foreign currency; pairs between two foreign currencies go through the base.

        Raises:
            UnsupportedCurrencyError: If a currency in the pair has no configured rate.
        """
        base = self.config.base_currency
        to_currency = to_currency or base
        if from_currency == to_currency:
            return amount

        rates = self.config.currency_rates
        try:
            in_base = amount if from_currency == base else amount * rates[from_currency]
            converted = in_base if to_currency == base else in_base / rates[to_currency]
        except KeyError:
            raise UnsupportedCurrencyError(
                f"Unsupported currency conversion: {from_currency} to {to_currency}"
            ) from None

        if to_currency == base:
            return round_half_up(converted)
        return round(converted, 2)

    def validate_price(self, price: NormalizedPrice) -> ValidationReport:
        """
        Check a normalized price for broken invariants and implausible values.

        Returns:
            ValidationReport: Errors for non-positive base price, negative shipping,
                              an unreconciled total or an out-of-range subscription
                              discount; warnings for suspicious magnitudes and foreign currency.
        """
        warnings: List[str] = []
        errors: List[str] = []

        if price.base_price <= 0:
            errors.append("Base price must be greater than 0")
        if price.base_price > MAX_PLAUSIBLE_BASE_PRICE:
            warnings.append(f"Base price is implausibly high (over {MAX_PLAUSIBLE_BASE_PRICE:,})")

        if price.shipping_cost < 0:
            errors.append("Shipping cost is negative")
        if price.shipping_cost > MAX_PLAUSIBLE_SHIPPING:
            warnings.append(f"Shipping cost is implausibly high (over {MAX_PLAUSIBLE_SHIPPING:,})")

        if abs(price.total_price - (price.base_price + price.shipping_cost)) > 1:
            errors.append("Total price does not equal base price plus shipping")

        if price.subscription_discount is not None and not 0 <= price.subscription_discount <= 1:
            errors.append("Subscription discount rate is outside 0-1")

        if price.currency != self.config.base_currency:
            warnings.append(f"Price is not in the base currency ({self.config.base_currency})")

        if errors:
            logger.debug(f"⚠️ Invalid price for {price.source.value}:{price.source_product_id}: {errors}")
        return ValidationReport(is_valid=not errors, warnings=warnings, errors=errors)

    def compare_with_history(
        self, current: NormalizedPrice, history: Sequence[NormalizedPrice]
    ) -> PriceHistoryComparison:
        """
        Compare a current price against caller-supplied history (oldest first).

        Args:
            current (NormalizedPrice): Latest price.
            history (Sequence[NormalizedPrice]): Earlier prices for the same listing.

        Returns:
            PriceHistoryComparison: Trend relative to the most recent historical price,
                                    extremes and the historical average.
        """
        if not history:
            return PriceHistoryComparison(
                trend="stable",
                change_percentage=0.0,
                is_lowest_price=True,
                is_highest_price=True,
                average_price=current.total_price,
            )

        totals = [p.total_price for p in history]
        last = totals[-1]
        change = (current.total_price - last) / last * 100 if last else 0.0

        trend = "stable"
        if change > TREND_THRESHOLD_PCT:
            trend = "rising"
        elif change < -TREND_THRESHOLD_PCT:
            trend = "falling"

        return PriceHistoryComparison(
            trend=trend,
            change_percentage=round(change, 2),
            is_lowest_price=current.total_price <= min(totals),
            is_highest_price=current.total_price >= max(totals),
            average_price=round_half_up(sum(totals) / len(totals)),
        )
