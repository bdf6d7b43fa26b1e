# pricing_core/pipeline.py

from typing import Optional, Sequence

from loguru import logger

from pricing_core.matchers.product_matcher import ProductMatcher
from pricing_core.models import (
    ProductComparison,
    ProductInfo,
    RakutenListing,
    ServingInfo,
    YahooListing,
)
from pricing_core.pricing import CostCalculator, PriceNormalizer


def compare_product(
    product_info: ProductInfo,
    rakuten_listings: Sequence[RakutenListing],
    yahoo_listings: Sequence[YahooListing],
    matcher: ProductMatcher,
    normalizer: PriceNormalizer,
    calculator: CostCalculator,
    serving_info: Optional[ServingInfo] = None,
) -> ProductComparison:
    """
    Orchestrate matcher, normalizer and cost calculator for a single product
    and produce a ranked, comparable view of its listings.

    Args:
        product_info (ProductInfo): Canonical product description.
        rakuten_listings (Sequence[RakutenListing]): Rakuten pool from the connector layer.
        yahoo_listings (Sequence[YahooListing]): Yahoo pool from the connector layer.
        matcher (ProductMatcher): Matcher instance (shared across calls is fine).
        normalizer (PriceNormalizer): Normalizer instance.
        calculator (CostCalculator): Cost calculator instance.
        serving_info (Optional[ServingInfo]): Dosage data overriding name extraction.

    Returns:
        ProductComparison: Matching result, normalized prices, ranked costs and a summary.
    """
    # Match listings to the product
    matching = matcher.match_product(product_info, rakuten_listings, yahoo_listings)
    warnings = list(matching.warnings)

    # Normalize each best match; prices failing validation are not costed
    prices = []
    for match in matching.best_matches:
        price = normalizer.normalize(match.product, product_info.id)
        report = normalizer.validate_price(price)
        warnings.extend(f"{price.source.value}:{price.source_product_id}: {w}" for w in report.warnings)
        if not report.is_valid:
            warnings.append(
                f"Dropped {price.source.value}:{price.source_product_id}: {'; '.join(report.errors)}"
            )
            continue
        prices.append(price)

    # Daily cost per price, ranked
    costs = []
    for price in prices:
        cost = calculator.calculate_cost_per_day(price, product_info, serving_info)
        report = calculator.validate_cost_calculation(cost)
        warnings.extend(f"{cost.source.value}:{cost.source_product_id}: {w}" for w in report.warnings)
        if not report.is_valid:
            warnings.append(
                f"Dropped {cost.source.value}:{cost.source_product_id}: {'; '.join(report.errors)}"
            )
            continue
        costs.append(cost)

    ranked = calculator.compare_costs(costs)
    performance = calculator.analyze_cost_performance(ranked)

    logger.info(
        f"✅ '{product_info.id}': {len(matching.best_matches)} match(es), "
        f"{len(ranked)} costed, lowest/day={performance.cost_range.min}"
    )
    return ProductComparison(
        product_info=product_info,
        matching=matching,
        prices=prices,
        costs=ranked,
        performance=performance,
        warnings=warnings,
    )
