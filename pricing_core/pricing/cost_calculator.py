"""
Cost-per-day calculation and cross-listing ranking.
"""
import math
import copy
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import numpy as np
from loguru import logger

from pricing_core.config import CostCalculatorConfig
from pricing_core.extraction import determine_unit_type, extract_daily_intake, extract_serving_size
from pricing_core.models import (
    CostMetadata,
    CostPerDay,
    CostPerformance,
    CostRange,
    CostRecommendation,
    LongTermCost,
    NormalizedPrice,
    ProductInfo,
    ServingInfo,
    ValidationReport,
)

PERIOD_DAYS = {"monthly": 30, "quarterly": 90, "yearly": 365}
MAX_PLAUSIBLE_COST_PER_DAY = 10_000
RECONCILE_TOLERANCE = 0.01
# days_per_container is stored rounded to 2 dp
DAYS_ROUNDING_TOLERANCE = 0.005 + 1e-9


def _identity(cost: CostPerDay):
    return (cost.product_id, cost.source, cost.source_product_id)


class CostCalculator:
    """
    Turns normalized prices into comparable daily costs.

    Args:
        config (Optional[CostCalculatorConfig]): Dosage defaults and quality weighting.
    """

    def __init__(self, config: Optional[CostCalculatorConfig] = None):
        self.config = config or CostCalculatorConfig()

    def update_config(self, **changes) -> None:
        """Replace configuration fields; unknown names raise TypeError."""
        self.config = replace(self.config, **changes)

    def get_config(self) -> CostCalculatorConfig:
        return copy.deepcopy(self.config)

    def calculate_cost_per_day(
        self,
        price: NormalizedPrice,
        product_info: ProductInfo,
        serving_info: Optional[ServingInfo] = None,
    ) -> CostPerDay:
        """
        Derive daily, per-serving and per-unit cost for one normalized price.

        Serving size and daily intake come from serving_info when given,
        otherwise from the product name, otherwise from the configured defaults.
        A product whose capacity yields no servings gets zero costs, which
        validate_cost_calculation reports as invalid.

        Args:
            price (NormalizedPrice): Normalized price of the matched listing.
            product_info (ProductInfo): Canonical product description.
            serving_info (Optional[ServingInfo]): Caller-supplied dosage data.

        Returns:
            CostPerDay: Costs rounded to 2 decimal places.
        """
        serving_info = serving_info or ServingInfo()
        # Explicit values win, zero included
        serving_size = serving_info.serving_size
        if serving_size is None:
            serving_size = self._serving_size(product_info)
        daily_intake = serving_info.daily_intake
        if daily_intake is None:
            daily_intake = self._daily_intake(product_info)
        servings = self.calculate_servings_per_container(product_info, serving_size)
        capacity = product_info.capacity
        total = price.total_price

        if servings > 0 and daily_intake > 0:
            days = servings / daily_intake
            cost_per_day = total / days
            cost_per_serving = total / servings
        else:
            logger.warning(f"⚠️ No servings derivable for '{product_info.id}' ({capacity.amount} {capacity.unit})")
            days = cost_per_day = cost_per_serving = 0.0
        cost_per_unit = total / capacity.amount if capacity.amount and capacity.amount > 0 else 0.0

        return CostPerDay(
            product_id=price.product_id,
            source=price.source,
            source_product_id=price.source_product_id,
            serving_size=serving_size,
            servings_per_container=servings,
            recommended_daily_intake=daily_intake,
            days_per_container=round(days, 2),
            cost_per_day=round(cost_per_day, 2),
            cost_per_serving=round(cost_per_serving, 2),
            cost_per_unit=round(cost_per_unit, 2),
            total_price=total,
            currency=price.currency,
            calculated_at=datetime.now(timezone.utc).isoformat(),
            metadata=CostMetadata(
                unit_type=determine_unit_type(capacity.unit),
                unit=capacity.unit,
                concentration_per_serving=serving_info.concentration_per_serving,
                bioavailability=serving_info.bioavailability,
                quality_score=serving_info.quality_score,
            ),
        )

    def calculate_servings_per_container(self, product_info: ProductInfo, serving_size: float) -> int:
        # Weight, volume and count capacities are all divided the same way
        capacity = product_info.capacity
        if capacity.servings_per_container:
            return capacity.servings_per_container
        if not capacity.amount or capacity.amount <= 0 or serving_size <= 0:
            return 0
        return math.floor(capacity.amount / serving_size)

    def _serving_size(self, product_info: ProductInfo) -> float:
        return extract_serving_size(product_info.name) or self.config.default_serving_size

    def _daily_intake(self, product_info: ProductInfo) -> float:
        return extract_daily_intake(product_info.name) or self.config.default_daily_intake

    def compare_costs(self, costs: Iterable[CostPerDay]) -> List[CostPerDay]:
        """
        Rank costs ascending by cost_per_day.

        Returns:
            List[CostPerDay]: Copies annotated with rank (1-based), is_lowest_cost and
                              cost_difference_from_lowest; the inputs are not modified.
        """
        ranked = sorted(costs, key=lambda c: c.cost_per_day)
        if not ranked:
            return []

        lowest = ranked[0].cost_per_day
        result = []
        for index, cost in enumerate(ranked):
            metadata = replace(
                cost.metadata,
                rank=index + 1,
                is_lowest_cost=index == 0,
                cost_difference_from_lowest=0.0 if index == 0 else round(cost.cost_per_day - lowest, 2),
            )
            result.append(replace(cost, metadata=metadata))
        return result

    def find_lowest_cost(self, costs: Sequence[CostPerDay]) -> Optional[CostPerDay]:
        if not costs:
            return None
        return min(costs, key=lambda c: c.cost_per_day)

    def calculate_quality_adjusted_cost(self, cost: CostPerDay) -> float:
        """
        Daily cost discounted for quality and penalized for poor absorption.

        A quality score multiplies by (1 - score * quality_weight_factor); a
        bioavailability score further multiplies by (2 - bioavailability).
        """
        adjusted = cost.cost_per_day
        if cost.metadata.quality_score is not None:
            adjusted *= 1 - cost.metadata.quality_score * self.config.quality_weight_factor
        if cost.metadata.bioavailability is not None:
            adjusted *= 2 - cost.metadata.bioavailability
        return round(adjusted, 2)

    def analyze_cost_performance(self, costs: Sequence[CostPerDay]) -> CostPerformance:
        """
        Descriptive statistics over cost_per_day plus purchase recommendations.

        Args:
            costs (Sequence[CostPerDay]): Costs to compare.

        Returns:
            CostPerformance: Best/worst value, mean, median, range and recommendations.
                             An empty input yields an all-zero summary.
        """
        if not costs:
            return CostPerformance()

        ordered = sorted(costs, key=lambda c: c.cost_per_day)
        values = np.array([c.cost_per_day for c in ordered], dtype=float)
        low = float(values[0])
        high = float(values[-1])
        spread = high - low

        return CostPerformance(
            best_value=ordered[0],
            worst_value=ordered[-1],
            average_cost=round(float(np.mean(values)), 2),
            median_cost=round(float(np.median(values)), 2),
            cost_range=CostRange(
                min=low,
                max=high,
                spread=round(spread, 2),
                spread_percentage=round(spread / low * 100, 2) if low > 0 else 0.0,
            ),
            recommendations=self._generate_recommendations(ordered),
        )

    def _generate_recommendations(self, ordered: List[CostPerDay]) -> List[CostRecommendation]:
        budget = ordered[0]
        recommendations = [
            CostRecommendation(type="budget_option", product=budget, reason="Lowest cost per day"),
        ]

        best_value = min(ordered, key=self.calculate_quality_adjusted_cost)
        if _identity(best_value) != _identity(budget):
            recommendations.append(CostRecommendation(
                type="best_value",
                product=best_value,
                reason="Lowest cost per day once quality and absorption are taken into account",
            ))

        threshold = self.config.premium_quality_threshold
        premium = [
            c for c in ordered
            if c.metadata.quality_score is not None and c.metadata.quality_score > threshold
        ]
        if premium:
            recommendations.append(CostRecommendation(
                type="premium_choice",
                product=premium[0],
                reason="Cheapest option among high-quality products",
            ))

        return recommendations

    def calculate_long_term_cost(
        self, cost: CostPerDay, periods: Sequence[str] = ("monthly", "quarterly", "yearly")
    ) -> LongTermCost:
        """Project cost_per_day over 30/90/365 days for the requested periods."""
        unknown = set(periods) - set(PERIOD_DAYS)
        if unknown:
            raise ValueError(f"Unknown period(s): {sorted(unknown)}")
        values = {p: round(cost.cost_per_day * PERIOD_DAYS[p], 2) for p in periods}
        return LongTermCost(**values)

    def validate_cost_calculation(self, cost: CostPerDay) -> ValidationReport:
        """
        Check a CostPerDay for broken invariants and implausible values.

        Costs reconcile against the exact days per container (servings / intake),
        and the stored days_per_container must equal it up to 2 dp rounding.
        Records without servings or intake reconcile against days_per_container.
        """
        warnings: List[str] = []
        errors: List[str] = []

        if cost.cost_per_day <= 0:
            errors.append("Cost per day must be greater than 0")
        if cost.cost_per_serving <= 0:
            errors.append("Cost per serving must be greater than 0")
        if cost.days_per_container <= 0:
            errors.append("Days per container must be greater than 0")

        if cost.cost_per_day > MAX_PLAUSIBLE_COST_PER_DAY:
            warnings.append(f"Cost per day is implausibly high (over {MAX_PLAUSIBLE_COST_PER_DAY:,})")
        if cost.days_per_container > 365:
            warnings.append("One container lasts more than a year")
        if 0 < cost.days_per_container < 1:
            warnings.append("One container lasts less than a day")

        if cost.servings_per_container > 0 and cost.recommended_daily_intake > 0:
            exact_days = cost.servings_per_container / cost.recommended_daily_intake
            if abs(cost.days_per_container - exact_days) > DAYS_ROUNDING_TOLERANCE:
                errors.append("Days per container does not reconcile with servings / daily intake")
            if abs(cost.cost_per_day - cost.total_price / exact_days) > RECONCILE_TOLERANCE:
                errors.append("Cost per day does not reconcile with total price / days per container")
            if abs(cost.cost_per_serving - cost.total_price / cost.servings_per_container) > RECONCILE_TOLERANCE:
                errors.append("Cost per serving does not reconcile with total price / servings per container")
        elif cost.days_per_container > 0:
            if abs(cost.cost_per_day - cost.total_price / cost.days_per_container) > RECONCILE_TOLERANCE:
                errors.append("Cost per day does not reconcile with total price / days per container")

        return ValidationReport(is_valid=not errors, warnings=warnings, errors=errors)
