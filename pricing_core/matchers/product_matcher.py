"""
Cascading product matcher: GTIN, then JAN, then name + capacity.

Each stage only runs when every earlier stage found nothing across all
source pools, so identifier matches always take precedence over heuristics.
"""
import copy
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from pricing_core.config import MatcherConfig
from pricing_core.extraction import extract_capacity_from_name
from pricing_core.matchers.classical_matcher import (
    calculate_name_similarity,
    calculate_overall_confidence,
    is_brand_match,
    is_capacity_match,
)
from pricing_core.models import (
    Listing,
    MatchConfidence,
    MatchDetails,
    MatchingResult,
    MatchType,
    ProductInfo,
    ProductMatch,
    RakutenListing,
    YahooListing,
)

NO_MATCH_WARNING = "No identifier or name/capacity match found"


class ProductMatcher:
    """
    Links a canonical ProductInfo to listings from each retail source.

    Instances hold only their configuration, so one matcher can serve many
    concurrent match_product calls.
    """

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()

    def update_config(self, **changes) -> None:
        """Replace configuration fields; unknown names raise TypeError."""
        self.config = replace(self.config, **changes)

    def get_config(self) -> MatcherConfig:
        return copy.deepcopy(self.config)

    def match_by_gtin(
        self,
        product_info: ProductInfo,
        rakuten_listings: Sequence[RakutenListing],
        yahoo_listings: Sequence[YahooListing],
    ) -> List[ProductMatch]:
        """Exact GTIN matches from both pools, each with confidence 1.0."""
        if not product_info.gtin:
            return []
        return self._match_by_identifier(
            product_info,
            [*rakuten_listings, *yahoo_listings],
            lambda listing: listing.gtin,
            product_info.gtin,
            MatchType.GTIN,
        )

    def match_by_jan(
        self,
        product_info: ProductInfo,
        rakuten_listings: Sequence[RakutenListing],
        yahoo_listings: Sequence[YahooListing],
    ) -> List[ProductMatch]:
        """Exact JAN matches from both pools, each with confidence 1.0."""
        if not product_info.jan:
            return []
        return self._match_by_identifier(
            product_info,
            [*rakuten_listings, *yahoo_listings],
            lambda listing: listing.jan,
            product_info.jan,
            MatchType.JAN,
        )

    def _match_by_identifier(
        self,
        product_info: ProductInfo,
        listings: Iterable[Listing],
        get_identifier: Callable[[Listing], Optional[str]],
        identifier: str,
        match_type: MatchType,
    ) -> List[ProductMatch]:
        matches = []
        for listing in listings:
            listing_id = get_identifier(listing)
            if not listing_id or listing_id != identifier:
                continue

            # Name/brand/capacity are diagnostics only; confidence stays at 1.0
            details = MatchDetails(
                name_match=calculate_name_similarity(product_info.name, listing.display_name),
                brand_match=is_brand_match(product_info.brand, listing.seller_name),
                capacity_match=self._capacity_matches(product_info, listing),
            )
            if match_type == MatchType.GTIN:
                details.gtin_match = True
            else:
                details.jan_match = True

            logger.debug(f"🔗 {match_type.value} match for '{product_info.id}' → {listing.source.value}:{listing.local_id}")
            matches.append(ProductMatch(
                product_id=product_info.id,
                source=listing.source,
                source_product_id=listing.local_id,
                confidence=1.0,
                match_type=match_type,
                product=listing,
                match_details=details,
            ))
        return matches

    def match_by_name_and_capacity(
        self,
        product_info: ProductInfo,
        rakuten_listings: Sequence[RakutenListing],
        yahoo_listings: Sequence[YahooListing],
    ) -> List[ProductMatch]:
        """
        Fallback matching on listing names when no identifier matched.

        A listing is rejected unless its capacity agrees with the product's
        (same unit, within tolerance). Survivors need a name similarity of at
        least min_name_similarity and an overall confidence of at least
        min_confidence.

        Args:
            product_info (ProductInfo): Canonical product description.
            rakuten_listings (Sequence[RakutenListing]): Rakuten pool.
            yahoo_listings (Sequence[YahooListing]): Yahoo pool.

        Returns:
            List[ProductMatch]: Accepted matches of type name_capacity.
        """
        cfg = self.config
        matches = []

        for listing in [*rakuten_listings, *yahoo_listings]:
            if not self._capacity_matches(product_info, listing):
                continue

            name_match = calculate_name_similarity(product_info.name, listing.display_name)
            if name_match < cfg.min_name_similarity:
                continue

            details = MatchDetails(
                name_match=name_match,
                brand_match=is_brand_match(product_info.brand, listing.seller_name),
                capacity_match=True,
            )
            confidence = calculate_overall_confidence(details, cfg.weights)
            if confidence < cfg.min_confidence:
                logger.debug(f"Rejected {listing.source.value}:{listing.local_id} (confidence {confidence:.2f})")
                continue

            matches.append(ProductMatch(
                product_id=product_info.id,
                source=listing.source,
                source_product_id=listing.local_id,
                confidence=confidence,
                match_type=MatchType.NAME_CAPACITY,
                product=listing,
                match_details=details,
            ))

        return matches

    def _capacity_matches(self, product_info: ProductInfo, listing: Listing) -> bool:
        extracted = extract_capacity_from_name(listing.display_name, preferred_unit=product_info.capacity.unit)
        return is_capacity_match(product_info.capacity, extracted, self.config.capacity_tolerance)

    def match_product(
        self,
        product_info: ProductInfo,
        rakuten_listings: Sequence[RakutenListing],
        yahoo_listings: Sequence[YahooListing],
    ) -> MatchingResult:
        """
        Run the matching cascade for one product against both source pools.

        Args:
            product_info (ProductInfo): Canonical product description.
            rakuten_listings (Sequence[RakutenListing]): Rakuten pool.
            yahoo_listings (Sequence[YahooListing]): Yahoo pool.

        Returns:
            MatchingResult: All candidates (highest confidence first), the best match per source,
                            aggregate confidences and human-readable warnings.
        """
        warnings: List[str] = []

        all_matches = self.match_by_gtin(product_info, rakuten_listings, yahoo_listings)

        if not all_matches:
            all_matches = self.match_by_jan(product_info, rakuten_listings, yahoo_listings)

        if not all_matches:
            if not product_info.capacity.amount or product_info.capacity.amount <= 0:
                warnings.append(f"Product '{product_info.id}' has no usable capacity; name/capacity matching cannot succeed")
            all_matches = self.match_by_name_and_capacity(product_info, rakuten_listings, yahoo_listings)
            if not all_matches:
                warnings.append(NO_MATCH_WARNING)

        all_matches.sort(key=lambda m: m.confidence, reverse=True)
        best_matches = self._select_best_matches(all_matches)

        below_medium = [m for m in all_matches if m.confidence < self.config.medium_confidence]
        if below_medium:
            warnings.append(
                f"{len(below_medium)} match(es) below {self.config.medium_confidence:.0%} confidence"
            )

        by_source = {m.source.value: m.confidence for m in best_matches}
        overall = sum(by_source.values()) / len(by_source) if by_source else 0.0

        logger.debug(
            f"Matched '{product_info.id}': {len(all_matches)} candidate(s), "
            f"{len(best_matches)} source(s), overall confidence {overall:.2f}"
        )
        return MatchingResult(
            product_info=product_info,
            matches=all_matches,
            best_matches=best_matches,
            confidence=MatchConfidence(overall=overall, by_source=by_source),
            warnings=warnings,
        )

    @staticmethod
    def _select_best_matches(sorted_matches: List[ProductMatch]) -> List[ProductMatch]:
        """Highest-confidence match per source; input must already be sorted descending."""
        best: Dict[str, ProductMatch] = {}
        for match in sorted_matches:
            if match.source.value not in best:
                best[match.source.value] = match
        return list(best.values())

    def validate_match(self, match: ProductMatch, product_info: ProductInfo) -> bool:
        """
        Re-check a match obtained elsewhere (e.g. from a cache).

        Identifier matches are always valid; name_capacity matches need a
        capacity match and the minimum confidence; any other type is rejected.
        """
        if match.match_type in (MatchType.GTIN, MatchType.JAN):
            return True
        if match.match_type == MatchType.NAME_CAPACITY:
            return (
                match.match_details.capacity_match is True
                and match.confidence >= self.config.min_confidence
            )
        return False
