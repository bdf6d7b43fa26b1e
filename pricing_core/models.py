"""
Typed data models for the price reconciliation pipeline.
All data structures shared between matcher, normalizer and cost calculator are defined here.
"""
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Source(str, Enum):
    """Retail sources whose catalogs are reconciled."""
    RAKUTEN = "rakuten"
    YAHOO = "yahoo"


class MatchType(str, Enum):
    """How a listing was linked to a product description."""
    GTIN = "gtin"
    JAN = "jan"
    NAME_CAPACITY = "name_capacity"
    NAME_BRAND = "name_brand"
    FUZZY = "fuzzy"


class UnitType(str, Enum):
    WEIGHT = "weight"
    VOLUME = "volume"
    COUNT = "count"


@dataclass(frozen=True)
class Capacity:
    """Container size of a product, e.g. 90 ct or 300 g."""
    amount: float
    unit: str
    servings_per_container: Optional[int] = None


@dataclass(frozen=True)
class ProductInfo:
    """Canonical product description supplied by the caller."""
    id: str
    name: str
    brand: str
    capacity: Capacity
    category: str = ""
    gtin: Optional[str] = None
    jan: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class RakutenListing:
    """Raw Rakuten Ichiba item as returned by the connector layer."""
    item_code: str
    item_name: str
    item_price: float
    postage_flag: int = 0  # 0: shipping extra, 1: shipping included
    item_url: str = ""
    availability: int = 1  # 1: in stock, 0: out of stock
    review_count: int = 0
    review_average: float = 0.0
    shop_name: str = ""
    genre_id: str = ""
    gtin: Optional[str] = None
    jan: Optional[str] = None

    source = Source.RAKUTEN

    @property
    def local_id(self) -> str:
        return self.item_code

    @property
    def display_name(self) -> str:
        return self.item_name or ""

    @property
    def listed_price(self) -> float:
        return self.item_price

    @property
    def shipping_included(self) -> bool:
        return self.postage_flag == 1

    @property
    def declared_shipping(self) -> Optional[float]:
        # Rakuten search results never carry a postage amount
        return None

    @property
    def in_stock(self) -> bool:
        return self.availability == 1

    @property
    def seller_name(self) -> str:
        return self.shop_name or ""

    @property
    def url(self) -> str:
        return self.item_url


@dataclass(frozen=True)
class YahooListing:
    """Raw Yahoo! Shopping hit as returned by the connector layer."""
    code: str
    name: str
    price: float
    shipping_code: int = 0  # 0: shipping extra, 1: shipping included
    shipping_price: Optional[float] = None
    url: str = ""
    in_stock: bool = True
    review_count: int = 0
    review_rate: float = 0.0
    seller_name: str = ""
    category_id: str = ""
    category_name: str = ""
    gtin: Optional[str] = None
    jan: Optional[str] = None

    source = Source.YAHOO

    @property
    def local_id(self) -> str:
        return self.code

    @property
    def display_name(self) -> str:
        return self.name or ""

    @property
    def listed_price(self) -> float:
        return self.price

    @property
    def shipping_included(self) -> bool:
        return self.shipping_code == 1

    @property
    def declared_shipping(self) -> Optional[float]:
        return self.shipping_price


Listing = Union[RakutenListing, YahooListing]


@dataclass
class MatchDetails:
    """Per-signal evidence behind a match. None means the signal was not evaluated."""
    gtin_match: Optional[bool] = None
    jan_match: Optional[bool] = None
    name_match: Optional[float] = None  # similarity 0-1
    brand_match: Optional[bool] = None
    capacity_match: Optional[bool] = None
    category_match: Optional[bool] = None


@dataclass
class ProductMatch:
    """Link between one ProductInfo and one source listing."""
    product_id: str
    source: Source
    source_product_id: str
    confidence: float
    match_type: MatchType
    product: Listing
    match_details: MatchDetails = field(default_factory=MatchDetails)


@dataclass
class MatchConfidence:
    overall: float = 0.0
    by_source: Dict[str, float] = field(default_factory=dict)


@dataclass
class MatchingResult:
    """All candidate matches for one product plus the best one per source."""
    product_info: ProductInfo
    matches: List[ProductMatch] = field(default_factory=list)
    best_matches: List[ProductMatch] = field(default_factory=list)
    confidence: MatchConfidence = field(default_factory=MatchConfidence)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BulkDiscount:
    quantity: int
    discount_rate: float


@dataclass(frozen=True)
class SubscriptionInfo:
    is_subscription: bool = False
    discount: Optional[float] = None
    interval: Optional[str] = None  # weekly | monthly | quarterly


@dataclass
class PriceMetadata:
    original_price: Optional[float] = None
    tax_rate: Optional[float] = None
    free_shipping_threshold: Optional[float] = None
    bulk_discounts: List[BulkDiscount] = field(default_factory=list)


@dataclass
class NormalizedPrice:
    """Price of one listing on a single currency/tax basis, shipping folded in."""
    product_id: str
    source: Source
    source_product_id: str
    base_price: float  # tax included
    shipping_cost: float
    total_price: float  # base_price + shipping_cost
    in_stock: bool
    is_subscription: bool = False
    subscription_discount: Optional[float] = None  # 0-1
    subscription_interval: Optional[str] = None
    last_updated: str = ""
    source_url: str = ""
    shop_name: str = ""
    currency: str = "JPY"
    tax_included: bool = True
    metadata: PriceMetadata = field(default_factory=PriceMetadata)


@dataclass(frozen=True)
class StockStatus:
    in_stock: bool
    stock_level: str  # high | medium | low | out_of_stock


@dataclass(frozen=True)
class PriceHistoryComparison:
    trend: str  # rising | falling | stable
    change_percentage: float
    is_lowest_price: bool
    is_highest_price: bool
    average_price: float


@dataclass(frozen=True)
class ServingInfo:
    """Caller-supplied dosage data; any field left as None falls back to extraction/defaults."""
    serving_size: Optional[float] = None
    daily_intake: Optional[float] = None
    concentration_per_serving: Optional[float] = None
    bioavailability: Optional[float] = None  # 0-1
    quality_score: Optional[float] = None  # 0-1


@dataclass
class CostMetadata:
    unit_type: UnitType
    unit: str
    concentration_per_serving: Optional[float] = None
    bioavailability: Optional[float] = None
    quality_score: Optional[float] = None
    # Filled in by CostCalculator.compare_costs
    rank: Optional[int] = None
    is_lowest_cost: Optional[bool] = None
    cost_difference_from_lowest: Optional[float] = None


@dataclass
class CostPerDay:
    product_id: str
    source: Source
    source_product_id: str
    serving_size: float
    servings_per_container: int
    recommended_daily_intake: float
    days_per_container: float
    cost_per_day: float
    cost_per_serving: float
    cost_per_unit: float
    total_price: float
    currency: str
    calculated_at: str
    metadata: CostMetadata


@dataclass
class CostRange:
    min: float = 0.0
    max: float = 0.0
    spread: float = 0.0
    spread_percentage: float = 0.0


@dataclass
class CostRecommendation:
    type: str  # budget_option | best_value | premium_choice
    product: CostPerDay
    reason: str


@dataclass
class CostPerformance:
    best_value: Optional[CostPerDay] = None
    worst_value: Optional[CostPerDay] = None
    average_cost: float = 0.0
    median_cost: float = 0.0
    cost_range: CostRange = field(default_factory=CostRange)
    recommendations: List[CostRecommendation] = field(default_factory=list)


@dataclass
class LongTermCost:
    monthly: Optional[float] = None
    quarterly: Optional[float] = None
    yearly: Optional[float] = None


@dataclass
class ValidationReport:
    """Outcome of a post-hoc invariant check."""
    is_valid: bool
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ProductComparison:
    """Everything the pipeline produced for a single product."""
    product_info: ProductInfo
    matching: MatchingResult
    prices: List[NormalizedPrice] = field(default_factory=list)
    costs: List[CostPerDay] = field(default_factory=list)
    performance: CostPerformance = field(default_factory=CostPerformance)
    warnings: List[str] = field(default_factory=list)


def to_dict(record: Any) -> Any:
    """
    Convert a model (or list/dict of models) into JSON-compatible plain values.

    Enums are flattened to their values; listing references are expanded like
    any other dataclass.
    """
    if isinstance(record, Enum):
        return record.value
    if is_dataclass(record) and not isinstance(record, type):
        return {f.name: to_dict(getattr(record, f.name)) for f in fields(record)}
    if isinstance(record, dict):
        return {to_dict(k): to_dict(v) for k, v in record.items()}
    if isinstance(record, (list, tuple)):
        return [to_dict(v) for v in record]
    return record
