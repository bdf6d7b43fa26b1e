import pytest

from pricing_core.config import MatchWeights
from pricing_core.matchers.classical_matcher import (
    calculate_name_similarity,
    calculate_overall_confidence,
    is_brand_match,
    is_capacity_match,
)
from pricing_core.matchers.product_matcher import NO_MATCH_WARNING, ProductMatcher
from pricing_core.models import (
    Capacity,
    MatchDetails,
    MatchType,
    ProductInfo,
    ProductMatch,
    RakutenListing,
    Source,
    YahooListing,
)

GTIN = "4901234567890"


@pytest.fixture
def product():
    return ProductInfo(
        id="test-product-1",
        name="ビタミンD 1000IU 90粒",
        brand="HealthBrand",
        gtin=GTIN,
        jan=GTIN,
        capacity=Capacity(amount=90, unit="粒", servings_per_container=90),
        category="ビタミン",
    )


@pytest.fixture
def rakuten_listings():
    return [
        RakutenListing(
            item_code="rakuten-vitamin-d-1000",
            item_name="ビタミンD 1000IU 90粒",
            item_price=1980,
            shop_name="HealthBrand Store",
            gtin=GTIN,
            jan=GTIN,
        ),
        RakutenListing(
            item_code="rakuten-vitamin-d-different",
            item_name="ビタミンD3 1000IU 60粒",
            item_price=1580,
            postage_flag=1,
            shop_name="Different Brand",
            gtin="4901234567891",
            jan="4901234567891",
        ),
    ]


@pytest.fixture
def yahoo_listings():
    return [
        YahooListing(
            code="yahoo-vitamin-d-1000",
            name="ビタミンD 1000IU 90カプセル",
            price=1890,
            shipping_price=300,
            seller_name="HealthBrand Yahoo Store",
            gtin=GTIN,
            jan=GTIN,
        ),
        YahooListing(
            code="yahoo-vitamin-d-similar",
            name="ビタミンD3 1000IU 90粒 プレミアム",
            price=2200,
            shipping_code=1,
            seller_name="Premium Health",
            gtin="4901234567892",
            jan="4901234567892",
        ),
    ]


def _without_identifiers(product: ProductInfo) -> ProductInfo:
    return ProductInfo(
        id=product.id,
        name=product.name,
        brand=product.brand,
        capacity=product.capacity,
        category=product.category,
    )


def test_name_similarity_normalizes_brackets_spaces_and_dots():
    """Brackets, whitespace, middle dots and case do not affect similarity."""
    assert calculate_name_similarity("【Vitamin】 D・3", "vitamin d3") == 1.0
    assert calculate_name_similarity("", "") == 1.0
    assert calculate_name_similarity("abc", "abd") == pytest.approx(2 / 3)
    assert calculate_name_similarity("abc", "") == 0.0


def test_brand_match_is_containment_in_either_direction():
    assert is_brand_match("HealthBrand", "healthbrand store")
    assert is_brand_match("Nature Made Japan", "nature made")
    assert not is_brand_match("HealthBrand", "Premium Health")
    assert not is_brand_match("", "Any Shop")


def test_capacity_match_requires_same_unit_within_ten_percent():
    target = Capacity(amount=90, unit="CT")
    assert is_capacity_match(target, Capacity(amount=99, unit="ct"))
    assert is_capacity_match(target, Capacity(amount=81, unit="ct"))
    assert not is_capacity_match(target, Capacity(amount=100, unit="ct"))
    assert not is_capacity_match(target, Capacity(amount=90, unit="g"))
    assert not is_capacity_match(target, None)
    assert not is_capacity_match(Capacity(amount=0, unit="ct"), Capacity(amount=0, unit="ct"))


def test_overall_confidence_only_weighs_evaluated_signals():
    weights = MatchWeights()
    assert calculate_overall_confidence(MatchDetails(name_match=1.0), weights) == 1.0
    details = MatchDetails(name_match=0.5, brand_match=False, capacity_match=True)
    assert calculate_overall_confidence(details, weights) == pytest.approx(0.4 / 0.9)
    assert calculate_overall_confidence(MatchDetails(), weights) == 0.0


def test_match_by_gtin_gives_perfect_confidence(product, rakuten_listings, yahoo_listings):
    """One GTIN match per source, each fixed at 1.0 with diagnostic details."""
    matches = ProductMatcher().match_by_gtin(product, rakuten_listings, yahoo_listings)

    assert len(matches) == 2
    by_source = {m.source: m for m in matches}
    for source in (Source.RAKUTEN, Source.YAHOO):
        match = by_source[source]
        assert match.confidence == 1.0
        assert match.match_type == MatchType.GTIN
        assert match.match_details.gtin_match is True
        assert match.match_details.capacity_match is True
    assert by_source[Source.RAKUTEN].match_details.name_match == 1.0
    assert by_source[Source.RAKUTEN].source_product_id == "rakuten-vitamin-d-1000"


def test_match_by_gtin_without_product_gtin_is_empty(product, rakuten_listings, yahoo_listings):
    no_gtin = ProductInfo(id=product.id, name=product.name, brand=product.brand, capacity=product.capacity)
    assert ProductMatcher().match_by_gtin(no_gtin, rakuten_listings, yahoo_listings) == []


def test_gtin_scenario_two_sources_full_confidence_no_warnings():
    """Two listings sharing the product's GTIN in two sources."""
    product = ProductInfo(
        id="vit-d",
        name="Vitamin D 1000IU 90ct",
        brand="Sunshine",
        gtin=GTIN,
        capacity=Capacity(amount=90, unit="ct"),
    )
    rakuten = [RakutenListing(item_code="r1", item_name="Vitamin D3 Softgels", item_price=1980, gtin=GTIN)]
    yahoo = [YahooListing(code="y1", name="Sunshine D 1000", price=2100, gtin=GTIN)]

    result = ProductMatcher().match_product(product, rakuten, yahoo)

    assert len(result.best_matches) == 2
    assert result.confidence.overall == 1.0
    assert result.confidence.by_source == {"rakuten": 1.0, "yahoo": 1.0}
    assert result.warnings == []


def test_jan_used_only_when_no_gtin_match(product):
    """A JAN hit is ignored once any listing matched by GTIN."""
    rakuten = [RakutenListing(item_code="r-gtin", item_name="x", item_price=1000, gtin=GTIN)]
    yahoo = [YahooListing(code="y-jan", name="y", price=1000, jan=GTIN)]

    result = ProductMatcher().match_product(product, rakuten, yahoo)

    assert [m.source_product_id for m in result.matches] == ["r-gtin"]
    assert result.matches[0].match_type == MatchType.GTIN


def test_jan_match_when_gtin_absent_everywhere(product):
    rakuten = [RakutenListing(item_code="r-jan", item_name="ビタミンD 1000IU 90粒", item_price=1000, jan=GTIN)]

    result = ProductMatcher().match_product(product, rakuten, [])

    assert len(result.matches) == 1
    match = result.matches[0]
    assert match.match_type == MatchType.JAN
    assert match.confidence == 1.0
    assert match.match_details.jan_match is True
    assert match.match_details.gtin_match is None


def test_name_and_capacity_fallback(product, rakuten_listings, yahoo_listings):
    """
    Without identifiers the fallback keeps listings with matching capacity,
    similar names and enough overall confidence.
    """
    bare = _without_identifiers(product)

    result = ProductMatcher().match_product(bare, rakuten_listings, yahoo_listings)

    ids = [m.source_product_id for m in result.matches]
    # 60粒 fails capacity; the premium listing fails brand and confidence
    assert ids == ["rakuten-vitamin-d-1000", "yahoo-vitamin-d-1000"]
    assert all(m.match_type == MatchType.NAME_CAPACITY for m in result.matches)
    assert result.matches[0].confidence == pytest.approx(1.0)
    assert result.matches[1].confidence == pytest.approx((0.4 * (1 - 4 / 17) + 0.5) / 0.9)
    assert len(result.best_matches) == 2
    assert result.confidence.overall == pytest.approx(
        (result.matches[0].confidence + result.matches[1].confidence) / 2
    )
    assert result.warnings == ["1 match(es) below 90% confidence"]


def test_fallback_rejects_wrong_capacity_even_with_identical_name():
    """Identical names cannot rescue a listing twice the target capacity."""
    product = ProductInfo(
        id="vit-d",
        name="Vitamin D 1000IU 180ct",
        brand="Sunshine",
        capacity=Capacity(amount=90, unit="ct"),
    )
    rakuten = [RakutenListing(item_code="r1", item_name="Vitamin D 1000IU 180ct", item_price=1980, shop_name="Sunshine")]

    result = ProductMatcher().match_product(product, rakuten, [])

    assert result.matches == []
    assert NO_MATCH_WARNING in result.warnings


def test_fallback_matches_english_count_units():
    product = ProductInfo(id="vit-d", name="Vitamin D 1000IU 90ct", brand="Sunshine", capacity=Capacity(amount=90, unit="ct"))
    yahoo = [YahooListing(code="y1", name="Vitamin D 1000IU 90 Capsules", price=1500, seller_name="Sunshine Official")]

    result = ProductMatcher().match_product(product, [], yahoo)

    assert len(result.best_matches) == 1
    assert result.best_matches[0].match_details.capacity_match is True


def test_empty_pools_produce_empty_result_with_warning(product):
    result = ProductMatcher().match_product(product, [], [])

    assert result.matches == []
    assert result.best_matches == []
    assert result.confidence.overall == 0
    assert len(result.warnings) >= 1


def test_malformed_product_does_not_raise(rakuten_listings, yahoo_listings):
    """Empty names and zero capacity simply fail to match."""
    malformed = ProductInfo(id="bad", name="", brand="", capacity=Capacity(amount=0, unit=""))

    result = ProductMatcher().match_product(malformed, rakuten_listings, yahoo_listings)

    assert result.matches == []
    assert any("no usable capacity" in w for w in result.warnings)
    assert NO_MATCH_WARNING in result.warnings


def test_best_matches_keep_one_per_source(product):
    """Several GTIN hits in one source collapse to a single best match."""
    rakuten = [
        RakutenListing(item_code="r1", item_name="a", item_price=1000, gtin=GTIN),
        RakutenListing(item_code="r2", item_name="b", item_price=1100, gtin=GTIN),
    ]

    result = ProductMatcher().match_product(product, rakuten, [])

    assert len(result.matches) == 2
    assert len(result.best_matches) == 1
    assert result.best_matches[0].source == Source.RAKUTEN


def test_update_config_changes_thresholds(product, rakuten_listings, yahoo_listings):
    matcher = ProductMatcher()
    matcher.update_config(min_confidence=0.95)

    result = matcher.match_product(_without_identifiers(product), rakuten_listings, yahoo_listings)

    assert [m.source_product_id for m in result.matches] == ["rakuten-vitamin-d-1000"]
    assert matcher.get_config().min_confidence == 0.95
    with pytest.raises(TypeError):
        matcher.update_config(no_such_setting=1)


def _match(match_type, confidence, capacity_match=None):
    return ProductMatch(
        product_id="p",
        source=Source.RAKUTEN,
        source_product_id="r",
        confidence=confidence,
        match_type=match_type,
        product=RakutenListing(item_code="r", item_name="n", item_price=1),
        match_details=MatchDetails(capacity_match=capacity_match),
    )


@pytest.mark.parametrize(
    "match_type, confidence, capacity_match, expected",
    [
        (MatchType.GTIN, 1.0, None, True),
        (MatchType.JAN, 1.0, None, True),
        (MatchType.NAME_CAPACITY, 0.7, True, True),
        (MatchType.NAME_CAPACITY, 0.6, True, True),
        (MatchType.NAME_CAPACITY, 0.59, True, False),
        (MatchType.NAME_CAPACITY, 0.9, False, False),
        (MatchType.NAME_BRAND, 0.95, True, False),
        (MatchType.FUZZY, 0.95, True, False),
    ],
)
def test_validate_match(product, match_type, confidence, capacity_match, expected):
    assert ProductMatcher().validate_match(_match(match_type, confidence, capacity_match), product) is expected
