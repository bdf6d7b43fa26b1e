import os
import asyncio
import csv
import sys
from typing import Dict, List, Optional, Tuple

import pandas as pd
from loguru import logger

from pricing_core.models import (
    Capacity,
    ProductComparison,
    ProductInfo,
    RakutenListing,
    YahooListing,
)
from pricing_core.matchers.product_matcher import ProductMatcher
from pricing_core.pipeline import compare_product
from pricing_core.pricing import CostCalculator, PriceNormalizer
from pricing_core.config import PRODUCTS_CSV, LISTINGS_CSV, OUTPUT_CSV, BATCH_SIZE, LOG_LEVEL

OUTPUT_HEADER = [
    "product_id", "rank", "source", "source_product_id", "total_price",
    "cost_per_day", "days_per_container", "match_type", "confidence", "warnings",
]


def _safe_get(row: pd.Series, col: str):
    """Extract a value from a pandas row, converting NaN and missing columns to None."""
    if col not in row.index:
        return None
    val = row[col]
    if pd.isna(val):
        return None
    return val


def _safe_str(row: pd.Series, col: str) -> Optional[str]:
    val = _safe_get(row, col)
    if val is None:
        return None
    # Barcodes read as floats lose nothing but the ".0"
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val)


def _safe_num(row: pd.Series, col: str, default=None):
    val = _safe_get(row, col)
    if val is None:
        return default
    try:
        return float(val)
    except (ValueError, TypeError):
        return default


def load_products_from_csv(file_path: str, nrows: int = None) -> List[ProductInfo]:
    """Load canonical product descriptions from CSV."""
    df = pd.read_csv(file_path, nrows=nrows, dtype={"gtin": str, "jan": str})
    products = []
    for _, row in df.iterrows():
        servings = _safe_num(row, "servings_per_container")
        products.append(ProductInfo(
            id=_safe_str(row, "id") or "",
            name=_safe_str(row, "name") or "",
            brand=_safe_str(row, "brand") or "",
            gtin=_safe_str(row, "gtin"),
            jan=_safe_str(row, "jan"),
            capacity=Capacity(
                amount=_safe_num(row, "capacity_amount", 0.0),
                unit=_safe_str(row, "capacity_unit") or "",
                servings_per_container=int(servings) if servings else None,
            ),
            category=_safe_str(row, "category") or "",
            description=_safe_str(row, "description"),
        ))
    return products


def load_listings_from_csv(file_path: str) -> Tuple[List[RakutenListing], List[YahooListing]]:
    """
    Load both listing pools from one CSV with a `source` column.

    Rows with an unknown source are skipped with a warning.
    """
    df = pd.read_csv(file_path, dtype={"gtin": str, "jan": str})
    rakuten, yahoo = [], []
    for _, row in df.iterrows():
        source = (_safe_str(row, "source") or "").lower()
        shipping_included = int(_safe_num(row, "shipping_included", 0))
        in_stock = bool(_safe_num(row, "in_stock", 1))
        if source == "rakuten":
            rakuten.append(RakutenListing(
                item_code=_safe_str(row, "code") or "",
                item_name=_safe_str(row, "name") or "",
                item_price=_safe_num(row, "price", 0.0),
                postage_flag=shipping_included,
                item_url=_safe_str(row, "url") or "",
                availability=1 if in_stock else 0,
                review_count=int(_safe_num(row, "review_count", 0)),
                review_average=_safe_num(row, "review_average", 0.0),
                shop_name=_safe_str(row, "shop_name") or "",
                genre_id=_safe_str(row, "category_id") or "",
                gtin=_safe_str(row, "gtin"),
                jan=_safe_str(row, "jan"),
            ))
        elif source == "yahoo":
            yahoo.append(YahooListing(
                code=_safe_str(row, "code") or "",
                name=_safe_str(row, "name") or "",
                price=_safe_num(row, "price", 0.0),
                shipping_code=shipping_included,
                shipping_price=_safe_num(row, "shipping_price"),
                url=_safe_str(row, "url") or "",
                in_stock=in_stock,
                review_count=int(_safe_num(row, "review_count", 0)),
                review_rate=_safe_num(row, "review_average", 0.0),
                seller_name=_safe_str(row, "shop_name") or "",
                category_id=_safe_str(row, "category_id") or "",
                category_name=_safe_str(row, "category_name") or "",
                gtin=_safe_str(row, "gtin"),
                jan=_safe_str(row, "jan"),
            ))
        else:
            logger.warning(f"⚠️ Skipping listing with unknown source '{source}'")
    return rakuten, yahoo


def batch_iter(products: List[ProductInfo], batch_size: int):
    """
    Yield index and ProductInfo slices of size `batch_size` for batched processing.
    """
    n = len(products)
    for i in range(0, n, batch_size):
        yield i, products[i:i+batch_size]


async def process_product(
    product: ProductInfo,
    rakuten: List[RakutenListing],
    yahoo: List[YahooListing],
    components: Dict[str, object],
) -> ProductComparison:
    """
    Run the full pipeline for one product without blocking the event loop.

    Args:
        product (ProductInfo): Product to compare.
        rakuten (List[RakutenListing]): Shared Rakuten pool.
        yahoo (List[YahooListing]): Shared Yahoo pool.
        components (Dict[str, object]): Shared matcher/normalizer/calculator instances.

    Returns:
        ProductComparison: Pipeline result for this product.
    """
    return await asyncio.to_thread(
        compare_product,
        product,
        rakuten,
        yahoo,
        components["matcher"],
        components["normalizer"],
        components["calculator"],
    )


def comparison_rows(result: ProductComparison) -> List[list]:
    """Flatten a comparison into one CSV row per ranked cost (or one empty row)."""
    matches = {(m.source, m.source_product_id): m for m in result.matching.best_matches}
    warnings = " | ".join(result.warnings)
    if not result.costs:
        return [[result.product_info.id, "", "", "", "", "", "", "", 0.0, warnings]]

    rows = []
    for cost in result.costs:
        match = matches.get((cost.source, cost.source_product_id))
        rows.append([
            cost.product_id,
            cost.metadata.rank,
            cost.source.value,
            cost.source_product_id,
            cost.total_price,
            cost.cost_per_day,
            cost.days_per_container,
            match.match_type.value if match else "",
            round(match.confidence, 3) if match else 0.0,
            warnings,
        ])
    return rows


async def main():
    """
    Orchestrate the full batch processing pipeline.

    - Loads products and listing pools from CSV.
    - Processes products in batches, concurrently within each batch.
    - Writes ranked daily costs incrementally to an output CSV.
    """
    # Initialize logs
    logger.remove()  # Remove default handler
    logger.add(sys.stderr, level=LOG_LEVEL, format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>")

    products = load_products_from_csv(PRODUCTS_CSV)
    rakuten, yahoo = load_listings_from_csv(LISTINGS_CSV)
    logger.info(f"Loaded {len(products)} products, {len(rakuten)} Rakuten and {len(yahoo)} Yahoo listings")

    components = {
        "matcher": ProductMatcher(),
        "normalizer": PriceNormalizer(),
        "calculator": CostCalculator(),
    }

    # Initialize output file
    output_path = OUTPUT_CSV
    if os.path.exists(output_path):
        os.remove(output_path)
    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(OUTPUT_HEADER)

    for start_idx, batch in batch_iter(products, BATCH_SIZE):
        logger.info(f"Processing products {start_idx}..{start_idx + len(batch) - 1}")

        # Process all products in the batch in parallel
        results = await asyncio.gather(*[process_product(p, rakuten, yahoo, components) for p in batch])

        with open(output_path, "a", newline="") as f:
            writer = csv.writer(f)
            for result in results:
                writer.writerows(comparison_rows(result))


if __name__ == "__main__":
    asyncio.run(main())
