"""
Per-product comparison view.

Each product is broken down on its own, independent of the others:
top 20 keywords by volume, plus strong (rank <= 15, best rank first) and
weak (rank > 15, highest volume first) buckets of up to 15 each. The
average volume covers every collected keyword of the product.
"""

from typing import List

from .models import ComparisonRecord, KeywordOccurrence, ProductKeywordResult

TOP_KEYWORDS = 20
BUCKET_SIZE = 15
STRONG_RANK = 15


def _has_rank(occurrence: KeywordOccurrence) -> bool:
    return occurrence.ranking_position is not None and occurrence.ranking_position > 0


def build_comparison_record(product: ProductKeywordResult) -> ComparisonRecord:
    """Breakdown for one product. Failed products get an empty record."""
    if not product.succeeded:
        return ComparisonRecord(
            asin=product.asin,
            status=product.status,
            error=product.error,
            product_title=product.product_title,
        )

    by_volume = sorted(product.keywords, key=lambda k: k.search_volume or 0, reverse=True)
    top = by_volume[:TOP_KEYWORDS]

    strong = sorted(
        (k for k in product.keywords if _has_rank(k) and k.ranking_position <= STRONG_RANK),
        key=lambda k: k.ranking_position,
    )[:BUCKET_SIZE]
    weak = sorted(
        (k for k in product.keywords if _has_rank(k) and k.ranking_position > STRONG_RANK),
        key=lambda k: k.search_volume or 0,
        reverse=True,
    )[:BUCKET_SIZE]

    avg_volume = (
        round(sum(k.search_volume or 0 for k in product.keywords) / product.keyword_count)
        if product.keywords else 0
    )

    return ComparisonRecord(
        asin=product.asin,
        total_keywords=product.keyword_count,
        avg_search_volume=avg_volume,
        top_keywords=top,
        strong_keywords=strong,
        weak_keywords=weak,
        status=product.status,
        product_title=product.product_title,
    )


def build_comparison_view(products: List[ProductKeywordResult]) -> List[ComparisonRecord]:
    """One record per product, in product order."""
    return [build_comparison_record(p) for p in products]
