"""
SellerSprite API Client

Async HTTP client with:
- Connection pooling
- Automatic retry with exponential backoff
- Graceful error handling
- Response mapping into KeywordOccurrence records
"""

import asyncio
import httpx
import logging
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

from src.research.errors import RateLimitError
from src.research.models import KeywordMetrics, KeywordOccurrence

logger = logging.getLogger(__name__)

SERVICE_NAME = "SellerSprite"


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    retryable_status_codes: tuple = (429, 500, 502, 503, 504)


class SellerSpriteError(Exception):
    """Custom exception for SellerSprite API errors."""
    def __init__(self, message: str, status_code: int = None, response: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


# ============================================================================
# RESPONSE MAPPING
# ============================================================================

def _items(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        return []
    items = data.get("items")
    return items if isinstance(items, list) else []


def _badges(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    return value if isinstance(value, list) else [value]


def map_reverse_asin_item(item: Dict[str, Any]) -> KeywordOccurrence:
    """Map one /v1/traffic/keyword item."""
    purchase_rate = item.get("purchaseRate")
    position = (item.get("rankPosition") or {}).get("position")

    metrics = KeywordMetrics(
        products=item.get("products"),
        purchase_rate=purchase_rate,
        bid=item.get("bid"),
        bid_min=item.get("bidMin"),
        bid_max=item.get("bid"),
        supply_demand_ratio=item.get("supplyDemandRatio"),
        traffic_keyword_type=item.get("trafficKeywordType"),
        conversion_keyword_type=item.get("conversionKeywordType"),
        latest_1_days_ads=item.get("Latest_1_days_Ads"),
        latest_7_days_ads=item.get("Latest_7_days_Ads"),
        latest_30_days_ads=item.get("Latest_30_days_Ads"),
        calculated_weekly_searches=item.get("calculatedWeeklySearches"),
        badges=_badges(item.get("badges")),
        updated_time=item.get("updatedTime") or item.get("updated_time"),
    )

    return KeywordOccurrence(
        keyword=item.get("keyword") or "",
        search_volume=item.get("searches") or 0,
        cpc=item.get("bid") or 0.0,
        ranking_position=position or None,
        traffic_percentage=purchase_rate * 100 if purchase_rate is not None else None,
        metrics=metrics,
    )


def map_keyword_mining_item(item: Dict[str, Any]) -> KeywordOccurrence:
    """Map one /v1/keyword/miner item."""
    metrics = KeywordMetrics(
        keyword_cn=item.get("keywordCn"),
        keyword_jp=item.get("keywordJp"),
        departments=item.get("departments"),
        month=item.get("month"),
        supplement=item.get("supplement"),
        purchases=item.get("purchases"),
        purchase_rate=item.get("purchaseRate"),
        monopoly_click_rate=item.get("monopolyClickRate"),
        products=item.get("products"),
        ad_products=item.get("adProducts"),
        avg_price=item.get("avgPrice"),
        avg_ratings=item.get("avgRatings"),
        avg_rating=item.get("avgRating"),
        bid_min=item.get("bidMin"),
        bid_max=item.get("bidMax"),
        bid=item.get("bid"),
        cvs_share_rate=item.get("cvsShareRate"),
        word_count=item.get("wordCount"),
        title_density=item.get("titleDensity"),
        spr=item.get("spr"),
        relevancy=item.get("relevancy"),
        amazon_choice=item.get("amazonChoice"),
        search_rank=item.get("searchRank"),
        supply_demand_ratio=item.get("supplyDemandRatio"),
    )

    return KeywordOccurrence(
        keyword=item.get("keyword") or "",
        search_volume=item.get("searches") or 0,
        cpc=item.get("avgCpc") or item.get("bid") or 0.0,
        metrics=metrics,
    )


# ============================================================================
# CLIENT
# ============================================================================

class SellerSpriteClient:
    """
    Async client for the SellerSprite API. Implements KeywordDataProvider.

    Usage:
        async with SellerSpriteClient(api_key="...") as client:
            keywords = await client.reverse_asin("B08N5WRWNW")
            related = await client.keyword_mining("yoga mat", size=15)
    """

    BASE_URL = "https://api.sellersprite.com"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        marketplace: str = "US",
        retry_config: Optional[RetryConfig] = None,
        timeout: float = 45.0,
        max_connections: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize SellerSprite client.

        Args:
            api_key: SellerSprite secret key
            base_url: API root (defaults to BASE_URL)
            marketplace: Marketplace code sent with every request
            retry_config: Retry configuration (optional)
            timeout: Request timeout in seconds
            max_connections: Maximum concurrent connections
            transport: Custom httpx transport (tests)
        """
        if not api_key:
            raise SellerSpriteError("SellerSprite API key is required")

        self.marketplace = marketplace
        self.retry_config = retry_config or RetryConfig()

        self._client = httpx.AsyncClient(
            base_url=base_url or self.BASE_URL,
            headers={
                "secret-key": api_key,
                "Content-Type": "application/json;charset=utf-8",
            },
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max(1, max_connections // 2),
            ),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        self._closed = False

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "SellerSpriteClient":
        return cls(
            api_key=settings.SELLERSPRITE_API_KEY,
            base_url=settings.SELLERSPRITE_BASE_URL,
            marketplace=settings.SELLERSPRITE_MARKETPLACE,
            timeout=settings.API_TIMEOUT,
            **kwargs,
        )

    async def post(self, endpoint: str, payload: Dict[str, Any], retry: bool = True) -> Dict[str, Any]:
        """
        Make POST request to the SellerSprite API.

        Raises:
            SellerSpriteError: On API error
            RateLimitError: When 429 responses outlast the retries
        """
        if self._closed:
            raise SellerSpriteError("Client is closed")

        if retry:
            return await self._request_with_retry(endpoint, payload)
        return await self._make_request(endpoint, payload)

    async def _make_request(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Make a single HTTP request."""
        logger.debug(f"POST {url}")

        response = await self._client.post(url, json=payload)

        if response.status_code != 200:
            try:
                body = response.json() if response.content else None
            except ValueError:
                body = None
            raise SellerSpriteError(
                f"API request failed: {response.status_code}",
                status_code=response.status_code,
                response=body,
            )

        return response.json()

    async def _request_with_retry(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Make request with automatic retry on failure."""
        last_exception = None
        delay = self.retry_config.initial_delay

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                return await self._make_request(url, payload)

            except SellerSpriteError as e:
                last_exception = e

                # Don't retry client errors (4xx except 429)
                if e.status_code and e.status_code not in self.retry_config.retryable_status_codes:
                    raise

            except httpx.TimeoutException as e:
                last_exception = SellerSpriteError(f"Request timed out: {e}")

            except httpx.HTTPError as e:
                last_exception = SellerSpriteError(f"HTTP error: {e}")

            if attempt < self.retry_config.max_retries:
                logger.warning(
                    f"{url} failed (attempt {attempt + 1}/{self.retry_config.max_retries + 1}): "
                    f"{last_exception}. Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
                delay = min(
                    delay * self.retry_config.exponential_base,
                    self.retry_config.max_delay,
                )

        if getattr(last_exception, "status_code", None) == 429:
            raise RateLimitError(SERVICE_NAME) from last_exception
        raise last_exception

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ========================================================================
    # KEYWORD ENDPOINTS
    # ========================================================================

    async def reverse_asin(self, asin: str, page: int = 1, size: int = 200) -> List[KeywordOccurrence]:
        """
        Keywords a product receives traffic from.

        Args:
            asin: Product identifier
            page: Result page
            size: Page size

        Returns:
            Keyword occurrences in API order
        """
        body = await self.post("/v1/traffic/keyword", {
            "asin": asin,
            "marketplace": self.marketplace,
            "page": page,
            "size": size,
        })
        items = _items(body)
        logger.debug(f"Reverse ASIN {asin}: {len(items)} keywords")
        return [map_reverse_asin_item(item) for item in items]

    async def keyword_mining(
        self,
        keyword: str,
        min_search: int = 1000,
        max_supply_demand_ratio: float = 10,
        page: int = 1,
        size: int = 50,
    ) -> List[KeywordOccurrence]:
        """
        Related keywords with full market metrics.

        Returns an empty list when the API answers with a non-OK code.
        """
        body = await self.post("/v1/keyword/miner", {
            "keyword": keyword,
            "minSearch": min_search,
            "maxSupplyDemandRatio": max_supply_demand_ratio,
            "page": page,
            "size": size,
            "marketplace": self.marketplace,
            "amazonChoice": False,
        })

        if body.get("code") != "OK" or not body.get("data"):
            logger.debug(f"Keyword mining for '{keyword}' returned code {body.get('code')}")
            return []

        return [map_keyword_mining_item(item) for item in _items(body)]
