"""
Tests for the SellerSprite client using httpx.MockTransport.
"""

import json

import httpx
import pytest

from src.collector.client import RetryConfig, SellerSpriteClient, SellerSpriteError
from src.research.errors import RateLimitError


REVERSE_ASIN_BODY = {
    "code": "OK",
    "data": {
        "items": [
            {
                "keyword": "yoga mat",
                "searches": 8000,
                "bid": 1.45,
                "bidMin": 0.9,
                "purchaseRate": 0.125,
                "products": 80,
                "supplyDemandRatio": 6.0,
                "rankPosition": {"position": 4},
                "trafficKeywordType": "traffic",
                "badges": "amazon_choice",
            },
            {"keyword": "yoga mat bag", "searches": 900, "bid": 0.8, "rankPosition": {}},
        ]
    },
}

MINING_BODY = {
    "code": "OK",
    "data": {
        "items": [
            {"keyword": "cork yoga mat", "searches": 2500, "avgCpc": 1.2, "bid": 0.9,
             "purchases": 321, "avgPrice": 24.99, "relevancy": 0.8},
            {"keyword": "yoga block", "searches": 1800, "bid": 0.7},
        ]
    },
}


def _client(handler, **kwargs):
    return SellerSpriteClient(
        api_key="test-key",
        retry_config=RetryConfig(max_retries=2, initial_delay=0),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestRequests:
    """Test endpoints, payloads and headers."""

    @pytest.mark.asyncio
    async def test_reverse_asin_request(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["key"] = request.headers["secret-key"]
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json=REVERSE_ASIN_BODY)

        async with _client(handler, marketplace="DE") as client:
            await client.reverse_asin("B08N5WRWNW", size=50)

        assert seen["path"] == "/v1/traffic/keyword"
        assert seen["key"] == "test-key"
        assert seen["payload"] == {"asin": "B08N5WRWNW", "marketplace": "DE", "page": 1, "size": 50}

    @pytest.mark.asyncio
    async def test_reverse_asin_mapping(self):
        async with _client(lambda r: httpx.Response(200, json=REVERSE_ASIN_BODY)) as client:
            first, second = await client.reverse_asin("B08N5WRWNW")

        assert first.keyword == "yoga mat"
        assert first.search_volume == 8000
        assert first.cpc == 1.45
        assert first.ranking_position == 4
        assert first.traffic_percentage == pytest.approx(12.5)
        assert first.metrics.products == 80
        assert first.metrics.badges == ["amazon_choice"]
        assert second.ranking_position is None
        assert second.traffic_percentage is None

    @pytest.mark.asyncio
    async def test_keyword_mining(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json=MINING_BODY)

        async with _client(handler) as client:
            results = await client.keyword_mining("yoga mat", min_search=100, max_supply_demand_ratio=20, size=1)

        assert seen["path"] == "/v1/keyword/miner"
        assert seen["payload"]["minSearch"] == 100
        assert seen["payload"]["size"] == 1
        assert results[0].cpc == 1.2
        assert results[0].metrics.purchases == 321
        assert results[1].cpc == 0.7

    @pytest.mark.asyncio
    async def test_mining_non_ok_code_is_empty(self):
        body = {"code": "ERROR_QUOTA", "message": "quota exceeded"}
        async with _client(lambda r: httpx.Response(200, json=body)) as client:
            assert await client.keyword_mining("yoga mat") == []

    @pytest.mark.asyncio
    async def test_missing_items_is_empty(self):
        async with _client(lambda r: httpx.Response(200, json={"code": "OK", "data": None})) as client:
            assert await client.reverse_asin("B08N5WRWNW") == []


class TestErrors:
    """Test retry and error classification."""

    def test_api_key_required(self):
        with pytest.raises(SellerSpriteError):
            SellerSpriteClient(api_key="")

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=REVERSE_ASIN_BODY)

        async with _client(handler) as client:
            results = await client.reverse_asin("B08N5WRWNW")

        assert len(calls) == 3
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_client_errors_raise_immediately(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"message": "bad asin"})

        async with _client(handler) as client:
            with pytest.raises(SellerSpriteError) as exc_info:
                await client.reverse_asin("B08N5WRWNW")

        assert len(calls) == 1
        assert exc_info.value.status_code == 400
        assert exc_info.value.response == {"message": "bad asin"}

    @pytest.mark.asyncio
    async def test_persistent_rate_limit(self):
        async with _client(lambda r: httpx.Response(429)) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.reverse_asin("B08N5WRWNW")
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_network_errors_become_client_errors(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(SellerSpriteError):
                await client.reverse_asin("B08N5WRWNW")

    @pytest.mark.asyncio
    async def test_closed_client(self):
        client = _client(lambda r: httpx.Response(200, json=REVERSE_ASIN_BODY))
        await client.close()

        with pytest.raises(SellerSpriteError):
            await client.reverse_asin("B08N5WRWNW")
