"""
SellerSprite data collection.

Usage:
    from src.collector import SellerSpriteClient

    async with SellerSpriteClient(api_key) as client:
        keywords = await client.reverse_asin("B08N5WRWNW")
"""

from .client import (
    RetryConfig,
    SellerSpriteClient,
    SellerSpriteError,
    map_keyword_mining_item,
    map_reverse_asin_item,
)

__all__ = [
    "RetryConfig",
    "SellerSpriteClient",
    "SellerSpriteError",
    "map_keyword_mining_item",
    "map_reverse_asin_item",
]
