"""
Keyword data provider interface.

The research core only talks to this protocol. SellerSpriteClient
implements it over HTTP; tests substitute AsyncMocks.
"""

from typing import List, Protocol, runtime_checkable

from .models import KeywordOccurrence


@runtime_checkable
class KeywordDataProvider(Protocol):
    """Source of keyword occurrences for products and seed keywords."""

    async def reverse_asin(
        self, asin: str, page: int = 1, size: int = 200
    ) -> List[KeywordOccurrence]:
        """Keywords a product receives traffic from."""
        ...

    async def keyword_mining(
        self,
        keyword: str,
        min_search: int = 1000,
        max_supply_demand_ratio: float = 10,
        page: int = 1,
        size: int = 50,
    ) -> List[KeywordOccurrence]:
        """Related keywords with full market metrics."""
        ...
