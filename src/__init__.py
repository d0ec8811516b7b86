"""
ASIN Keyword Research

Keyword intelligence for Amazon products:
1. Collects keyword data from the SellerSprite API
2. Aggregates and scores keywords across products
3. Finds opportunities and competitive gaps
4. Stores sessions in SQL and caches results in Redis
"""

__version__ = "2.0.0"
