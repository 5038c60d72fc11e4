"""
Crypto Market Feed Service
Aggregates market data, calendars, news and trading scenarios for the crypto content site.
"""

__version__ = "1.0.0"
__author__ = "Market Feed Team"
__description__ = "Best-effort market data aggregation service with per-slice fallbacks"
