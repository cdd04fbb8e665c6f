"""
Market data access over the resilience gateway.
"""

from marketlink.market.service import MarketDataService

__all__ = ["MarketDataService"]
