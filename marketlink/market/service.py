"""
Market data service backed by Yahoo Finance (yfinance).

Every request goes through the Gateway, so quotes, history, fundamentals,
news and the market overview all get caching, deduplication, admission
control and retries with their own TTL class.

Usage:
    service = MarketDataService(Gateway(ResilienceContext.with_quote_store()))
    quote = await service.get_quote("AAPL")
    history = await service.get_history("MSFT", period="6mo")
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd
import yfinance as yf

from marketlink.constants import (
    DEFAULT_HISTORY_INTERVAL,
    DEFAULT_HISTORY_PERIOD,
    MARKET_INDICES,
    MAX_NEWS_ITEMS,
)
from marketlink.core.errors import ValidationError
from marketlink.core.gateway import FUNDAMENTALS, HISTORY, MARKET_OVERVIEW, NEWS, QUOTE, Gateway
from marketlink.logging_config import get_logger

logger = get_logger(__name__)

FUNDAMENTAL_FIELDS = (
    "longName",
    "sector",
    "industry",
    "marketCap",
    "trailingPE",
    "forwardPE",
    "priceToBook",
    "dividendYield",
    "beta",
    "fiftyTwoWeekHigh",
    "fiftyTwoWeekLow",
    "totalRevenue",
    "profitMargins",
    "freeCashflow",
)


def _number(value: Any) -> Optional[float]:
    """Float or None for missing/NaN values."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


class MarketDataService:
    """
    Quote provider façade over yfinance.

    Args:
        gateway: Gateway all calls are routed through
        ticker_factory: Builds a ticker object for a symbol (yf.Ticker by default)
        downloader: Multi-symbol history download (yf.download by default)
    """

    def __init__(
        self,
        gateway: Gateway,
        ticker_factory: Callable[[str], Any] = yf.Ticker,
        downloader: Callable[..., pd.DataFrame] = yf.download,
    ):
        self.gateway = gateway
        self.ticker_factory = ticker_factory
        self.downloader = downloader

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def _fetch_quote(self, symbol: str) -> Dict[str, Any]:
        info = self.ticker_factory(symbol).fast_info
        price = _number(getattr(info, "last_price", None))
        if price is None:
            raise ValidationError(f"No quote data found for {symbol}", status=404)

        previous_close = _number(getattr(info, "previous_close", None))
        change = price - previous_close if previous_close else None
        change_percent = change / previous_close * 100 if change is not None else None

        return {
            "symbol": symbol,
            "price": price,
            "previous_close": previous_close,
            "change": change,
            "change_percent": change_percent,
            "open": _number(getattr(info, "open", None)),
            "day_high": _number(getattr(info, "day_high", None)),
            "day_low": _number(getattr(info, "day_low", None)),
            "volume": _number(getattr(info, "last_volume", None)),
            "market_cap": _number(getattr(info, "market_cap", None)),
            "currency": getattr(info, "currency", None),
        }

    async def get_quote(
        self,
        symbol: str,
        essential: bool = True,
        serve_stale_on_failure: bool = False,
    ) -> Dict[str, Any]:
        """
        Latest quote for a symbol.

        Args:
            symbol: Ticker symbol (case-insensitive)
            essential: Exempt from throttling (foreground views)
            serve_stale_on_failure: Fall back to the persisted quote if the fetch fails
        """
        symbol = symbol.strip().upper()
        return await self.gateway.call(
            "quote",
            lambda: asyncio.to_thread(self._fetch_quote, symbol),
            essential=essential,
            dedupe_key=f"quote:{symbol}",
            cache_class=QUOTE,
            serve_stale_on_failure=serve_stale_on_failure,
        )

    async def get_quotes(
        self,
        symbols: Iterable[str],
        essential: bool = False,
        serve_stale_on_failure: bool = True,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Quotes for several symbols, fetched in load-aware batches.

        Symbols that fail are left out of the result (after the stale fallback,
        if enabled); failures are logged.
        """
        unique = list(dict.fromkeys(s.strip().upper() for s in symbols if s.strip()))
        quotes: Dict[str, Dict[str, Any]] = {}

        position = 0
        while position < len(unique):
            size = self.gateway.optimal_batch_size(len(unique) - position)
            batch = unique[position:position + size]
            position += size

            results = await asyncio.gather(
                *(self.get_quote(s, essential=essential, serve_stale_on_failure=serve_stale_on_failure) for s in batch),
                return_exceptions=True,
            )
            for symbol, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning("Quote for %s unavailable: %s", symbol, result)
                else:
                    quotes[symbol] = result

        return quotes

    def cached_quotes(self, symbols: Iterable[str]) -> List[Any]:
        """Persisted quotes (with staleness) for offline display."""
        return self.gateway.read_persisted([f"quote:{s.strip().upper()}" for s in symbols])

    # ------------------------------------------------------------------
    # History, fundamentals, news
    # ------------------------------------------------------------------

    def _fetch_history(self, symbol: str, period: str, interval: str) -> pd.DataFrame:
        frame = self.ticker_factory(symbol).history(period=period, interval=interval)
        if frame is None or frame.empty:
            raise ValidationError(f"No price history found for {symbol}", status=404)
        return frame

    async def get_history(
        self,
        symbol: str,
        period: str = DEFAULT_HISTORY_PERIOD,
        interval: str = DEFAULT_HISTORY_INTERVAL,
    ) -> pd.DataFrame:
        symbol = symbol.strip().upper()
        return await self.gateway.call(
            "history",
            lambda: asyncio.to_thread(self._fetch_history, symbol, period, interval),
            dedupe_key=f"history:{symbol}:{period}:{interval}",
            cache_class=HISTORY,
        )

    def _fetch_fundamentals(self, symbol: str) -> Dict[str, Any]:
        info = self.ticker_factory(symbol).info or {}
        if not info or all(info.get(k) is None for k in FUNDAMENTAL_FIELDS):
            raise ValidationError(f"No fundamentals found for {symbol}", status=404)
        data = {k: info.get(k) for k in FUNDAMENTAL_FIELDS}
        data["symbol"] = symbol
        return data

    async def get_fundamentals(self, symbol: str) -> Dict[str, Any]:
        symbol = symbol.strip().upper()
        return await self.gateway.call(
            "fundamentals",
            lambda: asyncio.to_thread(self._fetch_fundamentals, symbol),
            dedupe_key=f"fundamentals:{symbol}",
            cache_class=FUNDAMENTALS,
        )

    def _fetch_news(self, symbol: str, limit: int) -> List[Dict[str, Any]]:
        items = []
        for raw in (self.ticker_factory(symbol).news or [])[:limit]:
            # Newer yfinance nests the article under "content"
            content = raw.get("content") or raw
            provider = content.get("provider") or {}
            url = (content.get("canonicalUrl") or {}).get("url") or raw.get("link")
            items.append({
                "title": content.get("title"),
                "publisher": provider.get("displayName") or raw.get("publisher"),
                "link": url,
                "published": content.get("pubDate") or raw.get("providerPublishTime"),
            })
        return items

    async def get_news(self, symbol: str, limit: int = MAX_NEWS_ITEMS) -> List[Dict[str, Any]]:
        symbol = symbol.strip().upper()
        return await self.gateway.call(
            "news",
            lambda: asyncio.to_thread(self._fetch_news, symbol, limit),
            dedupe_key=f"news:{symbol}:{limit}",
            cache_class=NEWS,
        )

    # ------------------------------------------------------------------
    # Market overview
    # ------------------------------------------------------------------

    def _fetch_overview(self) -> List[Dict[str, Any]]:
        frame = self.downloader(
            list(MARKET_INDICES),
            period="5d",
            interval="1d",
            group_by="ticker",
            progress=False,
            auto_adjust=False,
        )
        if frame is None or frame.empty:
            raise ValidationError("No market overview data returned", status=404)

        available = set(frame.columns.get_level_values(0))
        rows = []
        for symbol, name in MARKET_INDICES.items():
            if symbol not in available:
                continue
            closes = frame[symbol]["Close"].dropna()
            if closes.empty:
                continue
            last = float(closes.iloc[-1])
            previous = float(closes.iloc[-2]) if len(closes) > 1 else last
            change = last - previous
            rows.append({
                "symbol": symbol,
                "name": name,
                "price": last,
                "change": change,
                "change_percent": change / previous * 100 if previous else 0.0,
            })
        return rows

    async def get_market_overview(self) -> List[Dict[str, Any]]:
        return await self.gateway.call(
            "market_overview",
            lambda: asyncio.to_thread(self._fetch_overview),
            dedupe_key="market:overview",
            cache_class=MARKET_OVERVIEW,
        )

    # ------------------------------------------------------------------
    # Background polling
    # ------------------------------------------------------------------

    async def poll_quotes(self, symbols: Iterable[str]) -> Optional[Dict[str, Dict[str, Any]]]:
        """
        One background refresh cycle.

        Returns None without calling upstream when admission control says to
        throttle; pollers skip the cycle instead of queueing work.
        """
        if self.gateway.should_throttle():
            logger.info("Skipping quote refresh: %s", self.gateway.get_rate_limit_status()["message"])
            return None
        return await self.get_quotes(symbols, essential=False)

    def next_poll_interval(self, base_seconds: float) -> float:
        """Base interval stretched by current API load."""
        return base_seconds * self.gateway.refresh_multiplier()
